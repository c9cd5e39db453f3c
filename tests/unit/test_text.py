"""
Unit tests for text helpers (shipyard/utils/text.py).
"""

import pytest

from shipyard.utils.text import append_output, slugify


class TestSlugify:

    @pytest.mark.parametrize('value,expected', [
        ('Acme', 'acme'),
        ('Acme Corp', 'acme-corp'),
        ('10.0.0.5', '10-0-0-5'),
        ('  Ünïcode  Team ', 'unicode-team'),
        ('a--b__c', 'a-b-c'),
        (7, '7')
    ])
    def test_slugify(self, value, expected):
        assert slugify(value) == expected

    def test_separator(self):
        assert slugify('Acme Corp', separator='_') == 'acme_corp'


class TestAppendOutput:

    def test_first_message(self):
        assert append_output(None, 'Uploaded to S3.') == 'Uploaded to S3.'

    def test_empty_output(self):
        assert append_output('', 'Uploaded to S3.') == 'Uploaded to S3.'

    def test_appends_on_new_line(self):
        assert append_output('dump ok', 'Uploaded to S3.') == 'dump ok\nUploaded to S3.'
