"""
Unit tests for the application factory (shipyard/__init__.py).
"""

from unittest.mock import patch

from shipyard import create_app
from shipyard.config import TestingConfig


class TestCreateApp:

    def test_testing_config(self, app):
        assert app.config['TESTING'] is True
        assert app.config['SQLALCHEMY_DATABASE_URI'] == 'sqlite:///:memory:'

    def test_defaults(self, app):
        assert app.config['BACKUP_ROOT'] == '/data/coolify/backups'
        assert app.config['HELPER_IMAGE'] == 'ghcr.io/coollabsio/coolify-helper'
        assert app.config['BACKUP_LOCK_LEASE_SECONDS'] == 3600

    @patch('shipyard.scheduler.init_scheduler')
    def test_scheduler_not_started_when_testing(self, mock_init):
        create_app('testing')

        mock_init.assert_not_called()

    def test_missing_encryption_key_is_tolerated(self, monkeypatch):
        monkeypatch.setattr(TestingConfig, 'ENCRYPTION_KEY', None)

        app = create_app('testing')

        assert app.config['ENCRYPTION_KEY'] is None


class TestHealth:

    @patch('shipyard.scheduler.is_scheduler_running', return_value=False)
    def test_health(self, mock_running, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy', 'scheduler_running': False}
