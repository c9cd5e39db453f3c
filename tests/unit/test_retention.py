"""
Unit tests for local retention (shipyard/backup/retention.py).
"""

from datetime import datetime, timedelta

import pytest

from shipyard.backup.retention import select_for_deletion, split_by_retention, successful_executions


def _history(make_execution, backup, count, status='success'):
    """Create executions one minute apart, returned oldest first."""
    start = datetime(2024, 1, 15, 12, 0, 0)
    return [
        make_execution(backup, status=status, filename=f'/backups/E{i + 1}.dump',
                       created_at=start + timedelta(minutes=i))
        for i in range(count)
    ]


class TestSplitByRetention:
    """Test the policy on already ordered records."""

    def test_keeps_most_recent(self):
        kept, deletable = split_by_retention(['E5', 'E4', 'E3', 'E2', 'E1'], 2)

        assert kept == ['E5', 'E4']
        assert deletable == ['E3', 'E2', 'E1']

    def test_zero_keeps_nothing(self):
        kept, deletable = split_by_retention(['E3', 'E2', 'E1'], 0)

        assert kept == []
        assert deletable == ['E3', 'E2', 'E1']

    def test_fewer_records_than_keep(self):
        kept, deletable = split_by_retention(['E2', 'E1'], 5)

        assert kept == ['E2', 'E1']
        assert deletable == []

    def test_negative_keep_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            split_by_retention([], -1)

    @pytest.mark.parametrize('total,keep', [(3, 1), (6, 4), (10, 3)])
    def test_selects_exactly_oldest_remainder(self, total, keep):
        records = list(range(total, 0, -1))  # newest first

        _, deletable = split_by_retention(records, keep)

        assert len(deletable) == total - keep
        assert deletable == list(range(total - keep, 0, -1))


class TestSelectForDeletion:
    """Test selection against the database."""

    def test_keep_two_of_five(self, db, scheduled_backup, make_execution):
        e1, e2, e3, e4, e5 = _history(make_execution, scheduled_backup, 5)
        scheduled_backup.number_of_backups_locally = 2
        db.session.commit()

        selected = select_for_deletion(scheduled_backup)

        assert [e.id for e in selected] == [e3.id, e2.id, e1.id]

    def test_keep_zero_selects_all_successful(self, db, scheduled_backup, make_execution):
        executions = _history(make_execution, scheduled_backup, 3)
        scheduled_backup.number_of_backups_locally = 0
        db.session.commit()

        selected = select_for_deletion(scheduled_backup)

        assert {e.id for e in selected} == {e.id for e in executions}

    def test_failed_executions_never_selected(self, db, scheduled_backup, make_execution):
        _history(make_execution, scheduled_backup, 2, status='failed')
        _history(make_execution, scheduled_backup, 1)
        scheduled_backup.number_of_backups_locally = 0
        db.session.commit()

        selected = select_for_deletion(scheduled_backup)

        assert len(selected) == 1
        assert all(e.status == 'success' for e in selected)

    def test_pending_executions_never_selected(self, db, scheduled_backup, make_execution):
        make_execution(scheduled_backup, status=None)
        scheduled_backup.number_of_backups_locally = 0
        db.session.commit()

        assert select_for_deletion(scheduled_backup) == []

    def test_within_retention_selects_nothing(self, db, scheduled_backup, make_execution):
        _history(make_execution, scheduled_backup, 2)
        scheduled_backup.number_of_backups_locally = 7
        db.session.commit()

        assert select_for_deletion(scheduled_backup) == []

    def test_scoped_to_definition(self, db, team, database, scheduled_backup, make_execution):
        from shipyard.models import ScheduledDatabaseBackup

        other = ScheduledDatabaseBackup(team_id=team.id, database_id=database.id, number_of_backups_locally=0)
        db.session.add(other)
        db.session.commit()
        _history(make_execution, other, 3)
        scheduled_backup.number_of_backups_locally = 0
        db.session.commit()

        assert select_for_deletion(scheduled_backup) == []

    def test_same_timestamp_ordered_by_id(self, db, scheduled_backup, make_execution):
        when = datetime(2024, 1, 15, 12, 0, 0)
        first = make_execution(scheduled_backup, created_at=when)
        second = make_execution(scheduled_backup, created_at=when)

        ordered = successful_executions(scheduled_backup).all()

        assert [e.id for e in ordered] == [second.id, first.id]
