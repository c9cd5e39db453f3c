"""
Local retention policy for scheduled database backups.

A definition keeps its ``number_of_backups_locally`` most recent successful
executions; older successful executions are selected for deletion. A count
of 0 selects every successful execution, including the one just created.
Failed executions are never selected.
"""

from typing import List, Sequence, Tuple, TypeVar

from shipyard.models import ScheduledDatabaseBackup, ScheduledDatabaseBackupExecution

T = TypeVar('T')


def split_by_retention(records: Sequence[T], keep: int) -> Tuple[List[T], List[T]]:
    """
    Split records ordered newest first into (kept, deletable).

    Args:
        records: Successful executions, most recent first
        keep: Number of most recent records to keep (0 keeps none)

    Raises:
        ValueError: If keep is negative
    """
    if keep < 0:
        raise ValueError(f"Retention count must be non-negative, got {keep}")
    records = list(records)
    return records[:keep], records[keep:]


def successful_executions(backup: ScheduledDatabaseBackup):
    """Query of successful executions of a definition, most recent first."""
    return (
        backup.executions
        .filter(ScheduledDatabaseBackupExecution.status == 'success')
        .order_by(
            ScheduledDatabaseBackupExecution.created_at.desc(),
            ScheduledDatabaseBackupExecution.id.desc()
        )
    )


def select_for_deletion(backup: ScheduledDatabaseBackup) -> List[ScheduledDatabaseBackupExecution]:
    """
    Select the executions of a definition whose local files should be removed.

    Args:
        backup: ScheduledDatabaseBackup instance

    Returns:
        Executions to delete, most recent first
    """
    keep = backup.number_of_backups_locally or 0
    _, deletable = split_by_retention(successful_executions(backup).all(), keep)
    return deletable
