"""
Backup module for Shipyard.

This module handles scheduled database backups:
- Execution of one backup run on the database's server
- Local retention by count
- Per-definition run locks
- S3 storage targets
"""

from .executor import DatabaseBackupJob, execute_backup
from .retention import select_for_deletion
from .locks import acquire_backup_lock, release_backup_lock, backup_lock
from .storage import S3Storage

__all__ = [
    'DatabaseBackupJob',
    'execute_backup',
    'select_for_deletion',
    'acquire_backup_lock',
    'release_backup_lock',
    'backup_lock',
    'S3Storage'
]
