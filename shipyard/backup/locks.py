"""
Per-definition run lock.

A lease row in ``backup_locks`` guarantees at most one in-flight run per
backup definition across scheduler threads and processes. Leases expire so a
crashed worker does not block the definition forever.
"""

import logging
import os
import socket
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from shipyard import db
from shipyard.models import BackupLock

logger = logging.getLogger(__name__)


class BackupLockBusy(Exception):
    """Raised when another worker holds a live lease on the definition."""
    pass


def default_owner() -> str:
    """Identity of the calling worker thread."""
    return f"{socket.gethostname()}:{os.getpid()}:{threading.get_ident()}"


def acquire_backup_lock(backup_id: int, owner: str, lease_seconds: int = 3600) -> bool:
    """
    Try to take the lease for a definition.

    An expired lease, or one already held by the same owner, is taken over.

    Returns:
        True if the lease is now held by owner
    """
    now = datetime.utcnow()
    expires_at = now + timedelta(seconds=lease_seconds)

    lock = db.session.get(BackupLock, backup_id)
    if lock is None:
        db.session.add(BackupLock(backup_id=backup_id, owner=owner, acquired_at=now, expires_at=expires_at))
        try:
            db.session.commit()
        except IntegrityError:
            # Another worker inserted the row first
            db.session.rollback()
            return False
        return True

    if lock.owner != owner and lock.expires_at > now:
        return False

    if lock.owner != owner:
        logger.warning(f"Taking over expired backup lock {backup_id} from {lock.owner}")

    # Conditional update so two workers cannot both take over the same expired lease
    updated = (
        BackupLock.query
        .filter(
            BackupLock.backup_id == backup_id,
            BackupLock.owner == lock.owner,
            BackupLock.expires_at == lock.expires_at
        )
        .update({'owner': owner, 'acquired_at': now, 'expires_at': expires_at}, synchronize_session=False)
    )
    db.session.commit()
    db.session.expire(lock)
    return updated == 1


def release_backup_lock(backup_id: int, owner: str):
    """Release the lease if owner still holds it."""
    BackupLock.query.filter_by(backup_id=backup_id, owner=owner).delete(synchronize_session=False)
    db.session.commit()


@contextmanager
def backup_lock(backup_id: int, owner: str = None, lease_seconds: int = 3600):
    """
    Hold the definition lease for the duration of the block.

    Raises:
        BackupLockBusy: If the lease is held by another live worker
    """
    owner = owner or default_owner()
    if not acquire_backup_lock(backup_id, owner, lease_seconds):
        raise BackupLockBusy(f"Backup {backup_id} is already running")
    try:
        yield owner
    finally:
        try:
            release_backup_lock(backup_id, owner)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to release backup lock {backup_id}: {e}")
