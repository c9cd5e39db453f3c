"""
Database backup job - runs one scheduled backup end to end.

Workflow:
1. Skip silently unless the database is running (the platform's own
   database, id 0, is always backed up)
2. Compute the backup location on the database's server
3. Create a ScheduledDatabaseBackupExecution record (status pending)
4. Dump the database into the location and notify the team
5. Measure the dump size
6. Remove older local dumps beyond the retention count
7. Upload the dump to S3 (optional, never fails the run)
8. Remove this run's own dump and record when the retention count is 0
9. Otherwise save status, output and size on the execution record
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from shipyard import db
from shipyard.models import ScheduledDatabaseBackup, ScheduledDatabaseBackupExecution
from shipyard.notifications import BackupFailed, BackupSuccess, TeamNotifier
from shipyard.remote import RemoteExecutionError, RemoteExecutor
from shipyard.utils.text import append_output, slugify
from .locks import BackupLockBusy, backup_lock
from .retention import select_for_deletion
from .storage import S3Storage, decrypt_credentials

logger = logging.getLogger(__name__)

SYSTEM_DATABASE_ID = 0
SYSTEM_DATABASE_NAME = 'coolify-db'
DEFAULT_BACKUP_ROOT = '/data/coolify/backups'
DEFAULT_HELPER_IMAGE = 'ghcr.io/coollabsio/coolify-helper'


class BackupError(Exception):
    """Raised when a backup cannot be started."""
    pass


@dataclass
class UploadResult:
    """Outcome of the S3 upload step, consumed only for logging."""
    ok: bool
    error: Optional[str] = None


def backup_directory(backup_root: str, team, database, server) -> Tuple[str, str]:
    """
    Compute the container to dump and the directory holding its dumps.

    Returns:
        (container_name, backup_dir)
    """
    if database.name == SYSTEM_DATABASE_NAME:
        return SYSTEM_DATABASE_NAME, f"{backup_root}/coolify/coolify-db-{slugify(server.ip)}"

    team_dir = f"{slugify(team.name)}-{team.id}"
    return database.uuid, f"{backup_root}/databases/{team_dir}/{database.uuid}"


def backup_filename(timestamp: Optional[int] = None) -> str:
    """File name of a dump, starting with a slash so it can be appended to a directory."""
    if timestamp is None:
        timestamp = int(time.time())
    return f"/pg_dump-{timestamp}.dump"


def delete_backup_locally(filename: str, server, executor: RemoteExecutor):
    """Remove a dump file from the server."""
    executor.execute([f"rm -f {filename}"], server)


class DatabaseBackupJob:
    """
    Runs one backup of a database for a ScheduledDatabaseBackup.

    All collaborators are passed in resolved; the job does no lookups of its
    own and assumes the caller holds the definition's run lock.
    """

    def __init__(
        self,
        backup: ScheduledDatabaseBackup,
        database,
        team,
        server,
        s3=None,
        executor: Optional[RemoteExecutor] = None,
        notifier: Optional[TeamNotifier] = None,
        backup_root: str = DEFAULT_BACKUP_ROOT,
        helper_image: str = DEFAULT_HELPER_IMAGE,
        check_storage: bool = True
    ):
        self.backup = backup
        self.database = database
        self.team = team
        self.server = server
        self.s3 = s3
        self.executor = executor or RemoteExecutor()
        self.notifier = notifier or TeamNotifier()
        self.backup_root = backup_root.rstrip('/')
        self.helper_image = helper_image
        self.check_storage = check_storage

        self.container_name = None
        self.backup_dir = None
        self.backup_file = None
        self.backup_location = None
        self.backup_log = None
        self.backup_status = None
        self.backup_output = None
        self.size = 0

    def handle(self) -> Optional[ScheduledDatabaseBackupExecution]:
        """
        Run the backup.

        Returns:
            The execution record (already deleted when no local copies are kept),
            or None if the database is not running

        Raises:
            Exception: Anything escaping the steps, after alerting the operator
        """
        try:
            if not self.database.is_running() and self.database.id != SYSTEM_DATABASE_ID:
                logger.info(f"Database {self.database.name} is not running, skipping backup {self.backup.id}")
                return None

            if self.database.type() != 'standalone-postgresql':
                raise BackupError(f"Unsupported database type: {self.database.type()}")

            self.container_name, self.backup_dir = backup_directory(
                self.backup_root, self.team, self.database, self.server
            )
            self.backup_file = backup_filename()
            self.backup_location = self.backup_dir + self.backup_file

            self.backup_log = ScheduledDatabaseBackupExecution(
                filename=self.backup_location,
                scheduled_database_backup_id=self.backup.id
            )
            db.session.add(self.backup_log)
            db.session.commit()

            self.backup_standalone_postgresql()
            self.calculate_size()
            self.remove_old_backups()
            if self.backup.save_s3:
                self.upload_to_s3()
            if not self.remove_current_backup():
                self.save_backup_logs()

            return self.backup_log

        except Exception as e:
            logger.exception(f"Backup {self.backup.id} failed: {e}")
            self.notifier.send_internal(f"DatabaseBackupJob failed with: {e}")
            raise

    def backup_standalone_postgresql(self):
        """Dump the database with pg_dump inside its container."""
        try:
            commands = [
                f"mkdir -p {self.backup_dir}",
                f"docker exec {self.container_name} pg_dump -Fc -U {self.database.postgres_user} > {self.backup_location}"
            ]
            output = self.executor.execute(commands, self.server)
            self.backup_output = output.strip() or None

            logger.info(f"Backup done for {self.container_name} at {self.server.name}:{self.backup_location}")

            self.backup_status = 'success'
            self.notifier.notify(self.team, BackupSuccess(self.backup, self.database))
        except Exception as e:
            self.backup_status = 'failed'
            self.add_to_backup_output(str(e))
            logger.error(
                f"Backup failed for {self.container_name} at {self.server.name}:{self.backup_location}: {e}"
            )
            self.notifier.notify(self.team, BackupFailed(self.backup, self.database, self.backup_output))
        finally:
            self.backup_log.status = self.backup_status
            db.session.commit()

    def add_to_backup_output(self, message: str):
        self.backup_output = append_output(self.backup_output, message)

    def calculate_size(self):
        """Store the dump size in bytes. Failed dumps keep size 0."""
        if self.backup_status != 'success':
            return

        try:
            output = self.executor.execute([f"du -b {self.backup_location} | cut -f1"], self.server)
            self.size = int(output.strip())
        except (RemoteExecutionError, ValueError) as e:
            self.add_to_backup_output(f"Failed to calculate backup size: {e}")
            logger.warning(f"Failed to calculate size of {self.backup_location}: {e}")

    def remove_old_backups(self):
        """Delete earlier dumps and records beyond the local retention count."""
        for execution in select_for_deletion(self.backup):
            # This run's dump is still needed by the upload
            if execution.id == self.backup_log.id:
                continue
            self._remove_backup(execution)

    def remove_current_backup(self) -> bool:
        """
        Delete this run's dump and record when no local copies are kept.

        Returns:
            True if the record was deleted
        """
        if not any(e.id == self.backup_log.id for e in select_for_deletion(self.backup)):
            return False

        return self._remove_backup(self.backup_log)

    def _remove_backup(self, execution) -> bool:
        filename = execution.filename
        try:
            delete_backup_locally(filename, self.server, self.executor)
        except RemoteExecutionError as e:
            # Keep the record so the next run retries the file
            self.add_to_backup_output(f"Failed to delete old backup {filename}: {e}")
            logger.warning(f"Failed to delete old backup {filename}: {e}")
            return False

        db.session.delete(execution)
        db.session.commit()
        logger.info(f"Deleted old backup {filename}")
        return True

    def upload_to_s3(self) -> UploadResult:
        """Copy the dump to the attached S3 storage. Never raises."""
        if self.s3 is None:
            logger.warning(f"Backup {self.backup.id} has S3 enabled but no storage attached")
            return UploadResult(ok=False, error="No S3 storage attached")

        result = self._run_upload()
        if result.ok:
            self.add_to_backup_output('Uploaded to S3.')
            logger.info(f"Uploaded {self.backup_location} to s3://{self.s3.bucket}{self.backup_dir}")
        else:
            self.add_to_backup_output(result.error)
        return result

    def _run_upload(self) -> UploadResult:
        container = f"backup-of-{self.backup.uuid}"
        try:
            key, secret = decrypt_credentials(self.s3)
            bucket = None
            if self.check_storage:
                bucket = S3Storage.from_model(self.s3)
                bucket.test_connection()

            commands = [
                f"docker run --pull=always -d --network {self.database.network} --name {container} "
                f"--rm -v {self.backup_location}:{self.backup_location}:ro {self.helper_image}",
                f"docker exec {container} mc config host add temporary {self.s3.endpoint} {key} {secret}",
                f"docker exec {container} mc cp {self.backup_location} temporary/{self.s3.bucket}{self.backup_dir}/"
            ]
            self.executor.execute(commands, self.server)

            if bucket is not None:
                key_name = self.backup_location.lstrip('/')
                if not any(o['Key'] == key_name for o in bucket.list_backups(self.backup_dir)):
                    return UploadResult(ok=False, error=f"Uploaded backup not found in bucket {self.s3.bucket}")

            return UploadResult(ok=True)
        except Exception as e:
            logger.error(f"Upload of {self.backup_location} to S3 failed: {e}")
            return UploadResult(ok=False, error=str(e))
        finally:
            try:
                self.executor.execute([f"docker rm -f {container}"], self.server)
            except RemoteExecutionError as e:
                logger.warning(f"Failed to remove upload container {container}: {e}")

    def save_backup_logs(self):
        self.backup_log.status = self.backup_status
        self.backup_log.message = self.backup_output
        self.backup_log.size = self.size
        db.session.commit()


def execute_backup(backup_id: int, allow_disabled: bool = False) -> Optional[ScheduledDatabaseBackupExecution]:
    """
    Resolve a backup definition and run it under its run lock.

    Args:
        backup_id: ID of ScheduledDatabaseBackup to run
        allow_disabled: If True, allow running a disabled definition (manual triggers)

    Returns:
        Execution record, or None if skipped (database not running or run already in progress)

    Raises:
        ValueError: If the definition is not found, or disabled and not allowed
    """
    from flask import current_app

    backup = db.session.get(ScheduledDatabaseBackup, backup_id)

    if not backup:
        raise ValueError(f"Scheduled backup not found: {backup_id}")

    if not backup.enabled and not allow_disabled:
        raise ValueError(f"Scheduled backup is disabled: {backup_id}")

    database = backup.database
    config = current_app.config

    job = DatabaseBackupJob(
        backup=backup,
        database=database,
        team=backup.team,
        server=database.server,
        s3=backup.s3,
        executor=RemoteExecutor.from_config(config),
        notifier=TeamNotifier.from_config(config),
        backup_root=config.get('BACKUP_ROOT', DEFAULT_BACKUP_ROOT),
        helper_image=config.get('HELPER_IMAGE', DEFAULT_HELPER_IMAGE),
        check_storage=config.get('S3_CHECK_UPLOADS', True)
    )

    try:
        with backup_lock(backup.id, lease_seconds=config.get('BACKUP_LOCK_LEASE_SECONDS', 3600)):
            return job.handle()
    except BackupLockBusy as e:
        logger.info(f"Skipping backup {backup_id}: {e}")
        return None
