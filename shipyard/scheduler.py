"""
APScheduler configuration for scheduled database backups.

Manages:
- One cron job per enabled ScheduledDatabaseBackup (id ``backup_<id>``)
- Manual "run now" triggers
"""

import logging
from datetime import datetime, timedelta, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.executors.pool import ThreadPoolExecutor

from shipyard import db
from shipyard.models import ScheduledDatabaseBackup
from shipyard.backup.executor import execute_backup

logger = logging.getLogger(__name__)

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def _count_jobs_in_database() -> int:
    """
    Count jobs in APScheduler's persistent job store.

    Used when the in-memory scheduler lives in another process
    (Flask reloader parent, non-scheduler gunicorn workers).
    """
    try:
        from sqlalchemy import text
        result = db.session.execute(
            text("SELECT COUNT(*) FROM apscheduler_jobs")
        ).scalar()
        return result or 0
    except Exception:
        db.session.rollback()
        return 0


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    jobstores = {
        'default': SQLAlchemyJobStore(url=app.config['SQLALCHEMY_DATABASE_URI'])
    }

    executors = {
        'default': ThreadPoolExecutor(max_workers=3)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one run of a definition at a time in this process
        'misfire_grace_time': 300
    }

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone=app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    )

    return scheduler


def start_scheduler():
    """Start the APScheduler."""
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")

        for job in scheduler.get_jobs():
            next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
            logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def sync_backup_jobs():
    """
    Synchronize backup definitions from database to scheduler.

    Call after app startup and after creating/updating/deleting definitions.
    """
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    # One-time jobs from previous manual triggers have already run or missed their window
    for job in scheduler.get_jobs():
        if job.id.startswith('manual_'):
            try:
                scheduler.remove_job(job.id)
                logger.info(f"Cleaned up old manual job: {job.id}")
            except Exception as e:
                logger.warning(f"Failed to remove old manual job {job.id}: {e}")

    backups = ScheduledDatabaseBackup.query.all()

    scheduled_job_ids = {job.id for job in scheduler.get_jobs() if job.id.startswith('backup_')}

    for backup in backups:
        job_id = f"backup_{backup.id}"

        if backup.enabled and backup.frequency:
            if job_id in scheduled_job_ids:
                _update_scheduled_job(backup)
                scheduled_job_ids.remove(job_id)
            else:
                _add_scheduled_job(backup)
        elif job_id in scheduled_job_ids:
            _remove_scheduled_job(backup.id)
            scheduled_job_ids.remove(job_id)

    # Jobs whose definition no longer exists
    for leftover_id in scheduled_job_ids:
        try:
            scheduler.remove_job(leftover_id)
            logger.info(f"Removed orphaned scheduled job: {leftover_id}")
        except Exception as e:
            logger.warning(f"Failed to remove orphaned job {leftover_id}: {e}")


def _add_scheduled_job(backup: ScheduledDatabaseBackup):
    global scheduler

    job_id = f"backup_{backup.id}"

    try:
        trigger = CronTrigger.from_crontab(backup.frequency, timezone='UTC')

        scheduler.add_job(
            func=_execute_backup_wrapper,
            args=[backup.id],
            trigger=trigger,
            id=job_id,
            name=f"Backup: {backup.uuid}",
            replace_existing=True
        )

        logger.info(f"Scheduled backup {backup.id} ({backup.frequency})")

    except Exception as e:
        logger.error(f"Failed to schedule backup {backup.id}: {e}")


def _update_scheduled_job(backup: ScheduledDatabaseBackup):
    global scheduler

    job_id = f"backup_{backup.id}"

    try:
        job = scheduler.get_job(job_id)

        if job:
            job.reschedule(trigger=CronTrigger.from_crontab(backup.frequency, timezone='UTC'))
            logger.info(f"Updated scheduled backup {backup.id}")

    except Exception as e:
        logger.error(f"Failed to update scheduled backup {backup.id}: {e}")


def _remove_scheduled_job(backup_id: int):
    global scheduler

    try:
        scheduler.remove_job(f"backup_{backup_id}")
        logger.info(f"Removed scheduled backup {backup_id}")
    except Exception as e:
        logger.error(f"Failed to remove scheduled backup {backup_id}: {e}")


def _execute_backup_wrapper(backup_id: int, allow_disabled: bool = False):
    """
    Run a backup inside the app context from a scheduler thread.

    Failures were already recorded and reported by the job; they are logged
    here so the scheduler thread keeps running.
    """
    global flask_app

    with flask_app.app_context():
        try:
            logger.info(f"Scheduler executing backup {backup_id} (allow_disabled={allow_disabled})")
            execution = execute_backup(backup_id, allow_disabled=allow_disabled)
            if execution is not None:
                logger.info(f"Backup {backup_id} finished with status: {execution.status}")
        except Exception as e:
            logger.error(f"Scheduled backup {backup_id} failed: {e}")
        finally:
            db.session.remove()


def trigger_backup_now(backup_id: int):
    """
    Run a backup definition once, as soon as possible.

    Raises:
        RuntimeError: If scheduler not initialized
        ValueError: If definition not found
    """
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    backup = db.session.get(ScheduledDatabaseBackup, backup_id)
    if not backup:
        raise ValueError(f"Scheduled backup not found: {backup_id}")

    now = datetime.now(timezone.utc)
    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[backup_id, True],  # True = allow_disabled for manual triggers
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=f"manual_{backup_id}_{int(now.timestamp())}",
        name=f"Manual: {backup.uuid}",
        replace_existing=False
    )

    logger.info(f"Manually triggered backup {backup_id}")


def is_scheduler_running() -> bool:
    """
    Check if the scheduler is running in this process or, failing that,
    whether any process has jobs in the shared job store.
    """
    global scheduler

    if scheduler is not None and scheduler.running:
        return True

    return _count_jobs_in_database() > 0
