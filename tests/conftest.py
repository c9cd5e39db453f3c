"""
Shared pytest fixtures for Shipyard tests.

This module provides fixtures for:
- Flask app with in-memory SQLite
- Teams, servers, databases and backup definitions
- Mock remote executor and notifier
- Moto-backed S3
"""

from unittest.mock import MagicMock

import pytest
import boto3
from cryptography.fernet import Fernet
from moto import mock_aws

from shipyard import create_app, db as _db
from shipyard.models import (
    Team, Server, StandaloneDatabase, S3Storage,
    ScheduledDatabaseBackup, ScheduledDatabaseBackupExecution
)
from shipyard.remote import RemoteExecutor
from shipyard.notifications import TeamNotifier
from shipyard.utils.crypto import secret_box

TEST_ENCRYPTION_KEY = Fernet.generate_key().decode()


@pytest.fixture(scope='function')
def app():
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database for fast, isolated tests.
    """
    app = create_app('testing')
    app.config.update({
        'ENCRYPTION_KEY': TEST_ENCRYPTION_KEY,
        'BACKUP_ROOT': '/data/coolify/backups',
    })
    secret_box.initialize(TEST_ENCRYPTION_KEY)

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def team(db):
    team = Team(id=7, name='Acme', email='ops@acme.test')
    db.session.add(team)
    db.session.commit()
    return team


@pytest.fixture(scope='function')
def server(db, team):
    server = Server(
        name='prod-1',
        ip='10.0.0.5',
        port=22,
        user='root',
        team_id=team.id
    )
    db.session.add(server)
    db.session.commit()
    return server


@pytest.fixture(scope='function')
def database(db, team, server):
    """A running postgres container owned by the team."""
    database = StandaloneDatabase(
        id=42,
        uuid='pg-4b1c9e',
        name='orders',
        status='running:healthy',
        engine='standalone-postgresql',
        postgres_user='postgres',
        network='coolify',
        server_id=server.id,
        team_id=team.id
    )
    db.session.add(database)
    db.session.commit()
    return database


@pytest.fixture(scope='function')
def system_database(db, team, server):
    """The platform's own metadata store (sentinel id 0)."""
    database = StandaloneDatabase(
        id=0,
        uuid='coolify-db-uuid',
        name='coolify-db',
        status='exited',
        engine='standalone-postgresql',
        postgres_user='coolify',
        network='coolify',
        server_id=server.id,
        team_id=team.id
    )
    db.session.add(database)
    db.session.commit()
    return database


@pytest.fixture(scope='function')
def s3_storage(db, team):
    storage = S3Storage(
        team_id=team.id,
        name='backups',
        key_encrypted=secret_box.encrypt('test_access_key_123'),
        secret_encrypted=secret_box.encrypt('test_secret_key_456'),
        bucket='test-bucket',
        endpoint='https://s3.us-east-1.amazonaws.com',
        region='us-east-1'
    )
    db.session.add(storage)
    db.session.commit()
    return storage


@pytest.fixture(scope='function')
def scheduled_backup(db, team, database):
    backup = ScheduledDatabaseBackup(
        uuid='bk-91f2',
        team_id=team.id,
        database_id=database.id,
        enabled=True,
        frequency='0 2 * * *',
        number_of_backups_locally=2,
        save_s3=False
    )
    db.session.add(backup)
    db.session.commit()
    return backup


@pytest.fixture
def make_execution(db):
    """Factory adding an execution record to a definition."""
    def _make(backup, status='success', filename=None, created_at=None):
        execution = ScheduledDatabaseBackupExecution(
            scheduled_database_backup_id=backup.id,
            filename=filename or f'/data/coolify/backups/dump-{backup.executions.count()}.dump',
            status=status
        )
        if created_at is not None:
            execution.created_at = created_at
        db.session.add(execution)
        db.session.commit()
        return execution
    return _make


@pytest.fixture
def mock_executor():
    """RemoteExecutor double returning empty output for every call."""
    executor = MagicMock(spec=RemoteExecutor)
    executor.execute.return_value = ''
    return executor


@pytest.fixture
def mock_notifier():
    return MagicMock(spec=TeamNotifier)


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3
