import uuid
from datetime import datetime
from shipyard import db


def _new_uuid():
    return uuid.uuid4().hex


class Team(db.Model):
    """Team owning servers, databases and backup definitions"""
    __tablename__ = 'teams'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))  # Notification recipient
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Team {self.name}>'


class Server(db.Model):
    """Remote host reachable over SSH"""
    __tablename__ = 'servers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    ip = db.Column(db.String(255), nullable=False)
    port = db.Column(db.Integer, default=22, nullable=False)
    user = db.Column(db.String(100), default='root', nullable=False)
    private_key_encrypted = db.Column(db.Text, nullable=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)

    team = db.relationship('Team')

    def __repr__(self):
        return f'<Server {self.name} ip={self.ip}>'


class StandaloneDatabase(db.Model):
    """Database container deployed on a server"""
    __tablename__ = 'standalone_databases'

    # id 0 is reserved for the platform's own metadata store
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    uuid = db.Column(db.String(64), unique=True, nullable=False, default=_new_uuid)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(50), default='exited', nullable=False)  # running:healthy, exited, ...
    engine = db.Column(db.String(50), default='standalone-postgresql', nullable=False)
    postgres_user = db.Column(db.String(100), default='postgres', nullable=False)
    network = db.Column(db.String(255), default='coolify', nullable=False)
    server_id = db.Column(db.Integer, db.ForeignKey('servers.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)

    server = db.relationship('Server')
    team = db.relationship('Team')

    def type(self):
        return self.engine

    def is_running(self):
        return (self.status or '').startswith('running')

    def __repr__(self):
        return f'<StandaloneDatabase {self.name} status={self.status}>'


class S3Storage(db.Model):
    """S3 compatible storage target for backup uploads"""
    __tablename__ = 's3_storages'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    key_encrypted = db.Column(db.Text, nullable=False)
    secret_encrypted = db.Column(db.Text, nullable=False)
    bucket = db.Column(db.String(255), nullable=False)
    endpoint = db.Column(db.String(500), nullable=False)
    region = db.Column(db.String(50), default='us-east-1', nullable=False)  # Not used by uploads
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<S3Storage bucket={self.bucket} endpoint={self.endpoint}>'


class ScheduledDatabaseBackup(db.Model):
    """Recurring backup definition for a database"""
    __tablename__ = 'scheduled_database_backups'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(64), unique=True, nullable=False, default=_new_uuid)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    database_id = db.Column(db.Integer, db.ForeignKey('standalone_databases.id'), nullable=False)
    enabled = db.Column(db.Boolean, default=True, nullable=False)
    frequency = db.Column(db.String(100))  # Cron expression
    number_of_backups_locally = db.Column(db.Integer, default=7, nullable=False)  # 0 = keep none
    save_s3 = db.Column(db.Boolean, default=False, nullable=False)
    s3_storage_id = db.Column(db.Integer, db.ForeignKey('s3_storages.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    team = db.relationship('Team')
    database = db.relationship('StandaloneDatabase')
    s3 = db.relationship('S3Storage')
    executions = db.relationship(
        'ScheduledDatabaseBackupExecution',
        back_populates='backup',
        cascade='all, delete-orphan',
        lazy='dynamic'
    )

    def __repr__(self):
        return f'<ScheduledDatabaseBackup id={self.id} database_id={self.database_id} enabled={self.enabled}>'


class ScheduledDatabaseBackupExecution(db.Model):
    """One attempt of a scheduled backup"""
    __tablename__ = 'scheduled_database_backup_executions'

    id = db.Column(db.Integer, primary_key=True)
    scheduled_database_backup_id = db.Column(
        db.Integer, db.ForeignKey('scheduled_database_backups.id'), nullable=False
    )
    filename = db.Column(db.String(1000), nullable=False)
    status = db.Column(db.String(20), nullable=True)  # NULL while pending, then success or failed
    message = db.Column(db.Text)
    size = db.Column(db.BigInteger, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    backup = db.relationship('ScheduledDatabaseBackup', back_populates='executions')

    def __repr__(self):
        return f'<ScheduledDatabaseBackupExecution backup_id={self.scheduled_database_backup_id} status={self.status}>'


class BackupLock(db.Model):
    """Lease held by the worker currently running a backup definition"""
    __tablename__ = 'backup_locks'

    backup_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    owner = db.Column(db.String(255), nullable=False)
    acquired_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self):
        return f'<BackupLock backup_id={self.backup_id} owner={self.owner}>'
