import os
import tempfile


class Config:
    """Base configuration"""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY:
        # Try to read from persistent file in /data directory
        secret_file = '/data/.secret_key'
        if os.path.exists(secret_file):
            with open(secret_file, 'r') as f:
                SECRET_KEY = f.read().strip()
        else:
            import secrets
            SECRET_KEY = secrets.token_hex(32)
            print("WARNING: Using non-persistent SECRET_KEY. Set SECRET_KEY environment variable.")

    # Data directory (logs, sqlite database)
    DATA_DIR = os.environ.get('DATA_DIR') or '/data'

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/shipyard.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fernet key used to encrypt S3 credentials and SSH private keys
    ENCRYPTION_KEY = os.environ.get('ENCRYPTION_KEY')

    # Backups
    BACKUP_ROOT = os.environ.get('BACKUP_ROOT') or '/data/coolify/backups'
    HELPER_IMAGE = os.environ.get('HELPER_IMAGE') or 'ghcr.io/coollabsio/coolify-helper'
    # Check the bucket with boto3 before an upload and confirm the dump landed in it
    S3_CHECK_UPLOADS = os.environ.get('S3_CHECK_UPLOADS', 'true').lower() == 'true'
    BACKUP_LOCK_LEASE_SECONDS = int(os.environ.get('BACKUP_LOCK_LEASE_SECONDS', 3600))

    # Remote execution
    SSH_CONNECT_TIMEOUT = int(os.environ.get('SSH_CONNECT_TIMEOUT', 30))
    SSH_COMMAND_TIMEOUT = int(os.environ.get('SSH_COMMAND_TIMEOUT', 3600))

    # Notifications (SMTP is optional, events are only logged without it)
    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_FROM = os.environ.get('MAIL_FROM') or 'shipyard@localhost'
    INTERNAL_NOTIFICATION_EMAIL = os.environ.get('INTERNAL_NOTIFICATION_EMAIL')

    # Scheduler
    SCHEDULER_API_ENABLED = False
    SCHEDULER_TIMEZONE = 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "shipyard.db")}'


class TestingConfig(Config):
    """Test configuration"""
    TESTING = True
    DEBUG = False
    DATA_DIR = os.path.join(tempfile.gettempdir(), 'shipyard-test')
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    BACKUP_ROOT = '/data/coolify/backups'
    MAIL_SERVER = None
    INTERNAL_NOTIFICATION_EMAIL = None


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}
