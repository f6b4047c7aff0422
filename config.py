# Event Check-in Configuration

import os
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'event-checkin-secret-key'

    # Database Configuration
    DATABASE_PATH = BASE_DIR / 'database' / 'checkin.db'

    # Event Configuration
    EVENT_NAME = os.environ.get('EVENT_NAME') or 'Academic Event'
    REGISTRATION_CATEGORIES = [
        'Physician',
        'Nurse',
        'Nursing Student',
        'Resident or Intern',
        'Nursing Trainee',
        'Administrative Staff',
    ]

    # QR Code Configuration
    QR_CODE_SIZE = 8  # pixels per module
    QR_CODE_BORDER = 2
    QR_CODE_FILL_COLOR = '#000000'
    QR_CODE_BACK_COLOR = '#FFFFFF'

    # Email Configuration
    MAIL_SERVER = os.environ.get('MAIL_SERVER') or 'localhost'
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 587)
    MAIL_USE_TLS = _env_flag('MAIL_USE_TLS', 'true')
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or 'registration@event.local'
    MAIL_TIMEOUT = 15  # seconds
    NOTIFICATIONS_EMAIL_ENABLED = _env_flag('NOTIFICATIONS_EMAIL_ENABLED')

    # Attendance Configuration
    ATTENDANCE_MODE = os.environ.get('ATTENDANCE_MODE') or 'toggle'  # 'toggle' or 'checkin'
    SCAN_DEBOUNCE_SECONDS = float(os.environ.get('SCAN_DEBOUNCE_SECONDS') or 1.0)
    PARTICIPANT_SCAN_COOLDOWN_SECONDS = float(os.environ.get('PARTICIPANT_SCAN_COOLDOWN_SECONDS') or 30.0)
    SCAN_RESUME_DELAY_SECONDS = float(os.environ.get('SCAN_RESUME_DELAY_SECONDS') or 1.0)
    SCAN_SUCCESS_DISPLAY_SECONDS = 2.0
    CAMERA_INDEX = int(os.environ.get('CAMERA_INDEX') or 0)

    # Scanner stations (empty list accepts any station name)
    SCANNER_STATIONS = [s.strip() for s in os.environ.get('SCANNER_STATIONS', '').split(',') if s.strip()]
    SCANNER_MAX_STATIONS = int(os.environ.get('SCANNER_MAX_STATIONS') or 20)
    SCANNER_STALE_SECONDS = 3600.0

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'checkin.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = _env_flag('DEBUG')
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        app.config.from_object(cls)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    DATABASE_PATH = BASE_DIR / 'database' / 'checkin_dev.db'

    # More verbose logging
    LOG_LEVEL = 'DEBUG'

    # MailHog default port
    MAIL_SERVER = 'localhost'
    MAIL_PORT = 1025
    MAIL_USE_TLS = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    DATABASE_PATH = ':memory:'

    # Disable email for testing
    NOTIFICATIONS_EMAIL_ENABLED = False

    # No pauses between decode cycles in tests
    SCAN_RESUME_DELAY_SECONDS = 0.0


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    DATABASE_PATH = BASE_DIR / 'database' / 'checkin_prod.db'

    LOG_LEVEL = 'WARNING'

    NOTIFICATIONS_EMAIL_ENABLED = True

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        import logging
        from logging.handlers import RotatingFileHandler

        # Setup file logging
        if not app.debug:
            Path(cls.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('Event check-in startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}

ATTENDANCE_MODES = ('toggle', 'checkin')


def get_config(config_name=None):
    """Get configuration class by name, falling back to the FLASK_ENV variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


def validate_config(settings):
    """
    Validate configuration settings.

    Args:
        settings (Mapping): Loaded configuration values (e.g. ``app.config``)

    Returns:
        list: Error messages, empty when the configuration is usable
    """
    errors = []

    if settings.get('ATTENDANCE_MODE') not in ATTENDANCE_MODES:
        errors.append(
            f"ATTENDANCE_MODE must be one of {', '.join(ATTENDANCE_MODES)}, "
            f"got {settings.get('ATTENDANCE_MODE')!r}"
        )

    for key in ('SCAN_DEBOUNCE_SECONDS', 'PARTICIPANT_SCAN_COOLDOWN_SECONDS',
                'SCAN_RESUME_DELAY_SECONDS', 'SCAN_SUCCESS_DISPLAY_SECONDS', 'SCANNER_STALE_SECONDS'):
        if float(settings.get(key, 0)) < 0:
            errors.append(f"{key} cannot be negative")

    if int(settings.get('SCANNER_MAX_STATIONS', 1)) < 1:
        errors.append("SCANNER_MAX_STATIONS must be at least 1")

    # Check email configuration if enabled
    if settings.get('NOTIFICATIONS_EMAIL_ENABLED'):
        if not settings.get('MAIL_SERVER'):
            errors.append("MAIL_SERVER is required when email notifications are enabled")
        if not settings.get('MAIL_DEFAULT_SENDER'):
            errors.append("MAIL_DEFAULT_SENDER is required when email notifications are enabled")

    return errors
