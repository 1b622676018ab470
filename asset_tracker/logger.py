import logging
import os
from logging.handlers import RotatingFileHandler

LOGGER_NAME = 'asset_tracker'
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def get_logger(name=None):
    """Return the package logger or one of its children."""
    if not name or name == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if name.startswith(f'{LOGGER_NAME}.'):
        return logging.getLogger(name)
    return logging.getLogger(f'{LOGGER_NAME}.{name}')


def setup_logging(app):
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # create_app may run more than once per process (tests)
    logger.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    log_dir = app.config.get('LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, app.config.get('LOG_FILE', 'asset_tracker.log')),
            maxBytes=5_000_000,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
