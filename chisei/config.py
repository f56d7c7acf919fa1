"""
config.py
~~~~~~~~~

Environment-driven configuration and logging setup.

Variables:
- CHISEI_LOG_LEVEL: logging level name (default INFO)
- CHISEI_ENV: set to 'production' to quiet third-party loggers
- CHISEI_KERNEL: dot-product kernel, 'auto', 'scalar' or 'vectorized'
- CHISEI_MODEL_DIR: directory holding the model registry database
- PORT: HTTP port for the API server
"""

import os
import logging

DEFAULT_MODEL_DIR = 'models'
DEFAULT_PORT = 8000


def get_log_level() -> int:
    log_level_str = os.getenv('CHISEI_LOG_LEVEL', 'INFO').upper()
    return getattr(logging, log_level_str, logging.INFO)


def is_production() -> bool:
    return os.getenv('CHISEI_ENV') == 'production'


def get_kernel_name() -> str:
    return os.getenv('CHISEI_KERNEL', 'auto').lower()


def get_model_dir() -> str:
    return os.getenv('CHISEI_MODEL_DIR', DEFAULT_MODEL_DIR)


def get_port() -> int:
    return int(os.getenv('PORT', DEFAULT_PORT))


def get_host() -> str:
    """Bind address; all interfaces only in production."""
    default = '0.0.0.0' if is_production() else '127.0.0.1'
    return os.getenv('CHISEI_HOST', default)


def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging

    Only entry points (the API server and scripts) call this; importing
    the package never touches logging configuration.
    """
    logging.basicConfig(
        level=get_log_level(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production():
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        # Keep our logs at INFO level for visibility in production
        logging.getLogger('chisei').setLevel(logging.INFO)
