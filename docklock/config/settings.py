"""
Configuration Management for docklock
Centralizes all environment-based configuration and logging setup
"""

import os
import logging
from typing import Optional

from docklock.errors import ConfigurationError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class RegistryNoiseFilter(logging.Filter):
    """Drop aiohttp connection chatter below WARNING so debug logs stay readable"""
    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith('aiohttp') and record.levelno < logging.WARNING:
            return False
        return True


def setup_logging(level: str = 'INFO'):
    """Configure console logging on the root logger"""
    root_logger = logging.getLogger()

    # Close and clear any existing handlers so repeated CLI invocations
    # in one process (tests) don't duplicate output
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    # Console handler for stderr, stdout is reserved for command output
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler.addFilter(RegistryNoiseFilter())

    root_logger.addHandler(console_handler)


def default_docker_config_path() -> str:
    """Location of Docker's config.json, honoring DOCKER_CONFIG"""
    config_dir = os.getenv('DOCKER_CONFIG') or os.path.join(os.path.expanduser('~'), '.docker')
    return os.path.join(config_dir, 'config.json')


class Settings:
    """Environment configuration, read when the instance is created"""

    def __init__(self, config_file: Optional[str] = None):
        # Logging
        self.log_level = os.getenv('DOCKER_LOCK_LOG_LEVEL', 'INFO').upper()

        # Pipeline
        self.max_concurrency = _int_env('DOCKER_LOCK_MAX_CONCURRENCY', 8)
        self.registry_timeout = _int_env('DOCKER_LOCK_REGISTRY_TIMEOUT', 30)

        # Registry credentials
        self.docker_username = os.getenv('DOCKER_USERNAME', '')
        self.docker_password = os.getenv('DOCKER_PASSWORD', '')
        self.docker_config_file = config_file or default_docker_config_path()

    def validate(self):
        """Validate configuration"""
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level}")

        if self.max_concurrency < 1:
            raise ConfigurationError(f"Max concurrency must be at least 1: {self.max_concurrency}")

        if self.registry_timeout < 1:
            raise ConfigurationError(f"Registry timeout must be at least 1 second: {self.registry_timeout}")

        if bool(self.docker_username) != bool(self.docker_password):
            raise ConfigurationError("DOCKER_USERNAME and DOCKER_PASSWORD must be set together")

        return True


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'")
