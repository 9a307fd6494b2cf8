"""Application bootstrap: process-wide setup run once at startup."""

from .env_settings import get_env
from .log_config import setup_logging


def initialize_application():
    """Configure logging from the environment."""
    env = get_env()
    setup_logging(
        level=env.log_level,
        log_dir=env.log_dir,
        retention_days=env.log_retention_days,
    )
