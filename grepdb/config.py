"""Configuration loaded from the environment (and the .env file)."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy.engine import URL

from grepdb.exceptions import ConfigurationError

# Load environment variables from the .env file with override enabled
load_dotenv(override=True)

REQUIRED_VARS = ['DB_HOST', 'DB_USER', 'DB_PASSWORD', 'DB_NAME']

DEFAULT_PORT = 3306
DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class Settings:
    """Connection and run settings for a grepdb session."""

    db_host: str
    db_port: int
    db_user: str
    db_password: str
    db_name: str
    table_prefix: str = ''
    batch_size: int = DEFAULT_BATCH_SIZE
    backups_dir: Path = Path('backups')

    @property
    def database_url(self) -> URL:
        """SQLAlchemy URL for the PyMySQL driver."""
        return URL.create(
            "mysql+pymysql",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )


def validate_db_config():
    """Validate that all required database configuration is present."""
    missing_vars = []

    for var in REQUIRED_VARS:
        value = os.getenv(var)
        if not value or value.strip() == '':
            missing_vars.append(var)

    if missing_vars:
        return False, f"Missing required environment variables: {', '.join(missing_vars)}"

    return True, None


def _int_setting(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_settings() -> Settings:
    """Build Settings from the environment, raising ConfigurationError when incomplete."""
    config_valid, config_error = validate_db_config()
    if not config_valid:
        raise ConfigurationError(config_error)

    return Settings(
        db_host=os.getenv('DB_HOST'),
        db_port=_int_setting('DB_PORT', DEFAULT_PORT),
        db_user=os.getenv('DB_USER'),
        db_password=os.getenv('DB_PASSWORD'),
        db_name=os.getenv('DB_NAME'),
        table_prefix=os.getenv('TABLE_PREFIX', ''),
        batch_size=_int_setting('GREPDB_BATCH_SIZE', DEFAULT_BATCH_SIZE),
        backups_dir=Path(os.getenv('BACKUPS_DIR', 'backups')),
    )
