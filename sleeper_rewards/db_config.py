# sleeper_rewards/db_config.py
"""Database configuration and credentials management"""
from dataclasses import dataclass
from urllib.parse import quote_plus, urlparse

from sleeper_rewards.config import Settings, settings


@dataclass
class DatabaseCredentials:
    """Database credentials container with validation"""
    host: str
    port: str
    name: str
    user: str
    password: str
    ssl_mode: str = 'prefer'

    def to_connection_string(self) -> str:
        """Generate database connection string with proper escaping"""
        return (
            f"postgresql://{quote_plus(self.user)}:{quote_plus(self.password)}@{self.host}:{self.port}/"
            f"{self.name}?sslmode={self.ssl_mode}"
        )

    @classmethod
    def from_settings(cls, config: Settings) -> 'DatabaseCredentials':
        """Create credentials from application settings"""
        return cls(
            host=config.DB_HOST,
            port=config.DB_PORT,
            name=config.DB_NAME,
            user=config.DB_USER,
            password=config.DB_PASSWORD or '',
            ssl_mode=config.DB_SSL_MODE
        )

    @staticmethod
    def validate_url(url: str) -> bool:
        """Check that a URL names a database backend we can talk to"""
        try:
            parsed = urlparse(url)
        except ValueError:
            return False

        scheme = parsed.scheme.split('+')[0]
        if scheme == 'sqlite':
            return True
        if scheme not in ('postgresql', 'postgres'):
            return False

        # Server backends need a host and a database name
        return bool(parsed.hostname) and bool(parsed.path.lstrip('/'))


class DatabaseManager:
    """Resolves the connection string for the current environment"""

    @classmethod
    def initialize_from_env(cls, config: Settings = settings) -> str:
        """
        Resolve the database connection string from settings.

        DATABASE_URL wins when present, otherwise the DB_* parts are assembled.

        Returns:
            Database connection string

        Raises:
            ValueError: If neither a valid DATABASE_URL nor DB_PASSWORD is configured
        """
        if config.DATABASE_URL:
            if not DatabaseCredentials.validate_url(config.DATABASE_URL):
                raise ValueError(f"Unsupported DATABASE_URL: {config.DATABASE_URL.split('@')[-1]}")
            return config.DATABASE_URL

        if not config.DB_PASSWORD:
            raise ValueError("DATABASE_URL or DB_PASSWORD setting is required")

        return DatabaseCredentials.from_settings(config).to_connection_string()
