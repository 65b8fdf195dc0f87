import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


@dataclass
class Settings:
    DATABASE_URL: str = field(
        default_factory=lambda: _env("DATABASE_URL", "sqlite:///./portal.db")
    )
    # Shared secret the request handlers use to open client envelopes
    ENCRYPTION_KEY: str = field(default_factory=lambda: _env("ENCRYPTION_KEY"))
    ENCRYPTION_SALT: str = field(
        default_factory=lambda: _env("ENCRYPTION_SALT", "healthcare-portal.envelope.v1")
    )
    KDF_ITERATIONS: int = field(
        default_factory=lambda: int(_env("KDF_ITERATIONS", "100000"))
    )
    PLATFORM_URL: str = field(default_factory=lambda: _env("PLATFORM_URL"))
    PLATFORM_SERVICE_KEY: str = field(default_factory=lambda: _env("PLATFORM_SERVICE_KEY"))
    ENVIRONMENT: str = field(default_factory=lambda: _env("ENVIRONMENT", "development"))
    LOG_LEVEL: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    def __post_init__(self) -> None:
        if self.KDF_ITERATIONS < 1000:
            raise ValueError("KDF_ITERATIONS must be at least 1000")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


def get_settings(**overrides) -> Settings:
    """Build settings from the environment, with explicit overrides winning."""
    return Settings(**overrides)
