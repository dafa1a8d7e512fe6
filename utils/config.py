"""
Configuration management.
"""

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG", "false"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Storage
    store_path: str = field(default_factory=lambda: os.getenv("STORE_PATH", ""))
    store_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("STORE_TIMEOUT_SECONDS", "5.0"))
    )

    # Matching & negotiation
    fairness_tolerance: float = field(
        default_factory=lambda: float(os.getenv("FAIRNESS_TOLERANCE", "0.1"))
    )
    discovery_exclude_swiped: bool = field(
        default_factory=lambda: _env_bool("DISCOVERY_EXCLUDE_SWIPED", "true")
    )
    greeting_text: str = field(
        default_factory=lambda: os.getenv(
            "GREETING_TEXT", "Hi! I saw your like. Want to talk about a swap?"
        )
    )
    currency: str = field(default_factory=lambda: os.getenv("CURRENCY", "MDL"))

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.store_timeout_seconds <= 0:
            raise ValueError("store_timeout_seconds must be positive")
        if not 0 <= self.fairness_tolerance < 1:
            raise ValueError("fairness_tolerance must be between 0 and 1")

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "store_path": self.store_path,
            "store_timeout_seconds": self.store_timeout_seconds,
            "fairness_tolerance": self.fairness_tolerance,
            "discovery_exclude_swiped": self.discovery_exclude_swiped,
            "greeting_text": self.greeting_text,
            "currency": self.currency,
        }
