"""Configuration management."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env file from current working directory
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    database_path: Path = Path("./bookmarks.db")
    enrichment_enabled: bool = True
    batch_size: int = 50
    concurrency: int = 5
    freshness_days: int = 30
    rate_limit_ms: int = 100
    probe_timeout_seconds: float = 5
    fetch_timeout_seconds: float = 5
    max_content_length: int = 1_000_000
    user_agent: str = "BookmarkEnricher/1.0"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file.

        Environment variables take precedence over YAML values:
        - BOOKMARKS_DATABASE_PATH: Path to SQLite database file
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        database_path = os.environ.get("BOOKMARKS_DATABASE_PATH") or data.get(
            "database_path", "./bookmarks.db"
        )

        config = cls(
            database_path=Path(database_path).expanduser(),
            enrichment_enabled=data.get("enrichment_enabled", True),
            batch_size=data.get("batch_size", 50),
            concurrency=data.get("concurrency", 5),
            freshness_days=data.get("freshness_days", 30),
            rate_limit_ms=data.get("rate_limit_ms", 100),
            probe_timeout_seconds=data.get("probe_timeout_seconds", 5),
            fetch_timeout_seconds=data.get("fetch_timeout_seconds", 5),
            max_content_length=data.get("max_content_length", 1_000_000),
            user_agent=data.get("user_agent", "BookmarkEnricher/1.0"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if not 1 <= self.concurrency <= 20:
            raise ValueError(f"concurrency must be between 1 and 20, got {self.concurrency}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.freshness_days < 0:
            raise ValueError(f"freshness_days must not be negative, got {self.freshness_days}")
        if self.rate_limit_ms < 0:
            raise ValueError(f"rate_limit_ms must not be negative, got {self.rate_limit_ms}")
        if self.probe_timeout_seconds <= 0 or self.fetch_timeout_seconds <= 0:
            raise ValueError("timeouts must be positive")
        if self.max_content_length < 1:
            raise ValueError(f"max_content_length must be positive, got {self.max_content_length}")
