"""Configuration management for the voter registration service.

Provides:
- A small ``Config`` base class with dict / JSON round-tripping
- ``AppConfig``: every runtime setting, loaded from environment variables
- ``KnownValues``: the fixed reference data (regions, constituencies,
  identification types) used by validation, filters, and export
"""

from __future__ import annotations

import json
import os
from datetime import date
from pathlib import Path
from typing import Any


class Config:
    """Base configuration class for organizing application settings."""

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all public config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create config from dictionary, overriding defaults.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance with values from dictionary
        """
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


def _env_list(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    All env vars have defaults so the service starts without configuration;
    the remote store URL and key must be set for submissions to reach it.

    Environment variables:
        APP_STORAGE_PATH: SQLite file backing on-device storage
            (default: voter_registration.sqlite)
        APP_PORT / APP_HOST: API server bind (default: 8000 / 127.0.0.1)
        APP_LOG_FORMAT: "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        RATE_LIMIT_SUBMIT: Registration posts per minute per IP (default: 30)
        RATE_LIMIT_DOWNLOAD: Export requests per minute per IP (default: 10)
        RATE_LIMIT_DEFAULT: Other requests per minute per IP (default: 120)
        TRUSTED_PROXIES: Comma-separated proxy IPs trusted for X-Forwarded-For
        APP_STORE_URL / APP_STORE_KEY: Remote record store endpoint and key
        APP_STORE_TIMEOUT: Per-request timeout in seconds (default: 30)
        APP_SESSION_HOURS: Admin session validity window (default: 3)
        APP_DOB_MIN_YEAR / APP_DOB_MAX_YEAR: Accepted birth years
            (default: 1900 / current year - 18)
        APP_INITIAL_ADMIN_EMAILS: Emails seeded by ``add_initial_admins``
        SUBMIT_MAX_ATTEMPTS / SUBMIT_RETRY_DELAY: Insurance submit policy
        RECOVERY_*: Recovery monitor timings (seconds)
        VOTER_CACHE_TTL / ADMIN_CACHE_TTL: Repository cache lifetimes
        FETCH_PAGE_SIZE: Rows per page when bulk-fetching voters
    """

    def __init__(self) -> None:
        self.storage_path = Path(os.getenv("APP_STORAGE_PATH", "voter_registration.sqlite"))
        self.api_port = int(os.getenv("APP_PORT", "8000"))
        self.api_host = os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*" else _env_list("APP_CORS_ORIGINS")
        )
        self.rate_limit_submit = int(os.getenv("RATE_LIMIT_SUBMIT", "30"))
        self.rate_limit_download = int(os.getenv("RATE_LIMIT_DOWNLOAD", "10"))
        self.rate_limit_default = int(os.getenv("RATE_LIMIT_DEFAULT", "120"))
        self.trusted_proxies: set[str] = set(_env_list("TRUSTED_PROXIES"))

        self.store_url = os.getenv("APP_STORE_URL", "")
        self.store_key = os.getenv("APP_STORE_KEY", "")
        self.store_timeout = float(os.getenv("APP_STORE_TIMEOUT", "30"))

        self.session_hours = float(os.getenv("APP_SESSION_HOURS", "3"))
        self.dob_min_year = int(os.getenv("APP_DOB_MIN_YEAR", "1900"))
        self.dob_max_year = int(
            os.getenv("APP_DOB_MAX_YEAR", str(date.today().year - 18))
        )
        self.initial_admin_emails = _env_list("APP_INITIAL_ADMIN_EMAILS")

        self.submit_max_attempts = int(os.getenv("SUBMIT_MAX_ATTEMPTS", "3"))
        self.submit_retry_delay = float(os.getenv("SUBMIT_RETRY_DELAY", "1.0"))

        self.recovery_scan_interval = float(os.getenv("RECOVERY_SCAN_INTERVAL", "300"))
        self.recovery_idle_seconds = float(os.getenv("RECOVERY_IDLE_SECONDS", "60"))
        self.recovery_settle_seconds = float(os.getenv("RECOVERY_SETTLE_SECONDS", "2"))
        self.recovery_entry_delay = float(os.getenv("RECOVERY_ENTRY_DELAY", "0.3"))
        self.recovery_max_attempts = int(os.getenv("RECOVERY_MAX_ATTEMPTS", "3"))
        self.recovery_retry_delay = float(os.getenv("RECOVERY_RETRY_DELAY", "0.5"))

        self.voter_cache_ttl = float(os.getenv("VOTER_CACHE_TTL", "60"))
        self.admin_cache_ttl = float(os.getenv("ADMIN_CACHE_TTL", "300"))
        self.fetch_page_size = int(os.getenv("FETCH_PAGE_SIZE", "10000"))

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()


class KnownValues:
    """Container for the fixed reference data used in validation."""

    REGIONS: dict[str, list[str]] = {
        "Banjul": ["Banjul Central", "Banjul North", "Banjul South"],
        "Kanifing": [
            "Bakau", "Jeshwang", "Latrikunda Sabiji", "Serekunda",
            "Serrekunda West", "Talinding Kunjang", "Bundung ka Kunda",
        ],
        "West Coast": [
            "Old Yundum", "Busumbala", "Brikama South", "Brikama North",
            "Kombo East", "Kombo South", "Sanneh Mentereng", "Foni Jarrol",
            "Foni Bondali", "Foni Kansala", "Foni Berefet",
            "Foni Bintang Karanai",
        ],
        "North Bank": [
            "Lower Baddibu", "Lower Nuimi", "Jokadu", "Sabach Sanjal",
            "Central Badibu", "Upper Badibu", "Upper Nuimi",
        ],
        "Lower River": [
            "Jarra Central", "Jarra East", "Jarra West", "Kiang Central",
            "Kiang East", "Kiang West",
        ],
        "Central River": [
            "Fulladu West", "Janjanbureh", "Niani", "Nianija", "Sami",
            "Upper Saloum", "Lower Saloum", "Niamina West", "Niamina East",
            "Upper Fulladu", "Lower Fulladu", "Niamina Dankunkung",
        ],
        "Upper River": [
            "Basse", "Sandu", "Jimara", "Kantora", "Tumana", "Wuli East",
            "Wuli West",
        ],
    }

    GENDERS = ("male", "female")

    # Identification type value -> export label
    ID_TYPE_LABELS = {
        "birth_certificate": "Birth Certificate",
        "identification_document": "ID Document",
        "passport_number": "Passport",
    }

    @classmethod
    def constituencies_for(cls, region: str) -> list[str] | None:
        """Return the constituencies of *region*, or None if it is unknown."""
        return cls.REGIONS.get(region)

    @classmethod
    def is_valid_constituency(cls, region: str, constituency: str) -> bool:
        """Check that *constituency* belongs to *region*."""
        return constituency in cls.REGIONS.get(region, ())

    @classmethod
    def id_type_label(cls, id_type: str | None) -> str:
        """Human label for an identification type; unknown values pass through."""
        if not id_type:
            return ""
        return cls.ID_TYPE_LABELS.get(id_type, id_type)
