"""
Configuration management for the Barrim registry.

Configuration comes from dataclass defaults, an optional JSON file named by
``BARRIM_CONFIG_FILE`` and ``BARRIM_*`` environment variables, in increasing
order of precedence.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_DATABASE_URL = "sqlite:///./barrim_registry.db"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


@dataclass
class DatabaseConfig:
    """Database configuration."""

    url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    log_queries: bool = False  # Enable query timing logs


@dataclass
class LedgerConfig:
    """Referral ledger policy."""

    points_per_referral: int = 1
    allow_overdraft: bool = False
    referral_code_length: int = 8
    referral_code_max_attempts: int = 5
    max_update_attempts: int = 3  # Version-conflict retries for ledger updates


@dataclass
class AppConfig:
    """Application-level settings."""

    app_name: str = "Barrim Registry"
    version: str = "0.1.0"

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"
    debug: bool = False


@dataclass
class RegistryConfig:
    """Complete configuration for the registry."""

    app: AppConfig = field(default_factory=AppConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "app": asdict(self.app),
            "database": asdict(self.database),
            "ledger": asdict(self.ledger),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryConfig":
        return cls(
            app=AppConfig(**data.get("app", {})),
            database=DatabaseConfig(**data.get("database", {})),
            ledger=LedgerConfig(**data.get("ledger", {})),
        )


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self):
        self.config_file: Optional[Path] = None
        self.config: Optional[RegistryConfig] = None

    def get_config_file_path(self) -> Optional[Path]:
        raw = os.getenv("BARRIM_CONFIG_FILE")
        return Path(raw) if raw else None

    def apply_environment(self, config: RegistryConfig) -> RegistryConfig:
        """Override configuration values from BARRIM_* environment variables."""
        config.database.url = os.getenv("BARRIM_DATABASE_URL") or config.database.url
        config.database.echo = _env_bool("BARRIM_SQL_ECHO", config.database.echo)
        config.database.log_queries = _env_bool(
            "BARRIM_LOG_QUERIES", config.database.log_queries
        )

        config.ledger.points_per_referral = _env_int(
            "BARRIM_POINTS_PER_REFERRAL", config.ledger.points_per_referral
        )
        config.ledger.allow_overdraft = _env_bool(
            "BARRIM_ALLOW_OVERDRAFT", config.ledger.allow_overdraft
        )
        config.ledger.referral_code_length = _env_int(
            "BARRIM_REFERRAL_CODE_LENGTH", config.ledger.referral_code_length
        )
        config.ledger.referral_code_max_attempts = _env_int(
            "BARRIM_REFERRAL_CODE_ATTEMPTS", config.ledger.referral_code_max_attempts
        )

        config.app.debug = _env_bool("BARRIM_DEBUG", config.app.debug)
        config.app.log_level = (
            os.getenv("BARRIM_LOG_LEVEL")
            or ("DEBUG" if config.app.debug else config.app.log_level)
        ).upper()
        config.app.log_to_file = _env_bool("BARRIM_LOG_TO_FILE", config.app.log_to_file)
        config.app.log_dir = os.getenv("BARRIM_LOG_DIR") or config.app.log_dir
        return config

    def load_config(self, reload: bool = False) -> RegistryConfig:
        """Load configuration from file and environment, caching the result."""
        if self.config is not None and not reload:
            return self.config

        self.config_file = self.get_config_file_path()
        config = RegistryConfig()

        if self.config_file is not None:
            if self.config_file.exists():
                try:
                    with open(self.config_file, "r", encoding="utf-8") as f:
                        config = RegistryConfig.from_dict(json.load(f))
                    logging.info(f"Loaded configuration from {self.config_file}")
                except (OSError, ValueError, TypeError) as e:
                    logging.warning(f"Failed to load config from {self.config_file}: {e}")
                    logging.info("Using default configuration")
                    config = RegistryConfig()
            else:
                logging.warning(f"Config file {self.config_file} not found, using defaults")

        self.config = self.apply_environment(config)
        return self.config

    def save_config(self, config: Optional[RegistryConfig] = None) -> bool:
        """Save configuration to the configured file."""
        config = config or self.config
        if config is None:
            logging.error("No configuration to save")
            return False

        target = self.config_file or self.get_config_file_path()
        if target is None:
            logging.error("BARRIM_CONFIG_FILE is not set, nowhere to save configuration")
            return False

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)
            logging.info(f"Saved configuration to {target}")
            return True
        except OSError as e:
            logging.error(f"Failed to save config to {target}: {e}")
            return False

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of warnings/errors."""
        config = self.load_config()
        issues = []

        if config.ledger.points_per_referral < 0:
            issues.append("ledger.points_per_referral must not be negative")
        if config.ledger.referral_code_length < 4:
            issues.append("ledger.referral_code_length must be at least 4")
        if config.ledger.referral_code_max_attempts < 1:
            issues.append("ledger.referral_code_max_attempts must be at least 1")
        if config.ledger.max_update_attempts < 1:
            issues.append("ledger.max_update_attempts must be at least 1")
        if config.app.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            issues.append(f"Unknown log level: {config.app.log_level}")

        db_url = config.database.url
        if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
            db_dir = Path(db_url.replace("sqlite:///", "")).parent
            if db_dir.exists() and not os.access(db_dir, os.W_OK):
                issues.append(f"Database directory is not writable: {db_dir}")

        return issues


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> RegistryConfig:
    """Get the current configuration."""
    return config_manager.load_config()


def reload_config() -> RegistryConfig:
    """Re-read configuration, e.g. after environment changes in tests."""
    return config_manager.load_config(reload=True)


def get_database_url() -> str:
    return get_config().database.url
