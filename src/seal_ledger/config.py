"""
Ledger configuration management.

This module handles loading and accessing configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for scripted deployments
    2. Config file (config/ledger.ini) - for per-office defaults
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The LedgerConfig
dataclass provides typed access to all settings.

Usage:
    from seal_ledger.config import config

    print(config.sync.document_name)
    print(config.sync.attachment_folder)

Environment Variable Mapping:
    SEAL_DOCUMENT_NAME       -> sync.document_name
    SEAL_ATTACHMENT_FOLDER   -> sync.attachment_folder
    SEAL_LOG_RETENTION       -> sync.log_retention
    SEAL_DEFAULT_PASSWORD    -> security.default_password
    SEAL_MIN_PASSWORD_LENGTH -> security.min_password_length
    SEAL_BACKUP_FOLDER       -> backup.attachment_folder
    SEAL_LOG_LEVEL           -> logging.level
    SEAL_LOG_FORMAT          -> logging.format
"""

import configparser
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "ledger.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "ledger.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class SyncSettings:
    """Shared-folder layout and log bounds."""

    document_name: str = "직인관리대장.json"
    attachment_folder: str = "다.직인관리대장 스캔"
    log_retention: int = 200


@dataclass
class SecuritySettings:
    """Access password gate for the session log viewer."""

    default_password: str = "2888"
    min_password_length: int = 4


@dataclass
class BackupSettings:
    """Full backup archive layout."""

    attachment_folder: str = "직인문서스캔본"
    metadata_name: str = "직인 관리 대장"
    archive_prefix: str = "직인관리대장_전체백업"


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class LedgerConfig:
    """
    Complete ledger configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    sync: SyncSettings = field(default_factory=SyncSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    backup: BackupSettings = field(default_factory=BackupSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _load_from_ini(parser: configparser.ConfigParser, cfg: LedgerConfig) -> None:
    """Load configuration from parsed INI file into LedgerConfig."""
    # Sync section
    if parser.has_section("sync"):
        if parser.has_option("sync", "document_name"):
            cfg.sync.document_name = parser.get("sync", "document_name").strip()
        if parser.has_option("sync", "attachment_folder"):
            cfg.sync.attachment_folder = parser.get("sync", "attachment_folder").strip()
        if parser.has_option("sync", "log_retention"):
            cfg.sync.log_retention = parser.getint("sync", "log_retention")

    # Security section
    if parser.has_section("security"):
        if parser.has_option("security", "default_password"):
            cfg.security.default_password = parser.get("security", "default_password")
        if parser.has_option("security", "min_password_length"):
            cfg.security.min_password_length = parser.getint("security", "min_password_length")

    # Backup section
    if parser.has_section("backup"):
        if parser.has_option("backup", "attachment_folder"):
            cfg.backup.attachment_folder = parser.get("backup", "attachment_folder").strip()
        if parser.has_option("backup", "metadata_name"):
            cfg.backup.metadata_name = parser.get("backup", "metadata_name").strip()
        if parser.has_option("backup", "archive_prefix"):
            cfg.backup.archive_prefix = parser.get("backup", "archive_prefix").strip()

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: LedgerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Sync settings
    if env_doc := os.getenv("SEAL_DOCUMENT_NAME"):
        cfg.sync.document_name = env_doc
    if env_folder := os.getenv("SEAL_ATTACHMENT_FOLDER"):
        cfg.sync.attachment_folder = env_folder
    if env_retention := os.getenv("SEAL_LOG_RETENTION"):
        cfg.sync.log_retention = int(env_retention)

    # Security settings
    if env_password := os.getenv("SEAL_DEFAULT_PASSWORD"):
        cfg.security.default_password = env_password
    if env_min_length := os.getenv("SEAL_MIN_PASSWORD_LENGTH"):
        cfg.security.min_password_length = int(env_min_length)

    # Backup settings
    if env_backup := os.getenv("SEAL_BACKUP_FOLDER"):
        cfg.backup.attachment_folder = env_backup

    # Logging settings
    if env_log := os.getenv("SEAL_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_format := os.getenv("SEAL_LOG_FORMAT"):
        if env_format.lower() in ("simple", "detailed", "json"):
            cfg.logging.format = env_format.lower()  # type: ignore[assignment]


def load_config() -> LedgerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/ledger.ini
        3. config/ledger.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        LedgerConfig: Fully populated configuration object.
    """
    cfg = LedgerConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# LOGGING SETUP
# =============================================================================

_LOG_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s",
}


class _JsonFormatter(logging.Formatter):
    """One JSON object per log line, for shipping to a collector."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Install a stderr handler on the ``seal_ledger`` logger.

    Called once by the CLI. Library callers that manage logging themselves
    should not call this.
    """
    settings = settings or config.logging
    handler = logging.StreamHandler(sys.stderr)
    if settings.format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_LOG_FORMATS[settings.format]))

    root = logging.getLogger("seal_ledger")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.level)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information,
    useful for the ``status`` CLI command.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "document_name": config.sync.document_name,
        "attachment_folder": config.sync.attachment_folder,
        "log_retention": config.sync.log_retention,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("SEAL LEDGER CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to ledger.ini to customise)")
    print("-" * 60)
    print(f"Document:    {status['document_name']}")
    print(f"Attachments: {status['attachment_folder']}")
    print(f"Log entries: {status['log_retention']} (most recent kept)")
    print(f"Log level:   {config.logging.level}")
    print("=" * 60 + "\n")
