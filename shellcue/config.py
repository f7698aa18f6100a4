# shellcue/config.py
"""
Configuration management for shellcue.
Uses TOML format for configuration files.
"""
import os
import sys
from typing import Dict, List

# Reader (tomllib for >= 3.11, tomli for < 3.11)
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w
from pydantic import BaseModel, Field, ValidationError
from dotenv import load_dotenv

from shellcue.constants import (
    CONFIG_FILE, DATABASE_FILE,
    DEFAULT_HISTORY_SIZE, DEFAULT_MAX_COMMANDS, DEFAULT_MAX_ARGUMENTS_PER_COMMAND,
    DEFAULT_DECAY_DAYS, AUTO_SAVE_INTERVAL, FLUSH_AFTER_COMMANDS, MAX_HISTORY_ROWS,
    HISTORY_RETENTION_DAYS, BUSY_TIMEOUT_MS, MAX_WRITE_RETRIES,
    DEFAULT_VALUE_FLAGS, DEFAULT_SCOPED_VALUE_FLAGS, MULTI_PART_COMMANDS,
    NAVIGATION_VERBS, DIRECTORY_BLOCKLIST, DIRECTORY_MAX_DEPTH,
)
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)


# --- Configuration Models ---

class LearningConfig(BaseModel):
    """Usage graph and history settings."""
    enabled: bool = Field(True, description="Learn from executed commands")
    history_size: int = Field(DEFAULT_HISTORY_SIZE, ge=1, description="In-memory command history size")
    max_commands: int = Field(DEFAULT_MAX_COMMANDS, ge=1, description="Maximum number of commands tracked")
    max_arguments_per_command: int = Field(
        DEFAULT_MAX_ARGUMENTS_PER_COMMAND, ge=1, description="Maximum arguments tracked per command"
    )
    decay_days: float = Field(DEFAULT_DECAY_DAYS, gt=0, description="Recency decay constant in days")
    value_flags: List[str] = Field(
        default_factory=lambda: list(DEFAULT_VALUE_FLAGS),
        description="Flags that take a following value",
    )
    scoped_value_flags: Dict[str, List[str]] = Field(
        default_factory=lambda: {command: list(flags) for command, flags in DEFAULT_SCOPED_VALUE_FLAGS.items()},
        description="Flags that take a value for one verb or \"verb subcommand\" only",
    )
    multi_part_commands: List[str] = Field(
        default_factory=lambda: list(MULTI_PART_COMMANDS),
        description="Commands whose first positional argument is a subcommand",
    )


class SequenceConfig(BaseModel):
    """N-gram next-command model settings."""
    ngram_order: int = Field(2, ge=2, le=3, description="2 for bigrams, 3 for trigrams")
    min_frequency: int = Field(3, ge=1, description="Minimum occurrences before a transition is predicted")


class WorkflowConfig(BaseModel):
    """Timed workflow learner settings."""
    min_frequency: int = Field(5, ge=1, description="Minimum transitions before a workflow step is predicted")
    max_time_delta_minutes: float = Field(15.0, gt=0, description="Largest gap between two related commands")
    min_confidence: float = Field(0.6, ge=0.0, le=1.0, description="Minimum confidence to suggest a step")
    max_steps: int = Field(5, ge=2, description="Maximum steps in a learned workflow")
    min_occurrences: int = Field(2, ge=1, description="Occurrences before a workflow is used for continuation")


class PredictionConfig(BaseModel):
    """Suggestion ranking settings."""
    max_results: int = Field(10, ge=1, description="Default number of suggestions")
    context_window: int = Field(5, ge=1, description="Commands considered for context")


class DirectoryConfig(BaseModel):
    """Smart directory jump settings."""
    navigation_verbs: List[str] = Field(
        default_factory=lambda: list(NAVIGATION_VERBS),
        description="Commands whose argument is a target directory",
    )
    blocklist: List[str] = Field(
        default_factory=lambda: list(DIRECTORY_BLOCKLIST),
        description="Directory names hidden unless typed explicitly",
    )
    case_sensitive: bool = Field(True, description="Case-sensitive directory name matching")
    max_depth: int = Field(DIRECTORY_MAX_DEPTH, ge=1, description="Directory levels searched below the current directory")
    max_results: int = Field(20, ge=1, description="Default number of directory suggestions")


class PersistenceConfig(BaseModel):
    """Learned data storage settings."""
    enabled: bool = Field(True, description="Persist learned data between sessions")
    database_path: str = Field(str(DATABASE_FILE), description="SQLite database file")
    auto_save_interval: float = Field(AUTO_SAVE_INTERVAL, gt=0, description="Seconds between background flushes")
    flush_after_commands: int = Field(FLUSH_AFTER_COMMANDS, ge=1, description="Flush early after this many commands")
    max_history_rows: int = Field(MAX_HISTORY_ROWS, ge=1, description="History rows kept in storage")
    history_retention_days: int = Field(HISTORY_RETENTION_DAYS, ge=1, description="Age limit for stored history")
    busy_timeout_ms: int = Field(BUSY_TIMEOUT_MS, ge=0, description="SQLite busy timeout")
    max_write_retries: int = Field(MAX_WRITE_RETRIES, ge=1, description="Attempts per flush before deferring")


class AppConfig(BaseModel):
    """Application configuration settings."""
    learning: LearningConfig = Field(default_factory=LearningConfig, description="Learning configuration")
    sequences: SequenceConfig = Field(default_factory=SequenceConfig, description="Sequence model configuration")
    workflows: WorkflowConfig = Field(default_factory=WorkflowConfig, description="Workflow configuration")
    prediction: PredictionConfig = Field(default_factory=PredictionConfig, description="Prediction configuration")
    directories: DirectoryConfig = Field(default_factory=DirectoryConfig, description="Directory jump configuration")
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig, description="Persistence configuration")
    debug: bool = Field(False, description="Enable debug mode")


# Environment variable -> (section, field)
_ENV_OVERRIDES = {
    "SHELLCUE_HISTORY_SIZE": ("learning", "history_size"),
    "SHELLCUE_MAX_COMMANDS": ("learning", "max_commands"),
    "SHELLCUE_MAX_ARGS_PER_CMD": ("learning", "max_arguments_per_command"),
    "SHELLCUE_DECAY_DAYS": ("learning", "decay_days"),
    "SHELLCUE_DB_PATH": ("persistence", "database_path"),
    "SHELLCUE_AUTO_SAVE_INTERVAL": ("persistence", "auto_save_interval"),
}

_TRUE_VALUES = ("1", "true", "yes", "on")


# --- Configuration Manager ---

class ConfigManager:
    """Manages the shellcue configuration using TOML and environment overrides."""

    def __init__(self, config_file=CONFIG_FILE):
        self._config: AppConfig = AppConfig()
        self._config_file = config_file
        self._load_environment()

    def _load_environment(self) -> None:
        """Apply overrides from the environment and a .env file."""
        load_dotenv()

        debug = os.getenv("SHELLCUE_DEBUG")
        if debug is not None:
            self._config.debug = debug.strip().lower() in _TRUE_VALUES

        disable_learning = os.getenv("SHELLCUE_DISABLE_LEARNING")
        if disable_learning is not None:
            self._config.learning.enabled = disable_learning.strip().lower() not in _TRUE_VALUES

        for env_name, (section, field) in _ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or not raw.strip():
                continue
            current = getattr(self._config, section)
            data = current.model_dump()
            data[field] = raw.strip()
            try:
                setattr(self._config, section, type(current)(**data))
            except ValidationError as e:
                logger.warning(f"Ignoring invalid value for {env_name}: {raw!r} ({e.error_count()} error(s))")

    def load_config(self) -> None:
        """Loads configuration from the TOML config file."""
        if not self._config_file.exists():
            logger.debug(f"Configuration file not found at '{self._config_file}'. Using defaults.")
            return

        try:
            logger.debug(f"Loading configuration from: {self._config_file}")
            with open(self._config_file, "rb") as f:  # TOML requires binary read mode
                config_data = tomllib.load(f)
            self._config = AppConfig(**config_data)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML configuration file ({self._config_file}): {e}")
            self._config = AppConfig()
        except ValidationError as e:
            logger.error(f"Invalid configuration in {self._config_file}: {e}")
            self._config = AppConfig()
        except OSError as e:
            logger.error(f"I/O error accessing configuration file: {e}")
            self._config = AppConfig()

        # Environment always wins over the file
        self._load_environment()

    def save_config(self) -> None:
        """Saves the current configuration to the config file (as TOML)."""
        try:
            self._config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self._config_file, "wb") as f:
                tomli_w.dump(self._config.model_dump(), f)
            logger.info(f"Configuration saved to {self._config_file}")
        except OSError as e:
            logger.error(f"Error saving TOML configuration to {self._config_file}: {e}")

    @property
    def config(self) -> AppConfig:
        """Provides access to the current application configuration."""
        return self._config

    @property
    def config_file(self):
        return self._config_file

    @property
    def config_dir(self):
        return self._config_file.parent


# --- Global Instance ---

config_manager = ConfigManager()
config_manager.load_config()
