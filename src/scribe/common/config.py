"""
Configuration loading for Scribe.

Reads configuration from:
- $SCRIBE_HOME/config.yaml (defaults to ~/.scribe/config.yaml)
- Built-in defaults for any missing value

Resolution order used by the CLI: command line option > config file > default.

The file is read under a shared lock (fcntl on Linux/macOS, skipped on
Windows).
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from scribe.core.errors import ConfigError
from scribe.core.pipeline import PipelineSettings
from scribe.core.types import TARGET_SAMPLE_RATE

logger = logging.getLogger(__name__)

# File locking support (Linux/Unix only)
fcntl = None  # type: ignore[assignment]
try:
    import fcntl as _fcntl

    fcntl = _fcntl
except ImportError:
    pass

CONFIG_FILENAME = "config.yaml"
DEFAULT_MODEL = "large-v3-turbo"
DEFAULT_LANGUAGE = "auto"


def get_scribe_home() -> Path:
    """
    Base directory for Scribe data.

    Respects the SCRIBE_HOME environment variable, defaults to ~/.scribe.
    """
    env = os.environ.get("SCRIBE_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".scribe"


def get_default_config() -> dict[str, Any]:
    """Get default configuration."""
    return {
        "transcription": {
            "model": DEFAULT_MODEL,
            "language": DEFAULT_LANGUAGE,
            "device": "auto",
            "compute_type": "default",
        },
        "recording": {
            "dir": None,  # None = <home>/recordings
            "no_mic": False,
            "no_system": False,
            "chunk_size": 1024,
            "microphone_device_index": None,
            "system_output_id": None,
        },
        "audio": {
            "resample_method": "polyphase",
            "silence_window": 1600,  # 100 ms at 16 kHz
            "silence_threshold": 0.01,
            "silence_padding_windows": 1,
            "trim_silence": True,
            "normalize": False,
            "normalize_peak": 0.9,
        },
        "logging": {
            "file": None,
        },
    }


class ScribeConfig:
    """Configuration manager."""

    def __init__(self, config_path: Path | None = None):
        """
        Initialize configuration.

        Args:
            config_path: Optional path to config file
        """
        self.config_path = config_path or get_scribe_home() / CONFIG_FILENAME
        self.config = get_default_config()
        self._file_config: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        """Load configuration from file with shared lock for thread/process safety."""
        if not self.config_path.exists():
            logger.debug(f"No config file at {self.config_path}, using defaults")
            return

        logger.debug(f"Loading config from {self.config_path}")
        try:
            with open(self.config_path, encoding="utf-8") as f:
                # Acquire shared lock for reading (Linux only)
                if fcntl is not None:
                    fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    loaded = yaml.safe_load(f) or {}
                finally:
                    if fcntl is not None:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {self.config_path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping at the top level")

        self._file_config = copy.deepcopy(loaded)
        self._deep_merge(self.config, loaded)

    def _deep_merge(self, base: dict, override: dict) -> None:
        """Deep merge override into base dict."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value by path.

        Raises:
            TypeError: If any key is not a string (catches cfg.get("key", {}) early)
        """
        for i, key in enumerate(keys):
            if not isinstance(key, str):
                raise TypeError(
                    f"All configuration keys must be strings, got {type(key).__name__} "
                    f"for keys[{i}]: {repr(key)}. "
                    f"If you want to provide a default value, use the 'default=' keyword argument"
                )

        value: Any = self.config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    def origin(self, *keys: str) -> str:
        """'config' if the value came from the config file, else 'default'."""
        value: Any = self._file_config
        for key in keys:
            if not isinstance(value, dict) or value.get(key) is None:
                return "default"
            value = value[key]
        return "config"

    @property
    def home(self) -> Path:
        return get_scribe_home()

    @property
    def models_dir(self) -> Path:
        """Directory where whisper models are stored."""
        return self.home / "models"

    @property
    def recordings_dir(self) -> Path:
        """Directory where recordings are stored. Can be overridden by config."""
        configured = self.get("recording", "dir")
        if configured:
            return Path(str(configured)).expanduser()
        return self.home / "recordings"

    def ensure_directories(self) -> None:
        """Create home, models, and recordings directories if they don't exist."""
        for directory in (self.home, self.models_dir, self.recordings_dir):
            if not directory.exists():
                logger.debug(f"Creating directory: {directory}")
                directory.mkdir(parents=True, exist_ok=True)

    def pipeline_settings(self) -> PipelineSettings:
        """
        Conditioning parameters from the ``audio`` section.

        Raises:
            ConfigError: If ``audio.target_sample_rate`` asks for anything but
                16 kHz (the output format is fixed)
        """
        rate = self.get("audio", "target_sample_rate")
        if rate is not None and rate != TARGET_SAMPLE_RATE:
            raise ConfigError(
                f"audio.target_sample_rate must be {TARGET_SAMPLE_RATE} "
                f"(recordings are always 16 kHz mono), got {rate!r}"
            )

        defaults = PipelineSettings()
        return PipelineSettings(
            resample_method=str(self.get("audio", "resample_method", default=defaults.resample_method)),
            silence_window=int(self.get("audio", "silence_window", default=defaults.silence_window)),
            silence_threshold=float(self.get("audio", "silence_threshold", default=defaults.silence_threshold)),
            silence_padding_windows=int(
                self.get("audio", "silence_padding_windows", default=defaults.silence_padding_windows)
            ),
            trim_silence=bool(self.get("audio", "trim_silence", default=defaults.trim_silence)),
            normalize=bool(self.get("audio", "normalize", default=defaults.normalize)),
            normalize_peak=float(self.get("audio", "normalize_peak", default=defaults.normalize_peak)),
        )
