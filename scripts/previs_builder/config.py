"""
Configuration management system for the previsbine builder.
Supports TOML and JSON configuration files with environment overrides and validation.
"""

import os
import json
from dataclasses import dataclass, field

# Handle tomllib import for different Python versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11 with tomli package
from typing import Dict, List, Optional, Any, Union
from pathlib import Path


ENV_PREFIX = "PREVIS_BUILDER_"

DEFAULT_CONFIG_FILES = [
    Path("previs_builder.toml"),
    Path("previs_builder.json"),
    Path("scripts/previs_builder.toml"),
    Path("scripts/previs_builder.json"),
]


@dataclass
class TimingConfig:
    """Delays and polling used around external tool invocations (seconds)."""
    # Lets the mod organizer's virtual file system catch up after a tool exits
    settle_delay: float = 5.0
    xedit_startup_delay: float = 5.0
    xedit_post_log_delay: float = 10.0
    log_poll_interval: float = 5.0
    # None waits forever for the xEdit log
    log_wait_timeout: Optional[float] = 1800.0
    extract_delay: float = 5.0
    terminate_timeout: float = 5.0

    def validate(self) -> List[str]:
        errors = []
        for name in ("settle_delay", "xedit_startup_delay", "xedit_post_log_delay",
                     "extract_delay", "terminate_timeout"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative")
        if self.log_poll_interval <= 0:
            errors.append("log_poll_interval must be positive")
        if self.log_wait_timeout is not None and self.log_wait_timeout <= 0:
            errors.append("log_wait_timeout must be positive (omit it to wait forever)")
        return errors


@dataclass
class BuilderConfig:
    """Main configuration class for the previsbine builder."""

    # Tool locations
    fo4edit_path: Optional[str] = None
    fallout4_path: Optional[str] = None
    bsarch_path: Optional[str] = None

    # Build settings
    mode: str = "clean"
    use_bsarch: bool = False
    keep_files: bool = False
    no_prompt: bool = False
    min_script_version: int = 10

    # Logs default to the system temp directory
    log_dir: Optional[str] = None

    timing: TimingConfig = field(default_factory=TimingConfig)

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "BuilderConfig":
        """Load configuration from TOML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() == '.toml':
            return cls._from_toml(config_path)
        elif config_path.suffix.lower() == '.json':
            return cls._from_json(config_path)
        else:
            raise ValueError(f"Unsupported configuration format: {config_path.suffix}")

    @classmethod
    def _from_toml(cls, config_path: Path) -> "BuilderConfig":
        """Load configuration from TOML file."""
        with open(config_path, 'rb') as f:
            data = tomllib.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_json(cls, config_path: Path) -> "BuilderConfig":
        """Load configuration from JSON file."""
        with open(config_path, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "BuilderConfig":
        """Create configuration from dictionary."""
        config_data = {}

        if 'paths' in data:
            paths = data['paths']
            config_data['fo4edit_path'] = paths.get('fo4edit')
            config_data['fallout4_path'] = paths.get('fallout4')
            config_data['bsarch_path'] = paths.get('bsarch')
            config_data['log_dir'] = paths.get('log_dir')

        if 'build' in data:
            build = data['build']
            config_data['mode'] = build.get('mode', 'clean')
            config_data['use_bsarch'] = build.get('use_bsarch', False)
            config_data['keep_files'] = build.get('keep_files', False)
            config_data['no_prompt'] = build.get('no_prompt', False)
            config_data['min_script_version'] = build.get('min_script_version', 10)

        if 'timing' in data:
            timing = data['timing']
            defaults = TimingConfig()
            config_data['timing'] = TimingConfig(
                settle_delay=timing.get('settle_delay', defaults.settle_delay),
                xedit_startup_delay=timing.get('xedit_startup_delay', defaults.xedit_startup_delay),
                xedit_post_log_delay=timing.get('xedit_post_log_delay', defaults.xedit_post_log_delay),
                log_poll_interval=timing.get('log_poll_interval', defaults.log_poll_interval),
                log_wait_timeout=timing.get('log_wait_timeout', defaults.log_wait_timeout),
                extract_delay=timing.get('extract_delay', defaults.extract_delay),
                terminate_timeout=timing.get('terminate_timeout', defaults.terminate_timeout),
            )

        return cls(**config_data)

    @classmethod
    def default(cls) -> "BuilderConfig":
        """Create default configuration with environment variable overrides."""
        config = cls()
        return cls._apply_env_overrides(config)

    @classmethod
    def _apply_env_overrides(cls, config: "BuilderConfig") -> "BuilderConfig":
        """Apply environment variable overrides to configuration."""

        # Tool locations
        if os.getenv('PREVIS_BUILDER_FO4EDIT_PATH'):
            config.fo4edit_path = os.getenv('PREVIS_BUILDER_FO4EDIT_PATH')

        if os.getenv('PREVIS_BUILDER_FALLOUT4_PATH'):
            config.fallout4_path = os.getenv('PREVIS_BUILDER_FALLOUT4_PATH')

        if os.getenv('PREVIS_BUILDER_BSARCH_PATH'):
            config.bsarch_path = os.getenv('PREVIS_BUILDER_BSARCH_PATH')

        if os.getenv('PREVIS_BUILDER_LOG_DIR'):
            config.log_dir = os.getenv('PREVIS_BUILDER_LOG_DIR')

        # Build settings
        if os.getenv('PREVIS_BUILDER_MODE'):
            config.mode = os.getenv('PREVIS_BUILDER_MODE', 'clean').lower()

        if os.getenv('PREVIS_BUILDER_USE_BSARCH'):
            config.use_bsarch = os.getenv('PREVIS_BUILDER_USE_BSARCH', 'false').lower() == 'true'

        if os.getenv('PREVIS_BUILDER_KEEP_FILES'):
            config.keep_files = os.getenv('PREVIS_BUILDER_KEEP_FILES', 'false').lower() == 'true'

        if os.getenv('PREVIS_BUILDER_NO_PROMPT'):
            config.no_prompt = os.getenv('PREVIS_BUILDER_NO_PROMPT', 'false').lower() == 'true'

        # Timing
        if os.getenv('PREVIS_BUILDER_SETTLE_DELAY'):
            config.timing.settle_delay = float(os.getenv('PREVIS_BUILDER_SETTLE_DELAY', '5'))

        if os.getenv('PREVIS_BUILDER_LOG_POLL_INTERVAL'):
            config.timing.log_poll_interval = float(os.getenv('PREVIS_BUILDER_LOG_POLL_INTERVAL', '5'))

        if os.getenv('PREVIS_BUILDER_LOG_WAIT_TIMEOUT'):
            value = os.getenv('PREVIS_BUILDER_LOG_WAIT_TIMEOUT', '1800')
            config.timing.log_wait_timeout = None if value.lower() in ('none', '0') else float(value)

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if self.mode.lower() not in ['clean', 'filtered', 'xbox']:
            errors.append("mode must be clean, filtered, or xbox")

        if self.min_script_version < 0:
            errors.append("min_script_version must not be negative")

        if self.bsarch_path and not Path(self.bsarch_path).suffix:
            errors.append("bsarch_path must point to the BSArch executable")

        errors.extend(self.timing.validate())

        return errors


def find_default_config() -> Optional[Path]:
    """Return the first default configuration file present in the working directory."""
    for config_path in DEFAULT_CONFIG_FILES:
        if config_path.exists():
            return config_path
    return None
