"""Configuration management for build artifact reclamation."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .models import ProcessSignature, TargetPath

# Output directories of the packaging pipeline, relative to the project root
DEFAULT_OUTPUT_DIRS: tuple[str, ...] = ("release", "dist-electron", "dist")

# Caches and scratch directories left behind by the bundler
DEFAULT_CACHE_DIRS: tuple[str, ...] = ("node_modules/.cache", "temp-build", ".tmp")

# Runtime scratch directories outside the project, POSIX only
POSIX_TEMP_PATTERNS: tuple[str, ...] = ("/tmp/electron-*",)

PROFILE_PROCESSES: dict[str, tuple[str, ...]] = {
    "windows": ("Koala Desktop.exe", "electron.exe", "app-builder.exe"),
    "posix": ("koala-desktop", "electron", "app-builder"),
}

# Handle release on Windows is slower than on POSIX
PROFILE_QUIESCENCE: dict[str, float] = {
    "windows": 2.0,
    "posix": 1.0,
}

PLATFORM_ALIASES: dict[str, str] = {
    "windows": "windows",
    "win32": "windows",
    "win": "windows",
    "posix": "posix",
    "linux": "posix",
    "darwin": "posix",
    "macos": "posix",
    "mac": "posix",
}

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def parse_bool(value: Any, default: bool) -> bool:
    """Parse a YAML or string boolean, falling back to default for None."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    return str(value).strip().lower() in {"true", "yes", "on", "1"}


def normalize_platform(name: str | None = None) -> str:
    """Map a platform name (or sys.platform) to a profile name.

    Raises:
        ValueError: If the name is not a known profile or alias.

    """
    if name is None:
        name = sys.platform
    key = name.strip().lower()
    if key in PLATFORM_ALIASES:
        return PLATFORM_ALIASES[key]
    if key.startswith("win"):
        return "windows"
    if name == sys.platform:
        return "posix"
    raise ValueError(f"Unknown platform profile: {name}")


@dataclass
class ReclaimConfig:
    """Configuration for a reclamation session."""

    # Base for relative target paths
    project_root: Path = field(default_factory=Path.cwd)

    # Platform profile name ("windows" or "posix")
    platform: str = field(default_factory=normalize_platform)

    # Paths to remove; may contain glob patterns
    targets: list[TargetPath] = field(default_factory=list)

    # Processes stopped before removal
    process_signatures: list[ProcessSignature] = field(default_factory=list)

    # Delay after termination requests (seconds)
    quiescence_wait: float = 2.0

    # Reclaim targets concurrently
    parallel: bool = False

    # Background removal settings
    deferred_delay: float = 5.0
    deferred_retries: int = 3
    deferred_retry_interval: float = 2.0

    # Timeout for platform commands (seconds)
    command_timeout: float = 60.0

    # Variables passed explicitly to platform commands
    command_env: dict[str, str] = field(default_factory=dict)

    # Logging
    log_file: Path | None = None
    log_level: str = "INFO"

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the default configuration file path."""
        return Path.home() / ".config/build-reclaim/config.yaml"

    @classmethod
    def for_platform(cls, platform: str | None = None, project_root: Path | None = None) -> ReclaimConfig:
        """Build the default configuration for a platform profile.

        Args:
            platform: Profile name or alias. Uses sys.platform if None.
            project_root: Project root. Uses the current directory if None.

        Returns:
            Configuration with the profile's targets and processes.

        """
        profile = normalize_platform(platform)
        root = (project_root or Path.cwd()).expanduser().absolute()

        entries = list(DEFAULT_OUTPUT_DIRS) + list(DEFAULT_CACHE_DIRS)
        if profile == "posix":
            entries.extend(POSIX_TEMP_PATTERNS)

        return cls(
            project_root=root,
            platform=profile,
            targets=[cls._target_from_entry(entry, root) for entry in entries],
            process_signatures=[ProcessSignature(name) for name in PROFILE_PROCESSES[profile]],
            quiescence_wait=PROFILE_QUIESCENCE[profile],
        )

    @classmethod
    def load(cls, config_path: Path | None = None) -> ReclaimConfig:
        """Load configuration from YAML file.

        Args:
            config_path: Path to config file. Uses default if None.

        Returns:
            Loaded configuration.

        Raises:
            ValueError: If the file is not valid YAML or holds invalid values.

        """
        if config_path is None:
            config_path = cls.get_config_path()

        if not config_path.exists():
            return cls.for_platform()

        try:
            with config_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Invalid config in {config_path}: expected a mapping")

        config = cls._from_dict(data, base_dir=config_path.parent)
        config.validate()
        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> ReclaimConfig:
        """Create config from dictionary."""
        base_dir = base_dir or Path.cwd()

        project_root = base_dir
        if "project_root" in data:
            project_root = base_dir / Path(os.path.expanduser(str(data["project_root"])))

        config = cls.for_platform(data.get("platform"), project_root)

        if "targets" in data:
            config.targets = [
                cls._target_from_entry(entry, config.project_root) for entry in data["targets"] or []
            ]
        if "processes" in data:
            config.process_signatures = [ProcessSignature(str(name)) for name in data["processes"] or []]

        # Simple fields
        if "quiescence_wait" in data:
            config.quiescence_wait = float(data["quiescence_wait"])
        if "parallel" in data:
            config.parallel = parse_bool(data["parallel"], config.parallel)
        if "command_timeout" in data:
            config.command_timeout = float(data["command_timeout"])
        if "command_env" in data:
            config.command_env = {str(k): str(v) for k, v in (data["command_env"] or {}).items()}

        # Deferred removal
        if "deferred" in data:
            deferred = data["deferred"] or {}
            if "delay" in deferred:
                config.deferred_delay = float(deferred["delay"])
            if "retries" in deferred:
                config.deferred_retries = int(deferred["retries"])
            if "interval" in deferred:
                config.deferred_retry_interval = float(deferred["interval"])

        # Logging
        if "logging" in data:
            logging_cfg = data["logging"] or {}
            if logging_cfg.get("file"):
                config.log_file = Path(os.path.expanduser(logging_cfg["file"]))
            if "level" in logging_cfg:
                config.log_level = str(logging_cfg["level"]).upper()

        return config

    @staticmethod
    def _target_from_entry(entry: str | dict[str, Any], root: Path) -> TargetPath:
        """Build a target from a config entry, resolving it against root."""
        if isinstance(entry, str):
            return TargetPath(path=root / os.path.expanduser(entry), label=entry)

        if "path" not in entry:
            raise ValueError(f"Target entry without a path: {entry!r}")
        raw = str(entry["path"])
        return TargetPath(
            path=root / os.path.expanduser(raw),
            label=str(entry.get("label") or raw),
            holders=frozenset(str(name) for name in entry.get("holders") or []),
        )

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValueError: If a setting is out of range.

        """
        if self.quiescence_wait < 0:
            raise ValueError("quiescence_wait must not be negative")
        if self.deferred_delay < 0:
            raise ValueError("deferred delay must not be negative")
        if self.deferred_retries < 1:
            raise ValueError("deferred retries must be positive")
        if self.deferred_retry_interval < 0:
            raise ValueError("deferred interval must not be negative")
        if self.command_timeout <= 0:
            raise ValueError("command_timeout must be positive")
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to YAML file.

        Args:
            config_path: Path to save config. Uses default if None.

        """
        if config_path is None:
            config_path = self.get_config_path()

        # Ensure directory exists
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "project_root": str(self.project_root),
            "platform": self.platform,
            "targets": [self._target_to_entry(target) for target in self.targets],
            "processes": [signature.name for signature in self.process_signatures],
            "quiescence_wait": self.quiescence_wait,
            "parallel": self.parallel,
            "command_timeout": self.command_timeout,
            "command_env": dict(self.command_env),
            "deferred": {
                "delay": self.deferred_delay,
                "retries": self.deferred_retries,
                "interval": self.deferred_retry_interval,
            },
            "logging": {
                "file": str(self.log_file) if self.log_file else None,
                "level": self.log_level,
            },
        }

        with config_path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _target_to_entry(self, target: TargetPath) -> dict[str, Any]:
        try:
            path = str(target.path.relative_to(self.project_root))
        except ValueError:
            path = str(target.path)

        entry: dict[str, Any] = {"path": path, "label": target.label}
        if target.holders:
            entry["holders"] = sorted(target.holders)
        return entry
