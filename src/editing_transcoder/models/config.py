"""Configuration data model."""

from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Optional

import yaml

from ..exceptions import ConfigError
from .preset import OutputFormat


@dataclass
class EngineConfig:
    """Transcoding engine configuration."""

    ffmpeg_path: Optional[str] = None  # None = look up on PATH
    ffprobe_path: Optional[str] = None
    max_parallel: Optional[int] = None  # None = all files of a group at once


@dataclass
class DispatchConfig:
    """Dispatch retry policy."""

    max_retries: int = 1  # retries after EngineUnavailable
    retry_delay: float = 1.0  # seconds between attempts


@dataclass
class OutputConfig:
    """Output configuration."""

    default_format: str = OutputFormat.PRORES_422.value
    output_dir: Optional[str] = None  # None = next to the first input

    @property
    def format(self) -> OutputFormat:
        return OutputFormat.parse(self.default_format)


def _section(cls, data: dict, name: str):
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ConfigError(f"Unknown {name} setting(s): {', '.join(sorted(unknown))}")
    return cls(**section)


@dataclass
class AppConfig:
    """Application configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def get_config_path(cls) -> Path:
        """Get user config file path."""
        return Path.home() / ".config" / "editing-transcoder" / "config.yaml"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppConfig":
        """Load configuration from YAML file."""
        if path is None:
            path = cls.get_config_path()

        if not path.exists():
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

        unknown = set(data) - {"engine", "dispatch", "output", "log_level", "log_file"}
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

        config = cls(
            engine=_section(EngineConfig, data, "engine"),
            dispatch=_section(DispatchConfig, data, "dispatch"),
            output=_section(OutputConfig, data, "output"),
            log_level=data.get("log_level", "INFO"),
            log_file=data.get("log_file"),
        )
        # Fail early on a bad format name
        config.output.format
        return config

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to YAML file."""
        if path is None:
            path = self.get_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> dict:
        """Convert config to dictionary, leaving out unset optional values."""
        engine = {"max_parallel": self.engine.max_parallel}
        if self.engine.ffmpeg_path:
            engine["ffmpeg_path"] = self.engine.ffmpeg_path
        if self.engine.ffprobe_path:
            engine["ffprobe_path"] = self.engine.ffprobe_path

        output = {"default_format": self.output.default_format}
        if self.output.output_dir:
            output["output_dir"] = self.output.output_dir

        data = {
            "engine": engine,
            "dispatch": {
                "max_retries": self.dispatch.max_retries,
                "retry_delay": self.dispatch.retry_delay,
            },
            "output": output,
            "log_level": self.log_level,
        }
        if self.log_file:
            data["log_file"] = self.log_file
        return data
