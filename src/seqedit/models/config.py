"""Configuration models for seqedit."""

from pydantic import BaseModel, Field, field_validator
from pathlib import Path
from typing import Optional
import yaml


class EditorConfig(BaseModel):
    """Configuration for the markdown codec."""

    indent: str = Field(
        default="  ",
        description="Indentation unit used when rendering nested blocks"
    )

    @field_validator('indent')
    @classmethod
    def validate_indent(cls, v: str) -> str:
        """Indentation must be a non-empty run of spaces or a single tab."""
        if v != "\t" and (not v or v.strip(" ")):
            raise ValueError(
                f"Invalid indent {v!r}: use one tab or one or more spaces"
            )
        return v

    model_config = {"frozen": True}


class SessionConfig(BaseModel):
    """Configuration for editor sessions."""

    collapse_state_path: str = Field(
        default="~/.local/share/seqedit/collapsed.json",
        description="JSON file holding collapse flags"
    )

    @property
    def collapse_state_file(self) -> Path:
        return Path(self.collapse_state_path).expanduser()

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: str = Field(
        default="INFO",
        description="Minimum log level (DEBUG, INFO, WARNING, ERROR)"
    )

    file: Optional[str] = Field(
        default=None,
        description="Log file path (defaults to ~/.cache/seqedit/logs/seqedit.log)"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def log_file(self) -> Optional[Path]:
        return Path(self.file).expanduser() if self.file else None

    model_config = {"frozen": True}


class Config(BaseModel):
    """Root configuration for seqedit."""

    editor: EditorConfig = Field(default_factory=EditorConfig, description="Markdown codec settings")
    session: SessionConfig = Field(default_factory=SessionConfig, description="Editor session settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging settings")

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Every section is optional; an empty file yields the defaults.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found at {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping at the top of {path}")

        return cls(**data)

    model_config = {"frozen": True}
