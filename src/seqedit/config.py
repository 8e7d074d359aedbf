"""Configuration management with lazy validation."""

from pathlib import Path
from functools import cached_property

from seqedit.models.config import Config, EditorConfig, LoggingConfig, SessionConfig
from seqedit.utils.logging import get_logger


logger = get_logger(__name__)


def default_config_path() -> Path:
    return Path.home() / ".config" / "seqedit" / "config.yaml"


class ConfigManager:
    """
    Configuration manager with lazy validation.

    Loads the config file once and hands out sections on first access.

    Example:
        >>> config_mgr = ConfigManager.load_default()
        >>> config_mgr.editor.indent
        '  '
        >>> config_mgr.session.collapse_state_path
        '~/.local/share/seqedit/collapsed.json'
    """

    def __init__(self, config: Config):
        """
        Initialize config manager with loaded config.

        Args:
            config: Loaded and validated Config instance
        """
        self._config = config

    @classmethod
    def load_default(cls) -> "ConfigManager":
        """
        Load configuration from default path (~/.config/seqedit/config.yaml).

        A missing file is not an error: every setting has a default.

        Returns:
            ConfigManager instance with loaded config

        Raises:
            ValueError: If config is invalid
        """
        config_path = default_config_path()
        if not config_path.exists():
            logger.info("config_defaults_used", path=str(config_path))
            return cls(Config())
        return cls.load_from_path(config_path)

    @classmethod
    def load_from_path(cls, path: Path) -> "ConfigManager":
        """
        Load configuration from specific path.

        Args:
            path: Path to config.yaml file

        Returns:
            ConfigManager instance with loaded config

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        logger.info("config_loading", path=str(path))

        try:
            config = Config.load(path)
            logger.info("config_loaded", path=str(path))
            return cls(config)

        except FileNotFoundError as e:
            logger.error("config_not_found", path=str(path), error=str(e))
            raise

        except Exception as e:
            logger.error("config_validation_error", path=str(path), error=str(e))
            raise ValueError(f"Configuration validation failed: {e}") from e

    @cached_property
    def editor(self) -> EditorConfig:
        """Markdown codec settings."""
        return self._config.editor

    @cached_property
    def session(self) -> SessionConfig:
        """Editor session settings."""
        return self._config.session

    @cached_property
    def logging(self) -> LoggingConfig:
        """Logging settings."""
        return self._config.logging
