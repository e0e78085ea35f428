"""
Configuration management using dataclasses for type safety and validation.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List
import yaml
import json
import os
import jsonschema
import logging

from streetview_drive_migration.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = [
    'https://www.googleapis.com/auth/streetviewpublish',
    'https://www.googleapis.com/auth/drive.file',
]


@dataclass
class GoogleConfig:
    """Google OAuth client configuration."""
    client_secrets_file: str = "credentials.json"
    token_file: Optional[str] = None
    save_token: bool = False
    scopes: List[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))

    def __post_init__(self):
        """Validate Google configuration."""
        if not self.client_secrets_file:
            raise ValueError("client_secrets_file is required")
        if not self.scopes:
            raise ValueError("at least one OAuth scope is required")

        if not Path(self.client_secrets_file).exists():
            logger.warning(f"Client secrets file not found: {self.client_secrets_file}")

    @property
    def token_path(self) -> Path:
        """
        Where a saved token lives.

        Defaults to the per-user config directory rather than the working directory.
        """
        if self.token_file:
            return Path(self.token_file)
        xdg_config_home = os.environ.get('XDG_CONFIG_HOME')
        base_dir = Path(xdg_config_home) if xdg_config_home else (Path.home() / '.config')
        return base_dir / 'streetview-drive-migration' / 'token.json'


@dataclass
class DriveConfig:
    """Google Drive destination configuration."""
    folder_name: str = "Google Street View Photos"
    catalog_file_name: str = "streetview_photos.json"
    chunk_size_mb: int = 5

    def __post_init__(self):
        if not self.folder_name:
            raise ValueError("folder_name is required")
        if self.chunk_size_mb < 1:
            raise ValueError("chunk_size_mb must be at least 1")

    @property
    def chunk_size(self) -> int:
        return self.chunk_size_mb * 1024 * 1024


@dataclass
class TransferConfig:
    """Listing and transfer options."""
    page_size: int = 50
    max_pages_shown: int = 10
    source_page_size: int = 100
    download_timeout: float = 60.0

    def __post_init__(self):
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")
        if self.max_pages_shown < 1:
            raise ValueError("max_pages_shown must be at least 1")
        if not 1 <= self.source_page_size <= 100:
            raise ValueError("source_page_size must be between 1 and 100")


@dataclass
class WebConfig:
    """Web shell configuration."""
    host: str = "127.0.0.1"
    port: int = 5001
    secret_key: Optional[str] = None
    cors_allowed_origins: str = "*"
    debug: bool = False

    def __post_init__(self):
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = "migration.log"
    enable_json: bool = False
    max_file_mb: int = 10
    backup_count: int = 5
    error_log: bool = True

    def __post_init__(self):
        """Validate logging level and rotation settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid logging level: {self.level}. Must be one of {valid_levels}")
        if self.max_file_mb <= 0:
            raise ValueError("max_file_mb must be positive")
        if self.backup_count < 0:
            raise ValueError("backup_count cannot be negative")


@dataclass
class MigrationConfig:
    """Main migration configuration."""
    google: GoogleConfig = field(default_factory=GoogleConfig)
    drive: DriveConfig = field(default_factory=DriveConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: str, validate: bool = True) -> 'MigrationConfig':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file
            validate: Whether to validate against JSON schema

        Returns:
            MigrationConfig instance

        Raises:
            ConfigurationError: If the file cannot be read, parsed or validated
        """
        try:
            with open(config_path, 'r') as f:
                config_dict = yaml.safe_load(f)
        except (yaml.YAMLError, IOError, OSError) as e:
            raise ConfigurationError(f"Failed to load configuration file '{config_path}': {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration file '{config_path}' must contain a mapping")

        if validate:
            cls._validate_schema(config_dict)

        config_dict = cls._apply_env_overrides(config_dict)

        try:
            return cls.from_dict(config_dict)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration in '{config_path}': {e}") from e

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'MigrationConfig':
        """
        Create configuration from dictionary.

        Args:
            config_dict: Configuration dictionary

        Returns:
            MigrationConfig instance
        """
        return cls(
            google=GoogleConfig(**config_dict.get('google', {})),
            drive=DriveConfig(**config_dict.get('drive', {})),
            transfer=TransferConfig(**config_dict.get('transfer', {})),
            web=WebConfig(**config_dict.get('web', {})),
            logging=LoggingConfig(**config_dict.get('logging', {})),
        )

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> 'MigrationConfig':
        """Load from a YAML file if one exists, otherwise defaults plus environment overrides."""
        if config_path and Path(config_path).exists():
            return cls.from_yaml(config_path)
        if config_path:
            logger.info(f"Configuration file {config_path} not found, using defaults")
        return cls.from_dict(cls._apply_env_overrides({}))

    @staticmethod
    def _validate_schema(config_dict: Dict[str, Any]) -> None:
        """Validate configuration against JSON schema."""
        try:
            schema_path = Path(__file__).parent / 'config_schema.json'
            if schema_path.exists():
                with open(schema_path, 'r') as f:
                    schema = json.load(f)

                jsonschema.validate(instance=config_dict, schema=schema)
                logger.debug("Configuration validated against schema")
        except jsonschema.ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e.message}\n"
                f"Path: {'.'.join(str(p) for p in e.path)}"
            ) from e
        except (IOError, OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load configuration schema for validation: {e}")

    @staticmethod
    def _apply_env_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration dictionary."""
        config = json.loads(json.dumps(config_dict))

        overrides = {
            ('google', 'client_secrets_file'): os.getenv('GOOGLE_CLIENT_SECRETS_FILE'),
            ('drive', 'folder_name'): os.getenv('STREETVIEW_DRIVE_FOLDER'),
            ('web', 'secret_key'): os.getenv('STREETVIEW_WEB_SECRET_KEY'),
            ('logging', 'level'): os.getenv('STREETVIEW_LOG_LEVEL'),
        }
        for (section, key), value in overrides.items():
            if value:
                config.setdefault(section, {})[key] = value

        return config
