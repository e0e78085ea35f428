"""
Tests for configuration loading and validation.
"""
import pytest
import yaml
from pathlib import Path

from streetview_drive_migration.config import (
    DEFAULT_SCOPES,
    DriveConfig,
    GoogleConfig,
    LoggingConfig,
    MigrationConfig,
    TransferConfig,
    WebConfig,
)
from streetview_drive_migration.exceptions import ConfigurationError


class TestGoogleConfig:
    """Tests for GoogleConfig."""

    def test_google_config_defaults(self):
        """Test Google config with defaults."""
        config = GoogleConfig()
        assert config.client_secrets_file == "credentials.json"
        assert config.save_token is False
        assert config.scopes == DEFAULT_SCOPES

    def test_google_config_empty_secrets_file(self):
        """Test validation with empty client secrets file."""
        with pytest.raises(ValueError, match="client_secrets_file is required"):
            GoogleConfig(client_secrets_file="")

    def test_google_config_empty_scopes(self):
        with pytest.raises(ValueError, match="at least one OAuth scope"):
            GoogleConfig(scopes=[])

    def test_token_path_explicit(self):
        """Test an explicit token file wins."""
        config = GoogleConfig(token_file="/tmp/token.json")
        assert config.token_path == Path("/tmp/token.json")

    def test_token_path_uses_xdg_config_home(self, monkeypatch, tmp_path):
        """Test the default token location under XDG_CONFIG_HOME."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        config = GoogleConfig()
        assert config.token_path == tmp_path / "streetview-drive-migration" / "token.json"


class TestDriveConfig:
    """Tests for DriveConfig."""

    def test_drive_config_defaults(self):
        config = DriveConfig()
        assert config.folder_name == "Google Street View Photos"
        assert config.catalog_file_name == "streetview_photos.json"
        assert config.chunk_size == 5 * 1024 * 1024

    def test_drive_config_empty_folder(self):
        """Test validation with empty folder name."""
        with pytest.raises(ValueError, match="folder_name is required"):
            DriveConfig(folder_name="")

    def test_drive_config_invalid_chunk_size(self):
        with pytest.raises(ValueError, match="chunk_size_mb must be at least 1"):
            DriveConfig(chunk_size_mb=0)


class TestTransferConfig:
    """Tests for TransferConfig."""

    def test_transfer_config_defaults(self):
        config = TransferConfig()
        assert config.page_size == 50
        assert config.max_pages_shown == 10
        assert config.source_page_size == 100

    @pytest.mark.parametrize("kwargs, message", [
        ({"page_size": 0}, "page_size must be at least 1"),
        ({"max_pages_shown": 0}, "max_pages_shown must be at least 1"),
        ({"source_page_size": 101}, "source_page_size must be between 1 and 100"),
    ])
    def test_transfer_config_invalid(self, kwargs, message):
        """Test validation of listing options."""
        with pytest.raises(ValueError, match=message):
            TransferConfig(**kwargs)


class TestWebAndLoggingConfig:
    """Tests for WebConfig and LoggingConfig."""

    def test_web_config_invalid_port(self):
        with pytest.raises(ValueError, match="Invalid port"):
            WebConfig(port=70000)

    def test_logging_config_defaults(self):
        """Test logging config with defaults."""
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file == "migration.log"
        assert config.enable_json is False

    def test_logging_config_invalid_level(self):
        """Test validation with invalid log level."""
        with pytest.raises(ValueError, match="Invalid logging level"):
            LoggingConfig(level="INVALID")

    def test_logging_config_invalid_rotation(self):
        """Test validation of log rotation settings."""
        with pytest.raises(ValueError, match="max_file_mb"):
            LoggingConfig(max_file_mb=0)
        with pytest.raises(ValueError, match="backup_count"):
            LoggingConfig(backup_count=-1)


class TestMigrationConfig:
    """Tests for MigrationConfig."""

    def test_from_yaml_valid(self, config_file):
        """Test loading valid config from YAML."""
        config = MigrationConfig.from_yaml(str(config_file))
        assert config.drive.folder_name == "Street View Backup"
        assert config.drive.chunk_size == 8 * 1024 * 1024
        assert config.transfer.page_size == 25
        assert config.web.port == 5050
        assert config.logging.file is None

    def test_from_yaml_unknown_key_fails_schema(self, tmp_path, sample_config):
        """Test schema validation rejects unknown keys."""
        sample_config["drive"]["zip_file_pattern"] = "takeout-*.zip"
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump(sample_config))

        with pytest.raises(ConfigurationError, match="validation failed"):
            MigrationConfig.from_yaml(str(config_path))

    def test_from_yaml_invalid_value_without_schema(self, tmp_path):
        """Test dataclass validation still applies when the schema is skipped."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"transfer": {"page_size": 0}}))

        with pytest.raises(ConfigurationError, match="page_size"):
            MigrationConfig.from_yaml(str(config_path), validate=False)

    def test_from_yaml_unreadable(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Failed to load"):
            MigrationConfig.from_yaml(str(tmp_path / "missing.yaml"))

    def test_from_yaml_not_a_mapping(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            MigrationConfig.from_yaml(str(config_path))

    def test_empty_yaml_gives_defaults(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("")
        config = MigrationConfig.from_yaml(str(config_path))
        assert config.web.port == 5001

    def test_env_overrides(self, config_file, monkeypatch):
        """Test environment variables override file values."""
        monkeypatch.setenv("STREETVIEW_DRIVE_FOLDER", "From Env")
        monkeypatch.setenv("STREETVIEW_LOG_LEVEL", "WARNING")

        config = MigrationConfig.from_yaml(str(config_file))

        assert config.drive.folder_name == "From Env"
        assert config.logging.level == "WARNING"

    def test_load_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        """Test load() falls back to defaults plus environment."""
        monkeypatch.setenv("STREETVIEW_WEB_SECRET_KEY", "s3cret")
        config = MigrationConfig.load(str(tmp_path / "nope.yaml"))
        assert config.drive.folder_name == "Google Street View Photos"
        assert config.web.secret_key == "s3cret"
