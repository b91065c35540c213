"""Tests for configuration management."""

import pytest
import tempfile
import yaml
from pathlib import Path
from config.config_manager import ConfigManager, StorageConfig, SecurityConfig


class TestConfigManager:
    """Test suite for ConfigManager."""

    @pytest.fixture
    def temp_config_dir(self):
        """Create temporary directory for test configuration."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def sample_config(self, temp_config_dir):
        """Sample configuration dictionary with storage inside the temp dir."""
        return {
            'storage': {
                'db_path': str(temp_config_dir / 'data' / 'ruburu.db'),
                'images_dir': str(temp_config_dir / 'images'),
                'thumbs_dir': str(temp_config_dir / 'thumbs'),
                'max_upload_size': 5242880
            },
            'images': {
                'thumbnail_size': 150,
                'allowed_formats': ['PNG', 'JPEG']
            },
            'captcha': {
                'length': 5,
                'width': 180,
                'height': 60
            },
            'security': {
                'session_ttl': 3600,
                'scrypt_n': 16384,
                'scrypt_r': 8,
                'scrypt_p': 1
            },
            'logging': {
                'level': 'INFO',
                'log_path': str(temp_config_dir / 'logs' / 'ruburu.log'),
                'max_log_size': 10485760,
                'backup_count': 5
            }
        }

    @pytest.fixture
    def config_path(self, temp_config_dir, sample_config):
        """Write the sample configuration and return its path."""
        path = temp_config_dir / "settings.yaml"
        with open(path, 'w') as f:
            yaml.dump(sample_config, f)
        return path

    def test_load_config(self, config_path):
        """Test loading a user configuration file."""
        manager = ConfigManager(config_path)

        assert manager.get_config('storage', 'max_upload_size') == 5242880
        assert manager.get_config('images', 'thumbnail_size') == 150
        assert manager.get_config('captcha', 'length') == 5

    def test_typed_sections(self, config_path, temp_config_dir):
        """Test dataclass views of configuration sections."""
        manager = ConfigManager(config_path)

        storage = manager.get_storage_config()
        assert isinstance(storage, StorageConfig)
        assert manager.expand_path(storage.images_dir) == temp_config_dir / 'images'

        security = manager.get_security_config()
        assert isinstance(security, SecurityConfig)
        assert security.session_ttl == 3600

        assert manager.get_images_config().allowed_formats == ['PNG', 'JPEG']
        assert manager.get_logging_config().backup_count == 5

    def test_storage_directories_created(self, config_path, temp_config_dir):
        """Test that storage directories exist after loading."""
        ConfigManager(config_path)

        assert (temp_config_dir / 'data').is_dir()
        assert (temp_config_dir / 'images').is_dir()
        assert (temp_config_dir / 'thumbs').is_dir()

    def test_get_config_section(self, config_path):
        """Test getting entire configuration section."""
        manager = ConfigManager(config_path)
        captcha_config = manager.get_config('captcha')

        assert isinstance(captcha_config, dict)
        assert captcha_config['width'] == 180

    def test_missing_keys(self, config_path):
        """Test unknown sections and keys raise KeyError."""
        manager = ConfigManager(config_path)

        with pytest.raises(KeyError):
            manager.get_config('network')
        with pytest.raises(KeyError):
            manager.get_config('storage', 'nope')

    def test_set_and_save_config(self, config_path):
        """Test saving configuration to file."""
        manager = ConfigManager(config_path)
        manager.set_config('images', 'thumbnail_size', 250)
        manager.save_config()

        with open(config_path, 'r') as f:
            saved_config = yaml.safe_load(f)

        assert saved_config['images']['thumbnail_size'] == 250

    def test_env_override(self, config_path, monkeypatch):
        """Test environment variable overrides."""
        monkeypatch.setenv('RUBURU_SECURITY__SESSION_TTL', '7200')
        monkeypatch.setenv('RUBURU_LOGGING__LEVEL', 'DEBUG')

        manager = ConfigManager(config_path)

        assert manager.get_config('security', 'session_ttl') == 7200
        assert manager.get_config('logging', 'level') == 'DEBUG'

    def test_partial_config_merges_defaults(self, temp_config_dir):
        """Test a partial user config is merged over bundled defaults."""
        config_path = temp_config_dir / "settings.yaml"
        partial = {
            'storage': {
                'db_path': str(temp_config_dir / 'db' / 'x.db'),
                'images_dir': str(temp_config_dir / 'i'),
                'thumbs_dir': str(temp_config_dir / 't'),
            },
            'captcha': {'length': 8},
        }
        with open(config_path, 'w') as f:
            yaml.dump(partial, f)

        manager = ConfigManager(config_path)

        assert manager.get_config('captcha', 'length') == 8
        assert manager.get_config('captcha', 'width') == 180
        assert manager.get_config('storage', 'max_upload_size') == 10485760
        assert manager.get_config('images', 'thumbnail_size') == 200

    def test_validation_invalid_type(self, temp_config_dir, sample_config):
        """Test validation fails with invalid field type."""
        config_path = temp_config_dir / "settings.yaml"
        sample_config['images']['thumbnail_size'] = "big"

        with open(config_path, 'w') as f:
            yaml.dump(sample_config, f)

        with pytest.raises(ValueError, match="must be of type"):
            ConfigManager(config_path)

    def test_validation_rejects_bool_for_int(self, temp_config_dir, sample_config):
        """Test a boolean is not accepted where a size is expected."""
        config_path = temp_config_dir / "settings.yaml"
        sample_config['storage']['max_upload_size'] = True

        with open(config_path, 'w') as f:
            yaml.dump(sample_config, f)

        with pytest.raises(ValueError, match="must be of type"):
            ConfigManager(config_path)

    def test_validation_out_of_range(self, temp_config_dir, sample_config):
        """Test validation fails with out of range value."""
        config_path = temp_config_dir / "settings.yaml"
        sample_config['captcha']['length'] = 40

        with open(config_path, 'w') as f:
            yaml.dump(sample_config, f)

        with pytest.raises(ValueError, match="must be <="):
            ConfigManager(config_path)

    def test_validation_scrypt_power_of_two(self, temp_config_dir, sample_config):
        """Test scrypt cost must be a power of two."""
        config_path = temp_config_dir / "settings.yaml"
        sample_config['security']['scrypt_n'] = 1000

        with open(config_path, 'w') as f:
            yaml.dump(sample_config, f)

        with pytest.raises(ValueError, match="power of two"):
            ConfigManager(config_path)

    def test_invalid_yaml(self, temp_config_dir):
        """Test malformed YAML is reported."""
        config_path = temp_config_dir / "settings.yaml"
        config_path.write_text("storage: [unclosed")

        with pytest.raises(ValueError, match="Invalid YAML"):
            ConfigManager(config_path)
