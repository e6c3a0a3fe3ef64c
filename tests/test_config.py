"""Unit tests for tvbingefriend_feed_service.config."""
import json
from unittest.mock import patch

from tvbingefriend_feed_service.config import (
    _get_config_value,
    _get_int_config_value,
    get_default_page_size,
    get_image_cdn_host,
    get_image_max_connections,
    get_supabase_key,
    get_supabase_url,
)


class TestGetConfigValue:
    """Tests for _get_config_value function."""

    def test_get_config_value_from_env(self, monkeypatch):
        """Test getting value from environment variable."""
        # Arrange
        monkeypatch.setenv('TEST_KEY', 'test_value')

        # Act
        result = _get_config_value('TEST_KEY')

        # Assert
        assert result == 'test_value'

    def test_get_config_value_with_default(self):
        """Test using default value when key not found."""
        # Act
        result = _get_config_value('NONEXISTENT_KEY', default='default_value')

        # Assert
        assert result == 'default_value'

    def test_get_config_value_from_local_settings(self, tmp_path, monkeypatch):
        """Test getting value from local.settings.json."""
        # Arrange
        monkeypatch.delenv('TEST_KEY', raising=False)
        settings_file = tmp_path / "local.settings.json"
        settings_file.write_text(json.dumps({"Values": {"TEST_KEY": "from_settings"}}))

        with patch('tvbingefriend_feed_service.config.Path') as mock_path:
            mock_path.return_value.resolve.return_value.parent.parent = tmp_path

            # Act
            result = _get_config_value('TEST_KEY')

        # Assert
        assert result == 'from_settings'

    def test_get_config_value_env_takes_precedence(self, tmp_path, monkeypatch):
        """Test environment variable wins over local.settings.json."""
        # Arrange
        monkeypatch.setenv('TEST_KEY', 'from_env')
        settings_file = tmp_path / "local.settings.json"
        settings_file.write_text(json.dumps({"Values": {"TEST_KEY": "from_settings"}}))

        with patch('tvbingefriend_feed_service.config.Path') as mock_path:
            mock_path.return_value.resolve.return_value.parent.parent = tmp_path

            # Act
            result = _get_config_value('TEST_KEY')

        # Assert
        assert result == 'from_env'

    def test_get_config_value_ignores_invalid_json(self, tmp_path, monkeypatch):
        """Test that a malformed local.settings.json falls back to the default."""
        # Arrange
        monkeypatch.delenv('TEST_KEY', raising=False)
        (tmp_path / "local.settings.json").write_text("{not json")

        with patch('tvbingefriend_feed_service.config.Path') as mock_path:
            mock_path.return_value.resolve.return_value.parent.parent = tmp_path

            # Act
            result = _get_config_value('TEST_KEY', default='fallback')

        # Assert
        assert result == 'fallback'


class TestGetIntConfigValue:
    """Tests for _get_int_config_value function."""

    def test_parses_integer(self, monkeypatch):
        monkeypatch.setenv('INT_KEY', '42')
        assert _get_int_config_value('INT_KEY', 7) == 42

    def test_invalid_integer_uses_default(self, monkeypatch):
        monkeypatch.setenv('INT_KEY', 'many')
        assert _get_int_config_value('INT_KEY', 7) == 7

    def test_missing_uses_default(self, monkeypatch):
        monkeypatch.delenv('INT_KEY', raising=False)
        assert _get_int_config_value('INT_KEY', 7) == 7


class TestTypedGetters:
    """Tests for the typed configuration getters."""

    def test_get_supabase_url_and_key(self, monkeypatch):
        # Arrange
        monkeypatch.setenv('SUPABASE_URL', 'https://project.supabase.co')
        monkeypatch.setenv('SUPABASE_KEY', 'anon-key')

        # Act / Assert
        assert get_supabase_url() == 'https://project.supabase.co'
        assert get_supabase_key() == 'anon-key'

    def test_get_image_cdn_host_default(self, monkeypatch):
        monkeypatch.delenv('IMAGE_CDN_HOST', raising=False)
        assert get_image_cdn_host() == 'image.tmdb.org'

    def test_get_image_max_connections_default_and_override(self, monkeypatch):
        monkeypatch.delenv('IMAGE_MAX_CONNECTIONS', raising=False)
        assert get_image_max_connections() == 12

        monkeypatch.setenv('IMAGE_MAX_CONNECTIONS', '4')
        assert get_image_max_connections() == 4

    def test_get_default_page_size(self, monkeypatch):
        monkeypatch.delenv('FEED_PAGE_SIZE', raising=False)
        assert get_default_page_size() == 20

        monkeypatch.setenv('FEED_PAGE_SIZE', '30')
        assert get_default_page_size() == 30
