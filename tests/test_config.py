"""Tests for export configuration."""

from datetime import datetime

import pytest

from wp_config import ConfigError, ExportConfig, load_config, sanitize_domain_name


def load(tmp_path, text=None, environ=None, overrides=None):
    path = None
    if text is not None:
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
    return load_config(path, overrides=overrides, environ=environ or {}, use_dotenv=False)


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = ExportConfig()
        assert config.max_id == 10000
        assert config.concurrent == 5
        assert config.timeout == 30
        assert config.retries == 3
        assert config.download_media is True
        assert config.brute_force is False
        assert config.user_agent == "WordPress-Export-JSON/1.0"

    def test_auth_needs_both_parts(self):
        assert ExportConfig(username="me").auth() is None
        assert ExportConfig(username="me", password="pw").auth() == ("me", "pw")


class TestLoadConfig:
    """Tests for layered loading."""

    def test_yaml_file(self, tmp_path):
        config = load(tmp_path, "url: https://example.com\nmax_id: 250\nbrute_force: true\n")
        assert config.url == "https://example.com"
        assert config.max_id == 250
        assert config.brute_force is True

    def test_empty_yaml_file(self, tmp_path):
        assert load(tmp_path, "") == ExportConfig()

    def test_environment_overrides_file(self, tmp_path):
        config = load(tmp_path, "max_id: 250\n",
                      environ={"WPEXPORT_MAX_ID": "900", "WPEXPORT_DOWNLOAD_MEDIA": "false"})
        assert config.max_id == 900
        assert config.download_media is False

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        config = load(tmp_path, "concurrent: 2\nurl: https://a.example\n",
                      environ={"WPEXPORT_CONCURRENT": "3"},
                      overrides={"concurrent": 8, "url": None})
        assert config.concurrent == 8
        assert config.url == "https://a.example"

    def test_timeout_accepts_int(self, tmp_path):
        assert load(tmp_path, "timeout: 10\n").timeout == 10.0

    def test_unknown_key_rejected(self, tmp_path):
        with pytest.raises(ConfigError, match="format_v2"):
            load(tmp_path, "format_v2: json\n")

    def test_bad_value_rejected(self, tmp_path):
        with pytest.raises(ConfigError, match="max_id"):
            load(tmp_path, environ={"WPEXPORT_MAX_ID": "lots"})

    def test_bad_bool_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            load(tmp_path, environ={"WPEXPORT_VERBOSE": "maybe"})

    def test_non_mapping_file_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            load(tmp_path, "- just\n- a list\n")

    def test_invalid_yaml_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            load(tmp_path, "url: [unclosed\n")


class TestValidate:
    """Tests for validation."""

    def test_valid(self):
        ExportConfig(url="https://example.com").validate()

    @pytest.mark.parametrize("changes, message", [
        ({"url": ""}, "URL"),
        ({"max_id": 0}, "max_id"),
        ({"concurrent": 0}, "concurrent"),
        ({"timeout": 0}, "timeout"),
        ({"retries": -1}, "retries"),
        ({"no_files": True}, "create_zip"),
    ])
    def test_invalid(self, changes, message):
        config = ExportConfig(url="https://example.com")
        for key, value in changes.items():
            setattr(config, key, value)
        with pytest.raises(ConfigError, match=message):
            config.validate()


class TestOutputPaths:
    """Tests for output path helpers."""

    def test_default_output(self):
        config = ExportConfig(url="https://www.example.com/blog")
        config.generate_default_output(now=datetime(2024, 3, 5, 14, 7, 9))
        assert config.output.replace("\\", "/") == "export/example.com.2024-03-05140709"

    def test_existing_output_kept(self):
        config = ExportConfig(url="https://example.com", output="mine")
        config.generate_default_output()
        assert config.output == "mine"

    def test_default_output_needs_url(self):
        with pytest.raises(ConfigError):
            ExportConfig().generate_default_output()

    def test_media_dir_for_directory(self):
        assert ExportConfig(output="out").media_dir().as_posix() == "out/media"

    def test_media_dir_for_json_file(self):
        assert ExportConfig(output="out/site.json").media_dir().as_posix() == "out/site_media"

    def test_sanitize_domain_name(self):
        assert sanitize_domain_name("exa:mple//com") == "exa-mple-com"
        assert sanitize_domain_name("::") == "wordpress-site"
