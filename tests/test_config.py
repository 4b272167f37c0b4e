"""Tests for configuration loading, clamping and saving."""

import json
import os
import stat

import pytest

from archsync.config import Config
from archsync.constants import DEFAULT_AUR_BASE_URL, get_default_log_dir, get_default_manifest_path
from archsync.exceptions import ConfigurationError
from archsync.models import AurConfig, ConflictPolicy


class TestLoading:
    """Tests for reading configuration files."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = Config(str(tmp_path / "config.json"))

        assert config.get_aur_config() == AurConfig()
        assert config.get_conflict_policy() is ConflictPolicy.NEWEST
        assert config.is_verbose() is False

    def test_values_are_read(self, config_file, tmp_path):
        path = config_file({
            "aur": {"base_url": "https://aur.example.org/rpc", "max_args": 50,
                    "max_parallel_requests": 8, "max_kib_per_sec": 256, "probe_sizes": False},
            "manifest_path": str(tmp_path / "out" / "manifest.json"),
            "log_dir": str(tmp_path / "logs"),
            "conflict_policy": "prefer-repo",
            "verbose_logging": True,
        })

        config = Config(path)
        aur = config.get_aur_config()

        assert aur.base_url == "https://aur.example.org/rpc"
        assert aur.max_args == 50
        assert aur.max_parallel_requests == 8
        assert aur.max_kib_per_sec == 256
        assert aur.probe_sizes is False
        assert aur.max_retries == 3
        assert config.get_manifest_path() == tmp_path / "out" / "manifest.json"
        assert config.get_log_dir() == tmp_path / "logs"
        assert config.get_conflict_policy() is ConflictPolicy.PREFER_REPO
        assert config.is_verbose() is True

    def test_default_paths(self, tmp_path):
        config = Config(str(tmp_path / "config.json"))

        assert config.get_manifest_path() == get_default_manifest_path()
        assert config.get_log_dir() == get_default_log_dir()

    @pytest.mark.parametrize("content", [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"aur": {"max_args": "100"}}),
        json.dumps({"aur": {"max_retries": True}}),
        json.dumps({"aur": {"base_url": "ftp://aur.archlinux.org/rpc"}}),
        json.dumps({"verbose_logging": "yes"}),
    ])
    def test_invalid_files_fall_back_to_defaults(self, config_file, content):
        config = Config(config_file(content))

        assert config.get_aur_config() == AurConfig()
        assert config.is_verbose() is False

    def test_unknown_keys_are_ignored(self, config_file):
        config = Config(config_file({"theme": "dark", "aur": {"max_args": 10, "color": "red"}}))

        assert config.get_aur_config().max_args == 10
        assert "theme" not in config.to_dict()

    def test_unsafe_path_is_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            Config(str(tmp_path / "config.txt"))

        with pytest.raises(ConfigurationError):
            Config("../config.json")


class TestClamping:
    """Tests for out-of-range values."""

    def test_numbers_are_floored(self, config_file):
        config = Config(config_file({"aur": {
            "timeout": 0, "max_args": 0, "max_retries": -3,
            "max_parallel_requests": 0, "max_kib_per_sec": -5,
        }}))

        aur = config.get_aur_config()

        assert aur.timeout == 1
        assert aur.max_args == 1
        assert aur.max_retries == 1
        assert aur.max_parallel_requests == 1
        assert aur.max_kib_per_sec == 0

    def test_unknown_conflict_policy_falls_back(self, config_file):
        config = Config(config_file({"conflict_policy": "coin-flip"}))

        assert config.get_conflict_policy() is ConflictPolicy.NEWEST

    def test_base_url_default(self, config_file):
        config = Config(config_file({"aur": {"timeout": 10}}))

        assert config.get_aur_config().base_url == DEFAULT_AUR_BASE_URL


class TestSaving:
    """Tests for writing configuration files."""

    def test_init_config_creates_private_file(self, tmp_path):
        path = tmp_path / "archsync" / "config.json"
        config = Config(str(path))

        assert config.init_config() is True

        assert json.loads(path.read_text(encoding='utf-8')) == config.to_dict()
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(path.parent).st_mode) == 0o700

    def test_init_config_keeps_existing_file(self, config_file):
        path = config_file({"aur": {"max_args": 7}})
        config = Config(path)

        assert config.init_config() is False
        assert json.loads(open(path, encoding='utf-8').read()) == {"aur": {"max_args": 7}}

    def test_saved_file_loads_back(self, tmp_path):
        path = str(tmp_path / "config.json")
        Config(path).save_config()

        reloaded = Config(path)

        assert reloaded.get_aur_config() == AurConfig()
        assert reloaded.get_conflict_policy() is ConflictPolicy.NEWEST

    def test_save_failure_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file", encoding='utf-8')
        config = Config(str(blocker / "config.json"))

        with pytest.raises(ConfigurationError):
            config.save_config()
