"""Test config loading and parsing."""

import tempfile
from pathlib import Path

import pytest
import yaml

from ircstate.config import BouncerSettings, Config, NetworkConfig, _deep_update, load_config, load_config_with_env
from ircstate.core.errors import ConfigurationError


class TestDeepUpdate:
    """Test deep dictionary merge."""

    def test_deep_update_simple(self):
        # Arrange
        base = {"a": 1, "b": 2}
        override = {"b": 3, "c": 4}

        # Act
        result = _deep_update(base, override)

        # Assert
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_deep_update_nested(self):
        # Arrange
        base = {"bnc": {"server": "a", "port": 1}, "showRaw": False}
        override = {"bnc": {"port": 2, "active": True}}

        # Act
        result = _deep_update(base, override)

        # Assert
        assert result == {"bnc": {"server": "a", "port": 2, "active": True}, "showRaw": False}

    def test_deep_update_preserves_base(self):
        # Arrange
        base = {"a": 1}

        # Act
        _deep_update(base, {"b": 2})

        # Assert
        assert base == {"a": 1}


class TestLoadConfig:
    """Test config file loading."""

    def test_load_config_from_yaml(self):
        # Arrange
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("showRaw: true\n")
            f.write("networks:\n")
            f.write("  - name: libera\n")
            f.write("    nick: alice\n")
            path = f.name

        try:
            # Act
            data = load_config(path)

            # Assert
            assert data["showRaw"] is True
            assert data["networks"] == [{"name": "libera", "nick": "alice"}]
        finally:
            Path(path).unlink()

    def test_load_config_missing_file(self):
        assert load_config("/nonexistent/ircstate.yaml") == {}

    def test_load_config_non_dict(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("- just\n- a list\n")
            path = f.name
        try:
            assert load_config(path) == {}
        finally:
            Path(path).unlink()

    def test_load_config_invalid_yaml_raises(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("networks: [unclosed\n")
            path = f.name
        try:
            with pytest.raises(yaml.YAMLError):
                load_config(path)
        finally:
            Path(path).unlink()

    def test_load_config_with_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "config.yaml"
        path.write_text("bnc:\n  server: bnc.example.net\n  port: 6697\n")

        data = load_config_with_env(path, {"bnc": {"port": 7000}})

        assert data["bnc"] == {"server": "bnc.example.net", "port": 7000}


class TestNetworkConfig:
    def test_from_dict_defaults(self):
        net = NetworkConfig.from_dict({"name": "libera", "nick": "alice"})

        assert net.port == 6667
        assert net.tls is False
        assert net.encoding == "utf8"
        assert net.nickserv is None
        assert net.channels == []

    def test_from_dict_full(self):
        net = NetworkConfig.from_dict(
            {
                "name": "libera",
                "nick": "alice",
                "server": "irc.libera.chat",
                "port": "6697",
                "tls": True,
                "nickserv": {"account": "acct", "password": "pw"},
                "auto_commands": ["/msg bob hi", "/join #x"],
                "channels": ["#a", "#b"],
            }
        )

        assert net.port == 6697
        assert net.nickserv is not None
        assert net.nickserv.account == "acct"
        assert net.auto_commands == "/msg bob hi\n/join #x"
        assert net.channels == ["#a", "#b"]

    def test_incomplete_nickserv_is_ignored(self):
        net = NetworkConfig.from_dict({"name": "n", "nick": "a", "nickserv": {"account": "acct"}})
        assert net.nickserv is None


class TestConfig:
    """Test Config accessors."""

    @pytest.fixture(autouse=True)
    def _clear_env(self, monkeypatch):
        monkeypatch.delenv("IRCSTATE_SHOW_RAW", raising=False)
        monkeypatch.delenv("IRCSTATE_BNC_ACTIVE", raising=False)

    def test_defaults(self):
        config = Config({})

        assert config.show_raw is False
        assert config.block_pms is False
        assert config.notice_active_buffer is True
        assert config.nick_retry_limit == 10
        assert config.history_count == 50
        assert config.ctcp_version == "ircstate"
        assert config.mode_request_ttl == 30.0
        assert config.throttle_limit == 10
        assert config.bnc == BouncerSettings()
        assert config.networks == []

    def test_get_dotted_path(self):
        config = Config({"buffers": {"block_pms": True}})

        assert config.get("buffers.block_pms") is True
        assert config.get("buffers.missing", "x") == "x"
        assert config.block_pms is True

    def test_networks_skip_malformed_entries(self):
        config = Config({"networks": [{"name": "a", "nick": "n"}, "junk"]})

        assert [n.name for n in config.networks] == ["a"]

    def test_env_override_show_raw(self, monkeypatch):
        monkeypatch.setenv("IRCSTATE_SHOW_RAW", "yes")

        assert Config({"showRaw": False}).show_raw is True

    def test_env_override_bnc_active(self, monkeypatch):
        monkeypatch.setenv("IRCSTATE_BNC_ACTIVE", "0")

        assert Config({"bnc": {"active": True}}).bnc.active is False

    def test_unrecognized_env_value_falls_back(self, monkeypatch):
        monkeypatch.setenv("IRCSTATE_SHOW_RAW", "maybe")

        assert Config({"showRaw": True}).show_raw is True

    def test_reload_replaces_data(self):
        config = Config({"history_count": 10})

        config.reload({"history_count": 20})

        assert config.history_count == 20


class TestValidate:
    @pytest.mark.parametrize(
        ("data", "code"),
        [
            ({"networks": {"name": "a"}}, "invalid_networks"),
            ({"networks": ["a"]}, "invalid_network_item"),
            ({"networks": [{"nick": "a"}]}, "missing_name"),
            ({"networks": [{"name": "a"}]}, "missing_nick"),
            ({"bnc": {"active": True, "server": "bnc"}}, "incomplete_bnc"),
        ],
    )
    def test_invalid(self, data, code):
        with pytest.raises(ConfigurationError) as exc_info:
            Config(data).validate()
        assert exc_info.value.code == code

    def test_valid(self):
        Config({"networks": [{"name": "a", "nick": "n"}]}).validate()

    def test_reload_validates_and_keeps_previous(self):
        config = Config({"history_count": 10})
        with pytest.raises(ConfigurationError):
            config.reload({"networks": "nope"})
        assert config.history_count == 10

    def test_reload_can_skip_validation(self):
        config = Config({})
        config.reload({"networks": "nope"}, validate=False)
        assert config.networks == []
