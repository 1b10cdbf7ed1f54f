"""
Unit tests for ServerConfig.
"""

import pytest

from parkingserver.config import ServerConfig


class TestDefaults:
    """Default values."""

    def test_defaults(self):
        """Defaults describe a 100-space lot on port 8080."""
        config = ServerConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.capacity == 100
        assert config.small_rate == 5.0
        assert config.large_rate == 8.0
        assert config.data_file == "parking_data.dat"
        assert config.workers >= 1
        assert config.cors is True

    def test_defaults_validate(self):
        """The default configuration is valid."""
        ServerConfig().validate()


class TestValidate:
    """validate() rejects bad settings."""

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 70000},
        {"workers": 0},
        {"max_connections": 0},
        {"buffer_size": 100},
        {"read_timeout": 0},
        {"request_timeout": -1},
        {"max_header_size": 10},
        {"max_body_size": -1},
        {"capacity": 0},
        {"capacity": 1001},
        {"small_rate": 0},
        {"large_rate": -3},
        {"max_admit_wait": -1},
    ])
    def test_invalid(self, overrides):
        """Each out-of-range value raises ValueError."""
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        """Port 0 asks the OS for an ephemeral port."""
        ServerConfig(port=0).validate()

    def test_capacity_bounds(self):
        """1 and 1000 are both accepted."""
        ServerConfig(capacity=1).validate()
        ServerConfig(capacity=1000).validate()


class TestFromEnv:
    """from_env() reads PARKING_* variables."""

    def test_reads_environment(self, monkeypatch):
        """Set variables override defaults."""
        monkeypatch.setenv("PARKING_PORT", "3000")
        monkeypatch.setenv("PARKING_CAPACITY", "20")
        monkeypatch.setenv("PARKING_SMALL_RATE", "4.5")
        monkeypatch.setenv("PARKING_WORKERS", "3")
        monkeypatch.setenv("PARKING_STATIC_DIR", "/srv/www")
        monkeypatch.setenv("PARKING_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.port == 3000
        assert config.capacity == 20
        assert config.small_rate == 4.5
        assert config.workers == 3
        assert config.static_dir == "/srv/www"
        assert config.log_level == "DEBUG"

    def test_unset_uses_defaults(self, monkeypatch):
        """Without variables the defaults apply."""
        for name in ("PARKING_PORT", "PARKING_CAPACITY", "PARKING_STATIC_DIR", "PARKING_DATA_FILE"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.port == 8080
        assert config.capacity == 100
        assert config.static_dir is None
        assert config.data_file == "parking_data.dat"

    def test_bad_number(self, monkeypatch):
        """A non-numeric value fails loudly."""
        monkeypatch.setenv("PARKING_PORT", "eighty")
        with pytest.raises(ValueError):
            ServerConfig.from_env()
