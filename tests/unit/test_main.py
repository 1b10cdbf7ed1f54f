"""
Unit tests for the command-line entry point.
"""

import pytest

from parkingserver import __version__
from parkingserver.__main__ import build_parser, config_from_args, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PARKING_PORT", "PARKING_CAPACITY", "PARKING_DATA_FILE", "PARKING_STATIC_DIR"):
        monkeypatch.delenv(name, raising=False)


class TestConfigFromArgs:
    """Flags layered over the environment."""

    def test_no_flags(self):
        """Without flags the defaults stand."""
        config = config_from_args(build_parser().parse_args([]))

        assert config.port == 8080
        assert config.capacity == 100
        assert config.cors is True

    def test_flags_override(self):
        """Given flags replace defaults."""
        args = build_parser().parse_args([
            "-p", "3000", "-c", "20", "--small-rate", "4", "--large-rate", "7.5",
            "-w", "2", "--max-connections", "10", "--static", "web", "-l", "DEBUG",
        ])

        config = config_from_args(args)

        assert config.port == 3000
        assert config.capacity == 20
        assert config.small_rate == 4.0
        assert config.large_rate == 7.5
        assert config.workers == 2
        assert config.max_connections == 10
        assert config.static_dir == "web"
        assert config.log_level == "DEBUG"

    def test_flags_beat_environment(self, monkeypatch):
        """A flag wins over the matching variable."""
        monkeypatch.setenv("PARKING_PORT", "9000")

        assert config_from_args(build_parser().parse_args([])).port == 9000
        assert config_from_args(build_parser().parse_args(["--port", "9100"])).port == 9100

    def test_empty_data_file_means_memory_only(self):
        """--data-file '' disables the snapshot."""
        config = config_from_args(build_parser().parse_args(["--data-file", ""]))
        assert config.data_file is None

    def test_no_cors(self):
        """--no-cors turns CORS off."""
        assert config_from_args(build_parser().parse_args(["--no-cors"])).cors is False


class TestMain:
    """main() exit codes."""

    def test_version(self, capsys):
        """--version prints and exits 0."""
        with pytest.raises(SystemExit) as exc:
            main(["--version"])

        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_invalid_config_exits_1(self, capsys):
        """A bad setting is reported on stderr, exit status 1."""
        assert main(["--capacity", "0", "--data-file", ""]) == 1
        assert "capacity" in capsys.readouterr().err
