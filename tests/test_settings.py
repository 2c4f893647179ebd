from pathlib import Path

import pytest

from tinker_runner import EngineSettings


def test_defaults_come_from_bundled_file() -> None:
    settings = EngineSettings()
    assert settings.auto_log is True
    assert settings.timeout_seconds == 30
    assert settings.keep_failed_scripts is True
    assert settings.working_dir is None
    assert settings.interpreters == {}


def test_zero_timeout_disables_limit() -> None:
    assert EngineSettings(timeout_seconds=0).timeout is None
    assert EngineSettings(timeout_seconds=2.5).timeout == 2.5


def test_data_dir_expands_home() -> None:
    assert EngineSettings(user_data_dir="~/.tinker").data_dir == Path.home() / ".tinker"


@pytest.mark.parametrize(
    "kwargs",
    [{"timeout_seconds": -1}, {"log_format": "xml"}, {"log_level": "loud"}],
)
def test_invalid_values_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        EngineSettings(**kwargs)


def test_from_file_reads_settings_table(tmp_path: Path) -> None:
    config = tmp_path / "tinker.toml"
    config.write_text(
        "[settings]\n"
        "auto_log = false\n"
        "timeout_seconds = 5\n"
        'user_data_dir = "/srv/tinker"\n'
        'working_dir = "/tmp"\n'
        'log_format = "json"\n'
        "[settings.interpreters]\n"
        'node = "/opt/node/bin/node"\n',
        encoding="utf-8",
    )
    settings = EngineSettings.from_file(str(config))
    assert settings.auto_log is False
    assert settings.timeout_seconds == 5.0
    assert settings.data_dir == Path("/srv/tinker")
    assert settings.working_dir == "/tmp"
    assert settings.log_format == "json"
    assert settings.interpreters == {"node": "/opt/node/bin/node"}
    assert settings.config_path == str(config)


def test_from_file_accepts_top_level_keys(tmp_path: Path) -> None:
    config = tmp_path / "tinker.toml"
    config.write_text("keep_failed_scripts = false\n", encoding="utf-8")
    settings = EngineSettings.from_file(str(config))
    assert settings.keep_failed_scripts is False
    assert settings.timeout_seconds == 30


def test_from_file_rejects_bad_types(tmp_path: Path) -> None:
    config = tmp_path / "tinker.toml"
    config.write_text('timeout_seconds = "soon"\n', encoding="utf-8")
    with pytest.raises(ValueError, match="timeout_seconds"):
        EngineSettings.from_file(str(config))
    config.write_text("[interpreters]\nnode = 3\n", encoding="utf-8")
    with pytest.raises(ValueError, match="interpreters"):
        EngineSettings.from_file(str(config))
