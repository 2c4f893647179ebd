from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_LOG_FORMATS = {"console", "json"}
_LOG_LEVELS = {"debug", "info", "warning", "warn", "error", "critical"}


def _default_settings_path() -> Path:
    """Return bundled default settings TOML path.

    Example:
        ```python
        path = _default_settings_path()
        ```
    """
    return Path(__file__).with_name("default_settings.toml")


def _read_settings_toml(path: Path) -> dict[str, Any]:
    """Read a settings TOML file and return the normalized settings table.

    Example:
        ```python
        raw = _read_settings_toml(Path("/tmp/tinker.toml"))
        ```
    """
    if not path.exists():
        return {
            "auto_log": True,
            "timeout_seconds": 30,
            "user_data_dir": "~/.tinker-runner",
            "keep_failed_scripts": True,
            "log_level": "warning",
            "log_format": "console",
            "interpreters": {},
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    settings_obj = raw.get("settings", raw)
    if not isinstance(settings_obj, dict):
        raise ValueError("Settings config must be a TOML table")
    return settings_obj


def _dict_of_str(value: Any, field_name: str) -> dict[str, str]:
    """Validate and normalize a string-to-string settings table.

    Example:
        ```python
        paths = _dict_of_str({"node": "/usr/bin/node"}, "interpreters")
        ```
    """
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{field_name}' must be a table of strings")
    out: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(item, str):
            raise ValueError(f"'{field_name}' must contain only strings")
        out[str(key)] = item
    return out


def _optional_str(value: Any, field_name: str) -> str | None:
    """Validate an optional string setting.

    Example:
        ```python
        cwd = _optional_str("/tmp", "working_dir")
        ```
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{field_name}' must be a string")
    return value


_DEFAULT_SETTINGS_RAW = _read_settings_toml(_default_settings_path())
DEFAULT_AUTO_LOG = bool(_DEFAULT_SETTINGS_RAW.get("auto_log", True))
DEFAULT_TIMEOUT_SECONDS = float(_DEFAULT_SETTINGS_RAW.get("timeout_seconds", 30))
DEFAULT_USER_DATA_DIR = str(_DEFAULT_SETTINGS_RAW.get("user_data_dir", "~/.tinker-runner"))
DEFAULT_KEEP_FAILED_SCRIPTS = bool(_DEFAULT_SETTINGS_RAW.get("keep_failed_scripts", True))
DEFAULT_LOG_LEVEL = str(_DEFAULT_SETTINGS_RAW.get("log_level", "warning"))
DEFAULT_LOG_FORMAT = str(_DEFAULT_SETTINGS_RAW.get("log_format", "console"))
DEFAULT_INTERPRETERS = _dict_of_str(_DEFAULT_SETTINGS_RAW.get("interpreters", {}), "interpreters")


@dataclass(slots=True)
class EngineSettings:
    """Engine configuration shared by every run of a session.

    Example:
        ```python
        settings = EngineSettings(auto_log=False, timeout_seconds=5)
        ```
    """

    auto_log: bool = DEFAULT_AUTO_LOG
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    user_data_dir: str = DEFAULT_USER_DATA_DIR
    keep_failed_scripts: bool = DEFAULT_KEEP_FAILED_SCRIPTS
    working_dir: str | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    log_format: str = DEFAULT_LOG_FORMAT
    interpreters: dict[str, str] = field(default_factory=lambda: DEFAULT_INTERPRETERS.copy())
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate values after dataclass initialization.

        Example:
            ```python
            EngineSettings(timeout_seconds=0)  # 0 disables the timeout
            ```
        """
        if self.timeout_seconds < 0:
            raise ValueError("timeout_seconds must be >= 0")
        if self.log_format not in _LOG_FORMATS:
            raise ValueError("log_format must be 'console' or 'json'")
        if self.log_level.lower() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log_level: {self.log_level}")

    @property
    def data_dir(self) -> Path:
        """Return the expanded per-user data directory.

        Example:
            ```python
            EngineSettings(user_data_dir="~/.tinker").data_dir
            ```
        """
        return Path(self.user_data_dir).expanduser()

    @property
    def timeout(self) -> float | None:
        """Return the wall-clock limit, or ``None`` when disabled.

        Example:
            ```python
            assert EngineSettings(timeout_seconds=0).timeout is None
            ```
        """
        return self.timeout_seconds or None

    @classmethod
    def from_file(cls, config_path: str) -> "EngineSettings":
        """Create settings from a TOML file.

        Example:
            ```python
            settings = EngineSettings.from_file("/tmp/tinker.toml")
            ```
        """
        raw = _read_settings_toml(Path(config_path))
        timeout_raw = raw.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        if isinstance(timeout_raw, bool) or not isinstance(timeout_raw, (int, float)):
            raise ValueError("'timeout_seconds' must be a number")
        return cls(
            auto_log=bool(raw.get("auto_log", DEFAULT_AUTO_LOG)),
            timeout_seconds=float(timeout_raw),
            user_data_dir=str(raw.get("user_data_dir", DEFAULT_USER_DATA_DIR)),
            keep_failed_scripts=bool(raw.get("keep_failed_scripts", DEFAULT_KEEP_FAILED_SCRIPTS)),
            working_dir=_optional_str(raw.get("working_dir"), "working_dir"),
            log_level=str(raw.get("log_level", DEFAULT_LOG_LEVEL)),
            log_format=str(raw.get("log_format", DEFAULT_LOG_FORMAT)),
            interpreters=_dict_of_str(raw.get("interpreters", {}), "interpreters"),
            config_path=config_path,
        )
