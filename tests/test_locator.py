from pathlib import Path

import pytest

from tinker_runner import RuntimeLocator
from tinker_runner import locator as locator_module
from tinker_runner.locator import natural_key


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")
    return path


@pytest.fixture
def no_path_lookup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(locator_module.shutil, "which", lambda tool: None)
    monkeypatch.setattr(locator_module, "_common_paths", lambda *args: [])


def test_override_wins(tmp_path: Path) -> None:
    locator = RuntimeLocator({"node": "/opt/node/bin/node"}, home=tmp_path)
    assert locator.locate_interpreter("js") == "/opt/node/bin/node"


def test_newest_version_manager_install_is_preferred(tmp_path: Path, no_path_lookup: None) -> None:
    versions = tmp_path / ".nvm" / "versions" / "node"
    _touch(versions / "v9.11.2" / "bin" / "node")
    newest = _touch(versions / "v10.2.0" / "bin" / "node")
    _touch(versions / "v10.2.0" / "bin" / "npm")
    (versions / "v11.0.0" / "bin").mkdir(parents=True)
    locator = RuntimeLocator(home=tmp_path)
    assert locator.locate_interpreter("javascript") == str(newest)
    assert locator.locate_package_manager("javascript") == str(versions / "v10.2.0" / "bin" / "npm")


def test_path_lookup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(locator_module.shutil, "which", lambda tool: f"/fake/bin/{tool}")
    locator = RuntimeLocator(home=tmp_path)
    assert locator.locate_interpreter("php") == "/fake/bin/php"
    assert locator.locate_package_manager("php") == "/fake/bin/composer"


def test_common_paths_then_bare_name(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    installed = _touch(tmp_path / "usr" / "bin" / "php")
    monkeypatch.setattr(locator_module.shutil, "which", lambda tool: None)
    monkeypatch.setattr(
        locator_module,
        "_common_paths",
        lambda tool, *args: [str(tmp_path / "missing"), str(installed)] if tool == "php" else [],
    )
    locator = RuntimeLocator(home=tmp_path)
    assert locator.locate_interpreter("php") == str(installed)
    assert locator.locate_package_manager("php") == "composer"


def test_missing_home_never_raises(tmp_path: Path, no_path_lookup: None) -> None:
    locator = RuntimeLocator(home=tmp_path / "does-not-exist")
    assert locator.locate_interpreter("python") == "python3"
    assert locator.locate_interpreter("cobol") == "cobol"


def test_results_are_cached_until_cleared(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    def _which(tool: str) -> str:
        calls.append(tool)
        return f"/fake/{tool}"

    monkeypatch.setattr(locator_module.shutil, "which", _which)
    locator = RuntimeLocator(home=tmp_path)
    locator.resolve("node")
    locator.resolve("node")
    assert calls == ["node"]
    locator.clear_cache()
    locator.resolve("node")
    assert calls == ["node", "node"]


def test_set_override_replaces_cached_answer(tmp_path: Path, no_path_lookup: None) -> None:
    locator = RuntimeLocator(home=tmp_path)
    assert locator.resolve("node") == "node"
    locator.set_override("node", "/custom/node")
    assert locator.resolve("node") == "/custom/node"
    locator.set_override("node", None)
    assert locator.resolve("node") == "node"


def test_windows_common_paths() -> None:
    paths = locator_module._common_paths("php", "win32", Path("C:/Users/me"), {"PROGRAMFILES": "C:\\PF"})
    assert "C:\\xampp\\php\\php.exe" in paths


def test_natural_key_orders_numbers_numerically() -> None:
    names = ["v10.0.0", "v9.1.0", "v9.10.0", "v9.2.0"]
    assert sorted(names, key=natural_key) == ["v9.1.0", "v9.2.0", "v9.10.0", "v10.0.0"]
