# tests/test_settings.py
from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

import efetch.utils.settings as settings_mod
from efetch.utils.client_config import ClientConfig

_ENV_KEYS = (
    "EFETCH_BASE_URL",
    "EFETCH_RETRY_COUNT",
    "EFETCH_DEFAULT_HEADERS",
    "EFETCH_TIMEOUT_SECONDS",
    "EFETCH_RETRY_BACKOFF_BASE",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    settings_mod._load_yaml_parameters.cache_clear()
    settings_mod.get_settings.cache_clear()
    yield
    settings_mod._load_yaml_parameters.cache_clear()
    settings_mod.get_settings.cache_clear()


def _write_yaml(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, text: str) -> Path:
    path = tmp_path / "parameters.yaml"
    path.write_text(text, encoding="utf-8")
    monkeypatch.setattr(settings_mod, "PARAMETERS_PATH", path)
    return path


def test_yaml_defaults_are_loaded(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _write_yaml(
        monkeypatch,
        tmp_path,
        "base_url: http://yaml.test/api\n"
        "retry_count: 1\n"
        "default_headers:\n"
        "  Accept: application/json\n",
    )

    s = settings_mod.get_settings()

    assert str(s.base_url) == "http://yaml.test/api"
    assert s.retry_count == 1
    assert s.default_headers == {"Accept": "application/json"}


def test_env_overrides_yaml(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _write_yaml(monkeypatch, tmp_path, "base_url: http://yaml.test/api\nretry_count: 1\n")
    monkeypatch.setenv("EFETCH_RETRY_COUNT", "5")
    monkeypatch.setenv("EFETCH_DEFAULT_HEADERS", '{"X-Trace": "1"}')

    s = settings_mod.get_settings()

    assert str(s.base_url) == "http://yaml.test/api"
    assert s.retry_count == 5
    assert s.default_headers == {"X-Trace": "1"}


def test_missing_yaml_falls_back_to_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(settings_mod, "PARAMETERS_PATH", tmp_path / "does-not-exist.yaml")
    monkeypatch.setenv("EFETCH_BASE_URL", "http://env.test/api")

    s = settings_mod.get_settings()

    assert str(s.base_url) == "http://env.test/api"
    assert s.retry_count == 3
    assert s.retry_backoff_base == 2.0


def test_missing_base_url_raises_runtime_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _write_yaml(monkeypatch, tmp_path, "retry_count: 2\n")

    with pytest.raises(RuntimeError, match="base_url"):
        settings_mod.get_settings()


def test_non_dict_yaml_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _write_yaml(monkeypatch, tmp_path, "- just\n- a list\n")
    monkeypatch.setenv("EFETCH_BASE_URL", "http://env.test")

    assert settings_mod.get_settings().retry_count == 3


def test_client_config_from_settings_uses_backoff_base(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _write_yaml(
        monkeypatch,
        tmp_path,
        "base_url: http://yaml.test/api\nretry_backoff_base: 0.5\ntimeout_seconds: 2\n",
    )

    cfg = ClientConfig.from_settings(settings_mod.get_settings())

    assert cfg.base_url == "http://yaml.test/api"
    assert cfg.retry_interval(0) == 1.0
    assert cfg.retry_interval(2) == 0.25
    assert cfg.timeout_seconds == 2.0
