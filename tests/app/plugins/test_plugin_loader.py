"""Testes do carregamento de plugins por caminho."""

from __future__ import annotations

import logging
import sys
import types
from pathlib import Path

import pytest

from app.plugins import GreetingPlugin, load_plugin, load_plugins
from utils.errors import ValidationError


class TestLoadPlugin:
    def test_default_factory(self) -> None:
        assert isinstance(load_plugin("app.plugins.greeting"), GreetingPlugin)

    def test_explicit_factory(self) -> None:
        assert isinstance(load_plugin("app.plugins.greeting:GreetingPlugin"), GreetingPlugin)

    def test_missing_factory(self) -> None:
        with pytest.raises(ValidationError):
            load_plugin("app.plugins.greeting:nao_existe")

    def test_factory_must_return_plugin(self) -> None:
        with pytest.raises(ValidationError):
            load_plugin("app.domain.messages:now_ms")

    def test_missing_module(self) -> None:
        with pytest.raises(ImportError):
            load_plugin("app.plugins.nao_existe")

    def test_empty_path(self) -> None:
        with pytest.raises(ValidationError):
            load_plugin(":get_plugin")


class TestLoadPlugins:
    def test_failures_are_skipped(self) -> None:
        plugins = load_plugins(["app.plugins.greeting", "app.plugins.nao_existe", ""])
        assert [p.name for p in plugins] == ["greeting"]

    def test_raising_factory_does_not_block_next_plugins(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        module = types.ModuleType("zapbot_plugin_quebrado")

        def get_plugin() -> None:
            raise RuntimeError("boom")

        module.get_plugin = get_plugin  # type: ignore[attr-defined]
        monkeypatch.setitem(sys.modules, "zapbot_plugin_quebrado", module)

        with caplog.at_level(logging.ERROR, logger="app.plugins.loader"):
            plugins = load_plugins(["zapbot_plugin_quebrado:get_plugin", "app.plugins.greeting"])

        assert [p.name for p in plugins] == ["greeting"]
        failures = [r for r in caplog.records if r.getMessage() == "plugin_load_failed"]
        assert len(failures) == 1
        assert failures[0].error_type == "RuntimeError"
        assert "load" in failures[0].error

    def test_module_failing_on_import_is_skipped(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "zapbot_plugin_import_quebrado.py").write_text(
            "raise NameError('nome_indefinido')\n", encoding="utf-8"
        )
        monkeypatch.syspath_prepend(str(tmp_path))
        monkeypatch.delitem(sys.modules, "zapbot_plugin_import_quebrado", raising=False)

        plugins = load_plugins(["zapbot_plugin_import_quebrado", "app.plugins.greeting"])

        assert [p.name for p in plugins] == ["greeting"]
