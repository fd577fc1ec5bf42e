"""Tests for the scripted engine and engine selection."""

import pytest

from classvoice.config import EngineConfig
from classvoice.engine import ScriptedSpeechEngine, build_engine
from classvoice.exceptions import ConfigurationError, EngineError


class TestScriptedSpeechEngine:
    """Tests for ScriptedSpeechEngine."""

    def test_start_without_auto_start(self, listener):
        engine = ScriptedSpeechEngine()
        engine.bind(listener)
        engine.start()

        assert engine.start_calls == 1
        assert engine.is_running()
        assert listener.events == []

    def test_auto_start_confirms(self, listener):
        engine = ScriptedSpeechEngine(auto_start=True)
        engine.bind(listener)
        engine.start()

        assert listener.events == [("start",)]

    def test_fail_next_start(self):
        engine = ScriptedSpeechEngine()
        engine.fail_next_start(times=2)

        with pytest.raises(EngineError):
            engine.start()
        with pytest.raises(EngineError):
            engine.start()
        engine.start()

        assert engine.start_calls == 3
        assert engine.is_running()

    def test_fail_with_custom_error(self):
        engine = ScriptedSpeechEngine()
        engine.fail_next_start(error=OSError("device busy"))

        with pytest.raises(OSError, match="device busy"):
            engine.start()

    def test_emits_events(self, listener):
        engine = ScriptedSpeechEngine()
        engine.bind(listener)

        engine.emit_start()
        engine.emit_result("partial", is_final=False)
        engine.emit_result("done")
        engine.emit_error("network")
        engine.emit_end()

        assert listener.events == [
            ("start",),
            ("result", "partial", False),
            ("result", "done", True),
            ("error", "network"),
            ("end",),
        ]
        assert not engine.is_running()

    def test_unbound_engine_is_silent(self):
        engine = ScriptedSpeechEngine()
        engine.emit_end()  # Should not raise

    def test_name(self):
        assert ScriptedSpeechEngine().name == "ScriptedSpeechEngine"

    def test_warm_up_is_noop(self, listener):
        engine = ScriptedSpeechEngine(auto_start=True)
        engine.bind(listener)
        engine.warm_up()

        assert listener.events == []
        assert not engine.is_running()


class TestBuildEngine:
    """Tests for build_engine."""

    def test_scripted(self):
        engine = build_engine(EngineConfig(backend="scripted"))
        assert isinstance(engine, ScriptedSpeechEngine)
        assert engine.auto_start

    def test_backend_case_insensitive(self):
        assert isinstance(build_engine(EngineConfig(backend="Scripted")), ScriptedSpeechEngine)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError, match="cloud"):
            build_engine(EngineConfig(backend="cloud"))

    def test_local(self, engine_config):
        from classvoice.engine.local import LocalSpeechEngine

        engine_config.backend = "local"
        engine = build_engine(engine_config)

        assert isinstance(engine, LocalSpeechEngine)
        assert not engine.is_running()
