"""Speech engines that feed the capture pipeline."""

from ..config import EngineConfig
from ..exceptions import ConfigurationError
from .base import ContinuousSpeechEngine, EngineListener
from .scripted import ScriptedSpeechEngine

__all__ = [
    "ContinuousSpeechEngine",
    "EngineListener",
    "ScriptedSpeechEngine",
    "build_engine",
]


def build_engine(config: EngineConfig) -> ContinuousSpeechEngine:
    """Create the engine named by ``config.backend``.

    The local engine pulls in the audio and model stack, so it is imported
    only when selected.
    """
    backend = config.backend.lower()
    if backend == "local":
        from .local import LocalSpeechEngine
        return LocalSpeechEngine(config)
    if backend == "scripted":
        return ScriptedSpeechEngine(auto_start=True)
    raise ConfigurationError(f"Unknown speech engine backend: {config.backend}")
