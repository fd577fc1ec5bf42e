"""Engine error taxonomy and classification."""

from enum import Enum


class EngineErrorKind(str, Enum):
    """Closed set of failures a speech engine can report."""
    PERMISSION_DENIED = "permission-denied"
    NO_SPEECH = "no-speech"
    NETWORK = "network"
    ABORTED = "aborted"
    AUDIO_CAPTURE = "audio-capture"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: "str | EngineErrorKind") -> "EngineErrorKind":
        """Map a raw engine error string onto a known kind.

        Browser-style codes such as ``not-allowed`` are accepted as aliases.
        Anything unrecognised becomes ``UNKNOWN``.
        """
        if isinstance(raw, cls):
            return raw
        key = str(raw).strip().lower().replace("_", "-")
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN


_ALIASES = {
    "not-allowed": EngineErrorKind.PERMISSION_DENIED,
    "service-not-allowed": EngineErrorKind.PERMISSION_DENIED,
    "permission": EngineErrorKind.PERMISSION_DENIED,
    "no-speech-timeout": EngineErrorKind.NO_SPEECH,
}


class Recovery(str, Enum):
    """How the capture pipeline reacts to an engine error."""
    FATAL = "fatal"
    IGNORE = "ignore"
    RESTART = "restart"


def classify_engine_error(kind: "str | EngineErrorKind") -> Recovery:
    """Decide how to recover from an engine error.

    Permission problems need the user to intervene, silence is never an
    error, and everything else is retried through the restart controller.
    """
    kind = EngineErrorKind.parse(kind)
    if kind is EngineErrorKind.PERMISSION_DENIED:
        return Recovery.FATAL
    if kind is EngineErrorKind.NO_SPEECH:
        return Recovery.IGNORE
    return Recovery.RESTART
