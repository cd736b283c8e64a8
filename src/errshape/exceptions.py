"""Custom exception hierarchy for the errshape package."""


class ErrshapeError(Exception):
    """Base exception for all errshape errors."""


class ConfigurationError(ErrshapeError):
    """Missing or invalid configuration."""


class InputError(ErrshapeError):
    """Malformed input data (message file, JSON payload)."""


class PatternConfigError(ConfigurationError):
    """Invalid detector configuration (override file, template, unknown name)."""

    def __init__(self, message: str, detector: str | None = None) -> None:
        self.detector = detector
        if detector:
            message = f"detector {detector!r}: {message}"
        super().__init__(message)


class PatternCompileError(PatternConfigError):
    """Detector pattern failed to compile."""
