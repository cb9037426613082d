# ioeye/exceptions.py - Error taxonomy
"""Custom exceptions raised by ioeye."""


class IOEyeError(Exception):
    """Base class for ioeye errors."""


class InsufficientDataError(IOEyeError):
    """Raised when an entity has too little history for the requested analysis."""

    def __init__(self, entity: str, available: int, required: int):
        self.entity = entity
        self.available = available
        self.required = required
        super().__init__(
            f"insufficient data for {entity}: {available} snapshot(s), need {required}"
        )


class OutOfOrderSnapshotError(IOEyeError, ValueError):
    """Raised when a snapshot is older than the entity's latest stored snapshot."""


class DirectoryError(IOEyeError):
    """Raised when the entity directory cannot list monitored entities."""


class TracerError(IOEyeError, RuntimeError):
    """Raised when kernel probes cannot be loaded or attached."""
