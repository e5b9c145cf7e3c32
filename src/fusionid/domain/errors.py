"""Named failures raised by the fusion engine."""

from __future__ import annotations


class FusionError(RuntimeError):
    """Base class for engine failures the command layer should surface."""


class CounterNotInitializedError(FusionError):
    """Raised when a persisted counter is incremented before initialisation."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Counter {key} was not initialized. Call init_counter() first.")


class UniqueValueExhaustedError(FusionError):
    """Raised when no collision-free value was found within the attempt budget."""

    def __init__(self, *, attribute: str, attempts: int) -> None:
        self.attribute = attribute
        self.attempts = attempts
        super().__init__(
            f"Failed to generate unique value for attribute {attribute} after {attempts} attempts"
        )


class NativeKeyConflictError(FusionError):
    """Raised when a record's output key would change after assignment."""

    def __init__(self, *, current: str, proposed: str) -> None:
        self.current = current
        self.proposed = proposed
        super().__init__(f"Record key already assigned: current={current}, proposed={proposed}")


class MissingOutputKeyError(FusionError):
    """Raised when neither the identity attribute nor a native key is available."""

    def __init__(self, *, record_name: str | None, attribute: str) -> None:
        self.record_name = record_name
        self.attribute = attribute
        super().__init__(
            f"Cannot derive output key for {record_name or 'unnamed record'}: "
            f"attribute {attribute} is empty and no native key is set"
        )


class WorkPoolNotLoadedError(FusionError):
    """Raised when a phase runs before the work pool was loaded."""

    def __init__(self) -> None:
        super().__init__("Managed accounts have not been loaded")


class UnknownSourceError(FusionError):
    """Raised when a record references a source missing from configuration."""

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        super().__init__(f"Source {source_name} is not configured")


class FusionAccountNotFoundError(FusionError):
    """Raised when a single-record flow names an account the record source lacks."""

    def __init__(self, native_identity: str) -> None:
        self.native_identity = native_identity
        super().__init__(f"Fusion account not found: {native_identity}")
