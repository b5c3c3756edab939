"""Exception hierarchy shared by the manager, registries and integrations."""

from collections.abc import Mapping


class TelemetryError(Exception):
    """Base class for every error raised by telemetryhub."""


class ConfigurationError(TelemetryError):
    """Backend configuration is invalid or incomplete."""


class BackendConnectionError(TelemetryError, ConnectionError):
    """Handshake with a monitoring backend failed."""


class NotFoundError(TelemetryError, LookupError):
    """Unknown metric or integration name."""


class AlreadyRegisteredError(TelemetryError):
    """A metric with the same name is already registered."""


class DuplicateNameError(AlreadyRegisteredError):
    """An integration with the same name is already registered."""


class WrongKindError(TelemetryError):
    """Operation is invalid for the metric's concrete kind."""


class UnsupportedOperationError(WrongKindError):
    """Metric kind cannot accept the requested mutation."""


class LabelMismatchError(TelemetryError, ValueError):
    """Supplied labels do not match the metric's declared label names."""


class MetricValueTypeError(TelemetryError, TypeError):
    """A pushed metric value is not numeric."""


class TransportError(TelemetryError):
    """A request to a monitoring backend failed on the wire.

    Attributes:
        status_code: HTTP status returned by the backend, if any.
        body: Response body (truncated), if any.
    """

    def __init__(
        self, message: str, status_code: int | None = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class InitializationError(TelemetryError):
    """An integration could not be constructed or connected."""

    def __init__(self, integration: str, cause: Exception) -> None:
        super().__init__(f"failed to initialize {integration}: {cause}")
        self.integration = integration
        self.cause = cause


class PartialFailureError(TelemetryError):
    """One logical operation failed for some of its targets.

    Attributes:
        operation: Name of the operation that was fanned out.
        failures: Mapping of target name to the exception it raised.
    """

    def __init__(self, operation: str, failures: Mapping[str, Exception]) -> None:
        self.operation = operation
        self.failures = dict(failures)
        detail = "; ".join(
            f"{name}: {self.failures[name]}" for name in sorted(self.failures)
        )
        super().__init__(
            f"{operation} failed for {len(self.failures)} target(s): {detail}"
        )

    @property
    def names(self) -> list[str]:
        """Sorted names of the failing targets."""
        return sorted(self.failures)


class FanOutError(PartialFailureError):
    """Some integrations failed during a manager fan-out."""


class StreamPushError(PartialFailureError, TransportError):
    """Some log streams could not be pushed during a flush."""
