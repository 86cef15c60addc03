from __future__ import annotations


class CallMonitorError(Exception):
    """Base class for errors raised by the call monitor core."""


class UnknownOutcomeError(CallMonitorError, ValueError):
    """An outcome, classification tag or tool name that maps to no outcome."""

    def __init__(self, value: str | None):
        self.value = value
        super().__init__(f"unknown outcome: {value}")


class MissingPhoneError(CallMonitorError, ValueError):
    def __init__(self):
        super().__init__("phone required")


class UpstreamError(CallMonitorError):
    """The call platform API is unreachable, unconfigured or answered non-2xx."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
