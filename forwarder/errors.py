"""
Exceptions raised by the metric forwarder.
"""


class ForwarderError(Exception):
    """Base class for all forwarder errors."""


class ConfigError(ForwarderError):
    """Raised when the forwarder configuration is missing or invalid."""


class SinkError(ForwarderError):
    """A single delivery attempt to a sink failed."""


class DeliveryExhausted(ForwarderError):
    """
    Every delivery attempt for one payload failed.

    The payload is not re-queued; the caller decides whether this is fatal.
    """

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
