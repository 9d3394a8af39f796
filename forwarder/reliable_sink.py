"""
Retrying delivery of metric payloads to a sink.
"""
import hashlib
import logging
from typing import Optional

from retrying import retry

from . import config
from .errors import DeliveryExhausted
from .sinks import Sink

logger = logging.getLogger(__name__)


def partition_key_for(payload: bytes) -> str:
    """
    Derive the partition key for a payload.

    Hashing the content spreads records over all shards while identical
    payloads always land on the same one.

    Args:
        payload (bytes): The payload to route

    Returns:
        str: Hex MD5 digest of the payload
    """
    return hashlib.md5(payload).hexdigest()


def _retry_on_any_error(exception: Exception) -> bool:
    """Every failure of a single attempt is worth another try."""
    return isinstance(exception, Exception)


class ReliableSink:
    """Sends payloads to a sink, retrying failed attempts with exponential backoff."""

    def __init__(
        self,
        sink: Sink,
        max_retries: int = config.MAX_RETRIES,
        backoff: float = config.BACKOFF,
        max_delay: Optional[float] = config.MAX_RETRY_DELAY
    ):
        """
        Initialize the reliable sink.

        Args:
            sink (Sink): Transport used for each attempt. Not owned.
            max_retries (int): Total number of attempts per payload
            backoff (float): Seconds to wait after the first failure, doubled after each further one
            max_delay (float, optional): Seconds after which no further attempt is started

        Raises:
            ValueError: If max_retries is smaller than 1, backoff is negative or max_delay is not positive
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        if backoff < 0:
            raise ValueError(f"backoff must not be negative, got {backoff}")
        if max_delay is not None and max_delay <= 0:
            raise ValueError(f"max_delay must be positive, got {max_delay}")

        self.sink = sink
        self.max_retries = max_retries
        self.backoff = backoff
        self.max_delay = max_delay

    def _backoff_ms(self, previous_attempt_number: int, delay_since_first_attempt_ms: int) -> float:
        """
        Wait before the next attempt: backoff, 2 * backoff, 4 * backoff, ...

        With a max_delay the wait is cut short so the next attempt starts no
        later than the deadline.
        """
        wait_ms = self.backoff * 1000 * 2 ** (previous_attempt_number - 1)
        if self.max_delay is None:
            return wait_ms
        return max(0, min(wait_ms, self.max_delay * 1000 - delay_since_first_attempt_ms))

    def _should_stop(self, previous_attempt_number: int, delay_since_first_attempt_ms: int) -> bool:
        """Stop after max_retries attempts or once max_delay has been used up."""
        if previous_attempt_number >= self.max_retries:
            return True
        return self.max_delay is not None and delay_since_first_attempt_ms >= self.max_delay * 1000

    def send(self, payload: bytes) -> int:
        """
        Send a payload, retrying until it is accepted or attempts run out.

        Args:
            payload (bytes): The payload to deliver

        Returns:
            int: Length of the delivered payload

        Raises:
            DeliveryExhausted: If every attempt failed, chained to the last error
        """
        partition_key = partition_key_for(payload)
        attempts = 0

        @retry(
            retry_on_exception=_retry_on_any_error,
            stop_func=self._should_stop,
            wait_func=self._backoff_ms
        )
        def _attempt():
            nonlocal attempts
            attempts += 1
            try:
                return self.sink.write(payload, partition_key)
            except Exception as e:
                logger.warning("Send attempt %d/%d failed: %s", attempts, self.max_retries, str(e))
                raise

        try:
            _attempt()
        except Exception as e:
            raise DeliveryExhausted(
                f"Failed to send {len(payload)} bytes after {attempts} attempts: {e}",
                attempts=attempts
            ) from e

        if attempts > 1:
            logger.info("Sent %d bytes after %d attempts", len(payload), attempts)
        return len(payload)
