"""
Bounded buffer for metric records waiting to be forwarded to the sink.
"""
import logging
import threading
from collections import deque
from typing import List

from . import config

logger = logging.getLogger(__name__)

RECORD_TERMINATOR = "\n"


class MetricBuffer:
    """
    Thread-safe FIFO of metric records with a fixed capacity.

    When full, adding a record evicts the oldest one. Flushing drains the
    buffer in one step and hands the joined payload to the sender; records
    added while a flush is delivering land in the next batch.
    """

    def __init__(self, sender, size: int = config.BUFFER_SIZE):
        """
        Initialize the metric buffer.

        Args:
            sender: Object with a ``send(payload: bytes) -> int`` method,
                normally a ReliableSink.
            size (int): Maximum number of records kept in memory.

        Raises:
            ValueError: If size is smaller than 1
        """
        if size < 1:
            raise ValueError(f"Buffer size must be at least 1, got {size}")

        self.sender = sender
        self._size = size
        self._records = deque()
        self._lock = threading.Lock()
        # Serializes deliveries so batches leave in the order they were drained
        self._flush_lock = threading.Lock()
        self._records_sent = 0
        self._records_dropped = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def records_sent(self) -> int:
        """Number of records handed to the sender, whether or not delivery succeeded."""
        with self._lock:
            return self._records_sent

    @property
    def records_dropped(self) -> int:
        """Number of records evicted because the buffer was full."""
        with self._lock:
            return self._records_dropped

    def add(self, record: str) -> bool:
        """
        Add a record to the tail of the buffer.

        Records must not contain a line terminator.

        Args:
            record (str): The metric record to buffer

        Returns:
            bool: False if the oldest record had to be dropped to make room
        """
        with self._lock:
            self._records.append(record)
            if len(self._records) <= self._size:
                return True
            dropped = self._records.popleft()
            self._records_dropped += 1

        logger.warning("Buffer overflow, dropped oldest metric: %s", dropped)
        return False

    def snapshot(self) -> List[str]:
        """Return a copy of the pending records, oldest first."""
        with self._lock:
            return list(self._records)

    def flush(self) -> int:
        """
        Drain the buffer and send its contents as a single payload.

        Every record is followed by a newline, including the last one. The
        sent counter is bumped before delivery, and a payload whose delivery
        fails is not put back.

        Returns:
            int: Bytes written by the sender, 0 if the buffer was empty

        Raises:
            DeliveryExhausted: If the sender gave up on the payload
        """
        with self._flush_lock:
            with self._lock:
                if not self._records:
                    return 0
                batch = list(self._records)
                self._records.clear()
                self._records_sent += len(batch)

            payload = "".join(record + RECORD_TERMINATOR for record in batch).encode("utf-8")
            logger.debug("Flushing %d metrics (%d bytes)", len(batch), len(payload))
            return self.sender.send(payload)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
