"""
Periodic inventory gathering and flushing of the metric buffer.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from .collector import Collector
from .config import ForwarderConfig
from .errors import DeliveryExhausted
from .metrics_buffer import MetricBuffer

logger = logging.getLogger(__name__)

# Seconds to wait for a loop thread to finish on stop
JOIN_TIMEOUT = 10


class Forwarder:
    """
    Runs the gather and flush loops around one metric buffer.

    Gathering and flushing each run on their own thread. A flush that is
    still retrying delays the next scheduled flush rather than overlapping it.
    """

    def __init__(self, forwarder_config: ForwarderConfig, buffer: MetricBuffer, collectors: List[Collector]):
        """
        Initialize the forwarder.

        Args:
            forwarder_config (ForwarderConfig): Regions, intervals and failure policy
            buffer (MetricBuffer): Buffer shared by the collectors and the flush loop
            collectors (list): Collectors run for every region on each gather
        """
        self.config = forwarder_config
        self.buffer = buffer
        self.collectors = collectors

        self._stopping = threading.Event()
        self._threads: List[threading.Thread] = []
        self.running = False
        self.failed = False

    def gather_once(self) -> int:
        """
        Run every collector for every configured region.

        Regions are gathered concurrently. A failing region or collector is
        logged and skipped.

        Returns:
            int: Number of records added without evicting older ones
        """
        logger.info("Gathering inventory for %d regions", len(self.config.regions))
        with ThreadPoolExecutor(max_workers=self.config.gather_workers,
                                thread_name_prefix='gather') as pool:
            futures = {pool.submit(self._gather_region, region): region for region in self.config.regions}

        admitted = 0
        for future, region in futures.items():
            try:
                admitted += future.result()
            except Exception as e:
                logger.error("Error gathering metrics for %s: %s", region, str(e))

        logger.info("Gathered %d metrics, %d pending", admitted, len(self.buffer))
        return admitted

    def _gather_region(self, region: str) -> int:
        return sum(collector.collect_into(self.buffer, region) for collector in self.collectors)

    def flush_once(self) -> int:
        """
        Flush the buffer to the sink.

        Returns:
            int: Bytes written, 0 if the buffer was empty or delivery failed

        Raises:
            DeliveryExhausted: If delivery failed and the config treats that as fatal
        """
        sent_before = self.buffer.records_sent
        try:
            written = self.buffer.flush()
        except DeliveryExhausted as e:
            logger.error("Dropped %d metrics after %d failed attempts: %s",
                         self.buffer.records_sent - sent_before, e.attempts, str(e))
            if self.config.fatal_on_exhausted:
                raise
            return 0

        if written:
            logger.info("Sent %d bytes of metrics, %d metrics sent in total",
                        written, self.buffer.records_sent)
        return written

    def _run_every(self, interval: float, action: Callable[[], int]) -> None:
        while not self._stopping.is_set():
            try:
                action()
            except DeliveryExhausted:
                logger.critical("Metric delivery failed and is configured as fatal, stopping")
                self.failed = True
                self._stopping.set()
                break
            except Exception as e:
                logger.error("Error in %s: %s", threading.current_thread().name, str(e))
            self._stopping.wait(interval)

    def start(self) -> None:
        """Start the gather and flush threads."""
        if self.running:
            logger.warning("Forwarder already running")
            return

        self.running = True
        self._stopping.clear()
        self._threads = [
            threading.Thread(target=self._run_every, name='gather-loop',
                             args=(self.config.gather_interval, self.gather_once), daemon=True),
            threading.Thread(target=self._run_every, name='flush-loop',
                             args=(self.config.flush_interval, self.flush_once), daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Forwarder started: gathering every %ss, flushing every %ss",
                    self.config.gather_interval, self.config.flush_interval)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the forwarder is asked to stop.

        Returns:
            bool: True if stopping was requested, False on timeout
        """
        return self._stopping.wait(timeout)

    def request_stop(self) -> None:
        """Ask both loops to finish; safe to call from a signal handler."""
        self._stopping.set()

    def stop(self) -> int:
        """
        Stop both loops and drain the buffer with a final flush.

        A failed final flush is logged, not raised. Under the fatal policy it
        marks the forwarder as failed.

        Returns:
            int: Bytes written by the final flush
        """
        if self.running:
            logger.info("Stopping metrics gathering")
            self._stopping.set()
            for thread in self._threads:
                thread.join(timeout=JOIN_TIMEOUT)
                if thread.is_alive():
                    logger.warning("%s did not stop cleanly", thread.name)
            self._threads = []
            self.running = False

        logger.info("Flushing remaining metrics")
        try:
            written = self.flush_once()
        except DeliveryExhausted:
            self.failed = True
            written = 0
        logger.info("%d metrics were sent, %d dropped on overflow",
                    self.buffer.records_sent, self.buffer.records_dropped)
        return written
