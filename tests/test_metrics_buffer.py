"""Unit tests for the bounded metric buffer."""

import threading

import pytest

from forwarder.errors import DeliveryExhausted
from forwarder.metrics_buffer import MetricBuffer


class TestAdd:
    """Test adding records and overflow handling."""

    def test_add_within_capacity(self, sender):
        """Records below capacity are admitted."""
        buffer = MetricBuffer(sender, size=2)

        assert buffer.add("namespace.metric 1 11111") is True
        assert buffer.add("namespace.metric 2 22222") is True
        assert len(buffer) == 2

    def test_overflow_evicts_oldest(self, sender):
        """The N+1th add drops exactly the first record."""
        size = 3
        buffer = MetricBuffer(sender, size=size)
        records = ["r%d" % i for i in range(1, size + 2)]

        results = [buffer.add(record) for record in records]

        assert results == [True, True, True, False]
        assert buffer.snapshot() == records[1:]
        assert buffer.records_dropped == 1

    def test_capacity_never_exceeded(self, sender):
        """Buffer length stays within size after every add."""
        buffer = MetricBuffer(sender, size=5)
        for i in range(50):
            buffer.add("ns.metric %d %d" % (i, i))
            assert len(buffer) <= 5
        assert buffer.snapshot() == ["ns.metric %d %d" % (i, i) for i in range(45, 50)]
        assert buffer.records_dropped == 45

    def test_invalid_size(self, sender):
        """A buffer must hold at least one record."""
        with pytest.raises(ValueError):
            MetricBuffer(sender, size=0)

    def test_concurrent_producers(self, sender):
        """Concurrent adds keep the capacity and account for every record."""
        buffer = MetricBuffer(sender, size=100)
        admitted = []
        lock = threading.Lock()

        def produce(worker):
            count = 0
            for i in range(500):
                if buffer.add("worker.%d %d 0" % (worker, i)):
                    count += 1
            with lock:
                admitted.append(count)

        threads = [threading.Thread(target=produce, args=(w,)) for w in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(buffer) == 100
        assert buffer.records_dropped == 8 * 500 - 100
        # Per producer, records that survived keep their relative order
        for worker in range(8):
            values = [int(r.split()[1]) for r in buffer.snapshot() if r.startswith("worker.%d " % worker)]
            assert values == sorted(values)


class TestFlush:
    """Test draining and serializing the buffer."""

    def test_simple_write(self, sender):
        """A single record is sent as one line."""
        buffer = MetricBuffer(sender, size=2)
        buffer.add("namespace.metric 1 11111")

        written = buffer.flush()

        assert sender.content == ["namespace.metric 1 11111"]
        assert written == len("namespace.metric 1 11111\n")

    def test_multiple_metrics_in_order(self, sender):
        """Records are sent in insertion order, each newline terminated."""
        buffer = MetricBuffer(sender, size=2)
        buffer.add("a")
        buffer.add("b")

        buffer.flush()

        assert sender.payloads == [b"a\nb\n"]
        assert sender.content == ["a", "b"]

    def test_empty_flush_is_noop(self, sender):
        """Flushing an empty buffer does not call the sender."""
        buffer = MetricBuffer(sender, size=2)
        buffer.add("a")
        buffer.flush()

        assert buffer.flush() == 0
        assert len(sender.payloads) == 1

    def test_add_flush_add_flush(self, sender):
        """The second batch never contains records from the first."""
        buffer = MetricBuffer(sender, size=2)

        buffer.add("namespace.metric 1 11111")
        buffer.flush()
        buffer.add("namespace.metric 2 22222")
        buffer.flush()

        assert len(sender.payloads) == 2
        assert sender.content == ["namespace.metric 2 22222"]

    def test_drop_then_flush(self, sender):
        """Overflowed records are gone from the flushed payload."""
        buffer = MetricBuffer(sender, size=2)

        assert buffer.add("ns.a 1 100") is True
        assert buffer.add("ns.b 2 200") is True
        assert buffer.add("ns.c 3 300") is False
        buffer.flush()

        assert sender.content == ["ns.b 2 200", "ns.c 3 300"]

    def test_records_sent_counts_flushed_records(self, sender):
        """The sent counter grows by the size of each non-empty batch."""
        buffer = MetricBuffer(sender, size=10)
        for i in range(3):
            buffer.add("r%d" % i)
        buffer.flush()
        buffer.flush()
        buffer.add("r3")
        buffer.flush()

        assert buffer.records_sent == 4

    def test_failed_delivery_is_not_requeued(self):
        """A payload the sender gives up on is counted and dropped."""

        class FailingSender:
            def send(self, payload):
                raise DeliveryExhausted("sink down", attempts=3)

        buffer = MetricBuffer(FailingSender(), size=10)
        buffer.add("r1")
        buffer.add("r2")

        with pytest.raises(DeliveryExhausted):
            buffer.flush()

        assert len(buffer) == 0
        assert buffer.records_sent == 2

    def test_add_during_delivery_goes_to_next_batch(self):
        """Producers are not blocked by an in-flight send."""
        sending = threading.Event()
        release = threading.Event()
        payloads = []

        class BlockingSender:
            def send(self, payload):
                payloads.append(payload)
                sending.set()
                assert release.wait(5)
                return len(payload)

        buffer = MetricBuffer(BlockingSender(), size=10)
        buffer.add("r1")

        flusher = threading.Thread(target=buffer.flush)
        flusher.start()
        assert sending.wait(5)

        assert buffer.add("r2") is True
        assert buffer.snapshot() == ["r2"]

        release.set()
        flusher.join(5)
        buffer.flush()

        assert payloads == [b"r1\n", b"r2\n"]

    def test_concurrent_flushes_deliver_in_order(self):
        """A second flush waits for the delivery in flight and sends the next batch after it."""
        first_sending = threading.Event()
        release = threading.Event()
        payloads = []

        class BlockingSender:
            def send(self, payload):
                payloads.append(payload)
                if len(payloads) == 1:
                    first_sending.set()
                    assert release.wait(5)
                return len(payload)

        buffer = MetricBuffer(BlockingSender(), size=10)
        buffer.add("r1")

        flush_a = threading.Thread(target=buffer.flush)
        flush_a.start()
        assert first_sending.wait(5)

        buffer.add("r2")
        flush_b = threading.Thread(target=buffer.flush)
        flush_b.start()
        flush_b.join(0.2)

        assert flush_b.is_alive()
        assert payloads == [b"r1\n"]
        # producers still get through while both flushes are pending
        assert buffer.add("r3") is True

        release.set()
        flush_a.join(5)
        flush_b.join(5)

        assert not flush_a.is_alive() and not flush_b.is_alive()
        assert payloads == [b"r1\n", b"r2\nr3\n"]
        assert len(buffer) == 0
        assert buffer.records_sent == 3
