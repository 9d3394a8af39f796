"""
Forwarder for cloud inventory metrics.
"""
from .collector import Collector
from .config import ForwarderConfig
from .errors import ConfigError, DeliveryExhausted, ForwarderError, SinkError
from .metrics_buffer import MetricBuffer
from .reliable_sink import ReliableSink, partition_key_for
from .scheduler import Forwarder
from .session import SessionFactory
from .sinks import HttpSink, KinesisSink, LoggingSink, Sink, build_sink

__all__ = [
    'Collector',
    'ConfigError',
    'DeliveryExhausted',
    'Forwarder',
    'ForwarderConfig',
    'ForwarderError',
    'HttpSink',
    'KinesisSink',
    'LoggingSink',
    'MetricBuffer',
    'ReliableSink',
    'SessionFactory',
    'Sink',
    'SinkError',
    'build_sink',
    'partition_key_for',
]
