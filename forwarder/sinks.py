"""
Transports that accept a batch of metric records.
"""
import logging
from abc import ABC, abstractmethod

import requests
from botocore.exceptions import BotoCoreError, ClientError

from . import config
from .errors import ConfigError, SinkError

logger = logging.getLogger(__name__)

# PutRecord rejects data blobs larger than 1 MiB
KINESIS_MAX_RECORD_BYTES = 1024 * 1024


class Sink(ABC):
    """
    Abstract destination for metric payloads.

    A sink makes exactly one delivery attempt per call; retries are the
    caller's concern.
    """

    @abstractmethod
    def write(self, payload: bytes, partition_key: str) -> int:
        """
        Deliver a payload.

        Args:
            payload (bytes): Newline separated metric records
            partition_key (str): Routing hint for transports that shard

        Returns:
            int: Number of bytes written

        Raises:
            SinkError: If the payload was not accepted
        """
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class KinesisSink(Sink):
    """Puts each payload as a single record on a Kinesis stream."""

    def __init__(self, client, stream_name: str):
        """
        Args:
            client: boto3 Kinesis client
            stream_name (str): Name of the target stream
        """
        self.client = client
        self.stream_name = stream_name

    # TODO: split payloads over PutRecords once a flush can exceed one shard's 1 MB/s write limit
    def write(self, payload: bytes, partition_key: str) -> int:
        if len(payload) > KINESIS_MAX_RECORD_BYTES:
            raise SinkError(
                f"Payload of {len(payload)} bytes exceeds the Kinesis record limit of {KINESIS_MAX_RECORD_BYTES}"
            )

        try:
            response = self.client.put_record(
                StreamName=self.stream_name,
                Data=payload,
                PartitionKey=partition_key
            )
        except (ClientError, BotoCoreError) as e:
            raise SinkError(f"Kinesis put_record to {self.stream_name} failed: {e}") from e

        logger.debug("Put record on shard %s with sequence number %s",
                     response.get('ShardId'), response.get('SequenceNumber'))
        return len(payload)


class HttpSink(Sink):
    """Posts each payload to an HTTP endpoint as plain text."""

    def __init__(self, url: str, api_key: str = config.API_KEY, timeout: int = config.REQUEST_TIMEOUT):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def write(self, payload: bytes, partition_key: str) -> int:
        headers = {
            'Content-Type': 'text/plain; charset=utf-8',
            'X-API-Key': self.api_key,
            'X-Partition-Key': partition_key
        }

        try:
            response = requests.post(
                self.url,
                data=payload,
                headers=headers,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise SinkError(f"Failed to post metrics to {self.url}: {str(e)}") from e
        return len(payload)

    def health_check(self) -> bool:
        """
        Check if the metrics endpoint is accessible.

        Returns:
            bool: True if the endpoint answered with 200, False otherwise
        """
        try:
            response = requests.get(
                f"{self.url.rstrip('/')}/health",
                timeout=self.timeout
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False


class LoggingSink(Sink):
    """Logs payloads instead of sending them, for dry runs."""

    def write(self, payload: bytes, partition_key: str) -> int:
        for line in payload.decode('utf-8').splitlines():
            logger.info("DRY RUN: %s", line)
        return len(payload)


def build_sink(forwarder_config: config.ForwarderConfig, session=None, dry_run: bool = False) -> Sink:
    """
    Create the transport selected by the configuration.

    Args:
        forwarder_config (ForwarderConfig): The forwarder settings
        session: boto3 session for the sink region, required for Kinesis
        dry_run (bool): If True, log payloads instead of sending them

    Returns:
        Sink: The configured transport

    Raises:
        ConfigError: If the sink type is unknown or Kinesis has no session
    """
    if dry_run:
        return LoggingSink()

    if forwarder_config.sink_type == 'kinesis':
        if session is None:
            raise ConfigError("A boto3 session is required for the Kinesis sink")
        return KinesisSink(session.client('kinesis'), forwarder_config.stream_name)

    if forwarder_config.sink_type == 'http':
        return HttpSink(
            forwarder_config.http_url,
            api_key=forwarder_config.api_key,
            timeout=forwarder_config.request_timeout
        )

    raise ConfigError(f"Unknown sink type: {forwarder_config.sink_type}")
