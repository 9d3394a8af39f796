"""
Configuration settings for the metric forwarder.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

# AWS configuration
ROLE_ARN = os.getenv('FORWARDER_ROLE_ARN')  # role to assume, ambient credentials if unset
REGION = os.getenv('FORWARDER_REGION')  # region of the sink and of the role session
STREAM_NAME = os.getenv('FORWARDER_STREAM_NAME')

# All regions sampled by default
REGIONS = [
    'us-east-1',
    'us-west-2',
    'us-west-1',
    'eu-west-1',
    'eu-central-1',
    'ap-southeast-1',
    'ap-northeast-1',
    'ap-southeast-2',
    'ap-northeast-2',
    'sa-east-1',
]

# Sink configuration
SINK_TYPE = os.getenv('FORWARDER_SINK', 'kinesis')  # kinesis or http
HTTP_URL = os.getenv('FORWARDER_HTTP_URL')
API_KEY = os.getenv('FORWARDER_API_KEY', '')
REQUEST_TIMEOUT = 30  # seconds

# Delivery configuration
MAX_RETRIES = 3  # attempts per flush before the payload is dropped
BACKOFF = 1.0  # seconds, doubled after every failed attempt
MAX_RETRY_DELAY = None  # seconds, optional cap on the whole retry loop

# Buffer configuration
# Roughly 1mb if every metric is around 60 bytes (60 * 16384 = 0.94mb).
# At 100 metrics per minute this lasts about 2 hours 43 minutes.
BUFFER_SIZE = 1024 * 16

# Scheduling configuration
GATHER_INTERVAL = int(os.getenv('FORWARDER_GATHER_INTERVAL', '45'))  # seconds
FLUSH_INTERVAL = int(os.getenv('FORWARDER_FLUSH_INTERVAL', '30'))  # seconds
GATHER_WORKERS = 4

# Logging configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

SINK_TYPES = ('kinesis', 'http')


@dataclass
class ForwarderConfig:
    """Settings for one forwarder process, built once at startup."""
    region: Optional[str] = REGION
    stream_name: Optional[str] = STREAM_NAME
    role_arn: Optional[str] = ROLE_ARN
    regions: List[str] = field(default_factory=lambda: list(REGIONS))
    sink_type: str = SINK_TYPE
    http_url: Optional[str] = HTTP_URL
    api_key: str = API_KEY
    request_timeout: int = REQUEST_TIMEOUT
    max_retries: int = MAX_RETRIES
    backoff: float = BACKOFF
    max_retry_delay: Optional[float] = MAX_RETRY_DELAY
    buffer_size: int = BUFFER_SIZE
    gather_interval: float = GATHER_INTERVAL
    flush_interval: float = FLUSH_INTERVAL
    gather_workers: int = GATHER_WORKERS
    fatal_on_exhausted: bool = False

    def validate(self, require_sink: bool = True) -> None:
        """
        Check that the settings are complete and within range.

        Args:
            require_sink (bool): If False, skip the sink settings, as for dry runs

        Raises:
            ConfigError: If a required setting is missing or a value is invalid
        """
        if self.sink_type not in SINK_TYPES:
            raise ConfigError(f"Unknown sink type: {self.sink_type}. Expected one of {SINK_TYPES}")
        if require_sink and self.sink_type == 'kinesis':
            if not self.region:
                raise ConfigError("Provide region via --region flag")
            if not self.stream_name:
                raise ConfigError("Provide Kinesis stream name via --stream-name flag")
        if require_sink and self.sink_type == 'http' and not self.http_url:
            raise ConfigError("Provide the HTTP sink URL via --http-url flag")
        if not self.regions:
            raise ConfigError("At least one region must be sampled")
        if self.max_retries < 1:
            raise ConfigError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.backoff < 0:
            raise ConfigError(f"backoff must not be negative, got {self.backoff}")
        if self.buffer_size < 1:
            raise ConfigError(f"buffer_size must be at least 1, got {self.buffer_size}")
        if self.gather_interval <= 0 or self.flush_interval <= 0:
            raise ConfigError("Gather and flush intervals must be positive")
        if self.gather_workers < 1:
            raise ConfigError(f"gather_workers must be at least 1, got {self.gather_workers}")
        if self.max_retry_delay is not None and self.max_retry_delay <= 0:
            raise ConfigError(f"max_retry_delay must be positive, got {self.max_retry_delay}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'ForwarderConfig':
        """
        Build a config from a dictionary, ignoring keys that are not settings.

        Args:
            values (dict): Setting names (dashes or underscores) to values

        Returns:
            ForwarderConfig: The config, with defaults for missing or None values
        """
        known = cls.__dataclass_fields__
        kwargs = {}
        for key, value in values.items():
            name = key.replace('-', '_')
            if name in known and value is not None:
                kwargs[name] = value
            elif name not in known:
                logger.debug("Ignoring unknown setting: %s", key)
        return cls(**kwargs)


def load_config_file(config_file: str) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    Args:
        config_file (str): Path to the JSON config file

    Returns:
        dict: Configuration dictionary with argument names as keys

    Raises:
        ConfigError: If the file is missing or is not a JSON object
    """
    if not os.path.exists(config_file):
        raise ConfigError(f"Config file not found: {config_file}")

    try:
        with open(config_file, 'r') as f:
            values = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        raise ConfigError(f"Error parsing config file {config_file}: {e}") from e

    if not isinstance(values, dict):
        raise ConfigError(f"Config file {config_file} must contain a JSON object")
    logger.debug("Loaded configuration from %s: %s", config_file, values)
    return values
