#!/usr/bin/env python3
"""
CLI application for sampling cloud inventory and forwarding it to a stream.
"""
import argparse
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from collectors import Ec2Collector, RdsCollector
from forwarder import config as forwarder_config_defaults
from forwarder.config import ForwarderConfig, load_config_file
from forwarder.errors import ConfigError
from forwarder.metrics_buffer import MetricBuffer
from forwarder.reliable_sink import ReliableSink
from forwarder.scheduler import Forwarder
from forwarder.session import SessionFactory
from forwarder.sinks import build_sink

# Setup logging
logger = logging.getLogger(__name__)

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def setup_logging(log_level: str) -> None:
    """
    Setup logging with the specified log level.

    Args:
        log_level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        force=True
    )
    # botocore is very chatty at DEBUG
    logging.getLogger('botocore').setLevel(max(numeric_level, logging.INFO))


def merge_config_with_args(config: Dict[str, Any], args: argparse.Namespace) -> argparse.Namespace:
    """
    Merge configuration from a file with command line arguments.
    Command line arguments take precedence over config file values.

    Args:
        config (dict): Configuration dictionary from file
        args (argparse.Namespace): Command line arguments

    Returns:
        argparse.Namespace: Updated arguments namespace
    """
    args_dict = vars(args).copy()

    for key, value in config.items():
        arg_key = key.replace('-', '_')
        # Only set if the value was not given on the command line
        if args_dict.get(arg_key) is None:
            args_dict[arg_key] = value

    return argparse.Namespace(**args_dict)


def build_parser() -> argparse.ArgumentParser:
    """Create the full argument parser."""
    defaults = forwarder_config_defaults
    parser = argparse.ArgumentParser(
        description='Sample EC2 and RDS inventory and forward it as metrics.'
    )

    parser.add_argument('--config-file', type=str,
                        help='Path to JSON configuration file')
    parser.add_argument('--log-level', type=str, default=defaults.LOG_LEVEL.upper(),
                        choices=LOG_LEVELS, help='Log level')

    # AWS options
    parser.add_argument('--arn', dest='role_arn', type=str,
                        help='ARN of the role to assume')
    parser.add_argument('--region', type=str,
                        help='Region of the sink stream and the role session')
    parser.add_argument('--stream-name', type=str,
                        help='Kinesis stream name')
    parser.add_argument('--regions', type=str, nargs='+',
                        help='Regions to sample (default: %s)' % ' '.join(defaults.REGIONS))

    # Sink options
    parser.add_argument('--sink', dest='sink_type', type=str, choices=list(forwarder_config_defaults.SINK_TYPES),
                        help='Where to send metrics (default: %s)' % defaults.SINK_TYPE)
    parser.add_argument('--http-url', type=str,
                        help='URL of the HTTP metrics endpoint')
    parser.add_argument('--api-key', type=str,
                        help='API key for the HTTP metrics endpoint')
    parser.add_argument('--request-timeout', type=int,
                        help='HTTP request timeout in seconds (default: %d)' % defaults.REQUEST_TIMEOUT)

    # Delivery options
    parser.add_argument('--buffer-size', type=int,
                        help='Maximum number of metrics kept in memory (default: %d)' % defaults.BUFFER_SIZE)
    parser.add_argument('--max-retries', type=int,
                        help='Attempts per flush before metrics are dropped (default: %d)' % defaults.MAX_RETRIES)
    parser.add_argument('--backoff', type=float,
                        help='Seconds to wait after the first failed attempt (default: %s)' % defaults.BACKOFF)
    parser.add_argument('--max-retry-delay', type=float,
                        help='Seconds after which a flush stops retrying')
    parser.add_argument('--fatal-on-exhausted', action='store_true', default=None,
                        help='Exit when a flush exhausts its retries')

    # Scheduling options
    parser.add_argument('--gather-interval', type=float,
                        help='Seconds between inventory samples (default: %d)' % defaults.GATHER_INTERVAL)
    parser.add_argument('--flush-interval', type=float,
                        help='Seconds between flushes (default: %d)' % defaults.FLUSH_INTERVAL)
    parser.add_argument('--gather-workers', type=int,
                        help='Regions sampled in parallel (default: %d)' % defaults.GATHER_WORKERS)
    parser.add_argument('--once', action='store_true', default=None,
                        help='Gather and flush a single time, then exit')
    parser.add_argument('--dry-run', action='store_true', default=None,
                        help='Log metrics instead of sending them')

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments, filling gaps from a config file.

    Args:
        argv (list, optional): Arguments to parse, defaults to sys.argv

    Returns:
        argparse.Namespace: The merged arguments
    """
    # Config file and log level are needed before the rest is parsed
    early_parser = argparse.ArgumentParser(add_help=False)
    early_parser.add_argument('--config-file', type=str)
    early_parser.add_argument('--log-level', type=str, default='INFO', choices=LOG_LEVELS)
    early_args, _ = early_parser.parse_known_args(argv)

    setup_logging(early_args.log_level)

    args = build_parser().parse_args(argv)
    if early_args.config_file:
        logger.info("Loading configuration from %s", early_args.config_file)
        args = merge_config_with_args(load_config_file(early_args.config_file), args)
    return args


def build_forwarder(forwarder_config: ForwarderConfig, dry_run: bool = False) -> Forwarder:
    """
    Wire up sessions, sink, buffer and collectors.

    Args:
        forwarder_config (ForwarderConfig): Validated settings
        dry_run (bool): If True, log metrics instead of sending them

    Returns:
        Forwarder: A forwarder ready to start
    """
    session_factory = SessionFactory(forwarder_config.role_arn)

    session = None
    if forwarder_config.sink_type == 'kinesis' and not dry_run:
        session = session_factory.for_region(forwarder_config.region)

    sink = build_sink(forwarder_config, session=session, dry_run=dry_run)
    reliable_sink = ReliableSink(
        sink,
        max_retries=forwarder_config.max_retries,
        backoff=forwarder_config.backoff,
        max_delay=forwarder_config.max_retry_delay
    )
    buffer = MetricBuffer(reliable_sink, size=forwarder_config.buffer_size)
    collectors = [Ec2Collector(session_factory), RdsCollector(session_factory)]

    logger.info("Forwarding to %s with a buffer of %d metrics", sink.name, forwarder_config.buffer_size)
    return Forwarder(forwarder_config, buffer, collectors)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to parse arguments and run the forwarder."""
    try:
        args = parse_args(argv)
        setup_logging(args.log_level)
        forwarder_config = ForwarderConfig.from_dict(vars(args))
        forwarder_config.validate(require_sink=not args.dry_run)
        forwarder = build_forwarder(forwarder_config, dry_run=bool(args.dry_run))
    except ConfigError as e:
        logger.error("%s", e)
        return 1
    except (ClientError, BotoCoreError) as e:
        logger.error("Could not set up AWS access: %s", str(e))
        return 1

    if args.once:
        forwarder.gather_once()
        forwarder.stop()
        return 1 if forwarder.failed else 0

    def handle_signal(signum, frame):
        logger.info("Received signal %d", signum)
        forwarder.request_stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    forwarder.start()
    # Wake up regularly so signals are handled promptly
    while not forwarder.wait(timeout=1):
        pass

    forwarder.stop()
    logger.info("All done, have a lovely day")
    return 1 if forwarder.failed else 0


if __name__ == "__main__":
    sys.exit(main())
