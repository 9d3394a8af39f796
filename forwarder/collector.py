"""
Base collector class for standardizing inventory collection.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

import pytz

logger = logging.getLogger(__name__)


def unix_timestamp() -> int:
    """Current time as whole seconds since the epoch."""
    return int(datetime.now(pytz.UTC).timestamp())


class Collector(ABC):
    """
    Abstract base class for all inventory collectors.

    All collectors should inherit from this class and implement the required methods:
    - collect(): Count resources by type in one region
    - metric_path(): Build the metric name for one resource type
    """

    def __init__(self, session_factory):
        """
        Args:
            session_factory (SessionFactory): Source of per-region boto3 sessions
        """
        self.session_factory = session_factory

    @abstractmethod
    def collect(self, region: str) -> Dict[str, int]:
        """
        Count resources in a region.

        Args:
            region (str): AWS region name

        Returns:
            dict: Resource type to number of resources
        """
        pass

    @abstractmethod
    def metric_path(self, region: str, resource_type: str) -> str:
        """
        Build the metric name for a resource type.

        Args:
            region (str): AWS region name
            resource_type (str): Instance type or class

        Returns:
            str: Dotted metric name
        """
        pass

    @property
    def name(self) -> str:
        """
        Get the name of the collector.

        Returns:
            str: The name of the collector (class name by default)
        """
        return self.__class__.__name__

    def client(self, service: str, region: str):
        """Create a boto3 client for a service in a region."""
        return self.session_factory.for_region(region).client(service)

    def safe_collect(self, region: str) -> Dict[str, int]:
        """
        Safely collect counts, catching any exceptions.

        Returns:
            dict: The collected counts or an empty dict if collection fails
        """
        try:
            return self.collect(region)
        except Exception as e:
            logger.error("Error collecting %s metrics in %s: %s", self.name, region, str(e))
            return {}

    def format_metrics(self, region: str, counts: Dict[str, int], timestamp: Optional[int] = None) -> List[str]:
        """
        Format counts as metric records.

        Args:
            region (str): AWS region name
            counts (dict): Resource type to number of resources
            timestamp (int, optional): Unix timestamp for every record, defaults to now

        Returns:
            list: Records of the form "namespace.path value unix_timestamp"
        """
        if timestamp is None:
            timestamp = unix_timestamp()
        return [
            "%s %d %d" % (self.metric_path(region, resource_type), count, timestamp)
            for resource_type, count in sorted(counts.items())
        ]

    def collect_into(self, buffer, region: str) -> int:
        """
        Collect a region and add the resulting records to a buffer.

        Args:
            buffer (MetricBuffer): Buffer receiving the records
            region (str): AWS region name

        Returns:
            int: Number of records added without evicting older ones
        """
        records = self.format_metrics(region, self.safe_collect(region))
        admitted = sum(1 for record in records if buffer.add(record))
        logger.debug("%s added %d metrics for %s", self.name, len(records), region)
        return admitted
