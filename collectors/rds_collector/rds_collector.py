import logging
from collections import Counter
from typing import Dict

from forwarder.collector import Collector

logger = logging.getLogger(__name__)


class RdsCollector(Collector):
    """Collector for RDS instance counts by DB instance class."""

    def collect(self, region: str) -> Dict[str, int]:
        client = self.client('rds', region)
        counts = Counter()

        for page in client.get_paginator('describe_db_instances').paginate():
            for instance in page.get('DBInstances', []):
                counts[instance['DBInstanceClass']] += 1

        logger.debug("Found %d RDS instances in %s", sum(counts.values()), region)
        return dict(counts)

    def metric_path(self, region: str, resource_type: str) -> str:
        # DB instance classes already carry their "db." prefix
        return "aws.%s.instance_types.%s" % (region, resource_type)
