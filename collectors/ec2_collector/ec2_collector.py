import logging
from collections import Counter
from typing import Dict

from forwarder.collector import Collector

logger = logging.getLogger(__name__)

# Instances in these states are not counted
IGNORED_STATES = ('terminated', 'stopped')


class Ec2Collector(Collector):
    """Collector for EC2 instance counts by instance type."""

    def collect(self, region: str) -> Dict[str, int]:
        """Count running EC2 instances in a region.

        Returns:
            dict: Instance type to number of instances not stopped or terminated
        """
        client = self.client('ec2', region)
        counts = Counter()

        for page in client.get_paginator('describe_instances').paginate():
            for reservation in page.get('Reservations', []):
                for instance in reservation.get('Instances', []):
                    if instance['State']['Name'] in IGNORED_STATES:
                        continue
                    counts[instance['InstanceType']] += 1

        logger.debug("Found %d EC2 instances in %s", sum(counts.values()), region)
        return dict(counts)

    def metric_path(self, region: str, resource_type: str) -> str:
        return "aws.%s.instance_types.ec2.%s" % (region, resource_type)


if __name__ == '__main__':
    import sys

    from forwarder.session import SessionFactory

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    region = sys.argv[1] if len(sys.argv) > 1 else 'us-east-1'
    collector = Ec2Collector(SessionFactory())
    for record in collector.format_metrics(region, collector.safe_collect(region)):
        print(record)
