"""
Inventory collectors.
"""
from .ec2_collector.ec2_collector import Ec2Collector
from .rds_collector.rds_collector import RdsCollector

__all__ = ['Ec2Collector', 'RdsCollector']
