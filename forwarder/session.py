"""
AWS session setup, optionally through an assumed role.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import boto3
import pytz

logger = logging.getLogger(__name__)

SESSION_NAME = 'inventory-forwarder'

# Assume the role again this long before the temporary credentials expire
REFRESH_MARGIN = timedelta(minutes=5)


def assume_role_session(role_arn: Optional[str], region: str) -> Tuple[boto3.Session, Optional[datetime]]:
    """
    Create a session for a region, assuming a role when one is given.

    Args:
        role_arn (str, optional): ARN of the role to assume
        region (str): Region the session's clients talk to

    Returns:
        tuple: (session, expiration) where expiration is None for ambient credentials
    """
    if not role_arn:
        return boto3.Session(region_name=region), None

    sts = boto3.client('sts', region_name=region)
    response = sts.assume_role(RoleArn=role_arn, RoleSessionName=SESSION_NAME)
    credentials = response['Credentials']
    logger.debug("Assumed role %s for %s, expires %s", role_arn, region, credentials['Expiration'])

    session = boto3.Session(
        aws_access_key_id=credentials['AccessKeyId'],
        aws_secret_access_key=credentials['SecretAccessKey'],
        aws_session_token=credentials['SessionToken'],
        region_name=region
    )
    return session, credentials['Expiration']


class SessionFactory:
    """Hands out one session per region, re-assuming the role before it expires."""

    def __init__(self, role_arn: Optional[str] = None):
        self.role_arn = role_arn
        self._sessions: Dict[str, Tuple[boto3.Session, Optional[datetime]]] = {}
        self._lock = threading.Lock()

    def for_region(self, region: str) -> boto3.Session:
        """
        Get the session for a region.

        Args:
            region (str): AWS region name

        Returns:
            boto3.Session: A session with valid credentials
        """
        with self._lock:
            cached = self._sessions.get(region)
            if cached is None or self._expiring(cached[1]):
                cached = assume_role_session(self.role_arn, region)
                self._sessions[region] = cached
            return cached[0]

    def _expiring(self, expiration: Optional[datetime]) -> bool:
        if expiration is None:
            return False
        return datetime.now(pytz.UTC) >= expiration - REFRESH_MARGIN
