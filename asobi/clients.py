"""
boto3 clients used by one run.
"""

from dataclasses import dataclass
from typing import Any, Optional

import boto3


@dataclass
class AwsClients:
    ec2: Any
    iam: Any
    elbv2: Any
    sts: Any
    region: str


def build_clients(region: str, profile: Optional[str] = None) -> AwsClients:
    """
    Create the EC2, IAM, ELBv2 and STS clients for a region.
    
    Credentials come from the standard boto3 chain (environment, shared
    config, instance metadata), optionally narrowed to a named profile.
    
    Args:
        region: AWS region
        profile: Optional shared-config profile name
        
    Returns:
        AwsClients bundle
    """
    session = boto3.session.Session(profile_name=profile, region_name=region)
    return AwsClients(
        ec2=session.client("ec2"),
        iam=session.client("iam"),
        elbv2=session.client("elbv2"),
        sts=session.client("sts"),
        region=region,
    )
