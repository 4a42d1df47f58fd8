"""
Resource lifecycle managers.
"""

from dataclasses import dataclass

from ..clients import AwsClients
from ..config import AppConfig
from ..keystore import KeyStore
from .compute import ComputeManager
from .identity import IdentityProfileManager
from .load_balancer import LoadBalancerManager
from .network import NetworkManager, SubnetManager
from .security import SecurityGroupManager


@dataclass
class Managers:
    network: NetworkManager
    subnets: SubnetManager
    security: SecurityGroupManager
    identity: IdentityProfileManager
    compute: ComputeManager
    load_balancer: LoadBalancerManager


def build_managers(config: AppConfig, run_id: str, clients: AwsClients, keystore: KeyStore = None) -> Managers:
    """Wire every manager of one run to its boto3 client."""
    keystore = keystore or KeyStore(config.key_dir)
    return Managers(
        network=NetworkManager(config, run_id, clients.ec2),
        subnets=SubnetManager(config, run_id, clients.ec2),
        security=SecurityGroupManager(config, run_id, clients.ec2),
        identity=IdentityProfileManager(config, run_id, clients.iam),
        compute=ComputeManager(config, run_id, clients.ec2, clients.iam, keystore),
        load_balancer=LoadBalancerManager(config, run_id, clients.elbv2),
    )


__all__ = [
    "Managers",
    "build_managers",
    "NetworkManager",
    "SubnetManager",
    "SecurityGroupManager",
    "IdentityProfileManager",
    "ComputeManager",
    "LoadBalancerManager",
]
