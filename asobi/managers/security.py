"""
Security group lifecycle: an edge group for the load balancer and a compute
group that only accepts traffic from it.
"""

import logging
import time
from typing import Iterable, List

from botocore.exceptions import BotoCoreError, ClientError

from ..config import AppConfig
from ..errors import SECURITY_GROUP_ERROR, InfrastructureError, describe_error, is_dependency_violation, is_not_found
from .base import BaseManager

logger = logging.getLogger(__name__)

ANYWHERE = [{"CidrIp": "0.0.0.0/0"}]


class SecurityGroupManager(BaseManager):

    def __init__(self, config: AppConfig, run_id: str, ec2_client):
        super().__init__(config, run_id)
        self.ec2 = ec2_client

    def create(self, network_id: str) -> List[str]:
        """
        Create the edge and compute security groups.

        Args:
            network_id: VPC to create the groups in

        Returns:
            [edge_group_id, compute_group_id]

        Raises:
            InfrastructureError: security-group-error on any failure; a group
                created before the failure is deleted first
        """
        created: List[str] = []
        try:
            edge_rules = [self._tcp_rule(80, ANYWHERE)]
            if self.config.is_web_service:
                edge_rules.append(self._tcp_rule(443, ANYWHERE))

            edge_id = self._create_group(network_id, "edge-sg", "Load balancer ingress", edge_rules, created)

            compute_rules = [
                self._tcp_rule(self.config.port, [], group_id=edge_id),
                self._tcp_rule(22, ANYWHERE),
            ]
            compute_id = self._create_group(network_id, "compute-sg", "Instance ingress", compute_rules, created)

            return [edge_id, compute_id]
        except Exception as e:
            self._discard(created)
            if isinstance(e, ClientError):
                raise InfrastructureError(f"Failed to create security groups: {describe_error(e)}",
                                          SECURITY_GROUP_ERROR) from e
            raise

    def _create_group(self, network_id: str, kind: str, description: str, rules: List[dict],
                      created: List[str]) -> str:
        name = self.resource_name(kind)
        logger.info(f"Creating security group {name}...")
        response = self.ec2.create_security_group(
            GroupName=name,
            Description=description,
            VpcId=network_id,
            TagSpecifications=self.tag_specs("security-group", kind),
        )
        group_id = response.get("GroupId")
        if not group_id:
            raise InfrastructureError(f"Failed to create security group {name}", SECURITY_GROUP_ERROR)
        created.append(group_id)

        self.ec2.authorize_security_group_ingress(GroupId=group_id, IpPermissions=rules)
        return group_id

    def _discard(self, group_ids: List[str]) -> None:
        """Delete groups a failed create left behind, newest first; errors are only logged."""
        for group_id in reversed(group_ids):
            logger.info(f"Removing partially created security group {group_id}")
            try:
                self.ec2.delete_security_group(GroupId=group_id)
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Failed to remove security group {group_id}: {e}")

    @staticmethod
    def _tcp_rule(port: int, ranges: list, group_id: str = None) -> dict:
        rule = {"IpProtocol": "tcp", "FromPort": port, "ToPort": port, "IpRanges": ranges}
        if group_id:
            rule["UserIdGroupPairs"] = [{"GroupId": group_id}]
        return rule

    def delete(self, group_ids: Iterable[str]) -> None:
        """
        Delete groups in reverse creation order.

        Each group has its ingress revoked first. A group still referenced by
        another resource is retried once after ``dependency_retry_delay``.
        """
        for group_id in reversed(list(group_ids)):
            try:
                self._revoke_ingress(group_id)
                self._delete_group(group_id)
            except InfrastructureError:
                raise
            except ClientError as e:
                if is_not_found(e):
                    logger.info(f"Security group {group_id} already deleted")
                    continue
                raise InfrastructureError(f"Failed to delete security group {group_id}: {describe_error(e)}",
                                          SECURITY_GROUP_ERROR)

    def _revoke_ingress(self, group_id: str) -> None:
        response = self.ec2.describe_security_groups(GroupIds=[group_id])
        groups = response.get("SecurityGroups", [])
        permissions = groups[0].get("IpPermissions", []) if groups else []

        if permissions:
            logger.info(f"Revoking ingress rules of {group_id}")
            self.ec2.revoke_security_group_ingress(GroupId=group_id, IpPermissions=permissions)
            time.sleep(self.config.revoke_delay)

    def _delete_group(self, group_id: str) -> None:
        logger.info(f"Deleting security group: {group_id}")
        try:
            self.ec2.delete_security_group(GroupId=group_id)
        except ClientError as e:
            if not is_dependency_violation(e):
                raise
            logger.info(f"Security group {group_id} still in use, retrying in "
                        f"{self.config.dependency_retry_delay}s")
            time.sleep(self.config.dependency_retry_delay)
            self.ec2.delete_security_group(GroupId=group_id)

    def exists(self, group_id: str) -> bool:
        try:
            response = self.ec2.describe_security_groups(GroupIds=[group_id])
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check security group {group_id}: {e}")
            return True
        return bool(response.get("SecurityGroups"))

    def find_groups(self) -> List[str]:
        """Group IDs tagged with this app and run; empty on query failure."""
        try:
            response = self.ec2.describe_security_groups(Filters=self.run_filters())
        except ClientError as e:
            logger.warning(f"Error fetching security groups: {e}")
            return []
        return [group["GroupId"] for group in response.get("SecurityGroups", []) if group.get("GroupId")]
