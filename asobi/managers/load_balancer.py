"""
Application load balancer, target group and listener lifecycle.
"""

import logging
from typing import Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ..config import AppConfig
from ..errors import LOAD_BALANCER_ERROR, InfrastructureError, describe_error, is_not_found
from ..polling import poll_until
from ..tags import belongs_to_run
from .base import BaseManager

logger = logging.getLogger(__name__)

TAG_BATCH_SIZE = 20


class LoadBalancerManager(BaseManager):

    def __init__(self, config: AppConfig, run_id: str, elbv2_client):
        super().__init__(config, run_id)
        self.elbv2 = elbv2_client

    def create(self, network_id: str, subnet_ids: List[str], security_group_id: str,
               certificate_arn: Optional[str] = None) -> Tuple[str, str]:
        """
        Create the load balancer, its target group and listeners.

        An HTTP:80 listener is always created; an HTTPS:443 listener is added
        when a certificate is given.

        Args:
            network_id: VPC of the target group
            subnet_ids: Subnets the load balancer spans
            security_group_id: Edge security group
            certificate_arn: Existing certificate for HTTPS

        Returns:
            (load_balancer_arn, target_group_arn)

        Raises:
            InfrastructureError: load-balancer-error on any failure; whatever was
                already created is removed first
        """
        lb_arn = tg_arn = None
        try:
            logger.info("Creating Application Load Balancer...")
            response = self.elbv2.create_load_balancer(
                Name=self.short_name("alb"),
                Subnets=subnet_ids,
                SecurityGroups=[security_group_id],
                Scheme="internet-facing",
                Type="application",
                IpAddressType="ipv4",
                Tags=self.tags("alb"),
            )
            load_balancers = response.get("LoadBalancers", [])
            if not load_balancers:
                raise InfrastructureError("Failed to create load balancer", LOAD_BALANCER_ERROR)
            lb_arn = load_balancers[0]["LoadBalancerArn"]

            logger.info("Creating target group...")
            response = self.elbv2.create_target_group(
                Name=self.short_name("tg"),
                Protocol="HTTP",
                Port=self.config.port,
                VpcId=network_id,
                TargetType="instance",
                HealthCheckProtocol="HTTP",
                HealthCheckPath="/",
                Tags=self.tags("tg"),
            )
            target_groups = response.get("TargetGroups", [])
            if not target_groups:
                raise InfrastructureError("Failed to create target group", LOAD_BALANCER_ERROR)
            tg_arn = target_groups[0]["TargetGroupArn"]

            forward = [{"Type": "forward", "TargetGroupArn": tg_arn}]
            logger.info("Creating HTTP listener...")
            self.elbv2.create_listener(LoadBalancerArn=lb_arn, Protocol="HTTP", Port=80,
                                       DefaultActions=forward)
            if certificate_arn:
                logger.info("Creating HTTPS listener...")
                self.elbv2.create_listener(LoadBalancerArn=lb_arn, Protocol="HTTPS", Port=443,
                                           Certificates=[{"CertificateArn": certificate_arn}],
                                           DefaultActions=forward)

            return lb_arn, tg_arn
        except Exception as e:
            if lb_arn or tg_arn:
                self._discard(lb_arn, tg_arn)
            if isinstance(e, ClientError):
                raise InfrastructureError(f"Failed to create load balancer: {describe_error(e)}",
                                          LOAD_BALANCER_ERROR) from e
            raise

    def _discard(self, load_balancer_arn: Optional[str], target_group_arn: Optional[str]) -> None:
        """Remove what a failed create left behind; errors are only logged."""
        logger.info("Removing partially created load balancer")
        try:
            self.delete(load_balancer_arn, target_group_arn)
        except (BotoCoreError, InfrastructureError) as e:
            logger.error(f"Failed to remove partial load balancer: {e}")

    def register_target(self, target_group_arn: str, instance_id: str) -> None:
        try:
            logger.info(f"Registering instance {instance_id} with target group")
            self.elbv2.register_targets(
                TargetGroupArn=target_group_arn,
                Targets=[{"Id": instance_id, "Port": self.config.port}],
            )
        except ClientError as e:
            raise InfrastructureError(f"Failed to register target: {describe_error(e)}", LOAD_BALANCER_ERROR)

    def target_state(self, target_group_arn: str, instance_id: str) -> Optional[str]:
        response = self.elbv2.describe_target_health(
            TargetGroupArn=target_group_arn,
            Targets=[{"Id": instance_id, "Port": self.config.port}],
        )
        for description in response.get("TargetHealthDescriptions", []):
            return description.get("TargetHealth", {}).get("State")
        return None

    def wait_for_healthy(self, target_group_arn: str, instance_id: str) -> bool:
        """Poll target health at a fixed interval; False when never healthy."""
        budget = self.config.health_budget()
        return poll_until(
            lambda: self.target_state(target_group_arn, instance_id) == "healthy",
            max_attempts=budget.max_attempts,
            wait_time=budget.base_delay,
            description=f"target {instance_id} to be healthy",
        )

    def dns_name(self, load_balancer_arn: str) -> Optional[str]:
        try:
            response = self.elbv2.describe_load_balancers(LoadBalancerArns=[load_balancer_arn])
        except ClientError as e:
            logger.warning(f"Error describing load balancer: {e}")
            return None
        load_balancers = response.get("LoadBalancers", [])
        return load_balancers[0].get("DNSName") if load_balancers else None

    def delete(self, load_balancer_arn: Optional[str], target_group_arn: Optional[str]) -> None:
        """Delete listeners, the target group, then the load balancer."""
        try:
            if load_balancer_arn:
                response = self.elbv2.describe_listeners(LoadBalancerArn=load_balancer_arn)
                for listener in response.get("Listeners", []):
                    logger.info(f"Deleting listener: {listener['ListenerArn']}")
                    self.elbv2.delete_listener(ListenerArn=listener["ListenerArn"])

            if target_group_arn:
                logger.info(f"Deleting target group: {target_group_arn}")
                self.elbv2.delete_target_group(TargetGroupArn=target_group_arn)

            if load_balancer_arn:
                logger.info(f"Deleting load balancer: {load_balancer_arn}")
                self.elbv2.delete_load_balancer(LoadBalancerArn=load_balancer_arn)
        except ClientError as e:
            raise InfrastructureError(f"Failed to delete load balancer: {describe_error(e)}", LOAD_BALANCER_ERROR)

    def exists(self, load_balancer_arn: str) -> bool:
        try:
            response = self.elbv2.describe_load_balancers(LoadBalancerArns=[load_balancer_arn])
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check load balancer: {e}")
            return True
        return bool(response.get("LoadBalancers"))

    def target_group_exists(self, target_group_arn: str) -> bool:
        try:
            response = self.elbv2.describe_target_groups(TargetGroupArns=[target_group_arn])
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check target group: {e}")
            return True
        return bool(response.get("TargetGroups"))

    def find_load_balancers(self) -> List[str]:
        """Load balancer ARNs tagged with this app and run; empty on query failure."""
        try:
            paginator = self.elbv2.get_paginator("describe_load_balancers")
            arns = [lb["LoadBalancerArn"] for page in paginator.paginate()
                    for lb in page.get("LoadBalancers", []) if lb.get("LoadBalancerArn")]
            return self._tagged(arns)
        except ClientError as e:
            logger.warning(f"Error fetching load balancers: {e}")
            return []

    def find_target_groups(self) -> List[str]:
        """Target group ARNs tagged with this app and run; empty on query failure."""
        try:
            paginator = self.elbv2.get_paginator("describe_target_groups")
            arns = [tg["TargetGroupArn"] for page in paginator.paginate()
                    for tg in page.get("TargetGroups", []) if tg.get("TargetGroupArn")]
            return self._tagged(arns)
        except ClientError as e:
            logger.warning(f"Error fetching target groups: {e}")
            return []

    def _tagged(self, arns: List[str]) -> List[str]:
        # ELBv2 has no tag filters; describe_tags accepts 20 ARNs per call
        tags: Dict[str, list] = {}
        for start in range(0, len(arns), TAG_BATCH_SIZE):
            response = self.elbv2.describe_tags(ResourceArns=arns[start:start + TAG_BATCH_SIZE])
            for description in response.get("TagDescriptions", []):
                tags[description.get("ResourceArn")] = description.get("Tags", [])

        return [arn for arn in arns
                if belongs_to_run(tags.get(arn, []), self.config.app_name, self.run_id)]
