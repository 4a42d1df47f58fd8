"""
EC2 instance and key pair lifecycle.
"""

import base64
import logging
from typing import List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ..config import AppConfig
from ..errors import COMPUTE_ERROR, InfrastructureError, describe_error, is_not_found
from ..keystore import KeyStore
from ..polling import poll_until
from .base import BaseManager

logger = logging.getLogger(__name__)

GONE_STATES = ("shutting-down", "terminated")


class ComputeManager(BaseManager):
    """Launches one instance with a freshly generated key pair."""

    def __init__(self, config: AppConfig, run_id: str, ec2_client, iam_client, keystore: KeyStore):
        super().__init__(config, run_id)
        self.ec2 = ec2_client
        self.iam = iam_client
        self.keystore = keystore

    @property
    def key_name(self) -> str:
        return f"{self.config.app_name}-{self.run_id}"

    def create(self, subnet_id: str, security_group_id: str, profile_name: str) -> Tuple[str, str]:
        """
        Create a key pair and launch the instance.

        Args:
            subnet_id: Subnet to launch into
            security_group_id: Compute security group
            profile_name: Instance profile the instance runs as

        Returns:
            (instance_id, key_name)

        Raises:
            InfrastructureError: compute-error; the key pair is removed first
                when it was already created
        """
        key_created = False
        try:
            profile = self.iam.get_instance_profile(InstanceProfileName=profile_name)
            profile_arn = profile.get("InstanceProfile", {}).get("Arn")
            if not profile_arn:
                raise InfrastructureError(f"Instance profile {profile_name} has no ARN", COMPUTE_ERROR)

            logger.info(f"Creating key pair {self.key_name}...")
            key = self.ec2.create_key_pair(
                KeyName=self.key_name,
                TagSpecifications=self.tag_specs("key-pair", "key"),
            )
            key_created = True
            self.keystore.write_private_key(self.key_name, key["KeyMaterial"])

            instance_id = self._launch(subnet_id, security_group_id, profile_arn)
        except Exception as e:
            if key_created:
                self._discard_key_pair()
            if isinstance(e, InfrastructureError):
                raise
            raise InfrastructureError(f"Failed to create instance: {describe_error(e)}", COMPUTE_ERROR) from e

        budget = self.config.instance_budget()
        running = poll_until(
            lambda: self.instance_state(instance_id) == "running",
            max_attempts=budget.max_attempts,
            wait_time=budget.base_delay,
            description=f"instance {instance_id} to be running",
        )
        if running:
            logger.info(f"Instance {instance_id} is running")
        else:
            logger.warning(f"Instance {instance_id} did not reach running state in time")

        return instance_id, self.key_name

    def _launch(self, subnet_id: str, security_group_id: str, profile_arn: str) -> str:
        user_data = base64.b64encode(self.config.bootstrap_script.encode("utf-8")).decode("utf-8")

        logger.info(f"Launching {self.config.instance_type} instance from {self.config.ami_id}...")
        response = self.ec2.run_instances(
            ImageId=self.config.ami_id,
            InstanceType=self.config.instance_type,
            KeyName=self.key_name,
            MinCount=1,
            MaxCount=1,
            SubnetId=subnet_id,
            SecurityGroupIds=[security_group_id],
            IamInstanceProfile={"Arn": profile_arn},
            UserData=user_data,
            TagSpecifications=self.tag_specs("instance", "instance"),
            BlockDeviceMappings=[
                {
                    "DeviceName": "/dev/xvda",
                    "Ebs": {
                        "VolumeSize": self.config.volume_size,
                        "VolumeType": "gp3",
                        "DeleteOnTermination": True,
                    },
                }
            ],
        )
        instances = response.get("Instances", [])
        if not instances:
            raise InfrastructureError("run_instances returned no instance", COMPUTE_ERROR)
        return instances[0]["InstanceId"]

    def _discard_key_pair(self) -> None:
        logger.info(f"Removing key pair {self.key_name} after failed launch")
        try:
            self.ec2.delete_key_pair(KeyName=self.key_name)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete key pair {self.key_name}: {e}")
        self.keystore.delete_private_key(self.key_name)

    def delete(self, instance_id: Optional[str], key_name: Optional[str]) -> None:
        """
        Terminate the instance and wait for it, then delete the key pair.

        Either argument may be None to skip that part.
        """
        try:
            if instance_id:
                logger.info(f"Terminating instance: {instance_id}")
                self.ec2.terminate_instances(InstanceIds=[instance_id])
                budget = self.config.instance_budget()
                terminated = poll_until(
                    lambda: self.instance_state(instance_id) == "terminated",
                    max_attempts=budget.max_attempts,
                    wait_time=budget.base_delay,
                    description=f"instance {instance_id} to terminate",
                )
                if not terminated:
                    logger.warning(f"Instance {instance_id} did not reach terminated state in time")

            if key_name:
                logger.info(f"Deleting key pair: {key_name}")
                self.ec2.delete_key_pair(KeyName=key_name)
                self.keystore.delete_private_key(key_name)
        except ClientError as e:
            raise InfrastructureError(f"Failed to delete instance: {describe_error(e)}", COMPUTE_ERROR)

    def instance_state(self, instance_id: str) -> Optional[str]:
        response = self.ec2.describe_instances(InstanceIds=[instance_id])
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return instance.get("State", {}).get("Name")
        return None

    def exists(self, instance_id: str) -> bool:
        """An instance that is terminating or not found counts as gone."""
        try:
            state = self.instance_state(instance_id)
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check instance {instance_id}: {e}")
            return True
        return state is not None and state not in GONE_STATES

    def key_pair_exists(self, key_name: str) -> bool:
        try:
            response = self.ec2.describe_key_pairs(KeyNames=[key_name])
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check key pair {key_name}: {e}")
            return True
        return bool(response.get("KeyPairs"))

    def find_instances(self) -> List[str]:
        """Non-terminated instance IDs tagged with this app and run."""
        try:
            response = self.ec2.describe_instances(Filters=self.run_filters())
        except ClientError as e:
            logger.warning(f"Error fetching instances: {e}")
            return []

        instance_ids = []
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                if instance.get("State", {}).get("Name") not in GONE_STATES:
                    instance_ids.append(instance["InstanceId"])
        return instance_ids
