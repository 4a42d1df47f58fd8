"""
IAM role and instance profile lifecycle.
"""

import json
import logging
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..config import AppConfig
from ..errors import (
    IDENTITY_ERROR,
    IDENTITY_PERMISSION_ERROR,
    IDENTITY_PROFILE_PROPAGATION_TIMEOUT,
    IDENTITY_PROFILE_VERIFICATION_ERROR,
    IDENTITY_ROLE_VERIFICATION_FAILED,
    InfrastructureError,
    describe_error,
    is_access_denied,
    is_not_found,
)
from ..polling import poll_with_backoff
from .base import BaseManager

logger = logging.getLogger(__name__)

TRUST_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"Service": "ec2.amazonaws.com"},
            "Action": "sts:AssumeRole",
        }
    ],
}


class IdentityProfileManager(BaseManager):
    """Creates the role and instance profile the compute instance runs as."""

    def __init__(self, config: AppConfig, run_id: str, iam_client):
        super().__init__(config, run_id)
        self.iam = iam_client

    @property
    def role_name(self) -> str:
        return self.resource_name("role")

    @property
    def profile_name(self) -> str:
        return self.resource_name("profile")

    def create(self) -> str:
        """
        Create role and instance profile and wait until the role is attached.

        Returns:
            Instance profile name

        Raises:
            InfrastructureError: identity-permission-error when access is denied,
                a verification or propagation code when IAM never catches up,
                identity-error otherwise. A role or profile created before the
                failure is removed first.
        """
        created = {"role": False, "profile": False}
        try:
            self.verify_permissions()

            logger.info(f"Creating IAM role {self.role_name}...")
            self.iam.create_role(
                RoleName=self.role_name,
                AssumeRolePolicyDocument=json.dumps(TRUST_POLICY),
                Tags=self.tags("role"),
            )
            created["role"] = True
            role = self.iam.get_role(RoleName=self.role_name).get("Role")
            if not role:
                raise InfrastructureError(f"Role {self.role_name} was created but cannot be read back",
                                          IDENTITY_ROLE_VERIFICATION_FAILED)

            for policy_arn in self.config.role_policies:
                logger.info(f"Attaching policy {policy_arn}")
                self.iam.attach_role_policy(RoleName=self.role_name, PolicyArn=policy_arn)

            logger.info(f"Creating instance profile {self.profile_name}...")
            self.iam.create_instance_profile(
                InstanceProfileName=self.profile_name,
                Tags=self.tags("profile"),
            )
            created["profile"] = True
            profile = self.iam.get_instance_profile(InstanceProfileName=self.profile_name).get("InstanceProfile")
            if not profile:
                raise InfrastructureError(f"Instance profile {self.profile_name} was created but cannot be read back",
                                          IDENTITY_PROFILE_VERIFICATION_ERROR)

            self.iam.add_role_to_instance_profile(InstanceProfileName=self.profile_name, RoleName=self.role_name)

            poll_with_backoff(
                self._role_attached,
                self.config.profile_budget(),
                description=f"instance profile {self.profile_name}",
                error_code=IDENTITY_PROFILE_PROPAGATION_TIMEOUT,
                error_message=f"Instance profile {self.profile_name} never reported role {self.role_name}",
            )
            return self.profile_name
        except Exception as e:
            self._discard(created["role"], created["profile"])
            if not isinstance(e, ClientError):
                raise
            if is_access_denied(e):
                raise InfrastructureError(f"Insufficient IAM permissions: {describe_error(e)}",
                                          IDENTITY_PERMISSION_ERROR) from e
            raise InfrastructureError(f"Failed to create instance profile: {describe_error(e)}",
                                      IDENTITY_ERROR) from e

    def _discard(self, role_created: bool, profile_created: bool) -> None:
        """
        Remove the role and profile a failed create left behind.

        Every step is attempted; errors are only logged.
        """
        steps = []
        if profile_created:
            steps.append((f"remove role from {self.profile_name}",
                          lambda: self.iam.remove_role_from_instance_profile(
                              InstanceProfileName=self.profile_name, RoleName=self.role_name)))
        if role_created:
            steps.append((f"detach policies from {self.role_name}", lambda: self._detach_policies(self.role_name)))
            steps.append((f"delete role {self.role_name}", lambda: self.iam.delete_role(RoleName=self.role_name)))
        if profile_created:
            steps.append((f"delete instance profile {self.profile_name}",
                          lambda: self.iam.delete_instance_profile(InstanceProfileName=self.profile_name)))

        for description, step in steps:
            logger.info(f"Rollback: {description}")
            try:
                step()
            except ClientError as e:
                if is_not_found(e):
                    continue
                logger.error(f"Failed to {description}: {describe_error(e)}")
            except BotoCoreError as e:
                logger.error(f"Failed to {description}: {e}")

    def _detach_policies(self, role_name: str) -> None:
        attached = self.iam.list_attached_role_policies(RoleName=role_name)
        for policy in attached.get("AttachedPolicies", []):
            logger.info(f"Detaching policy {policy['PolicyArn']} from {role_name}")
            self.iam.detach_role_policy(RoleName=role_name, PolicyArn=policy["PolicyArn"])

    def verify_permissions(self) -> None:
        """Fail fast when the caller cannot even read IAM."""
        try:
            self.iam.list_instance_profiles(MaxItems=1)
        except ClientError as e:
            if is_access_denied(e):
                raise InfrastructureError(f"Insufficient IAM permissions: {describe_error(e)}",
                                          IDENTITY_PERMISSION_ERROR)
            raise

    def _role_attached(self) -> bool:
        try:
            response = self.iam.get_instance_profile(InstanceProfileName=self.profile_name)
        except ClientError as e:
            if is_not_found(e):
                return False
            raise
        return bool(response.get("InstanceProfile", {}).get("Roles"))

    def delete(self, profile_name: str) -> None:
        """
        Detach everything from the profile's role, then delete role and profile.

        Args:
            profile_name: Instance profile name from the Resource Set
        """
        try:
            response = self.iam.get_instance_profile(InstanceProfileName=profile_name)
            roles = response.get("InstanceProfile", {}).get("Roles", [])

            for role in roles:
                role_name = role["RoleName"]
                self._detach_policies(role_name)

                logger.info(f"Removing role {role_name} from instance profile {profile_name}")
                self.iam.remove_role_from_instance_profile(InstanceProfileName=profile_name, RoleName=role_name)

                logger.info(f"Deleting IAM role: {role_name}")
                self.iam.delete_role(RoleName=role_name)

            logger.info(f"Deleting instance profile: {profile_name}")
            self.iam.delete_instance_profile(InstanceProfileName=profile_name)
        except ClientError as e:
            raise InfrastructureError(f"Failed to delete instance profile {profile_name}: {describe_error(e)}",
                                      IDENTITY_ERROR)

    def exists(self, profile_name: str) -> bool:
        try:
            self.iam.get_instance_profile(InstanceProfileName=profile_name)
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check instance profile {profile_name}: {e}")
            return True
        return True

    def profile_arn(self, profile_name: str) -> Optional[str]:
        response = self.iam.get_instance_profile(InstanceProfileName=profile_name)
        return response.get("InstanceProfile", {}).get("Arn")

    def find_profiles(self) -> List[str]:
        """
        Instance profiles created for this app and run.

        IAM cannot filter by tag, so profiles are matched by name. Query
        failures return an empty list.
        """
        try:
            paginator = self.iam.get_paginator("list_instance_profiles")
            names = []
            for page in paginator.paginate():
                for profile in page.get("InstanceProfiles", []):
                    if profile.get("InstanceProfileName") == self.profile_name:
                        names.append(self.profile_name)
            return names
        except ClientError as e:
            logger.warning(f"Error fetching instance profiles: {e}")
            return []
