"""
Application configuration for a provisioning run.
"""

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from .polling import AttemptBudget

APP_TYPE_EMPTY = "empty"
APP_TYPE_WEB = "load-balanced-web-service"
APP_TYPES = (APP_TYPE_EMPTY, APP_TYPE_WEB)

DEFAULT_REGION = "us-east-1"
DEFAULT_INSTANCE_TYPE = "t2.micro"
DEFAULT_AMI_ID = "ami-0e670eb768a5fc3d4"

DEFAULT_ROLE_POLICIES = [
    "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole",
    "arn:aws:iam::aws:policy/AmazonEC2ReadOnlyAccess",
    "arn:aws:iam::aws:policy/AmazonS3ReadOnlyAccess",
]

DEFAULT_BOOTSTRAP_SCRIPT = """#!/bin/bash

# Update system
apt update -y

# Install utilities
apt install -y curl git
"""


@dataclass
class AppConfig:
    """Everything a run needs to know besides the Resource Set."""
    app_name: str
    region: str = DEFAULT_REGION
    instance_type: str = DEFAULT_INSTANCE_TYPE
    ami_id: str = DEFAULT_AMI_ID
    app_type: str = APP_TYPE_EMPTY
    port: int = 80
    health_check: bool = False
    certificate_arn: Optional[str] = None
    network_cidr: str = "10.0.0.0/16"
    zone_count: int = 2
    volume_size: int = 20
    key_dir: str = ".ssh"
    bootstrap_script: str = DEFAULT_BOOTSTRAP_SCRIPT
    role_policies: List[str] = field(default_factory=lambda: list(DEFAULT_ROLE_POLICIES))
    extra_tags: Dict[str, str] = field(default_factory=dict)

    # Polling budgets: (max attempts, base delay, max delay) in seconds
    instance_attempts: int = 30
    instance_wait: float = 3.0
    health_attempts: int = 30
    health_wait: float = 30.0
    profile_attempts: int = 10
    profile_base_delay: float = 2.0
    profile_max_delay: float = 30.0

    # Fixed delays around security group deletion
    revoke_delay: float = 1.0
    dependency_retry_delay: float = 5.0

    def __post_init__(self):
        if self.app_type not in APP_TYPES:
            raise ValueError(f"Invalid app type: {self.app_type}. Expected one of {', '.join(APP_TYPES)}")
        if not 0 < int(self.port) < 65536:
            raise ValueError(f"Invalid port: {self.port}")
        if self.zone_count < 1:
            raise ValueError("zone_count must be at least 1")

    @property
    def is_web_service(self) -> bool:
        return self.app_type == APP_TYPE_WEB

    def instance_budget(self) -> AttemptBudget:
        return AttemptBudget(self.instance_attempts, self.instance_wait, self.instance_wait)

    def health_budget(self) -> AttemptBudget:
        return AttemptBudget(self.health_attempts, self.health_wait, self.health_wait)

    def profile_budget(self) -> AttemptBudget:
        return AttemptBudget(self.profile_attempts, self.profile_base_delay, self.profile_max_delay)

    def summary(self) -> Dict[str, Any]:
        """Subset of settings shown before a run is confirmed."""
        return {
            "app_name": self.app_name,
            "region": self.region,
            "instance_type": self.instance_type,
            "type": self.app_type,
            "port": self.port,
            "health_check": self.health_check,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Build a config from stored data, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, app_name: str, **overrides: Any) -> "AppConfig":
        """
        Build a config from defaults, environment variables and overrides.

        Environment variables:
            ASOBI_REGION, AWS_REGION, AWS_DEFAULT_REGION: region (first set wins)
            ASOBI_INSTANCE_TYPE: instance type
            ASOBI_AMI_ID: machine image

        Args:
            app_name: Application name
            **overrides: Explicit values; None values are ignored

        Returns:
            AppConfig
        """
        values: Dict[str, Any] = {}

        region = (os.environ.get("ASOBI_REGION") or os.environ.get("AWS_REGION")
                  or os.environ.get("AWS_DEFAULT_REGION"))
        if region:
            values["region"] = region
        if os.environ.get("ASOBI_INSTANCE_TYPE"):
            values["instance_type"] = os.environ["ASOBI_INSTANCE_TYPE"]
        if os.environ.get("ASOBI_AMI_ID"):
            values["ami_id"] = os.environ["ASOBI_AMI_ID"]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(app_name=app_name, **values)
