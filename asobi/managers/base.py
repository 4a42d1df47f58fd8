"""
Shared helpers for resource lifecycle managers.
"""

from typing import Dict, List

from ..config import AppConfig
from ..tags import PROJECT, common_tags, tag_filters, tag_specifications


class BaseManager:
    """
    Common naming and tagging for one run.

    Managers hold the config and run ID only; resource identifiers are
    passed in and returned, never kept.
    """

    def __init__(self, config: AppConfig, run_id: str):
        self.config = config
        self.run_id = run_id

    def resource_name(self, kind: str) -> str:
        """Human readable Name tag, e.g. ``shop-vpc-ab12cd34``."""
        return f"{self.config.app_name}-{kind}-{self.run_id}"

    def short_name(self, kind: str) -> str:
        """Physical name for resources capped at 32 characters (ALB, target group)."""
        return f"{PROJECT}-{kind}-{self.run_id}"

    def tags(self, kind: str) -> List[Dict[str, str]]:
        return common_tags(self.config.app_name, self.run_id, self.resource_name(kind),
                           self.config.extra_tags)

    def tag_specs(self, resource_type: str, kind: str) -> List[Dict[str, object]]:
        return tag_specifications(resource_type, self.config.app_name, self.run_id,
                                  self.resource_name(kind), self.config.extra_tags)

    def run_filters(self) -> List[Dict[str, object]]:
        return tag_filters(self.config.app_name, self.run_id)
