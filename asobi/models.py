"""
Data models for the Resource Set and run results.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

LIST_FIELDS = ("subnet_ids", "security_group_ids")


@dataclass
class ResourceSet:
    """Identifiers of every remote resource created for one application."""
    network_id: Optional[str] = None
    subnet_ids: List[str] = field(default_factory=list)
    security_group_ids: List[str] = field(default_factory=list)  # edge first, compute second
    instance_profile_name: Optional[str] = None
    instance_id: Optional[str] = None
    key_pair_name: Optional[str] = None
    load_balancer_arn: Optional[str] = None
    target_group_arn: Optional[str] = None
    route_table_id: Optional[str] = None
    gateway_id: Optional[str] = None
    certificate_arn: Optional[str] = None
    # Fields pointing at pre-existing resources that teardown must leave alone
    adopted: List[str] = field(default_factory=list)

    @classmethod
    def resource_fields(cls) -> List[str]:
        return [f.name for f in fields(cls) if f.name != "adopted"]

    def is_set(self, name: str) -> bool:
        return bool(getattr(self, name))

    def populated_fields(self) -> List[str]:
        return [name for name in self.resource_fields() if self.is_set(name)]

    def is_empty(self) -> bool:
        return not self.populated_fields()

    def is_adopted(self, name: str) -> bool:
        return name in self.adopted

    def adopt(self, name: str) -> None:
        if name not in self.adopted:
            self.adopted.append(name)

    def clear(self, *names: str) -> None:
        """Forget the given fields after their resources are gone."""
        for name in names:
            setattr(self, name, [] if name in LIST_FIELDS else None)
            if name in self.adopted:
                self.adopted.remove(name)

    def reset(self) -> None:
        self.clear(*self.resource_fields())
        self.adopted = []

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in self.resource_fields()}
        for name in LIST_FIELDS:
            data[name] = list(data[name])
        data["adopted"] = list(self.adopted)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResourceSet":
        data = data or {}
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for name in LIST_FIELDS + ("adopted",):
            values[name] = list(values.get(name) or [])
        return cls(**values)


@dataclass
class NetworkDetails:
    """Outcome of creating or adopting a network."""
    network_id: str
    cidr_block: str
    gateway_id: Optional[str] = None
    route_table_id: Optional[str] = None
    availability_zones: List[str] = field(default_factory=list)
    # Which of the pieces above already existed before this run
    existing_network: bool = False
    existing_gateway: bool = False
    existing_route_table: bool = False


@dataclass
class StageFailure:
    """A resource that could not be removed, with the reason."""
    resource: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"resource": self.resource, "error": self.error}


@dataclass
class CreateResult:
    success: bool
    resources: Optional[ResourceSet] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    cancelled: bool = False
    rollback_failures: List[StageFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "resources": self.resources.to_dict() if self.resources else None,
            "error": self.error,
            "error_code": self.error_code,
            "cancelled": self.cancelled,
            "rollback_failures": [f.to_dict() for f in self.rollback_failures],
        }


@dataclass
class DeleteResult:
    success: bool
    error: Optional[str] = None
    failures: List[StageFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "failures": [f.to_dict() for f in self.failures],
        }
