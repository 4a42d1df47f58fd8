"""
Provisioning and teardown of one application's resources.

Stages run as a fixed linear list. Creation is fail-fast with a compensating
rollback; deletion attempts every stage and collects failures. The Resource
Set is written through the state store after every completed stage.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from .config import AppConfig
from .errors import (
    ACCOUNT_ERROR,
    CANCELLED,
    LOAD_BALANCER_ERROR,
    STATE_CONFLICT,
    UNKNOWN_ERROR,
    InfrastructureError,
    describe_error,
)
from .events import EventTypes, emit_event
from .managers import Managers
from .models import CreateResult, DeleteResult, ResourceSet, StageFailure
from .prompts import Prompter
from .state import StateStore

logger = logging.getLogger(__name__)

PARTIAL_DELETE_MESSAGE = "Some resources could not be deleted and may need manual cleanup"


@dataclass
class Stage:
    """One step of the fixed sequence; ``fields`` are the Resource Set entries it owns."""
    name: str
    label: str
    fields: Tuple[str, ...]
    create: Callable[[ResourceSet], None]
    delete: Optional[Callable[[ResourceSet], None]] = None


@dataclass
class RunContext:
    """Values handed from earlier create stages to later ones."""
    cidr_block: Optional[str] = None
    zones: List[str] = field(default_factory=list)
    selected_subnets: List[str] = field(default_factory=list)


class Orchestrator:
    """
    Runs create and delete for one application.

    Args:
        config: Application configuration
        store: Persistence for the Resource Set
        prompter: Interactive decision points
        managers: Lifecycle managers bound to this run
        run_id: Unique ID tagged on every resource of this run
        sts: STS client for the account lookup shown before creation
    """

    def __init__(self, config: AppConfig, store: StateStore, prompter: Prompter,
                 managers: Managers, run_id: str, sts=None):
        self.config = config
        self.store = store
        self.prompter = prompter
        self.managers = managers
        self.run_id = run_id
        self.sts = sts
        self.context = RunContext()

    @property
    def app_name(self) -> str:
        return self.config.app_name

    def stages(self) -> List[Stage]:
        return [
            Stage("Network", "VPC", ("network_id", "route_table_id", "gateway_id"),
                  self._create_network, self._delete_network),
            Stage("Subnets", "subnets", ("subnet_ids",),
                  self._create_subnets, self._delete_subnets),
            Stage("SecurityGroups", "security groups", ("security_group_ids",),
                  self._create_security_groups, self._delete_security_groups),
            Stage("IdentityProfile", "instance profile", ("instance_profile_name",),
                  self._create_identity, self._delete_identity),
            Stage("ComputeInstance", "EC2 instance", ("instance_id", "key_pair_name"),
                  self._create_instance, self._delete_instance),
            Stage("LoadBalancer", "load balancer", ("load_balancer_arn", "target_group_arn", "certificate_arn"),
                  self._create_load_balancer, self._delete_load_balancer),
            Stage("TargetRegistration", "target registration", (), self._register_target),
            Stage("HealthCheck", "health check", (), self._check_health),
        ]

    # Create path

    def create(self) -> CreateResult:
        """
        Provision every stage in order.

        Returns:
            CreateResult; on failure the Resource Set has been rolled back and
            reset, and ``error_code`` carries the failing stage's code
        """
        resources = self.store.read()
        if not resources.is_empty():
            message = (f"Application {self.app_name} still has resources "
                       f"({', '.join(resources.populated_fields())}); delete it first")
            logger.error(message)
            return CreateResult(success=False, resources=resources, error=message, error_code=STATE_CONFLICT)

        emit_event(self.app_name, EventTypes.INIT, {"run_id": self.run_id, "config": self.config.summary()})

        try:
            account = self.account_details()
        except InfrastructureError as e:
            logger.error(str(e))
            emit_event(self.app_name, EventTypes.ERROR, {"error": str(e), "code": e.code})
            return CreateResult(success=False, resources=resources, error=str(e), error_code=e.code)

        if not self.prompter.confirm_run(account, self.config.summary()):
            logger.info("Infrastructure creation cancelled")
            emit_event(self.app_name, EventTypes.CANCELLED, {})
            return CreateResult(success=False, resources=resources, cancelled=True, error_code=CANCELLED)

        self.context = RunContext()
        for position, stage in enumerate(self.stages(), start=1):
            logger.info(f"=== {stage.name} ({position}) ===")
            emit_event(self.app_name, EventTypes.STAGE_START, {"stage": stage.name})
            try:
                stage.create(resources)
            except Exception as e:
                return self._abort(resources, stage, e)

            self.store.write(resources)
            emit_event(self.app_name, EventTypes.STAGE_DONE, {
                "stage": stage.name,
                "resources": {name: getattr(resources, name) for name in stage.fields},
            })

        logger.info("Infrastructure creation complete")
        for name in resources.populated_fields():
            logger.info(f"{name}: {getattr(resources, name)}")
        emit_event(self.app_name, EventTypes.DONE, {"resources": resources.to_dict()})
        return CreateResult(success=True, resources=resources)

    def account_details(self) -> Dict[str, str]:
        if self.sts is None:
            return {"account_id": "Unknown", "arn": "Unknown"}
        try:
            identity = self.sts.get_caller_identity()
        except ClientError as e:
            raise InfrastructureError(f"Failed to get AWS account details: {describe_error(e)}", ACCOUNT_ERROR)
        return {"account_id": identity.get("Account", "Unknown"), "arn": identity.get("Arn", "Unknown")}

    def _abort(self, resources: ResourceSet, stage: Stage, error: Exception) -> CreateResult:
        code = error.code if isinstance(error, InfrastructureError) else UNKNOWN_ERROR
        message = describe_error(error)
        logger.error(f"Error during infrastructure creation at {stage.name}: {message}")
        if isinstance(error, InfrastructureError) and error.is_permission_error:
            logger.error("The AWS credentials lack the IAM permissions this stage needs; not retrying")
        emit_event(self.app_name, EventTypes.STAGE_FAILED, {"stage": stage.name, "error": message, "code": code})

        plan = [f"{name}={getattr(resources, name)}" for name in resources.populated_fields()
                if not resources.is_adopted(name)]
        logger.info("=== Starting Rollback Process ===")
        logger.info(f"Resources to rollback: {', '.join(plan) if plan else 'none'}")
        emit_event(self.app_name, EventTypes.ROLLBACK_START, {"resources": resources.to_dict()})

        failures = self._teardown(resources)
        if failures:
            logger.warning("Rollback finished with errors:")
            for failure in failures:
                logger.warning(f"  - {failure.resource}: {failure.error}")
        else:
            logger.info("Rollback completed")
        emit_event(self.app_name, EventTypes.ROLLBACK_DONE, {"failures": [f.to_dict() for f in failures]})

        return CreateResult(
            success=False,
            resources=resources,
            error=message,
            error_code=code,
            rollback_failures=failures,
        )

    # Delete path

    def delete(self) -> DeleteResult:
        """
        Delete every recorded resource, continuing past failures.

        Returns:
            DeleteResult; ``success`` stays True when some resources could not
            be deleted, ``failures`` lists them and ``error`` says so
        """
        resources = self.store.read()
        if resources.is_empty():
            logger.info(f"No resources recorded for {self.app_name}")
            return DeleteResult(success=True)

        emit_event(self.app_name, EventTypes.DESTROY_START, {"resources": resources.to_dict()})
        failures = self._teardown(resources)
        emit_event(self.app_name, EventTypes.DESTROY_DONE, {"failures": [f.to_dict() for f in failures]})

        if failures:
            lines = "\n".join(f"  - {f.resource}: {f.error}" for f in failures)
            logger.warning(f"{PARTIAL_DELETE_MESSAGE}:\n{lines}")
            return DeleteResult(success=True, error=PARTIAL_DELETE_MESSAGE, failures=failures)

        logger.info("Infrastructure deleted")
        return DeleteResult(success=True)

    def _teardown(self, resources: ResourceSet) -> List[StageFailure]:
        """Attempt each populated stage once in reverse order, then reset and persist."""
        failures = []
        for stage in reversed(self.stages()):
            if stage.delete is None or not any(resources.is_set(name) for name in stage.fields):
                continue

            logger.info(f"Deleting {stage.label}...")
            try:
                stage.delete(resources)
            except Exception as e:
                message = describe_error(e)
                logger.error(f"Failed to delete {stage.label}: {message}")
                failures.append(StageFailure(stage.label, message))
                emit_event(self.app_name, EventTypes.DESTROY_STAGE_FAILED, {"stage": stage.name, "error": message})
                continue

            resources.clear(*stage.fields)
            self.store.write(resources)
            emit_event(self.app_name, EventTypes.DESTROY_STAGE_DONE, {"stage": stage.name})

        resources.reset()
        self.store.write(resources)
        return failures

    def discover(self) -> Dict[str, List[str]]:
        """Resources tagged with this app and run, found by querying AWS."""
        networks = self.managers.network.find_networks()
        subnets = []
        for network_id in networks:
            subnets.extend(self.managers.subnets.find_subnets(network_id))
        return {
            "networks": networks,
            "subnets": subnets,
            "security_groups": self.managers.security.find_groups(),
            "instance_profiles": self.managers.identity.find_profiles(),
            "instances": self.managers.compute.find_instances(),
            "load_balancers": self.managers.load_balancer.find_load_balancers(),
            "target_groups": self.managers.load_balancer.find_target_groups(),
        }

    # Stage operations

    @staticmethod
    def _owned(resources: ResourceSet, name: str) -> Any:
        """Field value when this run created it, None for adopted resources."""
        if resources.is_adopted(name):
            return None
        return getattr(resources, name)

    def _create_network(self, resources: ResourceSet) -> None:
        network = self.managers.network
        existing = network.list_networks()

        details = None
        if existing and self.prompter.confirm("Do you want to use an existing VPC?", default=True):
            choices = [(f"{n['id']} ({n['name']}, {n['cidr']})", n["id"]) for n in existing]
            network_id = self.prompter.select("Select a VPC:", choices)
            details = network.adopt(network_id)

            subnets = network.list_subnets(network_id)
            if subnets:
                choices = [(f"{s['id']} ({s['zone']}, {s['cidr']})", s["id"]) for s in subnets]
                self.context.selected_subnets = self.prompter.checkbox("Select subnets to use:", choices)
        else:
            details = network.create()

        resources.network_id = details.network_id
        resources.gateway_id = details.gateway_id
        resources.route_table_id = details.route_table_id
        if details.existing_network:
            resources.adopt("network_id")
        if details.existing_gateway:
            resources.adopt("gateway_id")
        if details.existing_route_table:
            resources.adopt("route_table_id")

        self.context.cidr_block = details.cidr_block
        self.context.zones = details.availability_zones

    def _delete_network(self, resources: ResourceSet) -> None:
        network = self.managers.network
        if resources.network_id and not network.exists(resources.network_id):
            logger.info(f"VPC {resources.network_id} already deleted")
            # A gateway detached from a deleted VPC still exists on its own
            gateway_id = self._owned(resources, "gateway_id")
            if gateway_id and network.gateway_exists(gateway_id):
                network.delete(None, gateway_id=gateway_id)
            return

        network.delete(
            resources.network_id,
            route_table_id=self._owned(resources, "route_table_id"),
            gateway_id=self._owned(resources, "gateway_id"),
            keep_network=resources.is_adopted("network_id"),
        )

    def _create_subnets(self, resources: ResourceSet) -> None:
        if self.context.selected_subnets:
            resources.subnet_ids = list(self.context.selected_subnets)
            resources.adopt("subnet_ids")
            return

        resources.subnet_ids = self.managers.subnets.create(
            resources.network_id,
            self.context.cidr_block,
            self.context.zones,
            resources.route_table_id,
        )

    def _delete_subnets(self, resources: ResourceSet) -> None:
        if resources.is_adopted("subnet_ids"):
            return
        subnets = self.managers.subnets
        subnets.delete([subnet_id for subnet_id in resources.subnet_ids if subnets.exists(subnet_id)])

    def _create_security_groups(self, resources: ResourceSet) -> None:
        resources.security_group_ids = self.managers.security.create(resources.network_id)

    def _delete_security_groups(self, resources: ResourceSet) -> None:
        security = self.managers.security
        security.delete([group_id for group_id in resources.security_group_ids if security.exists(group_id)])

    def _create_identity(self, resources: ResourceSet) -> None:
        resources.instance_profile_name = self.managers.identity.create()

    def _delete_identity(self, resources: ResourceSet) -> None:
        identity = self.managers.identity
        if not identity.exists(resources.instance_profile_name):
            logger.info(f"Instance profile {resources.instance_profile_name} already deleted")
            return
        identity.delete(resources.instance_profile_name)

    def _create_instance(self, resources: ResourceSet) -> None:
        instance_id, key_name = self.managers.compute.create(
            resources.subnet_ids[0],
            resources.security_group_ids[-1],
            resources.instance_profile_name,
        )
        resources.instance_id = instance_id
        resources.key_pair_name = key_name

    def _delete_instance(self, resources: ResourceSet) -> None:
        compute = self.managers.compute
        instance_id = resources.instance_id
        if instance_id and not compute.exists(instance_id):
            logger.info(f"Instance {instance_id} already terminated")
            instance_id = None

        key_name = resources.key_pair_name
        if key_name and not compute.key_pair_exists(key_name):
            logger.info(f"Key pair {key_name} already deleted")
            compute.keystore.delete_private_key(key_name)
            key_name = None

        compute.delete(instance_id, key_name)

    def _create_load_balancer(self, resources: ResourceSet) -> None:
        lb_arn, tg_arn = self.managers.load_balancer.create(
            resources.network_id,
            resources.subnet_ids,
            resources.security_group_ids[0],
            certificate_arn=self.config.certificate_arn,
        )
        resources.load_balancer_arn = lb_arn
        resources.target_group_arn = tg_arn
        if self.config.certificate_arn:
            resources.certificate_arn = self.config.certificate_arn
            resources.adopt("certificate_arn")

    def _delete_load_balancer(self, resources: ResourceSet) -> None:
        load_balancer = self.managers.load_balancer
        lb_arn = resources.load_balancer_arn
        if lb_arn and not load_balancer.exists(lb_arn):
            logger.info("Load balancer already deleted")
            lb_arn = None

        tg_arn = resources.target_group_arn
        if tg_arn and not load_balancer.target_group_exists(tg_arn):
            logger.info("Target group already deleted")
            tg_arn = None

        load_balancer.delete(lb_arn, tg_arn)

    def _register_target(self, resources: ResourceSet) -> None:
        self.managers.load_balancer.register_target(resources.target_group_arn, resources.instance_id)

    def _check_health(self, resources: ResourceSet) -> None:
        if not self.config.health_check:
            logger.info("No web server codebase was deployed, skipping health check")
            return

        healthy = self.managers.load_balancer.wait_for_healthy(resources.target_group_arn, resources.instance_id)
        if not healthy:
            raise InfrastructureError("Target failed health check", LOAD_BALANCER_ERROR)
        logger.info("Target health check passed")
