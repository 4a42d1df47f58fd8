"""
Network (VPC, internet gateway, route table) and subnet lifecycle.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..cidr import allocate_subnet_cidrs
from ..config import AppConfig
from ..errors import NETWORK_ERROR, SUBNET_ERROR, InfrastructureError, describe_error, is_not_found
from ..models import NetworkDetails
from ..tags import tags_to_dict
from .base import BaseManager

logger = logging.getLogger(__name__)

DEFAULT_ROUTE = "0.0.0.0/0"


class NetworkManager(BaseManager):
    """Creates, adopts and deletes the run's VPC with its gateway and route table."""

    def __init__(self, config: AppConfig, run_id: str, ec2_client):
        super().__init__(config, run_id)
        self.ec2 = ec2_client

    def create(self) -> NetworkDetails:
        """
        Create a VPC, attach an internet gateway and route 0.0.0.0/0 through it.

        Returns:
            NetworkDetails of the new network

        Raises:
            InfrastructureError: network-error on any failure; the pieces
                created before the failure are removed first
        """
        created: Dict[str, Any] = {}
        try:
            logger.info("Creating VPC...")
            response = self.ec2.create_vpc(
                CidrBlock=self.config.network_cidr,
                TagSpecifications=self.tag_specs("vpc", "vpc"),
            )
            network_id = response.get("Vpc", {}).get("VpcId")
            if not network_id:
                raise InfrastructureError("Failed to create VPC", NETWORK_ERROR)
            created["network_id"] = network_id

            gateway_id = self._create_gateway(network_id, created)
            route_table_id = self._create_route_table(network_id, gateway_id, created)

            return NetworkDetails(
                network_id=network_id,
                cidr_block=self.config.network_cidr,
                gateway_id=gateway_id,
                route_table_id=route_table_id,
                availability_zones=self.availability_zones(),
            )
        except Exception as e:
            self._discard(created)
            if isinstance(e, ClientError):
                raise InfrastructureError(f"Failed to create VPC: {describe_error(e)}", NETWORK_ERROR) from e
            raise

    def adopt(self, network_id: str) -> NetworkDetails:
        """
        Use an existing VPC, creating only the gateway or route that is missing.

        Args:
            network_id: VPC chosen by the user

        Returns:
            NetworkDetails, flagging which pieces already existed
        """
        created: Dict[str, Any] = {}
        try:
            vpc = self.describe(network_id)
            if not vpc or not vpc.get("CidrBlock"):
                raise InfrastructureError(f"VPC {network_id} not found or invalid", NETWORK_ERROR)

            gateway_id, route_table_id = self.inspect(network_id)
            existing_gateway = gateway_id is not None
            existing_route_table = route_table_id is not None

            if not existing_gateway:
                gateway_id = self._create_gateway(network_id, created)
            if not existing_route_table:
                route_table_id = self._create_route_table(network_id, gateway_id, created)

            return NetworkDetails(
                network_id=network_id,
                cidr_block=vpc["CidrBlock"],
                gateway_id=gateway_id,
                route_table_id=route_table_id,
                availability_zones=self.availability_zones(),
                existing_network=True,
                existing_gateway=existing_gateway,
                existing_route_table=existing_route_table,
            )
        except Exception as e:
            self._discard(created, network_id)
            if isinstance(e, ClientError):
                raise InfrastructureError(f"Failed to configure VPC {network_id}: {describe_error(e)}",
                                          NETWORK_ERROR) from e
            raise

    def inspect(self, network_id: str):
        """
        Find the attached internet gateway and a route table routing through it.

        Returns:
            (gateway_id, route_table_id); either may be None
        """
        response = self.ec2.describe_internet_gateways(
            Filters=[{"Name": "attachment.vpc-id", "Values": [network_id]}]
        )
        gateways = response.get("InternetGateways", [])
        gateway_id = gateways[0].get("InternetGatewayId") if gateways else None

        route_table_id = None
        if gateway_id:
            response = self.ec2.describe_route_tables(
                Filters=[{"Name": "vpc-id", "Values": [network_id]}]
            )
            for table in response.get("RouteTables", []):
                if any(route.get("DestinationCidrBlock") == DEFAULT_ROUTE
                       and route.get("GatewayId") == gateway_id
                       for route in table.get("Routes", [])):
                    route_table_id = table.get("RouteTableId")
                    break

        return gateway_id, route_table_id

    def _create_gateway(self, network_id: str, created: Dict[str, Any]) -> str:
        logger.info("Creating Internet Gateway...")
        response = self.ec2.create_internet_gateway(
            TagSpecifications=self.tag_specs("internet-gateway", "igw"),
        )
        gateway_id = response.get("InternetGateway", {}).get("InternetGatewayId")
        if not gateway_id:
            raise InfrastructureError("Failed to create Internet Gateway", NETWORK_ERROR)
        created["gateway_id"] = gateway_id

        logger.info(f"Attaching Internet Gateway {gateway_id} to VPC {network_id}...")
        self.ec2.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=network_id)
        created["gateway_attached"] = True
        return gateway_id

    def _create_route_table(self, network_id: str, gateway_id: str, created: Dict[str, Any]) -> str:
        logger.info("Creating Route Table...")
        response = self.ec2.create_route_table(
            VpcId=network_id,
            TagSpecifications=self.tag_specs("route-table", "rt"),
        )
        route_table_id = response.get("RouteTable", {}).get("RouteTableId")
        if not route_table_id:
            raise InfrastructureError("Failed to create Route Table", NETWORK_ERROR)
        created["route_table_id"] = route_table_id

        logger.info("Adding route to Internet Gateway...")
        self.ec2.create_route(
            RouteTableId=route_table_id,
            DestinationCidrBlock=DEFAULT_ROUTE,
            GatewayId=gateway_id,
        )
        return route_table_id

    def _discard(self, created: Dict[str, Any], network_id: Optional[str] = None) -> None:
        """
        Remove what a failed create or adopt left behind, newest first.

        ``created`` holds only resources made by this call, so an adopted
        VPC passed as ``network_id`` is used for detaching and never deleted.
        Every step is attempted; errors are only logged.
        """
        network_id = created.get("network_id") or network_id
        gateway_id = created.get("gateway_id")
        steps = []
        if created.get("route_table_id"):
            steps.append(("route table", lambda: self.ec2.delete_route_table(RouteTableId=created["route_table_id"])))
        if gateway_id and created.get("gateway_attached"):
            steps.append(("gateway attachment", lambda: self.ec2.detach_internet_gateway(
                InternetGatewayId=gateway_id, VpcId=network_id)))
        if gateway_id:
            steps.append(("internet gateway", lambda: self.ec2.delete_internet_gateway(InternetGatewayId=gateway_id)))
        if created.get("network_id"):
            steps.append(("VPC", lambda: self.ec2.delete_vpc(VpcId=created["network_id"])))

        for label, step in steps:
            logger.info(f"Rollback: removing {label}")
            try:
                step()
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Failed to remove {label}: {e}")

    def delete(self, network_id: Optional[str], route_table_id: Optional[str] = None,
               gateway_id: Optional[str] = None, keep_network: bool = False) -> None:
        """
        Delete route table, detach and delete gateway, then delete the VPC.

        Pass None for a route table or gateway that must be left in place and
        ``keep_network`` for an adopted VPC. A VPC flagged as the account
        default is never deleted.
        """
        try:
            if route_table_id:
                logger.info(f"Deleting route table: {route_table_id}")
                self.ec2.delete_route_table(RouteTableId=route_table_id)

            if gateway_id:
                if network_id:
                    logger.info(f"Detaching internet gateway {gateway_id} from {network_id}")
                    self.ec2.detach_internet_gateway(InternetGatewayId=gateway_id, VpcId=network_id)
                logger.info(f"Deleting internet gateway: {gateway_id}")
                self.ec2.delete_internet_gateway(InternetGatewayId=gateway_id)

            if network_id and not keep_network:
                if self.is_default(network_id):
                    logger.warning(f"VPC {network_id} is the account default VPC, not deleting it")
                    return
                logger.info(f"Deleting VPC: {network_id}")
                self.ec2.delete_vpc(VpcId=network_id)
        except ClientError as e:
            raise InfrastructureError(f"Failed to delete VPC: {describe_error(e)}", NETWORK_ERROR)

    def describe(self, network_id: str) -> Optional[Dict[str, Any]]:
        """Describe one VPC; None when it does not exist."""
        try:
            response = self.ec2.describe_vpcs(VpcIds=[network_id])
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        vpcs = response.get("Vpcs", [])
        return vpcs[0] if vpcs else None

    def exists(self, network_id: str) -> bool:
        try:
            return self.describe(network_id) is not None
        except ClientError as e:
            logger.warning(f"Could not check VPC {network_id}: {e}")
            return True

    def gateway_exists(self, gateway_id: str) -> bool:
        try:
            response = self.ec2.describe_internet_gateways(InternetGatewayIds=[gateway_id])
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check internet gateway {gateway_id}: {e}")
            return True
        return bool(response.get("InternetGateways"))

    def is_default(self, network_id: str) -> bool:
        vpc = self.describe(network_id)
        return bool(vpc and vpc.get("IsDefault"))

    def availability_zones(self) -> List[str]:
        """Names of the zones currently available in the region."""
        response = self.ec2.describe_availability_zones(
            Filters=[{"Name": "state", "Values": ["available"]}]
        )
        zones = [zone["ZoneName"] for zone in response.get("AvailabilityZones", []) if zone.get("ZoneName")]
        if not zones:
            raise InfrastructureError("No availability zones found in the region", NETWORK_ERROR)
        return zones

    def list_networks(self) -> List[Dict[str, str]]:
        """
        List VPCs in the region as {"id", "name", "cidr", "default"} entries.

        Query failures are logged and treated as no networks.
        """
        try:
            logger.info("Fetching existing VPCs...")
            response = self.ec2.describe_vpcs()
        except ClientError as e:
            logger.warning(f"Error fetching VPCs: {e}")
            return []

        networks = []
        for vpc in response.get("Vpcs", []):
            tags = tags_to_dict(vpc.get("Tags", []))
            networks.append({
                "id": vpc.get("VpcId", ""),
                "name": tags.get("Name", "Unnamed"),
                "cidr": vpc.get("CidrBlock", ""),
                "default": bool(vpc.get("IsDefault")),
            })
        return networks

    def list_subnets(self, network_id: str) -> List[Dict[str, str]]:
        """Subnets of a VPC as {"id", "zone", "cidr"}; empty on query failure."""
        try:
            response = self.ec2.describe_subnets(Filters=[{"Name": "vpc-id", "Values": [network_id]}])
        except ClientError as e:
            logger.warning(f"Error fetching subnets of {network_id}: {e}")
            return []

        return [
            {
                "id": subnet.get("SubnetId", ""),
                "zone": subnet.get("AvailabilityZone", ""),
                "cidr": subnet.get("CidrBlock", ""),
            }
            for subnet in response.get("Subnets", [])
        ]

    def find_networks(self) -> List[str]:
        """VPC IDs tagged with this app and run."""
        try:
            response = self.ec2.describe_vpcs(Filters=self.run_filters())
        except ClientError as e:
            logger.warning(f"Error fetching tagged VPCs: {e}")
            return []
        return [vpc["VpcId"] for vpc in response.get("Vpcs", []) if vpc.get("VpcId")]


class SubnetManager(BaseManager):
    """Creates one subnet per availability zone with allocated CIDR blocks."""

    def __init__(self, config: AppConfig, run_id: str, ec2_client):
        super().__init__(config, run_id)
        self.ec2 = ec2_client

    def create(self, network_id: str, cidr_block: str, zones: List[str],
               route_table_id: Optional[str] = None) -> List[str]:
        """
        Create subnets in the first ``config.zone_count`` zones.

        Args:
            network_id: VPC ID
            cidr_block: VPC CIDR block
            zones: Available zones, in preference order
            route_table_id: Route table to associate with each subnet

        Returns:
            Subnet IDs in zone order

        Raises:
            InfrastructureError: subnet-error on any failure; subnets created
                before the failure are deleted first
        """
        subnet_ids: List[str] = []
        try:
            logger.info("Creating subnets...")
            wanted = min(self.config.zone_count, len(zones))
            existing = [subnet.get("CidrBlock", "") for subnet in self._existing_subnets(network_id)]
            blocks = allocate_subnet_cidrs(cidr_block, existing, wanted)

            if not blocks:
                raise InfrastructureError(f"No free /24 blocks left in {cidr_block}", SUBNET_ERROR)
            if len(blocks) < wanted:
                logger.warning(f"Only {len(blocks)} of {wanted} subnet blocks available in {cidr_block}")

            for index, (zone, block) in enumerate(zip(zones, blocks), start=1):
                response = self.ec2.create_subnet(
                    VpcId=network_id,
                    CidrBlock=block,
                    AvailabilityZone=zone,
                    TagSpecifications=self.tag_specs("subnet", f"subnet-{index}"),
                )
                subnet_id = response.get("Subnet", {}).get("SubnetId")
                if not subnet_id:
                    raise InfrastructureError("Failed to create subnet", SUBNET_ERROR)
                logger.info(f"Created subnet {subnet_id} ({block}) in {zone}")
                subnet_ids.append(subnet_id)

                if route_table_id:
                    self.ec2.associate_route_table(RouteTableId=route_table_id, SubnetId=subnet_id)

            return subnet_ids
        except Exception as e:
            for subnet_id in reversed(subnet_ids):
                logger.info(f"Rollback: removing subnet {subnet_id}")
                try:
                    self.ec2.delete_subnet(SubnetId=subnet_id)
                except (BotoCoreError, ClientError) as delete_error:
                    logger.error(f"Failed to remove subnet {subnet_id}: {delete_error}")
            if isinstance(e, (ClientError, ValueError)):
                raise InfrastructureError(f"Failed to create subnet: {describe_error(e)}", SUBNET_ERROR) from e
            raise

    def delete(self, subnet_ids: Iterable[str]) -> None:
        try:
            for subnet_id in subnet_ids:
                logger.info(f"Deleting subnet: {subnet_id}")
                self.ec2.delete_subnet(SubnetId=subnet_id)
        except ClientError as e:
            raise InfrastructureError(f"Failed to delete subnets: {describe_error(e)}", SUBNET_ERROR)

    def exists(self, subnet_id: str) -> bool:
        try:
            response = self.ec2.describe_subnets(SubnetIds=[subnet_id])
        except ClientError as e:
            if is_not_found(e):
                return False
            logger.warning(f"Could not check subnet {subnet_id}: {e}")
            return True
        return bool(response.get("Subnets"))

    def find_subnets(self, network_id: str) -> List[str]:
        """Subnet IDs in the VPC tagged with this app and run."""
        try:
            response = self.ec2.describe_subnets(
                Filters=[{"Name": "vpc-id", "Values": [network_id]}] + self.run_filters()
            )
        except ClientError as e:
            logger.warning(f"Error fetching subnets: {e}")
            return []
        return [subnet["SubnetId"] for subnet in response.get("Subnets", []) if subnet.get("SubnetId")]

    def _existing_subnets(self, network_id: str) -> List[Dict[str, Any]]:
        try:
            response = self.ec2.describe_subnets(Filters=[{"Name": "vpc-id", "Values": [network_id]}])
        except ClientError as e:
            logger.warning(f"Error getting existing subnets: {e}")
            return []
        return response.get("Subnets", [])
