"""
Tests for VPC and subnet management.
"""

from unittest.mock import Mock, call

import pytest
from conftest import client_error

from asobi.errors import InfrastructureError
from asobi.managers.network import NetworkManager, SubnetManager


def make_ec2():
    ec2 = Mock()
    ec2.create_vpc.return_value = {"Vpc": {"VpcId": "vpc-1"}}
    ec2.create_internet_gateway.return_value = {"InternetGateway": {"InternetGatewayId": "igw-1"}}
    ec2.create_route_table.return_value = {"RouteTable": {"RouteTableId": "rtb-1"}}
    ec2.describe_availability_zones.return_value = {
        "AvailabilityZones": [{"ZoneName": "us-east-1a"}, {"ZoneName": "us-east-1b"}, {"ZoneName": "us-east-1c"}]
    }
    ec2.describe_subnets.return_value = {"Subnets": []}
    return ec2


def cleanup_calls(ec2):
    return [c for c in ec2.method_calls if c[0].startswith(("delete_", "detach_"))]


def adoptable(ec2, gateway: bool = True, route_table: bool = False):
    ec2.describe_vpcs.return_value = {"Vpcs": [{"VpcId": "vpc-9", "CidrBlock": "172.31.0.0/16"}]}
    gateways = [{"InternetGatewayId": "igw-9"}] if gateway else []
    ec2.describe_internet_gateways.return_value = {"InternetGateways": gateways}
    routes = [{"DestinationCidrBlock": "172.31.0.0/16", "GatewayId": "local"}]
    if route_table:
        routes.append({"DestinationCidrBlock": "0.0.0.0/0", "GatewayId": "igw-9"})
    ec2.describe_route_tables.return_value = {"RouteTables": [{"RouteTableId": "rtb-9", "Routes": routes}]}


class TestNetworkManager:
    """Test VPC creation, adoption and deletion."""

    def test_create(self, config):
        """Test VPC, attached gateway, default route, zones and tags."""
        ec2 = make_ec2()
        details = NetworkManager(config, "ab12cd34", ec2).create()

        assert details.network_id == "vpc-1"
        assert details.gateway_id == "igw-1"
        assert details.route_table_id == "rtb-1"
        assert details.cidr_block == "10.0.0.0/16"
        assert details.availability_zones == ["us-east-1a", "us-east-1b", "us-east-1c"]
        assert not details.existing_network

        ec2.attach_internet_gateway.assert_called_once_with(InternetGatewayId="igw-1", VpcId="vpc-1")
        ec2.create_route.assert_called_once_with(
            RouteTableId="rtb-1", DestinationCidrBlock="0.0.0.0/0", GatewayId="igw-1"
        )
        tags = ec2.create_vpc.call_args.kwargs["TagSpecifications"][0]["Tags"]
        assert {"Key": "UniqueId", "Value": "ab12cd34"} in tags
        assert {"Key": "AsobiAppName", "Value": "shop"} in tags
        assert cleanup_calls(ec2) == []

    def test_create_failure_has_network_code(self, config):
        """Test that a rejected VPC has the network code and nothing to remove."""
        ec2 = make_ec2()
        ec2.create_vpc.side_effect = client_error("VpcLimitExceeded")

        with pytest.raises(InfrastructureError) as exc_info:
            NetworkManager(config, "ab12cd34", ec2).create()
        assert exc_info.value.code == "network-error"
        assert cleanup_calls(ec2) == []

    def test_route_failure_removes_everything_created(self, config):
        """Test that a failed default route removes route table, gateway and VPC."""
        ec2 = make_ec2()
        ec2.create_route.side_effect = client_error("RouteAlreadyExists")

        with pytest.raises(InfrastructureError) as exc_info:
            NetworkManager(config, "ab12cd34", ec2).create()

        assert exc_info.value.code == "network-error"
        assert cleanup_calls(ec2) == [
            call.delete_route_table(RouteTableId="rtb-1"),
            call.detach_internet_gateway(InternetGatewayId="igw-1", VpcId="vpc-1"),
            call.delete_internet_gateway(InternetGatewayId="igw-1"),
            call.delete_vpc(VpcId="vpc-1"),
        ]

    def test_zone_lookup_failure_removes_network(self, config):
        """Test that a region with no zones leaves no VPC or gateway behind."""
        ec2 = make_ec2()
        ec2.describe_availability_zones.return_value = {"AvailabilityZones": []}

        with pytest.raises(InfrastructureError) as exc_info:
            NetworkManager(config, "ab12cd34", ec2).create()

        assert exc_info.value.code == "network-error"
        ec2.delete_internet_gateway.assert_called_once_with(InternetGatewayId="igw-1")
        ec2.delete_vpc.assert_called_once_with(VpcId="vpc-1")

    def test_unattached_gateway_is_deleted_without_detach(self, config):
        """Test that a gateway whose attachment failed is deleted but not detached."""
        ec2 = make_ec2()
        ec2.attach_internet_gateway.side_effect = client_error("Resource.AlreadyAssociated")

        with pytest.raises(InfrastructureError):
            NetworkManager(config, "ab12cd34", ec2).create()

        assert cleanup_calls(ec2) == [
            call.delete_internet_gateway(InternetGatewayId="igw-1"),
            call.delete_vpc(VpcId="vpc-1"),
        ]

    def test_cleanup_continues_past_errors(self, config):
        """Test that every cleanup step runs when an earlier one fails."""
        ec2 = make_ec2()
        ec2.create_route.side_effect = client_error("RouteAlreadyExists")
        ec2.delete_route_table.side_effect = client_error("DependencyViolation")

        with pytest.raises(InfrastructureError) as exc_info:
            NetworkManager(config, "ab12cd34", ec2).create()

        assert "RouteAlreadyExists" in str(exc_info.value)
        ec2.delete_vpc.assert_called_once_with(VpcId="vpc-1")

    def test_adopt_creates_only_missing_route_table(self, config):
        """Test that adopting a VPC with a gateway only adds a route table."""
        ec2 = make_ec2()
        adoptable(ec2)

        details = NetworkManager(config, "ab12cd34", ec2).adopt("vpc-9")

        assert details.existing_network
        assert details.existing_gateway
        assert not details.existing_route_table
        assert details.gateway_id == "igw-9"
        assert details.route_table_id == "rtb-1"
        assert details.cidr_block == "172.31.0.0/16"
        ec2.create_internet_gateway.assert_not_called()
        ec2.create_vpc.assert_not_called()

    def test_adopt_complete_network_creates_nothing(self, config):
        """Test that a VPC with gateway and default route is used as is."""
        ec2 = make_ec2()
        adoptable(ec2, route_table=True)

        details = NetworkManager(config, "ab12cd34", ec2).adopt("vpc-9")

        assert details.existing_route_table
        assert details.route_table_id == "rtb-9"
        ec2.create_internet_gateway.assert_not_called()
        ec2.create_route_table.assert_not_called()

    def test_adopt_failure_keeps_adopted_vpc(self, config):
        """Test that a failed adoption removes its new gateway but never the chosen VPC."""
        ec2 = make_ec2()
        adoptable(ec2, gateway=False)
        ec2.create_route_table.side_effect = client_error("RouteTableLimitExceeded")

        with pytest.raises(InfrastructureError) as exc_info:
            NetworkManager(config, "ab12cd34", ec2).adopt("vpc-9")

        assert exc_info.value.code == "network-error"
        assert cleanup_calls(ec2) == [
            call.detach_internet_gateway(InternetGatewayId="igw-1", VpcId="vpc-9"),
            call.delete_internet_gateway(InternetGatewayId="igw-1"),
        ]

    def test_delete_order(self, config):
        """Test route table, gateway detach and delete, then the VPC."""
        ec2 = make_ec2()
        ec2.describe_vpcs.return_value = {"Vpcs": [{"VpcId": "vpc-1", "IsDefault": False}]}

        NetworkManager(config, "ab12cd34", ec2).delete("vpc-1", "rtb-1", "igw-1")

        assert cleanup_calls(ec2) == [
            call.delete_route_table(RouteTableId="rtb-1"),
            call.detach_internet_gateway(InternetGatewayId="igw-1", VpcId="vpc-1"),
            call.delete_internet_gateway(InternetGatewayId="igw-1"),
            call.delete_vpc(VpcId="vpc-1"),
        ]

    def test_delete_gateway_without_network(self, config):
        """Test that a gateway is deleted without detaching when no VPC is given."""
        ec2 = make_ec2()

        NetworkManager(config, "ab12cd34", ec2).delete(None, gateway_id="igw-1")

        assert cleanup_calls(ec2) == [call.delete_internet_gateway(InternetGatewayId="igw-1")]

    def test_default_vpc_never_deleted(self, config):
        """Test that the account default VPC is never deleted."""
        ec2 = make_ec2()
        ec2.describe_vpcs.return_value = {"Vpcs": [{"VpcId": "vpc-d", "IsDefault": True}]}

        NetworkManager(config, "ab12cd34", ec2).delete("vpc-d")

        ec2.delete_vpc.assert_not_called()

    def test_keep_adopted_network(self, config):
        """Test that an adopted VPC keeps existing while its new gateway goes."""
        ec2 = make_ec2()

        NetworkManager(config, "ab12cd34", ec2).delete("vpc-9", None, "igw-1", keep_network=True)

        ec2.detach_internet_gateway.assert_called_once_with(InternetGatewayId="igw-1", VpcId="vpc-9")
        ec2.delete_route_table.assert_not_called()
        ec2.delete_vpc.assert_not_called()

    def test_list_networks(self, config):
        """Test VPC listing with names and default flags."""
        ec2 = make_ec2()
        ec2.describe_vpcs.return_value = {"Vpcs": [
            {"VpcId": "vpc-1", "CidrBlock": "10.0.0.0/16", "Tags": [{"Key": "Name", "Value": "main"}]},
            {"VpcId": "vpc-2", "CidrBlock": "172.31.0.0/16", "IsDefault": True},
        ]}

        networks = NetworkManager(config, "ab12cd34", ec2).list_networks()

        assert networks == [
            {"id": "vpc-1", "name": "main", "cidr": "10.0.0.0/16", "default": False},
            {"id": "vpc-2", "name": "Unnamed", "cidr": "172.31.0.0/16", "default": True},
        ]

    def test_query_failures_return_empty(self, config):
        """Test that listing failures return empty lists."""
        ec2 = make_ec2()
        ec2.describe_vpcs.side_effect = client_error("UnauthorizedOperation")
        ec2.describe_subnets.side_effect = client_error("UnauthorizedOperation")
        manager = NetworkManager(config, "ab12cd34", ec2)

        assert manager.list_networks() == []
        assert manager.list_subnets("vpc-1") == []
        assert manager.find_networks() == []

    def test_exists(self, config):
        """Test that a not-found VPC counts as gone."""
        ec2 = make_ec2()
        ec2.describe_vpcs.side_effect = client_error("InvalidVpcID.NotFound")

        assert not NetworkManager(config, "ab12cd34", ec2).exists("vpc-1")

    def test_gateway_exists(self, config):
        """Test gateway existence checks."""
        ec2 = make_ec2()
        manager = NetworkManager(config, "ab12cd34", ec2)

        ec2.describe_internet_gateways.return_value = {"InternetGateways": [{"InternetGatewayId": "igw-1"}]}
        assert manager.gateway_exists("igw-1")

        ec2.describe_internet_gateways.side_effect = client_error("InvalidInternetGatewayID.NotFound")
        assert not manager.gateway_exists("igw-1")


class TestSubnetManager:
    """Test subnet creation."""

    def test_create_two_subnets(self, config):
        """Test one subnet per zone with sequential blocks and route table links."""
        ec2 = make_ec2()
        ec2.create_subnet.side_effect = [{"Subnet": {"SubnetId": "subnet-1"}}, {"Subnet": {"SubnetId": "subnet-2"}}]

        subnet_ids = SubnetManager(config, "ab12cd34", ec2).create(
            "vpc-1", "10.0.0.0/16", ["us-east-1a", "us-east-1b", "us-east-1c"], "rtb-1"
        )

        assert subnet_ids == ["subnet-1", "subnet-2"]
        first, second = ec2.create_subnet.call_args_list
        assert (first.kwargs["CidrBlock"], first.kwargs["AvailabilityZone"]) == ("10.0.1.0/24", "us-east-1a")
        assert (second.kwargs["CidrBlock"], second.kwargs["AvailabilityZone"]) == ("10.0.2.0/24", "us-east-1b")
        assert ec2.associate_route_table.call_args_list == [
            call(RouteTableId="rtb-1", SubnetId="subnet-1"),
            call(RouteTableId="rtb-1", SubnetId="subnet-2"),
        ]

    def test_skips_existing_blocks(self, config):
        """Test that blocks already used in the VPC are skipped."""
        ec2 = make_ec2()
        ec2.describe_subnets.return_value = {"Subnets": [{"CidrBlock": "10.0.1.0/24"}]}
        ec2.create_subnet.side_effect = [{"Subnet": {"SubnetId": "subnet-1"}}, {"Subnet": {"SubnetId": "subnet-2"}}]

        SubnetManager(config, "ab12cd34", ec2).create("vpc-1", "10.0.0.0/16", ["a", "b"])

        blocks = [c.kwargs["CidrBlock"] for c in ec2.create_subnet.call_args_list]
        assert blocks == ["10.0.2.0/24", "10.0.3.0/24"]
        ec2.associate_route_table.assert_not_called()

    def test_bounded_by_zones(self, config):
        """Test that no more subnets than zones are created."""
        ec2 = make_ec2()
        ec2.create_subnet.return_value = {"Subnet": {"SubnetId": "subnet-1"}}

        assert SubnetManager(config, "ab12cd34", ec2).create("vpc-1", "10.0.0.0/16", ["a"]) == ["subnet-1"]

    def test_failure_has_subnet_code(self, config):
        """Test that creation errors carry the subnet code."""
        ec2 = make_ec2()
        ec2.create_subnet.side_effect = client_error("InvalidSubnet.Conflict")

        with pytest.raises(InfrastructureError) as exc_info:
            SubnetManager(config, "ab12cd34", ec2).create("vpc-1", "10.0.0.0/16", ["a", "b"])
        assert exc_info.value.code == "subnet-error"
        ec2.delete_subnet.assert_not_called()

    def test_second_subnet_failure_removes_first(self, config):
        """Test that a failed second subnet deletes the first one."""
        ec2 = make_ec2()
        ec2.create_subnet.side_effect = [{"Subnet": {"SubnetId": "subnet-1"}}, client_error("InvalidSubnet.Conflict")]

        with pytest.raises(InfrastructureError) as exc_info:
            SubnetManager(config, "ab12cd34", ec2).create("vpc-1", "10.0.0.0/16", ["a", "b"])

        assert exc_info.value.code == "subnet-error"
        ec2.delete_subnet.assert_called_once_with(SubnetId="subnet-1")

    def test_delete(self, config):
        """Test deleting subnets in the given order."""
        ec2 = make_ec2()
        SubnetManager(config, "ab12cd34", ec2).delete(["subnet-1", "subnet-2"])

        assert ec2.delete_subnet.call_args_list == [call(SubnetId="subnet-1"), call(SubnetId="subnet-2")]
