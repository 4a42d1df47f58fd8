"""
Tests for the application status report.
"""

from unittest.mock import Mock, patch

import requests

from asobi.clients import AwsClients
from asobi.models import ResourceSet
from asobi.state import JsonStateStore, write_app_json
from asobi.status import app_status, check_endpoint


def make_clients():
    ec2 = Mock()
    ec2.describe_vpcs.return_value = {"Vpcs": [{"VpcId": "vpc-1"}]}
    ec2.describe_instances.return_value = {
        "Reservations": [{"Instances": [{"InstanceId": "i-1", "State": {"Name": "running"}}]}]
    }
    ec2.describe_subnets.return_value = {"Subnets": [{"SubnetId": "subnet-1"}]}
    ec2.describe_security_groups.return_value = {"SecurityGroups": [{"GroupId": "sg-1"}]}
    iam = Mock()
    iam.get_paginator.return_value.paginate.return_value = [
        {"InstanceProfiles": [{"InstanceProfileName": "shop-profile-ab12cd34"}]}
    ]
    elbv2 = Mock()
    elbv2.describe_load_balancers.return_value = {"LoadBalancers": [{"DNSName": "shop.elb.amazonaws.com"}]}
    elbv2.get_paginator.return_value.paginate.return_value = [
        {"LoadBalancers": [{"LoadBalancerArn": "lb-arn"}], "TargetGroups": [{"TargetGroupArn": "tg-arn"}]}
    ]
    run_tags = [{"Key": "AsobiAppName", "Value": "shop"}, {"Key": "UniqueId", "Value": "ab12cd34"}]
    elbv2.describe_tags.return_value = {"TagDescriptions": [
        {"ResourceArn": "lb-arn", "Tags": run_tags}, {"ResourceArn": "tg-arn", "Tags": run_tags}
    ]}
    return AwsClients(ec2=ec2, iam=iam, elbv2=elbv2, sts=Mock(), region="us-east-1")


class TestCheckEndpoint:
    """Test the HTTP endpoint check."""

    @patch("asobi.status.requests.get")
    def test_status_code(self, mock_get):
        """Test that the response status code is returned."""
        mock_get.return_value = Mock(status_code=200)
        assert check_endpoint("http://example.com/") == 200

    @patch("asobi.status.requests.get")
    def test_unreachable(self, mock_get):
        """Test that connection errors return None."""
        mock_get.side_effect = requests.ConnectionError("refused")
        assert check_endpoint("http://example.com/") is None


class TestAppStatus:
    """Test the status report."""

    def test_not_found(self):
        """Test the report for an unknown application."""
        assert app_status("shop")["status"] == "not_found"

    def test_local_only(self):
        """Test a report from local state without AWS."""
        write_app_json("shop", {"app_name": "shop"}, "ab12cd34")

        result = app_status("shop")

        assert result["status"] == "unknown"
        assert "live" not in result

    @patch("asobi.status.requests.get")
    def test_live(self, mock_get):
        """Test a live report with resource checks, endpoint check and discovery."""
        mock_get.return_value = Mock(status_code=200)
        write_app_json("shop", {"app_name": "shop"}, "ab12cd34")
        JsonStateStore("shop").write(ResourceSet(network_id="vpc-1", instance_id="i-1", load_balancer_arn="lb-arn"))

        result = app_status("shop", make_clients())

        assert result["live"] == {"network": True, "instance": "running", "load_balancer": True}
        assert result["public_url"] == "http://shop.elb.amazonaws.com/"
        assert result["http_status"] == 200
        assert result["tagged"] == {
            "networks": ["vpc-1"],
            "subnets": ["subnet-1"],
            "security_groups": ["sg-1"],
            "instance_profiles": ["shop-profile-ab12cd34"],
            "instances": ["i-1"],
            "load_balancers": ["lb-arn"],
            "target_groups": ["tg-arn"],
        }
