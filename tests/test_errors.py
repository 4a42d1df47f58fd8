"""
Tests for infrastructure errors and provider error helpers.
"""

from conftest import client_error

from asobi.errors import (
    InfrastructureError,
    client_error_code,
    describe_error,
    handle_error,
    is_access_denied,
    is_dependency_violation,
    is_not_found,
)


class TestInfrastructureError:
    """Test the coded infrastructure error."""

    def test_str_includes_code(self):
        """Test that the code prefixes the message."""
        error = InfrastructureError("VPC failed", "network-error")
        assert str(error) == "[network-error] VPC failed"
        assert error.code == "network-error"
        assert not error.is_permission_error

    def test_permission_error(self):
        """Test that permission codes are flagged."""
        assert InfrastructureError("denied", "identity-permission-error").is_permission_error


class TestClientErrorHelpers:
    """Test provider error classification."""

    def test_codes(self):
        """Test extracting the provider error code."""
        assert client_error_code(client_error("Throttling")) == "Throttling"
        assert client_error_code(ValueError("x")) is None

    def test_access_denied(self):
        """Test access denied codes."""
        assert is_access_denied(client_error("AccessDenied"))
        assert is_access_denied(client_error("UnauthorizedOperation"))
        assert not is_access_denied(client_error("Throttling"))

    def test_dependency_violation(self):
        """Test dependency violation codes."""
        assert is_dependency_violation(client_error("DependencyViolation"))
        assert not is_dependency_violation(client_error("InvalidGroup.NotFound"))

    def test_not_found(self):
        """Test service-specific not-found codes."""
        assert is_not_found(client_error("InvalidVpcID.NotFound"))
        assert is_not_found(client_error("NoSuchEntity"))
        assert is_not_found(client_error("LoadBalancerNotFound"))
        assert not is_not_found(client_error("AccessDenied"))
        assert not is_not_found(RuntimeError("x"))

    def test_describe_error(self):
        """Test the short human message."""
        assert describe_error(client_error("Throttling", message="slow down")) == "Throttling: slow down"


class TestHandleError:
    """Test conversion to failure results."""

    def test_infrastructure_error(self):
        """Test that infrastructure errors keep their code."""
        result = handle_error(InfrastructureError("bad", "compute-error"))
        assert result == {"success": False, "error": "[compute-error] bad", "code": "compute-error"}

    def test_unknown_error(self):
        """Test that other errors get the unknown code."""
        result = handle_error(RuntimeError("boom"))
        assert result["success"] is False
        assert result["code"] == "unknown-error"
        assert result["error"] == "boom"
