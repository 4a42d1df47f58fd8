"""
Typed infrastructure errors and helpers for provider error codes.
"""

from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

# Machine-readable failure codes. Callers branch on these, never on messages.
NETWORK_ERROR = "network-error"
SUBNET_ERROR = "subnet-error"
SECURITY_GROUP_ERROR = "security-group-error"
IDENTITY_ERROR = "identity-error"
IDENTITY_PERMISSION_ERROR = "identity-permission-error"
IDENTITY_ROLE_VERIFICATION_FAILED = "identity-role-verification-failed"
IDENTITY_PROFILE_VERIFICATION_ERROR = "identity-profile-verification-error"
IDENTITY_PROFILE_PROPAGATION_TIMEOUT = "identity-profile-propagation-timeout"
COMPUTE_ERROR = "compute-error"
LOAD_BALANCER_ERROR = "load-balancer-error"
ACCOUNT_ERROR = "account-error"
STATE_CONFLICT = "state-conflict"
CANCELLED = "cancelled"
UNKNOWN_ERROR = "unknown-error"

PERMISSION_CODES = {IDENTITY_PERMISSION_ERROR}

_ACCESS_DENIED = {"AccessDenied", "AccessDeniedException", "UnauthorizedOperation"}
_DEPENDENCY_VIOLATION = {"DependencyViolation", "ResourceInUse"}


class InfrastructureError(Exception):
    """Failure raised by a lifecycle manager, carrying a category code."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    @property
    def is_permission_error(self) -> bool:
        return self.code in PERMISSION_CODES


def client_error_code(error: BaseException) -> Optional[str]:
    """Extract the provider error code from a botocore ClientError."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def is_access_denied(error: BaseException) -> bool:
    return client_error_code(error) in _ACCESS_DENIED


def is_dependency_violation(error: BaseException) -> bool:
    return client_error_code(error) in _DEPENDENCY_VIOLATION


def is_not_found(error: BaseException) -> bool:
    """
    Check whether a provider error means the resource does not exist.

    AWS uses service-specific codes such as ``InvalidVpcID.NotFound``,
    ``NoSuchEntity`` or ``LoadBalancerNotFound``.
    """
    code = client_error_code(error)
    if not code:
        return False
    return code.endswith("NotFound") or code == "NoSuchEntity"


def describe_error(error: BaseException) -> str:
    """Short human message for any exception."""
    if isinstance(error, InfrastructureError):
        return str(error)
    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        return f"{err.get('Code', 'ClientError')}: {err.get('Message', str(error))}"
    return str(error) or error.__class__.__name__


def handle_error(error: BaseException) -> Dict[str, Any]:
    """
    Convert an exception into a failure result dictionary.

    Args:
        error: Raised exception

    Returns:
        {"success": False, "error": ..., "code": ...}
    """
    if isinstance(error, InfrastructureError):
        return {"success": False, "error": str(error), "code": error.code}

    return {
        "success": False,
        "error": describe_error(error) or "An unknown error occurred.",
        "code": UNKNOWN_ERROR,
    }
