"""
Run ID and application name utilities.
"""

import random
import re
import string

RUN_ID_LENGTH = 8

# Load balancer and target group names are capped at 32 characters and
# carry a short prefix plus the run id, so app names stay well below that.
_APP_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,23}$")


def new_run_id() -> str:
    """
    Generate a new run ID: 8 lowercase alphanumeric characters.
    
    Returns:
        str: Unique run ID
    """
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=RUN_ID_LENGTH))


def is_valid_run_id(run_id: str) -> bool:
    """
    Validate run ID format.
    
    Args:
        run_id: ID to validate
        
    Returns:
        bool: True if valid format
    """
    if not run_id or len(run_id) != RUN_ID_LENGTH:
        return False
    
    allowed = set(string.ascii_lowercase + string.digits)
    return all(ch in allowed for ch in run_id)


def is_valid_app_name(app_name: str) -> bool:
    """
    Validate application name: lowercase letters, digits and hyphens,
    starting with a letter or digit, at most 24 characters.
    """
    if not app_name:
        return False
    return bool(_APP_NAME_RE.match(app_name))
