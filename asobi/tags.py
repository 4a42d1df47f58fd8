"""
Tagging utilities for consistent resource tagging across runs.
"""

from typing import Dict, List, Optional

PROJECT = "asobi"

APP_NAME_TAG = "AsobiAppName"
RUN_ID_TAG = "UniqueId"
CREATED_BY_TAG = "CreatedBy"


def common_tags(app_name: str, run_id: str, resource_name: str,
                extra: Optional[Dict[str, str]] = None) -> List[Dict[str, str]]:
    """
    Generate the tags applied to every resource created by a run.
    
    Args:
        app_name: Application name
        run_id: Per-run unique ID
        resource_name: Value for the Name tag
        extra: Additional user tags; they never override the base tags
        
    Returns:
        List of {"Key": ..., "Value": ...} tags in the AWS API shape
    """
    tags = [
        {"Key": "Name", "Value": resource_name},
        {"Key": APP_NAME_TAG, "Value": app_name},
        {"Key": RUN_ID_TAG, "Value": run_id},
        {"Key": CREATED_BY_TAG, "Value": PROJECT},
    ]
    
    if extra:
        reserved = {tag["Key"] for tag in tags}
        for key, value in extra.items():
            if key not in reserved:
                tags.append({"Key": key, "Value": value})
    
    return tags


def tag_specifications(resource_type: str, app_name: str, run_id: str,
                       resource_name: str,
                       extra: Optional[Dict[str, str]] = None) -> List[Dict[str, object]]:
    """Wrap common tags in an EC2 TagSpecifications list."""
    return [{
        "ResourceType": resource_type,
        "Tags": common_tags(app_name, run_id, resource_name, extra),
    }]


def tag_filters(app_name: str, run_id: str) -> List[Dict[str, object]]:
    """
    EC2 describe filters matching resources of one app run.
    
    Both tags must match so concurrent runs in the same account never see
    each other's resources.
    """
    return [
        {"Name": f"tag:{APP_NAME_TAG}", "Values": [app_name]},
        {"Name": f"tag:{RUN_ID_TAG}", "Values": [run_id]},
    ]


def tags_to_dict(tags: List[Dict[str, str]]) -> Dict[str, str]:
    """Convert an AWS tag list into a plain dictionary."""
    return {tag["Key"]: tag["Value"] for tag in tags or [] if "Key" in tag}


def belongs_to_run(tags: List[Dict[str, str]], app_name: str, run_id: str) -> bool:
    """
    Check if a resource belongs to a run based on its tags.
    
    Args:
        tags: Resource tags in AWS list shape
        app_name: Application name
        run_id: Run ID
        
    Returns:
        True if both the app name and run ID tags match
    """
    values = tags_to_dict(tags)
    return values.get(APP_NAME_TAG) == app_name and values.get(RUN_ID_TAG) == run_id


def parse_user_tags(tag_strings: List[str]) -> Dict[str, str]:
    """
    Parse user-provided tag strings in format "key=value".
    
    Args:
        tag_strings: List of tag strings in "key=value" format
        
    Returns:
        Dictionary of parsed tags
        
    Raises:
        ValueError: If tag string format is invalid
    """
    tags = {}
    
    for tag_str in tag_strings:
        if "=" not in tag_str:
            raise ValueError(f"Invalid tag format: {tag_str}. Expected 'key=value'")
        
        key, value = tag_str.split("=", 1)
        if not key.strip() or not value.strip():
            raise ValueError(f"Invalid tag format: {tag_str}. Key and value must not be empty")
        
        tags[key.strip()] = value.strip()
    
    return tags
