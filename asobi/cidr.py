"""
Subnet CIDR allocation inside a network's address block.
"""

import ipaddress
from typing import Iterable, List

SUBNET_PREFIX = 24
MAX_THIRD_OCTET = 255


def allocate_subnet_cidrs(network_cidr: str, existing: Iterable[str], count: int,
                          start: int = 1) -> List[str]:
    """
    Pick ``count`` /24 blocks inside a network for new subnets.

    Candidates keep the network's first two octets and walk the third octet
    upwards from ``start``. A candidate is skipped only when it is literally
    equal to an existing block; differently written overlapping blocks are
    not detected.

    Args:
        network_cidr: Network block, e.g. "10.0.0.0/16"
        existing: CIDR blocks already allocated in the network
        count: Number of blocks wanted
        start: First third-octet value to try

    Returns:
        Up to ``count`` blocks; fewer when the third octet runs out

    Raises:
        ValueError: If network_cidr is not a valid IPv4 network
    """
    network = ipaddress.ip_network(network_cidr, strict=False)
    if network.version != 4:
        raise ValueError(f"Only IPv4 networks are supported: {network_cidr}")

    first, second = str(network.network_address).split(".")[:2]
    taken = set(existing)
    allocated: List[str] = []

    index = start
    while len(allocated) < count and index <= MAX_THIRD_OCTET:
        candidate = f"{first}.{second}.{index}.0/{SUBNET_PREFIX}"
        index += 1
        if candidate in taken:
            continue
        allocated.append(candidate)

    return allocated
