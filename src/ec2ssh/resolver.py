"""Match a destination token to one EC2 instance and pick its address.

Classification (``DstType.AUTO``):

- ``i-`` followed by 8 to 17 hex digits is an instance ID
- a dotted quad is a private IP; when nothing matches, a public IP
- anything with a colon is an IPv6 address
- ``ip-``/``ip6-`` prefixes or a ``.ec2.internal``/``.compute.internal``
  suffix is a private DNS name
- everything else is a Name tag
"""

from __future__ import annotations

import enum
import logging
import re
from typing import List, Optional

from .aws import CloudClient, Instance
from .errors import AddressError, ResolutionError, UsageError

log = logging.getLogger(__name__)

INSTANCE_ID_RE = re.compile(r"^i-[0-9a-f]{8,17}$")
DOTTED_QUAD_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
PRIVATE_DNS_PREFIXES = ("ip-", "ip6-")
PRIVATE_DNS_SUFFIXES = (".ec2.internal", ".compute.internal")

STOPPED_STATES = frozenset(["stopped", "terminated", "shutting-down", "stopping"])


class DstType(enum.Enum):
    AUTO = "auto"
    ID = "id"
    PRIVATE_IP = "private_ip"
    PUBLIC_IP = "public_ip"
    IPV6 = "ipv6"
    PRIVATE_DNS = "private_dns"
    NAME_TAG = "name_tag"


class AddrType(enum.Enum):
    AUTO = "auto"
    PRIVATE = "private"
    PUBLIC = "public"
    IPV6 = "ipv6"


FILTER_NAMES = {
    DstType.PRIVATE_IP: "private-ip-address",
    DstType.PUBLIC_IP: "ip-address",
    DstType.IPV6: "ipv6-address",
    DstType.PRIVATE_DNS: "private-dns-name",
    DstType.NAME_TAG: "tag:Name",
}


def parse_dst_type(value: Optional[str]) -> DstType:
    """Parse a ``--destination-type`` value; ``None`` means AUTO."""
    if value is None:
        return DstType.AUTO
    try:
        dst_type = DstType(value)
    except ValueError:
        raise UsageError(f"invalid destination type {value}") from None
    if dst_type is DstType.AUTO:
        raise UsageError(f"invalid destination type {value}")
    return dst_type


def parse_addr_type(value: Optional[str]) -> AddrType:
    """Parse an ``--address-type`` value; ``None`` means AUTO."""
    if value is None:
        return AddrType.AUTO
    try:
        addr_type = AddrType(value)
    except ValueError:
        raise UsageError(f"invalid address type {value}") from None
    if addr_type is AddrType.AUTO:
        raise UsageError(f"invalid address type {value}")
    return addr_type


def classify(token: str) -> DstType:
    """Guess which instance attribute *token* names."""
    if INSTANCE_ID_RE.match(token):
        return DstType.ID
    if DOTTED_QUAD_RE.match(token):
        return DstType.PRIVATE_IP
    if ":" in token:
        return DstType.IPV6
    if token.startswith(PRIVATE_DNS_PREFIXES) or token.endswith(PRIVATE_DNS_SUFFIXES):
        return DstType.PRIVATE_DNS
    return DstType.NAME_TAG


def _query(cloud: CloudClient, token: str, dst_type: DstType) -> List[Instance]:
    if dst_type is DstType.ID:
        log.debug("searching for instance by ID %s", token)
        return cloud.describe_instances(InstanceIds=[token])

    value = token
    if dst_type is DstType.PRIVATE_DNS and "." not in value:
        value += ".*"
    name = FILTER_NAMES[dst_type]
    log.debug("searching for instance by %s=%s", name, value)
    return cloud.describe_instances(Filters=[{"Name": name, "Values": [value]}])


def select_instance(token: str, matches: List[Instance]) -> Instance:
    """Apply the uniqueness policy to the instances matching *token*.

    Raises:
        ResolutionError: no matches, or several matches none of which can
            be connected to.
    """
    if not matches:
        raise ResolutionError(f"no instance matched {token}")
    if len(matches) == 1:
        return matches[0]

    ordered = sorted(matches, key=lambda inst: inst.instance_id)
    if all(inst.state in STOPPED_STATES for inst in ordered):
        raise ResolutionError(f"no running instance matched {token}")

    for inst in ordered:
        if inst.state == "running":
            return inst
    return ordered[0]


def resolve_instance(cloud: CloudClient, token: str, dst_type: DstType = DstType.AUTO) -> Instance:
    """Find the single instance *token* refers to.

    Args:
        cloud: AWS client wrapper.
        token: Host part of the destination.
        dst_type: Attribute to match; AUTO classifies *token* by shape.

    Returns:
        The selected :class:`Instance`.

    Raises:
        ResolutionError: see :func:`select_instance`.
        ProviderError: the DescribeInstances call failed.
    """
    if dst_type is DstType.AUTO:
        dst_type = classify(token)
        log.debug("guessed destination type %s for %s", dst_type.value, token)
        if dst_type is DstType.PRIVATE_IP:
            matches = _query(cloud, token, DstType.PRIVATE_IP)
            if not matches:
                matches = _query(cloud, token, DstType.PUBLIC_IP)
            instance = select_instance(token, matches)
            log.debug("selected instance %s", instance.instance_id)
            return instance

    instance = select_instance(token, _query(cloud, token, dst_type))
    log.debug("selected instance %s", instance.instance_id)
    return instance


_ADDR_FIELDS = {
    AddrType.PRIVATE: ("private_ip", "private"),
    AddrType.PUBLIC: ("public_ip", "public"),
    AddrType.IPV6: ("ipv6", "ipv6"),
}


def instance_addr(instance: Instance, addr_type: AddrType = AddrType.AUTO) -> str:
    """Return the address to connect to on *instance*.

    AUTO takes the first of private, public and IPv6 that is set.

    Raises:
        AddressError: the requested address is missing, or no address at
            all in AUTO mode.
    """
    if addr_type is AddrType.AUTO:
        for candidate in (AddrType.PRIVATE, AddrType.PUBLIC, AddrType.IPV6):
            addr = getattr(instance, _ADDR_FIELDS[candidate][0])
            if addr:
                log.debug("using %s address %s", _ADDR_FIELDS[candidate][1], addr)
                return addr
        raise AddressError("instance has no usable address")

    field_name, kind = _ADDR_FIELDS[addr_type]
    addr = getattr(instance, field_name)
    if not addr:
        raise AddressError(f"no {kind} address on instance")
    return addr
