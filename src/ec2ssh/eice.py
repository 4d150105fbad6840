"""EC2 Instance Connect Endpoint discovery and tunnel URI signing."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from botocore.auth import SigV4QueryAuth
from botocore.awsrequest import AWSRequest

from .aws import CloudClient
from .errors import EndpointError

log = logging.getLogger(__name__)

SIGNING_SERVICE = "ec2-instance-connect"
PRESIGN_EXPIRES = 60
READY_STATE = "create-complete"

Endpoint = Dict[str, Any]


def get_endpoint(cloud: CloudClient, endpoint_id: str) -> Endpoint:
    """Look up a ready endpoint by ID.

    Raises:
        EndpointError: no ready endpoint has that ID.
    """
    log.debug("searching for endpoint by ID %s", endpoint_id)
    endpoints = cloud.describe_endpoints(
        InstanceConnectEndpointIds=[endpoint_id],
        Filters=[{"Name": "state", "Values": [READY_STATE]}],
    )
    if not endpoints:
        raise EndpointError(f"unable to find endpoint {endpoint_id}")
    return endpoints[0]


def find_endpoint(cloud: CloudClient, vpc_id: Optional[str], subnet_id: Optional[str]) -> Endpoint:
    """Pick a ready endpoint in *vpc_id*, preferring one in *subnet_id*.

    Raises:
        EndpointError: the VPC has no ready endpoint.
    """
    if not vpc_id:
        raise EndpointError("unable to find endpoint: instance is not in a VPC")

    log.debug("searching for endpoint by vpc %s and subnet %s", vpc_id, subnet_id)
    endpoints = cloud.describe_endpoints(
        Filters=[
            {"Name": "state", "Values": [READY_STATE]},
            {"Name": "vpc-id", "Values": [vpc_id]},
        ],
    )
    if not endpoints:
        raise EndpointError(f"unable to find endpoint in {vpc_id}")

    for endpoint in endpoints:
        if subnet_id and endpoint.get("SubnetId") == subnet_id:
            log.debug("selected endpoint %s in instance subnet", endpoint["InstanceConnectEndpointId"])
            return endpoint

    log.debug("selected endpoint %s in instance vpc", endpoints[0]["InstanceConnectEndpointId"])
    return endpoints[0]


def create_tunnel_uri(cloud: CloudClient, endpoint: Endpoint, host: str, port: str) -> str:
    """Return the presigned ``wss://`` URI that opens a tunnel to host:port.

    The query is signed with SigV4 query authentication for the
    ``ec2-instance-connect`` service and is valid for 60 seconds.
    """
    query = urlencode(
        [
            ("instanceConnectEndpointId", endpoint["InstanceConnectEndpointId"]),
            ("remotePort", port),
            ("privateIpAddress", host),
        ]
    )
    unsigned = f"wss://{endpoint['DnsName']}/openTunnel?{query}"

    request = AWSRequest(method="GET", url=unsigned)
    signer = SigV4QueryAuth(
        cloud.frozen_credentials(),
        SIGNING_SERVICE,
        cloud.region,
        expires=PRESIGN_EXPIRES,
    )
    signer.add_auth(request)

    log.debug("created tunnel URI for endpoint %s", endpoint["InstanceConnectEndpointId"])
    return request.url
