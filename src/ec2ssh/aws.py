"""AWS session loading and the small slice of EC2 APIs ec2ssh uses.

All provider errors are wrapped exactly once in :class:`ProviderError`
carrying the API operation name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ProviderError

log = logging.getLogger(__name__)

PROVIDER_ERRORS = (BotoCoreError, ClientError)


def load_session(region: Optional[str] = None, profile: Optional[str] = None) -> boto3.session.Session:
    """Create a boto3 session honoring optional --region/--profile.

    Without them the SDK's usual environment and shared config apply.
    """
    if region:
        log.debug("using region %s", region)
    if profile:
        log.debug("using profile %s", profile)
    try:
        return boto3.session.Session(region_name=region, profile_name=profile)
    except PROVIDER_ERRORS as err:
        raise ProviderError("LoadConfig", err) from err


@dataclass
class Instance:
    """The instance attributes the pipeline and the list view need."""

    instance_id: str
    state: Optional[str] = None
    name: Optional[str] = None
    instance_type: Optional[str] = None
    availability_zone: Optional[str] = None
    private_ip: Optional[str] = None
    public_ip: Optional[str] = None
    ipv6: Optional[str] = None
    private_dns: Optional[str] = None
    public_dns: Optional[str] = None
    vpc_id: Optional[str] = None
    subnet_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Instance":
        """Build from one DescribeInstances ``Instances`` entry."""
        instance_id = data.get("InstanceId")
        if not instance_id:
            raise RuntimeError("ec2ssh: AWS returned an instance without InstanceId")

        name = None
        for tag in data.get("Tags") or []:
            if tag.get("Key") == "Name":
                name = tag.get("Value")
                break

        ipv6 = data.get("Ipv6Address")
        if not ipv6:
            for eni in data.get("NetworkInterfaces") or []:
                addrs = eni.get("Ipv6Addresses") or []
                if addrs:
                    ipv6 = addrs[0].get("Ipv6Address")
                    break

        return cls(
            instance_id=instance_id,
            state=(data.get("State") or {}).get("Name"),
            name=name,
            instance_type=data.get("InstanceType"),
            availability_zone=(data.get("Placement") or {}).get("AvailabilityZone"),
            private_ip=data.get("PrivateIpAddress") or None,
            public_ip=data.get("PublicIpAddress") or None,
            ipv6=ipv6 or None,
            private_dns=data.get("PrivateDnsName") or None,
            public_dns=data.get("PublicDnsName") or None,
            vpc_id=data.get("VpcId"),
            subnet_id=data.get("SubnetId"),
        )


class CloudClient:
    """Wraps a boto3 session; service clients are created on first use."""

    def __init__(self, session: boto3.session.Session) -> None:
        self.session = session
        self._clients: Dict[str, Any] = {}

    @property
    def region(self) -> Optional[str]:
        return self.session.region_name

    @property
    def profile(self) -> Optional[str]:
        return self.session.profile_name

    def client(self, service: str) -> Any:
        if service not in self._clients:
            try:
                self._clients[service] = self.session.client(service)
            except PROVIDER_ERRORS as err:
                raise ProviderError("LoadConfig", err) from err
        return self._clients[service]

    def describe_instances(self, **kwargs: Any) -> List[Instance]:
        """Run DescribeInstances over all pages; returns provider order."""
        instances: List[Instance] = []
        try:
            paginator = self.client("ec2").get_paginator("describe_instances")
            for page in paginator.paginate(**kwargs):
                for reservation in page.get("Reservations", []):
                    for data in reservation.get("Instances", []):
                        instances.append(Instance.from_api(data))
        except PROVIDER_ERRORS as err:
            raise ProviderError("DescribeInstances", err) from err
        log.debug("DescribeInstances returned %d instances", len(instances))
        return instances

    def list_instances(self) -> List[Instance]:
        log.debug("listing all instances")
        return self.describe_instances()

    def describe_endpoints(self, **kwargs: Any) -> List[Dict[str, Any]]:
        """Run DescribeInstanceConnectEndpoints over all pages."""
        endpoints: List[Dict[str, Any]] = []
        try:
            paginator = self.client("ec2").get_paginator("describe_instance_connect_endpoints")
            for page in paginator.paginate(**kwargs):
                endpoints.extend(page.get("InstanceConnectEndpoints", []))
        except PROVIDER_ERRORS as err:
            raise ProviderError("DescribeInstanceConnectEndpoints", err) from err
        log.debug("DescribeInstanceConnectEndpoints returned %d endpoints", len(endpoints))
        return endpoints

    def send_ssh_public_key(self, instance_id: str, login: str, public_key: str) -> None:
        """Push *public_key* for *login*; EC2 Instance Connect keeps it ~60s."""
        log.debug("sending SSH public key for %s to instance %s", login, instance_id)
        try:
            self.client("ec2-instance-connect").send_ssh_public_key(
                InstanceId=instance_id,
                InstanceOSUser=login,
                SSHPublicKey=public_key,
            )
        except PROVIDER_ERRORS as err:
            raise ProviderError("SendSSHPublicKey", err) from err
        log.debug("sent SSH public key to instance %s", instance_id)

    def frozen_credentials(self) -> Any:
        """Return the session's resolved credentials for request signing."""
        try:
            credentials = self.session.get_credentials()
            if credentials is None:
                raise ProviderError("LoadCredentials", RuntimeError("no AWS credentials found"))
            return credentials.get_frozen_credentials()
        except PROVIDER_ERRORS as err:
            raise ProviderError("LoadCredentials", err) from err

    def start_session(self, **kwargs: Any) -> Dict[str, Any]:
        log.debug("starting SSM session to %s", kwargs.get("Target"))
        try:
            return self.client("ssm").start_session(**kwargs)
        except PROVIDER_ERRORS as err:
            raise ProviderError("StartSession", err) from err

    def terminate_session(self, session_id: str) -> None:
        log.debug("terminating SSM session %s", session_id)
        try:
            self.client("ssm").terminate_session(SessionId=session_id)
        except PROVIDER_ERRORS as err:
            raise ProviderError("TerminateSession", err) from err

    def send_command(self, instance_id: str, commands: List[str]) -> str:
        """Run *commands* with AWS-RunShellScript; returns the command ID."""
        log.debug("sending command to instance %s", instance_id)
        try:
            response = self.client("ssm").send_command(
                InstanceIds=[instance_id],
                DocumentName="AWS-RunShellScript",
                Parameters={"commands": commands},
            )
        except PROVIDER_ERRORS as err:
            raise ProviderError("SendCommand", err) from err
        return response["Command"]["CommandId"]

    def get_command_invocation(self, command_id: str, instance_id: str) -> Dict[str, Any]:
        try:
            return self.client("ssm").get_command_invocation(
                CommandId=command_id,
                InstanceId=instance_id,
            )
        except PROVIDER_ERRORS as err:
            raise ProviderError("GetCommandInvocation", err) from err

    def ssm_endpoint_url(self) -> str:
        return self.client("ssm").meta.endpoint_url


def error_code(err: ProviderError) -> Optional[str]:
    """Return the AWS error code behind *err*, if it came from the API."""
    if isinstance(err.cause, ClientError):
        return err.cause.response.get("Error", {}).get("Code")
    return None
