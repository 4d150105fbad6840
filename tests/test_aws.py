"""Tests for ec2ssh.aws using botocore's Stubber."""

from __future__ import annotations

import unittest
from unittest import mock

import boto3
from botocore.exceptions import ProfileNotFound
from botocore.stub import Stubber

from ec2ssh.aws import CloudClient, error_code, load_session
from ec2ssh.errors import ProviderError


def _session():
    return boto3.session.Session(
        region_name="us-east-1",
        aws_access_key_id="AKIDEXAMPLE",
        aws_secret_access_key="secret",
    )


def _reservation(*instances):
    return {"Instances": list(instances)}


class TestLoadSession(unittest.TestCase):

    def test_region_applied(self):
        session = load_session(region="eu-west-1")
        self.assertEqual(session.region_name, "eu-west-1")

    def test_unknown_profile_wrapped(self):
        with mock.patch("boto3.session.Session", side_effect=ProfileNotFound(profile="nope")):
            with self.assertRaises(ProviderError) as ctx:
                load_session(profile="nope")
        self.assertEqual(ctx.exception.operation, "LoadConfig")
        self.assertIn("nope", str(ctx.exception))


class TestCloudClient(unittest.TestCase):

    def setUp(self):
        self.cloud = CloudClient(_session())

    def test_client_cached(self):
        self.assertIs(self.cloud.client("ec2"), self.cloud.client("ec2"))
        self.assertEqual(self.cloud.region, "us-east-1")

    def test_describe_instances_all_pages(self):
        ec2 = self.cloud.client("ec2")
        filters = [{"Name": "tag:Name", "Values": ["web"]}]
        with Stubber(ec2) as stub:
            stub.add_response(
                "describe_instances",
                {
                    "Reservations": [_reservation({"InstanceId": "i-1", "State": {"Name": "running"}})],
                    "NextToken": "page2",
                },
                {"Filters": filters},
            )
            stub.add_response(
                "describe_instances",
                {"Reservations": [_reservation({"InstanceId": "i-2", "PrivateIpAddress": "10.0.0.2"})]},
                {"Filters": filters, "NextToken": "page2"},
            )
            instances = self.cloud.describe_instances(Filters=filters)

        self.assertEqual([i.instance_id for i in instances], ["i-1", "i-2"])
        self.assertEqual(instances[0].state, "running")
        self.assertEqual(instances[1].private_ip, "10.0.0.2")

    def test_describe_instances_error_wrapped(self):
        ec2 = self.cloud.client("ec2")
        with Stubber(ec2) as stub:
            stub.add_client_error("describe_instances", service_error_code="UnauthorizedOperation")
            with self.assertRaises(ProviderError) as ctx:
                self.cloud.describe_instances()
        self.assertEqual(ctx.exception.operation, "DescribeInstances")
        self.assertTrue(str(ctx.exception).startswith("DescribeInstances: "))
        self.assertEqual(error_code(ctx.exception), "UnauthorizedOperation")

    def test_send_ssh_public_key(self):
        eic = self.cloud.client("ec2-instance-connect")
        with Stubber(eic) as stub:
            stub.add_response(
                "send_ssh_public_key",
                {"Success": True},
                {"InstanceId": "i-1", "InstanceOSUser": "ec2-user", "SSHPublicKey": "ssh-ed25519 AAAA"},
            )
            self.cloud.send_ssh_public_key("i-1", "ec2-user", "ssh-ed25519 AAAA")
            stub.assert_no_pending_responses()

    def test_send_ssh_public_key_error(self):
        eic = self.cloud.client("ec2-instance-connect")
        with Stubber(eic) as stub:
            stub.add_client_error("send_ssh_public_key", service_error_code="AccessDeniedException")
            with self.assertRaises(ProviderError) as ctx:
                self.cloud.send_ssh_public_key("i-1", "ec2-user", "ssh-ed25519 AAAA")
        self.assertEqual(ctx.exception.operation, "SendSSHPublicKey")

    def test_send_command(self):
        ssm = self.cloud.client("ssm")
        with Stubber(ssm) as stub:
            stub.add_response(
                "send_command",
                {"Command": {"CommandId": "cmd-1"}},
                {
                    "InstanceIds": ["i-1"],
                    "DocumentName": "AWS-RunShellScript",
                    "Parameters": {"commands": ["uptime"]},
                },
            )
            self.assertEqual(self.cloud.send_command("i-1", ["uptime"]), "cmd-1")

    def test_frozen_credentials(self):
        creds = self.cloud.frozen_credentials()
        self.assertEqual(creds.access_key, "AKIDEXAMPLE")

    def test_error_code_without_client_error(self):
        self.assertIsNone(error_code(ProviderError("LoadConfig", RuntimeError("x"))))


if __name__ == "__main__":
    unittest.main()
