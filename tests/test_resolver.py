"""Tests for ec2ssh.resolver and ec2ssh.aws.Instance."""

from __future__ import annotations

import unittest

from fakes import make_cloud, make_instance

from ec2ssh.aws import Instance
from ec2ssh.errors import AddressError, ResolutionError, UsageError
from ec2ssh.resolver import (
    AddrType,
    DstType,
    classify,
    instance_addr,
    parse_addr_type,
    parse_dst_type,
    resolve_instance,
    select_instance,
)


class TestClassify(unittest.TestCase):

    def test_instance_ids(self):
        self.assertEqual(classify("i-0123456789abcdef0"), DstType.ID)
        self.assertEqual(classify("i-12345678"), DstType.ID)

    def test_not_quite_an_id_is_a_name(self):
        self.assertEqual(classify("i-web"), DstType.NAME_TAG)

    def test_dotted_quad(self):
        self.assertEqual(classify("10.0.0.1"), DstType.PRIVATE_IP)
        self.assertEqual(classify("52.0.0.1"), DstType.PRIVATE_IP)

    def test_ipv6(self):
        self.assertEqual(classify("2001:db8::1"), DstType.IPV6)

    def test_private_dns(self):
        self.assertEqual(classify("ip-10-0-0-1"), DstType.PRIVATE_DNS)
        self.assertEqual(classify("ip6-foo"), DstType.PRIVATE_DNS)
        self.assertEqual(classify("ip-10-0-0-1.ec2.internal"), DstType.PRIVATE_DNS)
        self.assertEqual(classify("x.eu-west-1.compute.internal"), DstType.PRIVATE_DNS)

    def test_name_tag(self):
        self.assertEqual(classify("web-prod"), DstType.NAME_TAG)


class TestParseTypes(unittest.TestCase):

    def test_dst_types(self):
        self.assertEqual(parse_dst_type(None), DstType.AUTO)
        self.assertEqual(parse_dst_type("private_dns"), DstType.PRIVATE_DNS)
        self.assertEqual(parse_dst_type("name_tag"), DstType.NAME_TAG)

    def test_invalid_dst_type(self):
        for value in ("bogus", "auto"):
            with self.assertRaises(UsageError):
                parse_dst_type(value)

    def test_addr_types(self):
        self.assertEqual(parse_addr_type(None), AddrType.AUTO)
        self.assertEqual(parse_addr_type("public"), AddrType.PUBLIC)

    def test_invalid_addr_type(self):
        with self.assertRaises(UsageError):
            parse_addr_type("elastic")


class TestSelectInstance(unittest.TestCase):

    def test_single_match_returned_whatever_its_state(self):
        inst = make_instance(state="stopped")
        self.assertIs(select_instance("x", [inst]), inst)

    def test_no_match(self):
        with self.assertRaises(ResolutionError) as ctx:
            select_instance("web", [])
        self.assertEqual(str(ctx.exception), "no instance matched web")

    def test_all_stopped(self):
        matches = [make_instance("i-00000002", state="stopped"), make_instance("i-00000001", state="terminated")]
        with self.assertRaises(ResolutionError) as ctx:
            select_instance("web", matches)
        self.assertIn("no running instance", str(ctx.exception))

    def test_first_running_by_id(self):
        matches = [
            make_instance("i-00000003", state="running"),
            make_instance("i-00000001", state="stopped"),
            make_instance("i-00000002", state="running"),
        ]
        self.assertEqual(select_instance("web", matches).instance_id, "i-00000002")

    def test_none_running_falls_back_to_first(self):
        matches = [make_instance("i-00000002", state="pending"), make_instance("i-00000001", state="stopped")]
        self.assertEqual(select_instance("web", matches).instance_id, "i-00000001")


class TestResolveInstance(unittest.TestCase):

    def test_by_id(self):
        cloud = make_cloud([make_instance("i-0123456789abcdef0")])
        inst = resolve_instance(cloud, "i-0123456789abcdef0")
        self.assertEqual(inst.instance_id, "i-0123456789abcdef0")
        cloud.describe_instances.assert_called_once_with(InstanceIds=["i-0123456789abcdef0"])

    def test_name_tag_filter(self):
        cloud = make_cloud([make_instance()])
        resolve_instance(cloud, "web-prod")
        cloud.describe_instances.assert_called_once_with(
            Filters=[{"Name": "tag:Name", "Values": ["web-prod"]}]
        )

    def test_private_dns_gets_wildcard(self):
        cloud = make_cloud([make_instance()])
        resolve_instance(cloud, "ip-10-0-0-1")
        cloud.describe_instances.assert_called_once_with(
            Filters=[{"Name": "private-dns-name", "Values": ["ip-10-0-0-1.*"]}]
        )

    def test_full_private_dns_no_wildcard(self):
        cloud = make_cloud([make_instance()])
        resolve_instance(cloud, "ip-10-0-0-1.ec2.internal")
        cloud.describe_instances.assert_called_once_with(
            Filters=[{"Name": "private-dns-name", "Values": ["ip-10-0-0-1.ec2.internal"]}]
        )

    def test_dotted_quad_falls_back_to_public(self):
        public = make_instance(public_ip="52.0.0.1")
        cloud = make_cloud()
        cloud.describe_instances.side_effect = [[], [public]]
        self.assertIs(resolve_instance(cloud, "52.0.0.1"), public)
        calls = cloud.describe_instances.call_args_list
        self.assertEqual(calls[0].kwargs["Filters"][0]["Name"], "private-ip-address")
        self.assertEqual(calls[1].kwargs["Filters"][0]["Name"], "ip-address")

    def test_dotted_quad_private_match_skips_public(self):
        cloud = make_cloud([make_instance(private_ip="10.0.0.1")])
        resolve_instance(cloud, "10.0.0.1")
        self.assertEqual(cloud.describe_instances.call_count, 1)

    def test_explicit_type_skips_classification(self):
        cloud = make_cloud([make_instance()])
        resolve_instance(cloud, "i-0123456789abcdef0", DstType.NAME_TAG)
        cloud.describe_instances.assert_called_once_with(
            Filters=[{"Name": "tag:Name", "Values": ["i-0123456789abcdef0"]}]
        )

    def test_explicit_public_ip_no_fallback(self):
        cloud = make_cloud([])
        with self.assertRaises(ResolutionError):
            resolve_instance(cloud, "52.0.0.1", DstType.PUBLIC_IP)
        self.assertEqual(cloud.describe_instances.call_count, 1)

    def test_no_match(self):
        with self.assertRaises(ResolutionError):
            resolve_instance(make_cloud([]), "ghost")


class TestInstanceAddr(unittest.TestCase):

    def setUp(self):
        self.full = make_instance(private_ip="10.0.0.1", public_ip="52.0.0.1", ipv6="2001:db8::1")

    def test_auto_prefers_private(self):
        self.assertEqual(instance_addr(self.full), "10.0.0.1")

    def test_auto_falls_through(self):
        self.assertEqual(instance_addr(make_instance(public_ip="52.0.0.1")), "52.0.0.1")
        self.assertEqual(instance_addr(make_instance(ipv6="2001:db8::1")), "2001:db8::1")

    def test_auto_nothing(self):
        with self.assertRaises(AddressError) as ctx:
            instance_addr(make_instance())
        self.assertEqual(str(ctx.exception), "instance has no usable address")

    def test_explicit(self):
        self.assertEqual(instance_addr(self.full, AddrType.PUBLIC), "52.0.0.1")
        self.assertEqual(instance_addr(self.full, AddrType.IPV6), "2001:db8::1")

    def test_explicit_missing(self):
        with self.assertRaises(AddressError) as ctx:
            instance_addr(make_instance(private_ip="10.0.0.1"), AddrType.PUBLIC)
        self.assertEqual(str(ctx.exception), "no public address on instance")


class TestInstanceFromApi(unittest.TestCase):

    def test_fields(self):
        inst = Instance.from_api(
            {
                "InstanceId": "i-abc",
                "State": {"Name": "running"},
                "Tags": [{"Key": "env", "Value": "prod"}, {"Key": "Name", "Value": "web"}],
                "InstanceType": "t3.micro",
                "Placement": {"AvailabilityZone": "us-east-1a"},
                "PrivateIpAddress": "10.0.0.1",
                "PrivateDnsName": "ip-10-0-0-1.ec2.internal",
                "PublicDnsName": "",
                "VpcId": "vpc-1",
                "SubnetId": "subnet-1",
            }
        )
        self.assertEqual(inst.name, "web")
        self.assertEqual(inst.state, "running")
        self.assertEqual(inst.availability_zone, "us-east-1a")
        self.assertIsNone(inst.public_dns)
        self.assertIsNone(inst.public_ip)

    def test_ipv6_from_network_interface(self):
        inst = Instance.from_api(
            {
                "InstanceId": "i-abc",
                "NetworkInterfaces": [{"Ipv6Addresses": [{"Ipv6Address": "2001:db8::5"}]}],
            }
        )
        self.assertEqual(inst.ipv6, "2001:db8::5")

    def test_missing_instance_id(self):
        with self.assertRaises(RuntimeError):
            Instance.from_api({"State": {"Name": "running"}})


if __name__ == "__main__":
    unittest.main()
