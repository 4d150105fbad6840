"""Tests for ec2ssh.tunnel."""

from __future__ import annotations

import asyncio
import unittest
from unittest import mock

import websockets
from fakes import Recorder, make_cloud, make_collab

from ec2ssh.errors import EndpointError, TunnelError, UsageError
from ec2ssh.tunnel import open_tunnel, relay, run_eice_tunnel, run_ssm_tunnel


class FakeWebSocket:
    """Yields *messages*, then either ends or stays open forever."""

    def __init__(self, messages=(), hold_open=False, closed=False):
        self.messages = list(messages)
        self.hold_open = hold_open
        self.closed = closed
        self.sent = []

    async def send(self, data):
        if self.closed:
            raise websockets.exceptions.ConnectionClosed(None, None)
        self.sent.append(data)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.hold_open:
            await asyncio.Event().wait()


class FakeWriter:

    def __init__(self):
        self.data = b""

    def write(self, data):
        self.data += data

    async def drain(self):
        pass


def _relay(websocket, stdin_chunks=None):
    writer = FakeWriter()

    async def go():
        reader = asyncio.StreamReader()
        if stdin_chunks is not None:
            for chunk in stdin_chunks:
                reader.feed_data(chunk)
            reader.feed_eof()
        await asyncio.wait_for(relay(websocket, reader, writer), timeout=5)

    asyncio.run(go())
    return writer


class TestRelay(unittest.TestCase):

    def test_websocket_to_stdout_until_remote_closes(self):
        ws = FakeWebSocket([b"SSH-2.0-OpenSSH\r\n", "text"])
        writer = _relay(ws)
        self.assertEqual(writer.data, b"SSH-2.0-OpenSSH\r\ntext")

    def test_stdin_to_websocket_until_eof(self):
        ws = FakeWebSocket(hold_open=True)
        _relay(ws, [b"abc"])
        self.assertEqual(ws.sent, [b"abc"])

    def test_send_on_closed_connection_ends_relay(self):
        ws = FakeWebSocket(hold_open=True, closed=True)
        _relay(ws, [b"abc"])
        self.assertEqual(ws.sent, [])


class TestOpenTunnel(unittest.TestCase):

    def test_connection_failure(self):
        with mock.patch("websockets.connect", side_effect=OSError("connection refused")):
            with self.assertRaises(TunnelError) as ctx:
                asyncio.run(open_tunnel("wss://eice.example.com/openTunnel"))
        self.assertIn("unable to open tunnel", str(ctx.exception))

    def test_open_timeout(self):
        with mock.patch("websockets.connect", side_effect=asyncio.TimeoutError()):
            with self.assertRaises(TunnelError):
                asyncio.run(open_tunnel("wss://eice.example.com/openTunnel"))


class TestRunEiceTunnel(unittest.TestCase):

    def test_missing_flag(self):
        with self.assertRaises(UsageError) as ctx:
            run_eice_tunnel(["--host", "10.0.0.1", "--port", "22"], make_collab(make_cloud()))
        self.assertIn("missing required flag --eice-id", str(ctx.exception))

    def test_invalid_port(self):
        with self.assertRaises(UsageError):
            run_eice_tunnel(["--host", "h", "--port", "ssh", "--eice-id", "e"], make_collab(make_cloud()))

    def test_unexpected_positional(self):
        with self.assertRaises(UsageError):
            run_eice_tunnel(["--host", "h", "--port", "22", "--eice-id", "e", "extra"], make_collab(make_cloud()))

    def test_short_flags_rejected(self):
        with self.assertRaises(UsageError):
            run_eice_tunnel(["-v", "--host", "h", "--port", "22", "--eice-id", "e"], make_collab(make_cloud()))

    def test_unknown_endpoint(self):
        with self.assertRaises(EndpointError):
            run_eice_tunnel(["--host", "h", "--port", "22", "--eice-id", "e"], make_collab(make_cloud()))

    def test_opens_presigned_tunnel(self):
        cloud = make_cloud()
        endpoint = {"InstanceConnectEndpointId": "eice-1", "DnsName": "d"}
        cloud.describe_endpoints.return_value = [endpoint]
        args = ["--host", "10.0.0.1", "--port", "22", "--eice-id", "eice-1", "--region", "eu-west-1"]
        collab = make_collab(cloud)

        with mock.patch("ec2ssh.tunnel.create_tunnel_uri", return_value="wss://d/openTunnel") as uri:
            with mock.patch("ec2ssh.tunnel.open_tunnel", new_callable=mock.AsyncMock) as tunnel:
                self.assertEqual(run_eice_tunnel(args, collab), 0)

        uri.assert_called_once_with(cloud, endpoint, "10.0.0.1", "22")
        tunnel.assert_awaited_once_with("wss://d/openTunnel")
        collab.load_session.assert_called_once_with("eu-west-1", None)


class TestRunSsmTunnel(unittest.TestCase):

    def test_starts_plugin(self):
        cloud = make_cloud()
        cloud.start_session.return_value = {"SessionId": "s-1"}
        cloud.ssm_endpoint_url.return_value = "https://ssm.us-east-1.amazonaws.com"
        rec = Recorder()

        code = run_ssm_tunnel(["--instance-id", "i-abc", "--port", "22"], make_collab(cloud, rec))

        self.assertEqual(code, 0)
        cloud.start_session.assert_called_once_with(
            Target="i-abc", DocumentName="AWS-StartSSHSession", Parameters={"portNumber": ["22"]}
        )
        self.assertEqual(rec.argv[0], "session-manager-plugin")

    def test_missing_instance_id(self):
        with self.assertRaises(UsageError):
            run_ssm_tunnel(["--port", "22"], make_collab(make_cloud()))


if __name__ == "__main__":
    unittest.main()
