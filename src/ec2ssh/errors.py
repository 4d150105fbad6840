"""Error types raised by the ec2ssh pipeline.

Every failure the user can see derives from :class:`Ec2sshError`.  The CLI
prints ``ec2ssh: <message>`` and exits 1; usage errors also print the help
text.
"""

from __future__ import annotations


class Ec2sshError(Exception):
    """Base class for tool-internal failures."""


class UsageError(Ec2sshError):
    """Raised for any command-line usage problem."""

    def __str__(self) -> str:
        return f"usage: {super().__str__()}"


class ResolutionError(Ec2sshError):
    """Raised when a destination does not resolve to exactly one instance."""


class AddressError(Ec2sshError):
    """Raised when the resolved instance lacks the requested address."""


class KeyStagingError(Ec2sshError):
    """Raised when the SSH keypair cannot be generated or read."""


class KeyPushError(Ec2sshError):
    """Raised when EC2 Instance Connect rejects the public key."""


class EndpointError(Ec2sshError):
    """Raised when no usable EC2 Instance Connect Endpoint can be found."""


class ProviderError(Ec2sshError):
    """Wraps an AWS SDK error once, prefixed with the operation name."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"{operation}: {cause}")
        self.operation = operation
        self.cause = cause


class ChildError(Ec2sshError):
    """Raised when the child binary cannot be started."""


class RemoteCommandError(Ec2sshError):
    """Raised when a command run through SSM exits non-zero."""

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"remote command exited with code {exit_code}")
        self.exit_code = exit_code


class TunnelError(Ec2sshError):
    """Raised when the EC2 Instance Connect tunnel cannot be opened."""
