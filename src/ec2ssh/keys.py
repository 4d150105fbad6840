"""Ephemeral SSH keypairs for EC2 Instance Connect.

Generated keys live in a scoped ``ec2ssh-*`` temporary directory that is
removed when the :func:`stage_keys` context exits, on success and failure
alike.  The private key file is created owner-only (0600) before any key
material is written.
"""

from __future__ import annotations

import contextlib
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .errors import KeyStagingError

log = logging.getLogger(__name__)

KEY_NAME = "id_ed25519"
TEMP_PREFIX = "ec2ssh-"

KeyGenerator = Callable[[str], Tuple[str, str]]


@dataclass
class KeyPair:
    """Private key path plus the single-line OpenSSH public key."""

    private_key_path: str
    public_key: str


def _write_private(path: str, data: bytes) -> None:
    """Create *path* with mode 0600 and write *data* to it."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, stat.S_IRUSR | stat.S_IWUSR)
    try:
        os.fchmod(fd, stat.S_IRUSR | stat.S_IWUSR)  # ignore umask
        os.write(fd, data)
    finally:
        os.close(fd)


def generate_keypair(directory: str) -> Tuple[str, str]:
    """Generate an Ed25519 keypair inside *directory*.

    Writes ``id_ed25519`` (OpenSSH private key format, 0600) and
    ``id_ed25519.pub``.

    Returns:
        (private key path, public key line)
    """
    key = Ed25519PrivateKey.generate()
    private_bytes = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_line = key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode("ascii")

    private_path = os.path.join(directory, KEY_NAME)
    _write_private(private_path, private_bytes)
    with open(private_path + ".pub", "w") as f:
        f.write(public_line + "\n")

    log.debug("generated ephemeral keypair %s", private_path)
    return private_path, public_line


def read_public_key(identity_file: str) -> str:
    """Read ``<identity_file>.pub`` and return its first line.

    Raises:
        KeyStagingError: the file is missing, unreadable or empty.
    """
    pub_path = identity_file + ".pub"
    try:
        with open(pub_path) as f:
            line = f.readline().strip()
    except (OSError, UnicodeDecodeError) as e:
        raise KeyStagingError(f"unable to read public key {pub_path}: {e}") from e
    if not line:
        raise KeyStagingError(f"unable to read public key {pub_path}: file is empty")
    return line


@contextlib.contextmanager
def stage_keys(
    identity_file: Optional[str] = None,
    generator: Optional[KeyGenerator] = None,
) -> Iterator[KeyPair]:
    """Yield the keypair for this session.

    With *identity_file* the user's key is used as-is and its public half
    is read from ``<identity_file>.pub``; nothing is written.  Otherwise a
    fresh pair is generated in a temporary directory that exists only for
    the duration of the ``with`` block.

    Raises:
        KeyStagingError: the public key cannot be read or generation fails.
    """
    if identity_file:
        yield KeyPair(identity_file, read_public_key(identity_file))
        return

    generate = generator or generate_keypair
    with tempfile.TemporaryDirectory(prefix=TEMP_PREFIX) as tmp_dir:
        log.debug("created temporary directory %s", tmp_dir)
        try:
            private_path, public_key = generate(tmp_dir)
        except (OSError, ValueError) as e:
            raise KeyStagingError(f"unable to generate ephemeral keypair: {e}") from e
        yield KeyPair(private_path, public_key.strip())
    log.debug("removed temporary directory %s", tmp_dir)
