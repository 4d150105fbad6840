"""Build the ProxyCommand that re-invokes ec2ssh as a tunnel helper.

ssh runs the ProxyCommand through ``sh -c`` once per connection attempt
and substitutes ``%p`` with the port.  Each word is passed through
:func:`shlex.quote` so paths or profile names containing whitespace
survive the shell.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import sys
from typing import List, Optional

from .aws import CloudClient, Instance
from .eice import find_endpoint
from .errors import EndpointError

log = logging.getLogger(__name__)

PORT_PLACEHOLDER = "%p"
PACKAGE = "ec2ssh"


def self_path(argv0: Optional[str] = None) -> str:
    """Return the absolute path of the running ec2ssh executable.

    *argv0* is resolved against PATH when it has no directory part.
    """
    if argv0 is None:
        argv0 = sys.argv[0]
    if os.sep not in argv0:
        found = shutil.which(argv0)
        if found:
            argv0 = found
    return os.path.abspath(argv0)


def self_command(argv0: Optional[str] = None) -> List[str]:
    """Return the words that re-invoke ec2ssh from a shell.

    The installed console script is used when argv[0] names one.  Under
    ``python -m ec2ssh`` argv[0] is ``__main__.py``, which ssh cannot run,
    so the current interpreter re-enters the package instead.
    """
    path = self_path(argv0)
    if path.endswith(".py") or not os.access(path, os.X_OK):
        log.debug("%s is not executable, using %s -m %s", path, sys.executable, PACKAGE)
        return [sys.executable, "-m", PACKAGE]
    return [path]


def _join(program: List[str], words: List[str]) -> str:
    # %p must reach ssh unquoted so it is substituted.
    return " ".join(w if w == PORT_PLACEHOLDER else shlex.quote(w) for w in program + words)


def _common_flags(region: Optional[str], profile: Optional[str], debug: bool) -> List[str]:
    words: List[str] = []
    if region:
        words += ["--region", region]
    if profile:
        words += ["--profile", profile]
    if debug:
        words.append("--debug")
    return words


def eice_proxy_command(
    program: List[str],
    instance: Instance,
    eice_id: str,
    region: Optional[str] = None,
    profile: Optional[str] = None,
    debug: bool = False,
) -> str:
    if not instance.private_ip:
        raise EndpointError(f"instance {instance.instance_id} has no private address for the endpoint")
    words = [
        "--eice-tunnel",
        "--host", instance.private_ip,
        "--port", PORT_PLACEHOLDER,
        "--eice-id", eice_id,
    ]
    return _join(program, words + _common_flags(region, profile, debug))


def ssm_proxy_command(
    program: List[str],
    instance: Instance,
    region: Optional[str] = None,
    profile: Optional[str] = None,
    debug: bool = False,
) -> str:
    words = [
        "--ssm-tunnel",
        "--instance-id", instance.instance_id,
        "--port", PORT_PLACEHOLDER,
    ]
    return _join(program, words + _common_flags(region, profile, debug))


def plan_proxy_command(
    cloud: CloudClient,
    instance: Instance,
    use_eice: bool,
    use_ssm: bool,
    eice_id: Optional[str] = None,
    region: Optional[str] = None,
    profile: Optional[str] = None,
    debug: bool = False,
    program: Optional[List[str]] = None,
) -> Optional[str]:
    """Return the ProxyCommand for the selected tunnel, or None without one.

    Without an explicit *eice_id* an endpoint in the instance's VPC is
    discovered first.

    Raises:
        EndpointError: no endpoint could be found.
        ProviderError: the endpoint lookup failed.
    """
    if not (use_eice or use_ssm):
        return None

    program = program or self_command()
    if use_ssm:
        command = ssm_proxy_command(program, instance, region, profile, debug)
    else:
        if not eice_id:
            endpoint = find_endpoint(cloud, instance.vpc_id, instance.subnet_id)
            eice_id = endpoint["InstanceConnectEndpointId"]
        command = eice_proxy_command(program, instance, eice_id, region, profile, debug)

    log.debug("using proxy command %s", command)
    return command
