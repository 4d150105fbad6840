"""``ec2list``: print instances as an aligned table."""

from __future__ import annotations

import logging
import sys
from typing import Callable, Dict, List, Optional, TextIO

from .aws import Instance
from .errors import UsageError
from .options import LIST_FLAGS
from .session import Collaborators

log = logging.getLogger(__name__)

PADDING = 2
MISSING = "-"

COLUMNS: Dict[str, Callable[[Instance], Optional[str]]] = {
    "ID": lambda i: i.instance_id,
    "NAME": lambda i: i.name,
    "STATE": lambda i: i.state,
    "TYPE": lambda i: i.instance_type,
    "AZ": lambda i: i.availability_zone,
    "PRIVATE-IP": lambda i: i.private_ip,
    "PUBLIC-IP": lambda i: i.public_ip,
    "IPV6": lambda i: i.ipv6,
    "PRIVATE-DNS": lambda i: i.private_dns,
    "PUBLIC-DNS": lambda i: i.public_dns,
}

DEFAULT_COLUMNS = "ID,NAME,STATE,PRIVATE-IP,PUBLIC-IP"


def parse_columns(text: Optional[str]) -> List[str]:
    """Parse a ``--list-columns`` value; case and whitespace are ignored."""
    if not text:
        text = DEFAULT_COLUMNS
    columns = ["".join(c.split()) for c in text.upper().split(",")]
    for column in columns:
        if column not in COLUMNS:
            raise UsageError(f"invalid column {column}")
    return columns


def format_table(rows: List[List[str]]) -> str:
    """Align *rows* like a tabwriter with two spaces of padding.

    Every column but the last is padded to its widest cell plus two
    spaces; the last column is written as-is.
    """
    if not rows:
        return ""
    ncols = max(len(row) for row in rows)
    widths = [0] * ncols
    for row in rows:
        for idx, cell in enumerate(row[:-1]):
            widths[idx] = max(widths[idx], len(cell))

    lines = []
    for row in rows:
        cells = [cell.ljust(widths[idx] + PADDING) for idx, cell in enumerate(row[:-1])]
        cells.append(row[-1])
        lines.append("".join(cells))
    return "\n".join(lines) + "\n"


def write_instances(out: TextIO, instances: List[Instance], columns: List[str]) -> None:
    """Write the header and one row per instance, in the order given."""
    rows = [list(columns)]
    for instance in instances:
        rows.append([COLUMNS[c](instance) or MISSING for c in columns])
    out.write(format_table(rows))


def run_list(
    args: List[str],
    collab: Optional[Collaborators] = None,
    out: Optional[TextIO] = None,
) -> int:
    """Entry point for the list intent."""
    collab = collab or Collaborators()
    sifted = LIST_FLAGS.sift(args)
    if sifted.positionals:
        raise UsageError(f"unexpected argument {sifted.positionals[0]}")
    flags = sifted.flags
    columns = parse_columns(flags["columns"])

    cloud = collab.cloud(flags["region"], flags["profile"])
    instances = cloud.list_instances()
    write_instances(out or sys.stdout, instances, columns)
    return 0
