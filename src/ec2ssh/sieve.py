"""Split a mixed command line into our flags, passthrough flags and operands.

ec2ssh sits in front of ssh/scp/sftp, so its command line is a mix of:

- flags that belong to ec2ssh (``--region``, ``-i``, ``-l`` ...),
- flags that belong to the child binary (``-v``, ``-L 8080:host:80`` ...),
- positional operands (destination, remote command, scp operands).

A :class:`FlagSet` knows our flags and which child flags take a value.  In
sift mode unknown short flags are copied verbatim into the passthrough
vector; in strict mode they are rejected.  Everything after a literal
``--`` is positional.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .errors import UsageError


@dataclass(frozen=True)
class Flag:
    """One ec2ssh flag: ``--long``, ``-s`` or both."""

    dest: str
    long: Optional[str] = None
    short: Optional[str] = None
    takes_value: bool = False


@dataclass
class SieveResult:
    """Output of :meth:`FlagSet.sift`."""

    flags: Dict[str, Any] = field(default_factory=dict)
    passthrough: List[str] = field(default_factory=list)
    positionals: List[str] = field(default_factory=list)


class FlagSet:
    """Typed flag schema for one intent."""

    def __init__(
        self,
        flags: Iterable[Flag],
        passthrough_with_value: Iterable[str] = (),
        strict: bool = False,
    ) -> None:
        self.flags = list(flags)
        self.passthrough_with_value = frozenset(passthrough_with_value)
        self.strict = strict
        self._long: Dict[str, Flag] = {}
        self._short: Dict[str, Flag] = {}
        for flag in self.flags:
            if flag.long:
                self._long[flag.long] = flag
            if flag.short:
                self._short[flag.short] = flag

    def defaults(self) -> Dict[str, Any]:
        """Return dest -> default value (``None`` or ``False``) for every flag."""
        return {f.dest: (None if f.takes_value else False) for f in self.flags}

    def sift(self, args: List[str]) -> SieveResult:
        """Sort *args* into recognized flags, passthrough args and positionals.

        Raises:
            UsageError: unknown long option, unknown short option in strict
                mode, or a value-taking flag at the end of *args*.
        """
        result = SieveResult(flags=self.defaults())
        it = iter(args)

        for arg in it:
            if arg == "--":
                result.positionals.extend(it)
                break
            if arg.startswith("--"):
                self._handle_long(arg, it, result)
            elif arg.startswith("-") and len(arg) > 1:
                self._handle_short(arg, it, result)
            else:
                result.positionals.append(arg)

        return result

    def _handle_long(self, arg: str, it: Iterator[str], result: SieveResult) -> None:
        """Handle ``--name`` and ``--name=value``."""
        name, sep, value = arg[2:].partition("=")
        flag = self._long.get(name)
        if flag is None:
            raise UsageError(f"unknown option --{name}")

        if not flag.takes_value:
            if sep:
                raise UsageError(f"option --{name} does not take a value")
            result.flags[flag.dest] = True
            return

        if not sep:
            value = next(it, None)
            if value is None:
                raise UsageError(f"missing value for --{name}")
        result.flags[flag.dest] = value

    def _handle_short(self, arg: str, it: Iterator[str], result: SieveResult) -> None:
        """Handle ``-x``, ``-xvalue``, ``-x value`` and clusters like ``-vvA``.

        Unknown characters are accumulated so that a cluster containing
        none of our flags is passed through as the original token.
        """
        chars = arg[1:]
        unknown = ""

        for j, ch in enumerate(chars):
            tail = chars[j + 1 :]
            flag = self._short.get(ch)

            if flag is not None:
                if unknown:
                    result.passthrough.append("-" + unknown)
                    unknown = ""
                if not flag.takes_value:
                    result.flags[flag.dest] = True
                    continue
                if tail:
                    result.flags[flag.dest] = tail
                    return
                value = next(it, None)
                if value is None:
                    raise UsageError(f"missing value for -{ch}")
                result.flags[flag.dest] = value
                return

            if self.strict:
                raise UsageError(f"unknown option -{ch}")

            if "-" + ch in self.passthrough_with_value:
                token = "-" + unknown + ch
                if tail:
                    result.passthrough.append(token + tail)
                    return
                value = next(it, None)
                result.passthrough.append(token)
                if value is not None:
                    result.passthrough.append(value)
                return

            unknown += ch

        if unknown:
            result.passthrough.append("-" + unknown)
