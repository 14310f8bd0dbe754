from __future__ import annotations

import re
from typing import NamedTuple

from dbschema_sync.errors import UnrecognizedDataError

_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+")


class ServerVersion(NamedTuple):
    """A server version split into its numeric triplet and the vendor suffix.

    ``"10.5.9-MariaDB"`` becomes ``ServerVersion("10.5.9", "-MariaDB")``.
    """

    number: str
    descriptor: str = ""

    @property
    def release(self) -> tuple[int, int, int]:
        major, minor, patch = self.number.split(".")
        return int(major), int(minor), int(patch)

    def has_flavor(self, flavor: str) -> bool:
        return flavor.lower() in self.descriptor.lower()


def parse_version(raw: str) -> ServerVersion:
    match = _VERSION_RE.match(raw or "")
    if match is None:
        raise UnrecognizedDataError(f"failed to parse version {raw!r}")
    return ServerVersion(match.group(0), raw[match.end() :])


def parse_server_version_num(raw: str | int) -> ServerVersion:
    """Convert PostgreSQL's ``server_version_num`` (e.g. ``150004``) into a ServerVersion."""
    try:
        num = int(raw)
    except (TypeError, ValueError) as exc:
        raise UnrecognizedDataError(f"failed to parse server_version_num {raw!r}") from exc
    major, minor, patch = num // 10000, (num // 100) % 100, num % 100
    return ServerVersion(f"{major}.{minor}.{patch}")
