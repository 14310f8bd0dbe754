from __future__ import annotations

import re

from dbschema_sync.errors import UnrecognizedDataError
from dbschema_sync.models import ColumnDefault, DefaultKind, IdentityGeneration

AUTO_INCREMENT_MARKER = "AUTO_INCREMENT"

_CURRENT_TIMESTAMP_RE = re.compile(r"^CURRENT_TIMESTAMP(\(\d+\))?$", re.IGNORECASE)
_ON_UPDATE_RE = re.compile(r"on update CURRENT_TIMESTAMP(?:\((\d+)\))?", re.IGNORECASE)
_MARIADB_STRING_RE = re.compile(r"^'.*'$", re.DOTALL)
_MARIADB_CURRENT_TIMESTAMP_RE = re.compile(r"^current_timestamp(?:\((\d*)\))?$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?$")
_BIT_OR_HEX_RE = re.compile(r"^[bBxX]'[0-9a-fA-F]*'$")


def unescape_expression_default(text: str) -> str:
    return text.replace("\\'", "'").replace("\\\\", "\\")


def normalize_default(default: str | None, extra: str, nullable: bool) -> ColumnDefault | None:
    """Map MySQL's COLUMN_DEFAULT / EXTRA / IS_NULLABLE to one canonical default.

    The rules are ordered: a generated or literal default must win over the
    auto-increment marker and the implicit NULL of a nullable column.
    """
    extra = extra or ""
    if default is not None:
        if _CURRENT_TIMESTAMP_RE.match(default):
            return ColumnDefault(kind=DefaultKind.EXPRESSION, value=default)
        if "DEFAULT_GENERATED" in extra.upper():
            return ColumnDefault(
                kind=DefaultKind.EXPRESSION, value=f"({unescape_expression_default(default)})"
            )
        return ColumnDefault(kind=DefaultKind.LITERAL, value=default)
    if AUTO_INCREMENT_MARKER in extra.upper():
        return ColumnDefault(kind=DefaultKind.AUTO_INCREMENT, value=AUTO_INCREMENT_MARKER)
    if nullable:
        return ColumnDefault(kind=DefaultKind.NULL)
    return None


def normalize_mariadb_default(
    default: str | None, extra: str, nullable: bool
) -> ColumnDefault | None:
    """Map MariaDB 10.2.7+ column defaults onto the MySQL representation.

    These servers report literals quoted (``'abc'``), the bare word ``NULL``
    for "no default", and expressions unquoted (``current_timestamp()``).
    """
    extra = extra or ""
    if default is not None and default.upper() != "NULL":
        if _MARIADB_STRING_RE.match(default):
            return ColumnDefault(kind=DefaultKind.LITERAL, value=default[1:-1].replace("''", "'"))
        match = _MARIADB_CURRENT_TIMESTAMP_RE.match(default)
        if match is not None:
            precision = match.group(1)
            value = f"CURRENT_TIMESTAMP({precision})" if precision else "CURRENT_TIMESTAMP"
            return ColumnDefault(kind=DefaultKind.EXPRESSION, value=value)
        if _NUMBER_RE.match(default) or _BIT_OR_HEX_RE.match(default):
            return ColumnDefault(kind=DefaultKind.LITERAL, value=default)
        return ColumnDefault(kind=DefaultKind.EXPRESSION, value=f"({default})")
    return normalize_default(None, extra, nullable)


def parse_on_update(extra: str) -> str | None:
    match = _ON_UPDATE_RE.search(extra or "")
    if match is None:
        return None
    precision = match.group(1)
    return f"CURRENT_TIMESTAMP({precision})" if precision else "CURRENT_TIMESTAMP"


def normalize_postgres_default(
    default: str | None, nullable: bool, identity: IdentityGeneration
) -> ColumnDefault | None:
    # PostgreSQL always reports defaults as expressions ('x'::text, nextval(...)).
    if identity != IdentityGeneration.UNSPECIFIED:
        return None
    if default is not None:
        return ColumnDefault(kind=DefaultKind.EXPRESSION, value=default)
    if nullable:
        return ColumnDefault(kind=DefaultKind.NULL)
    return None


def parse_identity_generation(raw: str | None) -> IdentityGeneration:
    if raw is None or raw == "":
        return IdentityGeneration.UNSPECIFIED
    normalized = raw.strip().upper()
    if normalized == "ALWAYS":
        return IdentityGeneration.ALWAYS
    if normalized == "BY DEFAULT":
        return IdentityGeneration.BY_DEFAULT
    raise UnrecognizedDataError(f"unrecognized identity generation {raw!r}")


def convert_yes_no(raw: str) -> bool:
    if raw in ("YES", "Y", "1"):
        return True
    if raw in ("NO", "N", "0"):
        return False
    raise UnrecognizedDataError(f"unrecognized is_nullable value {raw!r}")
