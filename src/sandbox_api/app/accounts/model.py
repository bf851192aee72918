"""Sandbox account domain model.

An account is a leasable cloud environment. Records come from one of the
account stores (DynamoDB, PostgREST, in-memory) as plain mappings and are
materialized into ``Account`` objects here, so every backend produces the
same shape.

Each record also gets a numeric sort key derived from its name
(``sandbox042`` -> ``42``). A name without digits cannot produce a key;
that is reported per record and never fails the whole listing.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping

from sandbox_api.app.errors import AccountNameError
from sandbox_api.observability.logging import get_logger
from sandbox_api.observability.metrics import ACCOUNT_RECORD_ERRORS_TOTAL

logger = get_logger(__name__)


class AccountKind(str, enum.Enum):
    AWS = "aws"
    OCP = "ocp"

    @property
    def resource_type(self) -> str:
        """Resource type recorded on lifecycle jobs for this kind."""
        return _RESOURCE_TYPES[self]


_RESOURCE_TYPES = {
    AccountKind.AWS: "AwsSandbox",
    AccountKind.OCP: "OcpSandbox",
}

# Attributes read from the stores. ``aws:rep:updatetime`` is maintained by
# DynamoDB global tables; relational stores use ``updated_at`` instead.
ACCOUNT_ATTRIBUTES: tuple[str, ...] = (
    "name",
    "available",
    "to_cleanup",
    "guid",
    "service_uuid",
    "envtype",
    "owner",
    "zone",
    "hosted_zone_id",
    "account_id",
    "comment",
    "owner_email",
    "aws:rep:updatetime",
    "aws_access_key_id",
    "aws_secret_access_key",
    "conan_status",
    "conan_timestamp",
    "conan_hostname",
)

# Never exposed through the API or logs.
SECRET_ATTRIBUTES = frozenset({"aws_access_key_id", "aws_secret_access_key"})


@dataclass
class Account:
    name: str
    kind: AccountKind
    available: bool = False
    to_cleanup: bool = False
    owner: str = ""
    owner_email: str = ""
    service_uuid: str | None = None
    guid: str = ""
    envtype: str = ""
    region: str = ""
    zone: str = ""
    hosted_zone_id: str = ""
    account_id: str = ""
    comment: str = ""
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    conan_status: str = ""
    conan_timestamp: str = ""
    conan_hostname: str = ""
    updated_at: datetime | None = None
    name_int: int | None = None

    def to_public_dict(self) -> dict[str, Any]:
        """JSON-safe view without the credential blob."""
        data = asdict(self)
        for key in SECRET_ATTRIBUTES:
            data.pop(key, None)
        data["kind"] = self.kind.value
        data["updated_at"] = (
            self.updated_at.isoformat() if self.updated_at else None
        )
        return data


def parse_name_int(name: str) -> int:
    """Derive the numeric sort key of an account name.

    Strips every non-digit character and parses what is left.

    Raises:
        AccountNameError: If the name contains no digits.
    """
    digits = "".join(ch for ch in name if "0" <= ch <= "9")
    if not digits:
        raise AccountNameError(name)
    return int(digits)


def account_from_record(
    record: Mapping[str, Any],
    kind: AccountKind,
) -> Account:
    """Materialize one store record into an ``Account``.

    A name that yields no sort key is logged and counted; the account is
    still returned with ``name_int=None``.

    Raises:
        KeyError: If the record has no ``name``.
    """
    name = str(record["name"])
    try:
        name_int: int | None = parse_name_int(name)
    except AccountNameError as exc:
        logger.warning(
            "account_name_key_underivable",
            name=name,
            kind=kind.value,
            error=str(exc),
        )
        ACCOUNT_RECORD_ERRORS_TOTAL.labels(
            kind=kind.value, reason="name_int",
        ).inc()
        name_int = None

    updated_at = record.get("updated_at")
    if updated_at is None:
        updated_at = record.get("aws:rep:updatetime")

    return Account(
        name=name,
        kind=kind,
        available=_as_bool(record.get("available")),
        to_cleanup=_as_bool(record.get("to_cleanup")),
        owner=_as_str(record.get("owner")),
        owner_email=_as_str(record.get("owner_email")),
        service_uuid=record.get("service_uuid") or None,
        guid=_as_str(record.get("guid")),
        envtype=_as_str(record.get("envtype")),
        region=_as_str(record.get("region")),
        zone=_as_str(record.get("zone")),
        hosted_zone_id=_as_str(record.get("hosted_zone_id")),
        account_id=_as_str(record.get("account_id")),
        comment=_as_str(record.get("comment")),
        aws_access_key_id=_as_str(record.get("aws_access_key_id")),
        aws_secret_access_key=_as_str(record.get("aws_secret_access_key")),
        conan_status=_as_str(record.get("conan_status")),
        conan_timestamp=_as_str(record.get("conan_timestamp")),
        conan_hostname=_as_str(record.get("conan_hostname")),
        updated_at=_as_datetime(updated_at),
        name_int=name_int,
    )


def sort_accounts(accounts: Iterable[Account]) -> list[Account]:
    """Order by ``name_int``; accounts without a key go last, by name."""
    return sorted(
        accounts,
        key=lambda a: (a.name_int is None, a.name_int or 0, a.name),
    )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return str(int(value)) if value == value.to_integral_value() else str(value)
    return str(value)


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float, Decimal)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    text = str(value)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            return datetime.fromtimestamp(float(text), tz=timezone.utc)
        except ValueError:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
