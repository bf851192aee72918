"""Sandbox account model and providers."""

from .model import (
    ACCOUNT_ATTRIBUTES,
    Account,
    AccountKind,
    account_from_record,
    parse_name_int,
    sort_accounts,
)
from .provider import AccountProvider, AccountProviderRegistry

__all__ = [
    "ACCOUNT_ATTRIBUTES",
    "Account",
    "AccountKind",
    "AccountProvider",
    "AccountProviderRegistry",
    "account_from_record",
    "parse_name_int",
    "sort_accounts",
]
