"""Backend-agnostic account provider.

``AccountProvider`` is the only account API that route handlers and the
job ledger see. It wraps one ``AccountStore`` (DynamoDB, Supabase or
in-memory) for one account kind and turns store results into the domain
contract:

  - ``fetch_by_name`` raises ``AccountNotFound`` instead of returning None.
  - ``mark_for_cleanup`` is idempotent and raises ``AccountNotFound`` for
    an unknown name.
  - listings are sorted by the derived numeric name key.

``AccountProviderRegistry`` maps each configured kind to its provider so
handlers are written once and parameterized by kind.
"""

from __future__ import annotations

from typing import Iterator, Mapping

from sandbox_api.app.errors import (
    AccountFilterError,
    AccountKindNotConfigured,
    AccountNotFound,
)
from sandbox_api.app.protocols import AccountStore
from sandbox_api.observability.logging import get_logger

from .model import Account, AccountKind, sort_accounts

logger = get_logger(__name__)


class AccountProvider:
    """Account queries and mutations for one kind over one store."""

    def __init__(self, store: AccountStore, kind: AccountKind) -> None:
        self._store = store
        self._kind = kind

    @property
    def kind(self) -> AccountKind:
        return self._kind

    async def fetch_all(self) -> list[Account]:
        accounts = await self._store.scan()
        return sort_accounts(accounts)

    async def fetch_all_by_service_uuid(self, service_uuid: str) -> list[Account]:
        if not service_uuid or not service_uuid.strip():
            raise AccountFilterError("service_uuid filter must not be blank")
        accounts = await self._store.scan({"service_uuid": service_uuid.strip()})
        return sort_accounts(accounts)

    async def fetch_by_name(self, name: str) -> Account:
        account = await self._store.get(name)
        if account is None:
            raise AccountNotFound(name, self._kind.value)
        return account

    async def mark_for_cleanup(self, name: str) -> None:
        """Flag an account for cleanup.

        Calling this any number of times, concurrently or not, leaves the
        account in the same state as a single call.
        """
        found = await self._store.mark_for_cleanup(name)
        if not found:
            raise AccountNotFound(name, self._kind.value)
        logger.info(
            "account_marked_for_cleanup", name=name, kind=self._kind.value,
        )


class AccountProviderRegistry:
    """Providers keyed by account kind, chosen once at startup."""

    def __init__(self, providers: Mapping[AccountKind, AccountProvider]) -> None:
        for kind, provider in providers.items():
            if provider.kind is not kind:
                raise ValueError(
                    f"provider for {provider.kind.value!r} registered "
                    f"under {kind.value!r}"
                )
        self._providers = dict(providers)

    def get(self, kind: AccountKind | str) -> AccountProvider:
        try:
            kind = AccountKind(kind)
        except ValueError:
            raise AccountKindNotConfigured(str(kind)) from None
        provider = self._providers.get(kind)
        if provider is None:
            raise AccountKindNotConfigured(kind.value)
        return provider

    def kinds(self) -> list[AccountKind]:
        return list(self._providers)

    def __iter__(self) -> Iterator[AccountProvider]:
        return iter(self._providers.values())
