"""AccountRepository protocol: services depend on this, not the concrete implementation.

Every lookup returns ``None`` for a missing account; storage failures raise
the driver's own exceptions. ``compare_and_update`` is the per-account
atomic read-modify-write the state machine relies on for single-use codes
and cooldown slots.
"""

from typing import Any, Optional, Protocol

from schemas.models.account import AccountDoc


class DuplicateEmailError(Exception):
    """An account with the same normalized email already exists."""


class AccountRepository(Protocol):
    async def find_by_email(self, email: str) -> Optional[AccountDoc]: ...

    async def find_by_id(self, account_id: str) -> Optional[AccountDoc]: ...

    async def create(self, account: AccountDoc) -> AccountDoc: ...

    async def update(
        self, account_id: str, changes: dict[str, Any]
    ) -> Optional[AccountDoc]: ...

    async def compare_and_update(
        self,
        account_id: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> Optional[AccountDoc]: ...
