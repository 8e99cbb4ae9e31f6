"""MongoDB implementation of AccountRepository.

Uses the async pymongo client. Conditional writes go through a single
find_one_and_update so the filter check and the write are one atomic
operation on the account document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError

from repositories.protocol import DuplicateEmailError
from schemas.models.account import AccountDoc
from schemas.models.base import parse_object_id
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)


class MongoAccountRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        doc = await self._col.find_one({"email": normalize_email(email)})
        return AccountDoc.from_mongo(doc)

    async def find_by_id(self, account_id: str) -> Optional[AccountDoc]:
        oid = parse_object_id(account_id)
        if oid is None:
            return None
        doc = await self._col.find_one({"_id": oid})
        return AccountDoc.from_mongo(doc)

    async def create(self, account: AccountDoc) -> AccountDoc:
        now = datetime.now(timezone.utc)
        data = account.to_mongo()
        data["email"] = normalize_email(account.email)
        data["created_at"] = data.get("created_at") or now
        data["updated_at"] = now
        try:
            result = await self._col.insert_one(data)
        except DuplicateKeyError as e:
            raise DuplicateEmailError(data["email"]) from e
        data["_id"] = result.inserted_id
        return AccountDoc.from_mongo(data)

    async def update(
        self, account_id: str, changes: dict[str, Any]
    ) -> Optional[AccountDoc]:
        return await self.compare_and_update(account_id, {}, changes)

    async def compare_and_update(
        self,
        account_id: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> Optional[AccountDoc]:
        """Apply *changes* only if every field in *expected* still matches.

        Returns the updated account, or None when the account is missing or
        a concurrent write changed one of the expected fields.
        """
        oid = parse_object_id(account_id)
        if oid is None:
            return None
        query: dict[str, Any] = {"_id": oid, **expected}
        update: dict[str, Any] = {
            "$set": {**changes, "updated_at": datetime.now(timezone.utc)}
        }
        doc = await self._col.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )
        if doc is None and expected:
            log.info(
                "account_conditional_update_skipped",
                account_id=account_id,
                fields=sorted(expected),
            )
        return AccountDoc.from_mongo(doc)


async def ensure_indexes(db: AsyncDatabase, collection_name: str = "accounts") -> None:
    """Create the accounts indexes (idempotent)."""
    col = db[collection_name]
    await col.create_index([("email", ASCENDING)], unique=True)
    await col.create_index([("external_subject_id", ASCENDING)], sparse=True)
    log.info("account_indexes_ensured", collection=collection_name)
