"""
Session records in DynamoDB.

Each record is a single item keyed by the session identifier:

    uuid        S   partition key
    expiration  N   epoch seconds, the table's TTL attribute
    data        S   encoded session values

Writes are unconditional upserts that stamp a fresh expiration, so the last
writer wins. DynamoDB removes expired items lazily, which can take hours;
reads therefore treat an item whose expiration has passed as absent.

Backend errors are never caught or retried here.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Optional

from session.constants import (
    DATA_ATTRIBUTE,
    DEFAULT_RECORD_TTL,
    EXPIRATION_ATTRIBUTE,
    UUID_ATTRIBUTE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    """A persisted session."""
    id: str
    expiration: int
    data: str

    def is_expired(self, now: float) -> bool:
        return self.expiration <= now

    def to_item(self) -> dict[str, dict[str, str]]:
        return {
            UUID_ATTRIBUTE: {"S": self.id},
            EXPIRATION_ATTRIBUTE: {"N": str(self.expiration)},
            DATA_ATTRIBUTE: {"S": self.data},
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "SessionRecord":
        return cls(
            id=item[UUID_ATTRIBUTE]["S"],
            expiration=int(item[EXPIRATION_ATTRIBUTE]["N"]),
            data=item[DATA_ATTRIBUTE]["S"],
        )


class DynamoDBRecordStore:
    """
    Point reads and writes of session records.

    Attributes:
        table_name: Name of the session table.
        ttl: Retention window stamped on every write.
    """

    def __init__(
        self,
        client: Any,
        table_name: str,
        ttl: timedelta = DEFAULT_RECORD_TTL,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the record store.

        Args:
            client: An aioboto3 (or API-compatible) DynamoDB client.
            table_name: Name of the session table.
            ttl: How long a record survives after its last write.
            clock: Returns the current time in epoch seconds.
        """
        self._client = client
        self.table_name = table_name
        self.ttl = ttl
        self._clock = clock

    def _key(self, session_id: str) -> dict[str, dict[str, str]]:
        return {UUID_ATTRIBUTE: {"S": session_id}}

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        """
        Fetch the record for ``session_id``.

        Returns:
            The record, or None if there is no item, the item has expired,
            or the item is missing attributes.

        Raises:
            botocore.exceptions.ClientError: If the read fails.
        """
        response = await self._client.get_item(
            TableName=self.table_name,
            Key=self._key(session_id),
            ConsistentRead=True,
        )
        item = response.get("Item")
        if not item:
            return None

        try:
            record = SessionRecord.from_item(item)
        except (KeyError, TypeError, ValueError):
            logger.warning(
                "Ignoring malformed session record",
                extra={"table": self.table_name, "attributes": sorted(item)},
            )
            return None

        if record.is_expired(self._clock()):
            logger.debug(
                "Session record has expired",
                extra={"table": self.table_name, "expiration": record.expiration},
            )
            return None

        return record

    async def put(self, session_id: str, data: str) -> SessionRecord:
        """
        Create or overwrite the record for ``session_id``.

        Returns:
            The record as written, including its new expiration.

        Raises:
            botocore.exceptions.ClientError: If the write fails.
        """
        # TODO: switch to a conditional write if concurrent writers on one
        # identifier ever need to be detected instead of last-write-wins.
        record = SessionRecord(
            id=session_id,
            expiration=int(self._clock() + self.ttl.total_seconds()),
            data=data,
        )
        await self._client.put_item(TableName=self.table_name, Item=record.to_item())
        return record

    async def delete(self, session_id: str) -> None:
        """
        Delete the record for ``session_id``.

        Deleting a record that does not exist is not an error.

        Raises:
            botocore.exceptions.ClientError: If the delete fails.
        """
        await self._client.delete_item(
            TableName=self.table_name,
            Key=self._key(session_id),
        )
