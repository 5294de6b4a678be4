"""
DynamoDB-backed session store implementation.

Session values live in a DynamoDB table; the client only holds a cookie
carrying the encoded session identifier. Both the identifier cookie and the
stored values are produced by the store's codecs, so neither can be read or
forged without the keys.

Lifecycle of a session within one request:

- No cookie, or a cookie that fails to decode: a fresh, empty session.
- A valid cookie whose record exists: values loaded, is_new False.
- A valid cookie whose record is gone or expired: behaves as fresh.
- save() with max_age > 0: mint an identifier on first save, upsert the
  record, write a new cookie.
- save() with max_age <= 0: delete the record and expire the cookie.
"""

import logging
import time
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Any, Callable, Optional, Sequence

import aioboto3
from starlette.requests import Request
from starlette.responses import Response

from errors.exceptions import SessionDecodeError
from resilience.retry import RetryConfig
from session.codec import codecs_from_pairs, decode_multi, encode_multi
from session.constants import DEFAULT_MAX_LENGTH, DEFAULT_RECORD_TTL
from session.records import DynamoDBRecordStore
from session.registry import get_registry
from session.schema import TableProvisioner, table_wait_config
from session.session import (
    CookieOptions,
    Session,
    SessionSource,
    new_session_id,
    set_session_cookie,
)
from session.store import SessionStore

logger = logging.getLogger(__name__)


class DynamoDBSessionStore(SessionStore):
    """
    DynamoDB-backed session store.

    One instance is shared by all requests. After connect() it holds only
    configuration, codecs and the DynamoDB client, so it needs no locking.

    Attributes:
        table_name: Name of the session table.
        region: AWS region of the table.
        endpoint_url: Optional endpoint override, e.g. DynamoDB Local.
        codecs: Codecs built from the key pairs, newest first.
        options: Default cookie options copied into every new session.
        record_ttl: Retention window stamped on every record write.
    """

    def __init__(
        self,
        table_name: str,
        key_pairs: Sequence[Optional[bytes]],
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Optional[Any] = None,
        options: Optional[CookieOptions] = None,
        record_ttl: timedelta = DEFAULT_RECORD_TTL,
        max_length: int = DEFAULT_MAX_LENGTH,
        wait_config: Optional[RetryConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the DynamoDB session store.

        The store is not usable until connect() has provisioned the table.

        Args:
            table_name: Name of the session table.
            key_pairs: Flat sequence of hash and block keys, see
                session.codec.codecs_from_pairs. At least one key is required.
            region: AWS region of the table.
            endpoint_url: Optional endpoint override.
            client: Optional DynamoDB client. When given, the store uses it
                as-is and never closes it.
            options: Default cookie options. Defaults to CookieOptions().
            record_ttl: Retention window of stored records.
            max_length: Maximum encoded token length; 0 disables the check.
            wait_config: Backoff used while waiting for a new table.
            clock: Returns the current time in epoch seconds.

        Raises:
            ValueError: If no keys are given or a key is invalid.
        """
        self.table_name = table_name
        self.region = region
        self.endpoint_url = endpoint_url
        self.codecs = codecs_from_pairs(*key_pairs)
        self.options = options.copy() if options else CookieOptions()
        self.record_ttl = record_ttl
        self._wait_config = wait_config or table_wait_config()
        self._clock = clock
        self._client = client
        self._exit_stack: Optional[AsyncExitStack] = None
        self._records: Optional[DynamoDBRecordStore] = None

        self.max_age(self.options.max_age)
        self.max_length(max_length)

    @classmethod
    def from_settings(cls, settings: Any, client: Optional[Any] = None) -> "DynamoDBSessionStore":
        """
        Build a store from application settings.

        Args:
            settings: A config.settings.Settings instance.
            client: Optional DynamoDB client to use instead of opening one.
        """
        options = CookieOptions(
            path=settings.session_cookie_path,
            domain=settings.session_cookie_domain,
            max_age=settings.session_max_age,
            secure=settings.session_cookie_secure,
            http_only=settings.session_cookie_http_only,
            same_site=settings.session_cookie_same_site,
        )
        return cls(
            settings.session_table_name,
            settings.decoded_key_pairs(),
            region=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url,
            client=client,
            options=options,
            record_ttl=timedelta(minutes=settings.session_record_ttl_minutes),
            max_length=settings.session_max_length,
            wait_config=table_wait_config(
                max_attempts=settings.session_table_ready_attempts,
                initial_delay=settings.session_table_ready_initial_delay,
            ),
        )

    @property
    def connected(self) -> bool:
        return self._records is not None

    async def connect(self) -> None:
        """
        Open the DynamoDB client and provision the session table.

        This method must be called before using any other methods. If
        provisioning fails the client is closed again and the store stays
        unusable.

        Raises:
            ProvisioningError: If the table cannot be set up.
            botocore.exceptions.ClientError: If DynamoDB rejects the
                describe or create call.
        """
        if self._records is not None:
            return

        if self._client is None:
            self._exit_stack = AsyncExitStack()
            session = aioboto3.Session()
            self._client = await self._exit_stack.enter_async_context(
                session.client(
                    "dynamodb",
                    region_name=self.region,
                    endpoint_url=self.endpoint_url,
                )
            )

        try:
            await TableProvisioner(
                self._client, self.table_name, self._wait_config
            ).ensure_table()
        except Exception:
            await self.close()
            raise

        self._records = DynamoDBRecordStore(
            self._client,
            self.table_name,
            ttl=self.record_ttl,
            clock=self._clock,
        )
        logger.info(
            "Session store ready on table '%s'",
            self.table_name,
            extra={"table": self.table_name, "region": self.region},
        )

    async def close(self) -> None:
        """
        Release the DynamoDB client if this store opened it.

        Should be called during application shutdown. A closed store must be
        connected again before use.
        """
        self._records = None
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None
            self._client = None

    def _require_records(self) -> DynamoDBRecordStore:
        if self._records is None:
            raise RuntimeError("Session store not connected. Call connect() first.")
        return self._records

    def max_age(self, age: int) -> None:
        """
        Set the default max-age for new sessions and every codec.

        Individual sessions are deleted by setting their options.max_age to
        zero or less before saving.
        """
        self.options.max_age = age
        for codec in self.codecs:
            codec.max_age(age)

    def max_length(self, length: int) -> None:
        """Cap the length of encoded tokens. 0 means no limit; use with caution."""
        for codec in self.codecs:
            codec.max_length(length)

    async def new(self, request: Request, name: str) -> Session:
        records = self._require_records()
        session = Session(self, name, self.options.copy())

        cookie = request.cookies.get(name)
        if not cookie:
            return session

        try:
            session_id = decode_multi(name, cookie, self.codecs)
        except SessionDecodeError as e:
            logger.debug(
                "Rejected session cookie",
                extra={"session_name": name, "reason": e.message},
            )
            session.source = SessionSource.INVALID
            return session

        if not isinstance(session_id, str) or not session_id:
            session.source = SessionSource.INVALID
            return session

        record = await records.get(session_id)
        if record is None:
            session.source = SessionSource.MISSING
            return session

        try:
            values = decode_multi(name, record.data, self.codecs)
        except SessionDecodeError as e:
            logger.warning(
                "Stored session payload could not be decoded",
                extra={"session_name": name, "reason": e.message},
            )
            session.source = SessionSource.INVALID
            return session

        if not isinstance(values, dict):
            session.source = SessionSource.INVALID
            return session

        session.id = session_id
        session.values = values
        session.is_new = False
        session.source = SessionSource.LOADED
        return session

    async def get(self, request: Request, name: str) -> Session:
        return await get_registry(request).get(self, name)

    async def save(self, request: Request, response: Response, session: Session) -> None:
        records = self._require_records()

        if session.options.max_age <= 0:
            if session.id:
                await records.delete(session.id)
            set_session_cookie(response, session.name, "", session.options)
            return

        # Encode before minting or writing so an oversized session leaves no trace
        data = encode_multi(session.name, session.values, self.codecs)
        if not session.id:
            session.id = new_session_id()
        await records.put(session.id, data)

        token = encode_multi(session.name, session.id, self.codecs)
        set_session_cookie(response, session.name, token, session.options)

    async def health_check(self) -> bool:
        """
        Check that the session table is reachable and ACTIVE.

        Returns:
            True if the table is healthy, False otherwise, including when
            the store is not connected.
        """
        if self._client is None or self._records is None:
            return False

        try:
            response = await self._client.describe_table(TableName=self.table_name)
            return response["Table"].get("TableStatus") == "ACTIVE"
        except Exception as e:
            logger.warning(
                "Session store health check failed: %s",
                str(e),
                extra={"table": self.table_name},
            )
            return False
