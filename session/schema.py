"""
Startup-time provisioning of the session table.

ensure_table() is idempotent and runs once when a store connects:

1. Describe the table. Errors other than "not found" propagate unchanged.
2. If it is missing, create it with a single string partition key and
   on-demand billing. Losing a creation race to another instance is fine.
3. Poll until the table is ACTIVE, backing off exponentially for a bounded
   number of attempts. DynamoDB rejects TTL changes on tables that are
   still being created.
4. Check that the key schema is exactly ``uuid`` HASH.
5. Enable TTL on the ``expiration`` attribute unless it already is.

Failures in steps 3 to 5 raise ProvisioningError.
"""

import logging
from typing import Any, Optional

from botocore.exceptions import ClientError

from errors.exceptions import ProvisioningError
from resilience.retry import RetryConfig, RetryExhaustedException, retry_async
from session.constants import EXPIRATION_ATTRIBUTE, UUID_ATTRIBUTE

logger = logging.getLogger(__name__)

EXPECTED_KEY_SCHEMA = [{"AttributeName": UUID_ATTRIBUTE, "KeyType": "HASH"}]


class TableNotReady(Exception):
    """The table exists but is not ACTIVE yet."""

    def __init__(self, table_name: str, status: Optional[str]):
        self.table_name = table_name
        self.status = status
        super().__init__(f"table '{table_name}' is {status}")


def table_wait_config(max_attempts: int = 6, initial_delay: float = 1.0) -> RetryConfig:
    """Backoff used while waiting for a table: doubling delays capped at 8 seconds."""
    return RetryConfig(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        exponential_base=2.0,
        max_delay=8.0,
        retryable_exceptions=(TableNotReady,),
    )


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class TableProvisioner:
    """Creates and verifies the session table for one store."""

    def __init__(
        self,
        client: Any,
        table_name: str,
        wait_config: Optional[RetryConfig] = None,
    ):
        """
        Args:
            client: An aioboto3 (or API-compatible) DynamoDB client.
            table_name: Name of the session table.
            wait_config: Backoff for the ACTIVE poll. Defaults to
                table_wait_config().
        """
        self._client = client
        self.table_name = table_name
        self.wait_config = wait_config or table_wait_config()

    async def ensure_table(self) -> None:
        """
        Make sure the session table exists, is ACTIVE and expires records.

        Raises:
            ProvisioningError: If the table never becomes ACTIVE, has the
                wrong key schema, or TTL cannot be enabled.
            botocore.exceptions.ClientError: If describing or creating the
                table fails for any other reason.
        """
        created = False
        table: Optional[dict[str, Any]] = None
        try:
            response = await self._client.describe_table(TableName=self.table_name)
            table = response["Table"]
        except ClientError as e:
            if _error_code(e) != "ResourceNotFoundException":
                raise
            created = await self._create_table()

        if table is None or table.get("TableStatus") != "ACTIVE":
            table = await self._wait_until_active()

        self._verify_key_schema(table)

        if created:
            await self._enable_ttl()
        else:
            await self._ensure_ttl()

    async def _create_table(self) -> bool:
        try:
            await self._client.create_table(
                TableName=self.table_name,
                AttributeDefinitions=[
                    {"AttributeName": UUID_ATTRIBUTE, "AttributeType": "S"},
                ],
                KeySchema=EXPECTED_KEY_SCHEMA,
                BillingMode="PAY_PER_REQUEST",
            )
        except ClientError as e:
            if _error_code(e) != "ResourceInUseException":
                raise
            logger.info(
                "Session table '%s' is already being created elsewhere",
                self.table_name,
                extra={"table": self.table_name},
            )
            return False

        logger.info(
            "Created session table '%s'",
            self.table_name,
            extra={"table": self.table_name},
        )
        return True

    async def _describe_active(self) -> dict[str, Any]:
        response = await self._client.describe_table(TableName=self.table_name)
        table = response["Table"]
        status = table.get("TableStatus")
        if status != "ACTIVE":
            raise TableNotReady(self.table_name, status)
        return table

    async def _wait_until_active(self) -> dict[str, Any]:
        try:
            return await retry_async(
                self._describe_active,
                config=self.wait_config,
                operation_name=f"wait_for_table:{self.table_name}",
            )
        except RetryExhaustedException as e:
            raise ProvisioningError(
                f"timed out waiting for table '{self.table_name}' to become ACTIVE",
                details={
                    "table": self.table_name,
                    "attempts": e.attempts,
                    "status": getattr(e.last_exception, "status", None),
                },
            ) from e

    def _verify_key_schema(self, table: dict[str, Any]) -> None:
        key_schema = [
            {"AttributeName": k.get("AttributeName"), "KeyType": k.get("KeyType")}
            for k in table.get("KeySchema", [])
        ]
        if key_schema != EXPECTED_KEY_SCHEMA:
            raise ProvisioningError(
                f"table '{self.table_name}' has an unexpected key schema",
                details={"expected": EXPECTED_KEY_SCHEMA, "actual": key_schema},
            )

    async def _ttl_description(self) -> dict[str, Any]:
        response = await self._client.describe_time_to_live(TableName=self.table_name)
        return response.get("TimeToLiveDescription", {})

    async def _ensure_ttl(self) -> None:
        try:
            description = await self._ttl_description()
        except ClientError as e:
            raise ProvisioningError(
                f"could not read TTL settings of table '{self.table_name}'",
                details={"code": _error_code(e)},
            ) from e

        status = description.get("TimeToLiveStatus", "DISABLED")
        attribute = description.get("AttributeName")

        if status == "DISABLED":
            await self._enable_ttl()
        elif status == "DISABLING":
            raise ProvisioningError(
                f"TTL on table '{self.table_name}' is being disabled",
                details={"status": status},
            )
        elif attribute != EXPIRATION_ATTRIBUTE:
            raise ProvisioningError(
                f"TTL on table '{self.table_name}' uses attribute '{attribute}'",
                details={"expected": EXPIRATION_ATTRIBUTE, "actual": attribute},
            )

    async def _enable_ttl(self) -> None:
        try:
            await self._client.update_time_to_live(
                TableName=self.table_name,
                TimeToLiveSpecification={
                    "Enabled": True,
                    "AttributeName": EXPIRATION_ATTRIBUTE,
                },
            )
        except ClientError as e:
            # Another instance may have enabled it between our check and update
            if _error_code(e) == "ValidationException" and await self._ttl_enabled():
                return
            raise ProvisioningError(
                f"could not enable TTL on table '{self.table_name}'",
                details={"code": _error_code(e)},
            ) from e

        logger.info(
            "Enabled TTL on '%s.%s'",
            self.table_name,
            EXPIRATION_ATTRIBUTE,
            extra={"table": self.table_name},
        )

    async def _ttl_enabled(self) -> bool:
        try:
            description = await self._ttl_description()
        except ClientError:
            return False
        return (
            description.get("TimeToLiveStatus") in ("ENABLED", "ENABLING")
            and description.get("AttributeName") == EXPIRATION_ATTRIBUTE
        )
