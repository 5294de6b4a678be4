"""
Shared pytest fixtures and configuration for all tests.
"""
import copy
import os
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from starlette.requests import Request
from starlette.responses import Response

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

from session.codec import generate_random_key
from session.dynamodb_store import DynamoDBSessionStore
from session.schema import table_wait_config

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Key derivation and encryption make timings noisy
    print_blob=True,
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


TEST_TABLE = "sessions-test"
SESSION_NAME = "test-session"


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    """Build a botocore ClientError the way the DynamoDB client raises it."""
    return ClientError(
        {"Error": {"Code": code, "Message": message or code}},
        operation,
    )


class FakeDynamoDBClient:
    """
    In-memory stand-in for the aioboto3 DynamoDB client.

    Only the calls the session store makes are implemented. New tables stay
    CREATING for ``polls_until_active`` describe calls before turning ACTIVE,
    and TTL cannot be changed while a table is CREATING, as in DynamoDB.
    """

    def __init__(self, polls_until_active: int = 0):
        self.polls_until_active = polls_until_active
        self.tables: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    def add_table(
        self,
        name: str,
        key_schema: Optional[list] = None,
        status: str = "ACTIVE",
        ttl_status: str = "ENABLED",
        ttl_attribute: Optional[str] = "expiration",
    ) -> None:
        self.tables[name] = {
            "status": status,
            "pending_polls": self.polls_until_active,
            "key_schema": key_schema or [{"AttributeName": "uuid", "KeyType": "HASH"}],
            "billing_mode": "PAY_PER_REQUEST",
            "ttl_status": ttl_status,
            "ttl_attribute": ttl_attribute,
            "items": {},
        }

    def items(self, name: str = TEST_TABLE) -> dict[str, dict]:
        return self.tables[name]["items"]

    def count(self, call: str) -> int:
        return self.calls.count(call)

    def _table(self, name: str, operation: str) -> dict[str, Any]:
        table = self.tables.get(name)
        if table is None:
            raise client_error(
                "ResourceNotFoundException",
                operation,
                f"Requested resource not found: Table: {name} not found",
            )
        return table

    async def describe_table(self, TableName: str) -> dict:
        self.calls.append("describe_table")
        table = self._table(TableName, "DescribeTable")
        if table["status"] == "CREATING":
            if table["pending_polls"] > 0:
                table["pending_polls"] -= 1
            else:
                table["status"] = "ACTIVE"
        return {
            "Table": {
                "TableName": TableName,
                "TableStatus": table["status"],
                "KeySchema": copy.deepcopy(table["key_schema"]),
                "BillingModeSummary": {"BillingMode": table["billing_mode"]},
            }
        }

    async def create_table(
        self, TableName: str, AttributeDefinitions: list, KeySchema: list, BillingMode: str
    ) -> dict:
        self.calls.append("create_table")
        if TableName in self.tables:
            raise client_error(
                "ResourceInUseException", "CreateTable", f"Table already exists: {TableName}"
            )
        self.add_table(
            TableName,
            key_schema=copy.deepcopy(KeySchema),
            status="CREATING",
            ttl_status="DISABLED",
            ttl_attribute=None,
        )
        self.tables[TableName]["billing_mode"] = BillingMode
        self.tables[TableName]["attribute_definitions"] = copy.deepcopy(AttributeDefinitions)
        return {"TableDescription": {"TableName": TableName, "TableStatus": "CREATING"}}

    async def describe_time_to_live(self, TableName: str) -> dict:
        self.calls.append("describe_time_to_live")
        table = self._table(TableName, "DescribeTimeToLive")
        description = {"TimeToLiveStatus": table["ttl_status"]}
        if table["ttl_attribute"]:
            description["AttributeName"] = table["ttl_attribute"]
        return {"TimeToLiveDescription": description}

    async def update_time_to_live(self, TableName: str, TimeToLiveSpecification: dict) -> dict:
        self.calls.append("update_time_to_live")
        table = self._table(TableName, "UpdateTimeToLive")
        if table["status"] != "ACTIVE":
            raise client_error(
                "ResourceInUseException", "UpdateTimeToLive", "Table is being created"
            )
        if TimeToLiveSpecification["Enabled"] and table["ttl_status"] == "ENABLED":
            raise client_error(
                "ValidationException", "UpdateTimeToLive", "TimeToLive is already enabled"
            )
        table["ttl_status"] = "ENABLED" if TimeToLiveSpecification["Enabled"] else "DISABLED"
        table["ttl_attribute"] = TimeToLiveSpecification["AttributeName"]
        return {"TimeToLiveSpecification": dict(TimeToLiveSpecification)}

    async def get_item(self, TableName: str, Key: dict, ConsistentRead: bool = False) -> dict:
        self.calls.append("get_item")
        table = self._table(TableName, "GetItem")
        item = table["items"].get(Key["uuid"]["S"])
        return {"Item": copy.deepcopy(item)} if item is not None else {}

    async def put_item(self, TableName: str, Item: dict) -> dict:
        self.calls.append("put_item")
        table = self._table(TableName, "PutItem")
        table["items"][Item["uuid"]["S"]] = copy.deepcopy(Item)
        return {}

    async def delete_item(self, TableName: str, Key: dict) -> dict:
        self.calls.append("delete_item")
        table = self._table(TableName, "DeleteItem")
        table["items"].pop(Key["uuid"]["S"], None)
        return {}


@pytest.fixture
def fake_dynamodb() -> FakeDynamoDBClient:
    """Create an empty in-memory DynamoDB client for unit tests."""
    return FakeDynamoDBClient()


@pytest.fixture
def key_pair() -> list[bytes]:
    """A hash key and a 32-byte block key."""
    return [generate_random_key(32), generate_random_key(32)]


@pytest.fixture
def make_store(fake_dynamodb, key_pair) -> Callable[..., DynamoDBSessionStore]:
    """Factory for stores on the fake client that never sleep while provisioning."""
    def _make(key_pairs: Optional[list] = None, **kwargs: Any) -> DynamoDBSessionStore:
        kwargs.setdefault("client", fake_dynamodb)
        kwargs.setdefault("wait_config", table_wait_config(initial_delay=0))
        return DynamoDBSessionStore(TEST_TABLE, key_pairs or key_pair, **kwargs)
    return _make


@pytest_asyncio.fixture
async def store(make_store) -> DynamoDBSessionStore:
    """A connected store on the fake client."""
    store = make_store()
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def make_request() -> Callable[[Optional[str]], Request]:
    """Factory for bare GET requests carrying an optional Cookie header."""
    def _make(cookie_header: Optional[str] = None) -> Request:
        headers = []
        if cookie_header:
            headers.append((b"cookie", cookie_header.encode("latin-1")))
        return Request({
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": headers,
            "query_string": b"",
        })
    return _make


@pytest.fixture
def cookie_header() -> Callable[[Response], str]:
    """Turn a response's Set-Cookie headers into the Cookie header a client would send."""
    def _cookie_header(response: Response) -> str:
        pairs = [
            value.split(";", 1)[0]
            for key, value in response.headers.items()
            if key == "set-cookie"
        ]
        return "; ".join(pairs)
    return _cookie_header