"""
Cookie sessions backed by DynamoDB.

Request handlers obtain sessions from a SessionStore. The DynamoDB store
keeps session values in a table and hands the client an encrypted,
signed cookie carrying only the session identifier.
"""

from session.codec import (
    SecureCookieCodec,
    codecs_from_pairs,
    decode_multi,
    encode_multi,
    generate_random_key,
)
from session.constants import DEFAULT_MAX_AGE, DEFAULT_MAX_LENGTH, DEFAULT_RECORD_TTL
from session.dynamodb_store import DynamoDBSessionStore
from session.records import DynamoDBRecordStore, SessionRecord
from session.registry import SessionRegistry, get_registry
from session.schema import TableProvisioner, table_wait_config
from session.session import CookieOptions, Session, SessionSource, new_session_id
from session.store import SessionStore

__all__ = [
    "SessionStore",
    "DynamoDBSessionStore",
    "Session",
    "SessionSource",
    "CookieOptions",
    "SessionRegistry",
    "get_registry",
    "SecureCookieCodec",
    "codecs_from_pairs",
    "encode_multi",
    "decode_multi",
    "generate_random_key",
    "new_session_id",
    "DynamoDBRecordStore",
    "SessionRecord",
    "TableProvisioner",
    "table_wait_config",
    "DEFAULT_MAX_AGE",
    "DEFAULT_MAX_LENGTH",
    "DEFAULT_RECORD_TTL",
]
