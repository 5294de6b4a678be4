"""
Authenticated encryption for session cookies and stored payloads.

A SecureCookieCodec turns a JSON-compatible value into a URL-safe token
and back. Tokens are:

- encrypted with Fernet when the codec has a block key,
- signed and timestamped with itsdangerous, salted with the cookie name so
  a token minted for one cookie never decodes under another,
- bounded in length when a max length is configured.

Stores hold a list of codecs built from key pairs. New tokens are always
produced by the first codec that succeeds, while decoding tries every codec
in order, which lets keys be rotated by prepending a new pair.
"""

import base64
import hashlib
import json
import secrets
from typing import Any, Optional, Sequence

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer

from errors.exceptions import SessionDecodeError, SessionEncodeError
from session.constants import DEFAULT_MAX_LENGTH

VALID_BLOCK_KEY_LENGTHS = (16, 24, 32)

_FERNET_KEY_INFO = b"session-cookie-encryption"


def generate_random_key(length: int = 32) -> bytes:
    """Return ``length`` cryptographically random bytes, suitable as a key."""
    return secrets.token_bytes(length)


def _derive_fernet_key(block_key: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=_FERNET_KEY_INFO,
    )
    return base64.urlsafe_b64encode(hkdf.derive(block_key))


class _EncryptedJSONSerializer:
    """JSON serializer whose output is a Fernet token."""

    def __init__(self, fernet: Fernet):
        self._fernet = fernet

    def dumps(self, obj: Any) -> bytes:
        return self._fernet.encrypt(
            json.dumps(obj, separators=(",", ":")).encode("utf-8")
        )

    def loads(self, payload: bytes) -> Any:
        return json.loads(self._fernet.decrypt(payload))


def _check_json_compatible(value: Any, path: str = "value") -> None:
    """
    Reject values that JSON would silently change on the way through.

    Dict keys must be strings, and tuples and sets are refused because they
    come back as lists (or not at all).
    """
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"{path} has a non-string key {key!r}")
            _check_json_compatible(item, f"{path}[{key!r}]")
    elif isinstance(value, (tuple, set, frozenset)):
        raise TypeError(f"{path} is a {type(value).__name__}, use a list")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _check_json_compatible(item, f"{path}[{index}]")


class SecureCookieCodec:
    """
    Encodes and decodes values for a single key pair.

    Attributes:
        encrypted: Whether tokens are encrypted as well as signed.
    """

    def __init__(
        self,
        hash_key: bytes,
        block_key: Optional[bytes] = None,
        max_age: int = 0,
        max_length: int = DEFAULT_MAX_LENGTH,
    ):
        """
        Initialize the codec.

        Args:
            hash_key: Key used to authenticate tokens. Required.
            block_key: Optional key used to encrypt tokens. Must be 16, 24
                or 32 bytes when given.
            max_age: Maximum token age in seconds; 0 disables the check.
            max_length: Maximum token length; 0 disables the check.

        Raises:
            ValueError: If the hash key is empty or the block key has an
                invalid length.
        """
        if not hash_key:
            raise ValueError("hash key is not set")
        if block_key and len(block_key) not in VALID_BLOCK_KEY_LENGTHS:
            raise ValueError(
                f"block key must be 16, 24 or 32 bytes, got {len(block_key)}"
            )

        self._hash_key = bytes(hash_key)
        self._serializer_impl = (
            _EncryptedJSONSerializer(Fernet(_derive_fernet_key(bytes(block_key))))
            if block_key
            else None
        )
        self.encrypted = self._serializer_impl is not None
        self._max_age = max_age
        self._max_length = max_length

    def max_age(self, age: int) -> None:
        """Set the maximum token age in seconds. 0 or less disables the check."""
        self._max_age = age

    def max_length(self, length: int) -> None:
        """Set the maximum token length. 0 disables the check."""
        self._max_length = length

    def _serializer(self, name: str) -> URLSafeTimedSerializer:
        kwargs: dict[str, Any] = {
            "salt": name,
            "signer_kwargs": {"digest_method": hashlib.sha256},
        }
        if self._serializer_impl is not None:
            kwargs["serializer"] = self._serializer_impl
        return URLSafeTimedSerializer(self._hash_key, **kwargs)

    def encode(self, name: str, value: Any) -> str:
        """
        Encode a value into a signed (and possibly encrypted) token.

        Args:
            name: Cookie name the token is bound to.
            value: JSON-compatible value. Dict keys must be strings and
                sequences must be lists.

        Returns:
            The cookie-safe token.

        Raises:
            SessionEncodeError: If the value cannot be serialized or the
                token exceeds the configured maximum length.
        """
        try:
            _check_json_compatible(value)
            token = self._serializer(name).dumps(value)
        except (TypeError, ValueError) as e:
            raise SessionEncodeError(
                f"could not serialize session value: {e}"
            ) from e
        # Binary serializers make itsdangerous return bytes
        if isinstance(token, bytes):
            token = token.decode("ascii")

        if self._max_length and len(token) > self._max_length:
            raise SessionEncodeError(
                "the value is too long",
                details={"length": len(token), "max_length": self._max_length},
            )
        return token

    def decode(self, name: str, token: str) -> Any:
        """
        Decode a token produced by encode() with the same name and keys.

        Raises:
            SessionDecodeError: If the token is too long, expired, fails
                authentication or decryption, or holds a malformed payload.
        """
        if self._max_length and len(token) > self._max_length:
            raise SessionDecodeError(
                "the value is too long",
                details={"length": len(token), "max_length": self._max_length},
            )

        max_age = self._max_age if self._max_age > 0 else None
        try:
            return self._serializer(name).loads(token, max_age=max_age)
        except SignatureExpired as e:
            raise SessionDecodeError("expired timestamp") from e
        except BadData as e:
            raise SessionDecodeError(f"the value is not valid: {e}") from e


def codecs_from_pairs(*key_pairs: Optional[bytes]) -> list[SecureCookieCodec]:
    """
    Build codecs from a flat sequence of hash and block keys.

    Keys are consumed two at a time: ``hash_key_1, block_key_1, hash_key_2,
    block_key_2, ...``. A trailing hash key without a block key, or a block
    key given as ``None``, builds a sign-only codec.

    Raises:
        ValueError: If no keys are given or any key is invalid.
    """
    if not key_pairs:
        raise ValueError("at least one hash key is required")

    codecs = []
    for i in range(0, len(key_pairs), 2):
        hash_key = key_pairs[i]
        block_key = key_pairs[i + 1] if i + 1 < len(key_pairs) else None
        codecs.append(SecureCookieCodec(hash_key, block_key))
    return codecs


def encode_multi(name: str, value: Any, codecs: Sequence[SecureCookieCodec]) -> str:
    """
    Encode with the first codec that succeeds.

    Raises:
        SessionEncodeError: If there are no codecs or every codec fails.
            ``details["errors"]`` lists each codec's reason.
    """
    if not codecs:
        raise SessionEncodeError("no codecs were provided")

    errors = []
    for codec in codecs:
        try:
            return codec.encode(name, value)
        except SessionEncodeError as e:
            errors.append(e.message)

    raise SessionEncodeError(errors[0], details={"errors": errors})


def decode_multi(name: str, token: str, codecs: Sequence[SecureCookieCodec]) -> Any:
    """
    Decode with each codec in order and return the first success.

    Raises:
        SessionDecodeError: If there are no codecs or every codec fails.
            ``details["errors"]`` lists each codec's reason.
    """
    if not codecs:
        raise SessionDecodeError("no codecs were provided")

    errors = []
    for codec in codecs:
        try:
            return codec.decode(name, token)
        except SessionDecodeError as e:
            errors.append(e.message)

    raise SessionDecodeError(errors[0], details={"errors": errors})
