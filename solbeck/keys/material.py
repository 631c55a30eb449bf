"""
Key material handling: user-supplied secret keys and destination addresses.

Responsibilities:
- Split pasted key text on whitespace/commas, drop empties, de-duplicate.
- Decode each key (base58 64-byte secret or JSON array of 64 ints) into a
  SigningIdentity; reject anything else before any network call.
- Validate the optional consolidation destination address.
- Wipe decoded secret bytes once the operation is over.

Secret material never reaches a logger; only short addresses do.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from solbeck.core.exceptions import InvalidAddressError, InvalidKeyError, TooManyWalletsError
from solbeck.solbeck_logging import get_logger, short_addr

logger = get_logger(__name__)

SECRET_KEY_LENGTH = 64
PUBKEY_LENGTH = 32

_KEY_SPLIT = re.compile(r"[\s,]+")


@dataclass(eq=False)
class SigningIdentity:
    """A decoded keypair owned by exactly one in-flight operation."""

    keypair: Keypair = field(repr=False)
    position: int = 0
    _secret: bytearray = field(default_factory=bytearray, repr=False)

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    def secret_bytes(self) -> bytes:
        return bytes(self._secret)

    def wipe(self) -> None:
        """Zero the retained secret copy. The solders keypair is dropped by the caller."""
        for i in range(len(self._secret)):
            self._secret[i] = 0
        self._secret.clear()

    def __repr__(self) -> str:
        return f"SigningIdentity({short_addr(self.address)}, position={self.position})"


def split_key_text(text: str) -> list[str]:
    """Split pasted keys on whitespace/commas; JSON arrays are kept whole. Empties dropped."""
    raw = (text or "").strip()
    if not raw:
        return []
    tokens: list[str] = []
    for chunk in re.split(r"(\[[^\]]*\])", raw):
        chunk = chunk.strip()
        if not chunk:
            continue
        if chunk.startswith("["):
            tokens.append(re.sub(r"\s+", "", chunk))
            continue
        tokens.extend(t for t in _KEY_SPLIT.split(chunk) if t)
    return tokens


def decode_secret_key(token: str, position: int | None = None) -> SigningIdentity:
    """
    Decode one key token into a SigningIdentity.

    Accepts a base58 string of the 64-byte secret or a JSON array of 64 ints.

    Raises:
        InvalidKeyError: encoding or length is wrong, or the bytes are not a valid keypair.
    """
    raw = (token or "").strip()
    if not raw:
        raise InvalidKeyError("empty key", position=position)
    if raw.startswith("["):
        try:
            arr = json.loads(raw)
            secret = bytes(int(b) for b in arr)
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise InvalidKeyError("key is not a valid JSON byte array", position=position) from e
    else:
        try:
            secret = base58.b58decode(raw)
        except ValueError as e:
            raise InvalidKeyError("key is not valid base58", position=position) from e
    if len(secret) != SECRET_KEY_LENGTH:
        raise InvalidKeyError(
            f"key decodes to {len(secret)} bytes, expected {SECRET_KEY_LENGTH}",
            position=position,
        )
    try:
        keypair = Keypair.from_bytes(secret)
    except Exception as e:
        raise InvalidKeyError("key bytes are not a valid ed25519 keypair", position=position) from e
    return SigningIdentity(keypair=keypair, position=position or 0, _secret=bytearray(secret))


def parse_secret_key_text(text: str, max_wallets: int | None = None) -> list[SigningIdentity]:
    """
    Parse pasted key text into distinct SigningIdentity objects, in input order.

    Duplicate keys (same public key) keep their first occurrence. Every token
    must decode; the first bad one aborts the whole parse.

    Raises:
        InvalidKeyError: no keys, or a token fails to decode.
        TooManyWalletsError: more distinct keys than max_wallets.
    """
    tokens = split_key_text(text)
    if not tokens:
        raise InvalidKeyError("no keys supplied")
    identities: list[SigningIdentity] = []
    seen: set[str] = set()
    try:
        for i, token in enumerate(tokens):
            ident = decode_secret_key(token, position=i)
            if ident.address in seen:
                ident.wipe()
                continue
            seen.add(ident.address)
            ident.position = len(identities)
            identities.append(ident)
    except InvalidKeyError:
        wipe_identities(identities)
        raise
    if max_wallets is not None and len(identities) > max_wallets:
        count = len(identities)
        wipe_identities(identities)
        raise TooManyWalletsError(count, max_wallets)
    logger.info(
        "keys_parsed",
        tokens=len(tokens),
        identities=len(identities),
        duplicates=len(tokens) - len(identities),
    )
    return identities


def parse_destination(address: str | None) -> Pubkey | None:
    """
    Validate a consolidation destination. None/blank means "return rent to the primary identity".

    Raises:
        InvalidAddressError: not a base58 32-byte public key.
    """
    raw = (address or "").strip()
    if not raw:
        return None
    try:
        decoded = base58.b58decode(raw)
    except ValueError as e:
        raise InvalidAddressError(f"destination is not valid base58: {short_addr(raw)}") from e
    if len(decoded) != PUBKEY_LENGTH:
        raise InvalidAddressError(f"destination decodes to {len(decoded)} bytes, expected {PUBKEY_LENGTH}")
    return Pubkey.from_bytes(decoded)


def identity_for(identities: Iterable[SigningIdentity], pubkey: Any) -> SigningIdentity | None:
    """The identity whose public key equals pubkey, if any."""
    target = str(pubkey)
    for ident in identities:
        if ident.address == target:
            return ident
    return None


def wipe_identities(identities: list[SigningIdentity]) -> None:
    for ident in identities:
        ident.wipe()
    identities.clear()
