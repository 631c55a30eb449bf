"""Key Material Handler: secret key parsing, destination validation, sealed keyring."""

from solbeck.keys.material import (
    SigningIdentity,
    decode_secret_key,
    identity_for,
    parse_destination,
    parse_secret_key_text,
    split_key_text,
    wipe_identities,
)
from solbeck.keys.vault import SealedKeyring

__all__ = [
    "SealedKeyring",
    "SigningIdentity",
    "decode_secret_key",
    "identity_for",
    "parse_destination",
    "parse_secret_key_text",
    "split_key_text",
    "wipe_identities",
]
