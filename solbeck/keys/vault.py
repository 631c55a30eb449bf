"""
In-memory sealed keyring.

Between scan and settlement the user's secret keys sit in the session. They
are kept AES-256-GCM sealed under a random per-operation key and opened
only for the duration of a pipeline run. wipe() drops the key and all
ciphertexts; a wiped keyring cannot be opened again.
"""

from __future__ import annotations

import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from solbeck.core.exceptions import InvalidKeyError
from solbeck.keys.material import SigningIdentity, decode_secret_key

NONCE_LENGTH = 12


class SealedKeyring:
    """Sealed copies of a list of SigningIdentity secrets, in order."""

    def __init__(self, identities: list[SigningIdentity], *, operation_id: str = "") -> None:
        self._key = bytearray(AESGCM.generate_key(bit_length=256))
        self._aad = operation_id.encode("utf-8")
        self._entries: list[tuple[bytes, bytes]] = []
        self.addresses: list[str] = []
        cipher = AESGCM(bytes(self._key))
        for ident in identities:
            nonce = secrets.token_bytes(NONCE_LENGTH)
            self._entries.append((nonce, cipher.encrypt(nonce, ident.secret_bytes(), self._aad)))
            self.addresses.append(ident.address)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def wiped(self) -> bool:
        return not self._key

    def open(self) -> list[SigningIdentity]:
        """Decrypt and decode every sealed key. Caller owns (and must wipe) the result."""
        if self.wiped:
            raise InvalidKeyError("keyring has been wiped")
        cipher = AESGCM(bytes(self._key))
        out: list[SigningIdentity] = []
        for i, (nonce, ciphertext) in enumerate(self._entries):
            try:
                secret = cipher.decrypt(nonce, ciphertext, self._aad)
            except InvalidTag as e:
                raise InvalidKeyError("sealed key failed authentication", position=i) from e
            out.append(decode_secret_key(bytes_to_json(secret), position=i))
        return out

    def wipe(self) -> None:
        for i in range(len(self._key)):
            self._key[i] = 0
        self._key.clear()
        self._entries.clear()


def bytes_to_json(secret: bytes) -> str:
    return "[" + ",".join(str(b) for b in secret) + "]"
