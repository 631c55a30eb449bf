"""Metaplex token-metadata PDA derivation and symbol parsing."""

from __future__ import annotations

import struct

from solders.pubkey import Pubkey

METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

# key (1) + update authority (32) + mint (32)
_HEADER_LEN = 1 + 32 + 32
MAX_SYMBOL_LEN = 20


def metadata_pda(mint: Pubkey | str) -> Pubkey:
    mint_pk = mint if isinstance(mint, Pubkey) else Pubkey.from_string(str(mint))
    pda, _bump = Pubkey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint_pk)],
        METADATA_PROGRAM_ID,
    )
    return pda


def parse_metadata_symbol(data: bytes) -> str | None:
    """
    Symbol from a Metaplex metadata account: skip header and the
    length-prefixed name, then read the length-prefixed symbol.
    None when the layout does not fit or the symbol is empty.
    """
    offset = _HEADER_LEN
    try:
        (name_len,) = struct.unpack_from("<I", data, offset)
        offset += 4 + name_len
        (symbol_len,) = struct.unpack_from("<I", data, offset)
    except struct.error:
        return None
    offset += 4
    if not 0 < symbol_len < MAX_SYMBOL_LEN or offset + symbol_len > len(data):
        return None
    symbol = data[offset : offset + symbol_len].decode("utf-8", errors="ignore").replace("\x00", "").strip()
    return symbol or None
