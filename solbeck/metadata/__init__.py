"""Token metadata (symbol) resolution and SOL/USD price lookup."""

from solbeck.metadata.metaplex import metadata_pda, parse_metadata_symbol
from solbeck.metadata.prices import fetch_sol_usd_price
from solbeck.metadata.resolver import TokenMetadataResolver, placeholder_symbol

__all__ = [
    "TokenMetadataResolver",
    "fetch_sol_usd_price",
    "metadata_pda",
    "parse_metadata_symbol",
    "placeholder_symbol",
]
