"""
Token Metadata Resolver.

Maps a mint to a display symbol, best-effort:
1. token registry lists (Jupiter strict, then all) fetched with a short timeout;
2. on-chain Metaplex metadata account;
3. placeholder "Unknown (ABCD...WXYZ)".

Never raises: a failing source is logged and the next one is tried. Resolved
symbols are cached for the life of the resolver.
"""

from __future__ import annotations

from typing import Any

import httpx

from solbeck.ledger.client import LedgerClient
from solbeck.metadata.metaplex import metadata_pda, parse_metadata_symbol
from solbeck.solbeck_logging import get_logger, short_addr

logger = get_logger(__name__)


def placeholder_symbol(mint: str) -> str:
    return f"Unknown ({short_addr(mint)})"


class TokenMetadataResolver:
    def __init__(
        self,
        ledger: LedgerClient | None,
        registry_urls: tuple[str, ...] | list[str] = (),
        *,
        timeout_sec: float = 3.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._ledger = ledger
        self._registry_urls = tuple(registry_urls)
        self._timeout = timeout_sec
        self._http = http_client
        self._registries: dict[str, dict[str, str] | None] = {}
        self._cache: dict[str, str] = {}

    async def resolve_symbol(self, mint: str) -> str:
        mint = str(mint)
        cached = self._cache.get(mint)
        if cached:
            return cached
        symbol = await self._from_registries(mint)
        if not symbol:
            symbol = await self._from_metaplex(mint)
        if not symbol:
            logger.debug("token_symbol_unresolved", mint=short_addr(mint))
            symbol = placeholder_symbol(mint)
        self._cache[mint] = symbol
        return symbol

    async def _from_registries(self, mint: str) -> str | None:
        for url in self._registry_urls:
            registry = await self._load_registry(url)
            if registry and registry.get(mint):
                return registry[mint]
        return None

    async def _load_registry(self, url: str) -> dict[str, str] | None:
        if url in self._registries:
            return self._registries[url]
        registry: dict[str, str] | None = None
        try:
            if self._http is not None:
                r = await self._http.get(url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.get(url)
            r.raise_for_status()
            registry = _index_token_list(r.json())
            logger.info("token_registry_loaded", url=url, tokens=len(registry))
        except Exception as e:
            logger.warning("token_registry_failed", url=url, error=str(e))
        # Failed loads are cached as None; one attempt per registry per resolver.
        self._registries[url] = registry
        return registry

    async def _from_metaplex(self, mint: str) -> str | None:
        if self._ledger is None:
            return None
        try:
            data = await self._ledger.get_account_data(metadata_pda(mint))
        except Exception as e:
            logger.debug("token_metaplex_lookup_failed", mint=short_addr(mint), error=str(e))
            return None
        if not data:
            return None
        return parse_metadata_symbol(data)


def _index_token_list(payload: Any) -> dict[str, str]:
    """Jupiter-style list [{address, symbol, ...}] (or {"tokens": [...]}) to mint -> symbol."""
    items = payload.get("tokens", []) if isinstance(payload, dict) else payload
    out: dict[str, str] = {}
    for item in items or []:
        if not isinstance(item, dict):
            continue
        address = item.get("address")
        symbol = item.get("symbol")
        if address and symbol:
            out[str(address)] = str(symbol)
    return out
