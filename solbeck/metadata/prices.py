"""SOL/USD price lookup. Only enriches settlement records; 0.0 on any failure."""

from __future__ import annotations

import httpx

from solbeck.solbeck_logging import get_logger

logger = get_logger(__name__)


async def fetch_sol_usd_price(
    url: str,
    *,
    timeout_sec: float = 5.0,
    http_client: httpx.AsyncClient | None = None,
) -> float:
    try:
        if http_client is not None:
            r = await http_client.get(url, timeout=timeout_sec)
        else:
            async with httpx.AsyncClient(timeout=timeout_sec) as client:
                r = await client.get(url)
        r.raise_for_status()
        price = float(r.json().get("solana", {}).get("usd") or 0.0)
    except Exception as e:
        logger.warning("sol_price_lookup_failed", error=str(e))
        return 0.0
    logger.debug("sol_price_fetched", usd=price)
    return price
