"""Off-chain HTTP collaborators: pool statistics and token prices."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from .config import ORCA_API_URL, REQUEST_TIMEOUT

PoolStatsFetcher = Callable[[], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class TokenPrice:
    mint: str
    price: Optional[float]
    decimals: Optional[int]


TokenListFetcher = Callable[[], Awaitable[List[TokenPrice]]]


async def fetch_json(url: str, timeout: int = REQUEST_TIMEOUT) -> Any:
    async with aiohttp.ClientSession() as session:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status != 200:
                raise RuntimeError(f"HTTP {response.status} for {url}")
            return await response.json(content_type=None)


class OrcaApiClient:
    """Reads ``{name: {poolAccount, apy: {day, week, month}, ...}}`` from the Orca API."""

    def __init__(self, url: str = ORCA_API_URL, timeout: int = REQUEST_TIMEOUT):
        self.url = url
        self.timeout = timeout

    async def fetch_pool_stats(self) -> Dict[str, Any]:
        data = await fetch_json(self.url, self.timeout)
        if not isinstance(data, dict):
            raise RuntimeError(f"Unexpected pool stats payload from {self.url}")
        logging.info("Fetched stats for %d pools from %s", len(data), self.url)
        return data


def parse_token_list(payload: Any) -> List[TokenPrice]:
    """Accepts a bare list or ``{"tokens": [...]}`` of ``{mint, price, decimals}``."""
    entries = payload.get("tokens", []) if isinstance(payload, dict) else payload
    tokens: List[TokenPrice] = []
    for entry in entries or []:
        mint = entry.get("mint") or entry.get("address")
        if not mint:
            continue
        price = entry.get("price")
        decimals = entry.get("decimals")
        tokens.append(
            TokenPrice(
                mint=mint,
                price=float(price) if price is not None else None,
                decimals=int(decimals) if decimals is not None else None,
            )
        )
    return tokens


def token_list_fetcher(url: str, timeout: int = REQUEST_TIMEOUT) -> TokenListFetcher:
    async def fetch() -> List[TokenPrice]:
        tokens = parse_token_list(await fetch_json(url, timeout))
        logging.info("Loaded %d token prices from %s", len(tokens), url)
        return tokens

    return fetch
