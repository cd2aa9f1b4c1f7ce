"""Account fetching collaborator and its solana-py implementation."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import base58
from solana.rpc.async_api import AsyncClient
from solana.rpc.types import MemcmpOpts
from solders.pubkey import Pubkey

from .config import MAX_MULTIPLE_ACCOUNTS, REQUEST_TIMEOUT, RPC_ENDPOINTS


@dataclass(frozen=True)
class KeyedAccount:
    """Raw account bytes tagged with the address they were read from."""

    address: Pubkey
    data: bytes


@dataclass(frozen=True)
class MemcmpFilter:
    """Exact-match filter on ``data[offset:offset + len(bytes)]``."""

    offset: int
    bytes: bytes


class AccountSource(Protocol):
    async def list_accounts(
        self,
        program_id: Pubkey,
        size: Optional[int] = None,
        memcmp: Sequence[MemcmpFilter] = (),
    ) -> List[KeyedAccount]:
        ...

    async def get_account(self, address: Pubkey) -> Optional[bytes]:
        ...

    async def get_accounts(self, addresses: Sequence[Pubkey]) -> List[Optional[bytes]]:
        ...


class RpcAccountSource:
    """``AccountSource`` backed by a Solana JSON-RPC node."""

    def __init__(self, client: AsyncClient, batch_size: int = MAX_MULTIPLE_ACCOUNTS):
        self.client = client
        self.batch_size = batch_size

    @classmethod
    def from_endpoint(cls, endpoint: str = RPC_ENDPOINTS[0], timeout: float = REQUEST_TIMEOUT) -> "RpcAccountSource":
        logging.info("Using RPC endpoint %s", endpoint)
        return cls(AsyncClient(endpoint, timeout=timeout))

    async def close(self) -> None:
        await self.client.close()

    async def list_accounts(
        self,
        program_id: Pubkey,
        size: Optional[int] = None,
        memcmp: Sequence[MemcmpFilter] = (),
    ) -> List[KeyedAccount]:
        filters: list = []
        if size is not None:
            filters.append(size)
        for item in memcmp:
            filters.append(MemcmpOpts(offset=item.offset, bytes=base58.b58encode(item.bytes).decode()))
        logging.debug("Fetching program accounts for %s (size=%s, memcmp=%d)", program_id, size, len(memcmp))
        response = await self.client.get_program_accounts(program_id, encoding="base64", filters=filters or None)
        accounts = [KeyedAccount(item.pubkey, bytes(item.account.data)) for item in response.value]
        logging.debug("Fetched %d accounts for %s", len(accounts), program_id)
        return accounts

    async def get_account(self, address: Pubkey) -> Optional[bytes]:
        response = await self.client.get_account_info(address, encoding="base64")
        if response.value is None:
            return None
        return bytes(response.value.data)

    async def get_accounts(self, addresses: Sequence[Pubkey]) -> List[Optional[bytes]]:
        addresses = list(addresses)
        chunks = [addresses[i : i + self.batch_size] for i in range(0, len(addresses), self.batch_size)]
        responses = await asyncio.gather(
            *(self.client.get_multiple_accounts(chunk, encoding="base64") for chunk in chunks)
        )
        results: List[Optional[bytes]] = []
        for response in responses:
            results.extend(None if account is None else bytes(account.data) for account in response.value)
        logging.debug("Fetched %d/%d accounts in %d batches", sum(r is not None for r in results), len(results), len(chunks))
        return results
