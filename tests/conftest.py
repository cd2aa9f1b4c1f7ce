"""Shared fixtures: an in-memory account source and layout-built account bytes."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from construct import Construct
from solders.pubkey import Pubkey

from defi_infos.layout import encode, to_plain
from defi_infos.rpc import KeyedAccount, MemcmpFilter

# Large enough for every zero-count layout; trailing bytes are ignored on parse.
ZERO_BUFFER = bytes(4096)


def zero_values(layout: Construct) -> Dict[str, Any]:
    """Field mapping of ``layout`` with every number, key and flag zeroed."""
    return to_plain(layout.parse(ZERO_BUFFER))


def build_account(layout: Construct, **overrides: Any) -> bytes:
    values = zero_values(layout)
    values.update(overrides)
    return encode(layout, values)


class FakeAccountSource:
    """``AccountSource`` over a dict, with the RPC size/memcmp filter semantics."""

    def __init__(self):
        self.accounts: Dict[Pubkey, Tuple[Optional[Pubkey], bytes]] = {}
        self.list_calls: List[Tuple[Pubkey, Optional[int], Tuple[MemcmpFilter, ...]]] = []
        self.batch_calls: List[List[Pubkey]] = []

    def add(self, data: bytes, owner: Optional[Pubkey] = None, address: Optional[Pubkey] = None) -> Pubkey:
        address = address or Pubkey.new_unique()
        self.accounts[address] = (owner, data)
        return address

    async def list_accounts(
        self,
        program_id: Pubkey,
        size: Optional[int] = None,
        memcmp: Sequence[MemcmpFilter] = (),
    ) -> List[KeyedAccount]:
        self.list_calls.append((program_id, size, tuple(memcmp)))
        result = []
        for address, (owner, data) in self.accounts.items():
            if owner != program_id:
                continue
            if size is not None and len(data) != size:
                continue
            if any(data[f.offset : f.offset + len(f.bytes)] != f.bytes for f in memcmp):
                continue
            result.append(KeyedAccount(address, data))
        return result

    async def get_account(self, address: Pubkey) -> Optional[bytes]:
        entry = self.accounts.get(address)
        return entry[1] if entry else None

    async def get_accounts(self, addresses: Sequence[Pubkey]) -> List[Optional[bytes]]:
        self.batch_calls.append(list(addresses))
        return [await self.get_account(address) for address in addresses]


@pytest.fixture
def source() -> FakeAccountSource:
    return FakeAccountSource()
