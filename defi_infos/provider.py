"""Capability set shared by every protocol reader."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from construct import Construct
from solders.pubkey import Pubkey

from .errors import NotFoundError
from .layout import span
from .rpc import AccountSource, KeyedAccount, MemcmpFilter

RecordT = TypeVar("RecordT")
WrapperT = TypeVar("WrapperT")
ItemT = TypeVar("ItemT")


@dataclass(frozen=True)
class PageConfig:
    page_size: int
    page_index: int = 0


def paginate(items: Sequence[ItemT], page: Optional[PageConfig] = None) -> List[ItemT]:
    if page is None:
        return list(items)
    start = page.page_index * page.page_size
    return list(items[start : start + page.page_size])


class ProtocolInfos(ABC, Generic[RecordT, WrapperT]):
    """List-all / get-one / wrap for one protocol's base records.

    Holds no state besides its injected collaborators; every call starts from
    a fresh fetch.
    """

    program_id: Pubkey

    def __init__(self, source: AccountSource, program_id: Optional[Pubkey] = None):
        self.source = source
        if program_id is not None:
            self.program_id = program_id

    @abstractmethod
    async def get_all(self, page: Optional[PageConfig] = None) -> List[RecordT]:
        ...

    @abstractmethod
    async def get(self, address: Pubkey) -> RecordT:
        ...

    @abstractmethod
    def parse(self, data: bytes, address: Pubkey) -> RecordT:
        ...

    @abstractmethod
    def _make_wrapper(self, record: RecordT, context: Any) -> WrapperT:
        ...

    async def _wrapper_context(self) -> Any:
        return None

    async def get_all_wrappers(self, page: Optional[PageConfig] = None) -> List[WrapperT]:
        records = await self.get_all(page)
        context = await self._wrapper_context()
        return [self._make_wrapper(record, context) for record in records]

    async def get_wrapper(self, address: Pubkey) -> WrapperT:
        record = await self.get(address)
        return self._make_wrapper(record, await self._wrapper_context())

    async def _list(
        self,
        layout: Construct,
        memcmp: Sequence[MemcmpFilter] = (),
    ) -> List[KeyedAccount]:
        accounts = await self.source.list_accounts(self.program_id, span(layout), memcmp)
        logging.debug("Listed %d accounts of span %s under %s", len(accounts), span(layout), self.program_id)
        return accounts

    async def _fetch_required(self, address: Pubkey, layout: Construct, kind: str) -> bytes:
        data = await self.source.get_account(address)
        if not data:
            raise NotFoundError(f"{kind} account {address} not found")
        size = span(layout)
        if size is not None and len(data) < size:
            raise NotFoundError(f"{kind} account {address} has {len(data)} bytes, expected {size}")
        return data
