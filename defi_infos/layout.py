"""Binary layout registry and the generic decode routine behind every parser.

Layouts are plain ``construct`` structs: an ordered list of named fields that a
single ``decode`` call interprets. Adding a protocol means adding a table here
(via ``register_layout``) rather than writing new parsing code.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from construct import (
    Adapter,
    Bytes,
    BytesInteger,
    Construct,
    ConstructError,
    Container,
    Flag,
    Int8ul,
    Int16ul,
    Int32ul,
    Int64sl,
    Int64ul,
    ListContainer,
    PrefixedArray,
    SizeofError,
)
from solders.pubkey import Pubkey

from .errors import DecodeError


class PublicKeyAdapter(Adapter):
    """32 raw bytes <-> ``solders`` Pubkey."""

    def _decode(self, obj, context, path):
        return Pubkey.from_bytes(obj)

    def _encode(self, obj, context, path):
        return bytes(obj)


PUBKEY = PublicKeyAdapter(Bytes(32))
# Single byte, 0 = False and any other value = True. Older program versions
# write sentinels other than 1.
BOOL = Flag
U8 = Int8ul
U16 = Int16ul
U32 = Int32ul
U64 = Int64ul
I64 = Int64sl
U128 = BytesInteger(16, swapped=True)
U256 = BytesInteger(32, swapped=True)


def vec(subcon: Construct) -> Construct:
    """Borsh vector: u32 element count followed by that many elements."""
    return PrefixedArray(U32, subcon)


LAYOUTS: Dict[str, Construct] = {}


def register_layout(name: str, layout: Construct) -> Construct:
    if name in LAYOUTS and LAYOUTS[name] is not layout:
        raise ValueError(f"Layout {name} already registered")
    LAYOUTS[name] = layout
    return layout


def get_layout(name: str) -> Construct:
    try:
        return LAYOUTS[name]
    except KeyError:
        raise KeyError(f"Unknown layout {name}") from None


def span(layout: Construct) -> Optional[int]:
    """Exact byte length of a fixed layout, ``None`` for length-prefixed ones."""
    try:
        return layout.sizeof()
    except SizeofError:
        return None


def decode(layout: Construct, data: bytes) -> Container:
    """Parse ``data`` with ``layout``.

    Fixed layouts reject buffers shorter than their span up front; variable
    layouts fail when a count field asks for more elements than remain.
    Trailing bytes are ignored (accounts are often over-allocated).
    """
    size = span(layout)
    if size is not None and len(data) < size:
        raise DecodeError(f"Expected at least {size} bytes, got {len(data)}")
    try:
        return layout.parse(bytes(data))
    except ConstructError as exc:
        logging.debug("Layout decode failed on %d bytes: %s", len(data), exc)
        raise DecodeError(str(exc)) from exc


def encode(layout: Construct, values: Mapping[str, Any]) -> bytes:
    """Inverse of ``decode`` for the same layout."""
    return layout.build(values)


def to_plain(obj: Any) -> Any:
    """Turn parsed containers into dicts/lists, dropping construct internals."""
    if isinstance(obj, Container):
        return {key: to_plain(value) for key, value in obj.items() if not key.startswith("_")}
    if isinstance(obj, ListContainer):
        return [to_plain(item) for item in obj]
    return obj


def decode_fields(layout: Construct, data: bytes) -> Dict[str, Any]:
    """``decode`` returning a plain dict, ready to splat into a record."""
    return to_plain(decode(layout, data))
