"""General-purpose SPL token account and mint layouts."""
from __future__ import annotations

from dataclasses import dataclass

from construct import Struct
from solders.pubkey import Pubkey

from .layout import BOOL, PUBKEY, U8, U32, U64, decode, register_layout

TOKEN_ACCOUNT_LAYOUT = register_layout(
    "spl.token_account",
    Struct(
        "mint" / PUBKEY,
        "owner" / PUBKEY,
        "amount" / U64,
        "delegate_option" / U32,
        "delegate" / PUBKEY,
        "state" / U8,
        "is_native_option" / U32,
        "is_native" / U64,
        "delegated_amount" / U64,
        "close_authority_option" / U32,
        "close_authority" / PUBKEY,
    ),
)

MINT_LAYOUT = register_layout(
    "spl.mint",
    Struct(
        "mint_authority_option" / U32,
        "mint_authority" / PUBKEY,
        "supply" / U64,
        "decimals" / U8,
        "is_initialized" / BOOL,
        "freeze_authority_option" / U32,
        "freeze_authority" / PUBKEY,
    ),
)


@dataclass
class TokenAccountInfo:
    address: Pubkey
    mint: Pubkey
    owner: Pubkey
    amount: int


@dataclass
class MintInfo:
    address: Pubkey
    supply: int
    decimals: int

    @property
    def supply_divided_by_decimals(self) -> int:
        return self.supply // 10 ** self.decimals


def parse_token_account(data: bytes, address: Pubkey) -> TokenAccountInfo:
    decoded = decode(TOKEN_ACCOUNT_LAYOUT, data)
    return TokenAccountInfo(address=address, mint=decoded.mint, owner=decoded.owner, amount=decoded.amount)


def parse_mint(data: bytes, address: Pubkey) -> MintInfo:
    decoded = decode(MINT_LAYOUT, data)
    return MintInfo(address=address, supply=decoded.supply, decimals=decoded.decimals)
