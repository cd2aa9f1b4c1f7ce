"""Lifinity AMM accounts joined with their config and token balances."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from construct import Struct
from solders.pubkey import Pubkey

from .config import LIFINITY_PROGRAM_ID
from .layout import PUBKEY, U8, U64, decode_fields, register_layout
from .metrics import ratio, swap_out_amount
from .pda import find_program_address
from .provider import PageConfig, ProtocolInfos, paginate
from .token import parse_mint, parse_token_account

LIFINITY_PROGRAM = Pubkey.from_string(LIFINITY_PROGRAM_ID)

LIFINITY_AMM_LAYOUT = register_layout(
    "lifinity.amm",
    Struct(
        "index" / U64,
        "initializer_key" / PUBKEY,
        "initializer_deposit_token_account" / PUBKEY,
        "initializer_receive_token_account" / PUBKEY,
        "initializer_amount" / U64,
        "taker_amount" / U64,
        "initialized" / U8,
        "bump_seed" / U8,
        "freeze_trade" / U8,
        "freeze_deposit" / U8,
        "freeze_withdraw" / U8,
        "base_decimals" / U8,
        "token_program_id" / PUBKEY,
        "token_a_account" / PUBKEY,
        "token_b_account" / PUBKEY,
        "pool_mint" / PUBKEY,
        "token_a_mint" / PUBKEY,
        "token_b_mint" / PUBKEY,
        "pool_fee_account" / PUBKEY,
        "pyth_account" / PUBKEY,
        "pyth_pc_account" / PUBKEY,
        "config_account" / PUBKEY,
        "amm_temp1" / PUBKEY,
        "amm_temp2" / PUBKEY,
        "amm_temp3" / PUBKEY,
        "trade_fee_numerator" / U64,
        "trade_fee_denominator" / U64,
        "owner_trade_fee_numerator" / U64,
        "owner_trade_fee_denominator" / U64,
        "owner_withdraw_fee_numerator" / U64,
        "owner_withdraw_fee_denominator" / U64,
        "host_fee_numerator" / U64,
        "host_fee_denominator" / U64,
        "curve_type" / U8,
        "curve_parameters" / U64,
    ),
)

CONFIG_LAYOUT = register_layout(
    "lifinity.config",
    Struct(
        "index" / U64,
        "concentration_ratio" / U64,
        "last_price" / U64,
        "adjust_ratio" / U64,
        "balance_ratio" / U64,
        "last_balanced_price" / U64,
        "config_denominator" / U64,
        "pyth_confidence_limit" / U64,
        "pyth_slot_limit" / U64,
        "volume_x" / U64,
        "volume_y" / U64,
        "volume_x_in_y" / U64,
        "coefficient_up" / U64,
        "coefficient_down" / U64,
        "oracle_status" / U64,
        "config_temp1" / U64,
        "config_temp2" / U64,
    ),
)


@dataclass
class ConfigInfo:
    config_id: Pubkey
    index: int
    concentration_ratio: int
    last_price: int
    adjust_ratio: int
    balance_ratio: int
    last_balanced_price: int
    config_denominator: int
    pyth_confidence_limit: int
    pyth_slot_limit: int
    volume_x: int
    volume_y: int
    volume_x_in_y: int
    coefficient_up: int
    coefficient_down: int
    oracle_status: int
    config_temp1: int
    config_temp2: int


@dataclass
class AmmInfo:
    amm_id: Pubkey
    index: int
    initializer_key: Pubkey
    initializer_deposit_token_account: Pubkey
    initializer_receive_token_account: Pubkey
    initializer_amount: int
    taker_amount: int
    initialized: int
    bump_seed: int
    freeze_trade: int
    freeze_deposit: int
    freeze_withdraw: int
    base_decimals: int
    token_program_id: Pubkey
    token_a_account: Pubkey
    token_b_account: Pubkey
    pool_mint: Pubkey
    token_a_mint: Pubkey
    token_b_mint: Pubkey
    pool_fee_account: Pubkey
    pyth_account: Pubkey
    pyth_pc_account: Pubkey
    config_account: Pubkey
    amm_temp1: Pubkey
    amm_temp2: Pubkey
    amm_temp3: Pubkey
    trade_fee_numerator: int
    trade_fee_denominator: int
    owner_trade_fee_numerator: int
    owner_trade_fee_denominator: int
    owner_withdraw_fee_numerator: int
    owner_withdraw_fee_denominator: int
    host_fee_numerator: int
    host_fee_denominator: int
    curve_type: int
    curve_parameters: int
    config: Optional[ConfigInfo] = None
    token_a_amount: Optional[int] = None
    token_b_amount: Optional[int] = None
    lp_supply: Optional[int] = None
    lp_decimals: Optional[int] = None


def parse_amm(data: bytes, amm_id: Pubkey) -> AmmInfo:
    return AmmInfo(amm_id=amm_id, **decode_fields(LIFINITY_AMM_LAYOUT, data))


def parse_config(data: bytes, config_id: Pubkey) -> ConfigInfo:
    return ConfigInfo(config_id=config_id, **decode_fields(CONFIG_LAYOUT, data))


def _satellite_keys(amm: AmmInfo) -> List[Pubkey]:
    return [amm.config_account, amm.token_a_account, amm.token_b_account, amm.pool_mint]


def _attach(amm: AmmInfo, config: Optional[bytes], token_a: Optional[bytes], token_b: Optional[bytes], pool_mint: Optional[bytes]) -> None:
    if config:
        amm.config = parse_config(config, amm.config_account)
    if token_a:
        amm.token_a_amount = parse_token_account(token_a, amm.token_a_account).amount
    if token_b:
        amm.token_b_amount = parse_token_account(token_b, amm.token_b_account).amount
    if pool_mint:
        mint = parse_mint(pool_mint, amm.pool_mint)
        amm.lp_supply = mint.supply
        amm.lp_decimals = mint.decimals


class AmmInfoWrapper:
    def __init__(self, amm_info: AmmInfo, program_id: Pubkey = LIFINITY_PROGRAM):
        self.amm_info = amm_info
        self.program_id = program_id

    def get_authority(self) -> Pubkey:
        return find_program_address([self.amm_info.amm_id], self.program_id)[0]

    def get_trade_fee_rate(self) -> float:
        return ratio(self.amm_info.trade_fee_numerator, self.amm_info.trade_fee_denominator)

    def get_swap_out_amount(self, from_side: str, amount_in: int) -> int:
        return swap_out_amount(from_side, amount_in, self.amm_info.token_a_amount, self.amm_info.token_b_amount)


class LifinityInfos(ProtocolInfos[AmmInfo, AmmInfoWrapper]):
    program_id = LIFINITY_PROGRAM

    def parse(self, data: bytes, address: Pubkey) -> AmmInfo:
        return parse_amm(data, address)

    def _make_wrapper(self, record: AmmInfo, context: Any) -> AmmInfoWrapper:
        return AmmInfoWrapper(record, self.program_id)

    async def get_all(self, page: Optional[PageConfig] = None) -> List[AmmInfo]:
        accounts = await self._list(LIFINITY_AMM_LAYOUT)
        amms = [self.parse(account.data, account.address) for account in paginate(accounts, page)]
        datas = await self.source.get_accounts([key for amm in amms for key in _satellite_keys(amm)])
        for index, amm in enumerate(amms):
            _attach(amm, *datas[index * 4 : index * 4 + 4])
        logging.info("Loaded %d Lifinity AMMs", len(amms))
        return amms

    async def get(self, address: Pubkey) -> AmmInfo:
        amm = self.parse(await self._fetch_required(address, LIFINITY_AMM_LAYOUT, "AMM"), address)
        _attach(amm, *await self.source.get_accounts(_satellite_keys(amm)))
        return amm
