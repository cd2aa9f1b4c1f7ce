"""Friktion volts: vaults joined with their rounds and extra data."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from construct import Array, Struct
from solders.pubkey import Pubkey

from .config import FRIKTION_VOLT_FEE_OWNER, FRIKTION_VOLT_PROGRAM_ID
from .errors import MissingContextError
from .layout import BOOL, I64, PUBKEY, U8, U16, U64, decode_fields, register_layout, span
from .pda import derive_address, find_program_address, get_associated_token_address
from .provider import PageConfig, ProtocolInfos, paginate

VOLT_PROGRAM = Pubkey.from_string(FRIKTION_VOLT_PROGRAM_ID)
VOLT_FEE_OWNER = Pubkey.from_string(FRIKTION_VOLT_FEE_OWNER) if FRIKTION_VOLT_FEE_OWNER else None

VOLT_VAULT_LAYOUT = register_layout(
    "friktion.vault",
    Struct(
        "discriminator" / U64,
        "admin_key" / PUBKEY,
        "seed" / PUBKEY,
        "transfer_window" / U64,
        "start_transfer_time" / U64,
        "end_transfer_time" / U64,
        "initialized" / BOOL,
        "curr_option_was_settled" / BOOL,
        "must_swap_premium_to_underlying" / BOOL,
        "next_option_was_set" / BOOL,
        "first_ever_option_was_set" / BOOL,
        "instant_transfers_enabled" / BOOL,
        "prepare_is_finished" / BOOL,
        "enter_is_finished" / BOOL,
        "round_has_started" / BOOL,
        "round_number" / U64,
        "total_underlying_pre_enter" / U64,
        "total_underlying_post_settle" / U64,
        "total_volt_tokens_post_settle" / U64,
        "vault_authority" / PUBKEY,
        "deposit_pool" / PUBKEY,
        "premium_pool" / PUBKEY,
        "option_pool" / PUBKEY,
        "writer_token_pool" / PUBKEY,
        "vault_mint" / PUBKEY,
        "underlying_asset_mint" / PUBKEY,
        "quote_asset_mint" / PUBKEY,
        "option_mint" / PUBKEY,
        "writer_token_mint" / PUBKEY,
        "option_market" / PUBKEY,
        "vault_type" / U64,
        "underlying_amount_per_contract" / U64,
        "quote_amount_per_contract" / U64,
        "expiration_unix_timestamp" / I64,
        "expiration_interval" / U64,
        "upper_bound_otm_strike_factor" / U64,
        "have_taken_withdrawal_fees" / BOOL,
        "serum_spot_market" / PUBKEY,
        "open_orders_bump" / U8,
        "open_orders_init_bump" / U8,
        "ul_open_orders_bump" / U8,
        "ul_open_orders" / PUBKEY,
        "ul_open_orders_initialized" / BOOL,
        "bump_authority" / U8,
        "serum_order_size_options" / U64,
        "individual_capacity" / U64,
        "serum_order_type" / U64,
        "serum_limit" / U16,
        "serum_self_trade_behavior" / U16,
        "serum_client_order_id" / U64,
        "whitelist_token_mint" / PUBKEY,
        "permissioned_market_premium_mint" / PUBKEY,
        "permissioned_market_premium_pool" / PUBKEY,
        "capacity" / U64,
    ),
)

ROUND_LAYOUT = register_layout(
    "friktion.round",
    Struct(
        "discriminator" / U64,
        "number" / U64,
        "underlying_from_pending_deposits" / U64,
        "volt_tokens_from_pending_withdrawals" / U64,
        "underlying_pre_enter" / U64,
        "underlying_post_settle" / U64,
        "premium_farmed" / U64,
        "padding" / Array(7, U64),
    ),
)

EXTRA_VOLT_DATA_LAYOUT = register_layout(
    "friktion.extra_data",
    Struct(
        "discriminator" / U64,
        "is_whitelisted" / BOOL,
        "whitelist" / PUBKEY,
        "is_for_dao" / BOOL,
        "dao_program_id" / PUBKEY,
        "deposit_mint" / PUBKEY,
        "target_leverage" / U64,
        "target_leverage_lenience" / U64,
        "exit_early_ratio" / U64,
        "entropy_program_id" / PUBKEY,
        "entropy_group" / PUBKEY,
        "entropy_account" / PUBKEY,
        "power_perp_market" / PUBKEY,
        "have_resolved_deposits" / BOOL,
        "done_rebalancing" / BOOL,
        "dao_authority" / PUBKEY,
        "serum_program_id" / PUBKEY,
        "entropy_cache" / PUBKEY,
        "hedging_spot_perp_market" / PUBKEY,
        "extra_volt_type" / U64,
        "padding" / Array(8, U64),
    ),
)

# Pending deposits and pending withdrawals share one layout; ``amount`` is
# underlying deposited for the former and volt tokens redeemed for the latter.
USER_PENDING_LAYOUT = register_layout(
    "friktion.user_pending",
    Struct(
        "discriminator" / U64,
        "initialized" / BOOL,
        "round_number" / U64,
        "amount" / U64,
    ),
)


@dataclass
class RoundInfo:
    round_id: Pubkey
    number: int
    underlying_from_pending_deposits: int
    volt_tokens_from_pending_withdrawals: int
    underlying_pre_enter: int
    underlying_post_settle: int
    premium_farmed: int


@dataclass
class ExtraVaultInfo:
    extra_data_id: Pubkey
    is_whitelisted: bool
    whitelist: Pubkey
    is_for_dao: bool
    dao_program_id: Pubkey
    deposit_mint: Pubkey
    target_leverage: int
    target_leverage_lenience: int
    exit_early_ratio: int
    entropy_program_id: Pubkey
    entropy_group: Pubkey
    entropy_account: Pubkey
    power_perp_market: Pubkey
    have_resolved_deposits: bool
    done_rebalancing: bool
    dao_authority: Pubkey
    serum_program_id: Pubkey
    entropy_cache: Pubkey
    hedging_spot_perp_market: Pubkey
    extra_volt_type: int


@dataclass
class VaultInfo:
    vault_id: Pubkey
    share_mint: Pubkey
    admin_key: Pubkey
    seed: Pubkey
    transfer_window: int
    start_transfer_time: int
    end_transfer_time: int
    initialized: bool
    curr_option_was_settled: bool
    must_swap_premium_to_underlying: bool
    next_option_was_set: bool
    first_ever_option_was_set: bool
    instant_transfers_enabled: bool
    prepare_is_finished: bool
    enter_is_finished: bool
    round_has_started: bool
    round_number: int
    total_underlying_pre_enter: int
    total_underlying_post_settle: int
    total_volt_tokens_post_settle: int
    vault_authority: Pubkey
    deposit_pool: Pubkey
    premium_pool: Pubkey
    option_pool: Pubkey
    writer_token_pool: Pubkey
    vault_mint: Pubkey
    underlying_asset_mint: Pubkey
    quote_asset_mint: Pubkey
    option_mint: Pubkey
    writer_token_mint: Pubkey
    option_market: Pubkey
    vault_type: int
    underlying_amount_per_contract: int
    quote_amount_per_contract: int
    expiration_unix_timestamp: int
    expiration_interval: int
    upper_bound_otm_strike_factor: int
    have_taken_withdrawal_fees: bool
    serum_spot_market: Pubkey
    open_orders_bump: int
    open_orders_init_bump: int
    ul_open_orders_bump: int
    ul_open_orders: Pubkey
    ul_open_orders_initialized: bool
    bump_authority: int
    serum_order_size_options: int
    individual_capacity: int
    serum_order_type: int
    serum_limit: int
    serum_self_trade_behavior: int
    serum_client_order_id: int
    whitelist_token_mint: Pubkey
    permissioned_market_premium_mint: Pubkey
    permissioned_market_premium_pool: Pubkey
    capacity: int
    round_infos: List[RoundInfo] = field(default_factory=list)
    extra_data: Optional[ExtraVaultInfo] = None


@dataclass
class DepositorInfo:
    depositor_id: Pubkey
    user_key: Pubkey
    initialized: bool
    round_number: int
    num_underlying_deposited: int


@dataclass
class WithdrawerInfo:
    withdrawer_id: Pubkey
    user_key: Pubkey
    initialized: bool
    round_number: int
    num_volt_redeemed: int


def _strip(values: Dict[str, Any], *names: str) -> Dict[str, Any]:
    for name in ("discriminator", "padding") + names:
        values.pop(name, None)
    return values


def parse_vault(data: bytes, vault_id: Pubkey) -> VaultInfo:
    values = _strip(decode_fields(VOLT_VAULT_LAYOUT, data))
    return VaultInfo(vault_id=vault_id, share_mint=values["vault_mint"], **values)


def parse_round(data: bytes, round_id: Pubkey) -> RoundInfo:
    return RoundInfo(round_id=round_id, **_strip(decode_fields(ROUND_LAYOUT, data)))


def parse_extra_data(data: bytes, extra_data_id: Pubkey) -> ExtraVaultInfo:
    return ExtraVaultInfo(extra_data_id=extra_data_id, **_strip(decode_fields(EXTRA_VOLT_DATA_LAYOUT, data)))


def _parse_pending(data: bytes, user_key: Optional[Pubkey]) -> Dict[str, Any]:
    if user_key is None:
        raise MissingContextError("User key not provided")
    return _strip(decode_fields(USER_PENDING_LAYOUT, data))


def parse_depositor(data: bytes, depositor_id: Pubkey, user_key: Optional[Pubkey] = None) -> DepositorInfo:
    values = _parse_pending(data, user_key)
    return DepositorInfo(
        depositor_id=depositor_id,
        user_key=user_key,
        initialized=values["initialized"],
        round_number=values["round_number"],
        num_underlying_deposited=values["amount"],
    )


def parse_withdrawer(data: bytes, withdrawer_id: Pubkey, user_key: Optional[Pubkey] = None) -> WithdrawerInfo:
    values = _parse_pending(data, user_key)
    return WithdrawerInfo(
        withdrawer_id=withdrawer_id,
        user_key=user_key,
        initialized=values["initialized"],
        round_number=values["round_number"],
        num_volt_redeemed=values["amount"],
    )


class VaultInfoWrapper:
    """Address derivations and views over one decoded volt."""

    def __init__(self, vault_info: VaultInfo, program_id: Pubkey = VOLT_PROGRAM):
        self.vault_info = vault_info
        self.program_id = program_id

    def _derive(self, purpose: str, round_number: Optional[int] = None) -> Pubkey:
        return derive_address(self.program_id, self.vault_info.vault_id, purpose, round_number)

    def get_extra_volt_data_address(self) -> Pubkey:
        return self._derive("extraVoltData")

    def get_entropy_lending_account_address(self) -> Pubkey:
        return self._derive("entropyLendingAccount")

    def get_round_info_address(self, round_number: int) -> Pubkey:
        return self._derive("roundInfo", round_number)

    def get_round_volt_tokens_address(self, round_number: int) -> Pubkey:
        return self._derive("roundVoltTokens", round_number)

    def get_round_underlying_tokens_address(self, round_number: int) -> Pubkey:
        return self._derive("roundUnderlyingTokens", round_number)

    def get_epoch_info_address(self, round_number: int) -> Pubkey:
        return self._derive("epochInfo", round_number)

    def get_fee_account(self, fee_owner: Optional[Pubkey] = None) -> Pubkey:
        """Fee token account of the share mint, owned by ``VOLT_FEE_OWNER`` unless given."""
        if fee_owner is None:
            fee_owner = VOLT_FEE_OWNER
        if fee_owner is None:
            raise MissingContextError("Fee owner not provided and FRIKTION_VOLT_FEE_OWNER is not set")
        return get_associated_token_address(fee_owner, self.vault_info.vault_mint)

    def get_latest_round(self) -> Optional[RoundInfo]:
        rounds = self.vault_info.round_infos
        return rounds[-1] if rounds else None


class FriktionInfos(ProtocolInfos[VaultInfo, VaultInfoWrapper]):
    program_id = VOLT_PROGRAM

    def parse(self, data: bytes, address: Pubkey) -> VaultInfo:
        return parse_vault(data, address)

    def _make_wrapper(self, record: VaultInfo, context: Any) -> VaultInfoWrapper:
        return VaultInfoWrapper(record, self.program_id)

    async def get_all(self, page: Optional[PageConfig] = None) -> List[VaultInfo]:
        rounds, extra_infos, accounts = await asyncio.gather(
            self.get_all_round_set(),
            self.get_all_extra_data_set(),
            self._list(VOLT_VAULT_LAYOUT),
        )
        vaults = [self.parse(account.data, account.address) for account in paginate(accounts, page)]
        for vault in vaults:
            self._attach(vault, rounds, extra_infos)
        logging.info("Loaded %d volts with %d rounds available", len(vaults), len(rounds))
        return vaults

    async def get(self, address: Pubkey) -> VaultInfo:
        data, rounds, extra_infos = await asyncio.gather(
            self._fetch_required(address, VOLT_VAULT_LAYOUT, "Vault"),
            self.get_all_round_set(),
            self.get_all_extra_data_set(),
        )
        vault = self.parse(data, address)
        self._attach(vault, rounds, extra_infos)
        return vault

    def _attach(
        self,
        vault: VaultInfo,
        rounds: Dict[Pubkey, RoundInfo],
        extra_infos: Dict[Pubkey, ExtraVaultInfo],
    ) -> None:
        wrapper = VaultInfoWrapper(vault, self.program_id)
        for round_number in range(1, vault.round_number + 1):
            round_info = rounds.get(wrapper.get_round_info_address(round_number))
            if round_info is not None:
                vault.round_infos.append(round_info)
        vault.extra_data = extra_infos.get(wrapper.get_extra_volt_data_address())
        logging.debug(
            "Volt %s: %d/%d rounds found, extra data %s",
            vault.vault_id,
            len(vault.round_infos),
            vault.round_number,
            "present" if vault.extra_data else "absent",
        )

    async def get_all_round_set(self) -> Dict[Pubkey, RoundInfo]:
        accounts = await self._list(ROUND_LAYOUT)
        return {account.address: parse_round(account.data, account.address) for account in accounts}

    async def get_all_extra_data_set(self) -> Dict[Pubkey, ExtraVaultInfo]:
        accounts = await self._list(EXTRA_VOLT_DATA_LAYOUT)
        return {account.address: parse_extra_data(account.data, account.address) for account in accounts}

    def get_depositor_id(self, vault_id: Pubkey, user_key: Pubkey) -> Pubkey:
        return find_program_address([vault_id, user_key, "pendingDeposit"], self.program_id)[0]

    def get_withdrawer_id(self, vault_id: Pubkey, user_key: Pubkey) -> Pubkey:
        return find_program_address([vault_id, user_key, "pendingWithdrawal"], self.program_id)[0]

    async def get_depositor(self, depositor_id: Pubkey, user_key: Pubkey) -> DepositorInfo:
        data = await self._fetch_required(depositor_id, USER_PENDING_LAYOUT, "Depositor")
        return parse_depositor(data, depositor_id, user_key)

    async def get_withdrawer(self, withdrawer_id: Pubkey, user_key: Pubkey) -> WithdrawerInfo:
        data = await self._fetch_required(withdrawer_id, USER_PENDING_LAYOUT, "Withdrawer")
        return parse_withdrawer(data, withdrawer_id, user_key)

    async def get_all_depositors(self, user_key: Pubkey) -> List[DepositorInfo]:
        vaults = await self.get_all()
        keys = [self.get_depositor_id(vault.vault_id, user_key) for vault in vaults]
        datas = await self.source.get_accounts(keys)
        return [
            parse_depositor(data, key, user_key)
            for key, data in zip(keys, datas)
            if data and len(data) >= span(USER_PENDING_LAYOUT)
        ]

    async def get_all_withdrawers(self, user_key: Pubkey) -> List[WithdrawerInfo]:
        vaults = await self.get_all()
        keys = [self.get_withdrawer_id(vault.vault_id, user_key) for vault in vaults]
        datas = await self.source.get_accounts(keys)
        return [
            parse_withdrawer(data, key, user_key)
            for key, data in zip(keys, datas)
            if data and len(data) >= span(USER_PENDING_LAYOUT)
        ]
