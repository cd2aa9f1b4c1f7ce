"""Lido for Solana (Solido) state, in both the v1 and v2 account formats.

v1 keeps validators and maintainers inline as length-prefixed vectors. v2
moves them to separate list accounts referenced by address, which are fetched
in one batch and decoded with the list layouts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from construct import Array, Struct
from solders.pubkey import Pubkey

from .config import LIDO_PROGRAM_ID, LIDO_STATE_ADDRESS
from .layout import BOOL, PUBKEY, U8, U32, U64, decode_fields, register_layout, vec
from .metrics import ratio
from .provider import PageConfig, ProtocolInfos
from .rpc import AccountSource

LIDO_PROGRAM = Pubkey.from_string(LIDO_PROGRAM_ID)
LIDO_STATE = Pubkey.from_string(LIDO_STATE_ADDRESS)

ACCOUNT_TYPE_LIDO = 1

SEED_RANGE = Struct("begin" / U64, "end" / U64)
EXCHANGE_RATE = Struct("computed_in_epoch" / U64, "st_sol_supply" / U64, "sol_balance" / U64)
FEE_RECIPIENTS = Struct("treasury_account" / PUBKEY, "developer_account" / PUBKEY)

METRICS_LAYOUT = Struct(
    "fee_treasury_sol_total" / U64,
    "fee_validation_sol_total" / U64,
    "fee_developer_sol_total" / U64,
    "st_sol_appreciation_total" / U64,
    "fee_treasury_st_sol_total" / U64,
    "fee_validation_st_sol_total" / U64,
    "fee_developer_st_sol_total" / U64,
    "deposit_amount" / Struct("counts" / Array(12, U64), "total" / U64),
    "withdraw_amount" / Struct("total_st_sol_amount" / U64, "total_sol_amount" / U64, "count" / U64),
)

VALIDATOR_LAYOUT_V1 = Struct(
    "fee_credit" / U64,
    "fee_address" / PUBKEY,
    "stake_seeds" / SEED_RANGE,
    "unstake_seeds" / SEED_RANGE,
    "stake_accounts_balance" / U64,
    "unstake_accounts_balance" / U64,
    "active" / BOOL,
)

VALIDATOR_LAYOUT_V2 = Struct(
    "vote_account_address" / PUBKEY,
    "stake_seeds" / SEED_RANGE,
    "unstake_seeds" / SEED_RANGE,
    "stake_accounts_balance" / U64,
    "unstake_accounts_balance" / U64,
    "effective_accounts_balance" / U64,
    "active" / BOOL,
)

VALIDATORS_ITEM_LAYOUT_V1 = Struct("pubkey" / PUBKEY, "entry" / VALIDATOR_LAYOUT_V1)
MAINTAINERS_ITEM_LAYOUT = Struct("pubkey" / PUBKEY)

LIDO_LAYOUT_V1 = register_layout(
    "lido.state_v1",
    Struct(
        "lido_version" / U8,
        "manager" / PUBKEY,
        "st_sol_mint" / PUBKEY,
        "exchange_rate" / EXCHANGE_RATE,
        "sol_reserve_authority_bump_seed" / U8,
        "stake_authority_bump_seed" / U8,
        "mint_authority_bump_seed" / U8,
        "rewards_withdraw_authority_bump_seed" / U8,
        "reward_distribution"
        / Struct("treasury_fee" / U32, "validation_fee" / U32, "developer_fee" / U32, "st_sol_appreciation" / U32),
        "fee_recipients" / FEE_RECIPIENTS,
        "metrics" / METRICS_LAYOUT,
        "validators" / Struct("entries" / vec(VALIDATORS_ITEM_LAYOUT_V1), "maximum_entries" / U32),
        "maintainers" / Struct("entries" / vec(MAINTAINERS_ITEM_LAYOUT), "maximum_entries" / U32),
    ),
)

LIDO_LAYOUT_V2 = register_layout(
    "lido.state_v2",
    Struct(
        "account_type" / U8,
        "lido_version" / U8,
        "manager" / PUBKEY,
        "st_sol_mint" / PUBKEY,
        "exchange_rate" / EXCHANGE_RATE,
        "sol_reserve_authority_bump_seed" / U8,
        "stake_authority_bump_seed" / U8,
        "mint_authority_bump_seed" / U8,
        "reward_distribution" / Struct("treasury_fee" / U32, "developer_fee" / U32, "st_sol_appreciation" / U32),
        "fee_recipients" / FEE_RECIPIENTS,
        "metrics" / METRICS_LAYOUT,
        "validator_list" / PUBKEY,
        "maintainer_list" / PUBKEY,
        "max_commission_percentage" / U8,
    ),
)

VALIDATOR_LIST_ACCOUNT_LAYOUT = register_layout(
    "lido.validator_list",
    Struct("account_type" / U8, "lido_version" / U8, "max_entries" / U32, "entries" / vec(VALIDATOR_LAYOUT_V2)),
)

MAINTAINER_LIST_ACCOUNT_LAYOUT = register_layout(
    "lido.maintainer_list",
    Struct("account_type" / U8, "lido_version" / U8, "max_entries" / U32, "entries" / vec(MAINTAINERS_ITEM_LAYOUT)),
)

# Tells a v1 state account (leading lido_version byte 0) from a v2 one
# (leading account_type byte, Lido = 1).
LIDO_VERSION_CHECK_LAYOUT = register_layout(
    "lido.version_check",
    Struct("maybe_account_type" / U8, "maybe_lido_version" / U8),
)


@dataclass
class ExchangeRate:
    computed_in_epoch: int
    st_sol_supply: int
    sol_balance: int


@dataclass
class ValidatorInfo:
    vote_account_address: Pubkey
    stake_seeds: Dict[str, int]
    unstake_seeds: Dict[str, int]
    stake_accounts_balance: int
    unstake_accounts_balance: int
    active: bool
    effective_accounts_balance: Optional[int] = None
    fee_credit: Optional[int] = None
    fee_address: Optional[Pubkey] = None


@dataclass
class LidoInfo:
    lido_id: Pubkey
    version: int
    lido_version: int
    manager: Pubkey
    st_sol_mint: Pubkey
    exchange_rate: ExchangeRate
    reward_distribution: Dict[str, int]
    fee_recipients: Dict[str, Pubkey]
    metrics: Dict[str, Any]
    account_type: Optional[int] = None
    validator_list: Optional[Pubkey] = None
    maintainer_list: Optional[Pubkey] = None
    max_commission_percentage: Optional[int] = None
    max_validators: Optional[int] = None
    max_maintainers: Optional[int] = None
    validators: List[ValidatorInfo] = field(default_factory=list)
    maintainers: List[Pubkey] = field(default_factory=list)


def detect_version(data: bytes) -> int:
    check = decode_fields(LIDO_VERSION_CHECK_LAYOUT, data)
    return 2 if check["maybe_account_type"] == ACCOUNT_TYPE_LIDO else 1


def _common(values: Dict[str, Any], lido_id: Pubkey, version: int) -> Dict[str, Any]:
    return dict(
        lido_id=lido_id,
        version=version,
        lido_version=values["lido_version"],
        manager=values["manager"],
        st_sol_mint=values["st_sol_mint"],
        exchange_rate=ExchangeRate(**values["exchange_rate"]),
        reward_distribution=values["reward_distribution"],
        fee_recipients=values["fee_recipients"],
        metrics=values["metrics"],
    )


def parse_lido(data: bytes, lido_id: Pubkey) -> LidoInfo:
    if detect_version(data) == 2:
        values = decode_fields(LIDO_LAYOUT_V2, data)
        return LidoInfo(
            account_type=values["account_type"],
            validator_list=values["validator_list"],
            maintainer_list=values["maintainer_list"],
            max_commission_percentage=values["max_commission_percentage"],
            **_common(values, lido_id, 2),
        )

    values = decode_fields(LIDO_LAYOUT_V1, data)
    validators = [
        ValidatorInfo(
            vote_account_address=item["pubkey"],
            stake_seeds=item["entry"]["stake_seeds"],
            unstake_seeds=item["entry"]["unstake_seeds"],
            stake_accounts_balance=item["entry"]["stake_accounts_balance"],
            unstake_accounts_balance=item["entry"]["unstake_accounts_balance"],
            active=item["entry"]["active"],
            fee_credit=item["entry"]["fee_credit"],
            fee_address=item["entry"]["fee_address"],
        )
        for item in values["validators"]["entries"]
    ]
    return LidoInfo(
        max_validators=values["validators"]["maximum_entries"],
        max_maintainers=values["maintainers"]["maximum_entries"],
        validators=validators,
        maintainers=[item["pubkey"] for item in values["maintainers"]["entries"]],
        **_common(values, lido_id, 1),
    )


def parse_validator_list(data: bytes) -> Tuple[int, List[ValidatorInfo]]:
    """Returns (max_entries, validators)."""
    values = decode_fields(VALIDATOR_LIST_ACCOUNT_LAYOUT, data)
    return values["max_entries"], [ValidatorInfo(**entry) for entry in values["entries"]]


def parse_maintainer_list(data: bytes) -> Tuple[int, List[Pubkey]]:
    values = decode_fields(MAINTAINER_LIST_ACCOUNT_LAYOUT, data)
    return values["max_entries"], [entry["pubkey"] for entry in values["entries"]]


class LidoInfoWrapper:
    def __init__(self, lido_info: LidoInfo):
        self.lido_info = lido_info

    def get_exchange_rate(self) -> float:
        """SOL redeemable per stSOL."""
        rate = self.lido_info.exchange_rate
        return ratio(rate.sol_balance, rate.st_sol_supply)

    def get_active_validators(self) -> List[ValidatorInfo]:
        return [validator for validator in self.lido_info.validators if validator.active]

    def get_total_stake(self) -> int:
        return sum(validator.stake_accounts_balance for validator in self.lido_info.validators)


class LidoInfos(ProtocolInfos[LidoInfo, LidoInfoWrapper]):
    """Solido has a single state account; ``get_all`` returns just that one."""

    program_id = LIDO_PROGRAM

    def __init__(self, source: AccountSource, program_id: Optional[Pubkey] = None, state_address: Pubkey = LIDO_STATE):
        super().__init__(source, program_id)
        self.state_address = state_address

    def parse(self, data: bytes, address: Pubkey) -> LidoInfo:
        return parse_lido(data, address)

    def _make_wrapper(self, record: LidoInfo, context: Any) -> LidoInfoWrapper:
        return LidoInfoWrapper(record)

    async def get_all(self, page: Optional[PageConfig] = None) -> List[LidoInfo]:
        return [await self.get(self.state_address)]

    async def get(self, address: Pubkey) -> LidoInfo:
        data = await self._fetch_required(address, LIDO_VERSION_CHECK_LAYOUT, "Lido")
        lido = self.parse(data, address)
        if lido.version == 2:
            validator_data, maintainer_data = await self.source.get_accounts([lido.validator_list, lido.maintainer_list])
            if validator_data:
                lido.max_validators, lido.validators = parse_validator_list(validator_data)
            if maintainer_data:
                lido.max_maintainers, lido.maintainers = parse_maintainer_list(maintainer_data)
        logging.info("Loaded Lido v%d state %s with %d validators", lido.version, address, len(lido.validators))
        return lido
