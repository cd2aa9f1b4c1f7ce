"""Orca token-swap pools, aquafarms and farmers."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from construct import Bytes, Struct
from solders.pubkey import Pubkey

from .api import PoolStatsFetcher, TokenListFetcher, TokenPrice
from .config import ORCA_FARM_PROGRAM_ID, ORCA_POOL_PROGRAM_ID
from .layout import PUBKEY, U8, U64, U256, decode, register_layout
from .metrics import api_pool_apr, farm_apr, swap_out_amount
from .pda import TOKEN_PROGRAM, find_program_address
from .provider import PageConfig, ProtocolInfos, paginate
from .rpc import AccountSource, MemcmpFilter
from .token import MintInfo, TokenAccountInfo, parse_mint, parse_token_account

POOL_PROGRAM = Pubkey.from_string(ORCA_POOL_PROGRAM_ID)
FARM_PROGRAM = Pubkey.from_string(ORCA_FARM_PROGRAM_ID)

POOL_LAYOUT = register_layout(
    "orca.pool",
    Struct(
        "version" / U8,
        "is_initialized" / U8,
        "nonce" / U8,
        "token_program_id" / PUBKEY,
        "token_account_a" / PUBKEY,
        "token_account_b" / PUBKEY,
        "pool_mint" / PUBKEY,
        "mint_a" / PUBKEY,
        "mint_b" / PUBKEY,
        "fee_account" / PUBKEY,
        "trade_fee_numerator" / U64,
        "trade_fee_denominator" / U64,
        "owner_trade_fee_numerator" / U64,
        "owner_trade_fee_denominator" / U64,
        "owner_withdraw_fee_numerator" / U64,
        "owner_withdraw_fee_denominator" / U64,
        "host_fee_numerator" / U64,
        "host_fee_denominator" / U64,
        "curve_type" / U8,
        "curve_parameters" / Bytes(32),
    ),
)

FARM_LAYOUT = register_layout(
    "orca.farm",
    Struct(
        "is_initialized" / U8,
        "account_type" / U8,
        "nonce" / U8,
        "token_program_id" / PUBKEY,
        "emissions_authority" / PUBKEY,
        "remove_rewards_authority" / PUBKEY,
        "base_token_mint" / PUBKEY,
        "base_token_vault" / PUBKEY,
        "reward_token_vault" / PUBKEY,
        "farm_token_mint" / PUBKEY,
        "emissions_per_second_numerator" / U64,
        "emissions_per_second_denominator" / U64,
        "last_updated_timestamp" / U64,
        "cumulative_emissions_per_farm_token" / U256,
    ),
)

FARMER_LAYOUT = register_layout(
    "orca.farmer",
    Struct(
        "is_initialized" / U8,
        "account_type" / U8,
        "global_farm" / PUBKEY,
        "owner" / PUBKEY,
        "base_tokens_converted" / U64,
        "cumulative_emissions_checkpoint" / U256,
    ),
)

FARMER_OWNER_OFFSET = 34


@dataclass
class PoolInfo:
    pool_id: Pubkey
    version: int
    is_initialized: int
    nonce: int
    token_program_id: Pubkey
    token_account_a: Pubkey
    token_account_b: Pubkey
    fee_account: Pubkey
    lp_mint: Pubkey
    token_a_mint: Pubkey
    token_b_mint: Pubkey
    trade_fee_numerator: int
    trade_fee_denominator: int
    curve_type: int
    token_supply_a: Optional[int] = None
    token_supply_b: Optional[int] = None
    lp_supply: Optional[int] = None
    lp_decimals: Optional[int] = None


@dataclass
class FarmInfo:
    farm_id: Pubkey
    is_initialized: int
    account_type: int
    nonce: int
    token_program_id: Pubkey
    emissions_authority: Pubkey
    remove_rewards_authority: Pubkey
    base_token_mint: Pubkey
    base_token_vault: Pubkey
    reward_token_vault: Pubkey
    farm_token_mint: Pubkey
    emissions_per_second_numerator: int
    emissions_per_second_denominator: int
    last_updated_timestamp: int
    cumulative_emissions_per_farm_token: int
    base_token_mint_account_data: Optional[MintInfo] = None
    base_token_vault_account_data: Optional[TokenAccountInfo] = None
    reward_token_mint_account_data: Optional[MintInfo] = None
    reward_token_vault_account_data: Optional[TokenAccountInfo] = None
    double_dip_emissions_per_second_numerator: Optional[int] = None
    double_dip_emissions_per_second_denominator: Optional[int] = None
    double_dip_base_token_mint_account_data: Optional[MintInfo] = None
    double_dip_base_token_vault_account_data: Optional[TokenAccountInfo] = None
    double_dip_reward_token_mint_account_data: Optional[MintInfo] = None
    pool_id: Optional[Pubkey] = None
    token_supply_a: Optional[int] = None
    token_supply_b: Optional[int] = None
    lp_supply: Optional[int] = None
    lp_decimals: Optional[int] = None
    token_a_price: Optional[float] = None
    token_a_decimals: Optional[int] = None
    token_b_price: Optional[float] = None
    token_b_decimals: Optional[int] = None
    reward_token_price: Optional[float] = None


@dataclass
class FarmerInfo:
    farmer_id: Pubkey
    farm_id: Pubkey
    user_key: Pubkey
    amount: int
    is_initialized: int
    account_type: int
    cumulative_emissions_checkpoint: int


def parse_pool(data: bytes, pool_id: Pubkey) -> PoolInfo:
    decoded = decode(POOL_LAYOUT, data)
    return PoolInfo(
        pool_id=pool_id,
        version=decoded.version,
        is_initialized=decoded.is_initialized,
        nonce=decoded.nonce,
        token_program_id=decoded.token_program_id,
        token_account_a=decoded.token_account_a,
        token_account_b=decoded.token_account_b,
        fee_account=decoded.fee_account,
        lp_mint=decoded.pool_mint,
        token_a_mint=decoded.mint_a,
        token_b_mint=decoded.mint_b,
        trade_fee_numerator=decoded.trade_fee_numerator,
        trade_fee_denominator=decoded.trade_fee_denominator,
        curve_type=decoded.curve_type,
    )


def parse_farm(data: bytes, farm_id: Pubkey) -> FarmInfo:
    decoded = decode(FARM_LAYOUT, data)
    return FarmInfo(
        farm_id=farm_id,
        is_initialized=decoded.is_initialized,
        account_type=decoded.account_type,
        nonce=decoded.nonce,
        token_program_id=decoded.token_program_id,
        emissions_authority=decoded.emissions_authority,
        remove_rewards_authority=decoded.remove_rewards_authority,
        base_token_mint=decoded.base_token_mint,
        base_token_vault=decoded.base_token_vault,
        reward_token_vault=decoded.reward_token_vault,
        farm_token_mint=decoded.farm_token_mint,
        emissions_per_second_numerator=decoded.emissions_per_second_numerator,
        emissions_per_second_denominator=decoded.emissions_per_second_denominator,
        last_updated_timestamp=decoded.last_updated_timestamp,
        cumulative_emissions_per_farm_token=decoded.cumulative_emissions_per_farm_token,
    )


def parse_farmer(data: bytes, farmer_id: Pubkey) -> FarmerInfo:
    decoded = decode(FARMER_LAYOUT, data)
    return FarmerInfo(
        farmer_id=farmer_id,
        farm_id=decoded.global_farm,
        user_key=decoded.owner,
        amount=decoded.base_tokens_converted,
        is_initialized=decoded.is_initialized,
        account_type=decoded.account_type,
        cumulative_emissions_checkpoint=decoded.cumulative_emissions_checkpoint,
    )


def _merge_reserves(pool: PoolInfo, token_a: Optional[bytes], token_b: Optional[bytes], lp_mint: Optional[bytes]) -> None:
    if token_a:
        pool.token_supply_a = parse_token_account(token_a, pool.token_account_a).amount
    if token_b:
        pool.token_supply_b = parse_token_account(token_b, pool.token_account_b).amount
    if lp_mint:
        mint = parse_mint(lp_mint, pool.lp_mint)
        pool.lp_supply = mint.supply
        pool.lp_decimals = mint.decimals


class PoolInfoWrapper:
    def __init__(self, pool_info: PoolInfo, api_pools: Optional[Mapping[str, Any]] = None, program_id: Pubkey = POOL_PROGRAM):
        self.pool_info = pool_info
        self.api_pools = api_pools or {}
        self.program_id = program_id

    def get_swap_out_amount(self, from_side: str, amount_in: int) -> int:
        return swap_out_amount(from_side, amount_in, self.pool_info.token_supply_a, self.pool_info.token_supply_b)

    def get_authority(self) -> Pubkey:
        return find_program_address([self.pool_info.pool_id], self.program_id)[0]

    def get_apr(self) -> float:
        return api_pool_apr(self.api_pools, str(self.pool_info.pool_id))


class OrcaPoolInfos(ProtocolInfos[PoolInfo, PoolInfoWrapper]):
    program_id = POOL_PROGRAM

    def __init__(
        self,
        source: AccountSource,
        program_id: Optional[Pubkey] = None,
        fetch_pool_stats: Optional[PoolStatsFetcher] = None,
        drop_empty_pools: bool = True,
    ):
        super().__init__(source, program_id)
        self.fetch_pool_stats = fetch_pool_stats
        self.drop_empty_pools = drop_empty_pools

    def parse(self, data: bytes, address: Pubkey) -> PoolInfo:
        return parse_pool(data, address)

    def _make_wrapper(self, record: PoolInfo, context: Any) -> PoolInfoWrapper:
        return PoolInfoWrapper(record, context, self.program_id)

    async def _wrapper_context(self) -> Dict[str, Any]:
        if self.fetch_pool_stats is None:
            return {}
        return await self.fetch_pool_stats()

    async def get_all(self, page: Optional[PageConfig] = None) -> List[PoolInfo]:
        accounts = await self._list(POOL_LAYOUT)
        pools = [self.parse(account.data, account.address) for account in paginate(accounts, page)]
        keys = [key for pool in pools for key in (pool.token_account_a, pool.token_account_b, pool.lp_mint)]
        datas = await self.source.get_accounts(keys)
        for index, pool in enumerate(pools):
            _merge_reserves(pool, *datas[index * 3 : index * 3 + 3])
        if not self.drop_empty_pools:
            return pools
        kept = [pool for pool in pools if pool.lp_supply]
        logging.info("Loaded %d Orca pools (%d dropped without liquidity)", len(kept), len(pools) - len(kept))
        return kept

    async def get(self, address: Pubkey) -> PoolInfo:
        pool = self.parse(await self._fetch_required(address, POOL_LAYOUT, "Pool"), address)
        datas = await self.source.get_accounts([pool.token_account_a, pool.token_account_b, pool.lp_mint])
        _merge_reserves(pool, *datas)
        return pool


class FarmInfoWrapper:
    def __init__(self, farm_info: FarmInfo, program_id: Pubkey = FARM_PROGRAM):
        self.farm_info = farm_info
        self.program_id = program_id

    def get_authority(self) -> Pubkey:
        return find_program_address([self.farm_info.farm_id], self.program_id)[0]

    def get_apr(self) -> float:
        farm = self.farm_info
        # A double-dip farm's emissions replace the primary ones entirely.
        if farm.double_dip_reward_token_mint_account_data is None:
            numerator = farm.emissions_per_second_numerator
            denominator = farm.emissions_per_second_denominator
            reward_mint = farm.reward_token_mint_account_data
            base_vault = farm.base_token_vault_account_data
            base_mint = farm.base_token_mint_account_data
        else:
            numerator = farm.double_dip_emissions_per_second_numerator
            denominator = farm.double_dip_emissions_per_second_denominator
            reward_mint = farm.double_dip_reward_token_mint_account_data
            base_vault = farm.double_dip_base_token_vault_account_data
            base_mint = farm.double_dip_base_token_mint_account_data

        if reward_mint is None or base_vault is None or base_mint is None:
            return 0
        return farm_apr(
            emissions_per_second_numerator=numerator,
            emissions_per_second_denominator=denominator,
            reward_decimals=reward_mint.decimals,
            reward_price=farm.reward_token_price,
            token_a_supply=farm.token_supply_a,
            token_a_decimals=farm.token_a_decimals,
            token_a_price=farm.token_a_price,
            token_b_supply=farm.token_supply_b,
            token_b_decimals=farm.token_b_decimals,
            token_b_price=farm.token_b_price,
            staked_amount=base_vault.amount,
            staked_decimals=base_mint.decimals,
            lp_supply=farm.lp_supply,
            lp_decimals=farm.lp_decimals,
        )


class OrcaFarmInfos(ProtocolInfos[FarmInfo, FarmInfoWrapper]):
    program_id = FARM_PROGRAM

    def __init__(
        self,
        source: AccountSource,
        program_id: Optional[Pubkey] = None,
        pools: Optional[OrcaPoolInfos] = None,
        fetch_token_list: Optional[TokenListFetcher] = None,
    ):
        super().__init__(source, program_id)
        self.pools = pools
        self.fetch_token_list = fetch_token_list

    def parse(self, data: bytes, address: Pubkey) -> FarmInfo:
        return parse_farm(data, address)

    def _make_wrapper(self, record: FarmInfo, context: Any) -> FarmInfoWrapper:
        return FarmInfoWrapper(record, self.program_id)

    async def get(self, address: Pubkey) -> FarmInfo:
        return self.parse(await self._fetch_required(address, FARM_LAYOUT, "Farm"), address)

    async def get_all(self, page: Optional[PageConfig] = None) -> List[FarmInfo]:
        accounts = await self._list(FARM_LAYOUT)
        # Double-dip partners are matched over every listed farm, not just the page.
        all_farms = [self.parse(account.data, account.address) for account in accounts]
        farms_by_base_mint: Dict[Pubkey, FarmInfo] = {}
        for farm in all_farms:
            farms_by_base_mint.setdefault(farm.base_token_mint, farm)
        farms = paginate(all_farms, page)
        double_dips = {
            farm.farm_id: farms_by_base_mint[farm.farm_token_mint]
            for farm in farms
            if farm.farm_token_mint in farms_by_base_mint
        }
        loaded = _unique_farms(farms + list(double_dips.values()))

        token_keys = [key for farm in loaded for key in (farm.base_token_vault, farm.reward_token_vault)]
        token_datas, pools, token_list = await asyncio.gather(
            self.source.get_accounts(token_keys),
            self._load_pools(),
            self._load_token_list(),
        )
        token_accounts = {
            key: parse_token_account(data, key) for key, data in zip(token_keys, token_datas) if data
        }

        mint_keys = _unique(
            [farm.base_token_mint for farm in loaded] + [account.mint for account in token_accounts.values()]
        )
        mint_datas = await self.source.get_accounts(mint_keys)
        mints = {key: parse_mint(data, key) for key, data in zip(mint_keys, mint_datas) if data}

        for farm in loaded:
            farm.base_token_mint_account_data = mints.get(farm.base_token_mint)
            farm.base_token_vault_account_data = token_accounts.get(farm.base_token_vault)
            farm.reward_token_vault_account_data = token_accounts.get(farm.reward_token_vault)
            if farm.reward_token_vault_account_data is not None:
                farm.reward_token_mint_account_data = mints.get(farm.reward_token_vault_account_data.mint)

        prices = {token.mint: token for token in token_list}
        pools_by_lp_mint = {pool.lp_mint: pool for pool in pools}
        for farm in farms:
            double_dip = double_dips.get(farm.farm_id)
            if double_dip is not None:
                _attach_double_dip(farm, double_dip)
            pool = pools_by_lp_mint.get(farm.base_token_mint)
            if pool is not None:
                _attach_pool(farm, pool, prices)

        logging.info("Loaded %d Orca farms (%d joined with pools)", len(farms), sum(f.pool_id is not None for f in farms))
        return farms

    async def _load_pools(self) -> List[PoolInfo]:
        if self.pools is None:
            return []
        return await self.pools.get_all()

    async def _load_token_list(self) -> List[TokenPrice]:
        if self.fetch_token_list is None:
            return []
        return await self.fetch_token_list()

    def get_farmer_id(self, farm_info: FarmInfo, user_key: Pubkey) -> Pubkey:
        return find_program_address([farm_info.farm_id, user_key, TOKEN_PROGRAM], self.program_id)[0]

    async def get_farmer(self, farmer_id: Pubkey) -> FarmerInfo:
        return parse_farmer(await self._fetch_required(farmer_id, FARMER_LAYOUT, "Farmer"), farmer_id)

    async def get_all_farmers(self, user_key: Pubkey) -> List[FarmerInfo]:
        accounts = await self._list(FARMER_LAYOUT, [MemcmpFilter(FARMER_OWNER_OFFSET, bytes(user_key))])
        return [parse_farmer(account.data, account.address) for account in accounts]

    async def check_farmer_created(self, farm_info: FarmInfo, user_key: Pubkey) -> bool:
        data = await self.source.get_account(self.get_farmer_id(farm_info, user_key))
        return bool(data)


def _unique(keys: Sequence[Pubkey]) -> List[Pubkey]:
    return list(dict.fromkeys(keys))


def _attach_double_dip(farm: FarmInfo, double_dip: FarmInfo) -> None:
    farm.double_dip_emissions_per_second_numerator = double_dip.emissions_per_second_numerator
    farm.double_dip_emissions_per_second_denominator = double_dip.emissions_per_second_denominator
    farm.double_dip_base_token_mint_account_data = double_dip.base_token_mint_account_data
    farm.double_dip_base_token_vault_account_data = double_dip.base_token_vault_account_data
    farm.double_dip_reward_token_mint_account_data = double_dip.reward_token_mint_account_data


def _attach_pool(farm: FarmInfo, pool: PoolInfo, prices: Mapping[str, TokenPrice]) -> None:
    token_a = prices.get(str(pool.token_a_mint))
    token_b = prices.get(str(pool.token_b_mint))
    reward_mint = farm.reward_token_mint_account_data
    reward = prices.get(str(reward_mint.address)) if reward_mint is not None else None

    farm.token_a_price = token_a.price if token_a else None
    farm.token_a_decimals = token_a.decimals if token_a else None
    farm.token_b_price = token_b.price if token_b else None
    farm.token_b_decimals = token_b.decimals if token_b else None
    farm.reward_token_price = reward.price if reward else None

    farm.pool_id = pool.pool_id
    farm.token_supply_a = pool.token_supply_a
    farm.token_supply_b = pool.token_supply_b
    farm.lp_supply = pool.lp_supply
    farm.lp_decimals = pool.lp_decimals


def _unique_farms(farms: Sequence[FarmInfo]) -> List[FarmInfo]:
    return list({farm.farm_id: farm for farm in farms}.values())
