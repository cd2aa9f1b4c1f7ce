"""NFT finance: NFT staking pools with rarity lists, NFT vaults, farms and miners."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from construct import Bytes, Struct
from solders.pubkey import Pubkey

from .config import NFT_MINING_PROGRAM_ID, NFT_STAKING_PROGRAM_ID
from .layout import PUBKEY, U8, U64, decode, register_layout, vec
from .metrics import ratio
from .provider import PageConfig, ProtocolInfos, paginate
from .rpc import MemcmpFilter

STAKING_PROGRAM = Pubkey.from_string(NFT_STAKING_PROGRAM_ID)
MINING_PROGRAM = Pubkey.from_string(NFT_MINING_PROGRAM_ID)

# Vaults and miners store their user right after the 8-byte discriminator.
USER_OFFSET = 8

RARITY_LAYOUT = register_layout(
    "nft_finance.rarity",
    Struct(
        "discriminator" / U64,
        "admin" / PUBKEY,
        "collection" / Bytes(16),
        "rarity" / Bytes(16),
        "mint_list" / vec(PUBKEY),
    ),
)

POOL_LAYOUT = register_layout(
    "nft_finance.pool",
    Struct(
        "discriminator" / U64,
        "admin" / PUBKEY,
        "prove_token_authority" / PUBKEY,
        "prove_token_vault" / PUBKEY,
        "prove_token_mint" / PUBKEY,
        "rarity_info" / PUBKEY,
        "mint_list_length" / U64,
        "total_locked" / U64,
    ),
)

NFT_VAULT_LAYOUT = register_layout(
    "nft_finance.nft_vault",
    Struct(
        "discriminator" / U64,
        "user" / PUBKEY,
        "pool_info" / PUBKEY,
        "nft_mint" / PUBKEY,
    ),
)

FARM_LAYOUT = register_layout(
    "nft_finance.farm",
    Struct(
        "discriminator" / U64,
        "admin" / PUBKEY,
        "prove_token_mint" / PUBKEY,
        "reward_token_mint" / PUBKEY,
        "farm_token_mint" / PUBKEY,
        "reward_vault" / PUBKEY,
        "farm_authority" / PUBKEY,
        "farm_authority_bump" / U8,
        "reward_token_per_slot" / U64,
        "total_prove_token_deposited" / U64,
    ),
)

MINER_LAYOUT = register_layout(
    "nft_finance.miner",
    Struct(
        "discriminator" / U64,
        "owner" / PUBKEY,
        "farm_info" / PUBKEY,
        "miner_vault" / PUBKEY,
        "last_update_slot" / U64,
        "unclaimed_amount" / U64,
        "deposited_amount" / U64,
        "miner_bump" / U8,
    ),
)


def _label(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8", errors="replace")


@dataclass
class RarityInfo:
    rarity_id: Pubkey
    admin: Pubkey
    collection: str
    rarity: str
    mint_list: List[Pubkey]


@dataclass
class NftPoolInfo:
    pool_id: Pubkey
    admin: Pubkey
    prove_token_authority: Pubkey
    prove_token_vault: Pubkey
    prove_token_mint: Pubkey
    rarity_info: Pubkey
    mint_list_length: int
    total_locked: int
    rarity_info_data: Optional[RarityInfo] = None


@dataclass
class NftVaultInfo:
    nft_vault_id: Pubkey
    user: Pubkey
    pool_id: Pubkey
    nft_mint: Pubkey


@dataclass
class NftFarmInfo:
    farm_id: Pubkey
    admin: Pubkey
    prove_token_mint: Pubkey
    reward_token_mint: Pubkey
    farm_token_mint: Pubkey
    reward_vault: Pubkey
    farm_authority: Pubkey
    farm_authority_bump: int
    reward_token_per_slot: int
    total_prove_token_deposited: int


@dataclass
class MinerInfo:
    miner_id: Pubkey
    owner: Pubkey
    farm_id: Pubkey
    miner_vault: Pubkey
    last_update_slot: int
    unclaimed_amount: int
    deposited_amount: int
    miner_bump: int


def parse_rarity(data: bytes, rarity_id: Pubkey) -> RarityInfo:
    decoded = decode(RARITY_LAYOUT, data)
    return RarityInfo(
        rarity_id=rarity_id,
        admin=decoded.admin,
        collection=_label(decoded.collection),
        rarity=_label(decoded.rarity),
        mint_list=list(decoded.mint_list),
    )


def parse_pool(data: bytes, pool_id: Pubkey) -> NftPoolInfo:
    decoded = decode(POOL_LAYOUT, data)
    return NftPoolInfo(
        pool_id=pool_id,
        admin=decoded.admin,
        prove_token_authority=decoded.prove_token_authority,
        prove_token_vault=decoded.prove_token_vault,
        prove_token_mint=decoded.prove_token_mint,
        rarity_info=decoded.rarity_info,
        mint_list_length=decoded.mint_list_length,
        total_locked=decoded.total_locked,
    )


def parse_nft_vault(data: bytes, nft_vault_id: Pubkey) -> NftVaultInfo:
    decoded = decode(NFT_VAULT_LAYOUT, data)
    return NftVaultInfo(nft_vault_id=nft_vault_id, user=decoded.user, pool_id=decoded.pool_info, nft_mint=decoded.nft_mint)


def parse_farm(data: bytes, farm_id: Pubkey) -> NftFarmInfo:
    decoded = decode(FARM_LAYOUT, data)
    return NftFarmInfo(
        farm_id=farm_id,
        admin=decoded.admin,
        prove_token_mint=decoded.prove_token_mint,
        reward_token_mint=decoded.reward_token_mint,
        farm_token_mint=decoded.farm_token_mint,
        reward_vault=decoded.reward_vault,
        farm_authority=decoded.farm_authority,
        farm_authority_bump=decoded.farm_authority_bump,
        reward_token_per_slot=decoded.reward_token_per_slot,
        total_prove_token_deposited=decoded.total_prove_token_deposited,
    )


def parse_miner(data: bytes, miner_id: Pubkey) -> MinerInfo:
    decoded = decode(MINER_LAYOUT, data)
    return MinerInfo(
        miner_id=miner_id,
        owner=decoded.owner,
        farm_id=decoded.farm_info,
        miner_vault=decoded.miner_vault,
        last_update_slot=decoded.last_update_slot,
        unclaimed_amount=decoded.unclaimed_amount,
        deposited_amount=decoded.deposited_amount,
        miner_bump=decoded.miner_bump,
    )


class NftPoolInfoWrapper:
    def __init__(self, pool_info: NftPoolInfo):
        self.pool_info = pool_info

    def is_mint_eligible(self, mint: Pubkey) -> bool:
        rarity = self.pool_info.rarity_info_data
        return rarity is not None and mint in rarity.mint_list


class NftFarmInfoWrapper:
    def __init__(self, farm_info: NftFarmInfo):
        self.farm_info = farm_info

    def get_miner_share(self, miner: MinerInfo) -> float:
        """Fraction of the farm's deposited prove tokens held by ``miner``."""
        return ratio(miner.deposited_amount, self.farm_info.total_prove_token_deposited)


class NftPoolInfos(ProtocolInfos[NftPoolInfo, NftPoolInfoWrapper]):
    program_id = STAKING_PROGRAM

    def parse(self, data: bytes, address: Pubkey) -> NftPoolInfo:
        return parse_pool(data, address)

    def _make_wrapper(self, record: NftPoolInfo, context: Any) -> NftPoolInfoWrapper:
        return NftPoolInfoWrapper(record)

    async def get_all(self, page: Optional[PageConfig] = None) -> List[NftPoolInfo]:
        accounts = await self._list(POOL_LAYOUT)
        pools = [self.parse(account.data, account.address) for account in paginate(accounts, page)]
        await self._attach_rarity(pools)
        logging.info("Loaded %d NFT pools", len(pools))
        return pools

    async def get(self, address: Pubkey) -> NftPoolInfo:
        pool = self.parse(await self._fetch_required(address, POOL_LAYOUT, "NFT pool"), address)
        await self._attach_rarity([pool])
        return pool

    async def _attach_rarity(self, pools: List[NftPoolInfo]) -> None:
        datas = await self.source.get_accounts([pool.rarity_info for pool in pools])
        for pool, data in zip(pools, datas):
            if data:
                pool.rarity_info_data = parse_rarity(data, pool.rarity_info)

    async def get_all_nft_vaults(self, user_key: Pubkey) -> List[NftVaultInfo]:
        accounts = await self._list(NFT_VAULT_LAYOUT, [MemcmpFilter(USER_OFFSET, bytes(user_key))])
        return [parse_nft_vault(account.data, account.address) for account in accounts]

    async def get_nft_vault(self, nft_vault_id: Pubkey) -> NftVaultInfo:
        data = await self._fetch_required(nft_vault_id, NFT_VAULT_LAYOUT, "NFT vault")
        return parse_nft_vault(data, nft_vault_id)


class NftFarmInfos(ProtocolInfos[NftFarmInfo, NftFarmInfoWrapper]):
    program_id = MINING_PROGRAM

    def parse(self, data: bytes, address: Pubkey) -> NftFarmInfo:
        return parse_farm(data, address)

    def _make_wrapper(self, record: NftFarmInfo, context: Any) -> NftFarmInfoWrapper:
        return NftFarmInfoWrapper(record)

    async def get_all(self, page: Optional[PageConfig] = None) -> List[NftFarmInfo]:
        accounts = await self._list(FARM_LAYOUT)
        return [self.parse(account.data, account.address) for account in paginate(accounts, page)]

    async def get(self, address: Pubkey) -> NftFarmInfo:
        return self.parse(await self._fetch_required(address, FARM_LAYOUT, "NFT farm"), address)

    async def get_all_miners(self, user_key: Pubkey) -> List[MinerInfo]:
        accounts = await self._list(MINER_LAYOUT, [MemcmpFilter(USER_OFFSET, bytes(user_key))])
        return [parse_miner(account.data, account.address) for account in accounts]

    async def get_miner(self, miner_id: Pubkey) -> MinerInfo:
        return parse_miner(await self._fetch_required(miner_id, MINER_LAYOUT, "Miner"), miner_id)
