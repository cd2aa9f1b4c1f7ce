import asyncio

import pytest
from solders.pubkey import Pubkey

from defi_infos.api import TokenPrice
from defi_infos.layout import span
from defi_infos.orca import (
    FARM_LAYOUT,
    FARM_PROGRAM,
    FARMER_LAYOUT,
    FARMER_OWNER_OFFSET,
    POOL_LAYOUT,
    POOL_PROGRAM,
    FarmInfoWrapper,
    OrcaFarmInfos,
    OrcaPoolInfos,
    PoolInfoWrapper,
    parse_farm,
    parse_pool,
)
from defi_infos.pda import TOKEN_PROGRAM, find_program_address
from defi_infos.provider import PageConfig
from defi_infos.token import MINT_LAYOUT, TOKEN_ACCOUNT_LAYOUT, MintInfo, TokenAccountInfo

from conftest import build_account


def add_token_account(source, mint, amount):
    return source.add(build_account(TOKEN_ACCOUNT_LAYOUT, mint=mint, amount=amount), TOKEN_PROGRAM)


def add_mint(source, supply, decimals, address=None):
    return source.add(build_account(MINT_LAYOUT, supply=supply, decimals=decimals), TOKEN_PROGRAM, address)


def add_pool(source, reserve_a, reserve_b, lp_supply=1000, with_lp_mint=True):
    mint_a, mint_b = Pubkey.new_unique(), Pubkey.new_unique()
    lp_mint = add_mint(source, lp_supply, 6) if with_lp_mint else Pubkey.new_unique()
    data = build_account(
        POOL_LAYOUT,
        token_account_a=add_token_account(source, mint_a, reserve_a),
        token_account_b=add_token_account(source, mint_b, reserve_b),
        pool_mint=lp_mint,
        mint_a=mint_a,
        mint_b=mint_b,
        trade_fee_numerator=25,
        trade_fee_denominator=10000,
    )
    return source.add(data, POOL_PROGRAM)


def test_layout_spans():
    assert span(POOL_LAYOUT) == 324
    assert span(FARM_LAYOUT) == 283
    assert span(FARMER_LAYOUT) == 106


def test_pool_reserves_and_swap_quote(source):
    pool_id = add_pool(source, 1000, 2000, lp_supply=500)

    wrapper = asyncio.run(OrcaPoolInfos(source).get_wrapper(pool_id))

    pool = wrapper.pool_info
    assert (pool.token_supply_a, pool.token_supply_b) == (1000, 2000)
    assert (pool.lp_supply, pool.lp_decimals) == (500, 6)
    assert wrapper.get_swap_out_amount("coin", 100) == 182
    assert wrapper.get_swap_out_amount("pc", 100) == 48
    assert wrapper.get_authority() == find_program_address([pool_id], POOL_PROGRAM)[0]


def test_get_all_batches_satellite_fetches(source):
    for _ in range(3):
        add_pool(source, 10, 20)

    pools = asyncio.run(OrcaPoolInfos(source).get_all())

    assert len(pools) == 3
    assert len(source.batch_calls) == 1
    assert len(source.batch_calls[0]) == 9


def test_empty_pools_dropped_by_default(source):
    kept = add_pool(source, 10, 20, lp_supply=100)
    zero = add_pool(source, 10, 20, lp_supply=0)
    missing = add_pool(source, 10, 20, with_lp_mint=False)

    assert [p.pool_id for p in asyncio.run(OrcaPoolInfos(source).get_all())] == [kept]
    everything = asyncio.run(OrcaPoolInfos(source, drop_empty_pools=False).get_all())
    assert [p.pool_id for p in everything] == [kept, zero, missing]
    assert everything[2].lp_supply is None
    assert everything[2].token_supply_a == 10


def test_pool_apr_from_api_stats(source):
    pool_id = add_pool(source, 10, 20)

    async def fetch_stats():
        return {"SOL/USDC": {"poolAccount": str(pool_id), "apy": {"week": 0.12}}}

    wrappers = asyncio.run(OrcaPoolInfos(source, fetch_pool_stats=fetch_stats).get_all_wrappers())
    assert wrappers[0].get_apr() == pytest.approx(12.0)
    assert asyncio.run(OrcaPoolInfos(source).get_wrapper(pool_id)).get_apr() == 0


def make_farm(**joined):
    farm = parse_farm(
        build_account(FARM_LAYOUT, emissions_per_second_numerator=1, emissions_per_second_denominator=1),
        Pubkey.new_unique(),
    )
    base_mint = MintInfo(Pubkey.new_unique(), supply=0, decimals=6)
    farm.base_token_mint_account_data = base_mint
    farm.base_token_vault_account_data = TokenAccountInfo(Pubkey.new_unique(), base_mint.address, Pubkey.new_unique(), 50_000_000)
    farm.reward_token_mint_account_data = MintInfo(Pubkey.new_unique(), supply=0, decimals=6)
    for name, value in dict(
        token_supply_a=1_000_000_000,
        token_a_decimals=6,
        token_a_price=1.0,
        token_supply_b=500_000_000,
        token_b_decimals=6,
        token_b_price=2.0,
        lp_supply=100_000_000,
        lp_decimals=6,
        reward_token_price=2.0,
    ).items():
        setattr(farm, name, value)
    for name, value in joined.items():
        setattr(farm, name, value)
    return farm


def test_farm_apr():
    expected = 0.0864 * 365 * 2.0 / 2000.0 * 0.5 * 100
    assert FarmInfoWrapper(make_farm()).get_apr() == pytest.approx(expected)


def test_farm_apr_without_reward_price_is_zero():
    assert FarmInfoWrapper(make_farm(reward_token_price=None)).get_apr() == 0


def test_farm_apr_without_joined_pool_is_zero():
    assert FarmInfoWrapper(make_farm(lp_supply=None, token_a_price=None)).get_apr() == 0


def test_double_dip_parameters_supersede_primary():
    double_dip_mint = MintInfo(Pubkey.new_unique(), supply=0, decimals=6)
    farm = make_farm(
        double_dip_emissions_per_second_numerator=3,
        double_dip_emissions_per_second_denominator=1,
        double_dip_reward_token_mint_account_data=MintInfo(Pubkey.new_unique(), supply=0, decimals=6),
        double_dip_base_token_mint_account_data=double_dip_mint,
        double_dip_base_token_vault_account_data=TokenAccountInfo(
            Pubkey.new_unique(), double_dip_mint.address, Pubkey.new_unique(), 25_000_000
        ),
    )
    primary = 0.0864 * 365 * 2.0 / 2000.0 * 0.5 * 100
    assert FarmInfoWrapper(farm).get_apr() == pytest.approx(primary * 3 / 2)


def test_farm_get_all_joins_pools_prices_and_double_dip(source):
    mint_a, mint_b = Pubkey.new_unique(), Pubkey.new_unique()
    lp_mint = add_mint(source, 100_000_000, 6)
    pool_id = source.add(
        build_account(
            POOL_LAYOUT,
            token_account_a=add_token_account(source, mint_a, 1_000_000_000),
            token_account_b=add_token_account(source, mint_b, 500_000_000),
            pool_mint=lp_mint,
            mint_a=mint_a,
            mint_b=mint_b,
        ),
        POOL_PROGRAM,
    )

    farm_token_mint = add_mint(source, 0, 6)
    reward_mint = add_mint(source, 0, 6)
    double_dip_reward_mint = add_mint(source, 0, 6)
    primary_id = source.add(
        build_account(
            FARM_LAYOUT,
            base_token_mint=lp_mint,
            base_token_vault=add_token_account(source, lp_mint, 50_000_000),
            reward_token_vault=add_token_account(source, reward_mint, 0),
            farm_token_mint=farm_token_mint,
            emissions_per_second_numerator=1,
            emissions_per_second_denominator=1,
        ),
        FARM_PROGRAM,
    )
    double_dip_id = source.add(
        build_account(
            FARM_LAYOUT,
            base_token_mint=farm_token_mint,
            base_token_vault=add_token_account(source, farm_token_mint, 25_000_000),
            reward_token_vault=add_token_account(source, double_dip_reward_mint, 0),
            farm_token_mint=Pubkey.new_unique(),
            emissions_per_second_numerator=3,
            emissions_per_second_denominator=1,
        ),
        FARM_PROGRAM,
    )

    async def fetch_token_list():
        return [
            TokenPrice(str(mint_a), 1.0, 6),
            TokenPrice(str(mint_b), 2.0, 6),
            TokenPrice(str(reward_mint), 2.0, 6),
        ]

    infos = OrcaFarmInfos(source, pools=OrcaPoolInfos(source), fetch_token_list=fetch_token_list)
    wrappers = {w.farm_info.farm_id: w for w in asyncio.run(infos.get_all_wrappers())}

    primary = wrappers[primary_id].farm_info
    assert primary.pool_id == pool_id
    assert (primary.token_supply_a, primary.token_supply_b, primary.lp_supply) == (1_000_000_000, 500_000_000, 100_000_000)
    assert (primary.token_a_price, primary.token_b_price, primary.reward_token_price) == (1.0, 2.0, 2.0)
    assert primary.base_token_vault_account_data.amount == 50_000_000
    assert primary.reward_token_mint_account_data.address == reward_mint
    assert primary.double_dip_emissions_per_second_numerator == 3
    assert primary.double_dip_reward_token_mint_account_data.address == double_dip_reward_mint
    assert wrappers[primary_id].get_apr() == pytest.approx(0.0864 * 365 * 2.0 / 2000.0 * 0.5 * 100 * 3 / 2)

    double_dip = wrappers[double_dip_id].farm_info
    assert double_dip.pool_id is None
    assert double_dip.double_dip_emissions_per_second_numerator is None
    assert wrappers[double_dip_id].get_apr() == 0


def test_farm_get_all_without_optional_providers(source):
    source.add(build_account(FARM_LAYOUT), FARM_PROGRAM)

    farms = asyncio.run(OrcaFarmInfos(source).get_all())

    assert len(farms) == 1
    assert farms[0].base_token_vault_account_data is None
    assert farms[0].pool_id is None


def test_get_all_farmers_filters_by_owner(source):
    user = Pubkey.new_unique()
    farm_id = Pubkey.new_unique()
    source.add(build_account(FARMER_LAYOUT, global_farm=farm_id, owner=user, base_tokens_converted=9), FARM_PROGRAM)
    source.add(build_account(FARMER_LAYOUT, global_farm=farm_id, owner=Pubkey.new_unique()), FARM_PROGRAM)

    farmers = asyncio.run(OrcaFarmInfos(source).get_all_farmers(user))

    assert len(farmers) == 1
    assert farmers[0].user_key == user
    assert farmers[0].farm_id == farm_id
    assert farmers[0].amount == 9
    _, size, memcmp = source.list_calls[-1]
    assert size == 106
    assert memcmp[0].offset == FARMER_OWNER_OFFSET
    assert memcmp[0].bytes == bytes(user)


def test_check_farmer_created(source):
    user = Pubkey.new_unique()
    infos = OrcaFarmInfos(source)
    farm = parse_farm(build_account(FARM_LAYOUT), Pubkey.new_unique())
    farmer_id = infos.get_farmer_id(farm, user)
    assert farmer_id == find_program_address([farm.farm_id, user, TOKEN_PROGRAM], FARM_PROGRAM)[0]

    assert asyncio.run(infos.check_farmer_created(farm, user)) is False
    source.add(build_account(FARMER_LAYOUT, owner=user), FARM_PROGRAM, farmer_id)
    assert asyncio.run(infos.check_farmer_created(farm, user)) is True
    assert asyncio.run(infos.get_farmer(farmer_id)).user_key == user


def test_pool_wrapper_without_reserves():
    pool = parse_pool(build_account(POOL_LAYOUT), Pubkey.new_unique())
    assert PoolInfoWrapper(pool).get_swap_out_amount("coin", 100) == 0


def test_double_dip_partner_on_another_page(source):
    farm_token_mint = add_mint(source, 0, 6)
    primary_id = source.add(
        build_account(
            FARM_LAYOUT,
            base_token_mint=add_mint(source, 0, 6),
            base_token_vault=add_token_account(source, Pubkey.new_unique(), 10),
            farm_token_mint=farm_token_mint,
            emissions_per_second_numerator=1,
            emissions_per_second_denominator=1,
        ),
        FARM_PROGRAM,
    )
    source.add(
        build_account(
            FARM_LAYOUT,
            base_token_mint=farm_token_mint,
            base_token_vault=add_token_account(source, farm_token_mint, 20),
            emissions_per_second_numerator=3,
            emissions_per_second_denominator=1,
        ),
        FARM_PROGRAM,
    )

    everything = asyncio.run(OrcaFarmInfos(source).get_all())
    first_page = asyncio.run(OrcaFarmInfos(source).get_all(PageConfig(page_size=1, page_index=0)))

    assert [farm.farm_id for farm in first_page] == [primary_id]
    for farm in (everything[0], first_page[0]):
        assert farm.double_dip_emissions_per_second_numerator == 3
        assert farm.double_dip_base_token_vault_account_data.amount == 20
        assert farm.double_dip_base_token_mint_account_data.address == farm_token_mint
