import asyncio

import pytest
from solders.pubkey import Pubkey

from defi_infos.errors import NotFoundError
from defi_infos.lifinity import CONFIG_LAYOUT, LIFINITY_AMM_LAYOUT, LIFINITY_PROGRAM, LifinityInfos
from defi_infos.pda import TOKEN_PROGRAM, find_program_address
from defi_infos.token import MINT_LAYOUT, TOKEN_ACCOUNT_LAYOUT

from conftest import build_account


def add_amm(source, reserve_a=1000, reserve_b=2000, with_config=True):
    config = (
        source.add(build_account(CONFIG_LAYOUT, concentration_ratio=15, config_denominator=100), LIFINITY_PROGRAM)
        if with_config
        else Pubkey.new_unique()
    )
    token_a = source.add(build_account(TOKEN_ACCOUNT_LAYOUT, amount=reserve_a), TOKEN_PROGRAM)
    token_b = source.add(build_account(TOKEN_ACCOUNT_LAYOUT, amount=reserve_b), TOKEN_PROGRAM)
    pool_mint = source.add(build_account(MINT_LAYOUT, supply=777, decimals=9), TOKEN_PROGRAM)
    data = build_account(
        LIFINITY_AMM_LAYOUT,
        config_account=config,
        token_a_account=token_a,
        token_b_account=token_b,
        pool_mint=pool_mint,
        trade_fee_numerator=25,
        trade_fee_denominator=10000,
    )
    return source.add(data, LIFINITY_PROGRAM)


def test_get_attaches_config_and_reserves(source):
    amm_id = add_amm(source)

    wrapper = asyncio.run(LifinityInfos(source).get_wrapper(amm_id))

    amm = wrapper.amm_info
    assert amm.amm_id == amm_id
    assert amm.config.concentration_ratio == 15
    assert (amm.token_a_amount, amm.token_b_amount) == (1000, 2000)
    assert (amm.lp_supply, amm.lp_decimals) == (777, 9)
    assert wrapper.get_trade_fee_rate() == pytest.approx(0.0025)
    assert wrapper.get_swap_out_amount("coin", 100) == 182
    assert wrapper.get_authority() == find_program_address([amm_id], LIFINITY_PROGRAM)[0]


def test_get_all_with_missing_config(source):
    first = add_amm(source)
    second = add_amm(source, 5, 6, with_config=False)

    amms = {amm.amm_id: amm for amm in asyncio.run(LifinityInfos(source).get_all())}

    assert set(amms) == {first, second}
    assert amms[second].config is None
    assert amms[second].token_a_amount == 5
    assert amms[first].config is not None
    assert len(source.batch_calls) == 1
    assert len(source.batch_calls[0]) == 8


def test_get_missing_amm(source):
    with pytest.raises(NotFoundError):
        asyncio.run(LifinityInfos(source).get(Pubkey.new_unique()))
