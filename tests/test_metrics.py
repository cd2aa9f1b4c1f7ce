import pytest

from defi_infos.metrics import api_pool_apr, constant_product_out, farm_apr, ratio, swap_out_amount

APR_INPUTS = dict(
    emissions_per_second_numerator=1,
    emissions_per_second_denominator=1,
    reward_decimals=6,
    reward_price=2.0,
    token_a_supply=1_000_000_000,
    token_a_decimals=6,
    token_a_price=1.0,
    token_b_supply=500_000_000,
    token_b_decimals=6,
    token_b_price=2.0,
    staked_amount=50_000_000,
    staked_decimals=6,
    lp_supply=100_000_000,
    lp_decimals=6,
)


def test_constant_product_out():
    assert constant_product_out(1000, 2000, 100) == 182
    assert constant_product_out(2000, 1000, 100) == 48


def test_constant_product_out_degenerate_inputs():
    assert constant_product_out(None, 2000, 100) == 0
    assert constant_product_out(1000, None, 100) == 0
    assert constant_product_out(1000, 2000, 0) == 0
    assert constant_product_out(0, 0, 0) == 0


def test_swap_out_amount_sides():
    assert swap_out_amount("coin", 100, 1000, 2000) == 182
    assert swap_out_amount("pc", 100, 1000, 2000) == 48
    assert swap_out_amount("other", 100, 1000, 2000) == 0


def test_farm_apr():
    # 0.0864 reward tokens/day * 365 * $2 over a $2000 pool, half of the LP staked
    expected = 0.0864 * 365 * 2.0 / 2000.0 * 0.5 * 100
    assert farm_apr(**APR_INPUTS) == pytest.approx(expected)


@pytest.mark.parametrize("name", ["reward_price", "token_a_price", "token_b_price"])
def test_farm_apr_without_price_is_zero(name):
    assert farm_apr(**dict(APR_INPUTS, **{name: None})) == 0


@pytest.mark.parametrize(
    "name", ["emissions_per_second_denominator", "lp_supply", "emissions_per_second_numerator"]
)
def test_farm_apr_with_zero_input_is_zero(name):
    assert farm_apr(**dict(APR_INPUTS, **{name: 0})) == 0


def test_farm_apr_with_missing_decimals_is_zero():
    assert farm_apr(**dict(APR_INPUTS, staked_decimals=None)) == 0


def test_farm_apr_with_empty_pool_is_zero():
    assert farm_apr(**dict(APR_INPUTS, token_a_supply=0, token_b_supply=0)) == 0


def test_api_pool_apr():
    stats = {
        "SOL/USDC": {"poolAccount": "pool1", "apy": {"day": "0.01", "week": "0.05", "month": "0.2"}},
        "ORCA/USDC": {"poolAccount": "pool2", "apy": {}},
    }
    assert api_pool_apr(stats, "pool1") == pytest.approx(5.0)
    assert api_pool_apr(stats, "pool2") == 0
    assert api_pool_apr(stats, "missing") == 0
    assert api_pool_apr(None, "pool1") == 0


def test_ratio():
    assert ratio(110, 100) == pytest.approx(1.1)
    assert ratio(110, 0) == 0
    assert ratio(None, 100) == 0
