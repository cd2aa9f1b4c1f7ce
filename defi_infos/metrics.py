"""Derived financial metrics over decoded records.

None of these raise on incomplete inputs: a missing price, supply or decimal
count yields 0 so a listing can render "unknown" for a single record.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

SECONDS_PER_DAY = 60 * 60 * 24
DAYS_PER_YEAR = 365


def constant_product_out(reserve_in: Optional[int], reserve_out: Optional[int], amount_in: int) -> int:
    """Output of a ``x * y = k`` swap, in integer arithmetic.

    ``dy = y1 - k // (x1 + dx)``
    """
    if reserve_in is None or reserve_out is None or amount_in <= 0:
        return 0
    x2 = reserve_in + amount_in
    if x2 == 0:
        return 0
    k = reserve_in * reserve_out
    return reserve_out - k // x2


def swap_out_amount(from_side: str, amount_in: int, supply_a: Optional[int], supply_b: Optional[int]) -> int:
    """``coin`` swaps side A into side B, ``pc`` swaps B into A."""
    if from_side == "coin":
        return constant_product_out(supply_a, supply_b, amount_in)
    if from_side == "pc":
        return constant_product_out(supply_b, supply_a, amount_in)
    return 0


def farm_apr(
    emissions_per_second_numerator: Optional[int],
    emissions_per_second_denominator: Optional[int],
    reward_decimals: Optional[int],
    reward_price: Optional[float],
    token_a_supply: Optional[int],
    token_a_decimals: Optional[int],
    token_a_price: Optional[float],
    token_b_supply: Optional[int],
    token_b_decimals: Optional[int],
    token_b_price: Optional[float],
    staked_amount: Optional[int],
    staked_decimals: Optional[int],
    lp_supply: Optional[int],
    lp_decimals: Optional[int],
) -> float:
    """Annualized reward yield of a liquidity-mining farm, in percent."""
    if not token_a_price or not token_b_price or not reward_price:
        return 0
    required = (
        emissions_per_second_numerator,
        reward_decimals,
        token_a_supply,
        token_a_decimals,
        token_b_supply,
        token_b_decimals,
        staked_amount,
        staked_decimals,
        lp_decimals,
    )
    if any(value is None for value in required):
        return 0
    if not emissions_per_second_denominator or not lp_supply:
        return 0

    daily_emission = (
        emissions_per_second_numerator * SECONDS_PER_DAY / emissions_per_second_denominator / 10 ** reward_decimals
    )
    if daily_emission == 0:
        return 0

    reward_value_usd = daily_emission * DAYS_PER_YEAR * reward_price
    pool_value_usd = (
        token_a_supply / 10 ** token_a_decimals * token_a_price
        + token_b_supply / 10 ** token_b_decimals * token_b_price
    )
    if pool_value_usd == 0:
        return 0
    stake_rate = (staked_amount / 10 ** staked_decimals) / (lp_supply / 10 ** lp_decimals)
    return reward_value_usd / pool_value_usd * stake_rate * 100


def api_pool_apr(api_pools: Optional[Mapping[str, Any]], pool_address: str) -> float:
    """Weekly APY reported by the Orca stats API for ``pool_address``, in percent."""
    if not api_pools:
        return 0
    for stats in api_pools.values():
        if not isinstance(stats, Mapping) or stats.get("poolAccount") != pool_address:
            continue
        week = (stats.get("apy") or {}).get("week")
        return float(week) * 100 if week is not None else 0
    return 0


def ratio(numerator: Optional[int], denominator: Optional[int]) -> float:
    if numerator is None or not denominator:
        return 0
    return numerator / denominator
