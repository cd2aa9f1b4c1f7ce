"""Command-line entry point: dump decoded protocol records as JSON."""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

from solders.pubkey import Pubkey

from . import config
from .api import OrcaApiClient, token_list_fetcher
from .friktion import FriktionInfos
from .lido import LidoInfos
from .lifinity import LifinityInfos
from .nft_finance import NftPoolInfos
from .orca import OrcaFarmInfos, OrcaPoolInfos
from .provider import PageConfig
from .rpc import AccountSource, RpcAccountSource


def to_jsonable(obj: Any) -> Any:
    """``json.dumps`` default: Pubkeys as base58, dataclasses as objects."""
    if isinstance(obj, Pubkey):
        return str(obj)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, bytes):
        return obj.hex()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dump(result: Any) -> None:
    json.dump(result, sys.stdout, default=to_jsonable, indent=2)
    sys.stdout.write("\n")


def _page(args: argparse.Namespace) -> Optional[PageConfig]:
    if args.page_size is None:
        return None
    return PageConfig(args.page_size, args.page_index)


async def friktion_vaults(source: AccountSource, args: argparse.Namespace) -> Any:
    return await FriktionInfos(source).get_all(_page(args))


async def orca_pools(source: AccountSource, args: argparse.Namespace) -> Any:
    return await OrcaPoolInfos(source, drop_empty_pools=not args.keep_empty).get_all(_page(args))


async def orca_farms(source: AccountSource, args: argparse.Namespace) -> Any:
    fetch_token_list = token_list_fetcher(args.token_list) if args.token_list else None
    farms = OrcaFarmInfos(source, pools=OrcaPoolInfos(source), fetch_token_list=fetch_token_list)
    wrappers = await farms.get_all_wrappers(_page(args))
    return [{"farm": wrapper.farm_info, "apr": wrapper.get_apr()} for wrapper in wrappers]


async def lifinity_amms(source: AccountSource, args: argparse.Namespace) -> Any:
    return await LifinityInfos(source).get_all(_page(args))


async def lido(source: AccountSource, args: argparse.Namespace) -> Any:
    wrapper = await LidoInfos(source).get_wrapper(Pubkey.from_string(args.state))
    return {
        "state": wrapper.lido_info,
        "exchange_rate": wrapper.get_exchange_rate(),
        "total_stake": wrapper.get_total_stake(),
    }


async def nft_pools(source: AccountSource, args: argparse.Namespace) -> Any:
    return await NftPoolInfos(source).get_all(_page(args))


async def swap_quote(source: AccountSource, args: argparse.Namespace) -> Any:
    pools = OrcaPoolInfos(source, fetch_pool_stats=OrcaApiClient().fetch_pool_stats if args.with_apr else None)
    wrapper = await pools.get_wrapper(Pubkey.from_string(args.pool))
    quote = {
        "pool": wrapper.pool_info.pool_id,
        "side": args.side,
        "amount_in": args.amount,
        "amount_out": wrapper.get_swap_out_amount(args.side, args.amount),
    }
    if args.with_apr:
        quote["apr"] = wrapper.get_apr()
    return quote


async def run(args: argparse.Namespace) -> Any:
    source = RpcAccountSource.from_endpoint(args.rpc)
    try:
        return await args.func(source, args)
    finally:
        await source.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Decode Solana DeFi protocol accounts")
    parser.add_argument("--rpc", default=config.RPC_ENDPOINTS[0], help="RPC endpoint to use")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    def listing(name: str, func: Callable[..., Awaitable[Any]], help_text: str) -> argparse.ArgumentParser:
        command = sub.add_parser(name, help=help_text)
        command.add_argument("--page-size", type=int, help="Accounts per page (default: all)")
        command.add_argument("--page-index", type=int, default=0, help="Zero-based page to return")
        command.set_defaults(func=func)
        return command

    listing("friktion-vaults", friktion_vaults, "Friktion volts with rounds and extra data")
    pools = listing("orca-pools", orca_pools, "Orca pools with reserves")
    pools.add_argument("--keep-empty", action="store_true", help="Keep pools without LP supply")
    farms = listing("orca-farms", orca_farms, "Orca aquafarms with APR")
    farms.add_argument("--token-list", default=config.TOKEN_LIST_URL, help="Token price list URL")
    listing("lifinity-amms", lifinity_amms, "Lifinity AMMs with config and reserves")
    listing("nft-pools", nft_pools, "NFT staking pools with rarity lists")

    lido_cmd = sub.add_parser("lido", help="Lido state, exchange rate and stake")
    lido_cmd.add_argument("--state", default=config.LIDO_STATE_ADDRESS, help="Lido state account")
    lido_cmd.set_defaults(func=lido)

    quote = sub.add_parser("swap-quote", help="Estimate an Orca swap output")
    quote.add_argument("pool", help="Pool account address")
    quote.add_argument("--side", choices=["coin", "pc"], required=True, help="coin: A->B, pc: B->A")
    quote.add_argument("--amount", type=int, required=True, help="Input amount in base units")
    quote.add_argument("--with-apr", action="store_true", help="Also fetch the pool APR from the Orca API")
    quote.set_defaults(func=swap_quote)

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
        stream=sys.stderr,
    )
    dump(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
