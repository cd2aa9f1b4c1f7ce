"""Program-derived address helpers.

All derivations go through the chain's canonical search: seeds are hashed
with a bump appended, starting at 255 and counting down until the digest is
off the ed25519 curve. Identical inputs always give the same (address, bump).
"""
from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

from solders.pubkey import Pubkey

from .config import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

Seed = Union[bytes, str]

TOKEN_PROGRAM = Pubkey.from_string(TOKEN_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID)


def seed_bytes(seed: Seed) -> bytes:
    return seed.encode("utf-8") if isinstance(seed, str) else bytes(seed)


def index_seed(index: int) -> bytes:
    """Round / epoch numbers are seeded as 8-byte little-endian integers."""
    return index.to_bytes(8, "little")


def find_program_address(seeds: Sequence[Union[Seed, Pubkey]], program_id: Pubkey) -> Tuple[Pubkey, int]:
    raw = [bytes(seed) if isinstance(seed, Pubkey) else seed_bytes(seed) for seed in seeds]
    return Pubkey.find_program_address(raw, program_id)


def derive_address_with_bump(
    program_id: Pubkey,
    base: Pubkey,
    purpose: Seed,
    extra_seed: Optional[int] = None,
) -> Tuple[Pubkey, int]:
    """Seeds are ``[base, extra_seed?, purpose]`` in that order."""
    seeds = [bytes(base)]
    if extra_seed is not None:
        seeds.append(index_seed(extra_seed))
    seeds.append(seed_bytes(purpose))
    return Pubkey.find_program_address(seeds, program_id)


def derive_address(
    program_id: Pubkey,
    base: Pubkey,
    purpose: Seed,
    extra_seed: Optional[int] = None,
) -> Pubkey:
    return derive_address_with_bump(program_id, base, purpose, extra_seed)[0]


def get_associated_token_address(owner: Pubkey, mint: Pubkey, token_program: Pubkey = TOKEN_PROGRAM) -> Pubkey:
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM,
    )
    return address
