"""Shared configuration for the DeFi account readers."""
from __future__ import annotations

import os
from typing import List

DEFAULT_RPC_ENDPOINTS = [
    "https://api.mainnet-beta.solana.com",
    os.getenv("ALCHEMY_SOLANA_RPC"),
    os.getenv("ANKR_SOLANA_RPC"),
]

# Filter out None / empty values while preserving order
RPC_ENDPOINTS: List[str] = [endpoint for endpoint in DEFAULT_RPC_ENDPOINTS if endpoint]

# Fallback to public endpoint if nothing configured
if not RPC_ENDPOINTS:
    RPC_ENDPOINTS = ["https://api.mainnet-beta.solana.com"]

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"

FRIKTION_VOLT_PROGRAM_ID = os.getenv("FRIKTION_VOLT_PROGRAM_ID", "VoLT1mJz1sbnxwq5Fv2SXjdVDgPXrb9tJyC8WpMDkSp")
# Owner of the volt fee token accounts (default for fee account derivation)
FRIKTION_VOLT_FEE_OWNER = os.getenv("FRIKTION_VOLT_FEE_OWNER")
ORCA_POOL_PROGRAM_ID = os.getenv("ORCA_POOL_PROGRAM_ID", "9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQP")
ORCA_FARM_PROGRAM_ID = os.getenv("ORCA_FARM_PROGRAM_ID", "82yxjeMsvaURa4MbZZ7WZZHfobirZYkH1zF8fmeGtyaQ")
LIFINITY_PROGRAM_ID = os.getenv("LIFINITY_PROGRAM_ID", "EewxydAPCCVuNEyrVN68PuSYdQ7wKn27V9Gjeoi8dy3S")
LIDO_PROGRAM_ID = os.getenv("LIDO_PROGRAM_ID", "CrX7kMhLC3cSsXJdT7JDgqrRVWGnUpX3gfEfxxU2NVLi")
LIDO_STATE_ADDRESS = os.getenv("LIDO_STATE_ADDRESS", "49Yi1TKkNyYjPAFdR9LBvoHcUjuPX4Df5T5yv39w2XTn")
NFT_STAKING_PROGRAM_ID = os.getenv("NFT_STAKING_PROGRAM_ID", "stk9ApL5HeVAwPLr3TLhDXdZS8ptVu7zp6ov8HFDuMi")
NFT_MINING_PROGRAM_ID = os.getenv("NFT_MINING_PROGRAM_ID", "minFApGpYD3RwL6EAMm1N6d15aLfzTkxbKt1yZmHGr4")

ORCA_API_URL = os.getenv("ORCA_API_URL", "https://api.orca.so/allPools")
# Optional JSON token list with {"mint", "price", "decimals"} entries
TOKEN_LIST_URL = os.getenv("TOKEN_LIST_URL")

# getMultipleAccounts accepts at most 100 keys per request
MAX_MULTIPLE_ACCOUNTS = int(os.getenv("INFOS_MAX_MULTIPLE_ACCOUNTS", "100"))
REQUEST_TIMEOUT = int(os.getenv("INFOS_REQUEST_TIMEOUT", "45"))
