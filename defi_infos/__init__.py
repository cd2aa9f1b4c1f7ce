"""Read-side account readers for Solana DeFi protocols."""

__version__ = "0.1.0"
