"""
solbeck: Solana wallet cleanup and rent settlement engine.

Scans user-supplied wallets for closable token accounts, burns selected
balances, closes accounts in bounded batches paid by a shared fee payer,
consolidates reclaimed SOL to a destination and collects a transparent
service fee (with referral-based feeless quota).
"""

__version__ = "0.1.0"
