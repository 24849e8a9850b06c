"""
Wallet collaborators.

base.py: MintWallet / WalletProvider contracts and the in-process registry
nutshell.py: production adapter over the Nutshell `cashu` wallet
"""
from .base import MintWallet, WalletProvider, WalletRegistry

__all__ = ["MintWallet", "WalletProvider", "WalletRegistry"]
