"""
Wallet Contracts

The POS never touches token cryptography itself. Proof verification and
redemption go through a MintWallet bound to one (mint, unit) pair; the
WalletRegistry resolves that pair to a wallet.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..models.payments import Proof
from ..models.quotes import CurrencyUnit

logger = logging.getLogger(__name__)

WalletKey = Tuple[str, CurrencyUnit]


class MintWallet(Protocol):
    """Wallet bound to one mint and one currency unit."""

    mint_url: str
    unit: CurrencyUnit

    async def receive_proofs(self, proofs: Sequence[Proof]) -> int:
        """
        Verify and redeem `proofs` at the mint.

        Returns:
            Amount received after redemption

        Raises:
            ProofVerificationError: proofs are invalid, forged or already spent
        """


class WalletProvider(Protocol):
    """Resolves the wallet for a mint and unit."""

    async def get_wallet(self, mint_url: str, unit: CurrencyUnit) -> Optional[MintWallet]:
        """Return the wallet or None if none is configured."""


class WalletRegistry:
    """
    In-process map of (mint, unit) -> wallet.

    Built once at startup; lookups never create wallets.
    """

    def __init__(self, wallets: Iterable[MintWallet] = ()):
        self._wallets: Dict[WalletKey, MintWallet] = {}
        for wallet in wallets:
            self.add_wallet(wallet)

    def add_wallet(self, wallet: MintWallet) -> None:
        key = (wallet.mint_url, wallet.unit)
        if key in self._wallets:
            logger.warning(f"Replacing wallet for {wallet.mint_url} ({wallet.unit.value})")
        self._wallets[key] = wallet

    async def get_wallet(self, mint_url: str, unit: CurrencyUnit) -> Optional[MintWallet]:
        return self._wallets.get((mint_url, unit))

    def keys(self) -> List[WalletKey]:
        return list(self._wallets)

    def __len__(self) -> int:
        return len(self._wallets)
