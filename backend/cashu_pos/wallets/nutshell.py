"""
Nutshell Wallet Adapter

Wraps the Nutshell `cashu` wallet so it satisfies MintWallet. One adapter per
(mint, unit); all adapters share one wallet database under the work dir.
"""
import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Sequence

from ..exceptions import ProofVerificationError
from ..models.payments import Proof
from ..models.quotes import CurrencyUnit
from .base import WalletRegistry

logger = logging.getLogger(__name__)


class NutshellMintWallet:
    """MintWallet backed by cashu.wallet.wallet.Wallet."""

    def __init__(self, wallet, mint_url: str, unit: CurrencyUnit):
        self._wallet = wallet
        self.mint_url = mint_url
        self.unit = unit
        # Nutshell wallets keep per-instance state; one redemption at a time
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, mint_url: str, unit: CurrencyUnit, db_dir: Path) -> "NutshellMintWallet":
        from cashu.wallet.wallet import Wallet

        wallet = await Wallet.with_db(
            url=mint_url,
            db=str(db_dir),
            name="cashu-pos",
            unit=unit.value,
        )
        await wallet.load_mint()
        logger.info(f"Loaded wallet for {mint_url} ({unit.value})")
        return cls(wallet, mint_url, unit)

    async def receive_proofs(self, proofs: Sequence[Proof]) -> int:
        from cashu.core.base import Proof as NutshellProof

        nutshell_proofs = [
            NutshellProof.from_dict(proof.model_dump(exclude_none=True))
            for proof in proofs
        ]

        async with self._lock:
            try:
                keep, send = await self._wallet.redeem(nutshell_proofs)
            except Exception as e:
                # Nutshell surfaces mint rejections as plain exceptions
                raise ProofVerificationError(f"Mint {self.mint_url} rejected proofs: {e}") from e

        return sum(p.amount for p in keep) + sum(p.amount for p in send)


async def build_nutshell_registry(
    mints: Iterable[str],
    units: Iterable[CurrencyUnit],
    db_dir: Path,
) -> WalletRegistry:
    """
    Open one wallet per accepted mint and unit.

    A mint that cannot be reached or has no keyset for a unit is skipped and
    logged; payments for that pair are then rejected with WalletNotFoundError.
    """
    db_dir.mkdir(parents=True, exist_ok=True)
    units = list(units)
    wallets: List[NutshellMintWallet] = []
    for mint in mints:
        for unit in units:
            try:
                wallets.append(await NutshellMintWallet.open(mint, unit, db_dir))
            except ImportError:
                raise
            except Exception as e:
                logger.error(f"Could not load wallet for {mint} ({unit.value}), skipping: {e}", exc_info=True)
    return WalletRegistry(wallets)
