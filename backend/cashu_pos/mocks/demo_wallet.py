"""
Demo Mint Wallet

Stands in for a real mint when demo_mode is enabled. It performs no
cryptography: proofs are accepted at face value, except that a secret can
only be spent once and a few test secrets trigger specific rejections.
"""
import logging
from typing import Dict, Iterable, Sequence, Set

from ..exceptions import ProofVerificationError
from ..models.payments import Proof
from ..models.quotes import CurrencyUnit
from ..wallets.base import WalletRegistry

logger = logging.getLogger(__name__)


# Test secrets that trigger specific rejections
REJECT_SECRETS: Dict[str, str] = {
    "invalid": "Proof signature invalid",
    "spent": "Token already spent",
    "unknown_keyset": "Keyset not found",
}


class DemoMintWallet:
    """Accept-all wallet for one mint and unit."""

    def __init__(self, mint_url: str, unit: CurrencyUnit):
        self.mint_url = mint_url
        self.unit = unit
        self._spent_secrets: Set[str] = set()

    async def receive_proofs(self, proofs: Sequence[Proof]) -> int:
        for proof in proofs:
            if proof.secret in REJECT_SECRETS:
                raise ProofVerificationError(REJECT_SECRETS[proof.secret])
            if proof.secret in self._spent_secrets:
                raise ProofVerificationError("Token already spent")

        self._spent_secrets.update(proof.secret for proof in proofs)
        amount = sum(proof.amount for proof in proofs)

        logger.info(f"[demo] Accepted {len(proofs)} proofs worth {amount} {self.unit.value} from {self.mint_url}")
        return amount


def build_demo_registry(mints: Iterable[str], units: Iterable[CurrencyUnit]) -> WalletRegistry:
    units = list(units)
    return WalletRegistry(DemoMintWallet(mint, unit) for mint in mints for unit in units)
