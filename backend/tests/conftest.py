"""
Pytest configuration and fixtures.

Every test gets its own SQLite file under tmp_path and fake wallets injected
through the QuoteService constructor.
"""
import asyncio
import uuid
from typing import Any, AsyncGenerator, List, Optional, Sequence

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cashu_pos.config import Settings
from cashu_pos.db.init_db import create_engine
from cashu_pos.db.quote_store import QuoteStore
from cashu_pos.db.settlement_store import SettlementStore
from cashu_pos.main import create_app
from cashu_pos.models.payments import Proof
from cashu_pos.models.quotes import CurrencyUnit
from cashu_pos.services.quote_service import QuoteService
from cashu_pos.wallets.base import WalletRegistry

MINT_URL = "https://mint.example.com"
OTHER_MINT_URL = "https://other-mint.example.com"
PAYMENT_URL = "http://pos.test/payment"


class FakeWallet:
    """MintWallet double recording every redemption."""

    def __init__(
        self,
        mint_url: str,
        unit: CurrencyUnit,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.mint_url = mint_url
        self.unit = unit
        self.error = error
        self.delay = delay
        self.calls: List[List[Proof]] = []

    async def receive_proofs(self, proofs: Sequence[Proof]) -> int:
        self.calls.append(list(proofs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return sum(proof.amount for proof in proofs)


def make_proofs(*amounts: int) -> List[Proof]:
    return [
        Proof(amount=amount, id="009a1f293253e41e", secret=uuid.uuid4().hex, C="02" + "ab" * 32)
        for amount in amounts
    ]


def proofs_json(*amounts: int) -> List[dict]:
    return [proof.model_dump(exclude_none=True) for proof in make_proofs(*amounts)]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep a developer's ~/.cashu-pos/config.toml out of the tests."""
    monkeypatch.setenv("CASHU_POS_CONFIG_FILE", str(tmp_path / "missing-config.toml"))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(tmp_path / "pos.db")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def quote_store(engine) -> QuoteStore:
    store = QuoteStore(engine)
    await store.create()
    return store


@pytest_asyncio.fixture
async def settlement_store(engine, quote_store) -> SettlementStore:
    store = SettlementStore(engine)
    await store.create()
    return store


@pytest.fixture
def sat_wallet() -> FakeWallet:
    return FakeWallet(MINT_URL, CurrencyUnit.SAT)


@pytest.fixture
def usd_wallet() -> FakeWallet:
    return FakeWallet(MINT_URL, CurrencyUnit.USD)


@pytest.fixture
def wallets(sat_wallet, usd_wallet) -> WalletRegistry:
    return WalletRegistry([sat_wallet, usd_wallet])


@pytest.fixture
def quote_service(quote_store, settlement_store, wallets) -> QuoteService:
    return QuoteService(
        store=quote_store,
        settlements=settlement_store,
        wallets=wallets,
        accepted_mints=[MINT_URL],
        payment_url=PAYMENT_URL,
    )


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        pos={"payment_url": PAYMENT_URL, "accepted_mints": [MINT_URL]},
        work_dir=tmp_path,
        log_level="DEBUG",
    )


@pytest_asyncio.fixture
async def client(test_settings, quote_service) -> AsyncGenerator[AsyncClient, Any]:
    """HTTP client bound to an app using the test quote service."""
    app = create_app(test_settings, quote_service=quote_service)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
