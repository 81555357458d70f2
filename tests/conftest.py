"""
Shared fixtures: an in-memory registry, a fresh operator key, and an
AsyncMock ledger. Nothing here touches the network or the working directory.
"""

from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from vacuum.core.config import Settings, get_settings
from vacuum.core.helpers import TOKEN_ACCOUNT_RENT
from vacuum.schemas.ledger import AccountInfo, TokenAccountInfo
from vacuum.services.context import VacuumContext
from vacuum.services.registry import Registry
from vacuum.services.solana_client import SolanaLedger

TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_RENT = TOKEN_ACCOUNT_RENT


def new_address() -> str:
    return str(Pubkey.new_unique())


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep a developer's shell or .env from leaking into Settings."""
    for name in ("TREASURY_ADDRESS", "DRY_RUN", "MIN_INACTIVE_DAYS", "WEBHOOK_URL", "SOLANA_RPC_URL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def treasury() -> str:
    return new_address()


@pytest.fixture
def settings(tmp_path, treasury) -> Settings:
    return Settings(
        _env_file=None,
        treasury_address=treasury,
        operator_keypair_path=tmp_path / "operator-keypair.json",
        db_path=tmp_path / "accounts.db",
        dry_run=False,
        min_inactive_days=7,
    )


@pytest.fixture
def operator() -> Keypair:
    return Keypair()


@pytest.fixture
def registry() -> Registry:
    return Registry.open("sqlite://")


@pytest.fixture
def ledger() -> AsyncMock:
    mock = AsyncMock(spec=SolanaLedger)
    mock.fetch_account_info.return_value = None
    mock.fetch_token_account.return_value = None
    mock.fetch_owned_token_accounts.return_value = []
    return mock


@pytest.fixture
def ctx(settings, ledger, registry, operator) -> VacuumContext:
    return VacuumContext(settings=settings, ledger=ledger, registry=registry, operator=operator)


def account_info(lamports: int = TOKEN_RENT, owner: str = TOKEN_PROGRAM) -> AccountInfo:
    return AccountInfo(lamports=lamports, owner=owner, data_len=165)


def token_info(owner: str, amount: int = 0, lamports: int = TOKEN_RENT, mint: str = None) -> TokenAccountInfo:
    return TokenAccountInfo(
        mint=mint or new_address(),
        owner=owner,
        amount=amount,
        lamports=lamports,
        program_id=TOKEN_PROGRAM,
    )
