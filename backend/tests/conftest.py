"""Pytest configuration and shared fixtures."""
import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

# Add the backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
from aptos_sdk.account import Account
from sqlalchemy.ext.asyncio import create_async_engine

from app.domain.common.retry import RetryPolicy
from app.domain.common.types import generate_id, utcnow
from app.domain.market.initialization import InitializationLockManager
from app.domain.market.models import (
    CreateMarketInput,
    GroupRole,
    MarketType,
    OnChainMarketData,
)
from app.domain.market.services import MarketLifecycleService
from app.domain.market.settlement import SettlementService
from app.domain.market.sync import MarketSyncService
from app.infra.chain.ledger_gateway import OCTAS_PER_MOVE, LedgerCallError, LedgerGateway
from app.infra.chain.relay_signer import RelaySigner, RelayWallet, is_transient_submission_error
from app.infra.db.base import Base, make_session_factory
from app.infra.db.models import *  # noqa: F401, F403
from app.infra.db.repositories.user_repo import GroupRepositoryImpl, UserRepositoryImpl

CONTRACT = "0x" + "ab" * 32


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests that need a real DB or RPC (deselect with '-m \"not integration\"')"
    )


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or utcnow().replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeLedgerGateway:
    """In-memory stand-in for LedgerGateway."""

    def __init__(self):
        self.contract_address = CONTRACT
        self.module = f"{CONTRACT}::market"
        self.balance_octas = 100 * OCTAS_PER_MOVE
        self.balance_error: Optional[Exception] = None
        self.created: list[dict] = []
        self.submit_errors: list[Exception] = []
        self.submit_delay = 0.0
        self.emit_event = True
        self.next_market_id = 0
        self.markets: dict[str, OnChainMarketData] = {}
        self.view_errors: dict[str, Exception] = {}
        self.balance_calls = 0
        self.resolved: list[tuple[str, int]] = []
        self.votes: dict[tuple[str, str], tuple[int, int, int]] = {}
        self.transactions: list[dict] = []

    async def get_account_balance(self, address: str) -> int:
        self.balance_calls += 1
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance_octas

    async def create_market(self, account, **kwargs) -> dict:
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        self.created.append(kwargs)
        market_id = str(self.next_market_id)
        self.next_market_id += 1
        tx_hash = "0x" + f"{len(self.created):064x}"
        events = []
        if self.emit_event:
            events.append({"type": f"{CONTRACT}::market::MarketCreated", "data": {"market_id": market_id}})
        return {"hash": tx_hash, "success": True, "events": events}

    def set_market(
        self,
        on_chain_id: str,
        status: int = 0,
        outcome: int = 0,
        yes_pool: float = 0.0,
        no_pool: float = 0.0,
        participant_count: int = 0,
    ) -> None:
        total = yes_pool + no_pool
        yes_pct = yes_pool / total * 100 if total else 50.0
        self.markets[on_chain_id] = OnChainMarketData(
            status=status,
            outcome=outcome,
            yes_pool=yes_pool,
            no_pool=no_pool,
            total_volume=total,
            yes_percentage=yes_pct,
            no_percentage=100 - yes_pct,
            participant_count=participant_count,
        )

    async def get_market_data(self, on_chain_id: str) -> OnChainMarketData:
        if on_chain_id in self.view_errors:
            raise self.view_errors[on_chain_id]
        if on_chain_id not in self.markets:
            raise LedgerCallError(f"Market {on_chain_id} not found on chain")
        return self.markets[on_chain_id]

    async def resolve_market(self, account, market_id: str, outcome: int) -> dict:
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        self.resolved.append((market_id, outcome))
        return {"hash": "0x" + "f" * 62 + f"{len(self.resolved):02x}", "success": True, "events": []}

    async def get_market_count(self) -> int:
        return self.next_market_id

    def set_vote(self, on_chain_id: str, voter: str, prediction: int, amount_octas: int, reward_octas: int = 0) -> None:
        self.votes[(on_chain_id, voter)] = (prediction, amount_octas, reward_octas)

    def _vote(self, on_chain_id: str, voter: str) -> tuple[int, int, int]:
        if (on_chain_id, voter) not in self.votes:
            raise LedgerCallError(f"No vote by {voter} on market {on_chain_id}")
        return self.votes[(on_chain_id, voter)]

    async def get_vote_prediction(self, on_chain_id: str, voter: str) -> int:
        return self._vote(on_chain_id, voter)[0]

    async def get_vote_amount(self, on_chain_id: str, voter: str) -> int:
        return self._vote(on_chain_id, voter)[1]

    async def calculate_reward(self, on_chain_id: str, voter: str) -> int:
        return self._vote(on_chain_id, voter)[2]

    async def get_account_transactions(self, address: str, limit: int = 25) -> list[dict]:
        return self.transactions[:limit]

    # Payload builders are pure; share the real ones
    _payload = LedgerGateway._payload
    build_create_market_payload = LedgerGateway.build_create_market_payload
    build_place_vote_payload = LedgerGateway.build_place_vote_payload
    build_resolve_payload = LedgerGateway.build_resolve_payload
    build_claim_reward_payload = LedgerGateway.build_claim_reward_payload

    async def aclose(self) -> None:
        pass


async def _no_sleep(_: float) -> None:
    return None


# Test database setup
@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions really use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeLedgerGateway:
    return FakeLedgerGateway()


@pytest.fixture
def wallet() -> RelayWallet:
    return RelayWallet(Account.generate())


@pytest.fixture
def signer(wallet, gateway) -> RelaySigner:
    return RelaySigner(
        wallet,
        gateway,
        min_balance=10.0,
        gas_buffer=0.1,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=0.0, retry_on=is_transient_submission_error),
        sleep=_no_sleep,
    )


@pytest.fixture
def locks(session_factory, clock) -> InitializationLockManager:
    return InitializationLockManager(session_factory, ttl_seconds=300, clock=clock)


@pytest.fixture
def lifecycle(session_factory, gateway, signer, locks, clock) -> MarketLifecycleService:
    return MarketLifecycleService(session_factory, gateway, signer, locks, clock=clock)


@pytest.fixture
def settlement(session_factory, clock, signer) -> SettlementService:
    return SettlementService(session_factory, clock=clock, signer=signer)


@pytest.fixture
def sync_service(session_factory, gateway) -> MarketSyncService:
    return MarketSyncService(session_factory, gateway)


@pytest.fixture
async def members(session_factory) -> dict:
    """A group with an admin, a judge, two members, plus an outsider."""
    users: dict = {}
    async with session_factory() as session:
        repo = UserRepositoryImpl(session)
        for name in ("admin", "judge", "alice", "bob", "outsider"):
            users[name] = await repo.get_or_create_by_wallet("0x" + name.encode().hex().rjust(64, "0"))

    group_id = generate_id()
    async with session_factory() as session:
        async with session.begin():
            groups = GroupRepositoryImpl(session)
            await groups.create_group("Friends", group_id=group_id)
            await groups.add_member(group_id, users["admin"].id, GroupRole.ADMIN)
            await groups.add_member(group_id, users["judge"].id, GroupRole.JUDGE)
            await groups.add_member(group_id, users["alice"].id)
            await groups.add_member(group_id, users["bob"].id)
    users["group_id"] = group_id
    return users


@pytest.fixture
def market_input(members, clock):
    """Factory for a valid CreateMarketInput in the test group."""

    def _build(**overrides) -> CreateMarketInput:
        values = dict(
            group_id=members["group_id"],
            title="Will it rain on Friday?",
            description="Resolves YES if any rain is recorded",
            market_type=MarketType.STANDARD,
            end_date=clock() + timedelta(days=1),
            min_stake=1.0,
            max_stake=None,
            created_by_id=members["admin"].id,
        )
        values.update(overrides)
        return CreateMarketInput(**values)

    return _build


@pytest.fixture
def active_market(lifecycle, market_input):
    """Factory: create a market and commit it on chain."""

    async def _create(**overrides):
        market = await lifecycle.create_off_chain(market_input(**overrides))
        await lifecycle.initialize(market.id)
        view = await lifecycle.get_market(market.id, include_on_chain=False)
        return view.market

    return _create
