"""Tests for resolution, reward computation and claims."""
from datetime import datetime

import pytest

from app.domain.common.errors import (
    AlreadyClaimedError,
    AlreadyResolvedError,
    ForbiddenError,
    InvalidStateError,
    MarketNotEndedError,
    NotEligibleError,
    NotFoundError,
    NotResolvedError,
    WalletNotConfiguredError,
)
from app.domain.market.models import MarketOutcome, MarketStatus, Vote, VotePrediction
from app.domain.market.settlement import SettlementService, compute_rewards, staked_pools
from app.infra.db.repositories.market_repo import VoteRepositoryImpl
from app.infra.db.repositories.user_repo import UserRepositoryImpl


def _vote(vote_id: str, prediction: VotePrediction, amount: float) -> Vote:
    return Vote(
        id=vote_id,
        market_id="m",
        user_id=f"user-{vote_id}",
        prediction=prediction,
        amount=amount,
        created_at=datetime(2026, 1, 1),
    )


class TestComputeRewards:
    def test_winners_split_the_whole_pool(self):
        votes = [
            _vote("a", VotePrediction.YES, 10.0),
            _vote("b", VotePrediction.YES, 20.0),
            _vote("c", VotePrediction.NO, 70.0),
        ]

        plan = compute_rewards(votes, MarketOutcome.YES, yes_pool=30.0, no_pool=70.0)

        assert plan.rewards["a"] == pytest.approx(100 / 3)
        assert plan.rewards["b"] == pytest.approx(200 / 3)
        assert plan.rewards["c"] == 0.0
        assert sum(plan.rewards.values()) == pytest.approx(plan.total_pool)
        assert plan.winner_user_ids == {"user-a", "user-b"}
        assert plan.refunded is False

    def test_invalid_refunds_everyone(self):
        votes = [_vote("a", VotePrediction.YES, 4.0), _vote("b", VotePrediction.NO, 6.0)]

        plan = compute_rewards(votes, MarketOutcome.INVALID, yes_pool=4.0, no_pool=6.0)

        assert plan.rewards == {"a": 4.0, "b": 6.0}
        assert plan.refunded is True
        assert plan.winner_user_ids == set()

    def test_empty_winning_side_refunds_everyone(self):
        votes = [_vote("a", VotePrediction.YES, 4.0), _vote("b", VotePrediction.YES, 1.0)]

        plan = compute_rewards(votes, MarketOutcome.NO, yes_pool=5.0, no_pool=0.0)

        assert plan.rewards == {"a": 4.0, "b": 1.0}
        assert plan.refunded is True
        assert plan.winner_user_ids == set()

    def test_no_votes(self):
        plan = compute_rewards([], MarketOutcome.YES, yes_pool=0.0, no_pool=0.0)
        assert plan.rewards == {}
        assert plan.total_pool == 0.0


@pytest.fixture
def voted_market(lifecycle, active_market, members):
    """ACTIVE market with alice 10 YES, judge 20 YES and bob 70 NO."""

    async def _create():
        market = await active_market()
        await lifecycle.place_vote(market.id, members["alice"].id, VotePrediction.YES, 10.0)
        await lifecycle.place_vote(market.id, members["judge"].id, VotePrediction.YES, 20.0)
        await lifecycle.place_vote(market.id, members["bob"].id, VotePrediction.NO, 70.0)
        return market

    return _create


async def _votes_by_user(session_factory, market_id: str) -> dict:
    async with session_factory() as session:
        votes = await VoteRepositoryImpl(session).list_by_market(market_id)
    return {v.user_id: v for v in votes}


async def _user(session_factory, user_id: str):
    async with session_factory() as session:
        return await UserRepositoryImpl(session).get_by_id(user_id)


class TestResolve:
    async def test_thirty_seventy_market_resolves_yes(
        self, lifecycle, settlement, active_market, members, clock, session_factory
    ):
        market = await active_market(min_stake=1.0)
        await lifecycle.place_vote(market.id, members["alice"].id, VotePrediction.YES, 30.0)
        await lifecycle.place_vote(market.id, members["bob"].id, VotePrediction.NO, 70.0)

        before = (await lifecycle.get_market(market.id, include_on_chain=False)).market
        assert (before.yes_pool, before.no_pool) == (30.0, 70.0)
        assert before.yes_percentage == pytest.approx(30.0)
        assert before.no_percentage == pytest.approx(70.0)

        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)

        votes = await _votes_by_user(session_factory, market.id)
        assert votes[members["alice"].id].reward_amount == pytest.approx(100.0)
        assert votes[members["bob"].id].reward_amount == 0.0
        alice = await _user(session_factory, members["alice"].id)
        bob = await _user(session_factory, members["bob"].id)
        assert (alice.total_predictions, alice.correct_predictions) == (1, 1)
        assert (bob.total_predictions, bob.correct_predictions) == (1, 0)

    async def test_resolution_records_rewards_and_stats(
        self, settlement, voted_market, members, clock, session_factory
    ):
        market = await voted_market()
        clock.advance(days=2)

        resolved = await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES, note="It rained")

        assert resolved.status == MarketStatus.RESOLVED
        assert resolved.outcome == MarketOutcome.YES
        assert resolved.resolved_by_id == members["judge"].id
        assert resolved.resolution_note == "It rained"

        votes = await _votes_by_user(session_factory, market.id)
        assert votes[members["alice"].id].reward_amount == pytest.approx(100 / 3)
        assert votes[members["judge"].id].reward_amount == pytest.approx(200 / 3)
        assert votes[members["bob"].id].reward_amount == 0.0
        assert sum(v.reward_amount for v in votes.values()) == pytest.approx(resolved.total_volume)

        alice = await _user(session_factory, members["alice"].id)
        bob = await _user(session_factory, members["bob"].id)
        assert (alice.total_predictions, alice.correct_predictions) == (1, 1)
        assert (bob.total_predictions, bob.correct_predictions) == (1, 0)

    async def test_invalid_outcome_refunds_stakes(self, settlement, voted_market, members, clock, session_factory):
        market = await voted_market()
        clock.advance(days=2)

        await settlement.resolve(market.id, members["admin"].id, MarketOutcome.INVALID)

        votes = await _votes_by_user(session_factory, market.id)
        assert {uid: v.reward_amount for uid, v in votes.items()} == {
            members["alice"].id: 10.0,
            members["judge"].id: 20.0,
            members["bob"].id: 70.0,
        }
        alice = await _user(session_factory, members["alice"].id)
        assert (alice.total_predictions, alice.correct_predictions) == (1, 0)

    async def test_nobody_on_winning_side(
        self, lifecycle, settlement, active_market, members, clock, session_factory
    ):
        market = await active_market()
        await lifecycle.place_vote(market.id, members["alice"].id, VotePrediction.YES, 5.0)
        clock.advance(days=2)

        resolved = await settlement.resolve(market.id, members["judge"].id, MarketOutcome.NO)

        assert resolved.outcome == MarketOutcome.NO
        votes = await _votes_by_user(session_factory, market.id)
        assert votes[members["alice"].id].reward_amount == 5.0
        alice = await _user(session_factory, members["alice"].id)
        assert alice.correct_predictions == 0

    @pytest.mark.parametrize("resolver", ["alice", "outsider"])
    async def test_only_admins_and_judges_resolve(self, settlement, active_market, members, clock, resolver):
        market = await active_market()
        clock.advance(days=2)
        with pytest.raises(ForbiddenError):
            await settlement.resolve(market.id, members[resolver].id, MarketOutcome.YES)

    async def test_market_must_have_ended(self, settlement, active_market, members):
        market = await active_market()
        with pytest.raises(MarketNotEndedError):
            await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)

    async def test_resolves_once(self, settlement, active_market, members, clock):
        market = await active_market()
        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)

        with pytest.raises(AlreadyResolvedError):
            await settlement.resolve(market.id, members["admin"].id, MarketOutcome.NO)

    async def test_pending_market_cannot_be_resolved(self, lifecycle, settlement, market_input, members, clock):
        market = await lifecycle.create_off_chain(market_input())
        clock.advance(days=2)
        with pytest.raises(InvalidStateError) as exc_info:
            await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)
        assert not isinstance(exc_info.value, AlreadyResolvedError)

    async def test_unknown_market(self, settlement, members):
        with pytest.raises(NotFoundError):
            await settlement.resolve("missing", members["judge"].id, MarketOutcome.YES)

    async def test_payouts_use_stakes_after_chain_snapshot(
        self, settlement, sync_service, voted_market, gateway, members, clock, session_factory
    ):
        market = await voted_market()
        # Votes placed off-chain leave the contract's pools empty
        gateway.set_market(market.on_chain_id, status=0, outcome=0)
        synced = await sync_service.sync_one(market.id)
        assert (synced.yes_pool, synced.no_pool) == (0.0, 0.0)

        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)

        votes = await _votes_by_user(session_factory, market.id)
        assert votes[members["alice"].id].reward_amount == pytest.approx(10.0 / 30.0 * 100.0)
        assert votes[members["judge"].id].reward_amount == pytest.approx(20.0 / 30.0 * 100.0)
        assert votes[members["bob"].id].reward_amount == 0.0
        alice = await _user(session_factory, members["alice"].id)
        assert alice.correct_predictions == 1


def test_staked_pools():
    votes = [
        _vote("a", VotePrediction.YES, 10.0),
        _vote("b", VotePrediction.NO, 70.0),
        _vote("c", VotePrediction.YES, 20.0),
    ]
    assert staked_pools(votes) == (30.0, 70.0)
    assert staked_pools([]) == (0.0, 0.0)


class TestClaimReward:
    async def test_winner_claims_exactly_once(self, settlement, voted_market, members, clock, session_factory):
        market = await voted_market()
        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)

        vote = await settlement.claim_reward(market.id, members["alice"].id)

        assert vote.has_claimed_reward is True
        assert vote.reward_amount == pytest.approx(100 / 3)
        alice = await _user(session_factory, members["alice"].id)
        assert alice.total_earnings == pytest.approx(100 / 3)

        with pytest.raises(AlreadyClaimedError):
            await settlement.claim_reward(market.id, members["alice"].id)
        alice = await _user(session_factory, members["alice"].id)
        assert alice.total_earnings == pytest.approx(100 / 3)

    async def test_loser_is_not_eligible(self, settlement, voted_market, members, clock):
        market = await voted_market()
        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)

        with pytest.raises(NotEligibleError):
            await settlement.claim_reward(market.id, members["bob"].id)

    async def test_refund_is_claimable(self, settlement, voted_market, members, clock):
        market = await voted_market()
        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.INVALID)

        vote = await settlement.claim_reward(market.id, members["bob"].id)
        assert vote.reward_amount == 70.0

    async def test_claim_before_resolution(self, settlement, voted_market, members):
        market = await voted_market()
        with pytest.raises(NotResolvedError):
            await settlement.claim_reward(market.id, members["alice"].id)

    async def test_claim_without_vote(self, settlement, voted_market, members, clock):
        market = await voted_market()
        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.YES)

        with pytest.raises(NotFoundError):
            await settlement.claim_reward(market.id, members["admin"].id)


class TestPublishResolution:
    async def test_publishes_local_outcome(self, settlement, sync_service, voted_market, gateway, members, clock):
        market = await voted_market()
        clock.advance(days=2)
        await settlement.resolve(market.id, members["judge"].id, MarketOutcome.NO)

        tx_hash = await settlement.publish_resolution(market.id)

        assert tx_hash.startswith("0x")
        assert gateway.resolved == [(market.on_chain_id, 2)]

        gateway.set_market(market.on_chain_id, status=1, outcome=2)
        synced = await sync_service.sync_one(market.id)
        assert synced.status == MarketStatus.RESOLVED
        assert synced.outcome == MarketOutcome.NO

    async def test_requires_local_resolution(self, settlement, active_market, gateway):
        market = await active_market()
        with pytest.raises(NotResolvedError):
            await settlement.publish_resolution(market.id)
        assert gateway.resolved == []

    async def test_requires_signer(self, session_factory, clock):
        with pytest.raises(WalletNotConfiguredError):
            await SettlementService(session_factory, clock=clock).publish_resolution("any")

    async def test_unknown_market(self, settlement):
        with pytest.raises(NotFoundError):
            await settlement.publish_resolution("missing")
