"""Tests for the relay wallet and signer."""
import pytest
from aptos_sdk.account import Account

from app.domain.common.errors import (
    ChainUnavailableError,
    InsufficientBalanceError,
    TransactionFailedError,
    WalletNotConfiguredError,
)
from app.infra.chain.ledger_gateway import OCTAS_PER_MOVE
from app.infra.chain.relay_signer import MarketCreationParams, RelaySigner, RelayWallet

PARAMS = MarketCreationParams(
    title="Will it rain?",
    description="",
    end_time=1_900_000_000,
    min_stake=1.5,
    max_stake=0,
    market_type=0,
)


class TestRelayWallet:
    def test_unconfigured_wallet_raises_on_use(self):
        wallet = RelayWallet.from_private_key("")
        assert not wallet.is_configured
        with pytest.raises(WalletNotConfiguredError):
            _ = wallet.address

    def test_invalid_key_is_rejected(self):
        with pytest.raises(WalletNotConfiguredError):
            RelayWallet.from_private_key("not-a-key")

    def test_address_comes_from_the_account(self):
        account = Account.generate()
        wallet = RelayWallet(account)
        assert wallet.address == str(account.address())


class TestBalance:
    async def test_balance_in_display_units(self, signer, gateway):
        gateway.balance_octas = 25 * OCTAS_PER_MOVE
        assert await signer.get_balance() == 25.0

    async def test_balance_never_raises(self, signer, gateway):
        gateway.balance_error = ChainUnavailableError("rpc down")
        assert await signer.get_balance() == 0.0

    async def test_unconfigured_wallet_balance_is_zero(self, gateway):
        signer = RelaySigner(RelayWallet(None), gateway)
        assert await signer.get_balance() == 0.0

    async def test_sufficient_balance_includes_gas_buffer(self, signer, gateway):
        gateway.balance_octas = int(10.2 * OCTAS_PER_MOVE)
        assert await signer.has_sufficient_balance()
        gateway.balance_octas = int(10.05 * OCTAS_PER_MOVE)
        assert not await signer.has_sufficient_balance()
        assert await signer.has_sufficient_balance(gas_buffer=0.0)

    async def test_monitor_reports_low_balance(self, signer, gateway):
        gateway.balance_octas = 3 * OCTAS_PER_MOVE
        report = await signer.monitor_balance()
        assert report.healthy is False
        assert report.balance == 3.0
        assert report.threshold == 10.0

    async def test_monitor_never_raises(self, signer, gateway):
        gateway.balance_error = RuntimeError("unexpected")
        report = await signer.monitor_balance()
        assert report.healthy is False

    async def test_monitor_without_wallet(self, gateway):
        report = await RelaySigner(RelayWallet(None), gateway).monitor_balance()
        assert report.address is None
        assert report.healthy is False


class TestSubmitMarketCreation:
    async def test_on_chain_id_comes_from_event(self, signer, gateway):
        gateway.next_market_id = 7
        receipt = await signer.submit_market_creation(PARAMS)

        assert receipt.on_chain_id == "7"
        assert receipt.from_event is True
        assert gateway.created[0]["min_stake_octas"] == 150_000_000
        assert gateway.created[0]["max_stake_octas"] == 0
        assert gateway.created[0]["resolver"] == signer.get_address()

    async def test_falls_back_to_transaction_hash(self, signer, gateway):
        gateway.emit_event = False
        receipt = await signer.submit_market_creation(PARAMS)

        assert receipt.from_event is False
        assert receipt.on_chain_id == receipt.tx_hash

    async def test_transient_errors_are_retried(self, signer, gateway):
        gateway.submit_errors = [ChainUnavailableError("503"), ChainUnavailableError("503")]
        receipt = await signer.submit_market_creation(PARAMS)

        assert receipt.on_chain_id == "0"
        assert len(gateway.created) == 1

    async def test_exhausted_retries_surface_as_transaction_failed(self, signer, gateway):
        gateway.submit_errors = [ChainUnavailableError("503")] * 3
        with pytest.raises(TransactionFailedError) as exc_info:
            await signer.submit_market_creation(PARAMS)
        assert exc_info.value.retryable
        assert gateway.created == []

    async def test_rejection_is_not_retried(self, signer, gateway):
        gateway.submit_errors = [TransactionFailedError("Move abort"), ChainUnavailableError("unused")]
        with pytest.raises(TransactionFailedError):
            await signer.submit_market_creation(PARAMS)
        assert len(gateway.submit_errors) == 1

    async def test_gas_shortfall_maps_to_insufficient_balance(self, signer, gateway):
        gateway.submit_errors = [RuntimeError("INSUFFICIENT_BALANCE_FOR_TRANSACTION_FEE")]
        with pytest.raises(InsufficientBalanceError):
            await signer.submit_market_creation(PARAMS)

    async def test_unconfigured_wallet_cannot_submit(self, gateway):
        signer = RelaySigner(RelayWallet(None), gateway)
        with pytest.raises(WalletNotConfiguredError):
            await signer.submit_market_creation(PARAMS)
        assert gateway.created == []


class TestSubmitResolution:
    async def test_resolves_with_outcome_code(self, signer, gateway):
        tx_hash = await signer.submit_resolution("4", 2)

        assert gateway.resolved == [("4", 2)]
        assert tx_hash.startswith("0x")

    async def test_transient_errors_are_retried(self, signer, gateway):
        gateway.submit_errors = [ChainUnavailableError("503")]
        await signer.submit_resolution("4", 1)
        assert gateway.resolved == [("4", 1)]

    async def test_rejection_surfaces_as_transaction_failed(self, signer, gateway):
        gateway.submit_errors = [TransactionFailedError("E_ALREADY_RESOLVED")]
        with pytest.raises(TransactionFailedError):
            await signer.submit_resolution("4", 1)
        assert gateway.resolved == []

    async def test_unconfigured_wallet_cannot_resolve(self, gateway):
        signer = RelaySigner(RelayWallet(None), gateway)
        with pytest.raises(WalletNotConfiguredError):
            await signer.submit_resolution("4", 1)
