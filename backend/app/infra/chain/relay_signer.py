"""Relay wallet: the single server-held key that pays gas for market creation."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from aptos_sdk.account import Account

from app.domain.common.errors import (
    ChainUnavailableError,
    DomainError,
    InsufficientBalanceError,
    TransactionFailedError,
    WalletNotConfiguredError,
)
from app.domain.common.retry import RetryPolicy, attempt_with_policy, is_retryable_error
from app.infra.chain.ledger_gateway import LedgerGateway, from_octas, to_octas

logger = logging.getLogger(__name__)

MARKET_CREATED_EVENT = "::market::MarketCreated"


def is_transient_submission_error(exc: BaseException) -> bool:
    """Only transport-level failures are retried; node rejections are final."""
    if isinstance(exc, ChainUnavailableError):
        return True
    if isinstance(exc, DomainError):
        return False
    return is_retryable_error(exc)


class RelayWallet:
    """Holds the relay key. Built once per process and shared by reference."""

    def __init__(self, account: Optional[Account] = None):
        self._account = account

    @classmethod
    def from_private_key(cls, private_key: str) -> "RelayWallet":
        if not private_key:
            return cls(None)
        try:
            account = Account.load_key(private_key.strip())
        except Exception as e:
            raise WalletNotConfiguredError(f"Invalid relay wallet private key: {e}") from e
        logger.info("Relay wallet loaded: %s", account.address())
        return cls(account)

    @classmethod
    def from_settings(cls, settings) -> "RelayWallet":
        wallet = cls.from_private_key(settings.relay_wallet_private_key)
        if not wallet.is_configured:
            logger.warning("RELAY_WALLET_PRIVATE_KEY not set; market initialization is disabled")
        return wallet

    @property
    def is_configured(self) -> bool:
        return self._account is not None

    @property
    def account(self) -> Account:
        if self._account is None:
            raise WalletNotConfiguredError()
        return self._account

    @property
    def address(self) -> str:
        return str(self.account.address())


@dataclass
class MarketCreationParams:
    """Market fields committed on chain. Stakes are display units; 0 max = unlimited."""
    title: str
    description: str
    end_time: int  # unix seconds
    min_stake: float
    max_stake: float
    market_type: int
    resolver: Optional[str] = None


@dataclass
class CreationReceipt:
    on_chain_id: str
    tx_hash: str
    from_event: bool


@dataclass
class BalanceReport:
    address: Optional[str]
    balance: float
    threshold: float
    healthy: bool


class RelaySigner:
    """Balance checks and serialized, retried submissions from the relay wallet."""

    def __init__(
        self,
        wallet: RelayWallet,
        gateway: LedgerGateway,
        min_balance: float = 10.0,
        gas_buffer: float = 0.1,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.wallet = wallet
        self.gateway = gateway
        self.min_balance = min_balance
        self.gas_buffer = gas_buffer
        self.retry_policy = retry_policy or RetryPolicy(retry_on=is_transient_submission_error)
        self._sleep = sleep
        # One in-flight submission per process keeps the account's sequence numbers ordered
        self._submit_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, wallet: RelayWallet, gateway: LedgerGateway, settings) -> "RelaySigner":
        return cls(
            wallet,
            gateway,
            min_balance=settings.relay_min_balance,
            gas_buffer=settings.relay_gas_buffer,
            retry_policy=RetryPolicy(
                max_attempts=settings.chain_retry_max_attempts,
                base_delay=settings.chain_retry_base_delay_seconds,
                multiplier=settings.chain_retry_backoff_multiplier,
                max_delay=settings.chain_retry_max_delay_seconds,
                retry_on=is_transient_submission_error,
            ),
        )

    def get_address(self) -> str:
        return self.wallet.address

    async def get_balance(self) -> float:
        """Relay balance in MOVE. Never raises: any failure reads as 0."""
        try:
            octas = await self.gateway.get_account_balance(self.wallet.address)
        except Exception as e:
            logger.error("Failed to get relay wallet balance: %s", e)
            return 0.0
        return from_octas(octas)

    async def has_sufficient_balance(self, gas_buffer: Optional[float] = None) -> bool:
        buffer = self.gas_buffer if gas_buffer is None else gas_buffer
        balance = await self.get_balance()
        required = self.min_balance + buffer
        if balance < required:
            logger.warning("Insufficient relay balance: %.4f MOVE (required: %.4f MOVE)", balance, required)
            return False
        return True

    async def _submit(self, operation: str, call: Callable[[Account], Awaitable[dict]]) -> dict:
        """Run one entry call under the submit lock and retry policy, with typed failures."""
        account = self.wallet.account

        async def _once() -> dict:
            async with self._submit_lock:
                return await call(account)

        try:
            return await attempt_with_policy(
                _once,
                self.retry_policy,
                operation=operation,
                sleep=self._sleep,
            )
        except (InsufficientBalanceError, TransactionFailedError, WalletNotConfiguredError):
            raise
        except DomainError as e:
            raise TransactionFailedError(f"{operation} failed: {e.message}") from e
        except Exception as e:
            if "insufficient" in str(e).lower():
                raise InsufficientBalanceError("Relay wallet has insufficient balance for gas") from e
            raise TransactionFailedError(f"{operation} failed: {e}") from e

    async def submit_market_creation(self, params: MarketCreationParams) -> CreationReceipt:
        """Commit a market on chain. Callers gate on has_sufficient_balance first."""
        resolver = params.resolver or self.wallet.address

        logger.info("Submitting create_market for %r", params.title)
        transaction = await self._submit(
            "create_market",
            lambda account: self.gateway.create_market(
                account,
                title=params.title,
                description=params.description,
                end_time=params.end_time,
                min_stake_octas=to_octas(params.min_stake),
                max_stake_octas=to_octas(params.max_stake),
                resolver=resolver,
                market_type=params.market_type,
            ),
        )

        receipt = self._receipt_from(transaction)
        logger.info("Market created on chain: id=%s tx=%s", receipt.on_chain_id, receipt.tx_hash)
        return receipt

    async def submit_resolution(self, on_chain_id: str, outcome: int) -> str:
        """Resolve a market on chain as its resolver; returns the transaction hash."""
        logger.info("Submitting resolve for on-chain market %s with outcome %d", on_chain_id, outcome)
        transaction = await self._submit(
            "resolve",
            lambda account: self.gateway.resolve_market(account, on_chain_id, outcome),
        )
        tx_hash = transaction.get("hash", "")
        logger.info("Market %s resolved on chain (tx %s)", on_chain_id, tx_hash)
        return tx_hash

    @staticmethod
    def _receipt_from(transaction: dict) -> CreationReceipt:
        tx_hash = transaction.get("hash", "")
        for event in transaction.get("events") or []:
            if MARKET_CREATED_EVENT in event.get("type", ""):
                market_id = (event.get("data") or {}).get("market_id")
                if market_id is not None:
                    return CreationReceipt(on_chain_id=str(market_id), tx_hash=tx_hash, from_event=True)
        logger.warning("MarketCreated event missing in %s; using transaction hash as market id", tx_hash)
        return CreationReceipt(on_chain_id=tx_hash, tx_hash=tx_hash, from_event=False)

    async def monitor_balance(self) -> BalanceReport:
        """Log relay wallet health. Never raises."""
        if not self.wallet.is_configured:
            logger.warning("Relay wallet not configured; skipping balance check")
            return BalanceReport(address=None, balance=0.0, threshold=self.min_balance, healthy=False)
        balance = await self.get_balance()
        healthy = balance >= self.min_balance
        if healthy:
            logger.info("Relay wallet balance: %.4f MOVE", balance)
        else:
            logger.warning(
                "Relay wallet balance low: %.4f MOVE (threshold %.4f MOVE) at %s",
                balance,
                self.min_balance,
                self.wallet.address,
            )
        return BalanceReport(
            address=self.wallet.address,
            balance=balance,
            threshold=self.min_balance,
            healthy=healthy,
        )
