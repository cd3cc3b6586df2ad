"""Ledger gateway: view calls and entry transactions against the market contract.

Reads go through the fullnode REST API (``POST /view``, account resources);
writes are BCS-signed entry functions submitted with aptos-sdk. The gateway
knows function names and numeric encodings, nothing about business rules.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from aptos_sdk.account import Account
from aptos_sdk.account_address import AccountAddress
from aptos_sdk.async_client import ApiError, RestClient
from aptos_sdk.bcs import Serializer
from aptos_sdk.transactions import EntryFunction, TransactionArgument, TransactionPayload

from app.domain.common.errors import (
    ChainUnavailableError,
    DomainError,
    InsufficientBalanceError,
    TransactionFailedError,
)
from app.domain.market.models import OnChainMarketData

logger = logging.getLogger(__name__)

OCTAS_PER_MOVE = 100_000_000
COIN_STORE_RESOURCE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"
BASIS_POINTS = 100  # basis points per percent


class LedgerCallError(DomainError):
    """The node rejected a call (bad arguments, missing market, aborted view)."""

    code = "BLOCKCHAIN_CALL_FAILED"
    status_code = 502


def to_octas(amount: float) -> int:
    """Display units to the chain's integer unit, rounding down."""
    return int(Decimal(str(amount)) * OCTAS_PER_MOVE)


def from_octas(octas: int) -> float:
    return int(octas) / OCTAS_PER_MOVE


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class LedgerGateway:
    """Thin adapter over the ``<contract>::market`` Move module."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
        rest_client: Optional[RestClient] = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.contract_address = contract_address
        self.module = f"{contract_address}::market"
        self._http = http_client or httpx.AsyncClient(base_url=self.rpc_url, timeout=timeout)
        self._rest = rest_client

    @classmethod
    def from_settings(cls, settings) -> "LedgerGateway":
        return cls(
            rpc_url=settings.movement_rpc_url,
            contract_address=settings.movement_contract_address,
            timeout=settings.chain_request_timeout_seconds,
        )

    def _rest_client(self) -> RestClient:
        if self._rest is None:
            self._rest = RestClient(self.rpc_url)
        return self._rest

    async def aclose(self) -> None:
        await self._http.aclose()
        if self._rest is not None:
            await self._rest.close()

    # ==================== Reads ====================

    async def _view(self, function: str, *arguments: Any) -> list:
        payload = {
            "function": f"{self.module}::{function}",
            "type_arguments": [],
            "arguments": [self.contract_address, *[str(a) for a in arguments]],
        }
        try:
            response = await self._http.post("/view", json=payload)
        except httpx.TransportError as e:
            raise ChainUnavailableError(f"View {function} failed: {e}") from e
        if _is_transient_status(response.status_code):
            raise ChainUnavailableError(f"View {function} failed with status {response.status_code}")
        if response.status_code >= 400:
            raise LedgerCallError(f"View {function} rejected ({response.status_code}): {response.text}")
        result = response.json()
        if not isinstance(result, list):
            raise LedgerCallError(f"View {function} returned unexpected payload: {result!r}")
        return result

    async def get_market_count(self) -> int:
        return int((await self._view("get_market_count"))[0])

    async def get_market_status(self, market_id: str) -> int:
        return int((await self._view("get_market_status", market_id))[0])

    async def get_market_outcome(self, market_id: str) -> int:
        return int((await self._view("get_market_outcome", market_id))[0])

    async def get_market_pools(self, market_id: str) -> tuple[int, int]:
        """(yes_pool, no_pool) in octas."""
        result = await self._view("get_market_pools", market_id)
        return int(result[0]), int(result[1])

    async def get_percentages(self, market_id: str) -> tuple[int, int]:
        """(yes, no) in basis points."""
        result = await self._view("get_percentages", market_id)
        return int(result[0]), int(result[1])

    async def get_participant_count(self, market_id: str) -> int:
        return int((await self._view("get_participant_count", market_id))[0])

    async def get_vote_prediction(self, market_id: str, voter_address: str) -> int:
        return int((await self._view("get_vote_prediction", market_id, voter_address))[0])

    async def get_vote_amount(self, market_id: str, voter_address: str) -> int:
        return int((await self._view("get_vote_amount", market_id, voter_address))[0])

    async def calculate_reward(self, market_id: str, voter_address: str) -> int:
        return int((await self._view("calculate_reward", market_id, voter_address))[0])

    async def get_market_data(self, market_id: str) -> OnChainMarketData:
        """Status, outcome, pools, percentages and participants in one snapshot."""
        status, outcome, pools, percentages, participants = await asyncio.gather(
            self.get_market_status(market_id),
            self.get_market_outcome(market_id),
            self.get_market_pools(market_id),
            self.get_percentages(market_id),
            self.get_participant_count(market_id),
        )
        yes_pool, no_pool = from_octas(pools[0]), from_octas(pools[1])
        return OnChainMarketData(
            status=status,
            outcome=outcome,
            yes_pool=yes_pool,
            no_pool=no_pool,
            total_volume=yes_pool + no_pool,
            yes_percentage=percentages[0] / BASIS_POINTS,
            no_percentage=percentages[1] / BASIS_POINTS,
            participant_count=participants,
        )

    async def get_account_balance(self, address: str) -> int:
        """Native coin balance in octas; 0 for accounts that do not exist yet."""
        try:
            response = await self._http.get(f"/accounts/{address}/resource/{COIN_STORE_RESOURCE}")
        except httpx.TransportError as e:
            raise ChainUnavailableError(f"Balance lookup failed: {e}") from e
        if response.status_code == 404:
            return 0
        if _is_transient_status(response.status_code):
            raise ChainUnavailableError(f"Balance lookup failed with status {response.status_code}")
        if response.status_code >= 400:
            raise LedgerCallError(f"Balance lookup rejected ({response.status_code}): {response.text}")
        body = response.json()
        # Standard fullnodes wrap the resource in "data"; Movement RPC may not
        data = body.get("data", body) if isinstance(body, dict) else {}
        coin = data.get("coin") if isinstance(data, dict) else None
        if not coin or "value" not in coin:
            logger.warning("Unexpected coin resource shape for %s: %s", address, body)
            return 0
        return int(coin["value"])

    async def get_account_transactions(self, address: str, limit: int = 25) -> list[dict]:
        """Most recent transactions sent by ``address``, newest first."""
        try:
            response = await self._http.get(f"/accounts/{address}/transactions", params={"limit": limit})
        except httpx.TransportError as e:
            raise ChainUnavailableError(f"Transaction lookup failed: {e}") from e
        if response.status_code == 404:
            return []
        if _is_transient_status(response.status_code):
            raise ChainUnavailableError(f"Transaction lookup failed with status {response.status_code}")
        if response.status_code >= 400:
            raise LedgerCallError(f"Transaction lookup rejected ({response.status_code}): {response.text}")
        transactions = response.json()
        if not isinstance(transactions, list):
            raise LedgerCallError(f"Transaction lookup returned unexpected payload: {transactions!r}")
        # The node returns ascending sequence numbers
        return list(reversed(transactions))

    # ==================== Entry functions ====================

    def _address_arg(self, address: str) -> TransactionArgument:
        return TransactionArgument(AccountAddress.from_str(address), Serializer.struct)

    async def submit_entry(
        self, account: Account, function: str, arguments: list[TransactionArgument]
    ) -> dict:
        """Sign, submit and wait for an entry function; returns the committed transaction."""
        rest = self._rest_client()
        payload = TransactionPayload(EntryFunction.natural(self.module, function, [], arguments))
        try:
            signed = await rest.create_bcs_signed_transaction(account, payload)
            tx_hash = await rest.submit_bcs_transaction(signed)
        except httpx.TransportError as e:
            raise ChainUnavailableError(f"Submitting {function} failed: {e}") from e
        except ApiError as e:
            message = str(e)
            if _is_transient_status(getattr(e, "status_code", 500)):
                raise ChainUnavailableError(f"Submitting {function} failed: {message}") from e
            if "INSUFFICIENT_BALANCE" in message.upper():
                raise InsufficientBalanceError(f"Relay account cannot pay gas for {function}") from e
            raise TransactionFailedError(f"Node rejected {function}: {message}") from e

        try:
            await rest.wait_for_transaction(tx_hash)
        except httpx.TransportError as e:
            raise ChainUnavailableError(f"Waiting for {tx_hash} failed: {e}") from e
        except AssertionError as e:
            # aptos-sdk signals both timeouts and VM failures with assertions
            if "timed out" in str(e):
                raise ChainUnavailableError(f"Transaction {tx_hash} not confirmed in time") from e
            raise TransactionFailedError(f"Transaction {tx_hash} failed: {e}", tx_hash=tx_hash) from e

        try:
            return await rest.transaction_by_hash(tx_hash)
        except (httpx.TransportError, ApiError) as e:
            logger.warning("Could not fetch committed transaction %s: %s", tx_hash, e)
            return {"hash": tx_hash, "events": []}

    async def create_market(
        self,
        account: Account,
        *,
        title: str,
        description: str,
        end_time: int,
        min_stake_octas: int,
        max_stake_octas: int,
        resolver: str,
        market_type: int,
    ) -> dict:
        """``create_market(admin, title, description, end_time, min, max, resolver, type)``."""
        arguments = [
            self._address_arg(self.contract_address),
            TransactionArgument(title, Serializer.str),
            TransactionArgument(description, Serializer.str),
            TransactionArgument(end_time, Serializer.u64),
            TransactionArgument(min_stake_octas, Serializer.u64),
            TransactionArgument(max_stake_octas, Serializer.u64),
            self._address_arg(resolver),
            TransactionArgument(market_type, Serializer.u8),
        ]
        return await self.submit_entry(account, "create_market", arguments)

    async def resolve_market(self, account: Account, market_id: str, outcome: int) -> dict:
        arguments = [
            self._address_arg(self.contract_address),
            TransactionArgument(int(market_id), Serializer.u64),
            TransactionArgument(outcome, Serializer.u8),
        ]
        return await self.submit_entry(account, "resolve", arguments)

    # ==================== Payloads for client-side signing ====================

    def _payload(self, function: str, *arguments: Any) -> dict:
        return {
            "function": f"{self.module}::{function}",
            "typeArguments": [],
            "functionArguments": [self.contract_address, *[str(a) for a in arguments]],
        }

    def build_create_market_payload(
        self,
        title: str,
        description: str,
        end_time: int,
        min_stake_octas: int,
        max_stake_octas: int,
        resolver: str,
        market_type: int = 0,
    ) -> dict:
        return self._payload(
            "create_market", title, description, end_time, min_stake_octas, max_stake_octas, resolver, market_type
        )

    def build_place_vote_payload(self, market_id: str, prediction: int, amount_octas: int) -> dict:
        return self._payload("place_vote", market_id, prediction, amount_octas)

    def build_resolve_payload(self, market_id: str, outcome: int) -> dict:
        return self._payload("resolve", market_id, outcome)

    def build_claim_reward_payload(self, market_id: str) -> dict:
        return self._payload("claim_reward", market_id)
