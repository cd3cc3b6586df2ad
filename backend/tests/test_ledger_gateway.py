"""Tests for the ledger gateway read path and payload builders."""
import json

import httpx
import pytest

from app.domain.common.errors import ChainUnavailableError
from app.infra.chain.ledger_gateway import (
    OCTAS_PER_MOVE,
    LedgerCallError,
    LedgerGateway,
    from_octas,
    to_octas,
)

CONTRACT = "0x" + "cd" * 32
RPC = "https://rpc.test/v1"

VIEW_RESULTS = {
    "get_market_status": ["2"],
    "get_market_outcome": ["1"],
    "get_market_pools": [str(30 * OCTAS_PER_MOVE), str(70 * OCTAS_PER_MOVE)],
    "get_percentages": ["3000", "7000"],
    "get_participant_count": ["4"],
    "get_market_count": ["12"],
}


def _gateway(handler) -> LedgerGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=RPC)
    return LedgerGateway(RPC, CONTRACT, http_client=client)


def _view_handler(seen: list):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        name = body["function"].rsplit("::", 1)[-1]
        return httpx.Response(200, json=VIEW_RESULTS[name])

    return handler


class TestViews:
    async def test_view_request_shape(self):
        seen: list = []
        gateway = _gateway(_view_handler(seen))

        assert await gateway.get_market_status("5") == 2

        assert seen[0]["function"] == f"{CONTRACT}::market::get_market_status"
        assert seen[0]["arguments"] == [CONTRACT, "5"]
        assert seen[0]["type_arguments"] == []

    async def test_market_count(self):
        gateway = _gateway(_view_handler([]))
        assert await gateway.get_market_count() == 12

    async def test_market_data_in_display_units(self):
        gateway = _gateway(_view_handler([]))

        data = await gateway.get_market_data("5")

        assert data.status == 2
        assert data.outcome == 1
        assert data.yes_pool == 30.0
        assert data.no_pool == 70.0
        assert data.total_volume == 100.0
        assert data.yes_percentage == 30.0
        assert data.no_percentage == 70.0
        assert data.participant_count == 4

    async def test_server_errors_are_transient(self):
        gateway = _gateway(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(ChainUnavailableError):
            await gateway.get_market_status("5")

    async def test_rate_limit_is_transient(self):
        gateway = _gateway(lambda request: httpx.Response(429))
        with pytest.raises(ChainUnavailableError):
            await gateway.get_market_outcome("5")

    async def test_rejected_view_is_a_call_error(self):
        gateway = _gateway(lambda request: httpx.Response(400, json={"message": "E_MARKET_NOT_FOUND"}))
        with pytest.raises(LedgerCallError) as exc_info:
            await gateway.get_market_status("99")
        assert exc_info.value.retryable is False

    async def test_transport_failure_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = _gateway(handler)
        with pytest.raises(ChainUnavailableError):
            await gateway.get_participant_count("5")


class TestAccountBalance:
    async def test_wrapped_resource(self):
        gateway = _gateway(
            lambda request: httpx.Response(200, json={"type": "coin", "data": {"coin": {"value": "250000000"}}})
        )
        assert await gateway.get_account_balance("0x1") == 250_000_000

    async def test_bare_resource(self):
        gateway = _gateway(lambda request: httpx.Response(200, json={"coin": {"value": "42"}}))
        assert await gateway.get_account_balance("0x1") == 42

    async def test_missing_account_has_zero_balance(self):
        gateway = _gateway(lambda request: httpx.Response(404, json={"error_code": "resource_not_found"}))
        assert await gateway.get_account_balance("0x1") == 0

    async def test_unavailable_node(self):
        gateway = _gateway(lambda request: httpx.Response(502))
        with pytest.raises(ChainUnavailableError):
            await gateway.get_account_balance("0x1")


class TestAccountTransactions:
    async def test_newest_first_with_limit(self):
        seen: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"hash": "0x1", "version": "10"}, {"hash": "0x2", "version": "11"}])

        gateway = _gateway(handler)

        transactions = await gateway.get_account_transactions("0xabc", limit=2)

        assert [tx["hash"] for tx in transactions] == ["0x2", "0x1"]
        assert seen[0].url.path.endswith("/accounts/0xabc/transactions")
        assert seen[0].url.params["limit"] == "2"

    async def test_unknown_account_has_no_transactions(self):
        gateway = _gateway(lambda request: httpx.Response(404, json={"error_code": "account_not_found"}))
        assert await gateway.get_account_transactions("0xabc") == []

    async def test_unexpected_payload(self):
        gateway = _gateway(lambda request: httpx.Response(200, json={"message": "nope"}))
        with pytest.raises(LedgerCallError):
            await gateway.get_account_transactions("0xabc")


class TestPayloads:
    def setup_method(self):
        self.gateway = LedgerGateway(RPC, CONTRACT, http_client=httpx.AsyncClient())

    def test_place_vote_payload(self):
        payload = self.gateway.build_place_vote_payload("3", 1, 150_000_000)
        assert payload == {
            "function": f"{CONTRACT}::market::place_vote",
            "typeArguments": [],
            "functionArguments": [CONTRACT, "3", "1", "150000000"],
        }

    def test_create_market_payload_argument_order(self):
        payload = self.gateway.build_create_market_payload("T", "D", 1_900_000_000, 100, 0, "0x2", 1)
        assert payload["functionArguments"] == [CONTRACT, "T", "D", "1900000000", "100", "0", "0x2", "1"]

    def test_resolve_and_claim_payloads(self):
        assert self.gateway.build_resolve_payload("3", 2)["functionArguments"] == [CONTRACT, "3", "2"]
        assert self.gateway.build_claim_reward_payload("3")["function"].endswith("::market::claim_reward")


@pytest.mark.parametrize(
    "amount, octas",
    [(1.0, 100_000_000), (0.1, 10_000_000), (1.23456789, 123_456_789), (0.000000019, 1)],
)
def test_to_octas_rounds_down(amount, octas):
    assert to_octas(amount) == octas


def test_from_octas():
    assert from_octas(150_000_000) == 1.5
