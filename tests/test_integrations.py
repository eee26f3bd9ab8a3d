"""
Tests for the Slack and PokeAPI clients and the action executor

HTTP is served by httpx.MockTransport; no network access.
"""
import json

import httpx
import pytest
from circuitbreaker import CircuitBreakerMonitor

from execution.actions import Action
from execution.errors import ExecutorError, UpstreamUnavailableError
from execution.executor import ActionExecutor
from integrations.pokemon import PokemonClient
from integrations.slack import SlackClient

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXX"


def mock_http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSlackClient:
    """Test suite for SlackClient"""

    @pytest.fixture
    def requests(self):
        return []

    @pytest.fixture
    def slack(self, requests):
        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="ok")
        return SlackClient(mock_http(handler), default_webhook_url=WEBHOOK)

    @pytest.mark.asyncio
    async def test_send_message(self, slack, requests):
        """Test a plain message is posted as {text}"""
        result = await slack.send_message("deploy finished")

        assert result == {"status": "ok", "message": "Message sent successfully"}
        assert str(requests[0].url) == WEBHOOK
        assert json.loads(requests[0].content) == {"text": "deploy finished"}

    @pytest.mark.asyncio
    async def test_send_formatted_with_override_url(self, slack, requests):
        """Test a formatted payload is posted verbatim to the given webhook"""
        payload = {"blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": "*hi*"}}]}
        other = "https://hooks.slack.test/services/OTHER"

        result = await slack.send_formatted_message(payload, webhook_url=other)

        assert result["message"] == "Formatted message sent successfully"
        assert str(requests[0].url) == other
        assert json.loads(requests[0].content) == payload

    @pytest.mark.asyncio
    async def test_missing_webhook(self):
        """Test no configured webhook fails before any request"""
        slack = SlackClient(mock_http(lambda request: httpx.Response(200)))

        with pytest.raises(ExecutorError) as exc_info:
            await slack.send_message("hi")
        assert exc_info.value.message == "Slack webhook URL not configured"

    @pytest.mark.asyncio
    async def test_client_error_response(self):
        """Test a 4xx response is an executor error naming the status"""
        slack = SlackClient(mock_http(lambda request: httpx.Response(404)),
                            default_webhook_url=WEBHOOK)

        with pytest.raises(ExecutorError) as exc_info:
            await slack.send_message("hi")
        assert exc_info.value.message == "Slack API error: 404 Not Found"
        assert not isinstance(exc_info.value, UpstreamUnavailableError)

    @pytest.mark.asyncio
    async def test_circuit_opens_after_server_errors(self):
        """Test repeated 5xx responses open the circuit"""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        slack = SlackClient(mock_http(handler), default_webhook_url=WEBHOOK,
                            failure_threshold=2, recovery_timeout=60)

        for _ in range(2):
            with pytest.raises(UpstreamUnavailableError):
                await slack.send_message("hi")

        with pytest.raises(ExecutorError) as exc_info:
            await slack.send_message("hi")
        assert "unavailable" in exc_info.value.message
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_do_not_open_circuit(self):
        """Test 4xx responses never trip the breaker"""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400)

        slack = SlackClient(mock_http(handler), default_webhook_url=WEBHOOK, failure_threshold=1)

        for _ in range(3):
            with pytest.raises(ExecutorError):
                await slack.send_message("hi")
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_breakers_are_per_client_with_stable_name(self):
        """Test clients share a registry name but keep separate circuit state"""
        failing = SlackClient(mock_http(lambda request: httpx.Response(503)),
                              default_webhook_url=WEBHOOK, failure_threshold=1)
        healthy = SlackClient(mock_http(lambda request: httpx.Response(200)),
                              default_webhook_url=WEBHOOK, failure_threshold=1)

        with pytest.raises(UpstreamUnavailableError):
            await failing.send_message("hi")

        assert failing.breaker.opened
        assert (await healthy.send_message("hi"))["status"] == "ok"
        assert failing.breaker.name == healthy.breaker.name == "Slack"
        assert [n for n in CircuitBreakerMonitor.circuit_breakers if n.startswith("Slack")] == ["Slack"]


class TestPokemonClient:
    """Test suite for PokemonClient"""

    @pytest.fixture
    def requests(self):
        return []

    @pytest.fixture
    def pokemon(self, requests):
        def handler(request):
            requests.append(request)
            path = request.url.path
            if path == "/api/v2/pokemon/pikachu":
                return httpx.Response(200, json={
                    "name": "pikachu", "id": 25, "height": 4, "weight": 60,
                    "types": [{"type": {"name": "electric"}}],
                    "abilities": [{"ability": {"name": "static"}}],
                    "stats": [{"stat": {"name": "speed"}, "base_stat": 90}]
                })
            if path == "/api/v2/ability/static":
                return httpx.Response(200, json={
                    "name": "static", "id": 9,
                    "effect_entries": [
                        {"effect": "Peut paralyser", "language": {"name": "fr"}},
                        {"effect": "May paralyze on contact", "language": {"name": "en"}}
                    ],
                    "pokemon": [{"pokemon": {"name": f"mon-{i}"}} for i in range(15)]
                })
            if path == "/api/v2/pokemon":
                return httpx.Response(200, json={"count": 1302, "next": None,
                                                 "previous": None, "results": []})
            return httpx.Response(404)
        return PokemonClient(mock_http(handler))

    @pytest.mark.asyncio
    async def test_get_pokemon(self, pokemon):
        """Test the pokemon summary shape"""
        result = await pokemon.get_pokemon("Pikachu")

        assert result == {
            "name": "pikachu", "id": 25, "height": 4, "weight": 60,
            "types": ["electric"], "abilities": ["static"],
            "stats": [{"name": "speed", "value": 90}]
        }

    @pytest.mark.asyncio
    async def test_get_ability(self, pokemon):
        """Test the English effect is chosen and holders are capped at ten"""
        result = await pokemon.get_ability("static")

        assert result["effect"] == "May paralyze on contact"
        assert len(result["pokemon"]) == 10

    @pytest.mark.asyncio
    async def test_list_pokemon_clamps_pagination(self, pokemon, requests):
        """Test limit and offset are clamped before the request"""
        result = await pokemon.list_pokemon(limit=500, offset=-5)

        assert result["count"] == 1302
        assert requests[0].url.params["limit"] == "100"
        assert requests[0].url.params["offset"] == "0"

    @pytest.mark.asyncio
    async def test_unknown_pokemon(self, pokemon):
        """Test a 404 becomes an executor error"""
        with pytest.raises(ExecutorError) as exc_info:
            await pokemon.get_pokemon("missingno")
        assert exc_info.value.message == "Pokemon API error: 404 Not Found"


class TestActionExecutor:
    """Test suite for ActionExecutor"""

    @pytest.fixture
    def executor(self):
        def handler(request):
            if request.url.host == "pokeapi.co":
                return httpx.Response(200, json={"count": 0, "results": []})
            return httpx.Response(200, text="ok")

        http = mock_http(handler)
        return ActionExecutor(
            slack=SlackClient(http, default_webhook_url=WEBHOOK),
            pokemon=PokemonClient(http)
        )

    @pytest.mark.asyncio
    async def test_execute_by_name(self, executor):
        """Test actions can be executed by name"""
        result = await executor.execute("list-pokemon", {"action": "list-pokemon"})
        assert result["count"] == 0

    @pytest.mark.asyncio
    async def test_execute_slack_with_camel_case_webhook(self, executor):
        """Test webhookUrl is accepted as well as webhook_url"""
        result = await executor.execute(Action.SEND_SLACK_MESSAGE, {
            "message": "hi", "webhookUrl": "https://hooks.slack.test/alt"})
        assert result["status"] == "ok"

    @pytest.mark.asyncio
    async def test_unknown_action(self, executor):
        with pytest.raises(ExecutorError):
            await executor.execute("frobnicate", {})

    @pytest.mark.asyncio
    async def test_status_query_not_executable(self, executor):
        """Test get-status has no executor binding"""
        with pytest.raises(ExecutorError):
            await executor.execute(Action.GET_STATUS, {"execution_id": "exec_1"})

    @pytest.mark.asyncio
    async def test_missing_fields(self, executor):
        with pytest.raises(ExecutorError) as exc_info:
            await executor.execute("get-pokemon", {"action": "get-pokemon"})
        assert "pokemon_name" in exc_info.value.message
