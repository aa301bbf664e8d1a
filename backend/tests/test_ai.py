import json
from typing import List

import pytest
from unittest.mock import AsyncMock, patch

from dashboard.core.config import Settings
from dashboard.core.model_pricing import DEFAULT_MODEL, calculate_cost
from dashboard.models.chat import AgentRun
from dashboard.providers.base import ProviderResponse
from dashboard.schemas.ai import AgentResult, AgentUsage
from dashboard.schemas.chat import ConversationCreate
from dashboard.services import openrouter_models
from dashboard.services.agent_run_service import AgentRunService, execute_agent_run
from dashboard.services.agent_service import FALLBACK_RESPONSE, AgentService
from dashboard.services.agent_tools import AgentTools
from dashboard.services.billing.credits import CreditsService
from dashboard.services.chat_service import ChatService, InsufficientCreditsError
from dashboard.utils.cache import cache

from conftest import auth_headers

SONNET = {
    "id": "anthropic/claude-sonnet-4",
    "name": "Claude Sonnet 4",
    "context_length": 200000,
    "pricing": {"prompt": "0.000003", "completion": "0.000015"},
    "supported_parameters": ["tools", "temperature"],
}
FREE_LLAMA = {
    "id": "meta-llama/llama-3.3-70b-instruct:free",
    "name": "Llama 3.3 70B (free)",
    "pricing": {"prompt": "0", "completion": "0"},
    "supported_parameters": ["tools"],
}
FREE_GEMINI = {
    "id": "google/gemini-2.0-flash-exp:free",
    "pricing": {"prompt": "0", "completion": "0"},
    "supported_parameters": ["tools"],
}


def tool_call(call_id: str, query: str) -> dict:
    return {"id": call_id, "type": "function", "function": {"name": "web_search", "arguments": json.dumps({"query": query})}}


class ScriptedProvider:
    def __init__(self, responses: List[ProviderResponse]):
        self.responses = list(responses)
        self.calls: List[List[dict]] = []

    async def generate(self, messages, options=None):
        self.calls.append([dict(m) for m in messages])
        return self.responses.pop(0)


def agent_with(responses: List[ProviderResponse]) -> AgentService:
    agent = AgentService()
    agent.provider = ScriptedProvider(responses)
    return agent


def agent_result(text="Hello!", prompt_tokens=100, completion_tokens=50) -> AgentResult:
    return AgentResult(
        text=text,
        usage=AgentUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens,
                         total_tokens=prompt_tokens + completion_tokens),
        finish_reason="stop",
        steps=1,
    )


# OpenRouter models

def test_profit_margin_from_settings():
    cases = {"0.2": 0.2, "abc": 0.1, "1.5": 0.1, "-0.1": 0.1, "nan": 0.1, None: 0.1}
    for raw, expected in cases.items():
        with patch("dashboard.services.openrouter_models.get_settings", return_value=Settings(OPENROUTER_PROFIT_MARGIN=raw)):
            assert openrouter_models.get_profit_margin() == expected


def test_apply_margin_to_price():
    assert openrouter_models.apply_margin_to_price("0.000003") == pytest.approx(3.3)
    assert openrouter_models.apply_margin_to_price(None) == 0
    assert openrouter_models.apply_margin_to_price("free") == 0


def test_tool_support_excludes_unreliable_free_providers():
    assert openrouter_models.model_supports_tools(SONNET)
    assert openrouter_models.model_supports_tools(FREE_LLAMA)
    assert not openrouter_models.model_supports_tools(FREE_GEMINI)
    assert not openrouter_models.model_supports_tools({**SONNET, "supported_parameters": ["temperature"]})


def test_curate_models_keeps_curated_order():
    uncurated = {**SONNET, "id": "someone/else"}
    models = openrouter_models.curate_models([FREE_LLAMA, uncurated, FREE_GEMINI, SONNET])

    assert [m.id for m in models] == ["anthropic/claude-sonnet-4", "meta-llama/llama-3.3-70b-instruct:free"]
    sonnet, llama = models
    assert sonnet.input_price_per_million == pytest.approx(3.3)
    assert sonnet.output_price_per_million == pytest.approx(16.5)
    assert sonnet.provider_id == "anthropic"
    assert llama.is_free and llama.input_price_per_million == 0


def test_format_price():
    assert openrouter_models.format_price(0) == "Free"
    assert openrouter_models.format_price(0.005) == "$0.0050"
    assert openrouter_models.format_price(3.3) == "$3.30"


@pytest.mark.asyncio
async def test_models_are_served_from_cache():
    fetch = AsyncMock(return_value=[SONNET])
    with patch("dashboard.services.openrouter_models.fetch_models_from_api", fetch):
        first = await openrouter_models.get_models_with_pricing()
        second = await openrouter_models.get_models_with_pricing()

    assert fetch.await_count == 1
    assert [m.id for m in first] == [m.id for m in second] == ["anthropic/claude-sonnet-4"]


@pytest.mark.asyncio
async def test_empty_model_list_is_cached():
    fetch = AsyncMock(return_value=[FREE_GEMINI])
    with patch("dashboard.services.openrouter_models.fetch_models_from_api", fetch):
        assert await openrouter_models.get_models_with_pricing() == []
        assert await openrouter_models.get_models_with_pricing() == []

    assert fetch.await_count == 1


@pytest.mark.asyncio
async def test_cost_with_margin():
    await cache.set(openrouter_models.CACHE_KEY, [m.model_dump() for m in openrouter_models.curate_models([SONNET])])

    known = await openrouter_models.calculate_cost_with_margin("anthropic/claude-sonnet-4", 1_000_000, 1_000_000)
    assert known == pytest.approx(3.3 + 16.5)

    unknown = await openrouter_models.calculate_cost_with_margin("unknown/model", 1000, 1000)
    assert unknown == pytest.approx(0.0033)


@pytest.mark.asyncio
async def test_fetch_requires_api_key():
    with patch("dashboard.services.openrouter_models.get_settings", return_value=Settings(OPENROUTER_API_KEY=None)):
        with pytest.raises(ValueError):
            await openrouter_models.fetch_models_from_api()


@pytest.mark.asyncio
async def test_admin_refresh_models(client, admin, user):
    fetch = AsyncMock(return_value=[SONNET, FREE_LLAMA])
    with patch("dashboard.services.openrouter_models.fetch_models_from_api", fetch):
        forbidden = await client.post("/api/admin/refresh-models", headers=auth_headers(user))
        response = await client.post("/api/admin/refresh-models", headers=auth_headers(admin))

    assert forbidden.status_code == 403
    assert response.json() == {
        "success": True,
        "modelsCount": 2,
        "freeModels": [{"id": "meta-llama/llama-3.3-70b-instruct:free", "isFree": True}],
    }


# Agent loop

@pytest.mark.asyncio
async def test_agent_runs_tools_then_answers():
    agent = agent_with([
        ProviderResponse(
            content="",
            tool_calls=[tool_call("call_1", "weather in Kyiv")],
            finish_reason="tool_calls",
            meta_data={"usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}},
        ),
        ProviderResponse(
            content="It is sunny in Kyiv.",
            finish_reason="stop",
            meta_data={"usage": {"prompt_tokens": 20, "completion_tokens": 10, "total_tokens": 30}},
        ),
    ])
    search = AsyncMock(return_value={"answer": "Sunny", "results": []})

    with patch.object(AgentTools, "web_search", search):
        result = await agent.run_agent("What's the weather?", history=[{"role": "user", "content": "hi"}])

    search.assert_awaited_once_with("weather in Kyiv")
    assert result.text == "It is sunny in Kyiv."
    assert result.steps == 2
    assert result.finish_reason == "stop"
    assert (result.usage.prompt_tokens, result.usage.completion_tokens, result.usage.total_tokens) == (30, 15, 45)

    second_call = agent.provider.calls[1]
    assert [m["role"] for m in second_call] == ["system", "user", "user", "assistant", "tool"]
    assert second_call[-1]["tool_call_id"] == "call_1"
    assert json.loads(second_call[-1]["content"])["answer"] == "Sunny"


@pytest.mark.asyncio
async def test_agent_summarizes_tool_output_when_steps_run_out():
    agent = agent_with([
        ProviderResponse(content="", tool_calls=[tool_call("a", "news")], finish_reason="tool_calls"),
        ProviderResponse(content="", tool_calls=[tool_call("b", "more news")], finish_reason="tool_calls"),
    ])
    results = {"results": [{"title": "Headline", "content": "Body text"}]}

    with patch.object(AgentTools, "web_search", AsyncMock(return_value=results)):
        result = await agent.run_agent("news?", max_steps=2)

    assert result.steps == 2
    assert result.usage is None
    assert result.text.startswith("Here's what I found:")
    assert "**Headline**: Body text..." in result.text


@pytest.mark.asyncio
async def test_agent_falls_back_on_empty_answer():
    agent = agent_with([ProviderResponse(content="", finish_reason="stop")])
    result = await agent.run_agent("hello")
    assert result.text == FALLBACK_RESPONSE
    assert result.steps == 1


@pytest.mark.asyncio
async def test_tool_errors_are_returned_as_text():
    agent = agent_with([])
    assert await agent._execute_tool("calculator", {}) == "Error: Unknown tool calculator"
    assert await agent._execute_tool(None, {}) == "Error: tool name is missing."

    with patch.object(AgentTools, "web_search", AsyncMock(side_effect=ValueError("TAVILY_API_KEY is not configured"))):
        output = await agent._execute_tool("web_search", {"query": "x"})
    assert output == "Error executing web_search: TAVILY_API_KEY is not configured"


# Chat

@pytest.mark.asyncio
async def test_send_message_stores_turns_and_bills(db, user):
    await CreditsService(db).initialize_user_billing(user.id)
    service = ChatService(db, user.id)
    conversation = await service.create_conversation()
    assert conversation.model == DEFAULT_MODEL

    run_agent = AsyncMock(return_value=agent_result("Hi there"))
    with patch.object(AgentService, "run_agent", run_agent), \
         patch("dashboard.services.chat_service.calculate_cost_with_margin", AsyncMock(return_value=0.05)):
        user_message, assistant_message, cost_cents = await service.send_message(conversation.id, "Hello")
        await service.send_message(conversation.id, "And again")

    assert (user_message.role, user_message.content) == ("user", "Hello")
    assert assistant_message.content == "Hi there"
    assert (assistant_message.input_tokens, assistant_message.output_tokens) == (100, 50)
    assert cost_cents == 5
    assert await CreditsService(db).get_balance(user.id) == 990

    history = run_agent.call_args_list[1].kwargs["history"]
    assert history == [{"role": "user", "content": "Hello"}, {"role": "assistant", "content": "Hi there"}]

    full = await service.get_conversation(conversation.id)
    assert len(full.messages) == 4


@pytest.mark.asyncio
async def test_paid_model_requires_credits(db, user):
    service = ChatService(db, user.id)
    conversation = await service.create_conversation()
    with pytest.raises(InsufficientCreditsError):
        await service.send_message(conversation.id, "Hello")


@pytest.mark.asyncio
async def test_free_model_is_not_billed(db, user):
    service = ChatService(db, user.id)
    conversation = await service.create_conversation(ConversationCreate(model="meta-llama/llama-3.3-70b-instruct:free"))

    with patch.object(AgentService, "run_agent", AsyncMock(return_value=agent_result())):
        _, _, cost_cents = await service.send_message(conversation.id, "Hello")

    assert cost_cents == 0


@pytest.mark.asyncio
async def test_static_pricing_when_live_pricing_fails(db, user):
    service = ChatService(db, user.id)
    with patch("dashboard.services.chat_service.calculate_cost_with_margin", AsyncMock(side_effect=ValueError("no key"))):
        cost = await service._message_cost_usd("anthropic/claude-sonnet-4", 1000, 1000)
    assert cost == pytest.approx(0.018 * 1.1)


@pytest.mark.asyncio
async def test_chat_routes(client, user):
    headers = auth_headers(user)
    created = (await client.post("/api/chats", headers=headers, json={"title": "Plans"})).json()

    archived = await client.post(f"/api/chats/{created['id']}/archive", headers=headers)
    assert archived.json()["archived_at"] is not None

    visible = await client.get("/api/chats", headers=headers)
    assert visible.json() == []
    everything = await client.get("/api/chats?include_archived=true", headers=headers)
    assert [c["title"] for c in everything.json()] == ["Plans"]

    summary = await client.get("/api/chats/summary", headers=headers)
    assert summary.json()["total_conversations"] == 1

    no_credits = await client.post(f"/api/chats/{created['id']}/messages", headers=headers, json={"message": "hi"})
    assert no_credits.status_code == 402

    missing = await client.get("/api/chats/999", headers=headers)
    assert missing.status_code == 404


# Agent runs

@pytest.mark.asyncio
async def test_execute_agent_run_completes(db, session_factory, user):
    run = AgentRun(user_id=user.id, prompt="Summarize", model=DEFAULT_MODEL)
    db.add(run)
    await db.commit()

    with patch("dashboard.services.agent_run_service.SessionLocal", session_factory), \
         patch.object(AgentService, "run_agent", AsyncMock(return_value=agent_result("Done", 300, 120))):
        await execute_agent_run(run.id)

    await db.refresh(run)
    assert run.status == "completed"
    assert run.result == "Done"
    assert (run.input_tokens, run.output_tokens) == (300, 120)
    assert run.completed_at is not None


@pytest.mark.asyncio
async def test_execute_agent_run_records_failure(db, session_factory, user):
    run = AgentRun(user_id=user.id, prompt="Summarize", model=DEFAULT_MODEL)
    db.add(run)
    await db.commit()

    with patch("dashboard.services.agent_run_service.SessionLocal", session_factory), \
         patch.object(AgentService, "run_agent", AsyncMock(side_effect=RuntimeError("model overloaded"))):
        await execute_agent_run(run.id)

    await db.refresh(run)
    assert run.status == "failed"
    assert run.error == "model overloaded"


@pytest.mark.asyncio
async def test_agent_run_summary(db, user):
    db.add(AgentRun(user_id=user.id, prompt="a", model=DEFAULT_MODEL, status="completed",
                    input_tokens=1000, output_tokens=1000))
    db.add(AgentRun(user_id=user.id, prompt="b", model=DEFAULT_MODEL, status="running"))
    await db.commit()

    summary = await AgentRunService(db, user.id).get_summary()
    assert summary["total_runs"] == 2
    assert summary["running_count"] == 1
    assert summary["total_cost"] == pytest.approx(calculate_cost(DEFAULT_MODEL, 1000, 1000))


@pytest.mark.asyncio
async def test_queue_agent_run_route(client, user):
    execute = AsyncMock()
    with patch("dashboard.services.agent_run_service.execute_agent_run", execute):
        response = await client.post("/api/agent-runs", headers=auth_headers(user), json={"prompt": "Find news"})

    body = response.json()
    assert body["status"] == "queued"
    assert body["model"] == DEFAULT_MODEL
    execute.assert_awaited_once_with(body["id"])

    fetched = await client.get(f"/api/agent-runs/{body['id']}", headers=auth_headers(user))
    assert fetched.json()["prompt"] == "Find news"

    missing = await client.get("/api/agent-runs/999", headers=auth_headers(user))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_chat_models_route(client, user):
    response = await client.get("/api/chats/models", headers=auth_headers(user))

    models = {m["id"]: m for m in response.json()}
    assert models[DEFAULT_MODEL]["context_window"] == 1000000
    assert models["openai/gpt-4o"]["name"] == "GPT-4o"
