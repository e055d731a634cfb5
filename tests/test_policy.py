"""Tests for action parsing and the policy gateway's fallback behavior."""

import pytest

from blockmind.policy import (
    DEFAULT_FALLBACK_REPLY,
    OracleClient,
    PolicyGateway,
    parse_action,
    render_decide_prompt,
    render_reply_prompt,
)
from blockmind.schemas import ActionToken, ChatContext, PeerDescriptor, Personality, ShortTermEvent


@pytest.mark.parametrize(
    "text, expected",
    [
        ("I think you should mine diamonds", ActionToken.MINE),
        ("EXPLORE!", ActionToken.EXPLORE),
        ("Let's craft a table", ActionToken.CRAFT),
        ("follow_player", ActionToken.FOLLOW_PLAYER),
        # explore is declared before chat, so it wins when both appear
        ("chat or explore?", ActionToken.EXPLORE),
        ("I have no idea", ActionToken.SLEEP),
    ],
)
def test_parse_action_uses_declaration_priority(text, expected):
    default = ActionToken.SLEEP
    assert parse_action(text, default) is expected


def test_parse_action_handles_empty_text():
    assert parse_action("", ActionToken.EXPLORE) is ActionToken.EXPLORE


def test_decide_prompt_lists_state_and_vocabulary(make_snapshot):
    snapshot = make_snapshot(
        health=12,
        food=7,
        nearby=(PeerDescriptor(name="Steve", distance=4.0),),
        inventory={"bread": 2},
    )
    prompt = render_decide_prompt(snapshot)

    assert "HEALTH: 12/20" in prompt
    assert "FOOD: 7/20" in prompt
    assert "POSITION: x=0, y=64, z=0" in prompt
    assert "Steve (4.0m)" in prompt
    assert "2x bread" in prompt
    for token in ActionToken:
        assert f"- {token.value}" in prompt
    assert "PERSONALITY" not in prompt


def test_decide_prompt_carries_curiosity_and_caution(make_snapshot):
    prompt = render_decide_prompt(make_snapshot(), Personality(curiosity=0.7, caution=0.2))

    assert "PERSONALITY: curiosity 0.7, caution 0.2" in prompt


def test_reply_prompt_uses_last_three_events():
    context = ChatContext(
        situation='Steve said: "hi"',
        peers=["Steve"],
        recent_events=[ShortTermEvent(event_type="spawn")],
    )
    prompt = render_reply_prompt(context)
    assert 'Steve said: "hi"' in prompt
    assert "OTHER PLAYERS: Steve" in prompt
    assert "RECENT EVENTS: spawn" in prompt


@pytest.mark.asyncio
async def test_decide_action_parses_oracle_text(oracle_factory, make_snapshot, capsys):
    oracle = oracle_factory(["I think you should mine diamonds"])
    gateway = PolicyGateway(oracle, action_max_tokens=20)

    action = await gateway.decide_action(make_snapshot())

    assert action is ActionToken.MINE
    assert oracle.prompts[0][1] == 20
    assert gateway.fallback_count == 0
    assert "Thinking: mine" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_decide_action_falls_back_when_oracle_is_down(oracle_factory, make_snapshot, capsys):
    gateway = PolicyGateway(
        oracle_factory(error=ConnectionError("refused")), default_action=ActionToken.EXPLORE
    )

    action = await gateway.decide_action(make_snapshot())

    assert action is ActionToken.EXPLORE
    assert gateway.fallback_count == 1
    out = capsys.readouterr().out
    assert "[!]" in out
    assert "using default action 'explore'" in out


@pytest.mark.asyncio
async def test_decide_action_falls_back_on_non_text_response(make_snapshot):
    class WeirdOracle:
        async def generate(self, prompt, max_tokens):
            return {"action": "mine"}

        async def check_available(self):
            return True

    gateway = PolicyGateway(WeirdOracle(), default_action="chat")

    assert await gateway.decide_action(make_snapshot()) is ActionToken.CHAT
    assert gateway.fallback_count == 1


@pytest.mark.asyncio
async def test_unrecognised_answer_yields_default_without_counting_fallback(
    oracle_factory, make_snapshot
):
    gateway = PolicyGateway(oracle_factory(["hmm, dance?"]), default_action=ActionToken.EXPLORE)

    assert await gateway.decide_action(make_snapshot()) is ActionToken.EXPLORE
    assert gateway.fallback_count == 0


@pytest.mark.asyncio
async def test_compose_reply_cleans_text(oracle_factory):
    oracle = oracle_factory(['  "Nice to meet you!"  '])
    gateway = PolicyGateway(oracle, reply_max_tokens=50)

    reply = await gateway.compose_reply(ChatContext(situation="hello"), "AI_Friend")

    assert reply == "Nice to meet you!"
    assert oracle.prompts[0][1] == 50


@pytest.mark.asyncio
async def test_compose_reply_fallbacks(oracle_factory):
    down = PolicyGateway(oracle_factory(error=TimeoutError()))
    assert await down.compose_reply(ChatContext(situation="hello")) == DEFAULT_FALLBACK_REPLY

    blank = PolicyGateway(oracle_factory(['""']), fallback_reply="Hi!")
    assert await blank.compose_reply(ChatContext(situation="hello")) == "Hi!"
    assert blank.fallback_count == 1


@pytest.mark.asyncio
async def test_debug_mode_prints_prompt_and_response(oracle_factory, make_snapshot, capsys):
    gateway = PolicyGateway(oracle_factory(["eat"]), debug=True)

    await gateway.decide_action(make_snapshot())

    out = capsys.readouterr().out
    assert "Prompt:" in out
    assert "Response: 'eat'" in out


@pytest.mark.asyncio
async def test_oracle_client_probe_reports_missing_model(monkeypatch, capsys):
    async def fake_probe(*, base_url, timeout):
        return ["llama3.1:latest"]

    monkeypatch.setattr("blockmind.policy.probe_ollama", fake_probe)
    client = OracleClient("ollama", "gemma3:1b", base_url="http://ollama:11434", timeout=5)

    assert await client.check_available() is True
    assert "not pulled" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_oracle_client_probe_failure_returns_false(monkeypatch):
    async def failing_probe(*, base_url, timeout):
        raise OSError("refused")

    monkeypatch.setattr("blockmind.policy.probe_ollama", failing_probe)
    client = OracleClient("ollama", "gemma3:1b", timeout=5)

    assert await client.check_available() is False


@pytest.mark.asyncio
async def test_oracle_client_generate_delegates(monkeypatch):
    captured = {}

    async def fake_call(**kwargs):
        captured.update(kwargs)
        return "chat"

    monkeypatch.setattr("blockmind.policy.call_llm_text_with_retries", fake_call)
    client = OracleClient("openai", "gpt-4o-mini", timeout=12)

    assert await client.generate("Action:", 20) == "chat"
    assert captured["llm_provider"] == "openai"
    assert captured["llm_model"] == "gpt-4o-mini"
    assert captured["max_tokens"] == 20
    assert captured["timeout"] == 12
