"""
Policy gateway: turns perception snapshots into actions and chat lines.

The gateway is the only component that talks to the policy oracle. Its central
rule is that an oracle problem never stops an agent: any failure (unreachable
server, timeout, empty or unusable text) is logged and replaced with the
configured default action or a generic reply.

Action parsing:
    The oracle answers in free text. The text is lower-cased and each vocabulary
    token is looked for as a substring in ``ACTION_PRIORITY`` order; the first hit
    wins. No hit yields the configured default token, so the caller always gets
    a member of ``ActionToken``.
"""

from __future__ import annotations

from typing import Optional, Protocol

from blockmind.config import Config
from blockmind.errors import OracleUnavailable
from blockmind.llm_utils import call_llm_text_with_retries
from blockmind.local_llm import probe_ollama
from blockmind.logging_utils import log_error, log_info, log_llm
from blockmind.schemas import (
    ACTION_PRIORITY,
    ActionToken,
    ChatContext,
    PerceptionSnapshot,
    Personality,
)

DEFAULT_FALLBACK_REPLY = "Hello! How can I help you today?"

DECIDE_ACTION_PROMPT = """
You are a smart Minecraft player. Current status:
HEALTH: {health:.0f}/20
FOOD: {food:.0f}/20
POSITION: x={x:.0f}, y={y:.0f}, z={z:.0f}
INVENTORY: {inventory}
NEARBY: {nearby}
TIME: {time_of_day}
WEATHER: {weather}
{personality}
Select one of the following actions and type the name of the action:
{actions}

Action:"""

COMPOSE_REPLY_PROMPT = """
You are a friendly Minecraft player. What would you say in this situation?

SITUATION: {situation}
OTHER PLAYERS: {peers}
RECENT EVENTS: {events}

Write a short and friendly message (maximum 2 sentences):"""


def parse_action(text: str, default: ActionToken) -> ActionToken:
    """Map free oracle text onto the closed vocabulary."""

    lowered = (text or "").lower()
    for token in ACTION_PRIORITY:
        if token.value in lowered:
            return token
    return default


def render_decide_prompt(
    snapshot: PerceptionSnapshot, personality: Optional[Personality] = None
) -> str:
    return DECIDE_ACTION_PROMPT.format(
        health=snapshot.health,
        food=snapshot.food,
        x=snapshot.position.x,
        y=snapshot.position.y,
        z=snapshot.position.z,
        inventory=snapshot.inventory_summary(),
        nearby=snapshot.nearby_summary(),
        time_of_day=snapshot.time_of_day,
        weather=snapshot.weather,
        personality=_personality_line(personality),
        actions="\n".join(f"- {token.value}" for token in ACTION_PRIORITY),
    )


def _personality_line(personality: Optional[Personality]) -> str:
    if personality is None:
        return ""
    return (
        f"PERSONALITY: curiosity {personality.curiosity:.1f}, "
        f"caution {personality.caution:.1f} (0 = low, 1 = high)\n"
    )


def render_reply_prompt(context: ChatContext) -> str:
    events = "; ".join(event.describe() for event in context.recent_events[-3:])
    return COMPOSE_REPLY_PROMPT.format(
        situation=context.situation,
        peers=", ".join(context.peers) or "nobody",
        events=events or "nothing notable",
    )


def _clean_reply(text: str) -> str:
    return text.strip().strip('"').strip()


class Oracle(Protocol):
    """What the gateway needs from an oracle transport."""

    async def generate(self, prompt: str, max_tokens: int) -> str:
        ...

    async def check_available(self) -> bool:
        ...


class OracleClient:
    """Oracle transport backed by Ollama or any mirascope provider."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.provider = provider or Config.ORACLE_PROVIDER
        self.model = model or Config.ORACLE_MODEL
        self.base_url = base_url or Config.OLLAMA_BASE_URL
        self.timeout = timeout or Config.ORACLE_TIMEOUT_SECONDS

    async def generate(self, prompt: str, max_tokens: int) -> str:
        return await call_llm_text_with_retries(
            prompt=prompt,
            llm_provider=self.provider,
            llm_model=self.model,
            max_tokens=max_tokens,
            timeout=self.timeout,
            base_url=self.base_url,
        )

    async def check_available(self) -> bool:
        """Connectivity probe, called once before agents start producing cycles."""
        try:
            if self.provider.lower() == "ollama":
                models = await probe_ollama(base_url=self.base_url, timeout=self.timeout)
                if self.model not in models and f"{self.model}:latest" not in models:
                    log_error(
                        f"Oracle reachable but model '{self.model}' is not pulled "
                        f"(available: {', '.join(models) or 'none'})"
                    )
            else:
                await self.generate("Reply with OK.", max_tokens=1)
        except Exception as exc:
            log_error(f"Oracle connection failed ({self.provider}/{self.model}): {exc}")
            return False
        log_info(f"Oracle connection successful ({self.provider}/{self.model})")
        return True


class PolicyGateway:
    """Decides actions and composes replies, always yielding something usable."""

    def __init__(
        self,
        oracle: Oracle,
        *,
        default_action: ActionToken | str = ActionToken.EXPLORE,
        action_max_tokens: int = 20,
        reply_max_tokens: int = 50,
        fallback_reply: str = DEFAULT_FALLBACK_REPLY,
        debug: Optional[bool] = None,
    ) -> None:
        self.oracle = oracle
        self.default_action = ActionToken(default_action)
        self.action_max_tokens = action_max_tokens
        self.reply_max_tokens = reply_max_tokens
        self.fallback_reply = fallback_reply
        self.debug = Config.DEBUG_LLM if debug is None else debug
        # Number of times a fallback replaced an oracle answer
        self.fallback_count = 0

    @classmethod
    def from_config(cls, oracle: Optional[Oracle] = None) -> "PolicyGateway":
        return cls(
            oracle or OracleClient(),
            default_action=Config.DEFAULT_ACTION,
            action_max_tokens=Config.ORACLE_ACTION_MAX_TOKENS,
            reply_max_tokens=Config.ORACLE_REPLY_MAX_TOKENS,
        )

    async def check_available(self) -> bool:
        return await self.oracle.check_available()

    async def decide_action(
        self, snapshot: PerceptionSnapshot, personality: Optional[Personality] = None
    ) -> ActionToken:
        prompt = render_decide_prompt(snapshot, personality)
        try:
            response = await self._ask(prompt, self.action_max_tokens, snapshot.agent_name)
        except OracleUnavailable as exc:
            self.fallback_count += 1
            log_error(
                f"Oracle unavailable, using default action '{self.default_action.value}': {exc}",
                snapshot.agent_name,
            )
            return self.default_action

        token = parse_action(response, self.default_action)
        log_llm(f"Thinking: {token.value}", snapshot.agent_name)
        return token

    async def compose_reply(self, context: ChatContext, agent_name: Optional[str] = None) -> str:
        prompt = render_reply_prompt(context)
        try:
            reply = _clean_reply(await self._ask(prompt, self.reply_max_tokens, agent_name))
        except OracleUnavailable as exc:
            self.fallback_count += 1
            log_error(f"Oracle unavailable, using fallback reply: {exc}", agent_name)
            return self.fallback_reply

        if not reply:
            self.fallback_count += 1
            return self.fallback_reply
        return reply

    async def _ask(self, prompt: str, max_tokens: int, agent_name: Optional[str]) -> str:
        if self.debug:
            log_llm(f"Prompt:\n{prompt}", agent_name)
        try:
            response = await self.oracle.generate(prompt, max_tokens)
        except Exception as exc:
            raise OracleUnavailable(str(exc) or type(exc).__name__) from exc
        if not isinstance(response, str):
            raise OracleUnavailable(f"malformed response of type {type(response).__name__}")
        if self.debug:
            log_llm(f"Response: {response!r}", agent_name)
        return response
