"""
Action dispatcher: routes a decided token to the capability that performs it.

Registry rules:
- Every token maps to a handler, or to an explicit "unsupported" marker
- Unknown tokens, unregistered tokens and unsupported ones run the default
  token's handler instead (a safe no-op such as exploring)
- Handler exceptions are caught and become a failed ``ActionResult``; the
  dispatcher itself never raises for an action problem

The dispatcher is re-attached to every new environment session so handlers
always act on the live connection.
"""

from __future__ import annotations

import random
from typing import Awaitable, Callable, Dict, Optional, Tuple, Union

from blockmind import handlers
from blockmind.environment.driver import EnvironmentSession
from blockmind.errors import ActionFailure
from blockmind.handlers import ActionContext, HandlerOutcome
from blockmind.logging_utils import log_deterministic, log_error, log_success
from blockmind.schemas import ActionResult, ActionToken, AgentIdentity, PerceptionSnapshot

Handler = Callable[[ActionContext], Awaitable[Union[HandlerOutcome, str, None]]]


class _Unsupported:
    """Registry marker for capabilities the agent deliberately cannot perform."""

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "<unsupported>"


UNSUPPORTED = _Unsupported()


class ActionDispatcher:
    """Maps action tokens to handlers and always returns an ``ActionResult``."""

    def __init__(
        self,
        default_action: ActionToken | str = ActionToken.EXPLORE,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.default_action = ActionToken(default_action)
        self.rng = rng or random.Random()
        self._registry: Dict[ActionToken, Union[Handler, _Unsupported]] = {}
        self.session: Optional[EnvironmentSession] = None
        self.identity: Optional[AgentIdentity] = None

    def attach(self, session: EnvironmentSession, identity: AgentIdentity) -> None:
        self.session = session
        self.identity = identity

    def register(self, token: ActionToken | str, handler: Handler) -> None:
        self._registry[ActionToken(token)] = handler

    def register_unsupported(self, token: ActionToken | str) -> None:
        self._registry[ActionToken(token)] = UNSUPPORTED

    def is_supported(self, token: ActionToken | str) -> bool:
        entry = self._registry.get(ActionToken(token))
        return entry is not None and entry is not UNSUPPORTED

    def resolve(self, token: ActionToken) -> Tuple[ActionToken, Optional[Handler]]:
        """Return (token that will run, handler); handler is None when nothing can run."""
        entry = self._registry.get(token)
        if entry is not None and entry is not UNSUPPORTED:
            return token, entry  # type: ignore[return-value]
        fallback = self._registry.get(self.default_action)
        if fallback is None or fallback is UNSUPPORTED:
            return self.default_action, None
        return self.default_action, fallback  # type: ignore[return-value]

    async def dispatch(
        self, token: ActionToken | str, snapshot: PerceptionSnapshot
    ) -> ActionResult:
        agent = snapshot.agent_name
        details: Dict[str, object] = {}
        try:
            requested = ActionToken(token)
        except ValueError:
            requested = self.default_action
            details["unknown_action"] = str(token)

        handled_by, handler = self.resolve(requested)
        if handled_by is not requested:
            details["fallback_from"] = requested.value
            log_deterministic(
                f"'{requested.value}' is not supported, falling back to '{handled_by.value}'",
                agent,
            )

        if handler is None:
            return ActionResult(
                action=requested,
                handled_by=handled_by,
                description="No handler available; stayed idle",
                success=True,
                details=details,
            )

        if self.session is None or self.identity is None:
            return ActionResult(
                action=requested,
                handled_by=handled_by,
                description="ActionFailure: no environment session attached",
                success=False,
                details={**details, "error": "NoSession"},
            )

        context = ActionContext(
            session=self.session, snapshot=snapshot, identity=self.identity, rng=self.rng
        )
        try:
            outcome = await handler(context)
        except Exception as exc:
            failure = ActionFailure(handled_by.value, exc)
            log_error(str(failure), agent)
            return ActionResult(
                action=requested,
                handled_by=handled_by,
                description=f"ActionFailure: {exc}",
                success=False,
                details={**details, "error": type(exc).__name__},
            )

        if outcome is None:
            outcome = HandlerOutcome(f"{handled_by.value} done")
        elif isinstance(outcome, str):
            outcome = HandlerOutcome(outcome)

        if outcome.success:
            log_success(outcome.description, agent)
        else:
            log_error(outcome.description, agent)

        return ActionResult(
            action=requested,
            handled_by=handled_by,
            description=outcome.description,
            success=outcome.success,
            details={**outcome.details, **details},
        )


def build_default_dispatcher(
    default_action: ActionToken | str = ActionToken.EXPLORE,
    *,
    rng: Optional[random.Random] = None,
) -> ActionDispatcher:
    """Dispatcher with the built-in capabilities registered."""

    dispatcher = ActionDispatcher(default_action, rng=rng)
    dispatcher.register(ActionToken.EXPLORE, handlers.explore)
    dispatcher.register(ActionToken.FOLLOW_PLAYER, handlers.follow_player)
    dispatcher.register(ActionToken.CHAT, handlers.chat)
    dispatcher.register(ActionToken.EAT, handlers.eat)
    dispatcher.register(ActionToken.CRAFT, handlers.craft)
    for token in (ActionToken.MINE, ActionToken.BUILD, ActionToken.SLEEP, ActionToken.COLLECT):
        dispatcher.register_unsupported(token)
    return dispatcher
