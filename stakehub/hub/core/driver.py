# MIT License
# Copyright (c) 2025 Hashborn

"""
Hub Driver

Runs one originating call and everything it dispatches as a single atomic unit:

    clone state ─▶ snapshot host ─▶ operation ─▶ effect queue (depth-first)
         │                                            │
         └──────── any exception: restore host, drop clone, re-raise
                                                      │
                   success: persist clone, refresh metrics, publish events

Effects are applied in queue order. A host effect flagged with a reply feeds
the host's events back through `contract.reply` before the next effect runs;
an `ExecuteSelfEffect` runs the nested operation against the same working
state, so it observes everything its dispatcher wrote.
"""

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from ...protocol.config.params import MAX_CALL_DEPTH
from ...protocol.types.coins import Coins
from ...protocol.types.common import Env, StateError
from ...protocol.types.effects import Attribute, Event, ExecuteSelfEffect, Response
from ...protocol.types.msgs import InstantiateMsg, QueueUnbond
from ..host.interface import StakingHost
from ..observability.metrics import call_failures_total, update_call_metrics, update_metrics
from ..storage.db import StorageDB
from . import contract
from .events import event_bus
from .state import HubState

logger = logging.getLogger(__name__)


class CallResult(BaseModel):
    """Outcome of a committed call chain."""
    action: Optional[str] = None
    attributes: List[Attribute] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    effects: List[str] = Field(default_factory=list)    # kinds of host effects applied

    def events_of(self, ty: str) -> List[Event]:
        return [e for e in self.events if e.ty == ty]


class HubDriver:
    def __init__(self, db: StorageDB, host: StakingHost, contract_address: str):
        self.db = db
        self.host = host
        self.contract_address = contract_address
        self.state = HubState(db)

    def env(self) -> Env:
        return self.host.env(self.contract_address)

    # --- Entry points ---

    def instantiate(self, msg: InstantiateMsg) -> CallResult:
        return self._run("instantiate", lambda state, env: contract.instantiate(state, env, msg))

    def execute(self, sender: str, msg, funds: Optional[Coins] = None) -> CallResult:
        """Executes `msg` from `sender`; attached `funds` move to the hub first."""
        def entry(state: HubState, env: Env) -> Response:
            if funds is not None and len(funds):
                self.host.transfer(sender, self.contract_address, funds)
            return contract.execute(state, env, self.host, sender, msg, funds)

        return self._run(msg.kind, entry)

    def queue_unbond(self, user: str, amount: int, receiver: Optional[str] = None) -> CallResult:
        """
        Sends `amount` receipt tokens from `user` to the hub with an unbond hook.

        The hook runs with the token as sender, as a token contract's
        send-with-message would deliver it.
        """
        def entry(state: HubState, env: Env) -> Response:
            token = state.params.steak_token
            if token is None:
                raise StateError("receipt token is not registered yet")
            self.host.transfer_tokens(token, user, self.contract_address, amount)
            msg = QueueUnbond(receiver=receiver or user, amount=amount)
            return contract.execute(state, env, self.host, token, msg)

        return self._run("queue_unbond", entry)

    # --- Execution ---

    def _run(self, label: str, entry: Callable[[HubState, Env], Response]) -> CallResult:
        working = self.state.clone()
        snapshot = self.host.snapshot()
        result = CallResult()

        try:
            response = entry(working, self.env())
            result.action = response.action()
            result.attributes = list(response.attributes)
            self._process(working, response, 0, result)
            working.persist()
        except Exception as e:
            self.host.restore(snapshot)
            call_failures_total.labels(error=type(e).__name__).inc()
            logger.error(f"Call {label} rolled back: {e}")
            raise

        self.state = working
        logger.debug(f"Call {label} committed with {len(result.effects)} effects")

        update_call_metrics(result.action, result.effects, [e.ty for e in result.events])
        update_metrics(self.state, self.host, self.contract_address)

        event_bus.publish(result.events)
        return result

    def _process(self, state: HubState, response: Response, depth: int, result: CallResult):
        result.events.extend(response.events)

        for effect in response.effects:
            if isinstance(effect, ExecuteSelfEffect):
                if depth + 1 > MAX_CALL_DEPTH:
                    raise StateError(f"maximum call depth {MAX_CALL_DEPTH} exceeded")
                nested = contract.execute(state, self.env(), self.host, self.contract_address, effect.msg)
                self._process(state, nested, depth + 1, result)
                continue

            host_response = self.host.execute(self.contract_address, effect)
            result.effects.append(effect.kind)

            if effect.reply is not None:
                follow_up = contract.reply(state, self.env(), effect.reply, host_response.events)
                self._process(state, follow_up, depth + 1, result)
