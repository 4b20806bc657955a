"""
Flow Test Engine.

Runs a flow as a simulated conversation over chat or voice. The run walks a
private snapshot of the flow, suspends on condition and DTMF nodes until the
tester answers, and records every step as an ordered event log.
"""

import asyncio
import copy
import random
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from ..config import (
    CRM_NODE_TYPES,
    CHANNEL_NODE_TYPES,
    INTEGRATION_NODE_TYPES,
    TICKET_NODE_TYPES,
    Channel,
    ConditionOperator,
    EdgeLabel,
    EventCategory,
    EventStatus,
    NodeType,
    RunState,
    RunResult,
    Settings,
    get_settings,
)
from ..models import (
    ConditionData,
    EffectOutcome,
    Flow,
    FlowNode,
    RunEvent,
    RunStats,
)
from ..nodes import NodeRegistry, get_node_registry
from .effects import DEFAULT_TRANSFER_TARGET, NodeEffect, SimulatedEffects

logger = structlog.get_logger()

DEFAULT_API_URL = "https://api.example.com"
NO_MESSAGE_TEXT = "No message configured"
DEFAULT_DTMF_PROMPT = "Please enter your selection"

RunListener = Callable[[RunEvent], None]
NodeHandler = Callable[[FlowNode, int], Awaitable[Optional[FlowNode]]]


def evaluate_condition(condition: ConditionData, user_input: str) -> bool:
    """
    Compare tester input with a condition's value, case-insensitively.

    Only ``equals`` and ``contains`` can match; every other operator is false.
    """
    text = user_input.lower()
    value = (condition.value or "").lower()

    if condition.operator == ConditionOperator.EQUALS.value:
        return text == value
    if condition.operator == ConditionOperator.CONTAINS.value:
        return value in text
    return False


def format_duration(seconds: float) -> str:
    """``75`` -> ``"01:15"``."""
    total = int(seconds)
    return f"{total // 60:02d}:{total % 60:02d}"


class FlowTestSession:
    """
    One simulated test run at a time.

    Features:
    - Chat and voice channels (voice tracks an active call and its duration)
    - Suspension on condition and DTMF nodes
    - Injectable node effects
    - Event listeners
    - Cancellation of in-flight steps on hang-up and reset

    Every await inside a run is followed by a generation check; ``reset_run``,
    ``end_call`` and a new ``start_run`` bump the generation, so a stale step
    stops as soon as it wakes up.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[NodeRegistry] = None,
        effects: Optional[Dict[NodeType, NodeEffect]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or get_node_registry()

        self._effects = SimulatedEffects(self.settings, self.registry, rng).as_dict()
        if effects:
            self._effects.update(effects)

        self._handlers: Dict[NodeType, NodeHandler] = {}
        self._register_handlers()

        self._listeners: List[RunListener] = []
        self._generation = 0
        self._clear()

    # -------------------------------------------------------------------------
    # Run state
    # -------------------------------------------------------------------------

    def _clear(self) -> None:
        self.state = RunState.IDLE
        self.result: Optional[RunResult] = None
        self.channel: Optional[Channel] = None
        self.current_node_id: Optional[str] = None
        self.stats = RunStats()
        self._events: List[RunEvent] = []
        self._flow: Optional[Flow] = None
        self._waiting_node: Optional[FlowNode] = None
        self._steps = 0
        self.call_active = False
        self._call_started_at: Optional[datetime] = None
        self._call_duration = 0.0

    @property
    def events(self) -> List[RunEvent]:
        return list(self._events)

    @property
    def flow_id(self) -> Optional[str]:
        return self._flow.id if self._flow else None

    @property
    def call_duration(self) -> float:
        """Seconds since the call connected, frozen once it ends."""
        if self.call_active and self._call_started_at:
            return (datetime.utcnow() - self._call_started_at).total_seconds()
        return self._call_duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "result": self.result.value if self.result else None,
            "channel": self.channel.value if self.channel else None,
            "current_node_id": self.current_node_id,
            "call_active": self.call_active,
            "call_duration": self.call_duration,
            "events": [e.to_dict() for e in self._events],
            "stats": self.stats.to_dict(),
        }

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        """Receive every event as it is appended. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(
        self,
        category: EventCategory,
        content: str,
        node_id: Optional[str] = None,
        status: Optional[EventStatus] = None,
    ) -> RunEvent:
        event = RunEvent(
            id=str(uuid.uuid4()),
            category=category,
            content=content,
            timestamp=datetime.utcnow(),
            node_id=node_id,
            status=status,
        )
        self._events.append(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("run_listener_error", error=str(e))

        return event

    # -------------------------------------------------------------------------
    # Run control
    # -------------------------------------------------------------------------

    async def start_run(self, flow: Flow, channel: Channel = Channel.CHAT) -> None:
        """
        Start a run of ``flow``, replacing any run in progress.

        Returns once the run suspends for input or ends.
        """
        self._generation += 1
        generation = self._generation
        self._clear()

        self._flow = copy.deepcopy(flow)
        self.channel = channel
        self.state = RunState.RUNNING
        self.stats.total_nodes = len(self._flow.nodes)
        self.stats.started_at = datetime.utcnow()

        logger.info("run_started", flow_id=flow.id, channel=channel.value)

        start = self._flow.start_node
        if not start:
            self.stats.errors += 1
            self._emit(EventCategory.ERROR, "No start node found in flow", status=EventStatus.ERROR)
            self._finish(RunResult.ERROR)
            return

        if channel == Channel.VOICE:
            self._emit(EventCategory.VOICE, "Initiating voice call...", status=EventStatus.PROCESSING)
            if not await self._pause(self.settings.simulation.call_connect_s, generation):
                return
            self._emit(EventCategory.VOICE, "Call connected", status=EventStatus.SUCCESS)
            self.call_active = True
            self._call_started_at = datetime.utcnow()
        else:
            self._emit(EventCategory.SYSTEM, "Test session started", status=EventStatus.SUCCESS)

        await self._drive(start, generation)

    async def submit_text_input(self, text: str) -> bool:
        """
        Answer a waiting condition node.

        While waiting for DTMF the text is treated as keypad digits. Input in
        any other state, or blank input, is rejected.
        """
        if not text.strip():
            return False
        if self.state == RunState.WAITING_FOR_DTMF:
            return await self.submit_digits(text.strip())
        if self.state != RunState.WAITING_FOR_INPUT or not self._waiting_node:
            return False

        generation = self._generation
        node = self._waiting_node
        self._waiting_node = None
        self.state = RunState.RUNNING

        self._emit(EventCategory.USER, text)
        if not await self._pause(self.settings.simulation.input_eval_s, generation):
            return True

        matched = evaluate_condition(node.data, text)
        if matched:
            self._emit(EventCategory.SYSTEM, "Condition: Yes (matched)", status=EventStatus.SUCCESS)
        else:
            self._emit(EventCategory.SYSTEM, "Condition: No (not matched)", status=EventStatus.ERROR)

        logger.debug("condition_evaluated", node_id=node.id, matched=matched)
        await self._continue(self._branch_target(node, matched), generation)
        return True

    async def submit_digits(self, digits: str) -> bool:
        """Answer a waiting DTMF node. The run continues on the default path."""
        if not digits or self.state != RunState.WAITING_FOR_DTMF or not self._waiting_node:
            return False

        generation = self._generation
        node = self._waiting_node
        self._waiting_node = None
        self.state = RunState.RUNNING

        self._emit(EventCategory.DTMF, f"DTMF: {digits}")
        if not await self._pause(self.settings.simulation.input_eval_s, generation):
            return True
        self._emit(
            EventCategory.SYSTEM,
            f'DTMF received: "{digits}" → Processing...',
            status=EventStatus.SUCCESS,
        )

        await self._continue(self._default_next(node), generation)
        return True

    def end_call(self) -> bool:
        """Hang up a voice run at any point; the run ends successfully."""
        if self.channel != Channel.VOICE or self.state in (RunState.IDLE, RunState.ENDED):
            return False

        self._generation += 1
        self._waiting_node = None
        self._hang_up()
        self._finish(RunResult.SUCCESS)
        return True

    def reset_run(self) -> None:
        """Discard the run and abort any in-flight step."""
        self._generation += 1
        self._clear()
        logger.debug("run_reset")

    # -------------------------------------------------------------------------
    # Execution loop
    # -------------------------------------------------------------------------

    async def _drive(self, node: Optional[FlowNode], generation: int) -> None:
        """Dispatch nodes until the run suspends, ends, or is cancelled."""
        max_steps = self.settings.simulation.max_steps

        while node is not None:
            if self._steps >= max_steps:
                self.stats.errors += 1
                self._emit(
                    EventCategory.ERROR,
                    f"Step limit reached ({max_steps}); stopping run",
                    node_id=node.id,
                    status=EventStatus.ERROR,
                )
                if self.call_active:
                    self._hang_up()
                self._finish(RunResult.ERROR)
                return

            self._steps += 1
            self.current_node_id = node.id
            self.stats.nodes_visited += 1

            definition = self.registry.get(node.type)
            self._emit(
                EventCategory.SYSTEM,
                f"{definition.icon} {definition.name}: {node.data.label}",
                node_id=node.id,
                status=EventStatus.PROCESSING,
            )
            if not await self._pause(self.settings.simulation.step_delay_s, generation):
                return

            node = await self._handlers[node.type](node, generation)

            if not self._is_current(generation) or self.state != RunState.RUNNING:
                return

        self._dead_end()

    async def _continue(self, node: Optional[FlowNode], generation: int) -> None:
        if not self._is_current(generation):
            return
        if node is None:
            self._dead_end()
            return
        await self._drive(node, generation)

    def _dead_end(self) -> None:
        """No way forward: the run simply ends."""
        logger.debug("run_dead_end", node_id=self.current_node_id)
        if self.call_active:
            self._hang_up()
        self._finish(RunResult.SUCCESS)

    def _finish(self, result: RunResult) -> None:
        self.state = RunState.ENDED
        self.result = result
        self.stats.ended_at = datetime.utcnow()

        logger.info(
            "run_ended",
            flow_id=self.flow_id,
            result=result.value,
            nodes_visited=self.stats.nodes_visited,
            errors=self.stats.errors,
        )

    def _hang_up(self) -> None:
        self._call_duration = self.call_duration
        self.call_active = False
        self._emit(
            EventCategory.VOICE,
            f"Call ended ({format_duration(self._call_duration)})",
            status=EventStatus.SUCCESS,
        )

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _pause(self, seconds: float, generation: int) -> bool:
        await asyncio.sleep(seconds * self.settings.simulation.latency_scale)
        return self._is_current(generation)

    # -------------------------------------------------------------------------
    # Next-node resolution
    # -------------------------------------------------------------------------

    def _default_next(self, node: FlowNode) -> Optional[FlowNode]:
        """First unlabeled outgoing edge, else the first connection."""
        edge = next((e for e in self._flow.outgoing(node.id) if not e.label), None)
        if edge:
            return self._flow.get_node(edge.target)
        if node.connections:
            return self._flow.get_node(node.connections[0])
        return None

    def _branch_target(self, node: FlowNode, matched: bool) -> Optional[FlowNode]:
        """The Yes/No edge of a condition, else its stored branch target."""
        label = EdgeLabel.YES.value if matched else EdgeLabel.NO.value
        edge = next((e for e in self._flow.outgoing(node.id) if e.label == label), None)
        if edge:
            return self._flow.get_node(edge.target)

        fallback = node.data.yes_connection if matched else node.data.no_connection
        return self._flow.get_node(fallback) if fallback else None

    # -------------------------------------------------------------------------
    # Node handlers
    # -------------------------------------------------------------------------

    def _register_handlers(self) -> None:
        self._handlers[NodeType.START] = self._handle_start
        self._handlers[NodeType.MESSAGE] = self._handle_message
        self._handlers[NodeType.CONDITION] = self._handle_condition
        self._handlers[NodeType.API_CALL] = self._handle_api_call
        self._handlers[NodeType.DTMF] = self._handle_dtmf
        self._handlers[NodeType.ASSISTANT] = self._handle_assistant
        self._handlers[NodeType.TRANSFER] = self._handle_transfer
        self._handlers[NodeType.END] = self._handle_end
        for node_type in INTEGRATION_NODE_TYPES:
            self._handlers[node_type] = self._handle_integration

        missing = set(NodeType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No run handler for: {sorted(t.value for t in missing)}")

    def _speak(self, node: FlowNode, text: str, prefix: str = "Speaking") -> None:
        """Say ``text`` on the run's channel."""
        if self.channel == Channel.VOICE:
            self._emit(
                EventCategory.VOICE,
                f'{prefix}: "{text}"',
                node_id=node.id,
                status=EventStatus.SUCCESS,
            )
        else:
            self._emit(EventCategory.BOT, text, node_id=node.id)

    def _report(
        self,
        node: FlowNode,
        outcome: EffectOutcome,
        category: EventCategory = EventCategory.SYSTEM,
    ) -> None:
        if outcome.success:
            self._emit(category, outcome.detail, node_id=node.id, status=EventStatus.SUCCESS)
        else:
            self.stats.errors += 1
            self._emit(EventCategory.ERROR, outcome.detail, node_id=node.id, status=EventStatus.ERROR)
            logger.warning("node_effect_failed", node_id=node.id, node_type=node.type.value)

    async def _handle_start(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        return self._default_next(node)

    async def _handle_message(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        self._speak(node, node.data.content or NO_MESSAGE_TEXT)
        if not await self._pause(self.settings.simulation.message_s, generation):
            return None
        return self._default_next(node)

    async def _handle_condition(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        data = node.data
        self._emit(
            EventCategory.SYSTEM,
            f'Waiting for input to evaluate: "{data.variable or "user_input"}" '
            f'{data.operator} "{data.value}"',
            node_id=node.id,
            status=EventStatus.PENDING,
        )
        self._waiting_node = node
        self.state = RunState.WAITING_FOR_INPUT
        return None

    async def _handle_dtmf(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        data = node.data
        self._speak(node, data.prompt or DEFAULT_DTMF_PROMPT)
        self._emit(
            EventCategory.SYSTEM,
            f"Waiting for DTMF input (max {data.max_digits} digits, {data.timeout}s timeout)...",
            node_id=node.id,
            status=EventStatus.PENDING,
        )
        self._waiting_node = node
        self.state = RunState.WAITING_FOR_DTMF
        return None

    async def _handle_api_call(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        data = node.data
        self.stats.api_calls += 1
        self._emit(
            EventCategory.SYSTEM,
            f"API {data.method} {data.url or DEFAULT_API_URL}",
            node_id=node.id,
            status=EventStatus.PROCESSING,
        )

        outcome = await self._effects[node.type].invoke(node, self.channel)
        if not self._is_current(generation):
            return None

        self._report(node, outcome)
        return self._default_next(node)

    async def _handle_integration(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        """Channel sends, ticket actions and CRM actions."""
        data = node.data
        name = self.registry.get(node.type).name

        if node.type in CHANNEL_NODE_TYPES:
            text = f'Sending via {name}: "{data.message_template}"'
        elif node.type in TICKET_NODE_TYPES:
            text = f'{name}: {data.action} ticket "{data.subject}" (Priority: {data.priority})'
        elif node.type in CRM_NODE_TYPES:
            text = f"{name}: {data.action} → {data.object_type}"
        else:
            text = name

        self.stats.integration_calls += 1
        self._emit(EventCategory.SYSTEM, text, node_id=node.id, status=EventStatus.PROCESSING)

        outcome = await self._effects[node.type].invoke(node, self.channel)
        if not self._is_current(generation):
            return None

        self._report(node, outcome)
        return self._default_next(node)

    async def _handle_assistant(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        self._emit(
            EventCategory.SYSTEM,
            "AI Assistant processing...",
            node_id=node.id,
            status=EventStatus.PROCESSING,
        )

        outcome = await self._effects[node.type].invoke(node, self.channel)
        if not self._is_current(generation):
            return None

        if outcome.success:
            self._speak(node, outcome.detail, prefix="AI Speaking")
        else:
            self._report(node, outcome)
        return self._default_next(node)

    async def _handle_transfer(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        target = node.data.transfer_to or DEFAULT_TRANSFER_TARGET

        if self.channel == Channel.VOICE:
            self._emit(
                EventCategory.VOICE,
                f"Transferring call to {target}...",
                node_id=node.id,
                status=EventStatus.PROCESSING,
            )
        else:
            self._emit(EventCategory.BOT, f"Transferring you to {target}...", node_id=node.id)

        outcome = await self._effects[node.type].invoke(node, self.channel)
        if not self._is_current(generation):
            return None

        category = EventCategory.VOICE if self.channel == Channel.VOICE else EventCategory.SYSTEM
        self._report(node, outcome, category)
        return self._default_next(node)

    async def _handle_end(self, node: FlowNode, generation: int) -> Optional[FlowNode]:
        if self.channel == Channel.VOICE and self.call_active:
            self._emit(EventCategory.VOICE, "Call ending...", node_id=node.id, status=EventStatus.PROCESSING)
            if not await self._pause(self.settings.simulation.call_end_s, generation):
                return None
            self._hang_up()
        else:
            self._emit(EventCategory.SYSTEM, "Test completed", node_id=node.id, status=EventStatus.SUCCESS)

        self._finish(RunResult.SUCCESS)
        return None


__all__ = [
    "DEFAULT_API_URL",
    "FlowTestSession",
    "evaluate_condition",
    "format_duration",
]
