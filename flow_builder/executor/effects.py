"""
Node Effects.

An effect performs the external side of a node (an HTTP request, a channel
message, a ticket, a CRM record, an agent transfer, an assistant turn).
The engine only talks to the ``NodeEffect`` interface; the simulated
implementations here sleep for a configured latency and fabricate a
plausible outcome.
"""

import asyncio
import json
import random
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..config import (
    CRM_NODE_TYPES,
    CHANNEL_NODE_TYPES,
    TICKET_NODE_TYPES,
    Channel,
    NodeType,
    Settings,
    get_settings,
)
from ..models import EffectOutcome, FlowNode
from ..nodes import NodeRegistry, get_node_registry

DEFAULT_TRANSFER_TARGET = "Agent"

ASSISTANT_RESPONSES = (
    "I understand your concern. Let me help you with that right away.",
    "Based on your account information, I can see the details you need.",
    "I've reviewed your request and here's what I found.",
    "Thank you for your patience. I have the information ready for you.",
)


class NodeEffect(ABC):
    """Capability invoked by the engine for nodes with an external effect."""

    @abstractmethod
    async def invoke(self, node: FlowNode, channel: Channel) -> EffectOutcome:
        """Perform the effect for ``node`` during a run on ``channel``."""


# =============================================================================
# Simulated effects
# =============================================================================


class SimulatedEffect(NodeEffect):
    """Base for effects that only wait and report."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[NodeRegistry] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or get_node_registry()
        self.rng = rng or random.Random()

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds * self.settings.simulation.latency_scale)

    def _display_name(self, node: FlowNode) -> str:
        return self.registry.get(node.type).name


class SimulatedApiCall(SimulatedEffect):
    """Fails at random with probability ``api_failure_rate``."""

    async def invoke(self, node: FlowNode, channel: Channel) -> EffectOutcome:
        sim = self.settings.simulation
        await self._sleep(sim.api_call_s)

        if self.rng.random() < sim.api_failure_rate:
            elapsed_ms = self.rng.randint(500, 1499)
            return EffectOutcome(
                success=False,
                detail=f"API Response: 500 Internal Server Error ({elapsed_ms}ms)",
            )

        elapsed_ms = self.rng.randint(50, 349)
        body = json.dumps({"status": "success", "data": {}})
        return EffectOutcome(
            success=True,
            detail=f"API Response: 200 OK ({elapsed_ms}ms)\nResponse: {body}",
        )


class SimulatedAssistant(SimulatedEffect):
    async def invoke(self, node: FlowNode, channel: Channel) -> EffectOutcome:
        await self._sleep(self.settings.simulation.assistant_s)
        return EffectOutcome(success=True, detail=self.rng.choice(ASSISTANT_RESPONSES))


class SimulatedTransfer(SimulatedEffect):
    async def invoke(self, node: FlowNode, channel: Channel) -> EffectOutcome:
        sim = self.settings.simulation
        target = getattr(node.data, "transfer_to", "") or DEFAULT_TRANSFER_TARGET

        if channel == Channel.VOICE:
            await self._sleep(sim.voice_transfer_s)
            return EffectOutcome(success=True, detail=f"Call transferred to {target}")

        await self._sleep(sim.chat_transfer_s)
        return EffectOutcome(success=True, detail=f"Transferred to {target}")


class SimulatedChannelSend(SimulatedEffect):
    async def invoke(self, node: FlowNode, channel: Channel) -> EffectOutcome:
        await self._sleep(self.settings.simulation.channel_send_s)
        return EffectOutcome(success=True, detail=f"{self._display_name(node)} message delivered")


class SimulatedTicketAction(SimulatedEffect):
    async def invoke(self, node: FlowNode, channel: Channel) -> EffectOutcome:
        await self._sleep(self.settings.simulation.ticket_s)
        ticket_number = self.rng.randint(10000, 99999)
        return EffectOutcome(
            success=True, detail=f"Ticket #{ticket_number} created successfully"
        )


class SimulatedCrmAction(SimulatedEffect):
    async def invoke(self, node: FlowNode, channel: Channel) -> EffectOutcome:
        await self._sleep(self.settings.simulation.crm_s)
        record_id = "".join(
            self.rng.choice("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789") for _ in range(8)
        )
        return EffectOutcome(success=True, detail=f"CRM record updated (ID: {record_id})")


class SimulatedEffects:
    """
    Default effect for every node type that has one.

    Args:
        settings: Latencies and failure rate
        registry: Node definitions (display names)
        rng: Random source shared by all effects; seed it for reproducible runs
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[NodeRegistry] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or get_node_registry()
        self.rng = rng or random.Random()

        self._effects: Dict[NodeType, NodeEffect] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        args = (self.settings, self.registry, self.rng)

        self._effects[NodeType.API_CALL] = SimulatedApiCall(*args)
        self._effects[NodeType.ASSISTANT] = SimulatedAssistant(*args)
        self._effects[NodeType.TRANSFER] = SimulatedTransfer(*args)

        channel_send = SimulatedChannelSend(*args)
        for node_type in CHANNEL_NODE_TYPES:
            self._effects[node_type] = channel_send

        ticket_action = SimulatedTicketAction(*args)
        for node_type in TICKET_NODE_TYPES:
            self._effects[node_type] = ticket_action

        crm_action = SimulatedCrmAction(*args)
        for node_type in CRM_NODE_TYPES:
            self._effects[node_type] = crm_action

    def as_dict(self) -> Dict[NodeType, NodeEffect]:
        return dict(self._effects)


__all__ = [
    "ASSISTANT_RESPONSES",
    "DEFAULT_TRANSFER_TARGET",
    "NodeEffect",
    "SimulatedEffect",
    "SimulatedApiCall",
    "SimulatedAssistant",
    "SimulatedTransfer",
    "SimulatedChannelSend",
    "SimulatedTicketAction",
    "SimulatedCrmAction",
    "SimulatedEffects",
]
