"""
Flow Executor Module.

Simulated test runs of flows over chat and voice.
"""

from .effects import NodeEffect, SimulatedEffects
from .engine import FlowTestSession, evaluate_condition, format_duration

__all__ = [
    "FlowTestSession",
    "NodeEffect",
    "SimulatedEffects",
    "evaluate_condition",
    "format_duration",
]
