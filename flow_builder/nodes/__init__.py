"""
Node Types and Registry.

This module provides the node type definitions and registry
for the flow builder.
"""

from .registry import NodeRegistry, get_node_registry
from .definitions import ALL_NODES, FLOW_NODES, CHANNEL_NODES, TICKETING_NODES, CRM_NODES

__all__ = [
    "NodeRegistry",
    "get_node_registry",
    "ALL_NODES",
    "FLOW_NODES",
    "CHANNEL_NODES",
    "TICKETING_NODES",
    "CRM_NODES",
]
