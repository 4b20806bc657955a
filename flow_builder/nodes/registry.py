"""
Node Registry.

Manages registration and lookup of node types.
"""

from functools import lru_cache
from typing import Dict, List, Optional

import structlog

from ..config import NodeCategory, NodeType
from ..models import NodeDefinition
from .definitions import ALL_NODES

logger = structlog.get_logger()


class NodeRegistry:
    """
    Registry for node type definitions.

    Provides lookup and filtering of available node types.
    """

    def __init__(self):
        """Initialize registry with all node definitions."""
        self._nodes: Dict[NodeType, NodeDefinition] = {}
        self._by_category: Dict[NodeCategory, List[NodeDefinition]] = {}

        for node_def in ALL_NODES:
            self.register(node_def)

        logger.debug("node_types_registered", count=len(self._nodes))

    def register(self, node_def: NodeDefinition) -> None:
        """Register a node definition."""
        if node_def.type in self._nodes:
            logger.warning("node_type_overwritten", node_type=node_def.type.value)
            self._by_category[self._nodes[node_def.type].category].remove(
                self._nodes[node_def.type]
            )

        self._nodes[node_def.type] = node_def
        self._by_category.setdefault(node_def.category, []).append(node_def)

    def get(self, node_type: NodeType) -> NodeDefinition:
        """Get node definition by type."""
        return self._nodes[node_type]

    def get_by_name(self, type_name: str) -> Optional[NodeDefinition]:
        """Get node definition by type name string."""
        try:
            return self._nodes.get(NodeType(type_name))
        except ValueError:
            return None

    def list_all(self) -> List[NodeDefinition]:
        """List all registered node definitions."""
        return list(self._nodes.values())

    def list_by_category(self, category: NodeCategory) -> List[NodeDefinition]:
        """List nodes in a specific category."""
        return self._by_category.get(category, [])

    def get_categories(self) -> List[NodeCategory]:
        """Get all categories with registered nodes."""
        return list(self._by_category.keys())

    def to_catalog(self) -> Dict[str, List[Dict]]:
        """
        Export registry as a catalog organized by category.

        Returns:
            Dict mapping category names to lists of node definitions
        """
        catalog = {}

        for category in NodeCategory:
            nodes = self.list_by_category(category)
            if nodes:
                catalog[category.value] = [n.to_dict() for n in nodes]

        return catalog


@lru_cache
def get_node_registry() -> NodeRegistry:
    """Get the shared node registry."""
    return NodeRegistry()
