"""
Flow Editor.

Validated node/edge mutations over a single flow. Every operation returns a
``MutationResult``; rejected mutations leave the flow untouched.

Edges and each node's ``connections`` list both describe adjacency and are
updated together by every operation here.
"""

import copy
import uuid
from typing import Any, Dict, Optional

import structlog

from ..config import (
    ConnectHandle,
    EdgeLabel,
    FlowStatus,
    NodeType,
    Settings,
    get_settings,
)
from ..models import (
    ConditionData,
    DtmfData,
    Flow,
    FlowEdge,
    FlowNode,
    MutationError,
    MutationResult,
)
from ..nodes import NodeRegistry, get_node_registry
from .connect import PendingConnection

logger = structlog.get_logger()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


_HANDLE_LABELS = {
    ConnectHandle.YES: EdgeLabel.YES.value,
    ConnectHandle.NO: EdgeLabel.NO.value,
}


class FlowEditor:
    """
    Graph mutation engine for one flow.

    Also owns the editor-side state that accompanies editing: the selected
    node mirror and the pending connection gesture.
    """

    def __init__(
        self,
        flow: Flow,
        settings: Optional[Settings] = None,
        registry: Optional[NodeRegistry] = None,
    ):
        self.flow = flow
        self.settings = settings or get_settings()
        self.registry = registry or get_node_registry()
        self.pending = PendingConnection()
        self._selected: Optional[FlowNode] = None

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    @property
    def selected_node(self) -> Optional[FlowNode]:
        return self._selected

    def select_node(self, node_id: str) -> MutationResult:
        node = self.flow.get_node(node_id)
        if not node:
            return self._node_not_found(node_id)
        self._selected = copy.deepcopy(node)
        return MutationResult.ok(self._selected)

    def clear_selection(self) -> None:
        self._selected = None

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def add_node(self, node_type: NodeType, position: Dict[str, float]) -> MutationResult:
        """Add a node with the type's default configuration."""
        if node_type == NodeType.START and self.flow.start_node:
            return MutationResult.fail(
                MutationError.START_NODE_EXISTS, "Flow already has a start node"
            )

        node = FlowNode(
            id=new_id(node_type.value),
            type=node_type,
            position=dict(position),
            data=self.registry.get(node_type).default_data(),
        )
        self.flow.nodes.append(node)
        self._mark_draft()

        logger.info("node_added", flow_id=self.flow.id, node_id=node.id, node_type=node_type.value)
        return MutationResult.ok(node)

    def duplicate_node(self, node_id: str) -> MutationResult:
        source = self.flow.get_node(node_id)
        if not source:
            return self._node_not_found(node_id)
        if source.type == NodeType.START:
            return MutationResult.fail(
                MutationError.START_NODE_PROTECTED, "The start node cannot be duplicated"
            )

        offset = self.settings.canvas.duplicate_offset
        node = FlowNode(
            id=new_id(source.type.value),
            type=source.type,
            position={
                "x": source.position.get("x", 0) + offset,
                "y": source.position.get("y", 0) + offset,
            },
            data=copy.deepcopy(source.data),
            connections=[],
        )
        self.flow.nodes.append(node)
        self._mark_draft()

        logger.info("node_duplicated", flow_id=self.flow.id, source_id=node_id, node_id=node.id)
        return MutationResult.ok(node)

    def update_node_data(self, node_id: str, partial: Dict[str, Any]) -> MutationResult:
        """Shallow-merge ``partial`` into the node's configuration."""
        node = self.flow.get_node(node_id)
        if not node:
            return self._node_not_found(node_id)

        merged = {**node.data.to_dict(), **partial}
        try:
            data = type(node.data).from_dict(merged)
        except (TypeError, ValueError) as e:
            return MutationResult.fail(MutationError.INVALID_DATA, str(e))

        node.data = data
        if self._selected and self._selected.id == node_id:
            self._selected = copy.deepcopy(node)
        self._mark_draft()

        logger.debug("node_updated", flow_id=self.flow.id, node_id=node_id, fields=sorted(partial))
        return MutationResult.ok(node)

    def delete_node(self, node_id: str) -> MutationResult:
        """Remove a node together with every edge and reference touching it."""
        node = self.flow.get_node(node_id)
        if not node:
            return self._node_not_found(node_id)
        if node.type == NodeType.START:
            return MutationResult.fail(
                MutationError.START_NODE_PROTECTED, "The start node cannot be deleted"
            )

        self.flow.nodes = [n for n in self.flow.nodes if n.id != node_id]
        removed_edges = [
            e for e in self.flow.edges if e.source == node_id or e.target == node_id
        ]
        removed_ids = {e.id for e in removed_edges}
        self.flow.edges = [e for e in self.flow.edges if e.id not in removed_ids]

        for other in self.flow.nodes:
            other.connections = [c for c in other.connections if c != node_id]
            if isinstance(other.data, ConditionData):
                if other.data.yes_connection == node_id:
                    other.data.yes_connection = None
                if other.data.no_connection == node_id:
                    other.data.no_connection = None
            elif isinstance(other.data, DtmfData):
                for branch in other.data.branches:
                    if branch.target_node_id == node_id:
                        branch.target_node_id = None

        if self._selected and self._selected.id == node_id:
            self._selected = None
        if self.pending.source_id == node_id:
            self.pending.cancel()
        self._mark_draft()

        logger.info(
            "node_deleted",
            flow_id=self.flow.id,
            node_id=node_id,
            edges_removed=len(removed_edges),
        )
        return MutationResult.ok(node)

    def move_node(self, node_id: str, position: Dict[str, float]) -> MutationResult:
        node = self.flow.get_node(node_id)
        if not node:
            return self._node_not_found(node_id)
        node.position = dict(position)
        return MutationResult.ok(node)

    # -------------------------------------------------------------------------
    # Edges
    # -------------------------------------------------------------------------

    def add_edge(
        self,
        source_id: str,
        target_id: str,
        handle: Optional[ConnectHandle] = None,
    ) -> MutationResult:
        """
        Connect two nodes.

        For a condition source the edge is labeled from ``handle``, or from the
        pending connection gesture when it started at ``source_id``.
        """
        source = self.flow.get_node(source_id)
        if not source:
            return self._node_not_found(source_id)
        target = self.flow.get_node(target_id)
        if not target:
            return self._node_not_found(target_id)

        if source_id == target_id:
            return MutationResult.fail(MutationError.SELF_LOOP, "A node cannot connect to itself")
        if target.type == NodeType.START:
            return MutationResult.fail(
                MutationError.INVALID_ENDPOINT, "The start node cannot have incoming edges"
            )
        if source.type == NodeType.END:
            return MutationResult.fail(
                MutationError.INVALID_ENDPOINT, "End nodes cannot have outgoing edges"
            )
        if any(e.source == source_id and e.target == target_id for e in self.flow.edges):
            return MutationResult.fail(
                MutationError.DUPLICATE_EDGE, f"Edge {source_id} -> {target_id} already exists"
            )

        label = None
        if source.type == NodeType.CONDITION:
            handle = handle or self.pending.handle_for(source_id)
            taken = {e.label for e in self.flow.outgoing(source_id)}
            label = _HANDLE_LABELS.get(handle)
            if label is None:
                # no branch handle given: take the first free branch
                label = next((lbl.value for lbl in EdgeLabel if lbl.value not in taken), None)
            if label is None or label in taken:
                return MutationResult.fail(
                    MutationError.BRANCH_TAKEN,
                    f"Condition branch already connected: {label or 'Yes/No'}",
                )

        edge = FlowEdge(id=new_id("e"), source=source_id, target=target_id, label=label)
        self.flow.edges.append(edge)
        source.connections.append(target_id)
        self._mark_draft()

        logger.info(
            "edge_added",
            flow_id=self.flow.id,
            edge_id=edge.id,
            source=source_id,
            target=target_id,
            label=label,
        )
        return MutationResult.ok(edge)

    def delete_edge(self, edge_id: str) -> MutationResult:
        edge = self.flow.get_edge(edge_id)
        if not edge:
            return MutationResult.fail(MutationError.EDGE_NOT_FOUND, f"Edge not found: {edge_id}")

        self.flow.edges = [e for e in self.flow.edges if e.id != edge_id]
        source = self.flow.get_node(edge.source)
        if source and edge.target in source.connections:
            source.connections.remove(edge.target)
        self._mark_draft()

        logger.info("edge_deleted", flow_id=self.flow.id, edge_id=edge_id)
        return MutationResult.ok(edge)

    # -------------------------------------------------------------------------
    # Connection gesture
    # -------------------------------------------------------------------------

    def start_connect(
        self,
        node_id: str,
        handle: ConnectHandle = ConnectHandle.DEFAULT,
    ) -> MutationResult:
        if not self.flow.get_node(node_id):
            return self._node_not_found(node_id)
        self.pending.start(node_id, handle)
        return MutationResult.ok()

    def cancel_connect(self) -> None:
        self.pending.cancel()

    def complete_connect(self, target_id: str) -> MutationResult:
        """Finish the pending gesture on ``target_id``; always returns to idle."""
        if not self.pending.is_connecting:
            return MutationResult.fail(MutationError.NOT_CONNECTING, "No connection in progress")
        try:
            return self.add_edge(self.pending.source_id, target_id)
        finally:
            self.pending.cancel()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _mark_draft(self) -> None:
        self.flow.status = FlowStatus.DRAFT

    def _node_not_found(self, node_id: str) -> MutationResult:
        return MutationResult.fail(MutationError.NODE_NOT_FOUND, f"Node not found: {node_id}")
