"""
Flow Validator.

Validates flow structure, edges, and the connections mirror.
"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Set

import structlog

from ..config import EdgeLabel, NodeType, Settings, get_settings
from ..models import ConditionData, Flow, ValidationIssue, ValidationResult

logger = structlog.get_logger()


class FlowValidator:
    """
    Validates flow structure and configuration.

    Checks:
    - Start/end invariants
    - Edge integrity (endpoints, self loops, duplicates, branch labels)
    - Consistency between edges and node connections
    - Reachability and dead ends
    - Resource limits
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def validate(self, flow: Flow) -> ValidationResult:
        issues: List[ValidationIssue] = []

        issues.extend(self._validate_structure(flow))
        issues.extend(self._validate_edges(flow))
        issues.extend(self._validate_connections(flow))
        issues.extend(self._validate_logic(flow))
        issues.extend(self._validate_limits(flow))

        valid = all(i.severity != "error" for i in issues)
        if not valid:
            logger.debug("flow_invalid", flow_id=flow.id, errors=sum(i.severity == "error" for i in issues))

        return ValidationResult(valid=valid, issues=issues, checked_at=datetime.utcnow())

    def _validate_structure(self, flow: Flow) -> List[ValidationIssue]:
        issues = []

        start_nodes = [n for n in flow.nodes if n.type == NodeType.START]
        if not start_nodes:
            issues.append(ValidationIssue(severity="error", message="Flow has no start node"))
        elif len(start_nodes) > 1:
            for node in start_nodes[1:]:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message="Flow has more than one start node",
                        node_id=node.id,
                    )
                )

        for node_id, count in Counter(n.id for n in flow.nodes).items():
            if count > 1:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message=f"Duplicate node ID: {node_id}",
                        node_id=node_id,
                    )
                )

        return issues

    def _validate_edges(self, flow: Flow) -> List[ValidationIssue]:
        issues = []
        nodes = {n.id: n for n in flow.nodes}
        seen_pairs: Set[tuple] = set()
        labels_by_source: Dict[str, List[str]] = {}

        for edge in flow.edges:
            source = nodes.get(edge.source)
            target = nodes.get(edge.target)

            if not source or not target:
                missing = edge.source if not source else edge.target
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message=f"Edge references unknown node: {missing}",
                        edge_id=edge.id,
                    )
                )
                continue

            if edge.source == edge.target:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message="Node has an edge to itself",
                        node_id=edge.source,
                        edge_id=edge.id,
                    )
                )

            if target.type == NodeType.START:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message="Start node has an incoming edge",
                        node_id=target.id,
                        edge_id=edge.id,
                    )
                )

            if source.type == NodeType.END:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message="End node has an outgoing edge",
                        node_id=source.id,
                        edge_id=edge.id,
                    )
                )

            pair = (edge.source, edge.target)
            if pair in seen_pairs:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message=f"Duplicate edge {edge.source} -> {edge.target}",
                        edge_id=edge.id,
                    )
                )
            seen_pairs.add(pair)

            if source.type == NodeType.CONDITION:
                labels_by_source.setdefault(source.id, []).append(edge.label)

        valid_labels = {label.value for label in EdgeLabel}
        for source_id, labels in labels_by_source.items():
            for label, count in Counter(labels).items():
                if label not in valid_labels:
                    issues.append(
                        ValidationIssue(
                            severity="error",
                            message=f"Condition edge must be labeled Yes or No (got {label!r})",
                            node_id=source_id,
                        )
                    )
                elif count > 1:
                    issues.append(
                        ValidationIssue(
                            severity="error",
                            message=f"Condition has more than one {label} branch",
                            node_id=source_id,
                        )
                    )

        return issues

    def _validate_connections(self, flow: Flow) -> List[ValidationIssue]:
        """Each node's connections must match the targets of its outgoing edges."""
        issues = []

        for node in flow.nodes:
            edge_targets = sorted(e.target for e in flow.outgoing(node.id))
            if sorted(node.connections) != edge_targets:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message="Node connections are out of sync with its edges",
                        node_id=node.id,
                    )
                )

        return issues

    def _validate_logic(self, flow: Flow) -> List[ValidationIssue]:
        """Reachability from start and dead ends."""
        issues = []

        graph: Dict[str, List[str]] = {n.id: [] for n in flow.nodes}
        for edge in flow.edges:
            if edge.source in graph:
                graph[edge.source].append(edge.target)
        for node in flow.nodes:
            fallbacks = []
            if isinstance(node.data, ConditionData):
                fallbacks = [node.data.yes_connection, node.data.no_connection]
            for target in node.connections + [f for f in fallbacks if f]:
                if target not in graph[node.id]:
                    graph[node.id].append(target)

        start = flow.start_node
        reachable: Set[str] = set()
        queue = [start.id] if start else []
        while queue:
            current = queue.pop(0)
            if current in reachable:
                continue
            reachable.add(current)
            queue.extend(graph.get(current, []))

        for node in flow.nodes:
            if start and node.id not in reachable:
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message="Node is not reachable from the start node",
                        node_id=node.id,
                    )
                )
            if node.type != NodeType.END and not [t for t in graph[node.id] if t in graph]:
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message="Node has no next step; runs reaching it end here",
                        node_id=node.id,
                    )
                )

        return issues

    def _validate_limits(self, flow: Flow) -> List[ValidationIssue]:
        max_nodes = self.settings.canvas.max_nodes_per_flow
        if len(flow.nodes) > max_nodes:
            return [
                ValidationIssue(
                    severity="error",
                    message=f"Flow exceeds maximum nodes ({len(flow.nodes)} > {max_nodes})",
                )
            ]
        return []
