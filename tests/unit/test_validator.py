"""Unit tests for flow validation."""

from flow_builder.canvas import FlowValidator
from flow_builder.config import CanvasConfig, NodeType, Settings
from flow_builder.models import FlowEdge, FlowNode, NodeData


def _messages(result, severity="error"):
    issues = result.errors if severity == "error" else result.warnings
    return [i.message for i in issues]


class TestValidFlows:
    """Tests for flows built through the editor."""

    def test_linear_flow_is_clean(self, settings, linear_flow):
        """Test a connected start -> message -> end flow has no issues."""
        result = FlowValidator(settings).validate(linear_flow)

        assert result.valid
        assert result.issues == []

    def test_routing_flow_is_clean(self, settings, routing_flow):
        """Test a condition with both branches wired validates."""
        result = FlowValidator(settings).validate(routing_flow)
        assert result.valid
        assert result.warnings == []

    def test_result_to_dict(self, settings, flow):
        data = FlowValidator(settings).validate(flow).to_dict()
        assert data["valid"] is True
        assert "checked_at" in data


class TestStructuralErrors:
    """Tests for invariant violations introduced outside the editor."""

    def test_missing_start(self, settings, flow):
        flow.nodes = []
        result = FlowValidator(settings).validate(flow)

        assert not result.valid
        assert "Flow has no start node" in _messages(result)

    def test_multiple_starts(self, settings, flow):
        flow.nodes.append(
            FlowNode(id="start-2", type=NodeType.START, position={"x": 0, "y": 0}, data=NodeData())
        )
        result = FlowValidator(settings).validate(flow)

        assert "Flow has more than one start node" in _messages(result)

    def test_edge_rules(self, settings, flow, add):
        """Test hand-made edges breaking endpoint rules are reported."""
        end = add(NodeType.END)
        start = flow.start_node.id
        flow.edges += [
            FlowEdge(id="e1", source=end, target=start),
            FlowEdge(id="e2", source=end, target=end),
            FlowEdge(id="e3", source=end, target="ghost"),
        ]

        messages = _messages(FlowValidator(settings).validate(flow))

        assert "Start node has an incoming edge" in messages
        assert "End node has an outgoing edge" in messages
        assert "Node has an edge to itself" in messages
        assert "Edge references unknown node: ghost" in messages

    def test_condition_labels(self, settings, flow, add):
        """Test unlabeled and repeated condition branches are reported."""
        condition = add(NodeType.CONDITION)
        a, b = add(NodeType.MESSAGE), add(NodeType.MESSAGE)
        flow.edges += [
            FlowEdge(id="e1", source=condition, target=a, label="Yes"),
            FlowEdge(id="e2", source=condition, target=b, label="Yes"),
            FlowEdge(id="e3", source=condition, target=flow.start_node.id),
        ]

        messages = _messages(FlowValidator(settings).validate(flow))

        assert "Condition has more than one Yes branch" in messages
        assert "Condition edge must be labeled Yes or No (got None)" in messages

    def test_connections_drift(self, settings, linear_flow):
        """Test connections that disagree with edges are reported."""
        linear_flow.start_node.connections.append("ghost")

        result = FlowValidator(settings).validate(linear_flow)

        assert "Node connections are out of sync with its edges" in _messages(result)


class TestWarnings:
    """Tests for reachability and dead ends."""

    def test_unreachable_and_dead_end(self, settings, flow, add):
        """Test orphan nodes and nodes with no way forward are warned about."""
        orphan = add(NodeType.MESSAGE)
        result = FlowValidator(settings).validate(flow)

        assert result.valid
        warned = {(i.node_id, i.message) for i in result.warnings}
        assert (orphan, "Node is not reachable from the start node") in warned
        assert (flow.start_node.id, "Node has no next step; runs reaching it end here") in warned

    def test_condition_fallback_counts_as_path(self, settings, editor, flow, add):
        """Test a stored branch target makes its node reachable."""
        condition = add(NodeType.CONDITION)
        target = add(NodeType.END)
        editor.add_edge(flow.start_node.id, condition)
        editor.update_node_data(condition, {"yes_connection": target})

        result = FlowValidator(settings).validate(flow)

        assert result.warnings == []

    def test_node_limit(self, flow, add):
        """Test flows above the configured size are rejected."""
        settings = Settings(canvas=CanvasConfig(max_nodes_per_flow=2))
        add(NodeType.MESSAGE)
        add(NodeType.MESSAGE)

        result = FlowValidator(settings).validate(flow)

        assert "Flow exceeds maximum nodes (3 > 2)" in _messages(result)
