"""Unit tests for node definitions, the registry and node data shapes."""

import pytest

from flow_builder.config import NodeCategory, NodeType
from flow_builder.models import (
    ChannelData,
    CrmData,
    DtmfBranch,
    DtmfData,
    NodeData,
    NodeDefinition,
    TicketData,
    node_data_from_dict,
)
from flow_builder.nodes import NodeRegistry


class TestNodeRegistry:
    """Tests for the node registry."""

    def test_every_type_registered(self):
        """Test each node type has a definition."""
        registry = NodeRegistry()
        assert {d.type for d in registry.list_all()} == set(NodeType)

    def test_categories(self):
        """Test node types are grouped by palette category."""
        registry = NodeRegistry()

        assert registry.get_categories() == [
            NodeCategory.FLOW,
            NodeCategory.CHANNELS,
            NodeCategory.TICKETING,
            NodeCategory.CRM,
        ]
        crm = {d.type for d in registry.list_by_category(NodeCategory.CRM)}
        assert crm == {NodeType.SALESFORCE, NodeType.HUBSPOT, NodeType.ZOHO_CRM}

    def test_get_by_name(self):
        """Test lookup by type name."""
        registry = NodeRegistry()

        assert registry.get_by_name("dtmf").name == "DTMF Input"
        assert registry.get_by_name("fax") is None

    def test_register_overwrites(self):
        """Test re-registering a type replaces it in its category."""
        registry = NodeRegistry()
        custom = NodeDefinition(
            type=NodeType.MESSAGE,
            category=NodeCategory.FLOW,
            name="Say",
            description="Custom message",
            icon="🗣️",
        )

        registry.register(custom)

        assert registry.get(NodeType.MESSAGE) is custom
        flow_types = [d.type for d in registry.list_by_category(NodeCategory.FLOW)]
        assert flow_types.count(NodeType.MESSAGE) == 1

    def test_catalog(self):
        """Test the catalog lists defaults per category."""
        catalog = NodeRegistry().to_catalog()

        assert set(catalog) == {"flow", "channels", "ticketing", "crm"}
        message = next(n for n in catalog["flow"] if n["type"] == "message")
        assert message["icon"] == "💬"
        assert message["defaults"]["content"] == "Enter your message here..."


class TestDefaultData:
    """Tests for per-type default configuration."""

    def test_default_label(self):
        """Test nodes are labeled after their type unless overridden."""
        registry = NodeRegistry()

        assert registry.get(NodeType.MESSAGE).default_data().label == "New Message"
        assert registry.get(NodeType.START).default_data().label == "Start"

    def test_integration_defaults(self):
        """Test integration nodes get their action defaults."""
        registry = NodeRegistry()

        ticket = registry.get(NodeType.ZENDESK).default_data()
        crm = registry.get(NodeType.HUBSPOT).default_data()
        channel = registry.get(NodeType.SLACK).default_data()

        assert isinstance(ticket, TicketData)
        assert (ticket.action, ticket.priority) == ("create", "medium")
        assert isinstance(crm, CrmData)
        assert (crm.action, crm.object_type) == ("create_contact", "contact")
        assert isinstance(channel, ChannelData)

    def test_defaults_not_shared(self):
        """Test each call returns independent data."""
        definition = NodeRegistry().get(NodeType.DTMF)

        first = definition.default_data()
        first.branches.append(DtmfBranch(key="9", label="Extra"))

        assert len(definition.default_data().branches) == 3


class TestNodeData:
    """Tests for node data shapes."""

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError):
            NodeData.from_dict({"label": "x", "color": "red"})

    def test_dtmf_branches_from_dicts(self):
        """Test DTMF branches are rebuilt from plain dictionaries."""
        data = DtmfData.from_dict(
            {"prompt": "Press 1", "branches": [{"key": "1", "label": "Sales"}]}
        )

        assert data.branches == [DtmfBranch(key="1", label="Sales")]
        assert data.to_dict()["branches"][0]["target_node_id"] is None

    def test_shape_per_type(self):
        """Test the data class follows the node type."""
        data = node_data_from_dict(NodeType.TEAMS, {"message_template": "Hi"})
        assert isinstance(data, ChannelData)
        assert data.message_template == "Hi"
