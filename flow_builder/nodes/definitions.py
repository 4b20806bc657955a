"""
Node Type Definitions.

Complete definitions for all available node types in the flow builder.
"""

from ..config import ConditionOperator, NodeCategory, NodeType
from ..models import NodeDefinition


# =============================================================================
# Flow Nodes
# =============================================================================

FLOW_NODES = [
    NodeDefinition(
        type=NodeType.START,
        category=NodeCategory.FLOW,
        name="Start",
        description="Entry point of the conversation",
        icon="▶️",
        defaults={"label": "Start"},
    ),
    NodeDefinition(
        type=NodeType.MESSAGE,
        category=NodeCategory.FLOW,
        name="Message",
        description="Send a message to the user (spoken on voice)",
        icon="💬",
        defaults={"content": "Enter your message here..."},
    ),
    NodeDefinition(
        type=NodeType.CONDITION,
        category=NodeCategory.FLOW,
        name="Condition",
        description="Branch on the user's reply (Yes / No)",
        icon="🔀",
        defaults={
            "variable": "",
            "operator": ConditionOperator.EQUALS.value,
            "value": "",
        },
    ),
    NodeDefinition(
        type=NodeType.API_CALL,
        category=NodeCategory.FLOW,
        name="API Call",
        description="Call an external HTTP API",
        icon="🔌",
        defaults={"method": "GET", "url": ""},
    ),
    NodeDefinition(
        type=NodeType.DTMF,
        category=NodeCategory.FLOW,
        name="DTMF Input",
        description="Collect keypad digits from the caller",
        icon="🔢",
        defaults={
            "prompt": "Please enter your selection",
            "timeout": 10,
            "max_digits": 1,
            "branches": [
                {"key": "1", "label": "Option 1"},
                {"key": "2", "label": "Option 2"},
                {"key": "0", "label": "Operator"},
            ],
        },
    ),
    NodeDefinition(
        type=NodeType.ASSISTANT,
        category=NodeCategory.FLOW,
        name="AI Assistant",
        description="Hand the conversation to an AI persona",
        icon="🤖",
        defaults={"persona_id": "", "persona_name": ""},
    ),
    NodeDefinition(
        type=NodeType.TRANSFER,
        category=NodeCategory.FLOW,
        name="Transfer",
        description="Transfer the conversation to a human agent or queue",
        icon="👤",
        defaults={"transfer_to": "Agent"},
    ),
    NodeDefinition(
        type=NodeType.END,
        category=NodeCategory.FLOW,
        name="End",
        description="Terminate the conversation",
        icon="⏹️",
        defaults={"label": "End"},
    ),
]


# =============================================================================
# Channel Nodes
# =============================================================================

CHANNEL_NODES = [
    NodeDefinition(
        type=NodeType.WHATSAPP,
        category=NodeCategory.CHANNELS,
        name="WhatsApp",
        description="Send a WhatsApp message",
        icon="📱",
        defaults={"channel": "whatsapp", "message_template": "Message template"},
    ),
    NodeDefinition(
        type=NodeType.SLACK,
        category=NodeCategory.CHANNELS,
        name="Slack",
        description="Post a Slack message",
        icon="💼",
        defaults={"channel": "slack", "message_template": "Message template"},
    ),
    NodeDefinition(
        type=NodeType.TELEGRAM,
        category=NodeCategory.CHANNELS,
        name="Telegram",
        description="Send a Telegram message",
        icon="✈️",
        defaults={"channel": "telegram", "message_template": "Message template"},
    ),
    NodeDefinition(
        type=NodeType.TEAMS,
        category=NodeCategory.CHANNELS,
        name="Microsoft Teams",
        description="Post a Microsoft Teams message",
        icon="🟦",
        defaults={"channel": "teams", "message_template": "Message template"},
    ),
]


# =============================================================================
# Ticketing Nodes
# =============================================================================

TICKETING_NODES = [
    NodeDefinition(
        type=NodeType.ZENDESK,
        category=NodeCategory.TICKETING,
        name="Zendesk",
        description="Create or update a Zendesk ticket",
        icon="🎫",
        defaults={"action": "create", "subject": "New Ticket", "priority": "medium"},
    ),
    NodeDefinition(
        type=NodeType.FRESHDESK,
        category=NodeCategory.TICKETING,
        name="Freshdesk",
        description="Create or update a Freshdesk ticket",
        icon="📋",
        defaults={"action": "create", "subject": "New Ticket", "priority": "medium"},
    ),
]


# =============================================================================
# CRM Nodes
# =============================================================================

CRM_NODES = [
    NodeDefinition(
        type=NodeType.SALESFORCE,
        category=NodeCategory.CRM,
        name="Salesforce",
        description="Create or update a Salesforce record",
        icon="☁️",
        defaults={"action": "create_contact", "object_type": "contact"},
    ),
    NodeDefinition(
        type=NodeType.HUBSPOT,
        category=NodeCategory.CRM,
        name="HubSpot",
        description="Create or update a HubSpot record",
        icon="🔶",
        defaults={"action": "create_contact", "object_type": "contact"},
    ),
    NodeDefinition(
        type=NodeType.ZOHO_CRM,
        category=NodeCategory.CRM,
        name="Zoho CRM",
        description="Create or update a Zoho CRM record",
        icon="📊",
        defaults={"action": "create_contact", "object_type": "contact"},
    ),
]


ALL_NODES = FLOW_NODES + CHANNEL_NODES + TICKETING_NODES + CRM_NODES
