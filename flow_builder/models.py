"""
Data Models for Flow Builder.
"""

import copy
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field

from .config import (
    Channel,
    ConditionOperator,
    ConnectHandle,
    EventCategory,
    EventStatus,
    FlowStatus,
    NodeCategory,
    NodeType,
    RunOutcome,
)


# =============================================================================
# Node Data (one shape per node type)
# =============================================================================


class NodeData(BaseModel):
    """Configuration shared by every node type."""

    model_config = ConfigDict(extra="forbid")

    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeData":
        """Build from a dictionary, rejecting unknown keys and wrong types."""
        unknown = set(data) - set(cls.model_fields)
        if unknown:
            raise ValueError(
                f"Unknown field(s) for {cls.__name__}: {', '.join(sorted(unknown))}"
            )
        return cls.model_validate(copy.deepcopy(data))


class MessageData(NodeData):
    content: str = ""


class ConditionData(NodeData):
    variable: str = ""
    operator: str = ConditionOperator.EQUALS.value
    value: str = ""
    yes_connection: Optional[str] = None
    no_connection: Optional[str] = None


class ApiCallData(NodeData):
    method: str = "GET"
    url: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None


class DtmfBranch(BaseModel):
    """A keypad option offered by a DTMF node."""

    model_config = ConfigDict(extra="forbid")

    key: str
    label: str
    target_node_id: Optional[str] = None


class DtmfData(NodeData):
    prompt: str = ""
    timeout: int = Field(default=10, ge=1)
    max_digits: int = Field(default=1, ge=1)
    branches: List[DtmfBranch] = Field(default_factory=list)


class AssistantData(NodeData):
    persona_id: str = ""
    persona_name: str = ""
    handoff_condition: Optional[str] = None


class TransferData(NodeData):
    transfer_to: str = ""


class ChannelData(NodeData):
    recipient_id: str = ""
    message_template: str = ""
    channel: str = ""


class TicketData(NodeData):
    action: str = "create"
    subject: str = ""
    priority: str = "medium"
    assignee: Optional[str] = None
    tags: Optional[str] = None


class CrmData(NodeData):
    action: str = "create_contact"
    object_type: str = "contact"
    field_mapping: Optional[str] = None


NODE_DATA_CLASSES: Dict[NodeType, Type[NodeData]] = {
    NodeType.START: NodeData,
    NodeType.END: NodeData,
    NodeType.MESSAGE: MessageData,
    NodeType.CONDITION: ConditionData,
    NodeType.API_CALL: ApiCallData,
    NodeType.DTMF: DtmfData,
    NodeType.ASSISTANT: AssistantData,
    NodeType.TRANSFER: TransferData,
    NodeType.WHATSAPP: ChannelData,
    NodeType.SLACK: ChannelData,
    NodeType.TELEGRAM: ChannelData,
    NodeType.TEAMS: ChannelData,
    NodeType.ZENDESK: TicketData,
    NodeType.FRESHDESK: TicketData,
    NodeType.SALESFORCE: CrmData,
    NodeType.HUBSPOT: CrmData,
    NodeType.ZOHO_CRM: CrmData,
}


def node_data_from_dict(node_type: NodeType, data: Dict[str, Any]) -> NodeData:
    """Build the data shape matching a node type."""
    return NODE_DATA_CLASSES[node_type].from_dict(data)


@dataclass
class NodeDefinition:
    """Definition of a node type."""

    type: NodeType
    category: NodeCategory
    name: str
    description: str
    icon: str

    # Default configuration applied by addNode
    defaults: Dict[str, Any] = field(default_factory=dict)

    @property
    def data_class(self) -> Type[NodeData]:
        return NODE_DATA_CLASSES[self.type]

    def default_data(self) -> NodeData:
        data = {"label": f"New {self.name}", **copy.deepcopy(self.defaults)}
        return self.data_class.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "category": self.category.value,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "properties": list(self.data_class.model_fields),
            "defaults": self.default_data().to_dict(),
        }


# =============================================================================
# Graph Models
# =============================================================================


@dataclass
class FlowNode:
    """A typed step in a flow."""

    id: str
    type: NodeType
    position: Dict[str, float]
    data: NodeData
    connections: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "position": dict(self.position),
            "data": self.data.to_dict(),
            "connections": list(self.connections),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowNode":
        node_type = NodeType(data["type"])
        return cls(
            id=data["id"],
            type=node_type,
            position=dict(data.get("position", {"x": 0, "y": 0})),
            data=node_data_from_dict(node_type, data.get("data", {})),
            connections=list(data.get("connections", [])),
        )


@dataclass
class FlowEdge:
    """Directed, optionally labeled relation between two nodes."""

    id: str
    source: str
    target: str
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowEdge":
        return cls(
            id=data["id"],
            source=data["source"],
            target=data["target"],
            label=data.get("label"),
        )


@dataclass(frozen=True)
class FlowVersion:
    """Immutable published snapshot of a flow."""

    id: str
    version: str
    created_at: datetime
    created_by: str
    status: FlowStatus
    nodes: Tuple[FlowNode, ...]
    edges: Tuple[FlowEdge, ...]
    changelog: str = ""

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
            "status": self.status.value,
            "changelog": self.changelog,
            "node_count": len(self.nodes),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.to_summary(),
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


@dataclass
class Flow:
    """Complete flow definition."""

    id: str
    name: str
    description: str
    category: str
    status: FlowStatus
    current_version: str
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)
    versions: List[FlowVersion] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_edge(self, edge_id: str) -> Optional[FlowEdge]:
        return next((e for e in self.edges if e.id == edge_id), None)

    def get_version(self, version_id: str) -> Optional[FlowVersion]:
        return next((v for v in self.versions if v.id == version_id), None)

    @property
    def start_node(self) -> Optional[FlowNode]:
        return next((n for n in self.nodes if n.type == NodeType.START), None)

    def outgoing(self, node_id: str) -> List[FlowEdge]:
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> List[FlowEdge]:
        return [e for e in self.edges if e.target == node_id]

    def graph_state(self) -> Dict[str, Any]:
        """Structural state compared by dirty tracking."""
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status.value,
            "current_version": self.current_version,
            "updated_at": self.updated_at.isoformat(),
            "node_count": len(self.nodes),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status.value,
            "current_version": self.current_version,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "versions": [v.to_summary() for v in self.versions],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flow":
        """Import a flow; version history is not imported."""
        now = datetime.utcnow()
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            category=data.get("category", ""),
            status=FlowStatus(data.get("status", FlowStatus.DRAFT.value)),
            current_version=data.get("current_version", "0.1"),
            nodes=[FlowNode.from_dict(n) for n in data.get("nodes", [])],
            edges=[FlowEdge.from_dict(e) for e in data.get("edges", [])],
            created_at=now,
            updated_at=now,
        )


# =============================================================================
# Mutation Results
# =============================================================================


class MutationError(str, Enum):
    """Reasons a mutation is rejected."""

    SELF_LOOP = "self_loop"
    INVALID_ENDPOINT = "invalid_endpoint"
    DUPLICATE_EDGE = "duplicate_edge"
    BRANCH_TAKEN = "branch_taken"
    NODE_NOT_FOUND = "node_not_found"
    EDGE_NOT_FOUND = "edge_not_found"
    VERSION_NOT_FOUND = "version_not_found"
    START_NODE_EXISTS = "start_node_exists"
    START_NODE_PROTECTED = "start_node_protected"
    INVALID_DATA = "invalid_data"
    NOT_CONNECTING = "not_connecting"


@dataclass
class MutationResult:
    """Outcome of a graph mutation; failures never raise."""

    success: bool
    error: Optional[MutationError] = None
    message: str = ""
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "MutationResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: MutationError, message: str) -> "MutationResult":
        return cls(success=False, error=error, message=message)

    def to_dict(self) -> Dict[str, Any]:
        value = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
        return {
            "success": self.success,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "value": value,
        }


# =============================================================================
# Validation Models
# =============================================================================


@dataclass
class ValidationIssue:
    """A validation issue found in a flow."""

    severity: str  # error, warning, info
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    """Result of flow validation."""

    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    checked_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "checked_at": self.checked_at.isoformat(),
        }


# =============================================================================
# Execution Models
# =============================================================================


@dataclass
class RunEvent:
    """One entry of a run's ordered event log."""

    id: str
    category: EventCategory
    content: str
    timestamp: datetime
    node_id: Optional[str] = None
    status: Optional[EventStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "content": self.content,
            "node_id": self.node_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value if self.status else None,
        }


@dataclass
class RunStats:
    """Running totals for a test run."""

    total_nodes: int = 0
    nodes_visited: int = 0
    api_calls: int = 0
    integration_calls: int = 0
    errors: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def elapsed_time(self) -> float:
        """Seconds since the run started (frozen once it ends)."""
        if not self.started_at:
            return 0.0
        end = self.ended_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    @property
    def outcome(self) -> Optional[RunOutcome]:
        if not self.ended_at:
            return None
        return RunOutcome.PASSED if self.errors == 0 else RunOutcome.COMPLETED_WITH_ERRORS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes_visited": self.nodes_visited,
            "total_nodes": self.total_nodes,
            "api_calls": self.api_calls,
            "integration_calls": self.integration_calls,
            "errors": self.errors,
            "elapsed_time": self.elapsed_time,
            "outcome": self.outcome.value if self.outcome else None,
        }


@dataclass
class EffectOutcome:
    """Result of performing (or simulating) a node's external effect."""

    success: bool
    detail: str


# =============================================================================
# API Request/Response Models
# =============================================================================


class CreateFlowRequest(BaseModel):
    """Request to create a new flow."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    category: str = "Base"


class PositionModel(BaseModel):
    x: float = 0.0
    y: float = 0.0


class AddNodeRequest(BaseModel):
    """Request to add a node."""

    type: NodeType
    position: PositionModel = Field(default_factory=PositionModel)


class UpdateNodeDataRequest(BaseModel):
    """Partial node configuration to merge."""

    data: Dict[str, Any]


class AddEdgeRequest(BaseModel):
    """Request to connect two nodes."""

    source: str
    target: str
    handle: Optional[ConnectHandle] = None


class PublishFlowRequest(BaseModel):
    changelog: str = ""
    author: Optional[str] = None


class StartRunRequest(BaseModel):
    channel: Channel = Channel.CHAT


class TextInputRequest(BaseModel):
    text: str


class DigitsRequest(BaseModel):
    digits: str


class FlowListResponse(BaseModel):
    """Response with list of flows."""

    flows: List[Dict[str, Any]]
    total: int


class RunResponse(BaseModel):
    """Snapshot of the current test run."""

    state: str
    result: Optional[str]
    channel: Optional[str]
    current_node_id: Optional[str]
    call_active: bool
    call_duration: float
    events: List[Dict[str, Any]]
    stats: Dict[str, Any]


__all__ = [
    # Node data
    "NodeData",
    "MessageData",
    "ConditionData",
    "ApiCallData",
    "DtmfBranch",
    "DtmfData",
    "AssistantData",
    "TransferData",
    "ChannelData",
    "TicketData",
    "CrmData",
    "NODE_DATA_CLASSES",
    "node_data_from_dict",
    "NodeDefinition",
    # Graph
    "FlowNode",
    "FlowEdge",
    "FlowVersion",
    "Flow",
    # Mutation
    "MutationError",
    "MutationResult",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Execution
    "RunEvent",
    "RunStats",
    "EffectOutcome",
    # API
    "CreateFlowRequest",
    "PositionModel",
    "AddNodeRequest",
    "UpdateNodeDataRequest",
    "AddEdgeRequest",
    "PublishFlowRequest",
    "StartRunRequest",
    "TextInputRequest",
    "DigitsRequest",
    "FlowListResponse",
    "RunResponse",
]
