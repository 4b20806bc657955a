"""
Canvas Manager.

Manages flow CRUD operations, selection, and the editing session of the
selected flow.
"""

import copy
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

import structlog

from ..config import FlowStatus, NodeType, Settings, get_settings
from ..exceptions import (
    FlowExistsError,
    FlowNotFoundError,
    InvalidFlowError,
    NoFlowSelectedError,
)
from ..models import Flow, FlowNode, ValidationResult
from ..nodes import NodeRegistry, get_node_registry
from .editor import FlowEditor, new_id
from .store import FlowStore
from .validator import FlowValidator
from .versioning import FlowVersioning

logger = structlog.get_logger()


class CanvasManager:
    """
    Manages flow lifecycle and the active editing session.

    Features:
    - Flow CRUD operations
    - Flow selection (editor + versioning for the selected flow)
    - Validation
    """

    def __init__(
        self,
        store: Optional[FlowStore] = None,
        settings: Optional[Settings] = None,
        registry: Optional[NodeRegistry] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or get_node_registry()
        self.store = store if store is not None else FlowStore()
        self.validator = FlowValidator(self.settings)

        self._editor: Optional[FlowEditor] = None
        self._versioning: Optional[FlowVersioning] = None

    # -------------------------------------------------------------------------
    # Flow CRUD
    # -------------------------------------------------------------------------

    def create_flow(self, name: str, description: str = "", category: str = "") -> Flow:
        """
        Create a new draft flow containing a single start node.

        Args:
            name: Flow name
            description: Optional description
            category: Folder the flow is listed under

        Returns:
            Created Flow
        """
        now = datetime.utcnow()
        start = FlowNode(
            id=new_id(NodeType.START.value),
            type=NodeType.START,
            position=dict(self.settings.canvas.start_position),
            data=self.registry.get(NodeType.START).default_data(),
        )
        flow = Flow(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            category=category,
            status=FlowStatus.DRAFT,
            current_version=self.settings.versioning.initial_version,
            nodes=[start],
            created_at=now,
            updated_at=now,
        )
        self.store.save(flow)

        logger.info("flow_created", flow_id=flow.id, name=name, category=category)
        return flow

    def get_flow(self, flow_id: str) -> Flow:
        flow = self.store.get(flow_id)
        if not flow:
            raise FlowNotFoundError(flow_id)
        return flow

    def list_flows(
        self,
        category: Optional[str] = None,
        status: Optional[FlowStatus] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Flow], int]:
        return self.store.list(category=category, status=status, search=search)

    def delete_flow(self, flow_id: str) -> None:
        if not self.store.delete(flow_id):
            raise FlowNotFoundError(flow_id)
        if self._editor and self._editor.flow.id == flow_id:
            self._editor = None
            self._versioning = None

        logger.info("flow_deleted", flow_id=flow_id)

    def duplicate_flow(self, flow_id: str, new_name: Optional[str] = None) -> Flow:
        """Deep copy a flow as a fresh draft without version history."""
        source = self.get_flow(flow_id)
        now = datetime.utcnow()

        flow = Flow(
            id=str(uuid.uuid4()),
            name=new_name or f"{source.name} (Copy)",
            description=source.description,
            category=source.category,
            status=FlowStatus.DRAFT,
            current_version=self.settings.versioning.initial_version,
            nodes=copy.deepcopy(source.nodes),
            edges=copy.deepcopy(source.edges),
            versions=[],
            created_at=now,
            updated_at=now,
        )
        self.store.save(flow)

        logger.info("flow_duplicated", source_id=flow_id, flow_id=flow.id)
        return flow

    def import_flow(self, data: dict) -> Flow:
        """
        Store a flow given in its serialized form.

        The flow keeps its id, which must not be in use. Imports with any
        validation error are rejected and nothing is stored.

        Raises:
            FlowExistsError: A flow with the same id is already stored
            InvalidFlowError: The data is malformed or breaks graph rules
        """
        try:
            flow = Flow.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidFlowError(f"Invalid flow data: {e}")

        if flow.id in self.store:
            raise FlowExistsError(flow.id)

        result = self.validator.validate(flow)
        if not result.valid:
            raise InvalidFlowError(
                f"Flow breaks {len(result.errors)} graph rule(s)",
                issues=[i.to_dict() for i in result.errors],
            )

        self.store.save(flow)
        logger.info("flow_imported", flow_id=flow.id, node_count=len(flow.nodes))
        return flow

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_flow(self, flow_id: str) -> Flow:
        """Open a flow for editing and baseline its dirty tracking."""
        flow = self.get_flow(flow_id)
        self._editor = FlowEditor(flow, self.settings, self.registry)
        self._versioning = FlowVersioning(flow, self.store, self.settings)

        logger.debug("flow_selected", flow_id=flow_id)
        return flow

    @property
    def active_flow(self) -> Optional[Flow]:
        return self._editor.flow if self._editor else None

    @property
    def editor(self) -> FlowEditor:
        if not self._editor:
            raise NoFlowSelectedError()
        return self._editor

    @property
    def versioning(self) -> FlowVersioning:
        if not self._versioning:
            raise NoFlowSelectedError()
        return self._versioning

    @property
    def has_unsaved_changes(self) -> bool:
        return self._versioning.has_unsaved_changes if self._versioning else False

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_flow(self, flow_id: str) -> ValidationResult:
        return self.validator.validate(self.get_flow(flow_id))
