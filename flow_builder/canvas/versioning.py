"""
Flow Versioning.

Dirty tracking against a saved baseline, immutable version snapshots and the
publish / rollback workflow.
"""

import copy
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from ..config import FlowStatus, Settings, get_settings
from ..models import Flow, FlowVersion, MutationError, MutationResult
from .store import FlowStore

logger = structlog.get_logger()


def next_major_version(label: str) -> str:
    """``"2.1"`` -> ``"3.0"``."""
    try:
        major = int(label.split(".")[0])
    except ValueError:
        major = 0
    return f"{major + 1}.0"


class FlowVersioning:
    """
    Publish workflow for one flow.

    The baseline is the graph state at selection time or at the last
    save/publish; ``has_unsaved_changes`` compares the live graph against it.
    """

    def __init__(
        self,
        flow: Flow,
        store: FlowStore,
        settings: Optional[Settings] = None,
    ):
        self.flow = flow
        self.store = store
        self.settings = settings or get_settings()
        self._baseline: Dict[str, Any] = {}
        self.rebaseline()

    def rebaseline(self) -> None:
        self._baseline = copy.deepcopy(self.flow.graph_state())

    @property
    def has_unsaved_changes(self) -> bool:
        return self.flow.graph_state() != self._baseline

    def save_draft(self) -> Flow:
        """Persist the working copy without creating a version."""
        self.flow.updated_at = datetime.utcnow()
        self.store.save(self.flow)
        self.rebaseline()

        logger.info("flow_draft_saved", flow_id=self.flow.id)
        return self.flow

    def publish_flow(self, changelog: str, author: Optional[str] = None) -> FlowVersion:
        """Freeze the current graph as a new published version."""
        now = datetime.utcnow()
        version = FlowVersion(
            id=f"v-{uuid.uuid4().hex[:8]}",
            version=next_major_version(self.flow.current_version),
            created_at=now,
            created_by=author or self.settings.versioning.default_author,
            status=FlowStatus.PUBLISHED,
            nodes=tuple(copy.deepcopy(self.flow.nodes)),
            edges=tuple(copy.deepcopy(self.flow.edges)),
            changelog=changelog,
        )

        self.flow.versions.append(version)
        self.flow.current_version = version.version
        self.flow.status = FlowStatus.PUBLISHED
        self.flow.updated_at = now
        self.store.save(self.flow)
        self.rebaseline()

        logger.info(
            "flow_published",
            flow_id=self.flow.id,
            version=version.version,
            node_count=len(version.nodes),
        )
        return version

    def rollback_to_version(self, version_id: str) -> MutationResult:
        """
        Point the flow back at a published version label.

        Only the label and status change; node/edge content is left as is.
        """
        version = self.flow.get_version(version_id)
        if not version:
            return MutationResult.fail(
                MutationError.VERSION_NOT_FOUND, f"Version not found: {version_id}"
            )

        self.flow.current_version = version.version
        self.flow.status = FlowStatus.DRAFT
        self.flow.updated_at = datetime.utcnow()
        self.store.save(self.flow)

        logger.info("flow_rolled_back", flow_id=self.flow.id, version=version.version)
        return MutationResult.ok(version)

    def list_versions(self) -> List[Dict[str, Any]]:
        """Version summaries, newest first."""
        return [v.to_summary() for v in reversed(self.flow.versions)]
