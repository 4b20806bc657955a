"""
Flow Store.

In-memory storage of flows. Replace with a database-backed store in
production; anything implementing the same methods can be injected.
"""

from typing import Dict, List, Optional, Tuple

import structlog

from ..config import FlowStatus
from ..models import Flow

logger = structlog.get_logger()


class FlowStore:
    """Holds Flow entities keyed by id."""

    def __init__(self):
        self._flows: Dict[str, Flow] = {}

    def __contains__(self, flow_id: str) -> bool:
        return flow_id in self._flows

    def __len__(self) -> int:
        return len(self._flows)

    def save(self, flow: Flow) -> None:
        self._flows[flow.id] = flow

    def get(self, flow_id: str) -> Optional[Flow]:
        return self._flows.get(flow_id)

    def delete(self, flow_id: str) -> bool:
        if flow_id not in self._flows:
            return False
        del self._flows[flow_id]
        return True

    def list(
        self,
        category: Optional[str] = None,
        status: Optional[FlowStatus] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Flow], int]:
        """
        List flows with filtering.

        Returns:
            Tuple of (flows, total_count), most recently updated first
        """
        flows = list(self._flows.values())

        if category:
            flows = [f for f in flows if f.category == category]

        if status:
            flows = [f for f in flows if f.status == status]

        if search:
            search_lower = search.lower()
            flows = [
                f for f in flows
                if (
                    search_lower in f.name.lower()
                    or search_lower in f.description.lower()
                )
            ]

        flows.sort(key=lambda f: f.updated_at, reverse=True)
        return flows, len(flows)
