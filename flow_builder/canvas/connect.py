"""
Pending connection gesture.

Editor-only state tracking which output handle a connection is being dragged
from: idle -> connecting(source, handle) -> idle.
"""

from dataclasses import dataclass
from typing import Optional

from ..config import ConnectHandle


@dataclass
class PendingConnection:
    source_id: Optional[str] = None
    handle: ConnectHandle = ConnectHandle.DEFAULT

    @property
    def is_connecting(self) -> bool:
        return self.source_id is not None

    def start(self, source_id: str, handle: ConnectHandle = ConnectHandle.DEFAULT) -> None:
        self.source_id = source_id
        self.handle = handle

    def cancel(self) -> None:
        self.source_id = None
        self.handle = ConnectHandle.DEFAULT

    def handle_for(self, source_id: str) -> Optional[ConnectHandle]:
        """Handle of the gesture if it started from ``source_id``."""
        if self.source_id == source_id:
            return self.handle
        return None
