"""
Canvas Module.

Manages flow creation, editing, versioning, and validation.
"""

from .connect import PendingConnection
from .editor import FlowEditor
from .manager import CanvasManager
from .store import FlowStore
from .validator import FlowValidator
from .versioning import FlowVersioning

__all__ = [
    "CanvasManager",
    "FlowEditor",
    "FlowStore",
    "FlowValidator",
    "FlowVersioning",
    "PendingConnection",
]
