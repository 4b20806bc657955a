"""Shared pytest fixtures for testing."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from flow_builder.canvas import CanvasManager, FlowEditor
from flow_builder.config import NodeType, Settings, SimulationConfig
from flow_builder.executor import FlowTestSession
from flow_builder.models import Flow


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with simulated latency and random API failures disabled."""
    return Settings(
        simulation=SimulationConfig(latency_scale=0.0, api_failure_rate=0.0),
    )


# =============================================================================
# Canvas Fixtures
# =============================================================================


@pytest.fixture
def manager(settings: Settings) -> CanvasManager:
    return CanvasManager(settings=settings)


@pytest.fixture
def flow(manager: CanvasManager) -> Flow:
    """A selected flow holding only its start node."""
    flow = manager.create_flow("Test Flow", description="Flow under test", category="Base")
    manager.select_flow(flow.id)
    return flow


@pytest.fixture
def editor(manager: CanvasManager, flow: Flow) -> FlowEditor:
    return manager.editor


def _add(editor: FlowEditor, node_type: NodeType, **data) -> str:
    node = editor.add_node(node_type, {"x": 0, "y": 0}).value
    if data:
        assert editor.update_node_data(node.id, data).success
    return node.id


def _chain(editor: FlowEditor, *node_ids: str) -> None:
    for source, target in zip(node_ids, node_ids[1:]):
        assert editor.add_edge(source, target).success


@pytest.fixture
def add(editor: FlowEditor):
    """Add a node (optionally configured) to the selected flow and return its id."""
    return lambda node_type, **data: _add(editor, node_type, **data)


@pytest.fixture
def chain(editor: FlowEditor):
    """Connect nodes of the selected flow one after the other."""
    return lambda *node_ids: _chain(editor, *node_ids)


@pytest.fixture
def linear_flow(editor: FlowEditor, flow: Flow) -> Flow:
    """start -> message -> end."""
    message = _add(editor, NodeType.MESSAGE, content="Hello! How can I help?")
    end = _add(editor, NodeType.END)
    _chain(editor, flow.start_node.id, message, end)
    return flow


@pytest.fixture
def routing_flow(editor: FlowEditor, flow: Flow) -> Flow:
    """start -> condition(intent equals sales) -> [Sales msg | Support msg] -> end."""
    condition = _add(editor, NodeType.CONDITION, variable="intent", operator="equals", value="sales")
    sales = _add(editor, NodeType.MESSAGE, label="Sales", content="Routing you to sales")
    support = _add(editor, NodeType.MESSAGE, label="Support", content="Routing you to support")
    end = _add(editor, NodeType.END)

    _chain(editor, flow.start_node.id, condition)
    assert editor.add_edge(condition, sales).value.label == "Yes"
    assert editor.add_edge(condition, support).value.label == "No"
    _chain(editor, sales, end)
    _chain(editor, support, end)
    return flow


# =============================================================================
# Executor Fixtures
# =============================================================================


@pytest.fixture
def session(settings: Settings) -> FlowTestSession:
    return FlowTestSession(settings=settings)


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    """Create test FastAPI application."""
    from flow_builder.main import create_app

    return create_app(settings)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
