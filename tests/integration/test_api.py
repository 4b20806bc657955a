"""Integration tests for the Flow Builder HTTP API."""

import pytest


async def _create_flow(client, name="API Flow"):
    response = await client.post("/flows", json={"name": name, "category": "Sales"})
    assert response.status_code == 200
    return response.json()


async def _add_node(client, flow_id, node_type, **data):
    response = await client.post(
        f"/flows/{flow_id}/nodes",
        json={"type": node_type, "position": {"x": 10, "y": 20}},
    )
    assert response.status_code == 200
    node = response.json()
    if data:
        response = await client.patch(f"/flows/{flow_id}/nodes/{node['id']}", json={"data": data})
        assert response.status_code == 200
        node = response.json()
    return node


async def _connect(client, flow_id, source, target, handle=None):
    body = {"source": source, "target": target}
    if handle:
        body["handle"] = handle
    return await client.post(f"/flows/{flow_id}/edges", json=body)


class TestHealthCheck:
    """Tests for health and catalog endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        """Test health check returns healthy status."""
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "flow-builder"

    @pytest.mark.asyncio
    async def test_node_catalog(self, client):
        """Test the node palette lists every node type."""
        response = await client.get("/nodes")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 17
        assert {n["type"] for n in data["catalog"]["crm"]} == {"salesforce", "hubspot", "zoho_crm"}


class TestFlowEndpoints:
    """Tests for flow CRUD endpoints."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, client):
        flow = await _create_flow(client)

        assert flow["status"] == "draft"
        assert flow["current_version"] == "0.1"
        assert [n["type"] for n in flow["nodes"]] == ["start"]

        response = await client.get(f"/flows/{flow['id']}")
        assert response.status_code == 200
        assert response.json()["name"] == "API Flow"

    @pytest.mark.asyncio
    async def test_create_requires_name(self, client):
        response = await client.post("/flows", json={"name": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client):
        await _create_flow(client, "Alpha")
        await _create_flow(client, "Beta")

        response = await client.get("/flows", params={"search": "alp"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["flows"][0]["name"] == "Alpha"

        response = await client.get("/flows", params={"status": "published"})
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_get_missing_flow(self, client):
        response = await client.get("/flows/nope")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "flow_not_found"

    @pytest.mark.asyncio
    async def test_duplicate_and_delete(self, client):
        flow = await _create_flow(client)

        response = await client.post(f"/flows/{flow['id']}/duplicate")
        assert response.status_code == 200
        copy = response.json()
        assert copy["name"] == "API Flow (Copy)"

        response = await client.delete(f"/flows/{flow['id']}")
        assert response.status_code == 200
        assert (await client.get(f"/flows/{flow['id']}")).status_code == 404
        assert (await client.delete(f"/flows/{flow['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_export_and_import(self, client):
        """Test a flow deleted after export can be imported back."""
        flow = await _create_flow(client)
        exported = (await client.get(f"/flows/{flow['id']}")).json()
        await client.delete(f"/flows/{flow['id']}")

        response = await client.post("/flows/import", json=exported)

        assert response.status_code == 200
        assert response.json()["id"] == flow["id"]
        assert (await client.get(f"/flows/{flow['id']}")).status_code == 200

        response = await client.post("/flows/import", json={"name": "no id"})
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_flow"

    @pytest.mark.asyncio
    async def test_import_conflicts(self, client):
        """Test imports over an existing id or with broken graph rules are refused."""
        flow = await _create_flow(client)
        exported = (await client.get(f"/flows/{flow['id']}")).json()

        response = await client.post("/flows/import", json={**exported, "name": "Replaced"})
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "flow_exists"
        assert (await client.get(f"/flows/{flow['id']}")).json()["name"] == "API Flow"

        start = exported["nodes"][0]
        broken = {
            **exported,
            "id": "imported-1",
            "edges": [{"id": "e-1", "source": start["id"], "target": start["id"]}],
            "nodes": [{**start, "connections": [start["id"]]}],
        }
        response = await client.post("/flows/import", json=broken)
        assert response.status_code == 422
        messages = [i["message"] for i in response.json()["detail"]["issues"]]
        assert "Node has an edge to itself" in messages
        assert (await client.get("/flows/imported-1")).status_code == 404

    @pytest.mark.asyncio
    async def test_select(self, client):
        flow = await _create_flow(client)

        response = await client.post(f"/flows/{flow['id']}/select")

        assert response.status_code == 200
        assert response.json()["has_unsaved_changes"] is False


class TestGraphEndpoints:
    """Tests for node and edge editing endpoints."""

    @pytest.mark.asyncio
    async def test_edit_graph(self, client):
        flow = await _create_flow(client)
        flow_id = flow["id"]
        start = flow["nodes"][0]["id"]

        message = await _add_node(client, flow_id, "message", content="Hi")
        assert message["data"]["content"] == "Hi"

        response = await _connect(client, flow_id, start, message["id"])
        assert response.status_code == 200
        edge = response.json()

        stored = (await client.get(f"/flows/{flow_id}")).json()
        assert stored["nodes"][0]["connections"] == [message["id"]]

        response = await client.delete(f"/flows/{flow_id}/edges/{edge['id']}")
        assert response.status_code == 200
        stored = (await client.get(f"/flows/{flow_id}")).json()
        assert stored["edges"] == []
        assert stored["nodes"][0]["connections"] == []

    @pytest.mark.asyncio
    async def test_rejected_edges(self, client):
        """Test rule violations map to 409 and unknown nodes to 404."""
        flow = await _create_flow(client)
        flow_id = flow["id"]
        start = flow["nodes"][0]["id"]
        end = await _add_node(client, flow_id, "end")

        response = await _connect(client, flow_id, end["id"], start)
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_endpoint"

        response = await _connect(client, flow_id, start, start)
        assert response.json()["detail"]["error"] == "self_loop"

        response = await _connect(client, flow_id, start, "ghost")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "node_not_found"

    @pytest.mark.asyncio
    async def test_condition_handle(self, client):
        flow = await _create_flow(client)
        flow_id = flow["id"]
        condition = await _add_node(client, flow_id, "condition")
        target = await _add_node(client, flow_id, "message")

        response = await _connect(client, flow_id, condition["id"], target["id"], handle="no")

        assert response.json()["label"] == "No"

    @pytest.mark.asyncio
    async def test_node_operations(self, client):
        flow = await _create_flow(client)
        flow_id = flow["id"]
        start = flow["nodes"][0]["id"]
        message = await _add_node(client, flow_id, "message")

        response = await client.post(f"/flows/{flow_id}/nodes/{message['id']}/duplicate")
        assert response.status_code == 200
        assert response.json()["position"] == {"x": 50, "y": 60}

        response = await client.put(
            f"/flows/{flow_id}/nodes/{message['id']}/position", json={"x": 1, "y": 2}
        )
        assert response.json()["position"] == {"x": 1, "y": 2}

        response = await client.patch(
            f"/flows/{flow_id}/nodes/{message['id']}", json={"data": {"colour": "red"}}
        )
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_data"

        response = await client.delete(f"/flows/{flow_id}/nodes/{start}")
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "start_node_protected"

        response = await client.delete(f"/flows/{flow_id}/nodes/{message['id']}")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_wrongly_typed_data(self, client):
        """Test a non-text condition value is refused and the run still works."""
        flow = await _create_flow(client)
        flow_id = flow["id"]
        condition = await _add_node(client, flow_id, "condition", value="sales")
        await _connect(client, flow_id, flow["nodes"][0]["id"], condition["id"])

        response = await client.patch(
            f"/flows/{flow_id}/nodes/{condition['id']}", json={"data": {"value": 5}}
        )
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_data"

        stored = (await client.get(f"/flows/{flow_id}")).json()
        assert stored["nodes"][1]["data"]["value"] == "sales"

        await client.post(f"/flows/{flow_id}/runs", json={"channel": "chat"})
        response = await client.post("/runs/current/input", json={"text": "5"})
        assert response.status_code == 200
        assert response.json()["state"] == "ended"

    @pytest.mark.asyncio
    async def test_unknown_node_type(self, client):
        flow = await _create_flow(client)
        response = await client.post(f"/flows/{flow['id']}/nodes", json={"type": "fax"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_validate(self, client):
        flow = await _create_flow(client)
        await _add_node(client, flow["id"], "message")

        response = await client.post(f"/flows/{flow['id']}/validate")

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert len(data["warnings"]) == 3


class TestVersionEndpoints:
    """Tests for save, publish, history and rollback."""

    @pytest.mark.asyncio
    async def test_publish_and_rollback(self, client):
        flow = await _create_flow(client)
        flow_id = flow["id"]

        response = await client.post(f"/flows/{flow_id}/publish", json={"changelog": "First"})
        assert response.status_code == 200
        first = response.json()
        assert first["version"] == "1.0"

        await _add_node(client, flow_id, "message")
        response = await client.post(f"/flows/{flow_id}/save")
        assert response.json()["has_unsaved_changes"] is False
        assert response.json()["status"] == "draft"

        await client.post(f"/flows/{flow_id}/publish", json={"changelog": "Second", "author": "bo"})

        response = await client.get(f"/flows/{flow_id}/versions")
        versions = response.json()["versions"]
        assert [v["version"] for v in versions] == ["2.0", "1.0"]
        assert versions[0]["created_by"] == "bo"

        response = await client.post(f"/flows/{flow_id}/versions/{first['id']}/rollback")
        assert response.status_code == 200
        assert response.json()["current_version"] == "1.0"
        assert response.json()["status"] == "draft"

        response = await client.post(f"/flows/{flow_id}/versions/v-missing/rollback")
        assert response.status_code == 404


class TestRunEndpoints:
    """Tests for test-run endpoints."""

    async def _routing_flow(self, client):
        flow = await _create_flow(client)
        flow_id = flow["id"]
        start = flow["nodes"][0]["id"]
        condition = await _add_node(client, flow_id, "condition", value="sales")
        yes = await _add_node(client, flow_id, "message", content="Sales team")
        no = await _add_node(client, flow_id, "message", content="Support team")
        end = await _add_node(client, flow_id, "end")

        await _connect(client, flow_id, start, condition["id"])
        await _connect(client, flow_id, condition["id"], yes["id"], handle="yes")
        await _connect(client, flow_id, condition["id"], no["id"], handle="no")
        await _connect(client, flow_id, yes["id"], end["id"])
        await _connect(client, flow_id, no["id"], end["id"])
        return flow_id

    @pytest.mark.asyncio
    async def test_chat_run(self, client):
        flow_id = await self._routing_flow(client)

        response = await client.post(f"/flows/{flow_id}/runs", json={"channel": "chat"})
        assert response.status_code == 200
        run = response.json()
        assert run["state"] == "waiting_for_input"

        response = await client.post("/runs/current/input", json={"text": "SALES"})
        assert response.status_code == 200
        run = response.json()
        assert run["state"] == "ended"
        assert run["result"] == "success"
        assert "Sales team" in [e["content"] for e in run["events"]]
        assert run["stats"]["nodes_visited"] == 4
        assert run["stats"]["outcome"] == "passed"

        response = await client.post("/runs/current/input", json={"text": "again"})
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_run_state"

    @pytest.mark.asyncio
    async def test_voice_hangup_and_reset(self, client):
        flow_id = await self._routing_flow(client)

        run = (await client.post(f"/flows/{flow_id}/runs", json={"channel": "voice"})).json()
        assert run["call_active"] is True

        response = await client.post("/runs/current/digits", json={"digits": "1"})
        assert response.status_code == 409

        response = await client.post("/runs/current/hangup")
        assert response.status_code == 200
        assert response.json()["state"] == "ended"
        assert response.json()["call_active"] is False

        response = await client.delete("/runs/current")
        assert response.json()["state"] == "idle"
        assert response.json()["events"] == []

        response = await client.get("/runs/current")
        assert response.json()["state"] == "idle"

    @pytest.mark.asyncio
    async def test_run_missing_flow(self, client):
        response = await client.post("/flows/nope/runs", json={"channel": "chat"})
        assert response.status_code == 404
