import pytest
from concurrent.futures import ThreadPoolExecutor
from fastapi.testclient import TestClient
from formflow import main
from formflow.main import app
from formflow.workflow_store import WorkflowStore

client = TestClient(app)


@pytest.fixture(autouse=True)
def isolated_store(tmp_path, monkeypatch):
    # Each test gets its own projects directory and no open editors
    monkeypatch.setattr(main, "store", WorkflowStore(tmp_path / "projects"))
    main.sessions.clear()
    yield main.store
    main.sessions.clear()


def add_node(workflow_id, node_type, x=0, y=0):
    response = client.post(
        f"/api/workflows/{workflow_id}/editor/nodes",
        json={"type": node_type, "position": {"x": x, "y": y}},
    )
    assert response.status_code == 200
    return response.json()["data"]


def test_list_nodes():
    response = client.get("/api/nodes")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [n["type"] for n in body["data"]] == ["start", "action", "approval", "condition", "wait", "end"]


def test_list_projects():
    response = client.get("/api/projects")
    assert response.status_code == 200
    assert "default" in response.json()["data"]


def test_create_and_switch_project():
    response = client.post("/api/projects", json={"name": "test_proj"})
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "test_proj"

    response = client.post("/api/projects/active", json={"name": "test_proj"})
    assert response.status_code == 200

    response = client.get("/api/projects/active")
    assert response.json()["data"]["name"] == "test_proj"


def test_switch_to_missing_project():
    response = client.post("/api/projects/active", json={"name": "ghost"})
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"


def test_delete_project():
    client.post("/api/projects", json={"name": "test_del"})

    response = client.delete("/api/projects/default")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PROJECT_ERROR"

    client.post("/api/projects/active", json={"name": "test_del"})
    response = client.delete("/api/projects/test_del")
    assert response.status_code == 400

    client.post("/api/projects/active", json={"name": "default"})
    response = client.delete("/api/projects/test_del")
    assert response.status_code == 200
    assert "test_del" not in client.get("/api/projects").json()["data"]


def test_workflow_isolation():
    wf_data = {"nodes": [], "edges": []}
    client.put("/api/workflows/wf_default", json=wf_data)

    client.post("/api/projects", json={"name": "test_proj"})
    client.post("/api/projects/active", json={"name": "test_proj"})
    assert "wf_default" not in client.get("/api/workflows").json()["data"]

    client.put("/api/workflows/wf_test", json=wf_data)
    client.post("/api/projects/active", json={"name": "default"})
    workflows = client.get("/api/workflows").json()["data"]
    assert "wf_default" in workflows
    assert "wf_test" not in workflows


def test_put_rejects_broken_graph():
    wf_data = {
        "nodes": [{"id": "a", "type": "start", "label": "Start"}],
        "edges": [{"id": "c1", "source": "a", "target": "a"}],
    }
    response = client.put("/api/workflows/broken", json=wf_data)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_missing_workflow():
    response = client.get("/api/workflows/nope")
    assert response.status_code == 404
    response = client.patch("/api/workflows/nope/editor/nodes/n1/position", json={"x": 1, "y": 1})
    assert response.status_code == 404


def test_editor_session_flow():
    start = add_node("wf_edit", "start", 100, 100)
    end = add_node("wf_edit", "end", 400, 100)
    assert start["label"] == "Start Node"

    response = client.post("/api/workflows/wf_edit/editor/connections",
                           json={"source": start["id"], "target": end["id"]})
    assert response.status_code == 200
    connection = response.json()["data"]

    response = client.post("/api/workflows/wf_edit/editor/connections",
                           json={"source": start["id"], "target": end["id"]})
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONNECTION_REJECTED"

    response = client.patch(f"/api/workflows/wf_edit/editor/nodes/{start['id']}/config",
                            json={"config": {"label": "Form trigger", "triggerType": "manual"}})
    data = response.json()["data"]
    assert data["node"]["label"] == "Form trigger"
    assert data["summary"] == "Manual"
    assert data["problems"] == []

    response = client.get("/api/workflows/wf_edit/editor")
    rendered = response.json()["data"]
    assert [n["id"] for n in rendered["nodes"]] == [start["id"], end["id"]]
    assert rendered["edges"][0]["id"] == connection["id"]

    response = client.post("/api/workflows/wf_edit/editor/save")
    assert response.status_code == 200

    saved = client.get("/api/workflows/wf_edit").json()["data"]
    assert [n["label"] for n in saved["nodes"]] == ["Form trigger", "End Node"]
    assert saved["connections"][0]["source"] == start["id"]

    validation = client.get("/api/workflows/wf_edit/validate").json()["data"]
    assert validation["valid"] is True


def test_editor_delete_and_select():
    start = add_node("wf_sel", "start")
    end = add_node("wf_sel", "end", 300)
    client.post("/api/workflows/wf_sel/editor/connections", json={"source": start["id"], "target": end["id"]})

    response = client.post("/api/workflows/wf_sel/editor/select", json={"nodeId": start["id"]})
    assert response.json()["data"]["selectedNodeId"] == start["id"]

    response = client.delete(f"/api/workflows/wf_sel/editor/nodes/{start['id']}")
    assert response.status_code == 200

    rendered = client.get("/api/workflows/wf_sel/editor").json()["data"]
    assert rendered["edges"] == []
    assert rendered["selectedNodeId"] is None

    response = client.post("/api/workflows/wf_sel/editor/select", json={"nodeId": None})
    assert response.json()["data"] == {"selectedNodeId": None}

    response = client.delete(f"/api/workflows/wf_sel/editor/nodes/{start['id']}")
    assert response.status_code == 404


def test_add_unknown_node_type():
    response = client.post("/api/workflows/wf_bad/editor/nodes", json={"type": "loop"})
    assert response.status_code == 422
    assert response.json()["success"] is False


def test_query_results():
    payload = {
        "columns": ["name", "amount"],
        "rows": [["a", "3"], ["b", "1"], ["c", "2"]],
        "sortColumn": "amount",
        "page": 1,
        "limit": 2,
    }
    response = client.post("/api/query/results", json=payload)
    body = response.json()
    assert [r["name"] for r in body["data"]["records"]] == ["b", "c"]
    assert body["meta"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}


def test_query_unknown_column():
    payload = {"columns": ["name"], "rows": [], "sortColumn": "missing"}
    response = client.post("/api/query/results", json=payload)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_query_chart_and_export():
    payload = {"columns": ["region", "sales"], "rows": [["North", "5"], ["South", "0"]], "chartType": "pie"}
    response = client.post("/api/query/chart", json=payload)
    assert response.json()["data"]["points"] == [{"name": "North", "value": 5}]

    response = client.post("/api/query/export", json={"columns": ["region", "sales"], "rows": [["North", "5"]]})
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text == "region,sales\nNorth,5\n"


def test_logs():
    client.get("/api/workflows/nope")
    response = client.get("/api/logs")
    assert response.status_code == 200
    assert isinstance(response.json()["data"], list)


def test_websocket_receives_editor_events():
    with TestClient(app) as live_client:
        with live_client.websocket_connect("/api/ws") as websocket:
            live_client.post("/api/workflows/wf_ws/editor/nodes", json={"type": "start"})
            message = websocket.receive_json()
            assert message["type"] == "node_added"
            assert message["payload"]["workflow_id"] == "wf_ws"


def test_non_text_label_survives_save_and_reload():
    node = add_node("wf_label", "wait")
    response = client.patch(f"/api/workflows/wf_label/editor/nodes/{node['id']}/config",
                            json={"config": {"label": 5, "waitDuration": 1}})
    assert response.json()["data"]["node"]["label"] == "Wait Node"

    assert client.post("/api/workflows/wf_label/editor/save").status_code == 200
    response = client.get("/api/workflows/wf_label")
    assert response.status_code == 200
    assert response.json()["data"]["nodes"][0]["label"] == "Wait Node"


def test_validate_with_malformed_condition_config():
    start = add_node("wf_cond", "start")
    cond = add_node("wf_cond", "condition", 200)
    client.patch(f"/api/workflows/wf_cond/editor/nodes/{cond['id']}/config",
                 json={"config": {"conditionConfig": "switch"}})
    client.post("/api/workflows/wf_cond/editor/connections", json={"source": start["id"], "target": cond["id"]})
    end = add_node("wf_cond", "end", 400)
    client.post("/api/workflows/wf_cond/editor/connections",
                json={"source": cond["id"], "target": end["id"], "sourceHandle": "true"})
    client.post("/api/workflows/wf_cond/editor/save")

    response = client.get("/api/workflows/wf_cond/validate")
    assert response.status_code == 200
    assert response.json()["data"]["valid"] is True


def test_query_results_grouped():
    payload = {
        "columns": ["region", "amount"],
        "rows": [["North", "5"], ["South", "2"], ["North", "1"]],
        "groupByColumn": "region",
        "aggregateColumn": "amount",
        "aggregationType": "sum",
        "sortColumn": "sum_amount",
    }
    data = client.post("/api/query/results", json=payload).json()["data"]
    assert data["columns"] == ["region", "sum_amount"]
    assert data["records"] == [{"region": "South", "sum_amount": 2}, {"region": "North", "sum_amount": 6}]


def test_query_export_json_and_grouped_csv():
    payload = {"columns": ["region", "sales"], "rows": [["North", "5"], ["North", "1"]]}
    response = client.post("/api/query/export", json={**payload, "format": "json"})
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == [{"region": "North", "sales": 5}, {"region": "North", "sales": 1}]

    response = client.post("/api/query/export", json={**payload, "groupByColumn": "region"})
    assert response.text == "region,count\nNorth,2\n"


def test_opening_unsaved_workflow_keeps_no_session():
    response = client.get("/api/workflows/wf_unsaved/editor")
    assert response.status_code == 200
    assert response.json()["data"]["nodes"] == []
    assert main.sessions == {}

    add_node("wf_unsaved", "start")
    assert len(main.sessions) == 1


def test_concurrent_first_access_shares_one_editor():
    client.put("/api/workflows/wf_shared", json={"nodes": [], "edges": []})
    with ThreadPoolExecutor(max_workers=8) as pool:
        editors = list(pool.map(lambda _: main.get_editor("wf_shared"), range(16)))
    assert all(editor is editors[0] for editor in editors)
    assert len(main.sessions) == 1
