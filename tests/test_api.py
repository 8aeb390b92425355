import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from flowcanvas import main
from flowcanvas.client import BackendClient
from flowcanvas.main import app
from flowcanvas.session import CanvasSession

from tests.factories import llm_schema, query_schema, response_schema

client = TestClient(app)


def json_response(payload):
    response = MagicMock()
    response.ok = True
    response.status_code = 200
    response.json.return_value = payload
    return response


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def session(monkeypatch, http):
    session = CanvasSession(client=BackendClient(api_base="http://backend:8000", session=http))
    for schema in (query_schema(), response_schema(), llm_schema()):
        session.catalog.register(schema)
    monkeypatch.setattr(main, "session", session)
    return session


def add(node_type):
    response = client.post("/api/graph/nodes", json={"node_type": node_type})
    assert response.status_code == 200
    return response.json()["id"]


def connect(source, target):
    return client.post("/api/graph/edges", json={
        "source": source, "target": target,
        "sourceHandle": "output-result", "targetHandle": "input-query",
    })


def test_list_and_search_nodes(session):
    response = client.get("/api/nodes")
    assert response.status_code == 200
    assert {n["node_id"] for n in response.json()} == {"query_node", "response_node", "llm_node"}

    response = client.get("/api/nodes", params={"search": "model"})
    assert [n["node_id"] for n in response.json()] == ["llm_node"]


def test_add_unknown_node_type(session):
    response = client.post("/api/graph/nodes", json={"node_type": "nope"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Unknown node type: nope"


def test_connect_dangling_edge(session):
    query = add("query_node")
    assert connect(query, "ghost").status_code == 400


def test_delete_node_cascades(session):
    query, response = add("query_node"), add("response_node")
    assert connect(query, response).status_code == 200

    client.delete(f"/api/graph/nodes/{query}")

    graph = client.get("/api/graph").json()
    assert [n["id"] for n in graph["nodes"]] == [response]
    assert graph["edges"] == []


def test_panel_edit_and_save(session, http):
    http.get.return_value = json_response({"success": True, "data": {"models": ["gpt-4o", "gpt-4o-mini"]}})
    llm = add("llm_node")

    view = client.post(f"/api/graph/nodes/{llm}/panel").json()
    assert view["open"] and view["node_id"] == llm
    assert view["errors"]["service"] == "Service is required"

    view = client.put("/api/panel/values", json={"name": "service", "value": "openai"}).json()
    model_field = view["groups"][0]["fields"][1]
    assert [o["value"] for o in model_field["options"]] == ["gpt-4o", "gpt-4o-mini"]

    client.put("/api/panel/values", json={"name": "model", "value": "gpt-4o"})
    saved = client.post("/api/panel/save").json()

    assert saved["parameters"]["model"] == "gpt-4o"
    assert session.store.get_node(llm).parameters["service"] == "openai"
    assert session.cache.load(llm)["model"] == "gpt-4o"
    assert client.get("/api/panel").json() == {"open": False}


def test_panel_requires_open_node(session):
    assert client.post("/api/graph/nodes/ghost/panel").status_code == 404
    assert client.put("/api/panel/values", json={"name": "x", "value": 1}).status_code == 409
    assert client.post("/api/panel/save").status_code == 409


def test_compile_empty_graph_is_422(session, http):
    response = client.get("/api/compile")
    assert response.status_code == 422
    assert response.json()["error"] == "Please add nodes to the workflow before executing"

    response = client.post("/api/execute")
    assert response.status_code == 422
    http.post.assert_not_called()


def test_compile_missing_terminal(session):
    add("query_node")
    body = client.get("/api/compile").json()
    assert body["category"] == "responsenode"


def test_execute_projects_results(session, http):
    query, response = add("query_node"), add("response_node")
    connect(query, response)
    http.post.return_value = json_response({
        "success": True,
        "data": {"response_inputs": {response: {"final_response": "Hello there"}},
                 "errors": {}, "executed_nodes": [query, response]},
    })

    result = client.post("/api/execute").json()

    assert result["success"] is True
    sent = http.post.call_args[1]["json"]
    assert sent["nodes"][query] == {"type": "querynode", "parameters": {"query": "Hi there!"}}
    graph = client.get("/api/graph").json()
    annotated = [n for n in graph["nodes"] if n["id"] == response][0]
    assert annotated["annotations"]["response"] == "Hello there"
    assert graph["execution"]["is_executing"] is False


def test_export_import_round_trip(session):
    query, response = add("query_node"), add("response_node")
    connect(query, response)
    document = client.get("/api/workflow/export", params={"name": "demo"}).json()
    assert document["name"] == "demo"

    client.delete("/api/graph")
    assert client.get("/api/graph").json()["nodes"] == []

    result = client.post("/api/workflow/import", json=document).json()
    assert (result["nodes"], result["edges"]) == (2, 1)
    assert {n.id for n in session.store.nodes} == {query, response}


def test_import_malformed(session):
    response = client.post("/api/workflow/import", json={"nodes": "bad"})
    assert response.status_code == 400


def test_logs_endpoint(session):
    add("query_node")
    response = client.get("/api/logs")
    assert response.status_code == 200
    assert isinstance(response.json(), list)
