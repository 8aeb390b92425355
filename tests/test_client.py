import asyncio
import unittest
from unittest.mock import MagicMock, patch

import requests

from flowcanvas.client import BackendClient
from flowcanvas.errors import ExecutionError, SchemaFetchError, WorkflowPersistenceError
from flowcanvas.schemas import ExecutionDescriptor, ExecutionEdge, ExecutionNode, SourceRef, TargetRef

from tests.factories import query_schema


def json_response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = payload
    response.text = str(payload)
    response.content = b"{}"
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    return response


def descriptor():
    return ExecutionDescriptor(
        nodes={"q1": ExecutionNode(type="querynode", parameters={"query": "Hi there!"})},
        edges=[ExecutionEdge(from_=SourceRef(node="q1", output="result"), to=TargetRef(node="r1", input="query"))],
    )


class TestBackendClient(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = BackendClient(api_base="http://backend:8000/", session=self.session)

    @patch('flowcanvas.client.requests.Session')
    def test_default_session_and_base(self, mock_session):
        client = BackendClient(api_base="http://backend:8000/")
        self.assertEqual(client.api_base, "http://backend:8000")
        self.assertIs(client.session, mock_session.return_value)

    def test_fetch_catalog(self):
        schema = query_schema()
        self.session.get.return_value = json_response({
            "success": True,
            "data": {"nodes": ["query_node"], "schemas": {"QueryNode": schema.model_dump()}, "total_count": 1},
        })

        data = asyncio.run(self.client.fetch_catalog())

        self.session.get.assert_called_once_with("http://backend:8000/api/v1/nodes/", timeout=self.client.timeout)
        self.assertEqual(data.schemas["QueryNode"], schema)

    def test_fetch_catalog_errors(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(SchemaFetchError):
            asyncio.run(self.client.fetch_catalog())

        self.session.get.side_effect = None
        self.session.get.return_value = json_response({"success": False, "error": "db down"})
        with self.assertRaises(SchemaFetchError) as ctx:
            asyncio.run(self.client.fetch_catalog())
        self.assertIn("db down", str(ctx.exception))

    def test_fetch_models(self):
        self.session.get.return_value = json_response({"success": True, "data": {"models": ["gpt-4o", "gpt-4o-mini"]}})

        models = asyncio.run(self.client.fetch_models("openai"))

        self.assertEqual([m.value for m in models], ["gpt-4o", "gpt-4o-mini"])
        self.assertEqual(self.session.get.call_args[0][0], "http://backend:8000/api/v1/nodes/models/openai")

    def test_fetch_models_without_service(self):
        self.assertEqual(asyncio.run(self.client.fetch_models("")), [])
        self.session.get.assert_not_called()

    def test_fetch_collections_labels(self):
        self.session.get.return_value = json_response({
            "success": True,
            "collections": [{"name": "docs", "points_count": 12}, {"points_count": 3}],
        })

        collections = asyncio.run(self.client.fetch_collections())

        self.assertEqual([(c.value, c.label) for c in collections], [("docs", "docs (12 docs)")])

    def test_post_execute_wire_format(self):
        self.session.post.return_value = json_response({
            "success": True,
            "data": {"response_inputs": {}, "errors": {}, "executed_nodes": ["q1"]},
        })

        result = self.client.post_execute(descriptor())

        self.assertTrue(result.success)
        self.assertEqual(result.data.executed_nodes, ["q1"])
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "http://backend:8000/api/v1/nodes/execute")
        self.assertEqual(kwargs["json"]["edges"][0]["from"], {"node": "q1", "output": "result"})

    def test_post_execute_raises(self):
        self.session.post.return_value = json_response({"detail": "boom"}, status_code=500)
        with self.assertRaises(ExecutionError) as ctx:
            self.client.post_execute(descriptor())
        self.assertIn("HTTP error! status: 500", str(ctx.exception))

        self.session.post.return_value = json_response({"success": False, "error": "node exploded"})
        with self.assertRaises(ExecutionError) as ctx:
            self.client.post_execute(descriptor())
        self.assertEqual(str(ctx.exception), "node exploded")

        self.session.post.side_effect = requests.Timeout("too slow")
        with self.assertRaises(ExecutionError) as ctx:
            self.client.post_execute(descriptor())
        self.assertIn("too slow", str(ctx.exception))

    def test_save_and_load_workflow(self):
        self.session.post.return_value = json_response({"success": True, "data": {"id": "wf1"}})
        response = asyncio.run(self.client.save_workflow("demo", [], []))
        self.assertEqual(response["data"]["id"], "wf1")
        self.assertEqual(self.session.post.call_args[1]["json"], {"name": "demo", "data": {"nodes": [], "edges": []}})

        self.session.get.return_value = json_response({"success": True, "data": {"data": {"nodes": [], "edges": []}}})
        self.assertEqual(asyncio.run(self.client.load_workflow("wf1")), {"nodes": [], "edges": []})

    def test_persistence_errors(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(WorkflowPersistenceError):
            asyncio.run(self.client.save_workflow("demo", [], []))

        self.session.get.return_value = json_response({"success": True, "data": {}})
        with self.assertRaises(WorkflowPersistenceError):
            asyncio.run(self.client.load_workflow("missing"))


if __name__ == '__main__':
    unittest.main()
