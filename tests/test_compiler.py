import unittest

from flowcanvas.compiler import ExecutionCompiler, compile_workflow
from flowcanvas.errors import WorkflowValidationError
from flowcanvas.graph_store import GraphStore
from flowcanvas.schemas import Connection, NodeSchema, ParameterSpec

from tests.factories import llm_schema, query_schema, response_schema


def query_response_graph():
    store = GraphStore()
    query = store.add_node(query_schema())
    response = store.add_node(response_schema())
    store.connect(Connection(source=query.id, target=response.id,
                             sourceHandle="output-result", targetHandle="input-query"))
    return store, query, response


class TestExecutionCompiler(unittest.TestCase):
    def test_query_response_scenario(self):
        """The unset query picks up the fallback literal; types are alias-mapped."""
        store, query, response = query_response_graph()

        payload = compile_workflow(store).to_payload()

        self.assertEqual(payload["nodes"], {
            query.id: {"type": "querynode", "parameters": {"query": "Hi there!"}},
            response.id: {"type": "responsenode", "parameters": {"format": "text"}},
        })
        self.assertEqual(payload["edges"], [{
            "from": {"node": query.id, "output": "result"},
            "to": {"node": response.id, "input": "query"},
        }])

    def test_fallback_does_not_touch_committed_parameters(self):
        store, query, _ = query_response_graph()
        compile_workflow(store)
        self.assertEqual(store.get_node(query.id).parameters, {})

    def test_committed_value_wins_over_fallback(self):
        store, query, _ = query_response_graph()
        store.update_parameters(query.id, {"query": "What is PocketFlow?"})
        descriptor = compile_workflow(store)
        self.assertEqual(descriptor.nodes[query.id].parameters["query"], "What is PocketFlow?")

    def test_empty_graph_is_rejected(self):
        with self.assertRaises(WorkflowValidationError) as ctx:
            compile_workflow(GraphStore())
        self.assertEqual(str(ctx.exception), "Please add nodes to the workflow before executing")

    def test_missing_terminal_category_is_named(self):
        store = GraphStore()
        store.add_node(query_schema())
        with self.assertRaises(WorkflowValidationError) as ctx:
            compile_workflow(store)
        self.assertEqual(ctx.exception.category, "responsenode")
        self.assertIn("responsenode", str(ctx.exception))
        self.assertNotIn("querynode", str(ctx.exception))

    def test_both_categories_missing(self):
        store = GraphStore()
        store.add_node(NodeSchema(node_id="noop", name="NoopNode"))
        with self.assertRaises(WorkflowValidationError) as ctx:
            compile_workflow(store)
        self.assertEqual(str(ctx.exception), "Workflow must include at least one querynode and one responsenode node")
        self.assertEqual(ctx.exception.category, "querynode")

    def test_unresolved_required_parameter_names_node_and_parameter(self):
        store, query, _ = query_response_graph()
        llm = store.add_node(llm_schema())
        store.connect(Connection(source=query.id, target=llm.id))

        with self.assertRaises(WorkflowValidationError) as ctx:
            compile_workflow(store)

        # service has a fallback, model does not
        self.assertEqual(ctx.exception.node_id, llm.id)
        self.assertEqual(ctx.exception.parameter, "model")
        self.assertIn(llm.id, str(ctx.exception))
        self.assertIn("model", str(ctx.exception))

    def test_schema_default_fills_cleared_required_parameter(self):
        schema = NodeSchema(node_id="resp", name="ResponseNode", parameters=[
            ParameterSpec(name="template", type="string", required=True, default_value="{answer}"),
        ])
        store, query, _ = query_response_graph()
        node = store.add_node(schema)
        store.update_parameters(node.id, {"template": ""})

        descriptor = compile_workflow(store)
        self.assertEqual(descriptor.nodes[node.id].parameters["template"], "{answer}")

    def test_zero_and_false_are_values(self):
        schema = NodeSchema(node_id="counter", name="CounterNode", parameters=[
            ParameterSpec(name="start", type="integer", required=True),
            ParameterSpec(name="strict", type="boolean", required=True),
        ])
        store, _, _ = query_response_graph()
        node = store.add_node(schema)
        store.update_parameters(node.id, {"start": 0, "strict": False})

        descriptor = compile_workflow(store)
        self.assertEqual(descriptor.nodes[node.id].parameters, {"start": 0, "strict": False})

    def test_unprefixed_and_missing_handles(self):
        store, query, response = query_response_graph()
        store.connect(Connection(source=query.id, target=response.id, sourceHandle="text", targetHandle=None))

        edges = compile_workflow(store).to_payload()["edges"]
        self.assertEqual(edges[1]["from"]["output"], "text")
        self.assertEqual(edges[1]["to"]["input"], "query")

    def test_unknown_name_lowercases(self):
        compiler = ExecutionCompiler()
        self.assertEqual(compiler.registry_key(NodeSchema(node_id="x", name="WebSearchNode")), "websearchnode")

    def test_compilation_is_deterministic(self):
        store, query, _ = query_response_graph()
        llm = store.add_node(llm_schema())
        store.update_parameters(llm.id, {"model": "gpt-4o"})
        store.connect(Connection(source=query.id, target=llm.id, sourceHandle="output-result"))

        first = compile_workflow(store).to_payload()
        second = compile_workflow(store).to_payload()
        self.assertEqual(first, second)
        self.assertEqual(first["nodes"][llm.id]["parameters"]["service"], "openai")


if __name__ == '__main__':
    unittest.main()
