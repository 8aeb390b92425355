"""
Graph -> execution descriptor compiler.

Turns the canvas graph into the payload the execution backend consumes:

1. the graph must not be empty
2. each node's schema is mapped to its backend registry key
3. missing required parameters are filled from the fallback table or the
   schema default
4. a required parameter that is still missing aborts compilation
5. the graph must contain an entry node and a terminal node
6. edge handles are reduced to logical port names

Nothing here touches the network; every failure is a
WorkflowValidationError raised before submission.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import config
from .errors import WorkflowValidationError
from .graph_store import GraphStore
from .schemas import (
    ExecutionDescriptor,
    ExecutionEdge,
    ExecutionNode,
    GraphEdge,
    GraphNode,
    NodeSchema,
    SourceRef,
    TargetRef,
)

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _strip_prefix(handle: Optional[str], prefix: str, fallback: str) -> str:
    if not handle:
        return fallback
    if handle.startswith(prefix):
        return handle[len(prefix):] or fallback
    return handle


class ExecutionCompiler:
    def __init__(
        self,
        aliases: Optional[Dict[str, str]] = None,
        fallbacks: Optional[Dict[Tuple[str, str], Any]] = None,
        entry_category: str = config.ENTRY_CATEGORY,
        terminal_category: str = config.TERMINAL_CATEGORY,
    ):
        self.aliases = dict(config.NODE_TYPE_ALIASES if aliases is None else aliases)
        self.fallbacks = dict(config.PARAMETER_FALLBACKS if fallbacks is None else fallbacks)
        self.entry_category = entry_category
        self.terminal_category = terminal_category

    def registry_key(self, schema: NodeSchema) -> str:
        return self.aliases.get(schema.name) or schema.name.lower()

    def resolve_parameters(self, node: GraphNode, registry_key: str) -> Tuple[Dict[str, Any], List[str]]:
        """Committed parameters plus injected values. Also returns names still unresolved."""
        params = dict(node.parameters)
        unresolved = []
        for param in node.node_schema.parameters:
            if not param.required or not _is_missing(params.get(param.name)):
                continue
            fallback_key = (registry_key, param.name)
            if fallback_key in self.fallbacks:
                params[param.name] = self.fallbacks[fallback_key]
            elif param.has_default:
                params[param.name] = param.default_value
            else:
                unresolved.append(param.name)
        return params, unresolved

    def translate_edge(self, edge: GraphEdge) -> ExecutionEdge:
        return ExecutionEdge(
            from_=SourceRef(
                node=edge.source,
                output=_strip_prefix(edge.sourceHandle, config.SOURCE_HANDLE_PREFIX, config.DEFAULT_SOURCE_PORT),
            ),
            to=TargetRef(
                node=edge.target,
                input=_strip_prefix(edge.targetHandle, config.TARGET_HANDLE_PREFIX, config.DEFAULT_TARGET_PORT),
            ),
        )

    def _check_structure(self, registry_keys: List[str]):
        present = {key.lower() for key in registry_keys}
        missing = [
            category for category in (self.entry_category, self.terminal_category)
            if category.lower() not in present
        ]
        if missing:
            raise WorkflowValidationError(
                f"Workflow must include at least one {' and one '.join(missing)} node",
                category=missing[0],
            )

    def compile(self, store: GraphStore) -> ExecutionDescriptor:
        nodes = store.nodes
        if not nodes:
            raise WorkflowValidationError("Please add nodes to the workflow before executing")

        keyed = [(node, self.registry_key(node.node_schema)) for node in nodes]

        execution_nodes: Dict[str, ExecutionNode] = {}
        for node, registry_key in keyed:
            params, unresolved = self.resolve_parameters(node, registry_key)
            if unresolved:
                raise WorkflowValidationError(
                    f'Node "{node.node_schema.name}" ({node.id}) is missing required parameter: {unresolved[0]}',
                    node_id=node.id,
                    parameter=unresolved[0],
                )
            execution_nodes[node.id] = ExecutionNode(type=registry_key, parameters=params)

        self._check_structure([key for _, key in keyed])

        descriptor = ExecutionDescriptor(
            nodes=execution_nodes,
            edges=[self.translate_edge(edge) for edge in store.edges],
        )
        logger.info(f"Compiled workflow: {len(descriptor.nodes)} nodes, {len(descriptor.edges)} edges")
        return descriptor


def compile_workflow(store: GraphStore) -> ExecutionDescriptor:
    return ExecutionCompiler().compile(store)
