import logging
import random
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from .catalog import NodeSchemaCatalog
from .errors import DanglingEdgeError, UnknownSchemaError
from .events import CanvasEvent, CanvasEventBus
from .schemas import Connection, GraphEdge, GraphNode, NodeSchema, Position

logger = logging.getLogger(__name__)


def default_position() -> Position:
    """Somewhere in the visible area of a fresh canvas."""
    return Position(x=200 + random.random() * 300, y=150 + random.random() * 200)


class GraphStore:
    """
    Canonical in-memory graph of one canvas.

    Every mutation builds the new node/edge collections first and swaps them
    in with a single assignment, so readers never observe a half-applied
    change. Operations addressed to ids that are not on the canvas are
    silent no-ops (except `connect`, which refuses dangling edges).
    """

    def __init__(self, catalog: Optional[NodeSchemaCatalog] = None, event_bus: Optional[CanvasEventBus] = None):
        self.catalog = catalog
        self.event_bus = event_bus
        self._nodes: Dict[str, GraphNode] = {}
        self._edges: List[GraphEdge] = []
        # Every id ever handed out, so a deleted id is never reused
        self._issued_ids: Set[str] = set()

    # --- reads ---

    @property
    def nodes(self) -> List[GraphNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[GraphEdge]:
        return list(self._edges)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        return next((e for e in self._edges if e.id == edge_id), None)

    def is_empty(self) -> bool:
        return not self._nodes

    def snapshot(self) -> Tuple[List[GraphNode], List[GraphEdge]]:
        return (
            [n.model_copy(deep=True) for n in self._nodes.values()],
            [e.model_copy(deep=True) for e in self._edges],
        )

    # --- node operations ---

    def _new_id(self, prefix: str) -> str:
        while True:
            candidate = f"{prefix}_{uuid.uuid4().hex[:12]}"
            if candidate not in self._issued_ids:
                self._issued_ids.add(candidate)
                return candidate

    def _resolve_schema(self, schema: Union[NodeSchema, str]) -> NodeSchema:
        if isinstance(schema, NodeSchema):
            return schema
        if self.catalog is None:
            raise UnknownSchemaError(schema)
        return self.catalog.get(schema)

    def add_node(self, schema: Union[NodeSchema, str], position: Optional[Position] = None) -> GraphNode:
        node_schema = self._resolve_schema(schema)
        node = GraphNode(
            id=self._new_id(node_schema.node_id),
            node_schema=node_schema,
            position=position or default_position(),
            parameters=node_schema.default_parameters(),
        )
        self._nodes = {**self._nodes, node.id: node}
        logger.info(f"Added node {node.id} ({node_schema.name})")
        self._emit(CanvasEvent.NODE_ADDED, {"node_id": node.id, "type": node.type})
        return node

    def delete_node(self, node_id: str):
        if node_id not in self._nodes:
            logger.debug(f"delete_node: {node_id} not on canvas, ignoring")
            return
        nodes = {k: v for k, v in self._nodes.items() if k != node_id}
        edges = [e for e in self._edges if e.source != node_id and e.target != node_id]
        removed_edges = [e.id for e in self._edges if e.source == node_id or e.target == node_id]
        self._nodes, self._edges = nodes, edges
        logger.info(f"Deleted node {node_id} and {len(removed_edges)} edge(s)")
        self._emit(CanvasEvent.NODE_DELETED, {"node_id": node_id, "edge_ids": removed_edges})

    def move_node(self, node_id: str, position: Position):
        node = self._nodes.get(node_id)
        if node is None:
            return
        node.position = position
        self._emit(CanvasEvent.NODE_MOVED, {"node_id": node_id})

    def update_parameters(self, node_id: str, partial: Dict[str, Any]) -> Optional[GraphNode]:
        node = self._nodes.get(node_id)
        if node is None:
            logger.debug(f"update_parameters: {node_id} not on canvas, ignoring")
            return None
        node.parameters = {**node.parameters, **partial}
        self._emit(CanvasEvent.PARAMETERS_UPDATED, {"node_id": node_id, "keys": sorted(partial)})
        return node

    def annotate(self, node_id: str, data: Dict[str, Any]):
        node = self._nodes.get(node_id)
        if node is None:
            return
        node.annotations = {**node.annotations, **data}
        self._emit(CanvasEvent.NODE_ANNOTATED, {"node_id": node_id})

    def clear_annotations(self):
        for node in self._nodes.values():
            node.annotations = {}

    # --- edge operations ---

    def connect(self, connection: Connection) -> GraphEdge:
        missing = [nid for nid in (connection.source, connection.target) if nid not in self._nodes]
        if missing:
            raise DanglingEdgeError(f"Cannot connect: node(s) {', '.join(missing)} not on canvas")

        edge = GraphEdge(
            id=self._new_id(f"edge_{connection.source}-{connection.target}"),
            source=connection.source,
            target=connection.target,
            sourceHandle=connection.sourceHandle,
            targetHandle=connection.targetHandle,
        )
        self._edges = self._edges + [edge]
        self._emit(CanvasEvent.EDGE_ADDED, {"edge_id": edge.id})
        return edge

    def delete_edge(self, edge_id: str):
        edges = [e for e in self._edges if e.id != edge_id]
        if len(edges) == len(self._edges):
            return
        self._edges = edges
        self._emit(CanvasEvent.EDGE_DELETED, {"edge_id": edge_id})

    # --- bulk ---

    def replace_all(self, nodes: Iterable[GraphNode], edges: Iterable[GraphEdge]):
        """Swap in a loaded workflow. Edges whose endpoints are missing are dropped."""
        new_nodes = {n.id: n for n in nodes}
        new_edges = []
        for edge in edges:
            if edge.source in new_nodes and edge.target in new_nodes:
                new_edges.append(edge)
            else:
                logger.warning(f"Dropping dangling edge {edge.id} ({edge.source} -> {edge.target})")
        self._issued_ids |= set(new_nodes) | {e.id for e in new_edges}
        self._nodes, self._edges = new_nodes, new_edges
        logger.info(f"Loaded graph with {len(new_nodes)} nodes and {len(new_edges)} edges")

    def clear(self):
        self._nodes, self._edges = {}, []

    def _emit(self, event: CanvasEvent, payload: Dict[str, Any]):
        if self.event_bus:
            self.event_bus.emit(event, payload)
