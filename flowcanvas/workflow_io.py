import json
import logging
import os
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

import config
from .catalog import NodeSchemaCatalog
from .errors import WorkflowPersistenceError
from .events import CanvasEvent
from .graph_store import GraphStore
from .schemas import GraphEdge, GraphNode, NodeSchema, Position, WorkflowDocument

logger = logging.getLogger(__name__)

# Every canvas node renders through the same generic component
CANVAS_NODE_TYPE = "custom"


def default_workflow_name() -> str:
    return f"Workflow_{datetime.now().strftime('%Y-%m-%d')}_{int(time.time() * 1000)}"


def serialize_node(node: GraphNode) -> Dict[str, Any]:
    return {
        "id": node.id,
        "type": CANVAS_NODE_TYPE,
        "position": node.position.model_dump(),
        "data": {
            "nodeSchema": node.node_schema.model_dump(),
            "parameters": dict(node.parameters),
        },
    }


def serialize_edge(edge: GraphEdge) -> Dict[str, Any]:
    return {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "sourceHandle": edge.sourceHandle,
        "targetHandle": edge.targetHandle,
    }


def backend_payload(store: GraphStore) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Nodes and edges in the shape the backend's workflow endpoints store."""
    return [serialize_node(n) for n in store.nodes], [serialize_edge(e) for e in store.edges]


def export_workflow(store: GraphStore, name: Optional[str] = None) -> WorkflowDocument:
    nodes, edges = backend_payload(store)
    return WorkflowDocument(
        nodes=nodes,
        edges=edges,
        timestamp=datetime.now().isoformat(),
        name=name or default_workflow_name(),
    )


def _parse_node(raw: Dict[str, Any], catalog: Optional[NodeSchemaCatalog]) -> GraphNode:
    data = raw.get("data") or {}
    schema_data = data.get("nodeSchema")
    if schema_data:
        schema = NodeSchema.model_validate(schema_data)
    elif catalog is not None and data.get("type") in catalog:
        # Older exports carry only the node type
        schema = catalog.get(data["type"])
    else:
        raise WorkflowPersistenceError(f"Node {raw.get('id')} has no schema")
    return GraphNode(
        id=raw["id"],
        node_schema=schema,
        position=Position.model_validate(raw.get("position") or {}),
        parameters=dict(data.get("parameters") or {}),
    )


def import_workflow(document: Union[WorkflowDocument, Dict[str, Any]],
                    catalog: Optional[NodeSchemaCatalog] = None) -> Tuple[List[GraphNode], List[GraphEdge]]:
    """
    Rebuild graph nodes and edges from an exported document.

    Ids, types, parameters and edges come back exactly as exported. Raises
    WorkflowPersistenceError on a malformed document.
    """
    try:
        if not isinstance(document, WorkflowDocument):
            document = WorkflowDocument.model_validate(document)
        nodes = [_parse_node(raw, catalog) for raw in document.nodes]
        edges = [GraphEdge.model_validate(raw) for raw in document.edges]
    except (ValidationError, KeyError, TypeError) as e:
        raise WorkflowPersistenceError(f"Invalid workflow file format: {e}") from e
    return nodes, edges


def load_into(session, document: Union[WorkflowDocument, Dict[str, Any]]) -> Tuple[int, int]:
    """Replace the session's graph with a document and re-seed its config cache."""
    nodes, edges = import_workflow(document, session.catalog)
    session.panel.close()
    session.store.replace_all(nodes, edges)
    session.cache.seed_from(session.store.nodes)
    session.event_bus.emit(
        CanvasEvent.WORKFLOW_LOADED,
        {"nodes": len(session.store.nodes), "edges": len(session.store.edges)},
    )
    return len(session.store.nodes), len(session.store.edges)


# --- files ---

def write_workflow_file(document: WorkflowDocument, directory: Optional[str] = None) -> str:
    directory = str(directory or config.EXPORT_DIR)
    os.makedirs(directory, exist_ok=True)
    file_path = os.path.join(directory, f"{document.name}.json")
    with open(file_path, "w") as f:
        json.dump(document.model_dump(), f, indent=2)
    logger.info(f"Exported workflow to {file_path}")
    return file_path


def read_workflow_file(file_path: str) -> WorkflowDocument:
    if not os.path.exists(file_path):
        raise WorkflowPersistenceError(f"Workflow file not found: {file_path}")
    try:
        with open(file_path, "r") as f:
            return WorkflowDocument.model_validate(json.load(f))
    except (ValueError, ValidationError) as e:
        raise WorkflowPersistenceError(f"Invalid workflow file format: {e}") from e


def list_workflow_files(directory: Optional[str] = None) -> List[str]:
    directory = str(directory or config.EXPORT_DIR)
    if not os.path.exists(directory):
        return []
    return sorted(f[:-len(".json")] for f in os.listdir(directory) if f.endswith(".json"))
