import logging
from contextlib import contextmanager
from typing import Dict, List, Optional, Set

from .events import CanvasEvent, CanvasEventBus
from .graph_store import GraphStore
from .schemas import ExecutionResult

logger = logging.getLogger(__name__)


class ExecutionState:
    """Transient "currently executing" state, used only for visual feedback."""

    def __init__(self, event_bus: Optional[CanvasEventBus] = None):
        self.event_bus = event_bus
        self.is_executing = False
        self.executing_nodes: Set[str] = set()
        self.executing_edges: Set[str] = set()

    @contextmanager
    def running(self, store: GraphStore):
        self.is_executing = True
        self.executing_nodes = {n.id for n in store.nodes}
        self.executing_edges = {e.id for e in store.edges}
        if self.event_bus:
            self.event_bus.emit(CanvasEvent.EXECUTION_STARTED, self.to_dict())
        try:
            yield self
        finally:
            self.is_executing = False
            self.executing_nodes = set()
            self.executing_edges = set()
            if self.event_bus:
                self.event_bus.emit(CanvasEvent.EXECUTION_FINISHED, self.to_dict())

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_executing": self.is_executing,
            "executing_nodes": sorted(self.executing_nodes),
            "executing_edges": sorted(self.executing_edges),
        }


class ExecutionResultProjector:
    """Writes a finished run's output onto node annotations. Parameters are never touched."""

    def project(self, store: GraphStore, result: ExecutionResult) -> List[str]:
        """Returns the ids of the nodes that received annotations."""
        annotated = []
        data = result.data

        if result.success:
            for node_id, node_data in data.response_inputs.items():
                final_response = (node_data or {}).get("final_response")
                if not final_response or not store.has_node(node_id):
                    continue
                store.annotate(node_id, {
                    "response": final_response,
                    "response_content": node_data.get("response_content") or final_response,
                })
                annotated.append(node_id)

        for node_id, error in data.errors.items():
            if not store.has_node(node_id):
                continue
            store.annotate(node_id, {"error": str(error)})
            if node_id not in annotated:
                annotated.append(node_id)

        logger.info(f"Projected results onto {len(annotated)} node(s), "
                    f"{len(data.executed_nodes)} executed")
        return annotated
