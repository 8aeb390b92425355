import logging
from typing import Any, Dict, Iterable, Optional

from .events import CanvasEvent, CanvasEventBus
from .forms import OptionResolver, SchemaForm
from .graph_store import GraphStore
from .schemas import GraphNode

logger = logging.getLogger(__name__)


class ConfigCache:
    """
    Last-saved parameter map per node id, for one editing session.

    Entries outlive the panels that wrote them. Deleting a node leaves its
    entry behind (ids are never reused, so it is simply unreachable).
    """

    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    def save(self, node_id: str, params: Dict[str, Any]):
        self._entries[node_id] = dict(params)
        logger.debug(f"Cached config for {node_id}: {sorted(params)}")

    def load(self, node_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(node_id)
        return dict(entry) if entry is not None else None

    def remove(self, node_id: str):
        self._entries.pop(node_id, None)

    def clear(self):
        logger.debug(f"Clearing {len(self._entries)} cached configs")
        self._entries = {}

    def entries(self) -> Dict[str, Dict[str, Any]]:
        return {k: dict(v) for k, v in self._entries.items()}

    def seed_from(self, nodes: Iterable[GraphNode]):
        """Re-seed from committed node parameters, e.g. after loading a workflow."""
        self._entries = {node.id: dict(node.parameters) for node in nodes}
        logger.info(f"Initialized {len(self._entries)} cached configs from graph")

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ConfigPanel:
    """
    The configuration panel of a canvas: at most one node open at a time.

    Opening reads the node's cached config (falling back to its committed
    parameters); edits stay in the form until `save`, which commits to the
    store and the cache together. Closing drops unsaved edits.
    """

    def __init__(self, store: GraphStore, cache: ConfigCache, resolver: Optional[OptionResolver] = None,
                 event_bus: Optional[CanvasEventBus] = None):
        self.store = store
        self.cache = cache
        self.resolver = resolver or OptionResolver()
        self.event_bus = event_bus
        self.node_id: Optional[str] = None
        self.form: Optional[SchemaForm] = None
        if event_bus:
            event_bus.subscribe(CanvasEvent.NODE_DELETED, self._on_node_deleted)

    @property
    def is_open(self) -> bool:
        return self.form is not None

    def open(self, node_id: str) -> Optional[SchemaForm]:
        node = self.store.get_node(node_id)
        if node is None:
            logger.debug(f"open: {node_id} not on canvas, ignoring")
            return None

        cached = self.cache.load(node_id)
        params = cached if cached is not None else dict(node.parameters)
        self.node_id = node_id
        self.form = SchemaForm(node.node_schema, params, self.resolver)
        logger.info(f"Opened config for {node_id} ({'cached' if cached is not None else 'committed'} parameters)")
        self._emit(CanvasEvent.PANEL_OPENED, {"node_id": node_id})
        return self.form

    def set_value(self, name: str, value: Any) -> Any:
        if self.form is None:
            return None
        return self.form.set_value(name, value)

    def save(self) -> Optional[Dict[str, Any]]:
        """Commit the form to the graph and the cache. Returns the committed parameters."""
        if self.form is None:
            return None
        node_id = self.node_id
        node = self.store.get_node(node_id)
        if node is None:
            self.close()
            return None

        values = dict(self.form.values)
        committed = {**node.parameters, **values}
        # The cache holds exactly the map the store ends up with
        self.cache.save(node_id, committed)
        self.store.update_parameters(node_id, values)
        logger.info(f"Saved config for {node_id}")
        self._emit(CanvasEvent.PANEL_SAVED, {"node_id": node_id})
        self.close()
        return committed

    def close(self):
        if self.form is None:
            return
        node_id = self.node_id
        self.node_id, self.form = None, None
        self._emit(CanvasEvent.PANEL_CLOSED, {"node_id": node_id})

    def _on_node_deleted(self, event, payload):
        if payload.get("node_id") == self.node_id:
            self.close()

    def _emit(self, event: CanvasEvent, payload: Dict[str, Any]):
        if self.event_bus:
            self.event_bus.emit(event, payload)
