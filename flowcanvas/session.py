import logging
from typing import Optional

from .catalog import NodeSchemaCatalog
from .client import BackendClient
from .compiler import ExecutionCompiler
from .config_cache import ConfigCache, ConfigPanel
from .events import CanvasEventBus
from .forms import OptionResolver
from .graph_store import GraphStore
from .projector import ExecutionResultProjector, ExecutionState
from .runner import WorkflowRunner

logger = logging.getLogger(__name__)


class CanvasSession:
    """
    One canvas and everything scoped to it.

    Nothing here is global: two sessions share no store, cache, option
    results or event listeners.
    """

    def __init__(self, client: Optional[BackendClient] = None, compiler: Optional[ExecutionCompiler] = None):
        self.event_bus = CanvasEventBus()
        self.client = client or BackendClient()
        self.catalog = NodeSchemaCatalog(self.event_bus)
        self.store = GraphStore(self.catalog, self.event_bus)
        self.cache = ConfigCache()
        self.resolver = OptionResolver(self.client.option_fetchers())
        self.panel = ConfigPanel(self.store, self.cache, self.resolver, self.event_bus)
        self.compiler = compiler or ExecutionCompiler()
        self.projector = ExecutionResultProjector()
        self.state = ExecutionState(self.event_bus)
        self.runner = WorkflowRunner(self.store, self.client, self.compiler, self.projector, self.state)

    async def refresh_catalog(self) -> bool:
        return await self.catalog.refresh(self.client)

    async def open_panel(self, node_id: str):
        """Open a node's panel and load the option lists its form needs."""
        form = self.panel.open(node_id)
        if form is not None:
            await form.load_options()
        return form

    async def set_panel_value(self, name: str, value):
        """Edit one field, then fetch any option list the new value unlocks."""
        if self.panel.form is None:
            return None
        coerced = self.panel.set_value(name, value)
        reset = await self.panel.form.load_options()
        if reset:
            logger.info(f"Reset dependent field(s) {reset} after {name} changed")
        return coerced

    async def execute(self):
        return await self.runner.run()

    def reset(self):
        self.panel.close()
        self.store.clear()
        self.cache.clear()
        logger.info("Canvas cleared")
