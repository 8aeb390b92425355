import logging
from typing import Dict, List, Optional

from .errors import SchemaFetchError, UnknownSchemaError
from .events import CanvasEvent, CanvasEventBus
from .schemas import CatalogData, NodeSchema

logger = logging.getLogger(__name__)


class NodeSchemaCatalog:
    """Read-only view of the node types the backend offers."""

    def __init__(self, event_bus: Optional[CanvasEventBus] = None):
        self.schemas: Dict[str, NodeSchema] = {}
        self.event_bus = event_bus

    def register(self, schema: NodeSchema):
        self.schemas = {**self.schemas, schema.node_id: schema}

    def load(self, data: CatalogData):
        # Keyed by the declared node_id so lookups never depend on the
        # backend's mapping keys.
        self.schemas = {schema.node_id: schema for schema in data.schemas.values()}
        logger.info(f"Loaded {len(self.schemas)} node schemas")
        if self.event_bus:
            self.event_bus.emit(CanvasEvent.CATALOG_LOADED, {"total_count": len(self.schemas)})

    async def refresh(self, client) -> bool:
        """
        Fetch the catalog from the backend.

        On failure the last-known catalog (possibly empty) stays in place and
        False is returned; the canvas keeps working with what it has.
        """
        try:
            data = await client.fetch_catalog()
        except SchemaFetchError as e:
            logger.error(f"Failed to fetch nodes: {e}")
            return False
        self.load(data)
        return True

    def find(self, node_type: str) -> Optional[NodeSchema]:
        return self.schemas.get(node_type)

    def get(self, node_type: str) -> NodeSchema:
        schema = self.schemas.get(node_type)
        if schema is None:
            raise UnknownSchemaError(node_type)
        return schema

    def get_all_metadata(self) -> List[NodeSchema]:
        return list(self.schemas.values())

    def search(self, term: str) -> List[NodeSchema]:
        term = (term or "").lower()
        return [
            schema for schema in self.schemas.values()
            if term in schema.name.lower() or term in schema.description.lower()
        ]

    def __contains__(self, node_type: str) -> bool:
        return node_type in self.schemas

    def __len__(self) -> int:
        return len(self.schemas)
