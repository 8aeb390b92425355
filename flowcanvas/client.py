import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

import config
from .errors import ExecutionError, SchemaFetchError, WorkflowPersistenceError
from .forms import UIOption
from .schemas import CatalogData, ExecutionDescriptor, ExecutionResult

logger = logging.getLogger(__name__)


class BackendClient:
    """
    HTTP/JSON client for the execution backend.

    Calls use `requests` and run in a worker thread so the event loop keeps
    serving the canvas while a request is in flight.
    """

    def __init__(self, api_base: str = config.API_BASE, timeout: float = config.REQUEST_TIMEOUT,
                 execute_timeout: float = config.EXECUTE_TIMEOUT, session: Optional[requests.Session] = None):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.execute_timeout = execute_timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.api_base}{path}"

    def _get_json(self, path: str) -> Dict[str, Any]:
        resp = self.session.get(self._url(path), timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    # --- catalog & options ---

    def get_catalog(self) -> CatalogData:
        try:
            payload = self._get_json("/api/v1/nodes/")
        except (requests.RequestException, ValueError) as e:
            raise SchemaFetchError(f"Failed to fetch nodes: {e}") from e
        if not payload.get("success"):
            raise SchemaFetchError(f"API returned success=false: {payload.get('error')}")
        try:
            return CatalogData.model_validate(payload.get("data") or {})
        except ValidationError as e:
            raise SchemaFetchError(f"Malformed node catalog: {e}") from e

    def get_models(self, service: Optional[str]) -> List[UIOption]:
        if not service:
            return []
        try:
            payload = self._get_json(f"/api/v1/nodes/models/{service}")
        except (requests.RequestException, ValueError) as e:
            raise SchemaFetchError(f"Error fetching models for {service}: {e}") from e
        if not payload.get("success"):
            raise SchemaFetchError(f"Model list for {service} unavailable")
        models = (payload.get("data") or {}).get("models") or []
        return [UIOption(value=str(m), label=str(m)) for m in models]

    def get_collections(self, _dependent: Optional[str] = None) -> List[UIOption]:
        try:
            payload = self._get_json("/api/v1/vector-store/collections")
        except (requests.RequestException, ValueError) as e:
            raise SchemaFetchError(f"Error fetching collections: {e}") from e
        if not payload.get("success"):
            raise SchemaFetchError("Failed to fetch collections")
        return [
            UIOption(value=c["name"], label=f"{c['name']} ({c.get('points_count', 0)} docs)")
            for c in payload.get("collections") or []
            if isinstance(c, dict) and c.get("name")
        ]

    async def fetch_catalog(self) -> CatalogData:
        return await asyncio.to_thread(self.get_catalog)

    async def fetch_models(self, service: Optional[str]) -> List[UIOption]:
        return await asyncio.to_thread(self.get_models, service)

    async def fetch_collections(self, _dependent: Optional[str] = None) -> List[UIOption]:
        return await asyncio.to_thread(self.get_collections)

    def option_fetchers(self):
        return {"models": self.fetch_models, "collections": self.fetch_collections}

    # --- execution ---

    def post_execute(self, descriptor: ExecutionDescriptor) -> ExecutionResult:
        """Raises ExecutionError on transport failure, a non-2xx status or success=false."""
        logger.info(f"Submitting workflow: {len(descriptor.nodes)} nodes, {len(descriptor.edges)} edges")
        try:
            resp = self.session.post(
                self._url("/api/v1/nodes/execute"),
                json=descriptor.to_payload(),
                timeout=self.execute_timeout,
            )
        except requests.RequestException as e:
            raise ExecutionError(str(e)) from e
        if not resp.ok:
            raise ExecutionError(f"HTTP error! status: {resp.status_code} - {resp.text}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise ExecutionError(f"Invalid JSON from backend: {e}") from e
        try:
            result = ExecutionResult(
                success=payload.get("success") is not False,
                data=payload.get("data") or {},
                error=payload.get("error"),
            )
        except ValidationError as e:
            raise ExecutionError(f"Malformed execution response: {e}") from e
        if not result.success:
            raise ExecutionError(result.error or "Unknown error occurred")
        return result

    # --- persistence ---

    def post_workflow(self, name: str, nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            resp = self.session.post(
                self._url("/api/v1/workflows/"),
                json={"name": name, "data": {"nodes": nodes, "edges": edges}},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json() if resp.content else {}
        except (requests.RequestException, ValueError) as e:
            raise WorkflowPersistenceError(f"Failed to save workflow: {e}") from e

    def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        try:
            payload = self._get_json(f"/api/v1/workflows/{workflow_id}")
        except (requests.RequestException, ValueError) as e:
            raise WorkflowPersistenceError(f"Failed to load workflow {workflow_id}: {e}") from e
        workflow = ((payload.get("data") or {}).get("data")) if payload.get("success") else None
        if not isinstance(workflow, dict) or "nodes" not in workflow or "edges" not in workflow:
            raise WorkflowPersistenceError(f"Workflow {workflow_id} not found or malformed")
        return workflow

    async def save_workflow(self, name: str, nodes, edges) -> Dict[str, Any]:
        return await asyncio.to_thread(self.post_workflow, name, nodes, edges)

    async def load_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.get_workflow, workflow_id)
