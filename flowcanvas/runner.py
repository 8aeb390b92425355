import asyncio
import logging
from typing import Optional

from pocketflow import Flow, Node

from .client import BackendClient
from .compiler import ExecutionCompiler
from .errors import ExecutionError
from .graph_store import GraphStore
from .projector import ExecutionResultProjector, ExecutionState
from .schemas import ExecutionResult

logger = logging.getLogger(__name__)


class SubmitNode(Node):
    """Posts the compiled descriptor to the backend."""

    def __init__(self, client: BackendClient):
        super().__init__()
        self.client = client

    def prep(self, shared):
        return shared["descriptor"]

    def exec(self, descriptor):
        return self.client.post_execute(descriptor)

    def exec_fallback(self, prep_res, exc):
        if isinstance(exc, ExecutionError):
            logger.error(f"Execution Error: {exc}")
            return ExecutionResult(success=False, error=str(exc))
        raise exc

    def post(self, shared, prep_res, exec_res):
        shared["result"] = exec_res
        return None


def build_flow(client: BackendClient) -> Flow:
    return Flow(start=SubmitNode(client))


class WorkflowRunner:
    """
    Compile, submit, project.

    Compilation runs on the caller's thread and raises WorkflowValidationError
    before anything is sent. Only the submit flow runs in a worker thread; the
    result is projected back on the event loop so canvas events fire there.
    `state` shows the graph as executing until the run ends, however it ends.
    """

    def __init__(self, store: GraphStore, client: BackendClient, compiler: Optional[ExecutionCompiler] = None,
                 projector: Optional[ExecutionResultProjector] = None, state: Optional[ExecutionState] = None):
        self.store = store
        self.client = client
        self.compiler = compiler or ExecutionCompiler()
        self.projector = projector or ExecutionResultProjector()
        self.state = state or ExecutionState()
        self.last_result: Optional[ExecutionResult] = None

    async def run(self) -> ExecutionResult:
        if self.state.is_executing:
            logger.warning("Execution requested while a run is in progress, ignoring")
            return ExecutionResult(success=False, error="A workflow is already executing")

        descriptor = self.compiler.compile(self.store)
        self.store.clear_annotations()

        shared = {"descriptor": descriptor}
        flow = build_flow(self.client)
        with self.state.running(self.store):
            try:
                await asyncio.to_thread(flow.run, shared)
            except Exception as e:
                logger.error(f"Execution Error: {e}")
                shared["result"] = ExecutionResult(success=False, error=str(e))
            result = shared.get("result") or ExecutionResult(success=False, error="Unknown error occurred")
            self.projector.project(self.store, result)

        self.last_result = result
        logger.info(f"Workflow run finished: success={result.success}")
        return result
