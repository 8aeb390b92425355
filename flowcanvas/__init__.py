from .catalog import NodeSchemaCatalog
from .compiler import ExecutionCompiler, compile_workflow
from .config_cache import ConfigCache, ConfigPanel
from .graph_store import GraphStore
from .projector import ExecutionResultProjector, ExecutionState
from .session import CanvasSession

__all__ = [
    "CanvasSession",
    "ConfigCache",
    "ConfigPanel",
    "ExecutionCompiler",
    "ExecutionResultProjector",
    "ExecutionState",
    "GraphStore",
    "NodeSchemaCatalog",
    "compile_workflow",
]
