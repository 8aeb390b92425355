from typing import Optional


class FlowCanvasError(Exception):
    """Base class for builder errors"""


class SchemaFetchError(FlowCanvasError):
    """The node catalog or a dynamic option list could not be fetched."""


class UnknownSchemaError(FlowCanvasError, KeyError):
    def __init__(self, node_type: str):
        super().__init__(node_type)
        self.node_type = node_type

    def __str__(self):
        return f"Unknown node type: {self.node_type}"


class DanglingEdgeError(FlowCanvasError, ValueError):
    """An edge endpoint references a node that is not on the canvas."""


class WorkflowValidationError(FlowCanvasError, ValueError):
    """
    Raised by the compiler before anything is sent to the backend.

    `node_id` / `parameter` identify an unresolved required parameter,
    `category` names a missing entry or terminal node category.
    """

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        parameter: Optional[str] = None,
        category: Optional[str] = None,
    ):
        super().__init__(message)
        self.node_id = node_id
        self.parameter = parameter
        self.category = category

    def to_dict(self):
        return {
            "error": str(self),
            "node_id": self.node_id,
            "parameter": self.parameter,
            "category": self.category,
        }


class ExecutionError(FlowCanvasError):
    """The backend call failed or reported success: false."""


class WorkflowPersistenceError(FlowCanvasError):
    """Saving or loading a workflow failed, or the document is malformed."""
