from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Any, Optional


# --- Node catalog ---

class InputSpec(BaseModel):
    name: str
    type: str = "any"
    description: str = ""
    required: bool = False
    default_value: Any = None


class OutputSpec(BaseModel):
    name: str
    type: str = "any"
    description: str = ""


class ParameterSpec(BaseModel):
    name: str
    type: str = "string"  # string, integer, float, boolean, ...
    description: str = ""
    required: bool = False
    default_value: Any = None  # None means "no declared default"
    options: Optional[List[str]] = None

    @property
    def has_default(self) -> bool:
        return self.default_value is not None


class UIGroup(BaseModel):
    name: str
    label: str = ""
    description: Optional[str] = None
    # Components stay raw here; flowcanvas.forms parses them so unknown
    # component types survive a load/save cycle untouched.
    components: List[Dict[str, Any]] = []
    collapsible: bool = False
    collapsed: bool = False
    styling: Dict[str, Any] = {}


class NodeUIConfig(BaseModel):
    node_id: str = ""
    node_name: str = ""
    groups: List[UIGroup] = []
    global_styling: Dict[str, Any] = {}
    layout: Optional[str] = None
    columns: Optional[int] = None
    dialog_config: Optional[Dict[str, Any]] = None


class NodeSchema(BaseModel):
    """Backend-declared description of a node type. Shared by every node of that type."""
    model_config = ConfigDict(frozen=True)

    node_id: str
    name: str
    description: str = ""
    inputs: List[InputSpec] = []
    outputs: List[OutputSpec] = []
    parameters: List[ParameterSpec] = []
    ui_config: Optional[NodeUIConfig] = None
    styling: Dict[str, Any] = {}

    def get_parameter(self, name: str) -> Optional[ParameterSpec]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def default_parameters(self) -> Dict[str, Any]:
        return {p.name: p.default_value for p in self.parameters if p.has_default}


class CatalogData(BaseModel):
    nodes: List[str] = []
    schemas: Dict[str, NodeSchema] = {}
    total_count: int = 0


# --- Canvas graph ---

class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0


class GraphNode(BaseModel):
    id: str
    node_schema: NodeSchema
    position: Position = Field(default_factory=Position)
    parameters: Dict[str, Any] = {}
    # Display-only run output (response, response_content, error)
    annotations: Dict[str, Any] = {}

    @property
    def type(self) -> str:
        return self.node_schema.node_id


class Connection(BaseModel):
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None


class GraphEdge(Connection):
    id: str


# --- Execution wire format ---

class ExecutionNode(BaseModel):
    type: str
    parameters: Dict[str, Any] = {}


class SourceRef(BaseModel):
    node: str
    output: str


class TargetRef(BaseModel):
    node: str
    input: str


class ExecutionEdge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: SourceRef = Field(alias="from")
    to: TargetRef


class ExecutionDescriptor(BaseModel):
    nodes: Dict[str, ExecutionNode] = {}
    edges: List[ExecutionEdge] = []

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ExecutionData(BaseModel):
    response_inputs: Dict[str, Dict[str, Any]] = {}
    errors: Dict[str, Any] = {}
    executed_nodes: List[str] = []


class ExecutionResult(BaseModel):
    success: bool
    data: ExecutionData = Field(default_factory=ExecutionData)
    error: Optional[str] = None


# --- Persistence ---

class WorkflowDocument(BaseModel):
    nodes: List[Dict[str, Any]] = []
    edges: List[Dict[str, Any]] = []
    timestamp: str = ""
    name: str = ""


# --- API request bodies ---

class AddNodeRequest(BaseModel):
    node_type: str
    position: Optional[Position] = None


class ParameterUpdate(BaseModel):
    values: Dict[str, Any]


class FieldValue(BaseModel):
    name: str
    value: Any = None


class SaveWorkflowRequest(BaseModel):
    name: Optional[str] = None
