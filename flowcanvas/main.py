from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, Body, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import List, Dict, Any, Optional
import uvicorn
import os
import logging

import config
from .errors import (
    DanglingEdgeError,
    UnknownSchemaError,
    WorkflowPersistenceError,
    WorkflowValidationError,
)
from .events import ConnectionManager
from .schemas import (
    AddNodeRequest,
    Connection,
    FieldValue,
    GraphEdge,
    GraphNode,
    NodeSchema,
    Position,
    SaveWorkflowRequest,
)
from .session import CanvasSession
from . import workflow_io

# Setup Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="FlowCanvas")

session = CanvasSession()
manager = ConnectionManager()


@app.on_event("startup")
async def startup_event():
    session.event_bus.subscribe(None, manager.relay)
    if not await session.refresh_catalog():
        logger.warning("Starting with an empty node catalog; backend unreachable")


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WorkflowValidationError)
async def validation_error_handler(request: Request, exc: WorkflowValidationError):
    logger.warning(f"Workflow rejected: {exc}")
    return JSONResponse(status_code=422, content={"success": False, **exc.to_dict()})


def _panel_view() -> Dict[str, Any]:
    form = session.panel.form
    if form is None:
        return {"open": False}
    return {
        "open": True,
        "node_id": session.panel.node_id,
        "node_name": form.schema.name,
        "groups": [g.model_dump() for g in form.render()],
        "values": form.values,
        "errors": form.validate(),
    }


@app.get("/")
def read_root():
    return {"message": "FlowCanvas API"}


# --- CATALOG ---

@app.get("/api/nodes", response_model=List[NodeSchema])
def get_nodes(search: Optional[str] = None):
    if search:
        return session.catalog.search(search)
    return session.catalog.get_all_metadata()


@app.post("/api/nodes/refresh")
async def refresh_nodes():
    success = await session.refresh_catalog()
    return {"success": success, "total_count": len(session.catalog)}


# --- GRAPH ---

@app.get("/api/graph")
def get_graph():
    return {
        "nodes": [n.model_dump() for n in session.store.nodes],
        "edges": [e.model_dump() for e in session.store.edges],
        "execution": session.state.to_dict(),
    }


@app.post("/api/graph/nodes", response_model=GraphNode)
def add_node(request: AddNodeRequest):
    try:
        return session.store.add_node(request.node_type, request.position)
    except UnknownSchemaError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.delete("/api/graph/nodes/{node_id}")
def delete_node(node_id: str):
    session.store.delete_node(node_id)
    return {"status": "deleted", "node_id": node_id}


@app.put("/api/graph/nodes/{node_id}/position")
def move_node(node_id: str, position: Position):
    session.store.move_node(node_id, position)
    return {"status": "moved", "node_id": node_id}


@app.post("/api/graph/edges", response_model=GraphEdge)
def connect(connection: Connection):
    try:
        return session.store.connect(connection)
    except DanglingEdgeError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/graph/edges/{edge_id}")
def delete_edge(edge_id: str):
    session.store.delete_edge(edge_id)
    return {"status": "deleted", "edge_id": edge_id}


@app.delete("/api/graph")
def clear_graph():
    session.reset()
    return {"status": "cleared"}


# --- CONFIG PANEL ---

@app.get("/api/panel")
def get_panel():
    return _panel_view()


@app.post("/api/graph/nodes/{node_id}/panel")
async def open_panel(node_id: str):
    form = await session.open_panel(node_id)
    if form is None:
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")
    return _panel_view()


@app.put("/api/panel/values")
async def set_panel_value(field: FieldValue):
    if not session.panel.is_open:
        raise HTTPException(status_code=409, detail="No configuration panel is open")
    await session.set_panel_value(field.name, field.value)
    return _panel_view()


@app.post("/api/panel/groups/{group}/toggle")
def toggle_group(group: str):
    if not session.panel.is_open:
        raise HTTPException(status_code=409, detail="No configuration panel is open")
    session.panel.form.toggle_group(group)
    return _panel_view()


@app.post("/api/panel/save")
def save_panel():
    node_id = session.panel.node_id
    committed = session.panel.save()
    if committed is None:
        raise HTTPException(status_code=409, detail="Nothing to save")
    return {"status": "saved", "node_id": node_id, "parameters": committed}


@app.post("/api/panel/close")
def close_panel():
    session.panel.close()
    return {"status": "closed"}


# --- EXECUTION ---

@app.get("/api/compile")
def compile_preview():
    return session.compiler.compile(session.store).to_payload()


@app.post("/api/execute")
async def execute():
    result = await session.execute()
    return result.model_dump()


@app.get("/api/execution")
def execution_state():
    return session.state.to_dict()


# --- WORKFLOW FILES ---

@app.get("/api/workflow/export")
def export_workflow(name: Optional[str] = None):
    return workflow_io.export_workflow(session.store, name).model_dump()


@app.post("/api/workflow/import")
def import_workflow(document: Dict[str, Any] = Body(...)):
    try:
        nodes, edges = workflow_io.load_into(session, document)
    except WorkflowPersistenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "loaded", "nodes": nodes, "edges": edges}


@app.get("/api/workflows")
def list_workflows():
    return workflow_io.list_workflow_files()


@app.post("/api/workflows/{name}")
def save_workflow_file(name: str):
    document = workflow_io.export_workflow(session.store, name)
    path = workflow_io.write_workflow_file(document)
    return {"status": "saved", "name": name, "path": path}


@app.post("/api/workflows/{name}/load")
def load_workflow_file(name: str):
    file_path = os.path.join(str(config.EXPORT_DIR), f"{name}.json")
    if not os.path.exists(file_path):
        raise HTTPException(status_code=404, detail="Workflow not found")
    try:
        document = workflow_io.read_workflow_file(file_path)
        nodes, edges = workflow_io.load_into(session, document)
    except WorkflowPersistenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "loaded", "name": name, "nodes": nodes, "edges": edges}


# --- BACKEND PERSISTENCE ---

@app.post("/api/backend/workflows")
async def save_to_backend(request: SaveWorkflowRequest):
    name = request.name or workflow_io.default_workflow_name()
    nodes, edges = workflow_io.backend_payload(session.store)
    try:
        response = await session.client.save_workflow(name, nodes, edges)
    except WorkflowPersistenceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "saved", "name": name, "response": response}


@app.post("/api/backend/workflows/{workflow_id}/load")
async def load_from_backend(workflow_id: str):
    try:
        workflow = await session.client.load_workflow(workflow_id)
    except WorkflowPersistenceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    try:
        nodes, edges = workflow_io.load_into(session, workflow)
    except WorkflowPersistenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "loaded", "workflow_id": workflow_id, "nodes": nodes, "edges": edges}


@app.websocket("/api/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        while True:
            # Keep alive / listen
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)


# Log Buffer
log_buffer = []


class ListHandler(logging.Handler):
    def emit(self, record):
        log_buffer.append(self.format(record))
        if len(log_buffer) > config.LOG_BUFFER_SIZE:
            log_buffer.pop(0)


handler = ListHandler()
formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
handler.setFormatter(formatter)
logging.getLogger().addHandler(handler)


@app.get("/api/logs")
def get_logs():
    return log_buffer


if __name__ == "__main__":
    uvicorn.run("flowcanvas.main:app", host=config.CANVAS_HOST, port=config.CANVAS_PORT, reload=True,
                timeout_keep_alive=300)
