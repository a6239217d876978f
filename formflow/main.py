from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Body, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from typing import Dict
import uvicorn
import asyncio
import json
import logging
import threading
from pydantic import ValidationError

import config
from .editor import GraphEditor
from .errors import FormFlowError, NotFoundError, ConnectionRejectedError
from .graph import validate_workflow
from .node_registry import registry
from . import reporting
from .schemas import (
    AddNodeRequest,
    ApiError,
    ChartRequest,
    ConfigUpdate,
    ConnectRequest,
    ExportRequest,
    Envelope,
    Position,
    QueryResultRequest,
    SelectRequest,
    Workflow,
)
from .websockets import manager
from .workflow_store import WorkflowStore

# Setup Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="FormFlow Workflow Designer")

store = WorkflowStore(config.DATA_DIR, config.DEFAULT_PROJECT)

# Open editor sessions, keyed by (project, workflow id)
sessions: Dict[tuple, GraphEditor] = {}
sessions_lock = threading.Lock()

loop_instance = None


@app.on_event("startup")
async def set_loop():
    global loop_instance
    loop_instance = asyncio.get_running_loop()


@app.on_event("shutdown")
async def clear_loop():
    global loop_instance
    loop_instance = None


def event_callback(event, payload):
    if loop_instance:
        message = json.dumps({"type": event, "payload": payload}, default=str)
        asyncio.run_coroutine_threadsafe(manager.broadcast(message), loop_instance)
    else:
        logger.debug(f"No event loop yet, dropping {event} broadcast")


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Envelope helpers ---

def ok(data=None, meta=None):
    # None inside data is meaningful (e.g. no selection), so only drop unused envelope keys
    exclude = {"error"} if meta is not None else {"error", "meta"}
    return Envelope(success=True, data=data, meta=meta).model_dump(exclude=exclude)


def error_response(code: str, message: str, status: int = 400):
    body = Envelope(success=False, error=ApiError(code=code, message=message))
    return JSONResponse(body.model_dump(exclude={"data", "meta"}), status_code=status)


@app.exception_handler(FormFlowError)
async def formflow_error_handler(request: Request, exc: FormFlowError):
    if exc.status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return error_response(exc.code, exc.message, exc.status)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return error_response("VALIDATION_ERROR", "; ".join(messages), 422)


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return error_response("VALIDATION_ERROR", str(exc), 422)


@app.get("/")
def read_root():
    return {"message": "FormFlow Workflow Designer API"}


@app.get("/api/nodes")
def get_nodes():
    return ok([m.model_dump() for m in registry.get_all_metadata()])


# --- PROJECT ENDPOINTS ---

@app.get("/api/projects")
def list_projects():
    return ok(store.list_projects())


@app.post("/api/projects")
def create_project(name: str = Body(..., embed=True)):
    store.create_project(name)
    return ok({"status": "created", "name": name})


@app.get("/api/projects/active")
def get_active_project():
    return ok({"name": store.get_current_project()})


@app.post("/api/projects/active")
def set_active_project(name: str = Body(..., embed=True)):
    store.set_current_project(name)
    return ok({"status": "switched", "name": name})


@app.delete("/api/projects/{name}")
def delete_project(name: str):
    store.delete_project(name)
    close_sessions(name)
    return ok({"status": "deleted", "name": name})


# --- WORKFLOW ENDPOINTS ---

def _session_key(workflow_id: str):
    return (store.get_current_project(), workflow_id)


def get_editor(workflow_id: str, create: bool = False) -> GraphEditor:
    """
    Returns the open editor for a workflow, mounting it from the store on
    first use. Unsaved workflows only get a session when create is set.
    """
    key = _session_key(workflow_id)
    with sessions_lock:
        editor = sessions.get(key)
        if editor is not None:
            return editor

        exists = store.exists(workflow_id)
        if not exists and not create:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        editor = GraphEditor(
            workflow_id=workflow_id,
            save_callback=lambda nodes, connections: store.save_graph(workflow_id, nodes, connections),
        )
        if exists:
            workflow = store.load_workflow(workflow_id)
            editor.load(workflow.nodes, workflow.connections)
        editor.subscribe(event_callback)
        sessions[key] = editor
        return editor


def close_sessions(project: str, workflow_id: str = None):
    with sessions_lock:
        for key in [k for k in sessions if k[0] == project and workflow_id in (None, k[1])]:
            sessions.pop(key)


@app.get("/api/workflows")
def list_workflows():
    return ok(store.list_workflows())


@app.get("/api/workflows/{workflow_id}")
def load_workflow(workflow_id: str):
    workflow = store.load_workflow(workflow_id)
    return ok(workflow.model_dump())


@app.put("/api/workflows/{workflow_id}")
def save_workflow(workflow_id: str, workflow: Workflow):
    store.save_workflow(workflow_id, workflow)
    # Open editors would hold stale state
    close_sessions(store.get_current_project(), workflow_id)
    return ok({"status": "saved", "id": workflow_id})


@app.delete("/api/workflows/{workflow_id}")
def delete_workflow(workflow_id: str):
    store.delete_workflow(workflow_id)
    close_sessions(store.get_current_project(), workflow_id)
    return ok({"status": "deleted", "id": workflow_id})


@app.get("/api/workflows/{workflow_id}/validate")
def validate_saved_workflow(workflow_id: str):
    workflow = store.load_workflow(workflow_id)
    return ok(validate_workflow(workflow.nodes, workflow.connections).to_dict())


# --- EDITOR ENDPOINTS ---

@app.get("/api/workflows/{workflow_id}/editor")
def open_editor(workflow_id: str):
    if _session_key(workflow_id) in sessions or store.exists(workflow_id):
        editor = get_editor(workflow_id)
    else:
        # Nothing to mount yet; the first edit opens the session
        editor = GraphEditor(workflow_id=workflow_id)
    return ok(editor.render(), meta=editor.sync_stats)


@app.post("/api/workflows/{workflow_id}/editor/nodes")
def add_node(workflow_id: str, request: AddNodeRequest):
    editor = get_editor(workflow_id, create=True)
    node = editor.add_node(request.type, request.position)
    return ok(node.model_dump())


@app.patch("/api/workflows/{workflow_id}/editor/nodes/{node_id}/config")
def update_node_config(workflow_id: str, node_id: str, request: ConfigUpdate):
    editor = get_editor(workflow_id)
    node = editor.update_node_config(node_id, request.config)
    if node is None:
        raise NotFoundError(f"Node {node_id} not found")
    return ok({
        "node": node.model_dump(),
        "summary": registry.summarize(node),
        "problems": registry.validate_node(node),
    })


@app.patch("/api/workflows/{workflow_id}/editor/nodes/{node_id}/position")
def move_node(workflow_id: str, node_id: str, position: Position):
    editor = get_editor(workflow_id)
    node = editor.move_node(node_id, position)
    if node is None:
        raise NotFoundError(f"Node {node_id} not found")
    return ok(node.model_dump())


@app.delete("/api/workflows/{workflow_id}/editor/nodes/{node_id}")
def delete_node(workflow_id: str, node_id: str):
    editor = get_editor(workflow_id)
    if not editor.delete_node(node_id):
        raise NotFoundError(f"Node {node_id} not found")
    return ok({"status": "deleted", "id": node_id})


@app.post("/api/workflows/{workflow_id}/editor/connections")
def connect(workflow_id: str, request: ConnectRequest):
    editor = get_editor(workflow_id)
    conn = editor.connect(request.source, request.target, request.sourceHandle, request.targetHandle)
    if conn is None:
        raise ConnectionRejectedError(
            f"Connection {request.source} -> {request.target} was rejected"
        )
    return ok(conn.model_dump())


@app.delete("/api/workflows/{workflow_id}/editor/connections/{connection_id}")
def delete_connection(workflow_id: str, connection_id: str):
    editor = get_editor(workflow_id)
    if not editor.delete_connection(connection_id):
        raise NotFoundError(f"Connection {connection_id} not found")
    return ok({"status": "deleted", "id": connection_id})


@app.post("/api/workflows/{workflow_id}/editor/select")
def select_node(workflow_id: str, request: SelectRequest):
    editor = get_editor(workflow_id)
    if request.nodeId is None:
        editor.clear_selection()
        return ok({"selectedNodeId": None})
    node = editor.select_node(request.nodeId)
    if node is None:
        raise NotFoundError(f"Node {request.nodeId} not found")
    return ok({
        "selectedNodeId": node.id,
        "node": node.model_dump(),
        "problems": registry.validate_node(node),
    })


@app.post("/api/workflows/{workflow_id}/editor/save")
def save_editor(workflow_id: str):
    editor = get_editor(workflow_id)
    editor.save()
    return ok({"status": "saved", "id": workflow_id})


# --- QUERY RESULT ENDPOINTS ---

@app.post("/api/query/results")
def query_results(request: QueryResultRequest):
    records = reporting.process(request, **request.processing())
    columns = reporting.display_columns(records, request.columns, request.groupByColumn)
    page_records, meta = reporting.paginate(records, request.page, request.limit)
    return ok({"columns": columns, "records": page_records}, meta=meta.model_dump())


@app.post("/api/query/chart")
def query_chart(request: ChartRequest):
    data = reporting.build_chart(
        request,
        request.chartType,
        request.xColumn,
        request.yColumn,
        **request.processing(),
    )
    return ok({"chartType": request.chartType, "points": data})


@app.post("/api/query/export")
def query_export(request: ExportRequest):
    records = reporting.process(request, **request.processing())
    if request.format == "json":
        return Response(reporting.to_json(records), media_type="application/json")
    columns = reporting.display_columns(records, request.columns, request.groupByColumn)
    return PlainTextResponse(reporting.to_csv(records, columns), media_type="text/csv")


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
logging.getLogger("formflow").addHandler(handler)


@app.get("/api/logs")
def get_logs():
    return ok(list(log_buffer))


if __name__ == "__main__":
    uvicorn.run("formflow.main:app", host=config.API_HOST, port=config.API_PORT, reload=True)
