import json

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .config import configure_logging, get_settings
from .controller import FlowController
from .graph.errors import GraphValidationError
from .models import EdgeRequest, HealthResponse, NodeCreateRequest, NodeUpdateRequest, RunRequest

load_dotenv()
configure_logging()

app = FastAPI(
    title="Prompt Canvas API",
    description="Build graphs of prompt nodes and run them against a text-generation backend",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

controller = FlowController.from_settings(get_settings())
controller.load()


@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@app.get("/api/flow")
async def get_flow():
    return controller.snapshot()


@app.post("/api/flow/nodes")
async def add_node(request: NodeCreateRequest):
    node = controller.add_node(request.x, request.y)
    return node.model_dump(mode="json")


@app.patch("/api/flow/nodes/{node_id}")
async def update_node(node_id: str, request: NodeUpdateRequest):
    node = controller.graph.get(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")

    if request.system_prompt is not None or request.input is not None:
        controller.update_node(node_id, system_prompt=request.system_prompt, input=request.input)
    if request.x is not None or request.y is not None:
        x = request.x if request.x is not None else node.x
        y = request.y if request.y is not None else node.y
        controller.move_node(node_id, x, y)
    if request.w is not None or request.h is not None:
        w = request.w if request.w is not None else node.w
        h = request.h if request.h is not None else node.h
        controller.resize_node(node_id, w, h)
    return node.model_dump(mode="json")


@app.delete("/api/flow/nodes/{node_id}")
async def delete_node(node_id: str):
    if not controller.remove_node(node_id):
        raise HTTPException(status_code=404, detail="Node not found")
    return {"status": "deleted", "node_id": node_id}


@app.post("/api/flow/edges/validate")
async def validate_edge(request: EdgeRequest):
    return controller.validate_connection(request.source, request.target).model_dump()


@app.post("/api/flow/edges")
async def add_edge(request: EdgeRequest):
    try:
        controller.connect(request.source, request.target)
    except GraphValidationError as e:
        raise HTTPException(status_code=400, detail=e.reason)
    return {"status": "connected", "source": request.source, "target": request.target}


@app.delete("/api/flow/edges/{source}/{target}")
async def delete_edge(source: str, target: str):
    if not controller.disconnect(source, target):
        raise HTTPException(status_code=404, detail="Edge not found")
    return {"status": "disconnected", "source": source, "target": target}


@app.post("/api/flow/run")
async def run_flow(request: RunRequest | None = None):
    stream = request.stream if request else False

    async def event_stream():
        async for event in controller.run_events(stream=stream):
            yield f"data: {json.dumps(event, default=str)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@app.post("/api/flow/run/cancel")
async def cancel_run():
    return {"cancelled": controller.cancel_run()}
