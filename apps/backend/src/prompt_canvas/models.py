"""API models for Prompt Canvas."""

from typing import Optional

from pydantic import BaseModel, Field


class NodeCreateRequest(BaseModel):
    """Request to add a node to the canvas."""

    x: float = Field(100, description="Left edge of the node on the canvas")
    y: float = Field(100, description="Top edge of the node on the canvas")


class NodeUpdateRequest(BaseModel):
    """Partial update of a node. Omitted fields are left unchanged."""

    system_prompt: Optional[str] = Field(None, description="System instruction for the node")
    input: Optional[str] = Field(None, description="Input text, used when the node has no dependencies")
    x: Optional[float] = None
    y: Optional[float] = None
    w: Optional[float] = None
    h: Optional[float] = None


class EdgeRequest(BaseModel):
    """A dependency edge: target's input is derived from source's output."""

    source: str = Field(..., description="Node whose output feeds the target")
    target: str = Field(..., description="Node that depends on the source")


class RunRequest(BaseModel):
    """Options for a flow run."""

    stream: bool = Field(False, description="Emit chunk events as output is generated")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str = "Prompt Canvas Backend"
