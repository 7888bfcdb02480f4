from typing import Any, List, Optional

from pydantic import BaseModel


class CorsInfo(BaseModel):
    allowedOrigins: List[str]
    frontendUrl: str

class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: str
    environment: str
    cors: CorsInfo

class CorsTestResponse(BaseModel):
    success: bool
    message: str
    origin: Optional[str] = None
    allowed: bool

class ClientFrame(BaseModel):
    """A frame sent by a realtime client: {"event": "join-room", "data": "42"}."""
    event: str
    data: Any = None
