from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class PostMessageRequest(BaseModel):
    matchId: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    sender: Optional[str] = None

    @field_validator("matchId", mode="before")
    @classmethod
    def _numeric_match_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

class PostMessageResponse(BaseModel):
    id: str
    matchId: str
    text: str
    sender: Optional[str]
    createdAt: str
    delivered: int

class MatchEventRequest(BaseModel):
    event: str = Field(..., min_length=1)
    data: Any = None

class MatchEventResponse(BaseModel):
    matchId: str
    event: str
    delivered: int
