from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SessionResponse(BaseModel):
    session_id: str
    tables: List[str] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)


class ChatRequest(BaseModel):
    session_id: str = Field(..., description="ID of the chat session returned by /api/sessions")
    message: str = Field(..., description="User question in natural language")


class ChatResponse(BaseModel):
    answer: str
    query: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    logs: List[str] = Field(default_factory=list)


class HubRequest(BaseModel):
    message: str
