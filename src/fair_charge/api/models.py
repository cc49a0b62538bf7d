from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

RESPONSE_FORMATS = ("minimal", "standard", "full")


class AnalyzeRequest(BaseModel):
    data: Dict[str, Any]
    query: Optional[str] = Field(default=None, max_length=5000)
    language: str = Field(default="en", max_length=10)
    format: str = Field(default="standard", pattern="^(minimal|standard|full)$")


class BatchAnalyzeRequest(BaseModel):
    items: List[Dict[str, Any]]
    format: str = Field(default="minimal", pattern="^(minimal|standard|full)$")
