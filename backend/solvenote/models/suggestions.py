"""SolveNote Suggestion Models"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, timezone
from enum import Enum


class SuggestionType(str, Enum):
    SOLUTION = "solution"
    INSIGHT = "insight"
    ACTION = "action"


class Suggestion(BaseModel):
    """One generated suggestion as shown in the suggestion list."""
    id: str
    type: SuggestionType = SuggestionType.SOLUTION
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SuggestionRequest(BaseModel):
    problem: str = ""

    model_config = {"extra": "ignore"}


class SuggestionResponse(BaseModel):
    suggestions: List[Suggestion]
    credits_remaining: int
    is_unlimited: bool


class SuggestionOutcome(BaseModel):
    """Orchestrator result: suggestions is None when no credit could be spent."""
    suggestions: Optional[List[Suggestion]] = None
    credits_remaining: int
    is_unlimited: bool
