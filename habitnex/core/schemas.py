"""Request bodies accepted by the AI endpoints."""

from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ErrorKind, HabitNexError


class EnhanceHabitRequest(BaseModel):
    habitName: str
    category: Optional[str] = None
    existingHabits: Optional[List[str]] = None

    @field_validator("habitName")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("habitName must not be blank")
        return value


class MoodAnalysisRequest(BaseModel):
    """Dates are checked by the orchestrator so each failure keeps its own message."""

    startDate: Optional[str] = None
    endDate: Optional[str] = None
    userId: Optional[str] = None


class QuickInsightRequest(BaseModel):
    habitName: str = Field(min_length=1)
    streak: int = Field(ge=0)
    completionRate: float = Field(ge=0, le=100)


class RecommendHabitsRequest(BaseModel):
    existingHabits: List[str]
    userGoals: Optional[str] = None


def parse_request(model, payload, message: str):
    """Validate a JSON payload against a request model.

    Args:
        model: Pydantic model class
        payload: Decoded request body
        message: Client-facing message used for any validation failure

    Raises:
        HabitNexError: With kind INVALID_INPUT
    """
    if not isinstance(payload, dict):
        raise HabitNexError(message, ErrorKind.INVALID_INPUT)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HabitNexError(message, ErrorKind.INVALID_INPUT) from exc
