"""
Data model shared by the state machine, the analysis client and local storage.

Field aliases follow the JSON contract of the analysis model
(``suggestedIngredients``, ``box_2d``) so that the same models validate
remote responses and persisted history.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Detection boxes are expressed on a 1000x1000 grid regardless of image size
BOX_SCALE = 1000


class ConcernTag(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    icon: str


class Severity(str, Enum):
    MILD = "Mild"
    MODERATE = "Moderate"
    SEVERE = "Severe"


class Detection(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: str
    box_2d: List[float] = Field(..., min_length=4, max_length=4, description="[ymin, xmin, ymax, xmax] on a 0-1000 scale")


class Diagnosis(BaseModel):
    """Structured result of one analysis call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    condition: str
    confidence: float
    description: str
    severity: Severity
    recommendations: List[str]
    suggested_ingredients: List[str] = Field(..., alias="suggestedIngredients")
    disclaimer: str
    detections: List[Detection]

    @field_validator("condition")
    @classmethod
    def condition_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("condition must not be empty")
        return value

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    date: str
    condition: str
    image: str
    result: Diagnosis


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class ChatMessage(BaseModel):
    role: ChatRole
    text: str = ""


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    skin_type: Optional[str] = None
