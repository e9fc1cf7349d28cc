"""
Gemini Service for skin analysis and follow-up chat.
"""
import json
import logging
from functools import lru_cache
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Optional

import google.generativeai as genai
from pydantic import ValidationError

from dermascan.core.config import settings
from dermascan.models.schemas import Diagnosis, Severity
from dermascan.services.annotations import sanitize_detections
from dermascan.services.camera import image_bytes, mime_type

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """
Act as a professional dermatological AI assistant. Analyze the provided image of a person's face.
User's reported concerns: {concerns}.

1. Identify the primary skin condition, assess its severity, and provide professional recommendations.
2. DETECT specific locations of skin issues (acne, dark circles, redness, spots) on the face. Return them as bounding boxes.

Be objective and clinical but supportive.
ALWAYS include a clear medical disclaimer that this is not a substitute for professional medical advice.
"""

CHAT_INSTRUCTION = """You are a dermatology assistant. The user just received an analysis for {condition} (Severity: {severity}).
Description: {description}.
Your goal is to answer their follow-up questions about this specific condition, skincare ingredients, and routines.
Keep answers helpful, evidence-based, and always maintain a professional tone.
Reiterate the disclaimer if they ask for definitive medical diagnoses."""

REQUIRED_FIELDS = [
    "condition", "confidence", "description", "severity",
    "recommendations", "suggestedIngredients", "disclaimer", "detections",
]

DIAGNOSIS_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "condition": {"type": "STRING"},
        "confidence": {"type": "NUMBER"},
        "description": {"type": "STRING"},
        "severity": {"type": "STRING", "format": "enum", "enum": [s.value for s in Severity]},
        "recommendations": {"type": "ARRAY", "items": {"type": "STRING"}},
        "suggestedIngredients": {"type": "ARRAY", "items": {"type": "STRING"}},
        "disclaimer": {"type": "STRING"},
        "detections": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "label": {
                        "type": "STRING",
                        "description": "Label of the detected issue (e.g. 'Acne', 'Dark Circle')",
                    },
                    "box_2d": {
                        "type": "ARRAY",
                        "items": {"type": "NUMBER"},
                        "description": "Bounding box [ymin, xmin, ymax, xmax] on a 1000x1000 scale.",
                    },
                },
                "required": ["label", "box_2d"],
            },
        },
    },
    "required": REQUIRED_FIELDS,
}


class AnalysisError(Exception):
    """The analysis call failed or returned an unusable diagnosis."""


def parse_diagnosis(text: Optional[str]) -> Diagnosis:
    """Parse the model's JSON reply. Any missing field is a failure."""
    if not text:
        raise AnalysisError("Empty response from the analysis model")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Analysis response is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise AnalysisError("Analysis response is not a JSON object")

    missing = [name for name in REQUIRED_FIELDS if name not in payload]
    if missing:
        raise AnalysisError(f"Analysis response is missing fields: {', '.join(missing)}")

    try:
        diagnosis = Diagnosis.model_validate(payload)
    except ValidationError as e:
        raise AnalysisError(f"Analysis response failed validation: {e.error_count()} errors") from e

    detections = sanitize_detections(diagnosis.detections)
    if len(detections) != len(diagnosis.detections):
        diagnosis = diagnosis.model_copy(update={"detections": detections})
    return diagnosis


def chat_instruction(diagnosis: Diagnosis) -> str:
    return CHAT_INSTRUCTION.format(
        condition=diagnosis.condition,
        severity=diagnosis.severity.value,
        description=diagnosis.description,
    )


def _chunk_text(chunk: Any) -> str:
    parts = []
    for candidate in getattr(chunk, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            if getattr(part, "text", None):
                parts.append(part.text)
        break
    return "".join(parts)


class GeminiChatSession:
    """Stateful conversation seeded with one diagnosis."""

    def __init__(self, chat: Any):
        self._chat = chat

    async def send_message_stream(self, text: str) -> AsyncIterator[str]:
        response = await self._chat.send_message_async(text, stream=True)
        async for chunk in response:
            fragment = _chunk_text(chunk)
            if fragment:
                yield fragment


class GeminiService:
    """Service for interacting with Google Gemini API."""

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None,
                 model_factory: Optional[Callable[..., Any]] = None):
        """Initialize the Gemini service with API key."""
        self.model_name = model_name or settings.GEMINI_MODEL
        if model_factory is None:
            genai.configure(api_key=api_key if api_key is not None else settings.GEMINI_API_KEY)
            model_factory = genai.GenerativeModel
        self._model_factory = model_factory
        self.model = model_factory(self.model_name)
        self.generation_config = {
            "temperature": 0.4,
            "response_mime_type": "application/json",
            "response_schema": DIAGNOSIS_SCHEMA,
        }
        logger.info(f"Gemini service initialized with model {self.model_name}")

    async def analyze_skin(self, image: str, concerns: Iterable[str]) -> Diagnosis:
        """
        Analyze a facial image for the reported concerns.

        Args:
            image: Captured image as a data URL
            concerns: Selected concern tag ids

        Returns:
            The parsed diagnosis
        """
        prompt = ANALYSIS_PROMPT.format(concerns=", ".join(sorted(concerns)))
        try:
            response = await self.model.generate_content_async(
                [prompt, {"mime_type": mime_type(image), "data": image_bytes(image)}],
                generation_config=self.generation_config,
            )
            text = response.text
        except AnalysisError:
            raise
        except Exception as e:
            logger.error(f"Error in analyze_skin: {str(e)}")
            raise AnalysisError(str(e)) from e

        diagnosis = parse_diagnosis(text)
        logger.info(f"Analysis complete: {diagnosis.condition} ({diagnosis.severity.value}), "
                    f"{len(diagnosis.detections)} detections")
        return diagnosis

    def create_chat_session(self, diagnosis: Diagnosis) -> GeminiChatSession:
        model = self._model_factory(self.model_name, system_instruction=chat_instruction(diagnosis))
        return GeminiChatSession(model.start_chat())


@lru_cache()
def get_gemini_service() -> GeminiService:
    return GeminiService()
