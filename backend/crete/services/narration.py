"""
Gemini-backed trick narration.

Sends the trimmed clip together with the motion-trace export to the
generative model and parses its JSON verdict: trick name, score, board
physics, and coaching text. No retries; any failure surfaces as
``NarrationFailure`` and the caller decides what to show.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from crete.config import LANDED_SCORE_THRESHOLD, get_settings

if TYPE_CHECKING:
    from crete.cv.frame_sampler import TrimWindow

logger = logging.getLogger(__name__)


class NarrationFailure(Exception):
    """Narration call failed or returned output that could not be parsed."""


class NarrationResult(BaseModel):
    """Structured verdict returned by the narration model."""
    trickName: str
    confidence: float = Field(..., ge=0)
    board_physics: str = ""
    score: float = Field(..., ge=0, le=100)
    heightMeters: float = Field(0.0, ge=0)
    feedbackText: str = ""
    improvementTip: str = ""

    @field_validator("confidence")
    @classmethod
    def normalize_confidence(cls, v: float) -> float:
        # Models sometimes answer on a 0-100 scale
        return v / 100.0 if v > 1.0 else v

    def is_landed(self, threshold: float = LANDED_SCORE_THRESHOLD) -> bool:
        return self.score > threshold


SYSTEM_PROMPT = (
    "You are an expert skateboarding coach reviewing a single trick attempt.\n"
    "You receive a short video and a CSV of pose-derived board kinematics "
    "sampled from the same clip.\n"
    "CSV columns: Timestamp (s), LeftAnkleY and RightAnkleY (normalized, 0=top of frame), "
    "BoardAngle (deg), BoardHeight (1 - board center y), ShoulderRotation (deg).\n"
    "Rows where every value is 0 had no detected pose; ignore them.\n\n"
    "Respond with a SINGLE JSON object only, no markdown:\n"
    "{\n"
    '  "trickName": string,\n'
    '  "confidence": number,        // 0 to 1\n'
    '  "board_physics": string,     // how the board flipped/rotated (roll, yaw, mixed, none)\n'
    '  "score": number,             // 0 to 100, overall execution\n'
    '  "heightMeters": number,      // estimated pop height\n'
    '  "feedbackText": string,      // 1-2 sentences on what happened\n'
    '  "improvementTip": string     // one concrete tip\n'
    "}\n"
)


def build_prompt(
    trim: "TrimWindow",
    trace_csv: str,
    trick_hint: Optional[str] = None,
    feedback_history: Optional[List[str]] = None,
) -> str:
    parts = [
        SYSTEM_PROMPT,
        f"Analyze only the segment from {trim.start:.2f}s to {trim.end:.2f}s.",
    ]
    if trick_hint:
        parts.append(f"The skater says they attempted: {trick_hint}.")
    if feedback_history:
        history = "\n".join(f"- {item}" for item in feedback_history)
        parts.append(f"Previous feedback from this skater on your analyses:\n{history}")
    parts.append(f"Kinematics CSV:\n{trace_csv}")
    return "\n\n".join(parts)


def parse_response(text: str) -> NarrationResult:
    """Extract and validate the JSON verdict from raw model output."""
    if not text:
        raise NarrationFailure("Empty narration response")

    text = text.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0]
    elif "```" in text:
        text = text.split("```")[1].split("```")[0]

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise NarrationFailure(f"Narration response is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise NarrationFailure("Narration response is not a JSON object")

    try:
        return NarrationResult.model_validate(payload)
    except ValidationError as e:
        raise NarrationFailure(f"Narration response failed validation: {e}") from e


class NarrationService:
    """
    Client for the narration model.

    ``model`` may be injected (anything with ``generate_content``); by default
    a ``google.generativeai`` model is created from settings on first use.
    """

    def __init__(self, model=None, api_key: Optional[str] = None, model_name: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model_name = model_name or settings.gemini_model
        self._model = model

    def _get_model(self):
        if self._model is None:
            if not self.api_key:
                raise NarrationFailure("No Gemini API key configured")
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    def analyze(
        self,
        video_bytes: Optional[bytes],
        mime_type: str,
        trim: "TrimWindow",
        trace_csv: str,
        trick_hint: Optional[str] = None,
        feedback_history: Optional[List[str]] = None,
    ) -> NarrationResult:
        """
        Request a verdict for one trimmed clip.

        Raises:
            NarrationFailure: on any API error or unparsable output
        """
        prompt = build_prompt(trim, trace_csv, trick_hint, feedback_history)

        try:
            model = self._get_model()
            content: List[Any] = []
            if video_bytes:
                content.append({"mime_type": mime_type, "data": video_bytes})
            content.append(prompt)
            response = model.generate_content(
                content,
                generation_config={"response_mime_type": "application/json"},
            )
            text = response.text
        except NarrationFailure:
            raise
        except Exception as e:
            logger.error(f"Narration request failed: {e}")
            raise NarrationFailure(f"Narration request failed: {e}") from e

        result = parse_response(text)
        logger.info(f"Narration: {result.trickName} (score {result.score:.0f})")
        return result


def result_to_dict(result: NarrationResult, threshold: float = LANDED_SCORE_THRESHOLD) -> Dict[str, Any]:
    data = result.model_dump()
    data["isLanded"] = result.is_landed(threshold)
    return data
