import json
import logging
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

import httpx
from pydantic import ValidationError

from ..config.config import settings
from ..models.domain_models import (
    Student, DetectedFace, RecognitionResult, UNKNOWN_FACE_NAME
)

logger = logging.getLogger(__name__)

UNABLE_TO_IDENTIFY = "Unable to identify"
NO_CANDIDATES = "No absent students to match against."

REQUIRED_FIELDS = ("present", "unknown", "absent", "engagementSummary")

SYSTEM_INSTRUCTION = (
    "You are a highly accurate AI assistant specializing in facial recognition for attendance "
    "tracking and classroom analysis. Your purpose is to analyze a classroom photo against a roster "
    "of student images and return a structured JSON response detailing who is present, who is absent, "
    "identifying any unknown individuals, and providing an engagement summary. You must be meticulous "
    "and only declare a match with very high confidence."
)

ATTENDANCE_PROMPT = """Please perform the attendance check and classroom analysis based on the provided classroom image and student roster.

Part 1: Attendance Check
1. Strict Matching: For each student in the roster, compare their photo with every face in the classroom image. Only match with extremely high confidence.
2. Avoid Guesswork: If a face is obscured, blurry, or at a difficult angle and you cannot be certain, do not guess. Mark the student as absent and the face as 'Unknown'.
3. Present Students: For each high-confidence match, add the student to 'present' with their exact roster name and a bounding box normalized from 0 to 1.
4. Unknown Faces: Every face without a high-confidence match goes to 'unknown' with the name 'Unknown' and a bounding box.
5. Absent Students: List the name of every roster student not marked as present in 'absent'.

Part 2: Engagement Analysis
Write a one-paragraph, objective summary of the classroom atmosphere, engagement level and mood in 'engagementSummary'.

Your output must be ONLY the JSON object that adheres to the provided schema."""

IDENTIFY_PROMPT = """From the following list of absent students, who is the most likely match for the person in this image?
Student List: {names}.

If you can make a high-confidence guess, respond with ONLY the student's full name.
If you are not confident, respond with the exact string "Unable to identify".
Do not add any other text or explanation."""

_BOX_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "top": {"type": "NUMBER"}, "right": {"type": "NUMBER"},
        "bottom": {"type": "NUMBER"}, "left": {"type": "NUMBER"},
    },
    "required": ["top", "right", "bottom", "left"],
}

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "present": {
            "type": "ARRAY",
            "description": "Roster students confirmed present in the classroom photo.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING", "description": "Exact name from the roster."},
                    "box": _BOX_SCHEMA,
                },
                "required": ["name", "box"],
            },
        },
        "unknown": {
            "type": "ARRAY",
            "description": "Faces that match no roster student.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING", "description": "Always the string 'Unknown'."},
                    "box": _BOX_SCHEMA,
                },
                "required": ["name", "box"],
            },
        },
        "absent": {
            "type": "ARRAY",
            "description": "Names of roster students NOT found in the photo.",
            "items": {"type": "STRING"},
        },
        "engagementSummary": {
            "type": "STRING",
            "description": "One objective paragraph on classroom atmosphere, engagement and mood.",
        },
    },
    "required": list(REQUIRED_FIELDS),
}


class RemoteCallError(Exception):
    """The recognition service could not be reached or refused the request."""
    pass

class ResponseShapeError(RemoteCallError):
    """The recognition service answered, but not with the agreed structure."""
    pass


def _image_part(data_base64: str, mime_type: str) -> Dict[str, Any]:
    return {"inlineData": {"mimeType": mime_type, "data": data_base64}}


def build_request(classroom_image_base64: str, classroom_image_type: str, students: List[Student]) -> Dict[str, Any]:
    """
    Builds the generateContent body: the classroom photo first, then one caption
    and one reference photo per student, then the instructions.
    """
    parts = [_image_part(classroom_image_base64, classroom_image_type)]
    for student in students:
        parts.append({"text": f"Roster photo for student named: {student.name}"})
        parts.append(_image_part(student.image_base64, student.image_type))
    parts.append({"text": ATTENDANCE_PROMPT})

    return {
        "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
            "temperature": settings.GEMINI_TEMPERATURE,
        },
    }


def parse_response(raw: Union[str, Dict[str, Any]]) -> RecognitionResult:
    """
    Validates the model's JSON answer and gives every detected face a fresh id.
    Raises ResponseShapeError when the answer is not the agreed structure.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw.strip())
        except json.JSONDecodeError as e:
            raise ResponseShapeError("The AI response was not valid JSON.") from e
    if not isinstance(raw, dict):
        raise ResponseShapeError("The AI response was not a JSON object.")

    missing = [field for field in REQUIRED_FIELDS if raw.get(field) is None]
    if missing:
        raise ResponseShapeError(f"The AI response is missing required fields: {', '.join(missing)}.")

    try:
        present = [
            DetectedFace(id=uuid4(), name=face["name"], box=face["box"])
            for face in raw["present"]
        ]
        unknown = [
            DetectedFace(id=uuid4(), name=UNKNOWN_FACE_NAME, box=face["box"])
            for face in raw["unknown"]
        ]
        return RecognitionResult(
            present=present,
            unknown=unknown,
            absent=raw["absent"],
            engagement_summary=raw["engagementSummary"],
        )
    except (KeyError, TypeError, ValidationError) as e:
        raise ResponseShapeError(f"The AI response has an unexpected shape: {e}") from e


def _extract_text(payload: Dict[str, Any]) -> str:
    try:
        parts = payload["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts).strip()
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise ResponseShapeError("The AI returned no usable content.") from e


class RecognitionClient:
    """
    Client for the remote generative-AI recognition service.
    Calls are issued once, never retried, and have no local timeout.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, base_url: Optional[str] = None, http_client: Optional[httpx.AsyncClient] = None):
        self._api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._model = model or settings.GEMINI_MODEL
        self._base_url = (base_url or settings.GEMINI_API_URL).rstrip("/")
        self._client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/models/{self._model}:generateContent"

    async def recognize(self, classroom_image_base64: str, classroom_image_type: str, students: List[Student]) -> RecognitionResult:
        body = build_request(classroom_image_base64, classroom_image_type, students)
        logger.info(f"Sending classroom photo with a roster of {len(students)} students for recognition.")
        text = await self._generate(body)
        result = parse_response(text)
        logger.info(f"Recognition finished: {len(result.present)} present, {len(result.unknown)} unknown faces.")
        return result

    async def identify(self, cropped_face_base64: str, mime_type: str, candidate_names: List[str]) -> str:
        """
        Asks which of the candidates the cropped face belongs to. Returns one of
        the candidate names or UNABLE_TO_IDENTIFY.
        """
        if not candidate_names:
            return NO_CANDIDATES

        body = {
            "contents": [{
                "role": "user",
                "parts": [
                    _image_part(cropped_face_base64, mime_type),
                    {"text": IDENTIFY_PROMPT.format(names=", ".join(candidate_names))},
                ],
            }],
            "generationConfig": {"temperature": settings.GEMINI_TEMPERATURE},
        }
        answer = (await self._generate(body)).strip().strip('"').strip()
        if answer in candidate_names:
            return answer
        by_lower = {name.lower(): name for name in candidate_names}
        if answer.lower() in by_lower:
            return by_lower[answer.lower()]
        logger.info(f"Identification returned no candidate match: '{answer}'.")
        return UNABLE_TO_IDENTIFY

    async def _generate(self, body: Dict[str, Any]) -> str:
        if not self._api_key:
            raise RemoteCallError("GEMINI_API_KEY is not configured. Please add it and restart the server.")

        headers = {"x-goog-api-key": self._api_key}
        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=None) as client:
                    response = await client.post(self.endpoint, json=body, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Recognition service error: {e.response.status_code} - {e.response.text}")
            if e.response.status_code in (401, 403) or "API key not valid" in e.response.text:
                raise RemoteCallError("The Gemini API key is not valid or has insufficient permissions. Please check your key and try again.") from e
            raise RemoteCallError("Failed to get a valid response from the AI. Please try a different photo or check the student roster.") from e
        except httpx.HTTPError as e:
            logger.error(f"Could not reach the recognition service: {e}", exc_info=True)
            raise RemoteCallError("The AI service could not be reached.") from e
        except ValueError as e:
            raise ResponseShapeError("The AI service did not answer with JSON.") from e

        return _extract_text(payload)
