"""Gemini generateContent client and typed parsing of its JSON replies."""

from __future__ import annotations

import base64
import json
import logging
import os
import re
from typing import TypeVar

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from services.errors import ProviderError

logger = logging.getLogger("medassist.ai")

GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
GEMINI_TIMEOUT_S = float(os.getenv("GEMINI_TIMEOUT_S", "60"))

JSON_BLOCK = re.compile(r"\{[\s\S]*\}")

T = TypeVar("T", bound=BaseModel)


class MedicineInfo(BaseModel):
    name: str
    generic_name: str | None = None
    manufacturer: str | None = None
    composition: list[str] = Field(default_factory=list)
    uses: list[str] = Field(default_factory=list)
    dosage: str | None = None
    side_effects: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    storage: str | None = None
    prescription_required: bool | None = None


class MedicalTerm(BaseModel):
    term: str
    explanation: str


class ReportAnalysis(BaseModel):
    summary: str
    medical_terms: list[MedicalTerm] = Field(default_factory=list)
    diagnosis: list[str] = Field(default_factory=list)
    key_findings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    risk_level: str = "unknown"


class PrescriptionMedicine(BaseModel):
    name: str
    dosage: str | None = None
    frequency: str | None = None
    duration: str | None = None
    instructions: str | None = None


class PrescriptionInfo(BaseModel):
    extractedText: str = ""
    doctorName: str | None = None
    patientName: str | None = None
    prescriptionDate: str | None = None
    diagnosis: str | None = None
    medicines: list[PrescriptionMedicine] = Field(default_factory=list)


class GeminiClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_API_BASE,
        timeout_s: float = GEMINI_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY")
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout_s)
        self.transport = transport

    async def complete(
        self,
        prompt: str,
        image_bytes: bytes | None = None,
        mime_type: str = "image/jpeg",
        max_output_tokens: int = 2048,
    ) -> str:
        parts: list[dict] = [{"text": prompt}]
        if image_bytes is not None:
            parts.append({
                "inlineData": {
                    "mimeType": mime_type,
                    "data": base64.b64encode(image_bytes).decode(),
                }
            })
        body = {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": 0.1,
                "topK": 32,
                "topP": 1,
                "maxOutputTokens": max_output_tokens,
            },
        }
        logger.info("Calling Gemini model %s (image=%s)", self.model, image_bytes is not None)
        return await self._generate(body)

    async def converse(self, system_prompt: str, turns: list[tuple[str, str]], max_output_tokens: int = 2048) -> str:
        """Multi-turn call. ``turns`` are (role, text) pairs with role "user" or "assistant"."""
        contents = [{"role": "user", "parts": [{"text": system_prompt}]}]
        for role, text in turns:
            contents.append({
                "role": "model" if role == "assistant" else "user",
                "parts": [{"text": text}],
            })
        body = {
            "contents": contents,
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": max_output_tokens,
            },
        }
        logger.info("Calling Gemini model %s (turns=%d)", self.model, len(turns))
        return await self._generate(body)

    async def _generate(self, body: dict) -> str:
        if not self.api_key:
            raise ProviderError("GEMINI_API_KEY is not configured", status_code=503)

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as exc:
            raise ProviderError(f"AI provider unreachable: {exc.__class__.__name__}") from exc

        if response.status_code == 429:
            raise ProviderError("Rate limit exceeded. Please try again shortly.", status_code=429)
        if response.status_code == 402:
            raise ProviderError("Payment required. Please add credits to your workspace.", status_code=402)
        if response.is_error:
            logger.error("Gemini API error %s: %s", response.status_code, response.text[:500])
            raise ProviderError(f"AI provider error: {response.status_code}")

        try:
            return response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError("No valid response from AI provider") from exc


def extract_json(text: str) -> dict:
    match = JSON_BLOCK.search(text)
    if not match:
        raise ProviderError("AI response did not contain JSON")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ProviderError("AI response contained malformed JSON") from exc
    if not isinstance(data, dict):
        raise ProviderError("AI response JSON must be an object")
    return data


def parse_reply(text: str, schema: type[T]) -> T:
    try:
        return schema.model_validate(extract_json(text))
    except SchemaError as exc:
        raise ProviderError(f"AI response failed validation ({exc.error_count()} errors)") from exc
