import asyncio
import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from services.ai_provider import GeminiClient, MedicineInfo, PrescriptionInfo, ReportAnalysis, parse_reply
from services.errors import ProviderError
from services.prompts import (
    CHAT_DISCLAIMER,
    CHAT_LANGUAGES,
    MEDICINE_IDENTIFICATION_PROMPT,
    NOT_MEDICAL_CONTENT,
    NOT_MEDICAL_REPORT,
    PRESCRIPTION_OCR_PROMPT,
    QUESTION_PROMPT,
    REPORT_ANALYSIS_PROMPT,
    REPORT_CHAT_PROMPT,
)

router = APIRouter(prefix="/ai", tags=["assistant"])
logger = logging.getLogger("medassist.ai")

MAX_IMAGE_CHARS = 10_000_000
MAX_BATCH_IMAGES = 10
MAX_CHAT_HISTORY = 50


class MedicineImageRequest(BaseModel):
    imageBase64: str = Field(min_length=1, max_length=MAX_IMAGE_CHARS)
    mimeType: str = Field(default="image/jpeg", max_length=64)


class ReportRequest(BaseModel):
    files: list[str] = Field(min_length=1, max_length=5)
    mimeType: str = Field(default="image/jpeg", max_length=64)


class MultipleImagesRequest(BaseModel):
    images: list[str] = Field(min_length=1, max_length=MAX_BATCH_IMAGES)
    mimeType: str = Field(default="image/jpeg", max_length=64)


class QuestionRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1, max_length=4000)


class ReportChatRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)
    reportContext: Any = None
    language: str = Field(default="en", max_length=8)
    chatHistory: list[ChatMessage] = Field(default_factory=list, max_length=MAX_CHAT_HISTORY)


def get_ai_client() -> GeminiClient:
    return GeminiClient()


def _decode_image(encoded: str) -> bytes:
    # Accept data URLs as sent by browsers.
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(422, "Image data must be base64 encoded") from exc


@router.post("/analyze-medicine")
async def analyze_medicine(body: MedicineImageRequest, client: GeminiClient = Depends(get_ai_client)):
    image = _decode_image(body.imageBase64)
    reply = await client.complete(MEDICINE_IDENTIFICATION_PROMPT, image, mime_type=body.mimeType)
    if NOT_MEDICAL_CONTENT in reply:
        raise HTTPException(
            400,
            "This is not a medicine image. Please upload a clear photo of medicine, pills, tablets, "
            "or pharmaceutical products.",
        )
    medicine_info = parse_reply(reply, MedicineInfo)
    return {"medicineInfo": medicine_info.model_dump()}


@router.post("/analyze-report")
async def analyze_report(body: ReportRequest, client: GeminiClient = Depends(get_ai_client)):
    analyses = []
    for index, encoded in enumerate(body.files):
        image = _decode_image(encoded)
        reply = await client.complete(
            REPORT_ANALYSIS_PROMPT, image, mime_type=body.mimeType, max_output_tokens=3000
        )
        if NOT_MEDICAL_REPORT in reply:
            raise HTTPException(
                400,
                f"File {index + 1} does not look like a medical report. Please upload lab results, "
                "prescriptions, or other medical documents.",
            )
        analyses.append(parse_reply(reply, ReportAnalysis).model_dump())
    logger.info("Analyzed %d report file(s)", len(analyses))
    return {"analyses": analyses}


@router.post("/ask")
async def ask_question(body: QuestionRequest, client: GeminiClient = Depends(get_ai_client)):
    question = body.question.strip()
    if not question:
        raise HTTPException(422, "Question cannot be empty")
    answer = await client.complete(QUESTION_PROMPT.format(question=question))
    return {"answer": answer}


async def _identify_one(client: GeminiClient, index: int, image: bytes, mime_type: str) -> dict:
    try:
        reply = await client.complete(MEDICINE_IDENTIFICATION_PROMPT, image, mime_type=mime_type)
        if NOT_MEDICAL_CONTENT in reply:
            return {
                "index": index,
                "error": f"Image {index + 1} is not a medicine image. Please upload photos of medicine, "
                "pills, tablets, or pharmaceutical products.",
            }
        return {"index": index, "result": parse_reply(reply, MedicineInfo).model_dump()}
    except ProviderError as exc:
        if exc.status_code == 503:
            raise
        logger.warning("Analysis failed for image %d: %s", index + 1, exc.message)
        return {"index": index, "error": f"Failed to analyze image {index + 1}"}


@router.post("/analyze-medicines")
async def analyze_multiple_medicines(body: MultipleImagesRequest, client: GeminiClient = Depends(get_ai_client)):
    images = [_decode_image(encoded) for encoded in body.images]
    results = await asyncio.gather(*(
        _identify_one(client, index, image, body.mimeType) for index, image in enumerate(images)
    ))
    logger.info("Analyzed %d medicine image(s)", len(results))
    return {"results": results}


@router.post("/read-prescription")
async def read_prescription(body: MedicineImageRequest, client: GeminiClient = Depends(get_ai_client)):
    image = _decode_image(body.imageBase64)
    reply = await client.complete(PRESCRIPTION_OCR_PROMPT, image, mime_type=body.mimeType)
    try:
        prescription = parse_reply(reply, PrescriptionInfo)
    except ProviderError as exc:
        # Unstructured replies still carry the OCR text.
        logger.warning("Prescription reply was not structured: %s", exc.message)
        prescription = PrescriptionInfo(extractedText=reply)
    return prescription.model_dump()


@router.post("/report-chat")
async def report_chat(body: ReportChatRequest, client: GeminiClient = Depends(get_ai_client)):
    question = body.question.strip()
    if not question:
        raise HTTPException(422, "Question cannot be empty")
    language = body.language if body.language in CHAT_LANGUAGES else "en"

    system_prompt = REPORT_CHAT_PROMPT.format(
        language_name=CHAT_LANGUAGES[language],
        report_context=json.dumps(body.reportContext, ensure_ascii=False),
    )
    turns = [(message.role, message.content) for message in body.chatHistory]
    turns.append(("user", question))
    answer = await client.converse(system_prompt, turns)
    return {
        "answer": answer.strip() + CHAT_DISCLAIMER,
        "language": language,
        "timestamp": datetime.utcnow().isoformat(),
    }
