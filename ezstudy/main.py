import asyncio
import json
import logging
import smtplib
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .errors import ContentBlocked, EzStudyError, UpstreamError, ValidationError
from .files import extract_uploads
from .log import configure_logging, set_request_id, set_session_id
from .mailer import Mailer, get_mailer
from .models import (
    ChatTurn,
    ContactRequest,
    ProviderConfig,
    ProviderResult,
    QuizRequest,
    RequestContext,
    Role,
    SummarizeRequest,
)
from .prompts import (
    build_prompt,
    build_quiz_prompt,
    build_summary_prompt,
    moderate_content,
    parse_quiz,
)
from .providers import ProviderGateway, get_gateway
from .sessions import SessionStore, get_session_store
from .storage import ImageStore, LocalImageStore, get_image_store, validate_image

# --- CONFIGURATION ---
settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

QUIZ_TEMPERATURE = 0.7
SUMMARY_TEMPERATURE = 0.5

CONTENT_SECURITY_POLICY = (
    "default-src *; script-src * 'unsafe-inline' 'unsafe-eval'; "
    "style-src * 'unsafe-inline'; img-src * data: blob:"
)

# --- INITIALIZE SERVICES ---

app = FastAPI(title="EzStudy API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Content-Length", "X-Requested-With", "X-Request-ID"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Attach a correlation id and the security headers to every response."""
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_request_id(rid)
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
    return response


# --- ERROR HANDLERS ---

@app.exception_handler(EzStudyError)
async def ezstudy_error_handler(request: Request, exc: EzStudyError):
    body = {"error": exc.message}
    if isinstance(exc, ContentBlocked):
        body["reason"] = exc.reason
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


# --- HELPERS ---

def parse_history(raw: Optional[str]) -> List[ChatTurn]:
    """Decode the `messages` form field into chat turns."""
    try:
        items = json.loads(raw or "[]")
    except json.JSONDecodeError:
        raise ValidationError("'messages' must be a JSON array")
    if not isinstance(items, list):
        raise ValidationError("'messages' must be a JSON array")
    turns = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("each message must be an object with 'role' and 'content'")
        try:
            turns.append(ChatTurn(role=Role(item.get("role")), content=str(item.get("content") or "")))
        except ValueError:
            raise ValidationError(f"unsupported message role: {item.get('role')!r}")
    return turns


def parse_config(raw: Optional[str]) -> ProviderConfig:
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError:
        raise ValidationError("'config' must be a JSON object")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("'config' must be a JSON object")
    return ProviderConfig.model_validate(data)


def check_moderation(text: str) -> None:
    verdict = moderate_content(text)
    if not verdict.allowed:
        logger.warning("Request blocked by content filter (%s)", verdict.reason)
        raise ContentBlocked(verdict.reason)


async def run_completion(
    gateway: ProviderGateway,
    messages: List[ChatTurn],
    config: Optional[ProviderConfig] = None,
    temperature: Optional[float] = None,
) -> ProviderResult:
    """Call the gateway and surface any provider failure as an UpstreamError."""
    try:
        return await gateway.complete(messages, config, temperature=temperature)
    except EzStudyError:
        raise
    except Exception as e:
        raise UpstreamError(str(e) or "AI provider request failed") from e


def chat_response(result: ProviderResult) -> dict:
    return {
        "choices": [{"message": {"role": Role.ASSISTANT.value, "content": result.text}}],
        "usage": {"provider": result.provider, "providerUsed": result.provider_used.value},
    }


# --- HEALTH CHECK ENDPOINTS ---

@app.get("/api/health")
async def health():
    return {"status": "ok", "message": "EzStudy Backend is running!"}


@app.get("/api/health/providers")
async def check_providers_health(gateway: ProviderGateway = Depends(get_gateway)):
    """Report which AI providers have credentials configured"""
    configured = gateway.configured
    return {
        "status": "healthy" if configured else "unhealthy",
        "primary": gateway.primary.name if gateway.primary else None,
        "secondary": gateway.secondary.name if gateway.secondary else None,
        "providers": configured,
    }


# --- CHAT ENDPOINTS ---

@app.post("/api/chat")
async def chat(
    messages: str = Form("[]"),
    userMessage: str = Form(""),
    config: str = Form("{}"),
    sessionId: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    weather: Optional[str] = Form(None),
    files: List[UploadFile] = File(default=[]),
    bracket_files: List[UploadFile] = File(default=[], alias="files[]"),
    gateway: ProviderGateway = Depends(get_gateway),
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
):
    """Chat with the assistant, optionally about uploaded files.

    With a `sessionId` the server-side history is replayed and extended;
    otherwise the client-supplied `messages` are used as history.
    """
    user_message = (userMessage or "").strip()
    if not user_message:
        raise ValidationError("userMessage is required")
    provider_config = parse_config(config)
    check_moderation(user_message)

    uploads = []
    for upload in [*files, *bracket_files]:
        uploads.append((upload.filename or "upload", upload.content_type or "", await upload.read()))
    excerpts = await extract_uploads(uploads, settings.file_char_budget)
    context = RequestContext(now=datetime.now().astimezone(), location=location, weather=weather)

    if not sessionId:
        prompt = build_prompt(
            user_message, parse_history(messages), excerpts, provider_config, context,
            file_char_budget=settings.file_char_budget,
        )
        return chat_response(await run_completion(gateway, prompt, provider_config))

    set_session_id(sessionId)
    async with store.lock(sessionId):
        history = await store.get_history(sessionId)
        prompt = build_prompt(
            user_message, history, excerpts, provider_config, context,
            file_char_budget=settings.file_char_budget,
        )
        result = await run_completion(gateway, prompt, provider_config)
        await store.append(sessionId, ChatTurn(role=Role.USER, content=user_message))
        await store.append(sessionId, ChatTurn(role=Role.ASSISTANT, content=result.text))
    return chat_response(result)


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Return the stored turns of a chat session"""
    history = await store.get_history(session_id)
    return {"sessionId": session_id, "messages": [turn.model_dump(mode="json") for turn in history]}


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Forget a chat session"""
    async with store.lock(session_id):
        await store.clear(session_id)
    return {"success": True, "message": "Session cleared"}


# --- STUDY TOOL ENDPOINTS ---

@app.post("/api/quiz")
async def generate_quiz(payload: QuizRequest, gateway: ProviderGateway = Depends(get_gateway)):
    """Generate five multiple-choice questions about a topic"""
    topic = (payload.topic or "").strip()
    if not topic:
        raise ValidationError("topic is required")
    check_moderation(topic)

    result = await run_completion(
        gateway, build_quiz_prompt(topic, payload.difficulty or "medium"), temperature=QUIZ_TEMPERATURE
    )
    questions = parse_quiz(result.text)
    if questions is None:
        logger.warning("Quiz reply from %s was not a valid question array", result.provider)
        return {"questions": [], "raw": result.text}
    return {"questions": [q.model_dump() for q in questions]}


@app.post("/api/summarize")
async def summarize(payload: SummarizeRequest, gateway: ProviderGateway = Depends(get_gateway)):
    """Turn raw content into study notes"""
    text = (payload.text or "").strip()
    if not text:
        raise ValidationError("text is required")

    result = await run_completion(
        gateway, build_summary_prompt(text, payload.style or "bullet point"), temperature=SUMMARY_TEMPERATURE
    )
    return {"notes": result.text or "Could not generate notes."}


# --- IMAGE UPLOAD ENDPOINTS ---

if isinstance(get_image_store(), LocalImageStore):
    # Mount static files for serving uploaded images
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


@app.post("/api/upload-profile-image")
async def upload_profile_image(
    profileImage: Optional[UploadFile] = File(None),
    store: ImageStore = Depends(get_image_store),
):
    """Store a profile image and return its URL"""
    if profileImage is None:
        raise ValidationError("No file uploaded")

    file_content = await profileImage.read()
    validate_image(profileImage.content_type, len(file_content))
    try:
        image_url = await asyncio.to_thread(
            store.save, profileImage.filename or "profile", profileImage.content_type, file_content
        )
    except Exception as e:
        logger.exception("Profile image upload failed")
        raise EzStudyError("Failed to upload profile image") from e

    return {
        "success": True,
        "imageUrl": image_url,
        "message": "Profile image uploaded successfully",
    }


# --- CONTACT FORM ---

@app.post("/contact")
async def contact(payload: ContactRequest, mailer: Mailer = Depends(get_mailer)):
    """Send a contact-form message by email"""
    try:
        await asyncio.to_thread(mailer.send, payload)
    except (smtplib.SMTPException, OSError) as e:
        raise EzStudyError(f"Failed to send email: {e}") from e
    return {"success": True}


def run() -> None:
    import uvicorn

    logger.info("🚀 EzStudy Backend running on http://localhost:%d", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
