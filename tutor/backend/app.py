from __future__ import annotations

"""FastAPI backend for the Lingua Tutor.

Run with:
    uvicorn tutor.backend.app:app --reload --port 8000

The caller's identity comes from the ``X-User-Id`` header, set by the
identity provider in front of this service.

Env vars (all optional):
    OPENAI_API_KEY        enables embeddings and tutor replies
    TUTOR_STORE_BACKEND   memory | sql
    TUTOR_MEMORY_DB       SQLAlchemy URL for the sql backend
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field

import config
from config import setup_logging
from tutor.llm.prompt_builder import build_messages, generate_context_summary
from tutor.llm.reply import ReplyGenerator, TutorReply
from tutor.memory.history import ChatHistory
from tutor.memory.schemas import Message, MessageMetadata, Role, Session
from utils.error_handler import ApiError, SessionOwnershipError, StoreError

# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


class CreateSessionRequest(BaseModel):
    title: Optional[str] = None


class AppendMessageRequest(BaseModel):
    role: Role
    content: str = Field(min_length=1)
    metadata: Optional[MessageMetadata] = None


class ContextRequest(BaseModel):
    message: str
    limit: int = Field(default=config.TUTOR_CONTEXT_LIMIT, ge=0, le=100)


class ContextResponse(BaseModel):
    strategy: str
    messages: List[Message]
    summary: str


class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None
    language: str = "spanish"
    user_language: str = "english"
    topic: Optional[str] = None
    level: str = "beginner"
    context_limit: int = Field(default=config.TUTOR_CONTEXT_LIMIT, ge=0, le=100)


class ChatResponse(TutorReply):
    session_id: str
    context_strategy: str


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_history(request: Request) -> ChatHistory:
    return request.app.state.history


def get_generator(request: Request) -> ReplyGenerator:
    return request.app.state.generator


def get_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/health")
def health(history: ChatHistory = Depends(get_history)):
    return {
        "status": "ok",
        "store": type(history.store).__name__,
        "embeddings": history.embeddings_enabled,
    }


@router.get("/chat/history")
def list_sessions(user_id: str = Depends(get_user_id), history: ChatHistory = Depends(get_history)):
    return {"sessions": history.list_sessions(user_id)}


@router.post("/chat/history")
def create_session(
    req: CreateSessionRequest,
    user_id: str = Depends(get_user_id),
    history: ChatHistory = Depends(get_history),
):
    session: Session = history.create_session(user_id, req.title)
    logger.info("Created session {} for {}", session.id, user_id)
    return {"session": session}


@router.get("/chat/history/{session_id}")
def get_session_messages(
    session_id: str,
    user_id: str = Depends(get_user_id),
    history: ChatHistory = Depends(get_history),
):
    session = history.get_session(session_id, user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session": session, "messages": history.session_messages(session_id, user_id)}


@router.delete("/chat/history/{session_id}")
def delete_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    history: ChatHistory = Depends(get_history),
):
    history.delete_session(session_id, user_id)
    return {"success": True}


@router.post("/chat/history/{session_id}/messages")
def append_message(
    session_id: str,
    req: AppendMessageRequest,
    user_id: str = Depends(get_user_id),
    history: ChatHistory = Depends(get_history),
):
    try:
        message = history.record_message(user_id, session_id, req.role, req.content, req.metadata)
    except SessionOwnershipError:
        raise HTTPException(status_code=403, detail="Session belongs to another user")
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": message}


@router.post("/chat/context", response_model=ContextResponse)
def relevant_context(
    req: ContextRequest,
    user_id: str = Depends(get_user_id),
    history: ChatHistory = Depends(get_history),
):
    result = history.relevant_context(user_id, req.message, req.limit)
    return ContextResponse(
        strategy=result.strategy.value,
        messages=result.messages,
        summary=generate_context_summary(result.messages),
    )


@router.post("/chat", response_model=ChatResponse)
def chat(
    req: ChatRequest,
    user_id: str = Depends(get_user_id),
    history: ChatHistory = Depends(get_history),
    generator: ReplyGenerator = Depends(get_generator),
):
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    if req.session_id:
        try:
            history.ensure_session_access(req.session_id, user_id)
        except SessionOwnershipError:
            raise HTTPException(status_code=403, detail="Session belongs to another user")
        except StoreError as e:
            logger.error("Session lookup failed for {}: {}", user_id, e)
            raise HTTPException(status_code=500, detail="Chat processing failed")
    # A new session only comes into being when the turn below is stored.
    session_id = req.session_id or str(uuid.uuid4())

    # Context is retrieved before the new turn is stored so it never echoes itself.
    context = history.relevant_context(user_id, req.message, req.context_limit)
    messages = build_messages(
        req.message,
        language=req.language,
        user_language=req.user_language,
        topic=req.topic,
        level=req.level,
        context_messages=context.messages,
    )

    try:
        reply = generator.generate(messages)
    except ApiError as e:
        logger.error("Tutor reply failed for {}: {}", user_id, e)
        raise HTTPException(status_code=500, detail="Chat processing failed")

    # Persist the turn *after* a successful completion so we never store
    # requests that triggered server/LLM errors.
    meta = MessageMetadata(language=req.language, topic=req.topic, level=req.level)
    try:
        history.record_exchange(
            user_id,
            session_id,
            req.message,
            reply.response,
            meta,
            meta.model_copy(update={"translation": reply.translation}),
            question_embedding=context.query_embedding,
        )
    except SessionOwnershipError:
        raise HTTPException(status_code=403, detail="Session belongs to another user")
    except StoreError as e:
        logger.warning("Chat turn for {} not saved: {}", user_id, e)

    return ChatResponse(
        **reply.model_dump(),
        session_id=session_id,
        context_strategy=context.strategy.value,
    )


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def create_app(history: Optional[ChatHistory] = None, generator: Optional[ReplyGenerator] = None) -> FastAPI:
    """Build the API with one store/embedder/retriever bundle for its lifetime."""
    setup_logging()
    app = FastAPI(title="Lingua Tutor", version="0.1.0")
    app.state.history = history or ChatHistory.from_config()
    app.state.generator = generator or ReplyGenerator()
    app.include_router(router)
    logger.info("Lingua Tutor ready | store={}", type(app.state.history.store).__name__)
    return app


app = create_app()
