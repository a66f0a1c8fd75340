"""
Chat Routes for Chat Labs
==========================

Chat turn submission as a server-sent event stream, plus thread, history
and document management.
"""

import asyncio
import json
import logging
from typing import Optional, List
from fastapi import APIRouter, HTTPException, Depends, Header, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, Field

from ..models.chat_models import ChatThread, StreamEvent, StreamEventType, UserInfo, UserPrompt
from ..services.cancellation import CancellationSignal
from ..services.chat_router import ChatRouter
from ..services.reasoning_modes import normalize_thinking_mode
from ..state.thread_store import ThreadStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/chat", tags=["chat"])

DISCONNECT_POLL_SECONDS = 0.5

# Shared instances (initialized in server.py)
chat_router: Optional[ChatRouter] = None
thread_store: Optional[ThreadStore] = None


def get_chat_router() -> ChatRouter:
    """Dependency to get chat router."""
    if chat_router is None:
        raise HTTPException(500, "Chat router not initialized")
    return chat_router


def get_thread_store() -> ThreadStore:
    """Dependency to get thread store."""
    if thread_store is None:
        raise HTTPException(500, "Thread store not initialized")
    return thread_store


def get_current_user(
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None)
) -> UserInfo:
    """Caller identity as forwarded by the fronting auth proxy."""
    email = (x_user_email or "").strip()
    user_id = email.lower() or "anonymous"
    return UserInfo(id=user_id, name=x_user_name or email.split("@")[0] or "anonymous", email=email or None)


class CreateThreadRequest(BaseModel):
    """Request to create a thread."""
    name: str = "New chat"
    persona_message: str = ""
    extension: List[str] = Field(default_factory=list)
    model: Optional[str] = None


class AddDocumentRequest(BaseModel):
    """Request to upload a plain-text document into a thread."""
    name: str
    text: str


def _bad_request(error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": error, "message": message})


def _sse(event: StreamEvent) -> str:
    return f"data: {event.model_dump_json()}\n\n"


async def _watch_disconnect(request: Request, signal: CancellationSignal):
    while not signal.is_cancelled:
        if await request.is_disconnected():
            signal.cancel("client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.post("")
async def post_chat(
    request: Request,
    user: UserInfo = Depends(get_current_user),
    router_: ChatRouter = Depends(get_chat_router)
):
    """
    Submit a chat turn.

    Body: ``{"id", "message", "multimodal_image"?, "thinking_mode"?}``.
    Streams StreamEvents as ``text/event-stream``.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _bad_request("invalid_json", "Request body is not valid JSON.")

    if not isinstance(payload, dict):
        return _bad_request("invalid_json", "Request body must be a JSON object.")

    thread_id = payload.get("id")
    message = payload.get("message")
    if not isinstance(thread_id, str) or not thread_id.strip():
        return _bad_request("missing_content", "`id` is required.")
    if not isinstance(message, str) or not message.strip():
        return _bad_request("missing_content", "`message` must be a non-empty string.")

    image = payload.get("multimodal_image")
    prompt = UserPrompt(
        id=thread_id.strip(),
        message=message,
        multimodal_image=image if isinstance(image, str) else "",
        thinking_mode=normalize_thinking_mode(payload.get("thinking_mode")),
    )

    signal = CancellationSignal()
    result = await router_.chat_api_entry(prompt, user, signal)
    if result.unauthorized:
        return Response(status_code=401, content=b"")

    async def event_stream():
        watcher = asyncio.create_task(_watch_disconnect(request, signal))
        try:
            async for event in result.stream:
                yield _sse(event)
        except asyncio.CancelledError:
            signal.cancel("stream closed")
            raise
        except Exception as e:
            logger.error(f"[CHAT] Stream failed for thread {prompt.id}: {e}")
            yield _sse(StreamEvent(type=StreamEventType.ERROR, content="An error occurred while generating the response."))
        finally:
            watcher.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/threads")
async def create_thread(
    request: CreateThreadRequest,
    user: UserInfo = Depends(get_current_user),
    store: ThreadStore = Depends(get_thread_store)
) -> ChatThread:
    """Create a new thread for the caller."""
    return store.create_thread(
        user,
        name=request.name,
        persona_message=request.persona_message,
        extension=request.extension,
        model=request.model,
    )


def _owned_thread(store: ThreadStore, thread_id: str, user: UserInfo) -> ChatThread:
    thread = store.get_thread(thread_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")
    if thread.user_id != user.id:
        raise HTTPException(status_code=401, detail="Not your thread")
    return thread


@router.get("/history/{thread_id}")
async def get_history(
    thread_id: str,
    user: UserInfo = Depends(get_current_user),
    store: ThreadStore = Depends(get_thread_store)
):
    """Get a thread's messages, oldest first."""
    thread = _owned_thread(store, thread_id, user)
    return {
        "thread": thread.model_dump(mode="json"),
        "messages": [m.model_dump(mode="json") for m in store.get_messages(thread_id)],
    }


@router.post("/threads/{thread_id}/documents")
async def add_document(
    thread_id: str,
    request: AddDocumentRequest,
    user: UserInfo = Depends(get_current_user),
    store: ThreadStore = Depends(get_thread_store)
):
    """Upload a plain-text document; later turns answer from it."""
    _owned_thread(store, thread_id, user)
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Document text is empty")
    document = store.add_document(thread_id, request.name, request.text)
    return {"document_id": document.id, "chunks": len(document.chunks)}


@router.put("/threads/{thread_id}/extensions/{extension_id}")
async def enable_extension(
    thread_id: str,
    extension_id: str,
    user: UserInfo = Depends(get_current_user),
    store: ThreadStore = Depends(get_thread_store)
) -> ChatThread:
    """Enable an extension on a thread."""
    _owned_thread(store, thread_id, user)
    return store.set_extension(thread_id, extension_id, enabled=True)


@router.delete("/threads/{thread_id}/extensions/{extension_id}")
async def disable_extension(
    thread_id: str,
    extension_id: str,
    user: UserInfo = Depends(get_current_user),
    store: ThreadStore = Depends(get_thread_store)
) -> ChatThread:
    """Disable an extension on a thread."""
    _owned_thread(store, thread_id, user)
    return store.set_extension(thread_id, extension_id, enabled=False)
