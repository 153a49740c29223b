"""
Shopping assistant API

Endpoints:
- POST   /api/chatbot/chat - Process one message (guests and logged-in users)
- GET    /api/chatbot/health - Service status
- DELETE /api/chatbot/session/{session_id} - Forget a conversation
- GET    /api/chatbot/workflows - Workflow summary (admin)
- POST   /api/chatbot/reload-products - Rebuild the product search index (admin)
- WS     /api/chatbot/ws/chat - Streaming chat: tool/LLM events, then the answer
"""
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

import anyio
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from gearshop.core.auth import TokenUser, decode_access_token, get_current_user_optional, require_admin
from gearshop.core.config import settings
from gearshop.core.exceptions import ShopError
from gearshop.core.rate_limit import rate_limit_check
from gearshop.services.chatbot.chat_service import get_chatbot_service
from gearshop.services.chatbot.vector_store import get_vector_store

logger = logging.getLogger(__name__)

# ============================================================================
# ROUTER
# ============================================================================

router = APIRouter()


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class ChatRequest(BaseModel):
    """Request body for chat endpoint"""
    message: str = Field(..., min_length=1, max_length=1000, description="Customer message")
    session_id: Optional[str] = Field(None, description="Conversation to continue")


class ChatResponse(BaseModel):
    """Response from chat endpoint"""
    success: bool
    response: str
    session_id: str
    tools_used: List[str]
    model: str
    workflow: Optional[dict] = None
    fallback: bool = False
    usage: dict
    timestamp: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# ENDPOINT: POST /api/chatbot/chat
# ============================================================================

@router.post("/chat", response_model=ChatResponse)
def chat(
    request: ChatRequest,
    current_user: Optional[TokenUser] = Depends(get_current_user_optional),
    _: None = Depends(rate_limit_check(settings.RATE_LIMIT_CHATBOT))
):
    """
    Process a shopping assistant message.

    Guests can search and ask about products; logged-in users can also
    manage their cart and wishlist and place orders.

    Examples:
    - "Tìm chuột gaming không dây dưới 2 triệu"
    - "Thêm 2 cái vào giỏ hàng"
    - "Đặt hàng thanh toán COD"
    """
    try:
        logger.info(f"Chat request received: {request.message[:50]}...")

        chatbot = get_chatbot_service()
        result = chatbot.process_message(
            message=request.message,
            session_id=request.session_id,
            user_id=current_user.id if current_user else None
        )

        return ChatResponse(
            success=not result.fallback,
            response=result.response,
            session_id=result.session_id,
            tools_used=result.tools_used,
            model=result.model,
            workflow=result.workflow,
            fallback=result.fallback,
            usage={
                "input_tokens": result.input_tokens,
                "output_tokens": result.output_tokens,
                "total_tokens": result.input_tokens + result.output_tokens,
                "estimated_cost_usd": result.estimated_cost_usd,
                "context_messages": result.context_messages,
                "iterations": result.iterations,
                "duration_ms": result.duration_ms
            },
            timestamp=_now_iso()
        )

    except ValueError as e:
        # API key not configured
        logger.error(f"Configuration error: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail="Chat service not configured. Please contact administrator."
        )

    except Exception as e:
        logger.error(f"Chat error: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error processing chat: {str(e)}"
        )


# ============================================================================
# ENDPOINT: GET /api/chatbot/health
# ============================================================================

@router.get("/health")
def chat_health():
    """
    Health check for chat service.

    Returns service status and configuration info.
    """
    try:
        health = get_chatbot_service().get_health()
        health["vector_store_products"] = len(get_vector_store())
        health["timestamp"] = _now_iso()
        return health

    except ValueError:
        return {
            "status": "not_configured",
            "message": "ANTHROPIC_API_KEY not set",
            "timestamp": _now_iso()
        }

    except Exception as e:
        return {
            "status": "error",
            "message": str(e),
            "timestamp": _now_iso()
        }


@router.delete("/session/{session_id}")
def clear_session(
    session_id: str,
    current_user: Optional[TokenUser] = Depends(get_current_user_optional)
):
    """Forget a conversation; a logged-in user's session needs that user or an admin"""
    try:
        existed = get_chatbot_service().clear_session(
            session_id,
            user_id=current_user.id if current_user else None,
            is_admin=bool(current_user and current_user.is_admin)
        )
        return {"success": True, "session_id": session_id, "existed": existed}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError:
        raise HTTPException(status_code=500, detail="Chat service not configured. Please contact administrator.")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error clearing session: {str(e)}")


# ============================================================================
# ADMIN
# ============================================================================

@router.get("/workflows")
def get_workflows(admin: TokenUser = Depends(require_admin)):
    try:
        workflows = get_chatbot_service().workflows
        return {
            "status": "success",
            "summary": workflows.get_workflows_summary(),
            "active": workflows.get_active_workflows()
        }

    except ValueError:
        raise HTTPException(status_code=500, detail="Chat service not configured. Please contact administrator.")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching workflows: {str(e)}")


@router.post("/reload-products")
def reload_products(admin: TokenUser = Depends(require_admin)):
    """Re-embed the whole catalog into the search index"""
    try:
        count = get_vector_store().reload_from_repository()
        logger.info(f"Product index rebuilt by admin {admin.id}: {count} products")
        return {"status": "success", "indexed_products": count}

    except Exception as e:
        logger.error(f"Product index rebuild failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error reloading products: {str(e)}")


# ============================================================================
# WEBSOCKET: /api/chatbot/ws/chat
# ============================================================================

def _user_id_from_token(token: Optional[str]) -> Optional[int]:
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except HTTPException:
        return None
    user_id = payload.get("id") or payload.get("sub")
    return int(user_id) if user_id else None


@router.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket, token: Optional[str] = None):
    """
    Streaming chat.

    Client sends {"message": "...", "session_id": "..."}; the server sends
    {"type": "llm:start" | "llm:end" | "tool:start" | "tool:end" | "agent:end", "data": {...}}
    events while the message is processed, then {"type": "message", "data": <result>}.
    Authenticate with ?token=<jwt>.
    """
    await websocket.accept()
    user_id = _user_id_from_token(token)

    try:
        chatbot = get_chatbot_service()
    except ValueError:
        await websocket.send_json({"type": "error", "data": {"message": "Chat service not configured"}})
        await websocket.close()
        return

    def forward_event(event_type: str, data: dict) -> None:
        anyio.from_thread.run(websocket.send_json, {"type": event_type, "data": data})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except ValueError:
                payload = None

            if not isinstance(payload, dict):
                await websocket.send_json({"type": "error", "data": {"message": "Expected a JSON object"}})
                continue

            message = str(payload.get("message") or "").strip()
            if not message:
                await websocket.send_json({"type": "error", "data": {"message": "Message is required"}})
                continue

            result = await run_in_threadpool(
                chatbot.process_message,
                message,
                payload.get("session_id"),
                user_id,
                forward_event
            )
            await websocket.send_json({"type": "message", "data": result.to_dict()})

    except WebSocketDisconnect:
        logger.info(f"Chat websocket disconnected (user {user_id})")
