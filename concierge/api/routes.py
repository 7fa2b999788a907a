"""
API Routes for the itinerary concierge.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging

from ..errors import (
    EmptyMessageError,
    InitializationError,
    ToolLoopExceededError,
    TurnCancelledError,
    TurnInProgressError,
)
from ..models.itinerary import Activity
from ..models.profile import TripContext, UserProfile
from ..models.session import AssistantReply, session_store
from ..services.conversation import ConversationSession
from ..services.prompts import GREETING

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["itinerary-concierge"])


# Request/Response Models
class CreateSessionRequest(BaseModel):
    profile: Optional[UserProfile] = None


class CreateSessionResponse(BaseModel):
    session_id: str
    message: str


class ChatRequest(BaseModel):
    session_id: str
    message: str = ""
    selected_suggestions: list[str] = []


class ChatResponse(BaseModel):
    message: str
    suggestions: list[str] = []
    pending_choices: list[Activity] = []
    itinerary: dict
    failed: bool = False


class LockRequest(BaseModel):
    day_date: str
    activity: str
    locked: Optional[bool] = None


def _get_session(session_id: str) -> ConversationSession:
    session = session_store.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _to_response(session: ConversationSession, reply: AssistantReply) -> ChatResponse:
    return ChatResponse(
        message=reply.text,
        suggestions=reply.suggestions,
        pending_choices=reply.pending_choices,
        itinerary=session.itinerary.to_display_dict(),
        failed=reply.failed,
    )


async def _run(session: ConversationSession, turn) -> ChatResponse:
    """Await a session turn, mapping turn errors to HTTP statuses."""
    try:
        reply = await turn
    except TurnInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TurnCancelledError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ToolLoopExceededError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except EmptyMessageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(session, reply)


# Endpoints

@router.post("/session", response_model=CreateSessionResponse)
async def create_session(request: Optional[CreateSessionRequest] = None):
    """Create a new chat session."""
    profile = request.profile if request else None
    session = ConversationSession()
    try:
        await session.initialize(user_context=profile, greeting=GREETING)
    except InitializationError as e:
        logger.error(f"Failed to start chat: {e}")
        raise HTTPException(status_code=503, detail=f"Chat backend unavailable: {e}")

    session_store.add(session)
    return CreateSessionResponse(session_id=session.session_id, message=GREETING)


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest):
    """Send a chat message and get response."""
    session = _get_session(request.session_id)
    return await _run(session, session.send_turn(request.message, selected_suggestions=request.selected_suggestions))


@router.post("/trip/{session_id}", response_model=ChatResponse)
async def start_trip(session_id: str, context: TripContext):
    """Seed the itinerary from the trip-setup form and ask for a plan."""
    session = _get_session(session_id)
    return await _run(session, session.start_trip(context))


@router.post("/choices/{session_id}/select", response_model=ChatResponse)
async def select_choice(session_id: str, activity: Activity):
    """Pick one of the pending options."""
    session = _get_session(session_id)
    return await _run(session, session.select_choice(activity))


@router.get("/itinerary/{session_id}")
async def get_itinerary(session_id: str):
    """Get the current itinerary."""
    session = _get_session(session_id)
    return {
        "itinerary": session.itinerary.to_display_dict(),
        "pending_choices": [a.model_dump(mode="json") for a in session.pending_choices],
    }


@router.post("/itinerary/{session_id}/lock")
async def lock_activity(session_id: str, request: LockRequest):
    """Pin or unpin an activity."""
    session = _get_session(session_id)
    try:
        activity = session.toggle_lock(request.day_date, request.activity, request.locked)
    except TurnInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found")
    return {"activity": activity.model_dump(mode="json")}


@router.get("/messages/{session_id}")
async def get_messages(session_id: str):
    """Get all chat messages for a session."""
    session = _get_session(session_id)
    return {
        "messages": [
            {
                "id": msg.id,
                "role": msg.role,
                "text": msg.text,
                "suggestions": msg.suggestions,
                "timestamp": msg.timestamp.isoformat(),
            }
            for msg in session.messages
        ]
    }
