from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from backend import ChatBackend
from credentials import CredentialMatcher
from exceptions import ChatError, Forbidden, RoomNotFound
from logging_config import get_logger
from models import Message
from schemas.rooms import (
    AckResponse,
    JoinRoomRequest,
    JoinRoomResponse,
    RoomInfo,
    RoomStatus,
    RoomStatusResponse,
    SendMessageRequest,
    UserRequest,
)

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/rooms", tags=["rooms"])


def get_backend(request: Request) -> ChatBackend:
    return request.app.state.backend


def get_matcher(request: Request) -> CredentialMatcher:
    return request.app.state.matcher


def http_error(error: ChatError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


def client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@rooms_router.post("/join", response_model=JoinRoomResponse)
async def join_room(
    join_request: JoinRoomRequest,
    request: Request,
    backend: ChatBackend = Depends(get_backend),
    matcher: CredentialMatcher = Depends(get_matcher),
):
    # Finds the live room for (image, password) or creates one, then adds a fresh user to it.
    logger.info(f"Join request from {client_host(request)}, image_key: {join_request.image_key}, username: {join_request.username}")
    try:
        # bcrypt is slow, keep it off the event loop
        result = await run_in_threadpool(
            matcher.join,
            join_request.image_key,
            join_request.custom_image_url,
            join_request.password,
            join_request.username,
            join_request.room_duration,
        )
    except ChatError as e:
        logger.warning(f"Join failed: {e.message}")
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error joining room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to join room")

    room = result.room
    users = backend.list_active_members(room.id)
    messages = backend.list_messages_since(room.id)
    logger.info(f"User {result.user_id} joined room {room.id} ({len(users)} users, {len(messages)} messages)")

    return JoinRoomResponse(
        room=RoomInfo(
            id=room.id,
            image_key=room.image_key,
            custom_image_url=room.custom_image_url,
            duration=room.duration,
            expires_at=room.expires_at,
            is_creator=result.is_creator,
        ),
        user_id=result.user_id,
        users=users,
        messages=messages,
    )


@rooms_router.get("/{room_id}/status", response_model=RoomStatusResponse)
async def room_status(
    room_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    since: Optional[datetime] = Query(None, description="Only return messages newer than this cursor"),
    backend: ChatBackend = Depends(get_backend),
):
    """
    Incremental sync for polling clients.

    Returns the room's public fields, the current member list and the messages
    created after `since` (all of them when `since` is omitted). The `cursor`
    in the response is the value to send as `since` on the next poll.
    """
    room = backend.get_live_room(room_id)
    if room is None:
        logger.debug(f"Status poll for room {room_id} failed: not found")
        raise http_error(RoomNotFound())

    users = backend.list_active_members(room_id)
    messages = backend.list_messages_since(room_id, since)
    cursor = messages[-1].created_at if messages else since
    logger.debug(f"Status poll for room {room_id} by {user_id}: {len(messages)} new messages")

    return RoomStatusResponse(
        room=RoomStatus(
            id=room.id,
            image_key=room.image_key,
            custom_image_url=room.custom_image_url,
            duration=room.duration,
            expires_at=room.expires_at,
            # get_live_room only returns live rooms
            is_active=True,
            is_creator=user_id is not None and room.creator_user_id == user_id,
        ),
        users=users,
        messages=messages,
        cursor=cursor,
    )


@rooms_router.post("/{room_id}/messages", response_model=Message)
async def send_message(
    room_id: str,
    message_request: SendMessageRequest,
    backend: ChatBackend = Depends(get_backend),
):
    try:
        message = backend.append_message(
            room_id,
            message_request.user_id,
            message_request.username,
            message_request.content,
        )
    except ChatError as e:
        logger.warning(f"Send message to room {room_id} failed: {e.message}")
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error sending message to room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to send message")
    return message


@rooms_router.post("/{room_id}/close", response_model=AckResponse)
async def close_room(
    room_id: str,
    close_request: UserRequest,
    backend: ChatBackend = Depends(get_backend),
):
    # Only the creator may close. Closing twice is fine for the creator; anyone
    # else sees a closed room as missing.
    logger.info(f"Close room request for {room_id} from user {close_request.user_id}")

    room = backend.get_room(room_id)
    is_creator = room is not None and room.creator_user_id == close_request.user_id
    if backend.get_live_room(room_id) is None:
        if is_creator:
            logger.debug(f"Room {room_id} already closed or expired")
            return AckResponse(message="Room closed successfully")
        logger.warning(f"Close room failed: Room {room_id} not found")
        raise http_error(RoomNotFound())

    if not is_creator:
        logger.warning(f"Close room failed: {close_request.user_id} is not the creator of room {room_id}")
        raise http_error(Forbidden("Only the room creator can close this room"))

    backend.set_active(room_id, False)
    logger.info(f"Room {room_id} closed by creator {close_request.user_id}")
    return AckResponse(message="Room closed successfully")


@rooms_router.post("/{room_id}/leave", response_model=AckResponse)
async def leave_room(
    room_id: str,
    leave_request: UserRequest,
    backend: ChatBackend = Depends(get_backend),
):
    logger.info(f"Leave room request for {room_id} from user {leave_request.user_id}")
    backend.remove_member(room_id, leave_request.user_id)
    return AckResponse(message="Left room successfully")
