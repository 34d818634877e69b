"""In-memory entities owned by the chat backend.

All three are frozen: the backend replaces records instead of mutating them,
so a snapshot handed to a caller never changes underneath it.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Entity(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Room(_Entity):
    id: str
    image_key: str
    custom_image_url: Optional[str] = None
    # never serialized to clients
    password_hash: str = Field(exclude=True, repr=False)
    creator_user_id: str
    duration: int
    created_at: datetime
    expires_at: datetime
    is_active: bool = True

    @property
    def match_key(self) -> tuple:
        return (self.image_key, self.custom_image_url)


class RoomUser(_Entity):
    room_id: str
    user_id: str
    username: str
    joined_at: datetime
    is_active: bool = True


class Message(_Entity):
    id: str
    room_id: str
    user_id: str
    username: str
    content: str
    created_at: datetime


def is_live(room: Room, now: datetime) -> bool:
    """A room is live only while flagged active and before its expiry."""
    return room.is_active and now < room.expires_at
