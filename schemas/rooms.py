from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from constants import CUSTOM_IMAGE_KEY, PASSWORD_MIN_LENGTH, ROOM_MAX_DURATION_MINUTES, USERNAME_MAX_LENGTH
from models import Message, RoomUser


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JoinRoomRequest(CamelModel):
    image_key: Optional[str] = None
    custom_image_url: Optional[str] = None
    password: str
    username: str
    duration: Optional[int] = Field(None, ge=1)

    @field_validator("image_key", "custom_image_url")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            value = value.strip()
        return value or None

    @field_validator("password")
    @classmethod
    def password_long_enough(cls, value: str) -> str:
        if len(value) < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        return value

    @field_validator("username")
    @classmethod
    def username_present(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Username is required")
        if len(value) > USERNAME_MAX_LENGTH:
            raise ValueError(f"Username cannot exceed {USERNAME_MAX_LENGTH} characters")
        return value

    @model_validator(mode="after")
    def one_image_source(self):
        # a custom upload always uses the reserved key, a gallery pick never carries a URL
        if self.custom_image_url:
            self.image_key = CUSTOM_IMAGE_KEY
        elif not self.image_key or self.image_key == CUSTOM_IMAGE_KEY:
            raise ValueError("Select an image or upload a custom one")
        return self

    @property
    def room_duration(self) -> int:
        return min(self.duration or ROOM_MAX_DURATION_MINUTES, ROOM_MAX_DURATION_MINUTES)


class SendMessageRequest(CamelModel):
    user_id: str
    username: str
    content: str

    @field_validator("username")
    @classmethod
    def username_present(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Username is required")
        return value


class UserRequest(CamelModel):
    user_id: str


class RoomInfo(CamelModel):
    id: str
    image_key: str
    custom_image_url: Optional[str] = None
    duration: int
    expires_at: datetime
    is_creator: bool


class RoomStatus(RoomInfo):
    is_active: bool


class JoinRoomResponse(CamelModel):
    room: RoomInfo
    user_id: str
    users: List[RoomUser]
    messages: List[Message]


class RoomStatusResponse(CamelModel):
    room: RoomStatus
    users: List[RoomUser]
    messages: List[Message]
    # pass back as `since` on the next poll
    cursor: Optional[datetime] = None


class AckResponse(CamelModel):
    message: str


class UploadImageResponse(CamelModel):
    image_url: str


class HealthResponse(CamelModel):
    status: str
    rooms: int
