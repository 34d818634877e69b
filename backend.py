import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from constants import MESSAGE_MAX_LENGTH, ROOM_MAX_DURATION_MINUTES, ROOM_RETENTION_MINUTES
from exceptions import RoomNotFound, ValidationFailure
from logging_config import get_logger
from models import Message, Room, RoomUser, is_live
from security import verify_password

logger = get_logger(__name__)

_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Cursors without tzinfo are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ChatBackend(ABC):
    """Storage contract used by the rooms API and the expiry sweeper.

    Rooms, memberships and messages all live behind this interface. Each
    operation is atomic from the caller's point of view.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    # Rooms
    @abstractmethod
    def create_room(self, image_key: str, custom_image_url: Optional[str], password_hash: str,
                    duration: int, creator_user_id: str) -> Room:
        ...

    @abstractmethod
    def find_live_room_by_credentials(self, image_key: str, custom_image_url: Optional[str],
                                      password: str) -> Optional[Room]:
        ...

    @abstractmethod
    def get_room(self, room_id: str) -> Optional[Room]:
        """Raw record lookup, live or not. Only the close path uses it."""

    @abstractmethod
    def get_live_room(self, room_id: str) -> Optional[Room]:
        ...

    @abstractmethod
    def set_active(self, room_id: str, is_active: bool) -> bool:
        ...

    @abstractmethod
    def count_live_rooms(self) -> int:
        ...

    @abstractmethod
    def cleanup_expired_rooms(self) -> int:
        ...

    # Membership
    @abstractmethod
    def add_member(self, room_id: str, user_id: str, username: str) -> RoomUser:
        ...

    @abstractmethod
    def list_active_members(self, room_id: str) -> List[RoomUser]:
        ...

    @abstractmethod
    def remove_member(self, room_id: str, user_id: str) -> None:
        ...

    # Messages
    @abstractmethod
    def append_message(self, room_id: str, user_id: str, username: str, content: str) -> Message:
        ...

    @abstractmethod
    def list_messages_since(self, room_id: str, since: Optional[datetime] = None) -> List[Message]:
        ...


class MemoryBackend(ChatBackend):
    """Process-local backend. Everything is lost on restart.

    A single re-entrant lock guards the three maps. Critical sections are
    short dict/list operations; bcrypt verification happens outside the lock.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        max_duration: int = ROOM_MAX_DURATION_MINUTES,
        message_max_length: int = MESSAGE_MAX_LENGTH,
        retention_minutes: int = ROOM_RETENTION_MINUTES,
    ):
        self._clock = clock or utc_now
        self.max_duration = max_duration
        self.message_max_length = message_max_length
        self.retention = timedelta(minutes=retention_minutes)
        self._lock = threading.RLock()
        # dicts keep insertion order, so iteration is creation order
        self._rooms: Dict[str, Room] = {}
        self._members: Dict[str, Dict[str, RoomUser]] = {}
        self._messages: Dict[str, List[Message]] = {}
        logger.info(f"Initializing MemoryBackend (max_duration={max_duration}m, retention={retention_minutes}m)")

    def now(self) -> datetime:
        return as_utc(self._clock())

    def create_room(self, image_key, custom_image_url, password_hash, duration, creator_user_id):
        if duration <= 0:
            raise ValidationFailure("Room duration must be a positive number of minutes")
        duration = min(duration, self.max_duration)
        with self._lock:
            created_at = self.now()
            room = Room(
                id=uuid.uuid4().hex,
                image_key=image_key,
                custom_image_url=custom_image_url,
                password_hash=password_hash,
                creator_user_id=creator_user_id,
                duration=duration,
                created_at=created_at,
                expires_at=created_at + timedelta(minutes=duration),
            )
            self._rooms[room.id] = room
            self._members[room.id] = {}
            self._messages[room.id] = []
        logger.info(f"Created room {room.id} (image_key={image_key}, duration={duration}m, expires_at={room.expires_at.isoformat()})")
        return room

    def find_live_room_by_credentials(self, image_key, custom_image_url, password):
        key = (image_key, custom_image_url)
        with self._lock:
            now = self.now()
            candidates = [room for room in self._rooms.values() if room.match_key == key and is_live(room, now)]
        logger.debug(f"Checking {len(candidates)} candidate rooms for image_key={image_key}")

        for candidate in candidates:
            if verify_password(password, candidate.password_hash):
                # the room may have closed while we were hashing
                room = self.get_live_room(candidate.id)
                if room is not None:
                    logger.debug(f"Credentials matched room {room.id}")
                    return room
        return None

    def get_room(self, room_id):
        with self._lock:
            return self._rooms.get(room_id)

    def get_live_room(self, room_id):
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None or not is_live(room, self.now()):
                logger.debug(f"Room {room_id} is not live")
                return None
            return room

    def set_active(self, room_id, is_active):
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                logger.debug(f"set_active: room {room_id} does not exist")
                return False
            if room.is_active != is_active:
                self._rooms[room_id] = room.model_copy(update={"is_active": is_active})
                logger.info(f"Room {room_id} is_active set to {is_active}")
            return True

    def count_live_rooms(self):
        with self._lock:
            now = self.now()
            return sum(1 for room in self._rooms.values() if is_live(room, now))

    def cleanup_expired_rooms(self):
        evicted = 0
        dropped = 0
        with self._lock:
            now = self.now()
            for room_id, room in list(self._rooms.items()):
                if is_live(room, now):
                    continue
                if room.is_active or self._members.get(room_id) or self._messages.get(room_id):
                    self._rooms[room_id] = room.model_copy(update={"is_active": False})
                    self._members.pop(room_id, None)
                    self._messages.pop(room_id, None)
                    evicted += 1
                if now >= room.expires_at + self.retention:
                    del self._rooms[room_id]
                    self._members.pop(room_id, None)
                    self._messages.pop(room_id, None)
                    dropped += 1
        if evicted or dropped:
            logger.info(f"Sweep evicted {evicted} rooms, dropped {dropped} expired room records")
        return evicted

    def add_member(self, room_id, user_id, username):
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None or not is_live(room, self.now()):
                raise RoomNotFound()
            members = self._members.setdefault(room_id, {})
            existing = members.get(user_id)
            if existing is not None:
                # rejoin keeps the original join time
                if existing.username != username:
                    existing = existing.model_copy(update={"username": username})
                    members[user_id] = existing
                logger.debug(f"User {user_id} already in room {room_id}")
                return existing
            member = RoomUser(room_id=room_id, user_id=user_id, username=username, joined_at=self.now())
            members[user_id] = member
        logger.info(f"User {user_id} ({username}) joined room {room_id}")
        return member

    def list_active_members(self, room_id):
        with self._lock:
            members = list(self._members.get(room_id, {}).values())
        return sorted(members, key=lambda member: member.joined_at)

    def remove_member(self, room_id, user_id):
        with self._lock:
            removed = self._members.get(room_id, {}).pop(user_id, None)
        if removed is not None:
            logger.info(f"User {user_id} left room {room_id}")
        else:
            logger.debug(f"User {user_id} was not a member of room {room_id}")

    def append_message(self, room_id, user_id, username, content):
        content = (content or "").strip()
        if not content:
            raise ValidationFailure("Message content cannot be empty")
        if len(content) > self.message_max_length:
            raise ValidationFailure(f"Message content cannot exceed {self.message_max_length} characters")

        with self._lock:
            room = self._rooms.get(room_id)
            now = self.now()
            if room is None or not is_live(room, now):
                raise RoomNotFound()
            log = self._messages.setdefault(room_id, [])
            # keep timestamps strictly increasing so a cursor never hides a sibling
            if log and now <= log[-1].created_at:
                now = log[-1].created_at + _TICK
            message = Message(
                id=str(uuid.uuid4()),
                room_id=room_id,
                user_id=user_id,
                username=username,
                content=content,
                created_at=now,
            )
            log.append(message)
        logger.debug(f"Message {message.id} appended to room {room_id} by {user_id}")
        return message

    def list_messages_since(self, room_id, since=None):
        with self._lock:
            log = list(self._messages.get(room_id, []))
        if since is None:
            return log
        since = as_utc(since)
        return [message for message in log if message.created_at > since]
