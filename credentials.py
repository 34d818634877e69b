"""
Matches (image, password) pairs to rooms.

The non-secret part of the credentials, the image key plus the custom image
URL, narrows the candidate rooms. The password is then checked against each
candidate's bcrypt hash. A password that matches no live room creates a new
room: a typo lands the user in a different room instead of failing.
"""
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Optional

from pydantic import BaseModel

from backend import ChatBackend
from constants import BCRYPT_ROUNDS, ROOM_MAX_DURATION_MINUTES
from exceptions import RoomNotFound
from logging_config import get_logger
from models import Room, RoomUser
from security import hash_password

logger = get_logger(__name__)


class JoinResult(BaseModel):
    room: Room
    member: RoomUser
    created: bool

    @property
    def user_id(self) -> str:
        return self.member.user_id

    @property
    def is_creator(self) -> bool:
        return self.room.creator_user_id == self.member.user_id


class CredentialMatcher:
    def __init__(self, backend: ChatBackend, bcrypt_rounds: int = BCRYPT_ROUNDS):
        self.backend = backend
        self.bcrypt_rounds = bcrypt_rounds
        # one lock per match key so identical concurrent joins share a room
        # while joins for other images proceed in parallel
        self._guard = threading.Lock()
        self._key_locks: Dict[tuple, list] = {}

    @contextmanager
    def _match_key_lock(self, key: tuple):
        with self._guard:
            entry = self._key_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[key]

    def join(
        self,
        image_key: str,
        custom_image_url: Optional[str],
        password: str,
        username: str,
        duration: int = ROOM_MAX_DURATION_MINUTES,
    ) -> JoinResult:
        user_id = str(uuid.uuid4())

        with self._match_key_lock((image_key, custom_image_url)):
            while True:
                created = False
                room = self.backend.find_live_room_by_credentials(image_key, custom_image_url, password)
                if room is None:
                    password_hash = hash_password(password, rounds=self.bcrypt_rounds)
                    room = self.backend.create_room(image_key, custom_image_url, password_hash, duration, user_id)
                    created = True
                try:
                    member = self.backend.add_member(room.id, user_id, username)
                    break
                except RoomNotFound:
                    # closed or expired between the match and the add
                    if created:
                        raise
                    logger.info(f"Room {room.id} stopped being live during join, matching again")

        if created:
            logger.info(f"User {user_id} created room {room.id}")
        else:
            logger.info(f"User {user_id} matched existing room {room.id}")
        return JoinResult(room=room, member=member, created=created)
