from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock

from timedchess.core.errors import RoomNotFound


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Room:
    id: str
    created_at: datetime = field(default_factory=_utcnow)
    members: set[str] = field(default_factory=set)
    emptied_at: datetime | None = None

    def remove(self, sid: str, now: datetime) -> None:
        self.members.discard(sid)
        if not self.members and self.emptied_at is None:
            self.emptied_at = now


class RoomService:
    """Pre-game rooms where players invite each other before a game starts.

    A room that loses its last member is kept for a grace period so that
    invites already sent still resolve, then the sweeper drops it.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def get_room(self, room_id: str) -> Room | None:
        with self._lock:
            return self._rooms.get(room_id)

    def require_room(self, room_id: str) -> Room:
        room = self.get_room(room_id)
        if not room:
            raise RoomNotFound()
        return room

    def join_room(self, room_id: str, sid: str) -> Room:
        with self._lock:
            room = self._rooms.get(room_id)
            if not room:
                room = Room(id=room_id)
                self._rooms[room_id] = room
            room.members.add(sid)
            room.emptied_at = None
            return room

    def leave_room(self, room_id: str, sid: str, now: datetime | None = None) -> Room:
        with self._lock:
            room = self._rooms.get(room_id)
            if not room:
                raise RoomNotFound()
            room.remove(sid, now or _utcnow())
            return room

    def forget_sid(self, sid: str, now: datetime | None = None) -> list[str]:
        stamp = now or _utcnow()
        with self._lock:
            touched = [room for room in self._rooms.values() if sid in room.members]
            for room in touched:
                room.remove(sid, stamp)
            return [room.id for room in touched]

    def evict_empty(self, grace_seconds: float, now: datetime | None = None) -> list[str]:
        cutoff = (now or _utcnow()) - timedelta(seconds=grace_seconds)
        with self._lock:
            expired = [
                room_id
                for room_id, room in self._rooms.items()
                if not room.members and room.emptied_at is not None and room.emptied_at <= cutoff
            ]
            for room_id in expired:
                del self._rooms[room_id]
            return expired

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()


room_service = RoomService()
