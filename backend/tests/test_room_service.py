import unittest
from datetime import datetime, timedelta, timezone

from timedchess.core.errors import RoomNotFound
from timedchess.services.room_service import RoomService


class RoomServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rooms = RoomService()
        self.start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_join_creates_and_leave_keeps_room_during_grace(self) -> None:
        self.rooms.join_room("r1", "sid-1")
        room = self.rooms.leave_room("r1", "sid-1", now=self.start)

        self.assertEqual(room.members, set())
        self.assertEqual(room.emptied_at, self.start)
        self.assertEqual(self.rooms.evict_empty(300, now=self.start + timedelta(seconds=299)), [])
        self.assertIs(self.rooms.require_room("r1"), room)

    def test_churn_does_not_accumulate_rooms(self) -> None:
        for index in range(1000):
            self.rooms.join_room(f"r{index}", "sid-1")
            self.rooms.leave_room(f"r{index}", "sid-1", now=self.start)

        evicted = self.rooms.evict_empty(300, now=self.start + timedelta(seconds=300))

        self.assertEqual(len(evicted), 1000)
        self.assertEqual(len(self.rooms), 0)
        with self.assertRaises(RoomNotFound):
            self.rooms.require_room("r0")

    def test_rejoining_cancels_eviction(self) -> None:
        self.rooms.join_room("r1", "sid-1")
        self.rooms.leave_room("r1", "sid-1", now=self.start)
        self.rooms.join_room("r1", "sid-2")

        self.assertEqual(self.rooms.evict_empty(0, now=self.start + timedelta(hours=1)), [])
        self.assertEqual(self.rooms.require_room("r1").members, {"sid-2"})

    def test_occupied_rooms_are_never_evicted(self) -> None:
        self.rooms.join_room("r1", "sid-1")
        self.rooms.join_room("r1", "sid-2")
        self.rooms.leave_room("r1", "sid-1", now=self.start)

        self.assertEqual(self.rooms.evict_empty(0, now=self.start + timedelta(days=1)), [])
        self.assertIsNone(self.rooms.require_room("r1").emptied_at)

    def test_disconnect_empties_every_room_of_the_sid(self) -> None:
        self.rooms.join_room("r1", "sid-1")
        self.rooms.join_room("r2", "sid-1")
        self.rooms.join_room("r2", "sid-2")

        touched = self.rooms.forget_sid("sid-1", now=self.start)

        self.assertEqual(sorted(touched), ["r1", "r2"])
        self.assertEqual(self.rooms.evict_empty(60, now=self.start + timedelta(minutes=2)), ["r1"])

    def test_leaving_unknown_room(self) -> None:
        with self.assertRaises(RoomNotFound):
            self.rooms.leave_room("nowhere", "sid-1")


if __name__ == "__main__":
    unittest.main()
