import asyncio
import unittest

from timedchess.core.errors import SchemaError
from timedchess.services.clock import ClockState, TimeRule
from timedchess.services.rules import BLACK, WHITE


class FakeClock:
    def __init__(self, value: int = 1_000) -> None:
        self.value = value

    def __call__(self) -> int:
        return self.value

    def advance(self, ms: int) -> None:
        self.value += ms


class TimeRuleTests(unittest.TestCase):
    def test_parses_minutes_and_increment_seconds(self) -> None:
        rule = TimeRule.parse("5/3")
        self.assertEqual(rule.limit_ms, 300_000)
        self.assertEqual(rule.increment_ms, 3_000)
        self.assertFalse(rule.untimed)

    def test_accepts_fractional_minutes(self) -> None:
        rule = TimeRule.parse("0.01/0")
        self.assertEqual(rule.limit_ms, 600)
        self.assertEqual(rule.increment_ms, 0)

    def test_negative_increment_means_untimed(self) -> None:
        rule = TimeRule.parse("10/-1")
        self.assertTrue(rule.untimed)
        self.assertEqual(rule.increment_ms, 0)
        self.assertEqual(rule.to_string(), "10/-1")

    def test_rejects_unparsable_rules(self) -> None:
        for raw in ("", "5", "5/3/1", "five/3", "5/x", "-1/0", "nan/0"):
            with self.subTest(raw=raw):
                with self.assertRaises(SchemaError):
                    TimeRule.parse(raw)


class ClockStateTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.now = FakeClock()
        self.flagged: list[str] = []

        async def on_flag_fall(side: str) -> None:
            self.flagged.append(side)

        self.clock = ClockState(
            TimeRule.parse("5/3"),
            on_flag_fall=on_flag_fall,
            clock=self.now,
        )

    async def asyncTearDown(self) -> None:
        self.clock.watchdog.cancel()

    async def test_settlement_adds_increment_and_charges_elapsed(self) -> None:
        self.clock.start(WHITE)
        self.now.advance(2_000)
        self.clock.settle_and_switch(WHITE)

        self.assertEqual(self.clock.stored_remaining(WHITE), 301_000)
        self.assertEqual(self.clock.side_on_clock, BLACK)
        self.assertEqual(self.clock.turn_start(BLACK), self.now.value)

    async def test_settlement_may_leave_negative_time(self) -> None:
        self.clock.start(WHITE)
        self.now.advance(400_000)
        self.clock.settle_and_switch(WHITE)

        self.assertEqual(self.clock.stored_remaining(WHITE), -97_000)
        self.assertEqual(self.clock.reported(WHITE), 0)

    async def test_side_on_move_decreases_and_other_side_is_frozen(self) -> None:
        self.clock.start(WHITE)
        readings = []
        for _ in range(4):
            self.now.advance(150)
            readings.append(self.clock.remaining(WHITE))
            self.assertEqual(self.clock.remaining(BLACK), 300_000)

        self.assertEqual(readings, sorted(readings, reverse=True))
        self.assertEqual(readings[-1], 300_000 - 600)

    async def test_remaining_is_stored_value_before_start(self) -> None:
        self.now.advance(10_000)
        self.assertEqual(self.clock.remaining(WHITE), 300_000)
        self.assertFalse(self.clock.watchdog.pending)

    async def test_start_after_reply_credits_increment(self) -> None:
        self.clock.start_after(BLACK)
        self.assertEqual(self.clock.stored_remaining(BLACK), 303_000)
        self.assertEqual(self.clock.side_on_clock, WHITE)
        self.assertTrue(self.clock.running)

    async def test_only_one_watchdog_is_live(self) -> None:
        self.clock.start(WHITE)
        first = self.clock.watchdog._task
        self.clock.settle_and_switch(WHITE)
        second = self.clock.watchdog._task

        await asyncio.sleep(0)
        self.assertIsNot(first, second)
        self.assertTrue(first.cancelled())
        self.assertFalse(second.done())

    async def test_stop_charges_live_elapsed_and_cancels(self) -> None:
        self.clock.start(WHITE)
        self.now.advance(5_000)
        self.clock.stop()

        self.assertFalse(self.clock.running)
        self.assertFalse(self.clock.watchdog.pending)
        self.assertEqual(self.clock.remaining(WHITE), 295_000)
        self.now.advance(5_000)
        self.assertEqual(self.clock.remaining(WHITE), 295_000)

    async def test_watchdog_fires_for_side_on_clock(self) -> None:
        clock = ClockState(
            TimeRule(limit_ms=20, increment_ms=0),
            on_flag_fall=self._record_flag,
        )
        clock.start(WHITE)
        await asyncio.sleep(0.2)
        self.assertEqual(self.flagged, [WHITE])

    async def test_untimed_clock_never_schedules(self) -> None:
        clock = ClockState(
            TimeRule(limit_ms=10, increment_ms=0, untimed=True),
            on_flag_fall=self._record_flag,
        )
        clock.start(WHITE)
        self.assertFalse(clock.watchdog.pending)
        await asyncio.sleep(0.05)
        self.assertEqual(self.flagged, [])

    async def _record_flag(self, side: str) -> None:
        self.flagged.append(side)


if __name__ == "__main__":
    unittest.main()
