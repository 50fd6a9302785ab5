import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from timedchess.core.errors import SchemaError
from timedchess.services.rules import BLACK, WHITE, opponent
from timedchess.services.watchdog import TimeoutWatchdog


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TimeRule:
    limit_ms: int
    increment_ms: int
    untimed: bool = False

    @classmethod
    def parse(cls, raw: str) -> "TimeRule":
        """Parse ``"<minutes>/<incrementSeconds>"``.

        A negative increment is the legacy way of asking for an untimed game.
        """
        parts = raw.split("/") if isinstance(raw, str) else []
        if len(parts) != 2:
            raise SchemaError("can't parse time rule")
        try:
            minutes, increment_seconds = (float(part.strip()) for part in parts)
        except ValueError as exc:
            raise SchemaError("can't parse time rule") from exc
        if not math.isfinite(minutes) or not math.isfinite(increment_seconds) or minutes < 0:
            raise SchemaError("can't parse time rule")

        untimed = increment_seconds < 0
        return cls(
            limit_ms=int(round(minutes * 60 * 1000)),
            increment_ms=0 if untimed else int(round(increment_seconds * 1000)),
            untimed=untimed,
        )

    def to_string(self) -> str:
        minutes = self.limit_ms / 60000
        increment = -1 if self.untimed else self.increment_ms / 1000
        return f"{minutes:g}/{increment:g}"


class ClockState:
    def __init__(
        self,
        rule: TimeRule,
        *,
        on_flag_fall: Callable[[str], Awaitable[None]] | None = None,
        clock: Callable[[], int] = now_ms,
        remaining_white_ms: int | None = None,
        remaining_black_ms: int | None = None,
        watchdog: TimeoutWatchdog | None = None,
    ) -> None:
        self.rule = rule
        self.increment_ms = rule.increment_ms
        self.untimed = rule.untimed
        self._clock = clock
        self._on_flag_fall = on_flag_fall
        self._remaining = {
            WHITE: rule.limit_ms if remaining_white_ms is None else int(remaining_white_ms),
            BLACK: rule.limit_ms if remaining_black_ms is None else int(remaining_black_ms),
        }
        self._turn_start = {WHITE: 0, BLACK: 0}
        self.running = False
        self.side_on_clock: str | None = None
        self.watchdog = watchdog or TimeoutWatchdog()

    def now(self) -> int:
        return self._clock()

    def turn_start(self, side: str) -> int:
        return self._turn_start[side]

    def stored_remaining(self, side: str) -> int:
        return self._remaining[side]

    def start(self, side: str = WHITE, now: int | None = None) -> None:
        stamp = self.now() if now is None else now
        self._turn_start[side] = stamp
        self.side_on_clock = side
        self.running = True
        self._schedule(side)

    def start_after(self, moved_side: str, now: int | None = None) -> None:
        """Start both clocks as if ``moved_side`` had just finished a zero-length move."""
        stamp = self.now() if now is None else now
        self._turn_start[moved_side] = stamp
        self.side_on_clock = moved_side
        self.running = True
        self.settle_and_switch(moved_side, stamp)

    def settle_and_switch(self, moved_side: str, now: int | None = None) -> None:
        stamp = self.now() if now is None else now
        elapsed = stamp - self._turn_start[moved_side]
        # May go negative; flag-fall is decided by the watchdog only.
        self._remaining[moved_side] += self.increment_ms - elapsed
        other = opponent(moved_side)
        self._turn_start[other] = stamp
        self.side_on_clock = other
        self._schedule(other)

    def remaining(self, side: str, now: int | None = None) -> int:
        stored = self._remaining[side]
        if self.running and self.side_on_clock == side:
            stamp = self.now() if now is None else now
            return stored - (stamp - self._turn_start[side])
        return stored

    def reported(self, side: str, now: int | None = None) -> int:
        return max(0, self.remaining(side, now))

    def stop(self, now: int | None = None) -> None:
        if self.running and self.side_on_clock is not None:
            self._remaining[self.side_on_clock] = self.remaining(self.side_on_clock, now)
        self.running = False
        self.watchdog.cancel()

    def flag(self, side: str) -> None:
        self._remaining[side] = 0
        self.running = False
        self.watchdog.cancel()

    def _schedule(self, side: str) -> None:
        if self.untimed or self._on_flag_fall is None:
            self.watchdog.cancel()
            return
        on_flag_fall = self._on_flag_fall

        async def fire() -> None:
            await on_flag_fall(side)

        self.watchdog.replace(self._remaining[side], fire)
