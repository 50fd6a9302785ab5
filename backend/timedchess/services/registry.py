import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from timedchess.core.errors import DuplicateSession, NotFound, Unauthorized
from timedchess.core.security import authorize, verify_check_string
from timedchess.services.clock import TimeRule, now_ms
from timedchess.services.rules import replay_pgn
from timedchess.services.session import GameSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns every live game session and the set of spent restore tokens.

    Handlers run on a single event loop and never await between a check and
    the matching insert, so no lock is taken here.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], int] = now_ms,
        site: str = "",
        on_timeout: Callable[[GameSession], Awaitable[None]] | None = None,
    ) -> None:
        self._sessions: dict[str, GameSession] = {}
        self._consumed_tokens: set[str] = set()
        self._clock = clock
        self.site = site
        self.on_timeout = on_timeout

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, game_id: str) -> GameSession | None:
        return self._sessions.get(game_id)

    def lookup(self, game_id: str) -> GameSession:
        session = self._sessions.get(game_id)
        if session is None:
            raise NotFound()
        return session

    def is_token_consumed(self, check_string: str) -> bool:
        return check_string in self._consumed_tokens

    async def _notify_timeout(self, session: GameSession) -> None:
        if self.on_timeout is not None:
            await self.on_timeout(session)

    def create(
        self,
        game_id: str,
        *,
        white: str,
        black: str,
        title: str,
        rule: TimeRule,
        creator_proof: str,
    ) -> GameSession:
        if game_id in self._sessions:
            raise DuplicateSession()
        authorize(creator_proof, (white, black), "not player")

        session = GameSession(
            game_id,
            white=white,
            black=black,
            rule=rule,
            title=title,
            site=self.site,
            clock=self._clock,
            on_timeout=self._notify_timeout,
        )
        self._sessions[game_id] = session
        logger.info("game %s created (%s vs %s, %s)", game_id, white, black, rule.to_string())
        return session

    def restore(
        self,
        game_id: str,
        *,
        history: str,
        rule: TimeRule,
        time_left_white: int,
        time_left_black: int,
        check_string: str,
        encrypted_check_string: str,
    ) -> GameSession:
        if game_id in self._sessions:
            raise DuplicateSession()
        if check_string in self._consumed_tokens:
            logger.warning("rejected reused restore token for game %s", game_id)
            raise Unauthorized()
        if not verify_check_string(check_string, encrypted_check_string):
            raise Unauthorized()

        replayed = replay_pgn(history)
        session = GameSession(
            game_id,
            white=replayed.white,
            black=replayed.black,
            rule=rule,
            title=replayed.event,
            site=replayed.site or self.site,
            board=replayed.board,
            mode="restored",
            clock=self._clock,
            remaining_white_ms=time_left_white,
            remaining_black_ms=time_left_black,
            on_timeout=self._notify_timeout,
        )
        session.restore_status()

        self._consumed_tokens.add(check_string)
        self._sessions[game_id] = session
        logger.info(
            "game %s restored at ply %s with status %s",
            game_id,
            session.move_count,
            session.game_status.value,
        )
        return session

    def evict_finished(self, grace_seconds: float, now: datetime | None = None) -> list[str]:
        current = now or datetime.now(timezone.utc)
        cutoff = current - timedelta(seconds=grace_seconds)
        expired = [
            game_id
            for game_id, session in self._sessions.items()
            if session.is_terminal and session.finished_at is not None and session.finished_at <= cutoff
        ]
        for game_id in expired:
            session = self._sessions.pop(game_id)
            session.clock.stop()
        if expired:
            logger.info("evicted %s finished games", len(expired))
        return expired

    def clear(self) -> None:
        for session in self._sessions.values():
            session.clock.watchdog.cancel()
        self._sessions.clear()
        self._consumed_tokens.clear()
