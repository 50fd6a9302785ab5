import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from timedchess.core.config import get_settings
from timedchess.core.errors import RateLimited, TerminalGame, Unauthorized
from timedchess.core.security import authorize, match_identity
from timedchess.services.clock import TimeRule, now_ms
from timedchess.services.registry import SessionRegistry
from timedchess.services.session import GameSession
from timedchess.services.throttle_service import RequestThrottle, throttle

logger = logging.getLogger(__name__)

Broadcaster = Callable[[GameSession], Awaitable[None]]
EndedNotifier = Callable[[str], Awaitable[None]]


@dataclass
class OpponentRequest:
    session: GameSession
    requester: str
    recipient: str


class GameService:
    def __init__(
        self,
        registry: SessionRegistry | None = None,
        *,
        clock: Callable[[], int] = now_ms,
        broadcaster: Broadcaster | None = None,
        ended_notifier: EndedNotifier | None = None,
        request_throttle: RequestThrottle | None = None,
    ) -> None:
        self.registry = registry or SessionRegistry(clock=clock)
        self.registry.on_timeout = self._broadcast
        self.throttle = request_throttle or RequestThrottle()
        self._broadcaster = broadcaster
        self._ended_notifier = ended_notifier

    def bind(
        self,
        broadcaster: Broadcaster | None = None,
        ended_notifier: EndedNotifier | None = None,
    ) -> None:
        if broadcaster is not None:
            self._broadcaster = broadcaster
        if ended_notifier is not None:
            self._ended_notifier = ended_notifier

    async def _broadcast(self, session: GameSession) -> None:
        if self._broadcaster is not None:
            await self._broadcaster(session)

    def _active_session(self, game_id: str) -> GameSession:
        session = self.registry.lookup(game_id)
        session.ensure_active()
        return session

    async def _announce_end(self, session: GameSession, proof: str) -> None:
        # Only a participant may make the room hear about the finished game.
        if match_identity(proof, (session.white, session.black)) is None:
            logger.debug("game %s: end announcement skipped for unverified caller", session.game_id)
            return
        if self._ended_notifier is not None:
            await self._ended_notifier(session.game_id)

    def _check_throttle(self, kind: str, session: GameSession, identity: str) -> None:
        settings = get_settings()
        if not settings.throttle_enabled:
            return
        wait = self.throttle.retry_after(
            RequestThrottle.key(kind, session.game_id, identity),
            limit=settings.opponent_request_limit,
            window_seconds=settings.opponent_request_window_seconds,
        )
        if wait:
            logger.info("game %s: %s from %s throttled", session.game_id, kind, identity)
            raise RateLimited(wait)

    def start_game(
        self,
        game_id: str,
        *,
        white: str,
        black: str,
        title: str,
        time_rule: str,
        creator_proof: str,
    ) -> GameSession:
        rule = TimeRule.parse(time_rule)
        return self.registry.create(
            game_id,
            white=white,
            black=black,
            title=title,
            rule=rule,
            creator_proof=creator_proof,
        )

    def restore_game(
        self,
        game_id: str,
        *,
        history: str,
        time_rule: str,
        time_left_white: int,
        time_left_black: int,
        check_string: str,
        encrypted_check_string: str,
    ) -> GameSession:
        rule = TimeRule.parse(time_rule)
        return self.registry.restore(
            game_id,
            history=history,
            rule=rule,
            time_left_white=time_left_white,
            time_left_black=time_left_black,
            check_string=check_string,
            encrypted_check_string=encrypted_check_string,
        )

    async def move(self, game_id: str, move_index: int, proof: str) -> dict:
        """Validate and apply one ply; return the caller's confirmation."""
        session = self.registry.lookup(game_id)
        if session.is_terminal:
            await self._announce_end(session, proof)
            raise TerminalGame()
        session.ensure_playable()
        authorize(proof, (session.player_for(session.turn),), "it's not your turn")
        move = session.resolve_move(move_index)

        now = session.clock.now()
        session.play(move, now)
        logger.debug("game %s ply %s: %s", game_id, session.move_count, move.uci())
        await self._broadcast(session)
        return session.confirmation()

    async def forfeit(self, game_id: str, proof: str) -> GameSession:
        session = self._active_session(game_id)
        identity = authorize(proof, (session.white, session.black))
        session.forfeit(identity)
        await self._broadcast(session)
        return session

    async def suggest_tie(self, game_id: str, proof: str) -> OpponentRequest:
        session = self._active_session(game_id)
        identity = authorize(proof, (session.white, session.black))
        recipient = session.opponent_of(identity)
        self._check_throttle("tie", session, identity)
        session.offer_tie(identity)
        return OpponentRequest(session=session, requester=identity, recipient=recipient)

    async def request_rematch(self, game_id: str, proof: str) -> OpponentRequest:
        session = self._active_session(game_id)
        identity = authorize(proof, (session.white, session.black))
        recipient = session.opponent_of(identity)
        self._check_throttle("rematch", session, identity)
        return OpponentRequest(session=session, requester=identity, recipient=recipient)

    async def tie(self, game_id: str, proof: str) -> GameSession:
        session = self._active_session(game_id)
        identity = authorize(proof, (session.white, session.black))
        if not session.has_tie_offer_from_opponent(identity):
            raise Unauthorized("no tie offer from opponent")
        session.tie()
        await self._broadcast(session)
        return session

    def lookup(self, game_id: str) -> GameSession:
        return self.registry.lookup(game_id)

    def evict_finished(self) -> list[str]:
        return self.registry.evict_finished(get_settings().finished_game_grace_seconds)


game_service = GameService(
    SessionRegistry(site=get_settings().site_name),
    request_throttle=throttle,
)
