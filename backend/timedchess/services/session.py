import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum

import chess

from timedchess.core.errors import IllegalMoveIndex, IllegalPosition, PlayersNotFound, TerminalGame
from timedchess.services import rules
from timedchess.services.clock import ClockState, TimeRule, now_ms
from timedchess.services.rules import BLACK, WHITE, opponent

logger = logging.getLogger(__name__)


class GameStatus(str, Enum):
    INITIALIZING = "INITIALIZING"
    FIRST_MOVE = "FM"
    STARTED = "STARTED"
    TIE = "TIE"
    BLACK_WON = "BLACKWON"
    WHITE_WON = "WHITEWON"


class PositionStatus(str, Enum):
    PLAYABLE = "PLAYABLE"
    STALEMATE = "STALEMATE"
    CHECK = "CHECK"
    CHECKMATE = "CHECKMATE"
    DEAD = "DEAD"
    ERROR = "ERROR"


TERMINAL_STATUSES = frozenset({GameStatus.TIE, GameStatus.BLACK_WON, GameStatus.WHITE_WON})

# First matching predicate wins.
POSITION_CHECKS: tuple[tuple[PositionStatus, Callable[[chess.Board], bool]], ...] = (
    (PositionStatus.CHECKMATE, rules.is_checkmate),
    (PositionStatus.STALEMATE, rules.is_stalemate),
    (PositionStatus.DEAD, rules.is_dead),
    (PositionStatus.CHECK, rules.is_check),
    (PositionStatus.ERROR, rules.is_illegal),
)


def classify_position(board: chess.Board) -> PositionStatus:
    for status, predicate in POSITION_CHECKS:
        if predicate(board):
            return status
    return PositionStatus.PLAYABLE


def winner_status(side: str) -> GameStatus:
    return GameStatus.WHITE_WON if side == WHITE else GameStatus.BLACK_WON


class GameSession:
    def __init__(
        self,
        game_id: str,
        *,
        white: str | None,
        black: str | None,
        rule: TimeRule,
        title: str = "",
        site: str = "",
        board: chess.Board | None = None,
        mode: str = "fresh",
        clock: Callable[[], int] = now_ms,
        remaining_white_ms: int | None = None,
        remaining_black_ms: int | None = None,
        on_timeout: Callable[["GameSession"], Awaitable[None]] | None = None,
    ) -> None:
        self.game_id = game_id
        self.white = white
        self.black = black
        self.rule = rule
        self.title = title
        self.site = site
        self.mode = mode
        self.board = board or chess.Board()
        self.created_at = datetime.now(timezone.utc)
        self.finished_at: datetime | None = None
        self.game_status = GameStatus.INITIALIZING
        self.position_status = PositionStatus.PLAYABLE
        self.move_count = 0
        self.last_move_from = ""
        self.last_move_to = ""
        self.tie_offer_by: str | None = None
        self._on_timeout = on_timeout
        self.clock = ClockState(
            rule,
            on_flag_fall=self._handle_flag_fall,
            clock=clock,
            remaining_white_ms=remaining_white_ms,
            remaining_black_ms=remaining_black_ms,
        )
        self.clock.watchdog.name = game_id

    @property
    def is_terminal(self) -> bool:
        return self.game_status in TERMINAL_STATUSES

    @property
    def turn(self) -> str:
        return rules.side_to_move(self.board)

    def player_for(self, side: str) -> str | None:
        return self.white if side == WHITE else self.black

    def side_of(self, identity: str) -> str | None:
        if identity == self.white:
            return WHITE
        if identity == self.black:
            return BLACK
        return None

    def opponent_of(self, identity: str) -> str:
        if not self.white or not self.black:
            raise PlayersNotFound()
        side = self.side_of(identity)
        if side is None:
            raise PlayersNotFound()
        return self.player_for(opponent(side)) or ""

    def ensure_active(self) -> None:
        if self.is_terminal:
            raise TerminalGame()

    def ensure_playable(self) -> None:
        if self.position_status == PositionStatus.ERROR:
            raise IllegalPosition()

    def resolve_move(self, move_index: int) -> chess.Move:
        moves = rules.legal_moves(self.board)
        if not 0 <= move_index < len(moves):
            raise IllegalMoveIndex()
        return moves[move_index]

    def play(self, move: chess.Move, now: int | None = None) -> None:
        """Apply an already validated move and run the resulting transition."""
        moved_side = self.turn
        self.board.push(move)
        self.move_count += 1
        self.last_move_from, self.last_move_to = rules.square_names(move)
        self.tie_offer_by = None

        if self.game_status in (GameStatus.INITIALIZING, GameStatus.FIRST_MOVE):
            if self.move_count > 1:
                self.game_status = GameStatus.STARTED
                self.clock.start_after(moved_side, now)
            else:
                self.game_status = GameStatus.FIRST_MOVE
        else:
            self.clock.settle_and_switch(moved_side, now)

        self.refresh_position_status(now)

    def refresh_position_status(self, now: int | None = None) -> None:
        self.position_status = classify_position(self.board)
        if self.position_status == PositionStatus.CHECKMATE:
            self._finish(winner_status(opponent(self.turn)), now)
        elif self.position_status in (PositionStatus.STALEMATE, PositionStatus.DEAD):
            self._finish(GameStatus.TIE, now)
        elif self.position_status == PositionStatus.ERROR:
            logger.warning("game %s reached an illegal position", self.game_id)

    def forfeit(self, identity: str, now: int | None = None) -> None:
        self.ensure_active()
        side = self.side_of(identity)
        if side is None:
            raise PlayersNotFound()
        self._finish(winner_status(opponent(side)), now)

    def offer_tie(self, identity: str) -> None:
        self.ensure_active()
        self.tie_offer_by = identity

    def has_tie_offer_from_opponent(self, identity: str) -> bool:
        return self.tie_offer_by is not None and self.tie_offer_by != identity

    def tie(self, now: int | None = None) -> None:
        self.ensure_active()
        self._finish(GameStatus.TIE, now)

    def restore_status(self, now: int | None = None) -> None:
        """Derive status from a replayed board; used once, right after restore."""
        self.move_count = len(self.board.move_stack)
        if self.board.move_stack:
            self.last_move_from, self.last_move_to = rules.square_names(self.board.move_stack[-1])
        self.position_status = classify_position(self.board)
        if self.position_status == PositionStatus.ERROR:
            raise IllegalPosition()
        if self.position_status == PositionStatus.CHECKMATE:
            self._finish(winner_status(opponent(self.turn)), now)
        elif self.position_status in (PositionStatus.STALEMATE, PositionStatus.DEAD):
            self._finish(GameStatus.TIE, now)
        elif self.move_count > 1:
            self.game_status = GameStatus.STARTED
            self.clock.start(self.turn, now)
        elif self.move_count == 1:
            self.game_status = GameStatus.FIRST_MOVE

    def _finish(self, status: GameStatus, now: int | None = None) -> None:
        self.clock.stop(now)
        self.game_status = status
        self.tie_offer_by = None
        self.finished_at = datetime.now(timezone.utc)
        logger.info("game %s finished: %s", self.game_id, status.value)

    async def _handle_flag_fall(self, side: str) -> None:
        # A move may have been accepted while this timer was already queued.
        if self.is_terminal or not self.clock.running or self.clock.side_on_clock != side:
            return
        self.clock.flag(side)
        self.game_status = winner_status(opponent(side))
        self.tie_offer_by = None
        self.finished_at = datetime.now(timezone.utc)
        logger.info("game %s flag fell for %s", self.game_id, side)
        if self._on_timeout is not None:
            await self._on_timeout(self)

    def history(self) -> str:
        return rules.export_pgn(
            self.board,
            white=self.white,
            black=self.black,
            event=self.title,
            site=self.site,
            date=self.created_at,
        )

    def game_message(self, now: int | None = None) -> dict:
        stamp = self.clock.now() if now is None else now
        return {
            "gameId": self.game_id,
            "gameTitle": self.title,
            "lastMoveFrom": self.last_move_from,
            "lastMoveTo": self.last_move_to,
            "gameStatus": self.game_status.value,
            "positionStatus": self.position_status.value,
            "legalMoves": [] if self.is_terminal else rules.describe_legal_moves(self.board),
            "turn": self.turn,
            "moveCount": self.move_count,
            "position": self.board.fen(),
            "remainingWhiteTime": self.clock.reported(WHITE, stamp),
            "remainingBlackTime": self.clock.reported(BLACK, stamp),
            "history": self.history(),
            "white": self.white,
            "black": self.black,
        }

    def confirmation(self, now: int | None = None) -> dict:
        stamp = self.clock.now() if now is None else now
        return {
            "gameId": self.game_id,
            "remainingWhiteTime": self.clock.reported(WHITE, stamp),
            "remainingBlackTime": self.clock.reported(BLACK, stamp),
            "history": self.history(),
            "gameStatus": self.game_status.value,
            "positionStatus": self.position_status.value,
            "position": self.board.fen(),
        }
