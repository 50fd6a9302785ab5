import io
from datetime import datetime

import chess
import chess.pgn

from timedchess.core.errors import CorruptHistory

WHITE = "w"
BLACK = "b"


def opponent(side: str) -> str:
    return BLACK if side == WHITE else WHITE


def side_to_move(board: chess.Board) -> str:
    return WHITE if board.turn == chess.WHITE else BLACK


def legal_moves(board: chess.Board) -> list[chess.Move]:
    # Recomputed on every call; an index is only meaningful against this snapshot.
    return list(board.legal_moves)


def describe_move(move: chess.Move, index: int) -> str:
    output = move.uci()
    if move.promotion is not None:
        output += "/Promotion"
    return f"{output}/{index}"


def describe_legal_moves(board: chess.Board) -> list[str]:
    return [describe_move(move, index) for index, move in enumerate(legal_moves(board))]


def square_names(move: chess.Move) -> tuple[str, str]:
    return chess.square_name(move.from_square), chess.square_name(move.to_square)


def is_checkmate(board: chess.Board) -> bool:
    return board.is_checkmate()


def is_stalemate(board: chess.Board) -> bool:
    return board.is_stalemate()


def is_dead(board: chess.Board) -> bool:
    return (
        board.is_insufficient_material()
        or board.is_seventyfive_moves()
        or board.is_fivefold_repetition()
    )


def is_check(board: chess.Board) -> bool:
    return board.is_check()


def is_illegal(board: chess.Board) -> bool:
    return not board.is_valid()


def export_pgn(
    board: chess.Board,
    *,
    white: str | None,
    black: str | None,
    event: str,
    site: str,
    date: datetime,
) -> str:
    game = chess.pgn.Game.from_board(board)
    game.headers["Event"] = event or "?"
    game.headers["Site"] = site or "?"
    game.headers["Date"] = date.strftime("%Y.%m.%d")
    game.headers["White"] = white or "?"
    game.headers["Black"] = black or "?"
    exporter = chess.pgn.StringExporter(headers=True, variations=False, comments=False)
    return game.accept(exporter)


def _header_value(game: chess.pgn.Game, key: str) -> str | None:
    value = game.headers.get(key, "").strip()
    if not value or value == "?":
        return None
    return value


class ReplayedGame:
    def __init__(self, board: chess.Board, headers: dict[str, str | None]) -> None:
        self.board = board
        self.white = headers.get("White")
        self.black = headers.get("Black")
        self.event = headers.get("Event") or ""
        self.site = headers.get("Site") or ""


def replay_pgn(history: str) -> ReplayedGame:
    """Parse PGN move-text and replay its mainline onto a fresh board."""
    try:
        game = chess.pgn.read_game(io.StringIO(history))
    except (ValueError, KeyError) as exc:
        raise CorruptHistory() from exc
    if game is None or game.errors:
        raise CorruptHistory()

    try:
        board = game.board()
        for move in game.mainline_moves():
            if not board.is_legal(move):
                raise CorruptHistory()
            board.push(move)
    except ValueError as exc:
        raise CorruptHistory() from exc

    headers = {key: _header_value(game, key) for key in ("White", "Black", "Event", "Site")}
    return ReplayedGame(board, headers)
