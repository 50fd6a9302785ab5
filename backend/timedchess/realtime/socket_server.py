import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
import logging

from pydantic import ValidationError
import socketio

from timedchess.core.config import get_settings
from timedchess.core.errors import GameError, RateLimited, SchemaError
from timedchess.core.request_meta import extract_client_ip_from_environ
from timedchess.schemas.game import (
    AuthorizedGameRequest,
    GameIdRequest,
    MoveRequest,
    RestoreGameRequest,
    StartGameRequest,
)
from timedchess.schemas.room import (
    RoomGameStartRequest,
    RoomIdRequest,
    RoomMessageRequest,
    UniqueNameRequest,
)
from timedchess.services.game_service import game_service
from timedchess.services.room_service import room_service
from timedchess.services.session import GameSession
from timedchess.services.throttle_service import RequestThrottle, throttle

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")

settings = get_settings()
SWEEP_INTERVAL_SECONDS = max(1.0, settings.session_sweep_interval_seconds)

_session_sweeper_task: asyncio.Task | None = None

EventHandler = Callable[[str, dict], Awaitable[dict]]


def _game_room(game_id: str) -> str:
    return f"game:{game_id}"


def _user_room(unique_name: str) -> str:
    return f"user:{unique_name}"


def _lobby_room(room_id: str) -> str:
    return f"room:{room_id}"


def _success_event(game_id: str) -> str:
    return f"{game_id} success"


def _ended_event(game_id: str) -> str:
    return f"{game_id} game ended"


def _throttle_wait(kind: str, scope: str, identity: str, limit: int, window_seconds: float) -> float:
    if not settings.throttle_enabled:
        return 0.0
    return throttle.retry_after(
        RequestThrottle.key(kind, scope, identity),
        limit=limit,
        window_seconds=window_seconds,
    )


def _is_socket_connect_allowed(client_ip: str) -> bool:
    wait = _throttle_wait(
        "connect",
        "socket",
        client_ip,
        settings.socket_connect_limit,
        settings.socket_connect_window_seconds,
    )
    return not wait


def _is_socket_event_allowed(sid: str, event_name: str) -> bool:
    wait = _throttle_wait(
        "event",
        event_name,
        sid,
        settings.socket_event_limit,
        settings.socket_event_window_seconds,
    )
    return not wait


def _check_invite_throttle(sid: str, room_id: str, recipient: str) -> None:
    # Invites land on the recipient's personal channel; cap them per sender and recipient.
    wait = _throttle_wait(
        "invite",
        f"{room_id}>{recipient}",
        sid,
        settings.invite_limit,
        settings.invite_window_seconds,
    )
    if wait:
        raise RateLimited(wait)


def _schema_error(exc: ValidationError) -> SchemaError:
    fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
    return SchemaError(f"invalid payload: {', '.join(fields)}" if fields else None)


async def _reply_error(sid: str, error: GameError) -> dict:
    await sio.emit("error", error.to_payload(), room=sid)
    return {"ok": False, "error": error.message, "code": error.code}


def _event(event_name: str) -> Callable[[EventHandler], EventHandler]:
    """Register a handler that answers every failure to the caller only."""

    def decorator(handler: EventHandler) -> EventHandler:
        @wraps(handler)
        async def wrapper(sid: str, data: dict | None = None) -> dict:
            if not _is_socket_event_allowed(sid, event_name):
                return await _reply_error(sid, RateLimited())
            try:
                return await handler(sid, data if isinstance(data, dict) else {})
            except ValidationError as exc:
                return await _reply_error(sid, _schema_error(exc))
            except GameError as exc:
                logger.debug("%s rejected for %s: %s", event_name, sid, exc.message)
                return await _reply_error(sid, exc)
            except Exception:
                logger.exception("%s failed for %s", event_name, sid)
                return await _reply_error(sid, GameError("unknown error"))

        sio.on(event_name, wrapper)
        return wrapper

    return decorator


async def broadcast_game_message(session: GameSession) -> None:
    await sio.emit(
        _success_event(session.game_id),
        session.game_message(),
        room=_game_room(session.game_id),
    )


async def broadcast_game_ended(game_id: str) -> None:
    await sio.emit(_ended_event(game_id), {"gameId": game_id}, room=_game_room(game_id))


game_service.bind(broadcaster=broadcast_game_message, ended_notifier=broadcast_game_ended)


def sweep_idle_state() -> None:
    game_service.evict_finished()
    dropped = room_service.evict_empty(settings.empty_room_grace_seconds)
    if dropped:
        logger.info("dropped %s empty rooms", len(dropped))
    throttle.prune(
        max(
            settings.opponent_request_window_seconds,
            settings.invite_window_seconds,
            settings.socket_event_window_seconds,
            settings.socket_connect_window_seconds,
        )
    )


async def _session_sweeper_loop() -> None:
    while True:
        await asyncio.sleep(SWEEP_INTERVAL_SECONDS)
        try:
            sweep_idle_state()
        except Exception:
            logger.exception("idle state sweep failed")


def _ensure_session_sweeper_task() -> None:
    global _session_sweeper_task
    if _session_sweeper_task and not _session_sweeper_task.done():
        return
    _session_sweeper_task = sio.start_background_task(_session_sweeper_loop)


@sio.event
async def connect(sid: str, environ: dict, auth: dict | None = None) -> bool:
    client_ip = extract_client_ip_from_environ(environ)
    if not _is_socket_connect_allowed(client_ip):
        logger.warning("connection from %s rejected by rate limit", client_ip)
        return False
    _ensure_session_sweeper_task()
    return True


@sio.event
async def disconnect(sid: str) -> None:
    # Games and their clocks keep running without their subscribers.
    room_service.forget_sid(sid)


@_event("sub to invites")
async def subscribe_to_invites(sid: str, data: dict) -> dict:
    payload = UniqueNameRequest.model_validate(data)
    await sio.enter_room(sid, _user_room(payload.unique_name))
    logger.debug("%s subscribed to invites", payload.unique_name)
    return {"ok": True}


@_event("unsub from invites")
async def unsubscribe_from_invites(sid: str, data: dict) -> dict:
    payload = UniqueNameRequest.model_validate(data)
    await sio.leave_room(sid, _user_room(payload.unique_name))
    return {"ok": True}


@_event("start game")
async def start_game(sid: str, data: dict) -> dict:
    payload = StartGameRequest.model_validate(data)
    session = game_service.start_game(
        payload.game_id,
        white=payload.player_white,
        black=payload.player_black,
        title=payload.game_title,
        time_rule=payload.time_rule,
        creator_proof=payload.secret_name,
    )
    await sio.enter_room(sid, _game_room(session.game_id))
    await broadcast_game_message(session)
    return {"ok": True, "gameId": session.game_id}


@_event("restore game")
async def restore_game(sid: str, data: dict) -> dict:
    payload = RestoreGameRequest.model_validate(data)
    session = game_service.restore_game(
        payload.game_id,
        history=payload.history,
        time_rule=payload.time_rule,
        time_left_white=payload.time_left_white,
        time_left_black=payload.time_left_black,
        check_string=payload.check_string,
        encrypted_check_string=payload.enc_check_string,
    )
    await sio.enter_room(sid, _game_room(session.game_id))
    await broadcast_game_message(session)
    return {"ok": True, "gameId": session.game_id}


@_event("join game")
async def join_game(sid: str, data: dict) -> dict:
    payload = GameIdRequest.model_validate(data)
    await sio.enter_room(sid, _game_room(payload.game_id))
    session = game_service.registry.get(payload.game_id)
    if not session:
        await sio.emit("game not found", {"gameId": payload.game_id}, room=sid)
        return {"ok": False, "error": "game not found", "code": "not_found"}
    message = session.game_message()
    await sio.emit(_success_event(payload.game_id), message, room=sid)
    return {"ok": True, "game": message}


@_event("leave game")
async def leave_game(sid: str, data: dict) -> dict:
    payload = GameIdRequest.model_validate(data)
    await sio.leave_room(sid, _game_room(payload.game_id))
    return {"ok": True}


@_event("move")
async def move(sid: str, data: dict) -> dict:
    payload = MoveRequest.model_validate(data)
    confirmation = await game_service.move(payload.game_id, payload.move_index, payload.secret_name)
    return {"ok": True, "confirmation": confirmation}


@_event("forfeit")
async def forfeit(sid: str, data: dict) -> dict:
    payload = AuthorizedGameRequest.model_validate(data)
    session = await game_service.forfeit(payload.game_id, payload.secret_name)
    return {"ok": True, "gameStatus": session.game_status.value}


@_event("suggest tie")
async def suggest_tie(sid: str, data: dict) -> dict:
    payload = AuthorizedGameRequest.model_validate(data)
    request = await game_service.suggest_tie(payload.game_id, payload.secret_name)
    await sio.emit(
        "tie request",
        {"gameId": payload.game_id, "from": request.requester},
        room=_user_room(request.recipient),
    )
    return {"ok": True}


@_event("rematch")
async def rematch(sid: str, data: dict) -> dict:
    payload = AuthorizedGameRequest.model_validate(data)
    request = await game_service.request_rematch(payload.game_id, payload.secret_name)
    await sio.emit(
        "rematch request",
        {"gameId": payload.game_id, "from": request.requester},
        room=_user_room(request.recipient),
    )
    return {"ok": True}


@_event("tie")
async def tie(sid: str, data: dict) -> dict:
    payload = AuthorizedGameRequest.model_validate(data)
    session = await game_service.tie(payload.game_id, payload.secret_name)
    return {"ok": True, "gameStatus": session.game_status.value}


@_event("join room")
async def join_room(sid: str, data: dict) -> dict:
    payload = RoomIdRequest.model_validate(data)
    room_service.join_room(payload.room_id, sid)
    await sio.enter_room(sid, _lobby_room(payload.room_id))
    return {"ok": True, "roomId": payload.room_id}


@_event("leave room")
async def leave_room(sid: str, data: dict) -> dict:
    payload = RoomIdRequest.model_validate(data)
    room_service.leave_room(payload.room_id, sid)
    await sio.leave_room(sid, _lobby_room(payload.room_id))
    return {"ok": True}


@_event("send invite")
async def send_invite(sid: str, data: dict) -> dict:
    payload = RoomMessageRequest.model_validate(data)
    room_service.require_room(payload.room_id)
    _check_invite_throttle(sid, payload.room_id, payload.unique_name)
    await sio.emit(
        "invite",
        {"roomId": payload.room_id, "from": payload.name},
        room=_user_room(payload.unique_name),
    )
    return {"ok": True}


@_event("room ready status")
async def room_ready_status(sid: str, data: dict) -> dict:
    payload = RoomMessageRequest.model_validate(data)
    room_service.require_room(payload.room_id)
    _check_invite_throttle(sid, payload.room_id, payload.unique_name)
    await sio.emit(
        "room ready",
        {"roomId": payload.room_id, "from": payload.name},
        room=_user_room(payload.unique_name),
    )
    return {"ok": True}


@_event("room game start")
async def room_game_start(sid: str, data: dict) -> dict:
    payload = RoomGameStartRequest.model_validate(data)
    room_service.require_room(payload.room_id)
    await sio.emit(
        "game starting",
        {"gameId": payload.game_id, "roomId": payload.room_id},
        room=_lobby_room(payload.room_id),
    )
    return {"ok": True}


def build_socket_app(api_app) -> socketio.ASGIApp:
    return socketio.ASGIApp(sio, other_asgi_app=api_app, socketio_path="socket.io")
