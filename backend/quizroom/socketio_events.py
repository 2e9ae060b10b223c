import math
import threading
from typing import Any, Callable, Dict, List, Optional

from flask import request
from flask_socketio import emit, join_room

from quizroom.errors import ErrorCode, error_payload
from quizroom.models import GameSettings, Question, Room, RoomStatus
from quizroom.services.games import engine
from quizroom.services.games.scheduler import RoomTimers
from quizroom.services.games.store import RoomStore

NAMESPACE = '/ws'

COUNTDOWN_TIMER = 'countdown'
QUESTION_TIMER = 'question'
RESULTS_TIMER = 'results'


def room_channel(code: str) -> str:
    return f"room:{code}"


class SessionDispatcher:
    """Routes Socket.IO events to the room engine and fans results out to rooms.

    All engine calls run under one re-entrant lock, so room operations never
    interleave, whether they come from a client event or a timer. Timer
    callbacks re-check the room status and question index before acting.
    """

    def __init__(self, socketio, store: RoomStore, timers: RoomTimers, questions: List[Question],
                 settings_factory: Callable[[], GameSettings], logger,
                 countdown_seconds: int = 3, results_duration: float = 3):
        self.socketio = socketio
        self.store = store
        self.timers = timers
        self.questions = list(questions)
        self.settings_factory = settings_factory
        self.logger = logger
        self.countdown_seconds = countdown_seconds
        self.results_duration = results_duration
        self._lock = threading.RLock()
        self._sid_to_ctx: Dict[str, Dict[str, Any]] = {}

    # ---- helpers ----

    def _broadcast(self, code: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=room_channel(code), namespace=NAMESPACE)

    def _room_or_error(self, data) -> Optional[Room]:
        room = self.store.get((data or {}).get('roomId'))
        if room is None:
            emit('error', error_payload(ErrorCode.ROOM_NOT_FOUND))
        return room

    def _host_room(self, data, action: str) -> Optional[Room]:
        room = self._room_or_error(data)
        if room is not None and room.host_id != request.sid:
            self.logger.info(f"[ignored] {action} room={room.code} sid={request.sid} not host")
            return None
        return room

    def context_for(self, sid: str) -> Optional[Dict[str, Any]]:
        return self._sid_to_ctx.get(sid)

    # ---- inbound events ----

    def handle_connect(self, auth=None):
        emit('connected', {'message': f'Connected to {NAMESPACE}'})

    def handle_ping(self, data=None):
        emit('pong', data or {})

    def handle_error(self, exc):
        self.logger.exception(f"[socket-error] sid={request.sid} {exc!r}")

    def handle_create_room(self, data=None):
        sid = request.sid
        with self._lock:
            previous = self._sid_to_ctx.get(sid)
            if previous and previous['role'] == 'host':
                self.close_room(previous['room'])
            room = engine.create_room(self.store, sid, self.questions, self.settings_factory())
            self._sid_to_ctx[sid] = {'room': room.code, 'role': 'host'}
        join_room(room_channel(room.code))
        emit('room:created', {'roomId': room.code})
        self.logger.info(f"[room-created] room={room.code} host={sid}")

    def handle_join_room(self, data=None):
        sid = request.sid
        with self._lock:
            room = self._room_or_error(data)
            if room is None:
                return
            if room.host_id == sid:
                self.logger.info(f"[ignored] join-room room={room.code} host cannot play")
                return

            existing = engine.get_player(room, sid)
            if existing is not None:
                emit('room:joined', {'player': existing.to_dict(), 'roomId': room.code})
                return

            if room.status == RoomStatus.FINISHED or (
                    room.status != RoomStatus.LOBBY and not room.settings.allow_late_join):
                emit('error', error_payload(ErrorCode.GAME_IN_PROGRESS))
                return

            player = engine.add_player(room, sid, (data or {}).get('username'))
            if player is None:
                emit('error', error_payload(ErrorCode.ROOM_FULL))
                return

            self._sid_to_ctx[sid] = {'room': room.code, 'role': 'player'}
            join_room(room_channel(room.code))
            emit('room:joined', {'player': player.to_dict(), 'roomId': room.code})
            emit('room:player-joined',
                 {'player': player.to_dict(), 'playerCount': engine.player_count(room)},
                 to=room_channel(room.code), include_self=False)
            if room.status != RoomStatus.LOBBY:
                emit('game:state-sync', engine.get_game_state(room))
        self.logger.info(f"[player-joined] room={room.code} player={player.username} sid={sid}")

    def handle_start_game(self, data=None):
        with self._lock:
            room = self._host_room(data, 'start-game')
            if room is None:
                return
            if not room.players:
                emit('error', error_payload(ErrorCode.NO_PLAYERS))
                return
            if not engine.start_countdown(room):
                emit('error', error_payload(ErrorCode.GAME_IN_PROGRESS))
                return

            code = room.code
            self.timers.countdown(
                code, COUNTDOWN_TIMER, range(self.countdown_seconds, -1, -1),
                on_tick=lambda seconds: self._broadcast(code, 'game:countdown', {'secondsRemaining': seconds}),
                on_expire=lambda: self.finish_countdown(code),
            )
        self.logger.info(f"[game-started] room={code} players={len(room.players)}")

    def handle_submit_answer(self, data=None):
        sid = request.sid
        with self._lock:
            room = self._room_or_error(data)
            if room is None:
                return
            if room.status != RoomStatus.QUESTION:
                self.logger.info(f"[ignored] submit-answer room={room.code} status={room.status.value}")
                return

            option_index = (data or {}).get('optionIndex')
            question = room.current_question
            if isinstance(option_index, bool) or not isinstance(option_index, int) \
                    or not 0 <= option_index < len(question.options):
                self.logger.info(f"[ignored] submit-answer room={room.code} option={option_index!r}")
                return

            result = engine.submit_answer(room, sid, option_index)
            if not result.success:
                return
            self._broadcast(room.code, 'game:answer-received', {'playerId': sid})
            if engine.all_players_answered(room):
                self._end_question(room)

    def handle_next_question(self, data=None):
        with self._lock:
            room = self._host_room(data, 'next-question')
            if room is None:
                return
            if room.status != RoomStatus.LEADERBOARD:
                self.logger.info(f"[ignored] next-question room={room.code} status={room.status.value}")
                return
            self._advance(room)

    def handle_skip_question(self, data=None):
        with self._lock:
            room = self._host_room(data, 'skip-question')
            if room is None:
                return
            if room.status != RoomStatus.QUESTION:
                self.logger.info(f"[ignored] skip-question room={room.code} status={room.status.value}")
                return
            self._end_question(room)

    def handle_end_game(self, data=None):
        with self._lock:
            room = self._host_room(data, 'end-game')
            if room is None:
                return
            self.timers.cancel_room(room.code)
            entries = engine.end_game(room)
            if entries is None:
                return
            self._broadcast(room.code, 'game:finished',
                            {'finalRankedEntries': [e.to_dict() for e in entries]})
        self.logger.info(f"[game-ended] room={room.code} by host")

    def handle_reconnect(self, data=None):
        sid = request.sid
        with self._lock:
            room = self._room_or_error(data)
            if room is None:
                return
            old_sid = (data or {}).get('playerId')
            if not isinstance(old_sid, str):
                self.logger.info(f"[ignored] reconnect room={room.code} bad player id")
                return
            if sid == room.host_id or engine.get_player(room, sid) is not None:
                self.logger.info(f"[ignored] reconnect room={room.code} from seated sid={sid}")
                return
            target = engine.get_player(room, old_sid)
            if target is not None and target.is_connected:
                self.logger.info(f"[ignored] reconnect room={room.code} player={old_sid} still connected")
                return
            player = engine.reconnect_player(room, old_sid, sid)
            if player is None:
                self.logger.info(f"[ignored] reconnect room={room.code} unknown player={old_sid}")
                return

            self._sid_to_ctx.pop(old_sid, None)
            self._sid_to_ctx[sid] = {'room': room.code, 'role': 'player'}
            join_room(room_channel(room.code))
            emit('room:joined', {'player': player.to_dict(), 'roomId': room.code})
            emit('game:state-sync', engine.get_game_state(room))
            emit('room:player-joined',
                 {'player': player.to_dict(), 'playerCount': engine.player_count(room, connected_only=True)},
                 to=room_channel(room.code), include_self=False)
        self.logger.info(f"[player-reconnected] room={room.code} {old_sid} -> {sid}")

    def handle_disconnect(self, reason=None):
        sid = request.sid
        with self._lock:
            ctx = self._sid_to_ctx.pop(sid, None)
            if not ctx:
                return
            room = self.store.get(ctx['room'])
            if room is None:
                return

            if ctx['role'] == 'host' and room.host_id == sid:
                self.close_room(room.code)
                return

            if engine.get_player(room, sid) is None:
                return
            if room.status == RoomStatus.LOBBY:
                engine.remove_player(room, sid)
                count = engine.player_count(room)
            else:
                engine.set_player_connected(room, sid, False)
                count = engine.player_count(room, connected_only=True)
            self._broadcast(room.code, 'room:player-left', {'playerId': sid, 'playerCount': count})
        self.logger.info(f"[player-left] room={room.code} sid={sid}")

    # ---- timer-driven transitions ----

    def finish_countdown(self, code: str) -> None:
        with self._lock:
            room = self.store.get(code)
            if room is None or room.status != RoomStatus.COUNTDOWN:
                self.logger.info(f"[timer-abort] room={code} countdown no longer current")
                return
            self.timers.cancel(code, COUNTDOWN_TIMER)
            self._advance(room)

    def expire_question(self, code: str, question_index: int) -> None:
        with self._lock:
            room = self.store.get(code)
            if room is None or room.status != RoomStatus.QUESTION \
                    or room.current_question_index != question_index:
                self.logger.info(f"[timer-abort] room={code} question={question_index} no longer current")
                return
            self._end_question(room)

    def reveal_leaderboard(self, code: str, question_index: Optional[int] = None) -> None:
        with self._lock:
            room = self.store.get(code)
            if room is None or room.status != RoomStatus.RESULTS or (
                    question_index is not None and room.current_question_index != question_index):
                self.logger.info(f"[timer-abort] room={code} results no longer current")
                return
            self.timers.cancel(code, RESULTS_TIMER)
            entries = engine.show_leaderboard(room)
            self._broadcast(code, 'game:leaderboard', {'rankedEntries': [e.to_dict() for e in entries]})

    def close_room(self, code: str) -> None:
        """Tear a room down: cancel its timers, notify members, forget it."""
        with self._lock:
            self.timers.cancel_room(code)
            if self.store.delete(code) is None:
                return
            for sid in [s for s, ctx in self._sid_to_ctx.items() if ctx['room'] == code]:
                del self._sid_to_ctx[sid]
            self._broadcast(code, 'room:closed', {'roomId': code})
            self.socketio.close_room(room_channel(code), namespace=NAMESPACE)
        self.logger.info(f"[room-closed] room={code}")

    # ---- transitions shared by events and timers (lock held) ----

    def _advance(self, room: Room) -> None:
        if not engine.advance_question(room):
            if room.status == RoomStatus.FINISHED:
                self.timers.cancel_room(room.code)
                entries = engine.get_leaderboard(room)
                self._broadcast(room.code, 'game:finished',
                                {'finalRankedEntries': [e.to_dict() for e in entries]})
                self.logger.info(f"[game-finished] room={room.code}")
            return

        view = engine.get_current_question_view(room)
        index = room.current_question_index
        self._broadcast(room.code, 'game:question', {
            'questionView': view.to_dict(),
            'index': index,
            'totalQuestions': room.total_questions,
        })

        code = room.code
        seconds = int(math.ceil(view.time_limit))
        self.timers.countdown(
            code, QUESTION_TIMER, range(seconds - 1, -1, -1),
            on_tick=lambda remaining: self._broadcast(code, 'game:timer-tick', {'secondsRemaining': remaining}),
            on_expire=lambda: self.expire_question(code, index),
        )

    def _end_question(self, room: Room) -> None:
        self.timers.cancel(room.code, QUESTION_TIMER)
        results = engine.end_question(room)
        if results is None:
            return
        self._broadcast(room.code, 'game:question-results',
                        results.to_dict(reveal_correct=room.settings.show_correct_answer))

        code, index = room.code, room.current_question_index
        self.timers.delay(code, RESULTS_TIMER, self.results_duration,
                          lambda: self.reveal_leaderboard(code, index))


def register_socketio_handlers(socketio, dispatcher: SessionDispatcher, namespace: str = NAMESPACE) -> None:
    """Bind the dispatcher's handlers to Socket.IO events on ``namespace``."""
    socketio.on_event('connect', dispatcher.handle_connect, namespace=namespace)
    socketio.on_event('disconnect', dispatcher.handle_disconnect, namespace=namespace)
    socketio.on_event('ping', dispatcher.handle_ping, namespace=namespace)
    socketio.on_event('host:create-room', dispatcher.handle_create_room, namespace=namespace)
    socketio.on_event('player:join-room', dispatcher.handle_join_room, namespace=namespace)
    socketio.on_event('host:start-game', dispatcher.handle_start_game, namespace=namespace)
    socketio.on_event('player:submit-answer', dispatcher.handle_submit_answer, namespace=namespace)
    socketio.on_event('host:next-question', dispatcher.handle_next_question, namespace=namespace)
    socketio.on_event('host:skip-question', dispatcher.handle_skip_question, namespace=namespace)
    socketio.on_event('host:end-game', dispatcher.handle_end_game, namespace=namespace)
    socketio.on_event('player:reconnect', dispatcher.handle_reconnect, namespace=namespace)
    socketio.on_error(namespace)(dispatcher.handle_error)
