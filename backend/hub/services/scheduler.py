import logging
import math
import random
import threading
import time
import uuid
from typing import Optional

from hub.errors import ProtocolError, StateError
from hub.services.rooms import ActiveEvent

logger = logging.getLogger(__name__)

SEED_MAX = 2 ** 31 - 1


class TimerHandle:
    """Cancellation flag shared between an ActiveEvent and its worker."""

    def __init__(self):
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds; True means the timer was cancelled."""
        return self._cancelled.wait(max(0.0, delay))


class EventScheduler:
    """Admin events with an explicit end, and the periodic belt reseed.

    Workers only carry (room code, event id) and re-resolve both under the
    hub lock when they wake up, since the room may have changed or gone
    away in the meantime.
    """

    def __init__(self, directory, broadcaster, lock, spawn, sleep=time.sleep,
                 unit_seconds: float = 60, reseed_interval: float = 90,
                 rng: Optional[random.Random] = None):
        self.directory = directory
        self.broadcaster = broadcaster
        self.lock = lock
        self.spawn = spawn
        self.sleep = sleep
        self.unit_seconds = float(unit_seconds)
        self.reseed_interval = float(reseed_interval)
        self.rng = rng or random.Random()
        self._reseed_started = False

    # ---- admin events ----

    def start_admin_event(self, room_code: str, initiator: str, event_name: str, duration_minutes: float) -> ActiveEvent:
        room = self.directory.get_room(room_code)
        if room is None:
            raise StateError(f"room {room_code} does not exist")

        delay = duration_minutes * self.unit_seconds
        if not math.isfinite(delay) or delay <= 0 or delay > threading.TIMEOUT_MAX:
            raise ProtocolError(f"event duration {duration_minutes} minutes cannot be scheduled")
        event = ActiveEvent(
            id=uuid.uuid4().hex[:12],
            name=event_name,
            initiator=initiator,
            duration_ms=int(delay * 1000),
            timer=TimerHandle(),
        )
        room.events[event.id] = event
        logger.info(
            f"[event-start] room={room_code} event={event.id} name={event_name} admin={initiator} duration={delay}s"
        )
        self.broadcaster.broadcast(room_code, {
            'type': 'admin_event_start',
            'roomCode': room_code,
            'eventId': event.id,
            'eventName': event_name,
            'adminIdentity': initiator,
            'durationMinutes': duration_minutes,
            'durationMs': event.duration_ms,
        })
        # the start broadcast can prune the last member and cancel the event
        if not event.timer.cancelled:
            self.spawn(self._run_timer, room_code, event.id, event.timer, delay)
        return event

    def _run_timer(self, room_code: str, event_id: str, handle: TimerHandle, delay: float) -> None:
        try:
            if handle.wait(delay):
                logger.info(f"[timer-abort] room={room_code} event={event_id} cancelled")
                return
            self.complete_event(room_code, event_id)
        except Exception:
            logger.exception(f"[timer-error] room={room_code} event={event_id}")

    def complete_event(self, room_code: str, event_id: str) -> bool:
        """Broadcast the end of an armed event; False when there is nothing to end."""
        with self.lock:
            room = self.directory.get_room(room_code)
            if room is None:
                logger.info(f"[timer-abort] room={room_code} event={event_id} room gone")
                return False
            event = room.events.get(event_id)
            if event is None or (event.timer is not None and event.timer.cancelled):
                logger.info(f"[timer-abort] room={room_code} event={event_id} not armed")
                return False
            del room.events[event_id]
            logger.info(f"[timer-fire] room={room_code} event={event_id} name={event.name}")
            self.broadcaster.broadcast(room_code, {
                'type': 'admin_event_end',
                'roomCode': room_code,
                'eventId': event.id,
                'eventName': event.name,
                'adminIdentity': event.initiator,
            })
            return True

    # ---- reseed ----

    def start_reseed_loop(self) -> None:
        if self._reseed_started:
            return
        self._reseed_started = True
        logger.info(f"[reseed-loop] interval={self.reseed_interval}s")
        self.spawn(self._reseed_loop)

    def _reseed_loop(self) -> None:
        while True:
            self.sleep(self.reseed_interval)
            try:
                self.reseed_tick()
            except Exception:
                logger.exception('[reseed-error] tick failed')

    def reseed_tick(self) -> int:
        """Give every populated room a fresh seed; returns how many were reseeded."""
        reseeded = 0
        with self.lock:
            for room in self.directory.rooms():
                if self.directory.get_room(room.code) is not room:
                    continue
                if not room.members:
                    logger.warning(f"[reseed-skip] room={room.code} has no members")
                    continue
                room.seed = self.rng.randint(0, SEED_MAX)
                self.broadcaster.broadcast(room.code, {
                    'type': 'belt_reseed',
                    'roomCode': room.code,
                    'seed': room.seed,
                })
                reseeded += 1
        logger.debug(f"[reseed] rooms={reseeded}")
        return reseeded

    def send_seed(self, connection_id: str, room_code: str) -> None:
        room = self.directory.get_room(room_code)
        if room is None or room.seed is None:
            raise StateError(f"room {room_code} has no seed yet")
        self.broadcaster.send_to(connection_id, {
            'type': 'belt_seed',
            'roomCode': room_code,
            'seed': room.seed,
            'reseedIntervalSec': self.reseed_interval,
        })
