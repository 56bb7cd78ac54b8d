import random

import pytest

from hub.errors import ProtocolError, StateError
from hub.services.hub import RelayHub
from hub.services.scheduler import TimerHandle


def _start_event(relay, cid='a', room='abc', name='gold_rush', minutes=2):
    return relay.handle_message(cid, {
        'type': 'admin_start_event', 'roomCode': room, 'adminIdentity': 'alice',
        'eventName': name, 'durationMinutes': minutes,
    })


def test_admin_event_start_is_broadcast_and_timer_armed(relay, transport, spawner, join):
    join('a', 'alice', 'abc')
    join('b', 'bob', 'abc')
    transport.clear()

    assert _start_event(relay)

    for cid in ('a', 'b'):
        start = transport.received(cid, 'admin_event_start')
        assert len(start) == 1
        assert start[0]['eventName'] == 'gold_rush'
        assert start[0]['durationMs'] == 120000
    assert len(spawner.tasks) == 1
    target, args = spawner.tasks[0]
    room_code, event_id, handle, delay = args
    assert (room_code, delay) == ('abc', 120)
    assert event_id in relay.directory.get_room('abc').events


def test_admin_event_ends_exactly_once(relay, transport, spawner, join):
    join('a', 'alice', 'abc')
    join('b', 'bob', 'abc')
    _start_event(relay)
    event_id = next(iter(relay.directory.get_room('abc').events))
    transport.clear()

    assert relay.scheduler.complete_event('abc', event_id)
    assert not relay.scheduler.complete_event('abc', event_id)

    for cid in ('a', 'b'):
        end = transport.received(cid, 'admin_event_end')
        assert len(end) == 1
        assert end[0]['eventId'] == event_id
    assert relay.directory.get_room('abc').events == {}


def test_timer_worker_fires_after_delay(transport, spawner):
    relay = RelayHub(transport, {'ADMIN_EVENT_UNIT_SEC': 0.001}, spawn=spawner)
    for cid, name in (('a', 'alice'), ('b', 'bob')):
        relay.connect(cid)
        relay.handle_message(cid, {'type': 'player_join', 'identity': name, 'roomCode': 'abc'})
    _start_event(relay, minutes=1)
    spawner.run_all()
    assert len(transport.received('b', 'admin_event_end')) == 1
    assert relay.directory.get_room('abc').events == {}


def test_room_destroyed_before_fire_cancels_event(relay, transport, spawner, join):
    join('a', 'alice', 'abc')
    _start_event(relay)
    _, (room_code, event_id, handle, delay) = spawner.tasks[0]

    relay.disconnect('a')
    assert handle.cancelled
    transport.clear()

    # the worker wakes immediately and does nothing
    spawner.run_all()
    assert not relay.scheduler.complete_event(room_code, event_id)
    assert transport.sent == []


def test_room_recreated_with_same_code_does_not_inherit_event(relay, transport, spawner, join):
    join('a', 'alice', 'abc')
    _start_event(relay)
    _, (room_code, event_id, handle, delay) = spawner.tasks[0]
    relay.disconnect('a')
    join('b', 'bob', 'abc')
    transport.clear()

    assert not relay.scheduler.complete_event(room_code, event_id)
    assert transport.received('b', 'admin_event_end') == []


def test_same_named_events_are_independent(relay, transport, spawner, join):
    join('a', 'alice', 'abc')
    join('b', 'bob', 'abc')
    _start_event(relay, cid='a', name='storm')
    relay.handle_message('b', {
        'type': 'admin_start_event', 'roomCode': 'abc', 'adminIdentity': 'bob',
        'eventName': 'storm', 'durationMinutes': 1,
    })
    events = list(relay.directory.get_room('abc').events.values())
    assert len(events) == 2
    assert {e.initiator for e in events} == {'alice', 'bob'}

    transport.clear()
    assert relay.scheduler.complete_event('abc', events[0].id)
    assert list(relay.directory.get_room('abc').events) == [events[1].id]
    assert relay.scheduler.complete_event('abc', events[1].id)
    assert len(transport.received('a', 'admin_event_end')) == 2


def test_admin_event_for_unknown_room_is_rejected(relay):
    with pytest.raises(StateError):
        relay.scheduler.start_admin_event('ghost', 'alice', 'storm', 1)


def test_reseed_tick_only_reaches_populated_rooms(relay, transport, join):
    join('a', 'alice', 'abc')
    join('b', 'bob', 'abc')
    join('x', 'xavier', 'xyz')
    relay.disconnect('x')
    transport.clear()

    assert relay.scheduler.reseed_tick() == 1
    seeds = {cid: transport.received(cid, 'belt_reseed') for cid in ('a', 'b', 'x')}
    assert len(seeds['a']) == 1 and len(seeds['b']) == 1
    assert seeds['x'] == []
    assert seeds['a'][0]['seed'] == relay.directory.get_room('abc').seed


def test_new_room_waits_for_next_tick(relay, transport, join):
    join('a', 'alice', 'abc')
    relay.scheduler.reseed_tick()
    join('b', 'bob', 'new')
    assert relay.directory.get_room('new').seed is None
    assert transport.received('b', 'belt_reseed') == []

    relay.scheduler.reseed_tick()
    assert transport.received('b', 'belt_reseed')[0]['seed'] == relay.directory.get_room('new').seed


def test_reseed_loop_started_once(transport, spawner):
    relay = RelayHub(transport, {}, spawn=spawner, rng=random.Random(1))
    relay.scheduler.start_reseed_loop()
    relay.scheduler.start_reseed_loop()
    assert len(spawner.tasks) == 1


def test_belt_reseed_request_replies_with_current_seed(relay, transport, join):
    join('a', 'alice', 'abc')
    join('b', 'bob', 'abc')
    assert not relay.handle_message('a', {'type': 'belt_reseed_request', 'roomCode': 'abc'})
    assert transport.received('a', 'error')

    relay.scheduler.reseed_tick()
    transport.clear()
    assert relay.handle_message('a', {'type': 'belt_reseed_request', 'roomCode': 'abc'})
    assert [cid for cid, _ in transport.sent] == ['a']
    assert transport.sent[0][1]['seed'] == relay.directory.get_room('abc').seed


def test_timer_handle_wait_returns_on_cancel():
    handle = TimerHandle()
    handle.cancel()
    assert handle.wait(60)


def test_delay_beyond_timer_limit_is_rejected_before_arming(transport, spawner):
    relay = RelayHub(transport, {'ADMIN_EVENT_UNIT_SEC': 1e12}, spawn=spawner)
    for cid, name in (('a', 'alice'), ('b', 'bob')):
        relay.connect(cid)
        relay.handle_message(cid, {'type': 'player_join', 'identity': name, 'roomCode': 'abc'})
    transport.clear()

    assert not _start_event(relay, minutes=10000)
    assert relay.directory.get_room('abc').events == {}
    assert spawner.tasks == []
    assert transport.received('b') == []
    assert relay.directory.lookup('a').is_admin is False


def test_start_admin_event_rejects_non_finite_delay(relay, join):
    join('a', 'alice', 'abc')
    for minutes in (float('inf'), 1e20):
        with pytest.raises(ProtocolError):
            relay.scheduler.start_admin_event('abc', 'alice', 'storm', minutes)
    assert relay.directory.get_room('abc').events == {}


class _BrokenHandle:
    cancelled = False

    def wait(self, delay):
        raise OverflowError('timestamp out of range for platform time_t')


def test_timer_worker_failure_stays_inside_worker(relay, transport, join):
    join('a', 'alice', 'abc')
    transport.clear()
    relay.scheduler._run_timer('abc', 'missing', _BrokenHandle(), 1)
    assert transport.sent == []
