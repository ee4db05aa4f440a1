"""Tests for the change feed and the live registration status monitor."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.live_status import EventStatusMonitor
from app.core.roster import RosterAggregator
from app.realtime import ChangeAction, ChangeEvent, Collection, InMemoryChangeFeed, RedisChangeFeed
from app.storage.repository import EventRepository
from conftest import NOW


class TestChangeEvent:
    def test_json_wire_form(self) -> None:
        change = ChangeEvent(Collection.PARTICIPANTS, ChangeAction.INSERT, "p-1", event_id="e-1")

        assert ChangeEvent.from_json(change.to_json().encode("utf-8")) == change

    def test_affected_event_id(self) -> None:
        assert ChangeEvent(Collection.EVENTS, ChangeAction.UPDATE, "e-1").affected_event_id == "e-1"
        assert ChangeEvent(Collection.PARTICIPANTS, ChangeAction.DELETE, "p-1", "e-2").affected_event_id == "e-2"


class TestInMemoryChangeFeed:
    def test_failing_subscriber_does_not_block_others(self) -> None:
        feed = InMemoryChangeFeed()
        received = []

        def broken(change: ChangeEvent) -> None:
            raise RuntimeError("falhou")

        feed.subscribe(broken)
        feed.subscribe(received.append)
        change = ChangeEvent(Collection.EVENTS, ChangeAction.INSERT, "e-1")

        feed.publish(change)

        assert received == [change]


class TestRedisChangeFeed:
    """Redis é substituído por um mock."""

    def test_publish_sends_json_to_channel(self) -> None:
        client = MagicMock()
        with patch("app.realtime.redis_change_feed.Redis.from_url", return_value=client):
            feed = RedisChangeFeed("redis://localhost:6379/0", channel="canal")
        change = ChangeEvent(Collection.EVENTS, ChangeAction.DELETE, "e-1")

        feed.publish(change)

        client.publish.assert_called_once_with("canal", change.to_json())

    def test_publish_error_is_swallowed(self) -> None:
        client = MagicMock()
        client.publish.side_effect = RedisConnectionError("down")
        with patch("app.realtime.redis_change_feed.Redis.from_url", return_value=client):
            feed = RedisChangeFeed("redis://localhost:6379/0")

        feed.publish(ChangeEvent(Collection.EVENTS, ChangeAction.INSERT, "e-1"))

        assert feed.ping() is True

    def test_unreachable_redis_fails_at_startup(self) -> None:
        client = MagicMock()
        client.ping.side_effect = RedisConnectionError("down")
        with patch("app.realtime.redis_change_feed.Redis.from_url", return_value=client):
            with pytest.raises(RedisConnectionError):
                RedisChangeFeed("redis://localhost:6379/0")

    def test_dispatch_delivers_parsed_changes(self) -> None:
        client = MagicMock()
        with patch("app.realtime.redis_change_feed.Redis.from_url", return_value=client):
            feed = RedisChangeFeed("redis://localhost:6379/0")
        received = []
        feed.subscribe(received.append)
        change = ChangeEvent(Collection.PARTICIPANTS, ChangeAction.INSERT, "p-1", "e-1")

        feed._dispatch({"data": change.to_json().encode("utf-8")})
        feed._dispatch({"data": b"lixo"})

        assert received == [change]
        client.pubsub.return_value.run_in_thread.assert_called_once()
        feed.close()


class TestEventStatusMonitor:
    """O monitor sempre relê o banco quando recebe um aviso."""

    def test_push_triggers_refetch(self, session_factory, make_event, add_participant) -> None:
        feed = InMemoryChangeFeed()
        monitor = EventStatusMonitor(session_factory, feed)
        event = make_event(max_participants=1)
        assert monitor.get_status(event.id, now=NOW).is_open

        participant = add_participant(event.id, "a@campus.edu")
        feed.publish(ChangeEvent(Collection.PARTICIPANTS, ChangeAction.INSERT, participant.id, event.id))

        assert monitor.get_snapshot(event.id).participant_count == 1
        assert monitor.get_status(event.id, now=NOW).capacity_reached

    def test_payload_is_never_used_as_count(self, session_factory, make_event) -> None:
        feed = InMemoryChangeFeed()
        monitor = EventStatusMonitor(session_factory, feed)
        event = make_event(max_participants=1)

        # Aviso de inserção sem linha correspondente no banco
        feed.publish(ChangeEvent(Collection.PARTICIPANTS, ChangeAction.INSERT, "fantasma", event.id))

        assert monitor.get_snapshot(event.id).participant_count == 0
        assert monitor.get_status(event.id, now=NOW).is_open

    def test_deadline_evaluated_at_read_time(self, session_factory, make_event) -> None:
        monitor = EventStatusMonitor(session_factory, InMemoryChangeFeed(), grace_period=timedelta(minutes=5))
        event = make_event(registration_deadline=NOW)

        assert monitor.get_status(event.id, now=NOW + timedelta(minutes=4)).is_open
        assert monitor.get_status(event.id, now=NOW + timedelta(minutes=5)).deadline_passed

    def test_event_delete_drops_snapshot(self, session_factory, make_event) -> None:
        feed = InMemoryChangeFeed()
        monitor = EventStatusMonitor(session_factory, feed)
        event = make_event()
        monitor.refresh(event.id)

        db = session_factory()
        try:
            EventRepository(db).delete(event.id)
        finally:
            db.close()
        feed.publish(ChangeEvent(Collection.EVENTS, ChangeAction.DELETE, event.id))

        assert monitor.get_status(event.id, now=NOW) is None

    def test_unknown_event(self, session_factory) -> None:
        monitor = EventStatusMonitor(session_factory, InMemoryChangeFeed())

        assert monitor.get_status("nao-existe", now=NOW) is None

    def test_older_read_never_overwrites_newer_one(self, session_factory, make_event, add_participant, monkeypatch) -> None:
        monitor = EventStatusMonitor(session_factory, InMemoryChangeFeed())
        event = make_event(max_participants=1)
        original_snapshot = RosterAggregator.snapshot
        calls = []

        def interleaved_snapshot(self, ev):
            snapshot = original_snapshot(self, ev)
            calls.append(snapshot.participant_count)
            if len(calls) == 1:
                # Enquanto a primeira leitura (contagem 0) está em andamento,
                # entra um inscrito e uma segunda leitura termina antes dela
                add_participant(ev.id, "a@campus.edu")
                monitor.refresh(ev.id)
            return snapshot

        monkeypatch.setattr(RosterAggregator, "snapshot", interleaved_snapshot)

        returned = monitor.refresh(event.id)

        assert calls == [0, 1]
        assert returned.participant_count == 1
        assert monitor.get_snapshot(event.id).participant_count == 1
        assert monitor.get_status(event.id, now=NOW).capacity_reached

    def test_read_started_before_delete_does_not_restore_snapshot(self, session_factory, make_event, monkeypatch) -> None:
        feed = InMemoryChangeFeed()
        monitor = EventStatusMonitor(session_factory, feed)
        event = make_event()
        original_snapshot = RosterAggregator.snapshot

        def snapshot_then_delete(self, ev):
            snapshot = original_snapshot(self, ev)
            feed.publish(ChangeEvent(Collection.EVENTS, ChangeAction.DELETE, ev.id))
            return snapshot

        monkeypatch.setattr(RosterAggregator, "snapshot", snapshot_then_delete)

        assert monitor.refresh(event.id) is None
        monkeypatch.undo()
        db = session_factory()
        try:
            EventRepository(db).delete(event.id)
        finally:
            db.close()
        assert monitor.get_status(event.id, now=NOW) is None
