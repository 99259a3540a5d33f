#!/usr/bin/env python3
"""
Unit tests for SessionRegistry and Session delivery

- One Active session per username, even under concurrent joins
- Insertion-ordered snapshots
- Broadcast fan-out, exclusion and per-recipient FIFO
- Bounded wait + disconnection of a stalled peer
"""

import queue
import threading
import time
import unittest

from tcpchat.errors import DuplicateUsername
from tcpchat.protocol import Chat, SystemNotice
from tcpchat.registry import SessionRegistry
from tcpchat.session import CLOSE, Session, SessionState


def drain(session):
    """Everything currently queued for ``session`` (minus the close marker)."""
    items = []
    while True:
        try:
            item = session.outbox.get_nowait()
        except queue.Empty:
            return items
        if item is not CLOSE:
            items.append(item)


class TestRegistration(unittest.TestCase):

    def setUp(self):
        self.registry = SessionRegistry()

    def test_register_activates_and_lists_in_join_order(self):
        for name in ("carol", "alice", "bob"):
            session = Session()
            self.registry.register(name, session)
            self.assertIs(session.state, SessionState.ACTIVE)
            self.assertEqual(session.username, name)
        self.assertEqual(self.registry.snapshot(), ["carol", "alice", "bob"])
        self.assertEqual(len(self.registry), 3)
        self.assertIn("alice", self.registry)

    def test_duplicate_active_username_rejected(self):
        self.registry.register("alice", Session())
        intruder = Session()
        with self.assertRaises(DuplicateUsername):
            self.registry.register("alice", intruder)
        self.assertIs(intruder.state, SessionState.CONNECTING)
        self.assertEqual(self.registry.snapshot(), ["alice"])

    def test_usernames_are_case_sensitive(self):
        self.registry.register("alice", Session())
        self.registry.register("Alice", Session())
        self.assertEqual(self.registry.snapshot(), ["alice", "Alice"])

    def test_stale_entry_replaced(self):
        old = Session()
        self.registry.register("alice", old)
        old.begin_closing()
        new = Session()
        self.registry.register("alice", new)
        self.assertIs(self.registry.lookup("alice"), new)

    def test_replacement_of_stale_entry_is_listed_last(self):
        old = Session()
        self.registry.register("alice", old)
        self.registry.register("bob", Session())
        old.begin_closing()
        self.registry.register("alice", Session())
        self.assertEqual(self.registry.snapshot(), ["bob", "alice"])

    def test_unregister_is_idempotent(self):
        session = Session()
        self.registry.register("alice", session)
        self.assertTrue(self.registry.unregister("alice"))
        self.assertFalse(self.registry.unregister("alice"))
        self.assertFalse(self.registry.unregister("nobody"))
        self.assertIsNone(self.registry.lookup("alice"))

    def test_unregister_only_removes_matching_session(self):
        current = Session()
        self.registry.register("alice", current)
        self.assertFalse(self.registry.unregister("alice", Session()))
        self.assertIs(self.registry.lookup("alice"), current)
        self.assertTrue(self.registry.unregister("alice", current))

    def test_concurrent_joins_single_winner(self):
        """Many threads race for one name; exactly one registration succeeds."""
        contenders = 16
        barrier = threading.Barrier(contenders)
        winners, losers = [], []
        lock = threading.Lock()

        def attempt():
            session = Session()
            barrier.wait()
            try:
                self.registry.register("alice", session)
            except DuplicateUsername:
                with lock:
                    losers.append(session)
            else:
                with lock:
                    winners.append(session)

        threads = [threading.Thread(target=attempt) for _ in range(contenders)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(len(winners), 1)
        self.assertEqual(len(losers), contenders - 1)
        self.assertIs(self.registry.lookup("alice"), winners[0])


class TestBroadcast(unittest.TestCase):

    def setUp(self):
        self.registry = SessionRegistry()
        self.sessions = {}
        for name in ("alice", "bob", "carol", "dave"):
            session = Session()
            self.registry.register(name, session)
            self.sessions[name] = session

    def test_excludes_sender_and_counts_deliveries(self):
        count = self.registry.broadcast(Chat("alice", "hello"), exclude="alice")
        self.assertEqual(count, 3)
        self.assertEqual(drain(self.sessions["alice"]), [])
        for name in ("bob", "carol", "dave"):
            self.assertEqual(drain(self.sessions[name]), [Chat("alice", "hello")])

    def test_skips_sessions_that_are_leaving(self):
        self.sessions["dave"].begin_closing()
        count = self.registry.broadcast(SystemNotice("hi"))
        self.assertEqual(count, 3)
        self.assertEqual(drain(self.sessions["dave"]), [])

    def test_fifo_per_recipient(self):
        for i in range(5):
            self.registry.broadcast(Chat("alice", str(i)), exclude="alice")
        self.assertEqual([m.body for m in drain(self.sessions["bob"])],
                         ["0", "1", "2", "3", "4"])

    def test_stalled_peer_does_not_block_others(self):
        """A full queue costs one bounded wait, then that peer is dropped."""
        registry = SessionRegistry()
        stalled = Session(queue_size=1, send_timeout=0.5)
        healthy = Session()
        registry.register("stalled", stalled)
        registry.register("healthy", healthy)
        stalled.deliver(SystemNotice("fills the queue"))

        started = time.monotonic()
        self.assertEqual(registry.broadcast(Chat("x", "1")), 1)
        self.assertLess(time.monotonic() - started, 2.0)

        # Once marked stalled, no further waiting happens for it.
        started = time.monotonic()
        self.assertEqual(registry.broadcast(Chat("x", "2")), 1)
        self.assertLess(time.monotonic() - started, 0.25)

        self.assertEqual([m.body for m in drain(healthy)], ["1", "2"])

    def test_serialized_holds_off_broadcasts(self):
        done = threading.Event()

        def send():
            self.registry.broadcast(Chat("alice", "late"), exclude="alice")
            done.set()

        with self.registry.serialized():
            sender = threading.Thread(target=send)
            sender.start()
            self.assertFalse(done.wait(0.2))
            self.sessions["bob"].deliver(SystemNotice("first"))
        sender.join(timeout=5)
        self.assertEqual(drain(self.sessions["bob"]),
                         [SystemNotice("first"), Chat("alice", "late")])


class TestSessionLifecycle(unittest.TestCase):

    def test_begin_closing_only_once(self):
        session = Session()
        self.assertTrue(session.begin_closing())
        self.assertFalse(session.begin_closing())
        session.close()
        self.assertIs(session.state, SessionState.CLOSED)
        self.assertFalse(session.begin_closing())

    def test_close_queues_stop_marker_after_pending_frames(self):
        session = Session()
        session.deliver(SystemNotice("last words"))
        session.close()
        self.assertEqual(session.outbox.get_nowait(), SystemNotice("last words"))
        self.assertIs(session.outbox.get_nowait(), CLOSE)

    def test_closed_session_accepts_nothing(self):
        session = Session()
        session.close()
        self.assertFalse(session.deliver(SystemNotice("too late")))

    def test_username_set_once(self):
        session = Session()
        session.activate("alice")
        with self.assertRaises(RuntimeError):
            session.activate("bob")
        self.assertEqual(session.username, "alice")


if __name__ == "__main__":
    unittest.main()
