#!/usr/bin/env python3
"""
Tests for the terminal client: command parsing, rendering and a live session
against a local ChatServer.
"""

import socket
import threading
import unittest

from tcpchat.client import ChatClient, UsageError, parse_input, render
from tcpchat.dispatcher import ChatObserver
from tcpchat.protocol import (
    Chat, Error, ListRequest, ListResponse, Quit, SystemNotice, Whisper, decode,
)
from tcpchat.server import ChatServer


class TestParseInput(unittest.TestCase):

    def test_plain_text_is_chat(self):
        self.assertEqual(parse_input("hello: there\n", "alice"), Chat("alice", "hello: there"))

    def test_blank_lines_ignored(self):
        self.assertIsNone(parse_input("", "alice"))
        self.assertIsNone(parse_input("   \n", "alice"))

    def test_commands(self):
        self.assertEqual(parse_input("/list", "alice"), ListRequest())
        self.assertEqual(parse_input("/QUIT", "alice"), Quit("alice"))
        self.assertEqual(parse_input("/whisper bob meet at 5:30", "alice"),
                         Whisper("alice", "bob", "meet at 5:30"))

    def test_bad_commands(self):
        with self.assertRaises(UsageError):
            parse_input("/whisper bob", "alice")
        with self.assertRaises(UsageError):
            parse_input("/whisper b:ob hi", "alice")
        with self.assertRaises(UsageError):
            parse_input("/dance", "alice")


class TestRender(unittest.TestCase):

    def test_contents_survive_colouring(self):
        self.assertIn("<bob>", render(Chat("bob", "hi")))
        self.assertIn("hi", render(Chat("bob", "hi")))
        self.assertIn("whisper from bob", render(Whisper("bob", "alice", "psst")))
        self.assertIn("bob left", render(SystemNotice("bob left")))
        self.assertIn("user not found", render(Error("user not found")))
        self.assertIn("alice, bob", render(ListResponse(("alice", "bob"))))


class TestLiveClient(unittest.TestCase):

    def setUp(self):
        self.server = ChatServer("127.0.0.1", 0, observer=ChatObserver())
        self.thread = threading.Thread(target=self.server.start, daemon=True)
        self.thread.start()

        # Raw observer connection joined as "alice".
        self.sock = socket.create_connection(self.server.address, timeout=3)
        self.rfile = self.sock.makefile("r", encoding="utf-8", newline="\n")
        self.sock.sendall(b"JOIN:alice\n")
        self.assertEqual(self.recv(), SystemNotice("welcome alice"))
        self.recv()                                     # user list

    def tearDown(self):
        self.rfile.close()
        self.sock.close()
        self.server.stop()
        self.thread.join(timeout=5)

    def recv(self):
        return decode(self.rfile.readline())

    def test_client_joins_chats_and_quits(self):
        client = ChatClient(*self.server.address, name="carol")
        client.connect()
        self.assertEqual(self.recv(), SystemNotice("carol joined"))

        client.send(parse_input("hi alice", client.name))
        client.send(parse_input("/whisper alice secret", client.name))
        self.assertEqual(self.recv(), Chat("carol", "hi alice"))
        self.assertEqual(self.recv(), Whisper("carol", "alice", "secret"))

        client.send(Quit("carol"))
        client.close()
        self.assertEqual(self.recv(), SystemNotice("carol left"))
        self.assertFalse(client.running.is_set())

    def test_hang_up_without_quit(self):
        client = ChatClient(*self.server.address, name="dave")
        client.connect()
        self.assertEqual(self.recv(), SystemNotice("dave joined"))
        client.close()
        self.assertEqual(self.recv(), SystemNotice("dave left"))


if __name__ == "__main__":
    unittest.main()
