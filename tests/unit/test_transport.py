import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "client"))

from hostwatch_client.transport import WebSocketChannel


class FakeConnection:
    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []
        self.close_calls = 0

    def send(self, text):
        self.sent.append(text)

    def recv(self):
        return self.frames.pop(0)

    def close(self):
        self.close_calls += 1


class WebSocketChannelTests(unittest.TestCase):
    def test_recv_decodes_binary_frames(self):
        channel = WebSocketChannel(FakeConnection([b'{"type": "connected"}', '{"type": "systemUpdate"}']))
        self.assertEqual(channel.recv(), '{"type": "connected"}')
        self.assertEqual(channel.recv(), '{"type": "systemUpdate"}')

    def test_close_is_idempotent_and_blocks_sends(self):
        connection = FakeConnection([])
        channel = WebSocketChannel(connection)
        channel.send("hello")
        channel.close()
        channel.close()
        self.assertFalse(channel.is_open)
        self.assertEqual(connection.close_calls, 1)
        self.assertEqual(connection.sent, ["hello"])
        with self.assertRaises(RuntimeError):
            channel.send("again")


if __name__ == "__main__":
    unittest.main()
