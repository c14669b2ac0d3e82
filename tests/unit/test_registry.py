import json
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hostwatch_core.protocol import (
    ClientMessage,
    ProtocolError,
    connected_message,
    intent,
    parse_client_message,
)
from hostwatch_core.registry import ChannelState, SubscriptionRegistry


class RegistryTests(unittest.TestCase):
    def test_new_channel_is_connected_not_subscribed(self):
        registry = SubscriptionRegistry()
        channel = registry.add(object())
        self.assertIn(channel, registry)
        self.assertEqual(channel.state, ChannelState.CONNECTED)
        self.assertEqual(registry.active_count, 0)
        self.assertEqual(len(registry), 1)

    def test_subscribe_and_unsubscribe(self):
        registry = SubscriptionRegistry()
        a = registry.add(object())
        b = registry.add(object())
        registry.subscribe(a)
        registry.subscribe(b)
        registry.unsubscribe(b)
        self.assertEqual(registry.active_count, 1)
        self.assertEqual(registry.subscribed(), [a])
        self.assertEqual(b.state, ChannelState.UNSUBSCRIBED)

    def test_remove_closes_channel(self):
        registry = SubscriptionRegistry()
        channel = registry.add(object())
        registry.subscribe(channel)
        self.assertTrue(registry.remove(channel))
        self.assertFalse(registry.remove(channel))
        self.assertEqual(channel.state, ChannelState.CLOSED)
        self.assertEqual(registry.active_count, 0)

    def test_removed_channel_cannot_resubscribe(self):
        registry = SubscriptionRegistry()
        channel = registry.add(object())
        registry.remove(channel)
        registry.subscribe(channel)
        self.assertEqual(channel.state, ChannelState.CLOSED)
        self.assertNotIn(channel, registry)

    def test_channel_ids_are_unique(self):
        registry = SubscriptionRegistry()
        ids = {registry.add(object()).channel_id for _ in range(50)}
        self.assertEqual(len(ids), 50)


class ProtocolTests(unittest.TestCase):
    def test_parse_known_messages(self):
        self.assertIs(parse_client_message('{"type": "subscribe"}'), ClientMessage.SUBSCRIBE)
        self.assertIs(parse_client_message(b'{"type": "requestUpdate"}'), ClientMessage.REQUEST_UPDATE)

    def test_parse_rejects_bad_frames(self):
        for raw in ("not json", "[]", '{"kind": "subscribe"}', '{"type": "shutdown"}'):
            with self.subTest(raw=raw):
                with self.assertRaises(ProtocolError):
                    parse_client_message(raw)

    def test_outgoing_frames(self):
        self.assertEqual(json.loads(intent(ClientMessage.UNSUBSCRIBE)), {"type": "unsubscribe"})
        self.assertEqual(json.loads(connected_message(now_ms=1700000000000)), {"type": "connected", "timestamp": 1700000000000})


if __name__ == "__main__":
    unittest.main()
