import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "apps" / "server"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "client"))
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from hostwatch_app.cli import build_parser


class CliTests(unittest.TestCase):
    def test_serve_command(self):
        args = build_parser().parse_args(["serve", "--port", "5050", "--period-ms", "1000"])
        self.assertEqual(args.command, "serve")
        self.assertEqual(args.port, 5050)
        self.assertEqual(args.period_ms, 1000)

    def test_processes_command(self):
        args = build_parser().parse_args(["processes", "--limit", "5", "--sort", "memory"])
        self.assertEqual(args.command, "processes")
        self.assertEqual(args.limit, 5)
        self.assertEqual(args.sort, "memory")

    def test_processes_rejects_unknown_sort(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args(["processes", "--sort", "rss"])

    def test_doctor_command(self):
        args = build_parser().parse_args(["doctor", "--export", "--out-dir", "/tmp/out"])
        self.assertTrue(args.export)
        self.assertEqual(args.out_dir, "/tmp/out")

    def test_watch_command(self):
        args = build_parser().parse_args(["watch", "--url", "ws://host:5000/ws", "--count", "3"])
        self.assertEqual(args.command, "watch")
        self.assertEqual(args.url, "ws://host:5000/ws")
        self.assertEqual(args.count, 3)


if __name__ == "__main__":
    unittest.main()
