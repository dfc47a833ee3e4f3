import subprocess
import unittest

from fake_tmux import FakeTmux


class TestTmuxDispatcher(unittest.TestCase):
    def _dispatcher(self, fake, **kw):
        from lessonpane.runners.tmux import TmuxDispatcher

        return TmuxDispatcher(runner=fake, **kw)

    def test_create_split_and_list(self) -> None:
        fake = FakeTmux()
        d = self._dispatcher(fake)
        d.create_session("s1")
        self.assertTrue(d.has_session("s1"))
        pid = d.split_pane("s1")
        self.assertEqual(pid, "%1")
        panes = d.list_panes("s1")
        self.assertEqual([(p.index, p.pane_id) for p in panes], [(0, "%0"), (1, "%1")])
        self.assertTrue(panes[1].active)

    def test_create_existing_session_is_already_exists(self) -> None:
        from lessonpane.runners.tmux import DispatchError

        fake = FakeTmux()
        d = self._dispatcher(fake)
        d.create_session("s1")
        with self.assertRaises(DispatchError) as ctx:
            d.create_session("s1")
        self.assertEqual(ctx.exception.kind, "already_exists")

    def test_send_keys_is_literal_with_explicit_terminator(self) -> None:
        fake = FakeTmux()
        d = self._dispatcher(fake)
        d.create_session("s1")
        pid = d.split_pane("s1")
        d.send_keys(pid, "echo C-c Enter", "Enter")
        d.send_keys(pid, "partial", None)
        self.assertEqual(fake.keys[pid], ["literal:echo C-c Enter", "key:Enter", "literal:partial"])

    def test_send_keys_to_missing_pane_is_send_failed(self) -> None:
        from lessonpane.runners.tmux import DispatchError

        d = self._dispatcher(FakeTmux())
        with self.assertRaises(DispatchError) as ctx:
            d.send_keys("%42", "x")
        self.assertEqual(ctx.exception.kind, "send_failed")

    def test_kill_session_is_idempotent(self) -> None:
        fake = FakeTmux()
        d = self._dispatcher(fake)
        d.create_session("s1")
        d.kill_session("s1")
        d.kill_session("s1")
        self.assertFalse(d.has_session("s1"))
        self.assertEqual(fake.count("kill-session"), 1)

    def test_timeout_is_retried_once(self) -> None:
        fake = FakeTmux()
        fake.timeouts["has-session"] = 1
        d = self._dispatcher(fake)
        self.assertFalse(d.has_session("nope"))
        self.assertEqual(fake.count("has-session"), 2)

    def test_repeated_timeout_is_transient(self) -> None:
        from lessonpane.runners.tmux import DispatchError

        fake = FakeTmux()
        fake.timeouts["has-session"] = 2
        d = self._dispatcher(fake)
        with self.assertRaises(DispatchError) as ctx:
            d.has_session("nope")
        self.assertEqual(ctx.exception.kind, "transient")
        self.assertEqual(fake.count("has-session"), 2)

    def test_missing_binary_is_spawn_failed(self) -> None:
        from lessonpane.runners.tmux import DispatchError

        def runner(argv, timeout_s):
            raise FileNotFoundError("tmux")

        d = self._dispatcher(runner)
        with self.assertRaises(DispatchError) as ctx:
            d.create_session("s1")
        self.assertEqual(ctx.exception.kind, "spawn_failed")

    def test_resize_failure_is_transient(self) -> None:
        from lessonpane.runners.tmux import DispatchError

        d = self._dispatcher(FakeTmux())
        with self.assertRaises(DispatchError) as ctx:
            d.resize_pane("%9", height=10)
        self.assertEqual(ctx.exception.kind, "transient")

    def test_socket_is_passed_to_every_call(self) -> None:
        seen = []

        def runner(argv, timeout_s):
            seen.append(argv)
            return 1, "", "no server running"

        d = self._dispatcher(runner, socket="lesson")
        d.has_session("s1")
        self.assertEqual(seen[0][:3], ["tmux", "-L", "lesson"])
        self.assertEqual(d.attach_argv("s1")[:3], ["tmux", "-L", "lesson"])

    def test_subprocess_timeout_maps_through_default_runner(self) -> None:
        from unittest.mock import patch

        from lessonpane.runners.tmux import DispatchError, TmuxDispatcher

        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(["tmux"], 2.0)) as run:
            with self.assertRaises(DispatchError) as ctx:
                TmuxDispatcher(timeout_s=2.0).has_session("s1")
        self.assertEqual(ctx.exception.kind, "transient")
        self.assertEqual(run.call_count, 2)


class TestParsePaneList(unittest.TestCase):
    def test_sorted_by_index_and_garbage_skipped(self) -> None:
        from lessonpane.runners.tmux import parse_pane_list

        panes = parse_pane_list("1 %7 1\nbogus\n0 %3 0\n\n")
        self.assertEqual([(p.index, p.pane_id, p.active) for p in panes], [(0, "%3", False), (1, "%7", True)])


if __name__ == "__main__":
    unittest.main()
