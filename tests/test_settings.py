import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch


class TestEngineSettings(unittest.TestCase):
    def test_defaults_without_settings_file(self) -> None:
        from lessonpane.kernel.settings import load_settings

        with tempfile.TemporaryDirectory() as td:
            with patch.dict(os.environ, {"LESSONPANE_HOME": td}, clear=False):
                s = load_settings(environ={})
        self.assertEqual(s.poll_interval_s, 0.2)
        self.assertEqual(s.tmux_timeout_s, 2.0)
        self.assertTrue(s.attach)
        self.assertEqual(s.paths.signal.name, "lessonpane_success.flag")
        self.assertEqual(s.resolved_session_name(), f"lessonpane-{os.getpid()}")

    def test_yaml_file_and_env_overrides(self) -> None:
        from lessonpane.kernel.settings import load_settings

        with tempfile.TemporaryDirectory() as td:
            Path(td, "settings.yaml").write_text(
                "poll_interval_s: 0.5\n"
                "session_name: from-file\n"
                "status_file: /tmp/from-file-status\n"
                "max_step_seconds: 30\n"
                "attach: false\n",
                encoding="utf-8",
            )
            env = {"LESSONPANE_SIGNAL_FILE": str(Path(td) / "flag"), "LESSONPANE_SESSION": "from-env"}
            with patch.dict(os.environ, {"LESSONPANE_HOME": td}, clear=False):
                s = load_settings(environ=env)
        self.assertEqual(s.poll_interval_s, 0.5)
        self.assertEqual(s.max_step_seconds, 30.0)
        self.assertFalse(s.attach)
        self.assertEqual(s.session_name, "from-env")
        self.assertEqual(s.paths.status, Path("/tmp/from-file-status"))
        self.assertEqual(s.paths.signal, Path(td) / "flag")

    def test_bad_values_fall_back(self) -> None:
        from lessonpane.kernel.settings import EngineSettings

        s = EngineSettings.from_dict({"poll_interval_s": "fast", "instruction_height": -4, "linger_s": -3})
        self.assertEqual(s.poll_interval_s, 0.2)
        self.assertEqual(s.instruction_height, 0)
        self.assertEqual(s.linger_s, 2.0)

    def test_zero_instruction_height_disables_resize(self) -> None:
        from lessonpane.kernel.settings import EngineSettings

        s = EngineSettings.from_dict({"instruction_height": 0})
        self.assertEqual(s.instruction_height, 0)
        self.assertEqual(EngineSettings.from_dict(s.to_dict()).instruction_height, 0)

    def test_save_then_load(self) -> None:
        from lessonpane.kernel.settings import EngineSettings, load_settings, save_settings

        with tempfile.TemporaryDirectory() as td:
            with patch.dict(os.environ, {"LESSONPANE_HOME": td}, clear=False):
                p = save_settings(EngineSettings(editor="vim", linger_s=0.5))
                self.assertTrue(p.exists())
                s = load_settings(environ={})
        self.assertEqual(s.editor, "vim")
        self.assertEqual(s.linger_s, 0.5)


if __name__ == "__main__":
    unittest.main()
