import shlex
import shutil
import unittest
from pathlib import Path


class TestDisplayCommands(unittest.TestCase):
    def test_instruction_loop_polls_and_consumes_flag(self) -> None:
        from lessonpane.contracts.v1 import LessonStep, ProgressTarget
        from lessonpane.kernel.display import instruction_command

        step = LessonStep(instruction="Don't panic", explanation="it's fine", expected_input="lll")
        cmd = instruction_command(
            step,
            ProgressTarget(row=1, col=4),
            signal_path=Path("/tmp/my flag"),
            title="Ch 1",
        )
        argv = shlex.split(cmd)
        self.assertEqual(argv[:2], ["bash", "-c"])
        script = argv[2]
        self.assertIn("[ -f '/tmp/my flag' ]", script)
        self.assertIn("rm -f '/tmp/my flag'", script)
        self.assertIn("Don'\"'\"'t panic", script)
        self.assertIn("line 1, column 4", script)
        self.assertIn("sleep 0.2", script)

    def test_editor_script_writes_status_path(self) -> None:
        from lessonpane.kernel.display import editor_script

        script = editor_script(Path("/tmp/it's/status.txt"), (2, 3))
        self.assertIn("call writefile([l:line], '/tmp/it''s/status.txt')", script)
        self.assertIn("call cursor(2, 3)", script)
        self.assertIn("'LINE:' . line('.') . ',COL:' . col('.')", script)

    def test_prepare_files_and_interactive_command(self) -> None:
        from lessonpane.contracts.v1 import Exercise, LessonStep
        from lessonpane.kernel.display import interactive_command, prepare_step_files

        ex = Exercise(title="t", sample_code=["a", "b"])
        step = LessonStep(instruction="go", cursor_start=(1, 0), cursor_end=(1, 1))
        files = prepare_step_files(ex, step, status_path=Path("/tmp/status"))
        self.addCleanup(shutil.rmtree, files.workdir, True)
        self.assertEqual(files.sample.read_text(encoding="utf-8"), "a\nb\n")
        self.assertIn("call cursor(2, 1)", files.script.read_text(encoding="utf-8"))

        cmd = interactive_command("nvim --clean", files, tmux_socket="sock")
        editor_part, detach_part = cmd.split("; ")
        self.assertEqual(shlex.split(editor_part), ["nvim", "--clean", "-S", str(files.script), str(files.sample)])
        self.assertEqual(shlex.split(detach_part), ["tmux", "-L", "sock", "detach-client"])

        cmd = interactive_command("vim", files, tmux_socket="sock", end_session="lesson-x")
        self.assertEqual(
            shlex.split(cmd.split("; ")[1]), ["tmux", "-L", "sock", "kill-session", "-t", "=lesson-x"]
        )

    def test_editor_script_reports_mode(self) -> None:
        from lessonpane.kernel.display import editor_script

        script = editor_script(Path("/tmp/status.txt"))
        self.assertIn("mode(1)", script)
        self.assertIn("exists('##ModeChanged')", script)
        self.assertIn("call cursor(1, 1)", script)

    def test_goal_screen_shows_position_in_sequence(self) -> None:
        from lessonpane.contracts.v1 import Exercise
        from lessonpane.kernel.display import goal_instruction_command, goal_lines

        ex = Exercise.model_validate(
            {
                "title": "modes",
                "description": "in and out",
                "goals": [
                    {"goal_type": "position", "target": [2, 5]},
                    {"goal_type": "mode", "target": "insert", "hint": "press i"},
                    {"goal_type": "mode", "target": "normal"},
                ],
            }
        )
        lines = goal_lines(ex, 1)
        self.assertEqual(lines[0], "=== modes ===")
        self.assertIn("=== Goal 2/3 ===", lines)
        self.assertIn("Switch to insert mode.", lines)
        self.assertIn("Hint: press i", lines)

        script = shlex.split(goal_instruction_command(ex, 0, signal_path=Path("/tmp/flag"), title="Ch 1"))[2]
        self.assertIn("=== Goal 1/3 ===", script)
        self.assertIn("Move the cursor to line 2, column 5.", script)
        self.assertIn("[ -f /tmp/flag ]", script)


if __name__ == "__main__":
    unittest.main()
