"""Tests for per-job workspaces."""

import pytest

from playground.models.execution import SubmittedFile
from playground.sandbox.workspace import STDIN_FILENAME, Workspace, sanitize_name


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("main.c", "main.c"),
        ("my file!.c", "myfile.c"),
        ("../../etc/passwd", "....etcpasswd"),
        ("/abs/path.h", "abspath.h"),
        ("util-2_final.h", "util-2_final.h"),
        ("", ""),
    ],
)
def test_sanitize_name(raw, expected):
    assert sanitize_name(raw) == expected


class TestWorkspace:
    def test_each_workspace_gets_its_own_directory(self, jobs_dir):
        a = Workspace(jobs_dir)
        b = Workspace(jobs_dir)
        assert a.job_id != b.job_id
        assert a.path.parent == jobs_dir

    def test_materialize_keeps_files_inside(self, jobs_dir):
        ws = Workspace(jobs_dir)
        ws.create()
        written = ws.materialize(
            [
                SubmittedFile(name="main.c", content="int main(void){return 0;}"),
                SubmittedFile(name="../evil.h", content="#define X 1"),
            ]
        )
        assert written == ["main.c", "..evil.h"]
        for name in written:
            assert (ws.path / name).parent == ws.path
        assert not (jobs_dir / "evil.h").exists()
        assert (ws.path / "main.c").read_text() == "int main(void){return 0;}"

    @pytest.mark.parametrize("name", ["", "..", "...", "/", "!!"])
    def test_empty_or_dot_names_are_skipped(self, jobs_dir, name):
        ws = Workspace(jobs_dir)
        ws.create()
        assert ws.materialize([SubmittedFile(name=name, content="x")]) == []
        assert list(ws.path.iterdir()) == []

    def test_stdin_written_to_input_file(self, jobs_dir):
        ws = Workspace(jobs_dir)
        ws.create()
        ws.materialize([SubmittedFile(name="main.c", content="")], stdin="5\n")
        assert ws.has_stdin()
        assert (ws.path / STDIN_FILENAME).read_text() == "5\n"

    def test_no_stdin_file_without_stdin(self, jobs_dir):
        ws = Workspace(jobs_dir)
        ws.create()
        ws.materialize([SubmittedFile(name="main.c", content="")], stdin="")
        assert not ws.has_stdin()

    def test_stdin_overrides_submitted_input_file(self, jobs_dir):
        ws = Workspace(jobs_dir)
        ws.create()
        ws.materialize([SubmittedFile(name=STDIN_FILENAME, content="from file")], stdin="from stdin")
        assert ws.stdin_path.read_text() == "from stdin"

    def test_destroy_is_idempotent(self, jobs_dir):
        ws = Workspace(jobs_dir)
        ws.create()
        ws.materialize([SubmittedFile(name="main.c", content="")])
        ws.destroy()
        assert not ws.exists()
        ws.destroy()

    def test_destroy_never_created(self, jobs_dir):
        Workspace(jobs_dir).destroy()
