"""Integration tests for CLI commands with the svn client replaced by fakes."""

import subprocess
from pathlib import Path

import pytest

from fakes import SCOPE, FakeRepository, change, commit
from svhist.cli import main
from svhist.core.bisect import SessionStatus
from svhist.persistence import StateManager
from svhist.source.svn import SvnInfo


def _info(rel_path: str, wc_root: str, revision: int = 31) -> SvnInfo:
    return SvnInfo(
        path=".",
        kind="dir",
        url=f"file:///repo{rel_path}",
        rel_path=rel_path,
        root_url="file:///repo",
        uuid="0000-uuid",
        revision=revision,
        commit_revision=revision,
        commit_author="alice",
        commit_date=None,
        wc_root=wc_root,
    )


class CliEnv:
    """Runs the CLI against a fake repository and a temporary database."""

    def __init__(self, tmp_path: Path, capsys, monkeypatch) -> None:
        self.capsys = capsys
        self.monkeypatch = monkeypatch
        self.wc = str(tmp_path / "wc")
        self.db_path = str(tmp_path / "state.db")
        self.config = tmp_path / "svhist.yaml"
        self.config.write_text(f"state:\n  database: {self.db_path}\n")

    def use(self, repo: FakeRepository, rel_path: str = SCOPE) -> FakeRepository:
        info = _info(rel_path, self.wc)
        self.monkeypatch.setattr("svhist.cli.open_client", lambda config, target=".": (repo, info))
        return repo

    def run(self, *argv: str):
        code = main(["-c", str(self.config), *argv])
        return code, self.capsys.readouterr().out

    def session(self):
        state = StateManager(self.db_path)
        try:
            return state.load_session(self.wc)
        finally:
            state.close()


@pytest.fixture
def env(tmp_path, capsys, monkeypatch, sparse_repo) -> CliEnv:
    cli_env = CliEnv(tmp_path, capsys, monkeypatch)
    cli_env.use(sparse_repo)
    return cli_env


class TestBisectCommands:
    """Tests for 'svhist bisect' subcommands."""

    def test_start_selects_lower_median(self, env, sparse_repo):
        code, out = env.run("bisect", "start", "10", "30")

        assert code == 0
        assert "Bisecting: 1 revisions left to test after this (roughly 1 steps)" in out
        assert "[17] change 17" in out
        assert sparse_repo.updates == [17]
        assert env.session().current == 17

    def test_bisect_to_found(self, env):
        env.run("bisect", "start", "10", "30")

        code, out = env.run("bisect", "bad")
        assert code == 0
        assert "[14] change 14" in out

        code, out = env.run("bisect", "good")
        assert code == 0
        assert "r17 is the first bad revision" in out

        session = env.session()
        assert session.status is SessionStatus.FOUND
        assert session.culprit == 17

    def test_start_twice(self, env):
        env.run("bisect", "start", "10", "30")

        code, out = env.run("bisect", "start", "10", "30")

        assert code == 1
        assert "already active" in out

    def test_start_after_finished_session(self, env):
        env.run("bisect", "start", "10", "30")
        env.run("bisect", "good", "22")

        code, _ = env.run("bisect", "start", "10", "30")

        assert code == 0
        assert env.session().status is SessionStatus.ACTIVE

    def test_verdict_without_session(self, env):
        code, out = env.run("bisect", "good")

        assert code == 1
        assert "✗" in out
        assert "bisect start" in out

    def test_closed_session(self, env):
        env.run("bisect", "start", "10", "30")
        env.run("bisect", "good", "22")

        code, out = env.run("bisect", "bad", "14")

        assert code == 1
        assert "found" in out

    def test_empty_range(self, env):
        code, out = env.run("bisect", "start", "14", "17")

        assert code == 1
        assert "nothing to bisect" in out

    def test_failed_update_can_be_retried(self, env, sparse_repo):
        sparse_repo.fail_updates.add(17)

        code, out = env.run("bisect", "start", "10", "30")
        assert code == 1
        assert "bisect next" in out
        assert env.session().current is None

        sparse_repo.fail_updates.clear()
        code, _ = env.run("bisect", "next")
        assert code == 0
        assert sparse_repo.updates == [17, 17]
        assert env.session().current == 17

    def test_skip_current(self, env, sparse_repo):
        env.run("bisect", "start", "10", "30")

        code, _ = env.run("bisect", "skip")

        assert code == 0
        assert sparse_repo.updates == [17, 14]
        assert env.session().skipped == frozenset({17})

    def test_skip_range_until_undecidable(self, env):
        env.run("bisect", "start", "10", "30")

        code, out = env.run("bisect", "skip", "14:22")

        assert code == 0
        assert "only skipped revisions left" in out
        assert env.session().status is SessionStatus.UNDECIDABLE

    def test_unskip(self, env):
        env.run("bisect", "start", "10", "30")
        env.run("bisect", "skip", "17")

        env.run("bisect", "unskip", "17")

        assert env.session().skipped == frozenset()

    def test_custom_terms(self, env):
        env.run("bisect", "start", "--term-good", "old", "--term-bad", "new", "10", "30")

        code, _ = env.run("bisect", "mark", "new")
        assert code == 0

        code, out = env.run("bisect", "terms", "--term-bad")
        assert out.strip() == "new"

        _, out = env.run("bisect", "log")
        assert "svhist bisect mark new 17" in out

    def test_invalid_term(self, env):
        code, out = env.run("bisect", "start", "--term-good", "reset", "10", "30")

        assert code == 1
        assert "✗" in out

    def test_status(self, env):
        env.run("bisect", "start", "10", "30")
        env.run("bisect", "skip", "22")

        code, out = env.run("bisect", "status")

        assert code == 0
        assert "Scope:        /trunk/app" in out
        assert "Skipped:      r22" in out
        assert "Testing:      r14" in out

    def test_log_and_replay(self, env, tmp_path):
        env.run("bisect", "start", "10", "30")
        env.run("bisect", "bad")
        _, log_text = env.run("bisect", "log")
        assert "svhist bisect start --scope /trunk/app 10 30" in log_text
        assert "# bad: [17] change 17" in log_text
        assert "svhist bisect bad 17" in log_text

        logfile = tmp_path / "bisect.log"
        logfile.write_text(log_text)
        env.run("bisect", "reset", "--no-update")

        code, _ = env.run("bisect", "replay", str(logfile))

        assert code == 0
        session = env.session()
        assert (session.good_revision, session.bad_revision) == (10, 17)
        assert session.current == 14

    def test_run(self, env, sparse_repo, monkeypatch):
        def fake_run(cmd, cwd=None, check=False):
            code = 1 if sparse_repo.updates[-1] >= 22 else 0
            return subprocess.CompletedProcess(cmd, code)

        monkeypatch.setattr("svhist.cli.subprocess.run", fake_run)
        env.run("bisect", "start", "10", "30")

        code, out = env.run("bisect", "run", "./check.sh", "--quick")

        assert code == 0
        assert "r22 is the first bad revision" in out
        assert env.session().culprit == 22

    def test_run_aborts_on_high_exit_code(self, env, monkeypatch):
        monkeypatch.setattr(
            "svhist.cli.subprocess.run",
            lambda cmd, cwd=None, check=False: subprocess.CompletedProcess(cmd, 200),
        )
        env.run("bisect", "start", "10", "30")

        code, out = env.run("bisect", "run", "./check.sh")

        assert code == 1
        assert "exit code 200" in out
        assert env.session().status is SessionStatus.ACTIVE

    def test_reset_restores_original_revision(self, env, sparse_repo):
        env.run("bisect", "start", "10", "30")

        code, _ = env.run("bisect", "reset")

        assert code == 0
        assert sparse_repo.updates == [17, 31]
        assert env.session() is None

    def test_reset_without_update(self, env, sparse_repo):
        env.run("bisect", "start", "10", "30")

        env.run("bisect", "reset", "--no-update")

        assert sparse_repo.updates == [17]

    def test_reset_finished_session(self, env):
        env.run("bisect", "start", "10", "30")
        env.run("bisect", "good", "22")

        code, out = env.run("bisect", "reset", "--no-update")

        assert code == 0
        assert "Bisect session ended" in out
        assert env.session() is None
        code, out = env.run("bisect", "log")
        assert code == 1
        assert "No bisect session" in out

    def test_start_on_branch_tests_inherited_revisions(self, env):
        repo = env.use(
            FakeRepository(
                [
                    commit(5, change("A", "/trunk/f")),
                    commit(45, change("M", "/trunk/f")),
                    commit(49, change("M", "/trunk/f")),
                    commit(50, change("A", "/branches/x", "/trunk@49", kind="dir")),
                    commit(55, change("M", "/branches/x/f")),
                    commit(60, change("M", "/branches/x/f")),
                ]
            ),
            "/branches/x/f",
        )

        code, out = env.run("bisect", "start", "40", "60")
        assert code == 0
        assert "[49] change 49" in out
        env.run("bisect", "bad")

        code, out = env.run("bisect", "bad")

        assert code == 0
        assert "r45 is the first bad revision" in out
        assert repo.updates == [49, 45]

    def test_reset_without_session(self, env):
        code, out = env.run("bisect", "reset")

        assert code == 0
        assert "No bisect session" in out


class TestHistoryCommands:
    """Tests for 'svhist lineage' and 'svhist filerevs'."""

    def test_lineage(self, env, branch_repo):
        env.use(branch_repo, "/branches/x/file.txt")

        code, out = env.run("lineage", "file.txt")

        assert code == 0
        assert "/trunk/file.txt  r5..r49  (3 commits)" in out
        assert "/branches/x/file.txt  r50..HEAD  (3 commits)" in out
        assert "copied from /trunk/file.txt@49" in out

    def test_lineage_missing_path(self, env, branch_repo):
        env.use(branch_repo, "/trunk/missing.txt")

        code, out = env.run("lineage", "missing.txt")

        assert code == 1
        assert "does not exist" in out

    def test_filerevs(self, env, branch_repo):
        repo = FakeRepository(
            branch_repo.records,
            directories={"/branches": ["x", "y"]},
            missing=["/branches/y/file.txt"],
        )
        env.use(repo, "/trunk/file.txt")

        code, out = env.run("filerevs", "-B", "file.txt")

        assert code == 0
        lines = out.splitlines()
        assert ["Location", "Revision", "Author", "Date"] in [line.split() for line in lines]
        assert any(line.startswith("/trunk ") and " 49 " in line for line in lines)
        assert any(line.startswith("/branches/x ") and " 60 " in line for line in lines)
        assert any(line.startswith("/branches/y ") and "<does not exist>" in line for line in lines)
        assert "Shared history:" in out


class TestInitConfig:
    """Tests for 'svhist init-config'."""

    def test_writes_defaults(self, env, tmp_path):
        output = tmp_path / "out.yaml"

        code, _ = env.run("init-config", "-o", str(output))
        assert code == 0
        assert "page_size: 500" in output.read_text()

        code, out = env.run("init-config", "-o", str(output))
        assert code == 1
        assert "already exists" in out

        code, _ = env.run("init-config", "-o", str(output), "-f")
        assert code == 0


def test_no_command_prints_help(env):
    code, out = env.run()

    assert code == 1
    assert "usage" in out
