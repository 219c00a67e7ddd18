#!/usr/bin/env python3
"""svhist - Subversion history correlation and bisect CLI.

Main command-line interface for lineage queries across branches and for
bisecting the revisions of a working copy.
"""

import argparse
import logging
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from svhist.config.config import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ToolConfig,
    create_config,
    load_config,
    write_config,
)
from svhist.core.bisect import (
    BisectController,
    BisectError,
    BisectSession,
    EmptyRangeError,
    InvalidRevisionError,
    InvalidTermError,
    SessionClosedError,
    SessionStatus,
    UpdateFailedError,
    Verdict,
    estimate_steps,
)
from svhist.core.correlation import (
    AmbiguousCopyError,
    CorrelationEngine,
    CorrelationError,
    CyclicCopyError,
    PathNotFoundError,
    merge_lineages,
)
from svhist.core.models import CommitRecord, Lineage
from svhist.persistence import DatabaseError, StateManager
from svhist.source.base import LogFetchError
from svhist.source.layout import LayoutError, LayoutResolver, compile_patterns
from svhist.source.svn import SvnClient, SvnInfo


# Constants
RUN_EXIT_GOOD = 0
RUN_EXIT_SKIP = 125
RUN_EXIT_LIMIT = 128
MISSING = "<does not exist>"

# Configure logging
logger = logging.getLogger(__name__)


class NoSessionError(BisectError):
    """Working copy has no bisect session."""


class SessionExistsError(BisectError):
    """Working copy already has an active bisect session."""


class WorkingCopyError(BisectError):
    """Target is not part of a working copy."""


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def open_client(config: ToolConfig, target: str = ".") -> Tuple[SvnClient, SvnInfo]:
    """Create the svn client for a URL or working-copy path."""
    return SvnClient.for_target(target, command=config.svn_command, timeout=config.svn_timeout)


def open_state(config: ToolConfig) -> StateManager:
    """Open the bisect session database."""
    return StateManager(config.db_path)


def _summary(source, path: str, revision: int, peg_revision: Optional[int] = None) -> str:
    """One-line description of a revision for progress output and the log."""
    records = source.fetch_log(
        path, revision, 1, stop_on_copy=False, peg_revision=peg_revision
    )
    message = records[0].summary if records and records[0].revision == revision else ""
    return f"[{revision}] {message}".rstrip()


def _format_commit(commit: Optional[CommitRecord]) -> Tuple[str, str, str]:
    if commit is None:
        return ("", "", "")
    date = commit.timestamp.strftime("%Y-%m-%d %H:%M:%S") if commit.timestamp else ""
    return (str(commit.revision), commit.author, date)


def _print_table(header: Sequence[str], rows: List[Sequence[str]]) -> None:
    widths = [len(h) for h in header]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
    print("  ".join(h.ljust(w) for h, w in zip(header, widths)).rstrip())
    print("  ".join("-" * w for w in widths))
    for row in rows:
        print("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip())


def cmd_lineage(args: argparse.Namespace, config: ToolConfig) -> int:
    """Print the lineage of a path, oldest segment first.

    Args:
        args: Parsed command-line arguments
        config: Tool configuration

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    client, info = open_client(config, args.path)
    revision = client.resolve_revision(args.revision, info.rel_path) if args.revision else None
    engine = CorrelationEngine(client, config.page_size, config.max_workers)
    lineage = engine.resolve_lineage(info.rel_path, revision)

    print(f"=== Lineage of {info.rel_path} ===\n")
    for segment in lineage:
        end = f"r{segment.end}" if segment.end is not None else "HEAD"
        print(f"{segment.path}  r{segment.start}..{end}  ({len(segment.commits)} commits)")
        if segment.predecessor is not None:
            print(f"    copied from {segment.predecessor.path}@{segment.predecessor.end}")
        rev, author, date = _format_commit(segment.last_commit)
        if rev:
            print(f"    last changed r{rev} by {author or '(no author)'} {date}".rstrip())
    return 0


def _print_filerevs(rel_path: str, lineages: Dict[str, Optional[Lineage]]) -> None:
    rows = []
    for root, lineage in lineages.items():
        if lineage is None:
            rows.append((root, MISSING, "", ""))
        else:
            rows.append((root, *_format_commit(lineage.head.last_commit)))
    print(f"\n{rel_path}")
    _print_table(("Location", "Revision", "Author", "Date"), rows)

    history = merge_lineages(lineages)
    shared = [s for s in history.segments if len(s.roots) > 1]
    if shared:
        print("\nShared history:")
        for segment in shared:
            end = f"r{segment.end}" if segment.end is not None else "HEAD"
            print(f"  {segment.path} r{segment.start}..{end}: {', '.join(segment.roots)}")


def cmd_filerevs(args: argparse.Namespace, config: ToolConfig) -> int:
    """Show the last change of files on trunk and selected branches/tags.

    Args:
        args: Parsed command-line arguments
        config: Tool configuration

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    resolver = LayoutResolver(config.layout)
    branch_patterns = compile_patterns(args.branch)
    tag_patterns = compile_patterns(args.tag)

    for target in args.paths:
        client, info = open_client(config, target)
        rel_path = resolver.relative_path(info.rel_path)
        roots = resolver.discover_roots(
            client.list_dir, branch_patterns, tag_patterns, args.all_branches, args.all_tags
        )
        engine = CorrelationEngine(client, config.page_size, config.max_workers)
        lineages = engine.resolve_across(rel_path, {root: None for root in roots})
        ordered = {root: lineages[root] for root in roots}
        _print_filerevs(rel_path, ordered)
    return 0


def cmd_init_config(args: argparse.Namespace, _config: ToolConfig) -> int:
    """Write the default configuration as YAML.

    Args:
        args: Parsed command-line arguments
        _config: Tool configuration (unused)

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    output_file = Path(args.output) if args.output else Path(DEFAULT_CONFIG_PATH)

    if output_file.exists() and not args.force:
        print(f"✗ File '{output_file}' already exists (use --force to overwrite)")
        return 1

    write_config(create_config({}), str(output_file))
    print(f"✓ Default configuration written: {output_file}")
    return 0


class BisectCommand:
    """Bisect subcommand context bound to one working copy.

    Attributes:
        config: Tool configuration
        client: svn client rooted at the working copy's repository
        info: svn info of the working-copy path
        workingcopy: Working-copy root; identifies the session
        state: Session database
    """

    def __init__(self, args: argparse.Namespace, config: ToolConfig) -> None:
        self.config = config
        self.client, self.info = open_client(config, args.path)
        if not self.info.wc_root:
            raise WorkingCopyError(f"{args.path} is not part of a subversion working copy")
        self.workingcopy = self.info.wc_root
        self.state = open_state(config)

    def controller(self, update: bool = True) -> BisectController:
        return BisectController(self.client, self.client if update else None, self.config.page_size)

    def load(self) -> BisectSession:
        session = self.state.load_session(self.workingcopy)
        if session is None:
            raise NoSessionError(f"No bisect session for {self.workingcopy}")
        return session

    def log(self, *lines: str) -> None:
        self.state.append_log(self.workingcopy, *lines)

    def summary(self, session: BisectSession, revision: int) -> str:
        return _summary(self.client, session.scope_path, revision, session.scope_peg)

    def revision(self, text: str, session: BisectSession) -> int:
        return self.client.resolve_revision(text, session.scope_path)

    def advance(self, session: BisectSession, controller: BisectController) -> BisectSession:
        """Persist a transition, then select the next candidate while active.

        The transition is saved before the update so a failed update can be
        retried with ``bisect next``.
        """
        self.state.save_session(self.workingcopy, session)
        if session.status is SessionStatus.ACTIVE:
            session = controller.step(session)
            self.state.save_session(self.workingcopy, session)
        self.report(session, controller)
        return session

    def report(self, session: BisectSession, controller: BisectController) -> None:
        """Print the outcome of a transition and record terminal states in the log."""
        if session.status is SessionStatus.FOUND:
            description = self.summary(session, session.culprit)
            print(f"✓ r{session.culprit} is the first {session.bad_name} revision")
            print(f"  {description}")
            self.log(f"# first {session.bad_name} revision: {description}")
        elif session.status is SessionStatus.UNDECIDABLE:
            blocking = " ".join(f"r{rev}" for rev in session.blocking)
            print("✗ There are only skipped revisions left to test.")
            print(f"  The first {session.bad_name} revision could be any of: {blocking} r{session.bad_revision}")
            self.log(f"# only skipped revisions left to test: {blocking}")
        elif session.current is not None:
            remaining = len(controller.candidates(session))
            left = remaining // 2
            print(
                f"Bisecting: {left} revisions left to test after this "
                f"(roughly {estimate_steps(left)} steps)"
            )
            print(self.summary(session, session.current))

    def mark(self, session: BisectSession, verdict: Verdict, text: Optional[str]) -> BisectSession:
        controller = self.controller()
        revision = self.revision(text, session) if text else session.current
        if verdict is Verdict.SKIP:
            return self.skip(session, [str(revision)] if revision is not None else [])
        updated = controller.mark(session, verdict, revision)
        term = session.good_name if verdict is Verdict.GOOD else session.bad_name
        command = term if term == verdict.value else f"mark {term}"
        self.log(
            f"# {term}: {self.summary(session, revision)}",
            f"svhist bisect {command} {revision}",
        )
        return self.advance(updated, controller)

    def skip(self, session: BisectSession, ranges: Sequence[str], unskip: bool = False) -> BisectSession:
        controller = self.controller()
        if ranges:
            revisions = sorted(
                {
                    rev
                    for text in ranges
                    for rev in self.client.resolve_range(
                        text, session.scope_path, session.scope_peg
                    )
                }
            )
        elif session.current is not None:
            revisions = [session.current]
        else:
            raise InvalidRevisionError("No candidate selected; name the revisions explicitly")

        if unskip:
            updated = controller.unskip(session, revisions)
        else:
            updated = controller.skip(session, revisions)
        command = "unskip" if unskip else "skip"
        self.log(f"svhist bisect {command} {' '.join(map(str, revisions))}")
        return self.advance(updated, controller)


def cmd_bisect_start(args: argparse.Namespace, config: ToolConfig) -> int:
    """Start a bisect session in a working copy."""
    ctx = BisectCommand(args, config)
    existing = ctx.state.load_session(ctx.workingcopy)
    if existing is not None:
        if existing.status is SessionStatus.ACTIVE:
            raise SessionExistsError(f"A bisect session is already active in {ctx.workingcopy}")
        ctx.state.delete_session(ctx.workingcopy)

    scope = args.scope or ctx.info.rel_path
    controller = ctx.controller(update=not args.no_update)
    good = ctx.client.resolve_revision(args.good, scope)
    bad = ctx.client.resolve_revision(args.bad, scope)
    session = controller.start(
        good,
        bad,
        scope_path=scope,
        term_good=args.term_good,
        term_bad=args.term_bad,
        original_revision=ctx.info.revision,
    )

    ctx.state.save_session(ctx.workingcopy, session)
    options = f"--scope {shlex.quote(session.scope_path)}"
    if args.term_good:
        options += f" --term-good {args.term_good}"
    if args.term_bad:
        options += f" --term-bad {args.term_bad}"
    ctx.log(
        f"# {session.good_name}: {ctx.summary(session, good)}",
        f"# {session.bad_name}: {ctx.summary(session, bad)}",
        f"svhist bisect start {options} {good} {bad}",
    )
    ctx.advance(session, controller)
    return 0


def cmd_bisect_next(args: argparse.Namespace, config: ToolConfig) -> int:
    """Select and check out the next candidate (retry after a failed update)."""
    ctx = BisectCommand(args, config)
    ctx.advance(ctx.load(), ctx.controller())
    return 0


def cmd_bisect_mark(args: argparse.Namespace, config: ToolConfig) -> int:
    """Record a verdict given as good, bad or a custom term."""
    ctx = BisectCommand(args, config)
    session = ctx.load()
    term = args.term if args.bisect_command == "mark" else args.bisect_command
    if session.status.terminal:
        raise SessionClosedError(session.status)
    ctx.mark(session, session.verdict_for(term), args.revision)
    return 0


def cmd_bisect_skip(args: argparse.Namespace, config: ToolConfig) -> int:
    """Skip or un-skip revisions."""
    ctx = BisectCommand(args, config)
    session = ctx.load()
    if session.status.terminal:
        raise SessionClosedError(session.status)
    ctx.skip(session, args.revisions, unskip=args.bisect_command == "unskip")
    return 0


def cmd_bisect_terms(args: argparse.Namespace, config: ToolConfig) -> int:
    """Print the verdict terms of the session."""
    ctx = BisectCommand(args, config)
    session = ctx.load()
    if args.term_good:
        print(session.good_name)
    elif args.term_bad:
        print(session.bad_name)
    else:
        print(f"Your current terms are '{session.good_name}' for the old state")
        print(f"and '{session.bad_name}' for the new state.")
    return 0


def cmd_bisect_status(args: argparse.Namespace, config: ToolConfig) -> int:
    """Show the session of the working copy."""
    ctx = BisectCommand(args, config)
    session = ctx.state.load_session(ctx.workingcopy)

    if session is None:
        print("No bisect session in progress")
        return 0

    print("=== Bisect Status ===\n")
    print(f"Working copy: {ctx.workingcopy}")
    print(f"Scope:        {session.scope_path}")
    print(f"Status:       {session.status.value}")
    print(f"{session.good_name.capitalize() + ':':13s} r{session.good_revision}")
    print(f"{session.bad_name.capitalize() + ':':13s} r{session.bad_revision}")
    if session.skipped:
        print(f"Skipped:      {' '.join(f'r{rev}' for rev in sorted(session.skipped))}")
    if session.current is not None:
        print(f"Testing:      r{session.current}")
    if session.culprit is not None:
        print(f"\nFirst {session.bad_name} revision: r{session.culprit}")
    if session.blocking:
        print(f"\nUndecidable between: {' '.join(f'r{rev}' for rev in session.blocking)}")
    return 0


def cmd_bisect_log(args: argparse.Namespace, config: ToolConfig) -> int:
    """Print the replayable bisect log."""
    ctx = BisectCommand(args, config)
    ctx.load()
    for line in ctx.state.get_log(ctx.workingcopy):
        print(line)
    return 0


# Subcommands a replayed log may contain
REPLAYABLE = ("start", "good", "bad", "mark", "skip", "unskip", "terms")


def cmd_bisect_replay(args: argparse.Namespace, config: ToolConfig) -> int:
    """Restart the session from a saved bisect log."""
    ctx = BisectCommand(args, config)
    lines = Path(args.logfile).read_text().splitlines()
    ctx.state.delete_session(ctx.workingcopy)

    parser = create_parser()
    for line in lines:
        words = shlex.split(line, comments=True)
        if len(words) < 3 or words[:2] != ["svhist", "bisect"]:
            continue
        if words[2] not in REPLAYABLE:
            logger.warning(f"Ignoring non-replayable log line: {line}")
            continue
        logger.debug(f"Replaying: {line}")
        replay_args = parser.parse_args(["-c", args.config, "bisect", "-p", args.path, *words[2:]])
        BISECT_HANDLERS[replay_args.bisect_command](replay_args, config)
    return 0


def _verdict_for_exit(code: int) -> Optional[Verdict]:
    if code == RUN_EXIT_GOOD:
        return Verdict.GOOD
    if code == RUN_EXIT_SKIP:
        return Verdict.SKIP
    if 0 < code < RUN_EXIT_LIMIT:
        return Verdict.BAD
    return None


def cmd_bisect_run(args: argparse.Namespace, config: ToolConfig) -> int:
    """Drive the session with a command whose exit code is the verdict."""
    ctx = BisectCommand(args, config)
    session = ctx.load()
    if session.status.terminal:
        raise SessionClosedError(session.status)

    while session.status is SessionStatus.ACTIVE:
        if session.current is None:
            session = ctx.advance(session, ctx.controller())
            continue

        print(f"running {' '.join(shlex.quote(word) for word in args.cmd)}")
        result = subprocess.run(args.cmd, cwd=ctx.workingcopy, check=False)
        verdict = _verdict_for_exit(result.returncode)
        if verdict is None:
            print(f"✗ bisect run failed: exit code {result.returncode} from '{args.cmd[0]}' is < 0 or >= 128")
            return 1
        session = ctx.mark(session, verdict, None)

    print("✓ bisect run finished")
    return 0


def cmd_bisect_reset(args: argparse.Namespace, config: ToolConfig) -> int:
    """End the session and restore the working copy."""
    ctx = BisectCommand(args, config)
    session = ctx.state.load_session(ctx.workingcopy)
    if session is None:
        print("No bisect session in progress")
        return 0

    ctx.state.delete_session(ctx.workingcopy)
    logger.info(f"Ended bisect of {session.scope_path} in {ctx.workingcopy}")

    if not args.no_update:
        target = ctx.revision(args.revision, session) if args.revision else session.original_revision
        if target is not None:
            if not ctx.client.update_to(target):
                raise UpdateFailedError(target, "working copy could not be restored")
            print(f"✓ Working copy restored to r{target}")
    print("✓ Bisect session ended")
    return 0


BISECT_HANDLERS: Dict[str, Callable[[argparse.Namespace, ToolConfig], int]] = {
    "start": cmd_bisect_start,
    "next": cmd_bisect_next,
    "good": cmd_bisect_mark,
    "bad": cmd_bisect_mark,
    "mark": cmd_bisect_mark,
    "skip": cmd_bisect_skip,
    "unskip": cmd_bisect_skip,
    "terms": cmd_bisect_terms,
    "status": cmd_bisect_status,
    "log": cmd_bisect_log,
    "replay": cmd_bisect_replay,
    "run": cmd_bisect_run,
    "reset": cmd_bisect_reset,
}


# Most specific first; the first matching type decides the message
ERROR_MESSAGES: List[Tuple[type, str]] = [
    (PathNotFoundError, "{exc}"),
    (CyclicCopyError, "{exc}; the copy history of the repository is inconsistent"),
    (AmbiguousCopyError, "{exc}"),
    (CorrelationError, "Lineage resolution failed: {exc}"),
    (EmptyRangeError, "{exc}; nothing to bisect"),
    (SessionClosedError, "{exc} (run 'svhist bisect reset')"),
    (UpdateFailedError, "{exc}; fix the working copy and run 'svhist bisect next'"),
    (NoSessionError, "{exc}; run 'svhist bisect start' first"),
    (SessionExistsError, "{exc}; run 'svhist bisect reset' first"),
    (InvalidTermError, "{exc}"),
    (BisectError, "{exc}"),
    (LogFetchError, "Cannot read repository history: {exc}"),
    (LayoutError, "Layout error: {exc}"),
    (DatabaseError, "Session database error: {exc}"),
    (ConfigError, "Configuration error: {exc}"),
]


def describe_error(exc: Exception) -> Optional[str]:
    """Return the user-facing message for a known error, None otherwise."""
    for error_type, template in ERROR_MESSAGES:
        if isinstance(exc, error_type):
            return template.format(exc=exc)
    return None


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        description="Subversion history correlation and bisect tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path"
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # lineage command
    parser_lineage = subparsers.add_parser("lineage", help="Show the copy lineage of a path")
    parser_lineage.add_argument("path", nargs="?", default=".", help="URL or working-copy path")
    parser_lineage.add_argument("-r", "--revision", help="Revision to resolve at (default: HEAD)")

    # filerevs command
    parser_filerevs = subparsers.add_parser(
        "filerevs", help="Show the last change of files on trunk, branches and tags"
    )
    parser_filerevs.add_argument("paths", nargs="+", help="URLs or working-copy paths")
    parser_filerevs.add_argument(
        "-b", "--branch", action="append", default=[], help="Include branches matching REGEX"
    )
    parser_filerevs.add_argument(
        "-t", "--tag", action="append", default=[], help="Include tags matching REGEX"
    )
    parser_filerevs.add_argument(
        "-B", "--all-branches", action="store_true", help="Include all branches"
    )
    parser_filerevs.add_argument("-T", "--all-tags", action="store_true", help="Include all tags")

    # init-config command
    parser_init_config = subparsers.add_parser(
        "init-config", help="Write the default configuration file"
    )
    parser_init_config.add_argument(
        "-o", "--output", help=f"Output file path (default: {DEFAULT_CONFIG_PATH})"
    )
    parser_init_config.add_argument(
        "-f", "--force", action="store_true", help="Overwrite existing file"
    )

    # bisect command
    parser_bisect = subparsers.add_parser("bisect", help="Bisect revisions of a working copy")
    parser_bisect.add_argument("-p", "--path", default=".", help="Working-copy path")
    bisect_subparsers = parser_bisect.add_subparsers(dest="bisect_command", help="Bisect commands")

    parser_start = bisect_subparsers.add_parser("start", help="Start a bisect session")
    parser_start.add_argument("good", help="Revision without the defect (OLDER)")
    parser_start.add_argument("bad", nargs="?", default="HEAD", help="Revision with the defect")
    parser_start.add_argument("--scope", help="Repository path to bisect (default: working copy)")
    parser_start.add_argument("--term-good", help="Alternate name for 'good'")
    parser_start.add_argument("--term-bad", help="Alternate name for 'bad'")
    parser_start.add_argument(
        "--no-update", action="store_true", help="Do not update the working copy"
    )

    bisect_subparsers.add_parser("next", help="Check out the next candidate")

    for verdict in ("good", "bad"):
        parser_verdict = bisect_subparsers.add_parser(verdict, help=f"Mark a revision {verdict}")
        parser_verdict.add_argument("revision", nargs="?", help="Revision (default: current)")

    parser_mark = bisect_subparsers.add_parser("mark", help="Mark a revision using a term")
    parser_mark.add_argument("term", help="good, bad, skip or a custom term")
    parser_mark.add_argument("revision", nargs="?", help="Revision (default: current)")

    for command, text in (("skip", "Skip revisions"), ("unskip", "Reinstate skipped revisions")):
        parser_skip = bisect_subparsers.add_parser(command, help=text)
        parser_skip.add_argument("revisions", nargs="*", help="REV or REV:REV (default: current)")

    parser_terms = bisect_subparsers.add_parser("terms", help="Show the verdict terms")
    parser_terms.add_argument("--term-good", action="store_true", help="Print the good term only")
    parser_terms.add_argument("--term-bad", action="store_true", help="Print the bad term only")

    bisect_subparsers.add_parser("status", help="Show bisect status")
    bisect_subparsers.add_parser("log", help="Print the bisect log")

    parser_replay = bisect_subparsers.add_parser("replay", help="Replay a saved bisect log")
    parser_replay.add_argument("logfile", help="File written from 'svhist bisect log'")

    parser_run = bisect_subparsers.add_parser("run", help="Bisect automatically with a command")
    parser_run.add_argument("cmd", nargs=argparse.REMAINDER, help="Command and arguments")

    parser_reset = bisect_subparsers.add_parser("reset", help="End the bisect session")
    parser_reset.add_argument("revision", nargs="?", help="Revision to update to")
    parser_reset.add_argument(
        "--no-update", action="store_true", help="Leave the working copy as it is"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    # Route to command handlers
    try:
        config = load_config(args.config)

        if args.command == "lineage":
            return cmd_lineage(args, config)
        if args.command == "filerevs":
            return cmd_filerevs(args, config)
        if args.command == "init-config":
            return cmd_init_config(args, config)
        if args.command == "bisect" and args.bisect_command in BISECT_HANDLERS:
            if args.bisect_command == "run" and not args.cmd:
                parser.error("bisect run needs a command")
            return BISECT_HANDLERS[args.bisect_command](args, config)

        parser.print_help()
        return 1

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except Exception as exc:
        message = describe_error(exc)
        if message is None:
            logger.error(f"Fatal error: {exc}", exc_info=True)
        else:
            logger.debug("Command failed", exc_info=True)
            print(f"✗ {message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
