#!/usr/bin/env python3
"""Subversion client for commit log retrieval and working-copy updates.

Runs the ``svn`` command line and parses its XML output into commit
records.
"""

import logging
import re
import subprocess
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from svhist.core.models import Action, ChangedPath, CommitRecord, CopyOrigin
from svhist.source.base import CommitLogSource, LogFetchError, MissingPathError, WorkingCopyUpdater


logger = logging.getLogger(__name__)

# Constants
SVN_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
MISSING_PATH_CODES = ("E160013", "E200009", "E170000", "E195012")
REVISION_PATTERN = re.compile(r"^(\d+|HEAD|BASE|PREV|COMMITTED)([+-]\d+)?$")


class SvnError(LogFetchError):
    """Subversion command failed."""


@dataclass
class SvnInfo:
    """Subset of ``svn info`` for one target.

    Attributes:
        path: Target as given to svn
        kind: Node kind ("file" or "dir")
        url: Full URL of the target
        rel_path: Repository path of the target (starting with '/')
        root_url: Repository root URL
        uuid: Repository UUID
        revision: Revision of the target (working-copy or peg revision)
        commit_revision: Last changed revision
        commit_author: Last changed author
        commit_date: Last changed date
        size: File size in bytes (None for directories)
        wc_root: Working-copy root directory (None for URLs)
    """

    path: str
    kind: str
    url: str
    rel_path: str
    root_url: str
    uuid: str
    revision: Optional[int]
    commit_revision: Optional[int]
    commit_author: str
    commit_date: Optional[datetime]
    size: Optional[int] = None
    wc_root: Optional[str] = None


def parse_svn_date(text: Optional[str]) -> Optional[datetime]:
    if not text:
        return None
    try:
        return datetime.strptime(text, SVN_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug(f"Unparseable svn date: {text}")
        return None


def _int_or_none(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _parse_xml(text: str, what: str) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise SvnError(f"Malformed svn {what} output: {exc}") from exc


def parse_log_xml(text: str) -> List[CommitRecord]:
    """Parse ``svn log --xml --verbose`` output.

    Returns:
        Commit records in document order (newest first for descending ranges)
    """
    records = []
    for entry in _parse_xml(text, "log").iter("logentry"):
        changed = []
        paths = entry.find("paths")
        for node in paths.iter("path") if paths is not None else ():
            origin = None
            if node.get("copyfrom-path") is not None:
                origin = CopyOrigin(node.get("copyfrom-path"), int(node.get("copyfrom-rev")))
            changed.append(
                ChangedPath(
                    path=(node.text or "").strip(),
                    action=Action(node.get("action", "M")),
                    copy_origin=origin,
                    kind=node.get("kind", ""),
                )
            )
        records.append(
            CommitRecord(
                revision=int(entry.get("revision")),
                author=entry.findtext("author", default=""),
                timestamp=parse_svn_date(entry.findtext("date")),
                message=entry.findtext("msg", default=""),
                changed_paths=tuple(changed),
            )
        )
    return records


def parse_info_xml(text: str) -> List[SvnInfo]:
    """Parse ``svn info --xml`` output."""
    infos = []
    for entry in _parse_xml(text, "info").iter("entry"):
        commit = entry.find("commit")
        url = entry.findtext("url", default="")
        root_url = entry.findtext("repository/root", default="")
        rel_url = entry.findtext("relative-url")
        rel_path = rel_url[1:] if rel_url and rel_url.startswith("^") else url[len(root_url):]
        infos.append(
            SvnInfo(
                path=entry.get("path", ""),
                kind=entry.get("kind", ""),
                url=url,
                rel_path=rel_path or "/",
                root_url=root_url,
                uuid=entry.findtext("repository/uuid", default=""),
                revision=_int_or_none(entry.get("revision")),
                commit_revision=_int_or_none(commit.get("revision")) if commit is not None else None,
                commit_author=commit.findtext("author", default="") if commit is not None else "",
                commit_date=parse_svn_date(commit.findtext("date")) if commit is not None else None,
                size=_int_or_none(entry.get("size")),
                wc_root=entry.findtext("wc-info/wcroot-abspath"),
            )
        )
    return infos


def parse_list_xml(text: str) -> List[str]:
    """Parse ``svn list --xml`` output into entry names."""
    return [node.findtext("name", default="") for node in _parse_xml(text, "list").iter("entry")]


class SvnClient(CommitLogSource, WorkingCopyUpdater):
    """Subversion command-line client.

    Attributes:
        command: svn executable
        root_url: Repository root URL repository paths are resolved against
        wc_root: Working-copy root used for updates (None for URL-only use)
        timeout: Timeout in seconds per svn invocation
    """

    def __init__(
        self,
        command: str = "svn",
        root_url: str = "",
        wc_root: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        self.command = command
        self.root_url = root_url.rstrip("/")
        self.wc_root = wc_root
        self.timeout = timeout

    def run_command(
        self, args: Sequence[str], cwd: Optional[str] = None
    ) -> Tuple[int, str, str]:
        """Run an svn subcommand.

        Args:
            args: Arguments following the svn executable
            cwd: Working directory for the command

        Returns:
            Tuple of (return_code, stdout, stderr)
        """
        command = [self.command, "--non-interactive", *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=cwd,
                check=False,
            )
            return result.returncode, result.stdout, result.stderr
        except subprocess.TimeoutExpired:
            logger.error(f"svn command timed out after {self.timeout}s")
            return -1, "", "Timeout"
        except OSError as exc:
            logger.error(f"svn command failed: {exc}")
            return -1, "", str(exc)

    def url_for(self, path: str) -> str:
        """Return the URL of a repository path."""
        return f"{self.root_url}/{path.strip('/')}".rstrip("/")

    def fetch_log(
        self,
        path: str,
        upper_bound: Optional[int] = None,
        limit: Optional[int] = None,
        stop_on_copy: bool = True,
        peg_revision: Optional[int] = None,
    ) -> List[CommitRecord]:
        """Fetch the history of a path, newest first.

        Raises:
            MissingPathError: If the path does not exist at the peg revision
            SvnError: If svn fails otherwise
        """
        upper = "HEAD" if upper_bound is None else str(upper_bound)
        peg = upper if peg_revision is None else str(peg_revision)
        args = ["log", "--xml", "--verbose"]
        if stop_on_copy:
            args.append("--stop-on-copy")
        args.append(f"--revision={upper}:0")
        if limit is not None:
            args.append(f"--limit={limit}")
        args.append(f"{self.url_for(path)}@{peg}")

        ret, stdout, stderr = self.run_command(args)
        if ret != 0:
            if any(code in stderr for code in MISSING_PATH_CODES):
                raise MissingPathError(f"{path} does not exist at {peg}: {stderr.strip()}")
            raise SvnError(f"svn log failed for {path}: {stderr.strip()}")
        return parse_log_xml(stdout)

    def info(self, target: str, revision: Optional[str] = None) -> SvnInfo:
        """Run ``svn info`` on a URL or local path.

        Raises:
            MissingPathError: If the target does not exist
            SvnError: If svn fails otherwise
        """
        args = ["info", "--xml"]
        if revision is not None:
            args.append(f"--revision={revision}")
        args.append(target)
        ret, stdout, stderr = self.run_command(args)
        if ret != 0:
            if any(code in stderr for code in MISSING_PATH_CODES):
                raise MissingPathError(f"{target} does not exist: {stderr.strip()}")
            raise SvnError(f"svn info failed for {target}: {stderr.strip()}")
        infos = parse_info_xml(stdout)
        if not infos:
            raise SvnError(f"svn info returned no entry for {target}")
        return infos[0]

    def workingcopy_info(self, path: str = ".") -> SvnInfo:
        """Return info for a working-copy path.

        Raises:
            SvnError: If ``path`` is not inside a working copy
        """
        try:
            return self.info(path)
        except LogFetchError as exc:
            raise SvnError(f"{path} is not part of a subversion working copy") from exc

    def list_dir(self, path: str) -> List[str]:
        """Return the entry names of a repository directory."""
        ret, stdout, stderr = self.run_command(["list", "--xml", self.url_for(path)])
        if ret != 0:
            if any(code in stderr for code in MISSING_PATH_CODES):
                return []
            raise SvnError(f"svn list failed for {path}: {stderr.strip()}")
        return parse_list_xml(stdout)

    def update_to(self, revision: int) -> bool:
        """Update the working copy to a revision.

        Returns:
            True if the update succeeded, False otherwise
        """
        if self.wc_root is None:
            logger.error("No working copy to update")
            return False
        ret, _, stderr = self.run_command(
            ["update", "--quiet", "--depth=infinity", f"--revision={revision}"], cwd=self.wc_root
        )
        if ret != 0:
            logger.error(f"svn update to r{revision} failed: {stderr.strip()}")
            return False
        return True

    def resolve_revision(self, text: str, path: str = "/") -> int:
        """Resolve a user revision to a number.

        Accepts numbers and the keywords HEAD, BASE, PREV and COMMITTED with
        an optional ``+N``/``-N`` delta counted in commits touching ``path``.
        Keywords other than HEAD need a working copy.

        Raises:
            SvnError: If the revision cannot be resolved
        """
        match = REVISION_PATTERN.match(text.strip())
        if not match:
            raise SvnError(f"Cannot resolve revision '{text}'")
        base, delta = match.group(1), int(match.group(2) or 0)
        if base.isdigit() and delta == 0:
            return int(base)

        target = self.wc_root if base in ("BASE", "PREV", "COMMITTED") else self.url_for(path)
        if target is None:
            raise SvnError(f"Revision keyword {base} requires a working copy")
        if delta == 0:
            revision = self.info(target, revision=base).revision
            if revision is None:
                raise SvnError(f"Cannot resolve revision '{text}'")
            return revision

        range_arg = f"{base}:0" if delta < 0 else f"{base}:HEAD"
        args = ["log", "--xml", "--quiet", f"--revision={range_arg}", f"--limit={abs(delta) + 1}", target]
        ret, stdout, stderr = self.run_command(args)
        if ret != 0:
            raise SvnError(f"Cannot resolve revision '{text}' for {path}: {stderr.strip()}")
        records = parse_log_xml(stdout)
        if not records:
            raise SvnError(f"Cannot resolve revision '{text}' for {path}")
        return records[-1].revision

    def resolve_range(
        self, text: str, path: str = "/", peg_revision: Optional[int] = None
    ) -> List[int]:
        """Resolve ``REV`` or ``REV:REV`` to the revisions touching ``path``.

        A single revision resolves to itself. Ranges follow copies, so a
        branch path includes revisions inherited from its copy source.
        """
        if ":" not in text:
            return [self.resolve_revision(text, path)]
        first, _, second = text.partition(":")
        low, high = sorted((self.resolve_revision(first, path), self.resolve_revision(second, path)))
        records = self.fetch_log(path, high, stop_on_copy=False, peg_revision=peg_revision)
        return sorted({r.revision for r in records if r.revision >= low})

    @classmethod
    def for_target(
        cls, target: str = ".", command: str = "svn", timeout: Optional[int] = None
    ) -> Tuple["SvnClient", SvnInfo]:
        """Create a client rooted at the repository of a URL or working-copy path.

        Returns:
            Tuple of (client, info of ``target``)
        """
        probe = cls(command=command, timeout=timeout)
        info = probe.info(target)
        client = cls(command=command, root_url=info.root_url, wc_root=info.wc_root, timeout=timeout)
        return client, info
