#!/usr/bin/env python3
"""Repository layout resolution.

Maps repository paths to their trunk/branch/tag role using the configured
prefixes, and discovers branch and tag roots.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

from svhist.config.config import LayoutConfig
from svhist.core.correlation import join_paths, normalize_path


logger = logging.getLogger(__name__)


class LayoutError(Exception):
    """Base exception for layout resolution errors."""


class RoleKind(Enum):
    """Logical role of a repository path."""

    TRUNK = "trunk"
    BRANCH = "branch"
    TAG = "tag"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Role:
    """Role of a path plus the root it lives under.

    Attributes:
        kind: Trunk, branch, tag or unknown
        name: Branch or tag name (empty for trunk and unknown)
        prefix: Configured prefix the root lives under (e.g. "branches")
    """

    kind: RoleKind
    name: str = ""
    prefix: str = ""


class LayoutResolver:
    """Classify paths against trunk/branch/tag prefixes.

    Prefixes are matched longest first so nested prefixes such as
    ``branches/release`` win over ``branches``.
    """

    def __init__(self, layout: LayoutConfig) -> None:
        self.layout = layout
        self.trunk = normalize_path(layout.trunk)
        self.branch_prefixes = sorted(normalize_path(p) for p in layout.branches)
        self.tag_prefixes = sorted(normalize_path(p) for p in layout.tags)

    def _prefixes(self) -> List[tuple]:
        pairs = [(p, RoleKind.BRANCH) for p in self.branch_prefixes]
        pairs += [(p, RoleKind.TAG) for p in self.tag_prefixes]
        return sorted(pairs, key=lambda pair: len(pair[0]), reverse=True)

    def classify(self, path: str) -> Role:
        """Return the role of ``path``."""
        path = normalize_path(path)
        if path == self.trunk or path.startswith(self.trunk + "/"):
            return Role(RoleKind.TRUNK)
        for prefix, kind in self._prefixes():
            if path.startswith(prefix + "/"):
                name = path[len(prefix) + 1:].split("/", 1)[0]
                return Role(kind, name, prefix)
        return Role(RoleKind.UNKNOWN)

    def root_prefix(self, role: Role) -> str:
        """Return the repository path of the root a role refers to.

        Raises:
            LayoutError: If the role is unknown or lacks a name
        """
        if role.kind is RoleKind.TRUNK:
            return self.trunk
        if role.kind is RoleKind.UNKNOWN or not role.name:
            raise LayoutError(f"No root prefix for role {role.kind.value}")
        return join_paths(role.prefix, role.name)

    def relative_path(self, path: str) -> str:
        """Return ``path`` relative to its trunk/branch/tag root.

        Raises:
            LayoutError: If the path lies outside every configured prefix
        """
        path = normalize_path(path)
        role = self.classify(path)
        if role.kind is RoleKind.UNKNOWN:
            raise LayoutError(f"Cannot determine relative path for {path}")
        root = self.root_prefix(role)
        return path[len(root):].lstrip("/")

    def discover_roots(
        self,
        list_dir: Callable[[str], Sequence[str]],
        branch_patterns: Iterable[re.Pattern] = (),
        tag_patterns: Iterable[re.Pattern] = (),
        all_branches: bool = False,
        all_tags: bool = False,
    ) -> List[str]:
        """List trunk plus the branch and tag roots selected by the filters.

        Args:
            list_dir: Returns the entry names of a repository directory
            branch_patterns: Include branches whose root matches any pattern
            tag_patterns: Include tags whose root matches any pattern
            all_branches: Include every branch
            all_tags: Include every tag

        Returns:
            Root paths; trunk first, then branches and tags in prefix order
        """
        roots = [self.trunk]
        roots += self._select(list_dir, self.branch_prefixes, list(branch_patterns), all_branches)
        roots += self._select(list_dir, self.tag_prefixes, list(tag_patterns), all_tags)
        return roots

    def _select(
        self,
        list_dir: Callable[[str], Sequence[str]],
        prefixes: List[str],
        patterns: List[re.Pattern],
        include_all: bool,
    ) -> List[str]:
        if not include_all and not patterns:
            return []
        configured = set(self.branch_prefixes) | set(self.tag_prefixes)
        selected = []
        for prefix in prefixes:
            for name in list_dir(prefix):
                root = join_paths(prefix, name)
                # Nested prefixes show up as entries of their parent prefix
                if root in configured:
                    continue
                rel = root.lstrip("/")
                if include_all or any(p.search(rel) for p in patterns):
                    selected.append(root)
        logger.debug(f"Selected roots under {prefixes}: {selected}")
        return selected


def compile_patterns(patterns: Optional[Iterable[str]]) -> List[re.Pattern]:
    """Compile user supplied root filters.

    Raises:
        LayoutError: If a pattern is not a valid regular expression
    """
    compiled = []
    for pattern in patterns or ():
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise LayoutError(f"Invalid pattern '{pattern}': {exc}") from exc
    return compiled
