# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Incremental analysis state owned by a single engine adapter."""

from __future__ import annotations

import hashlib
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from ..models import Issue

MISSING_DIGEST: Final[str] = "missing"


def file_digest(path: str | Path) -> str:
    """Return a content digest for ``path``.

    Args:
        path: File whose contents should be hashed.

    Returns:
        str: Hex digest of the contents, or ``"missing"`` when unreadable.
    """

    hasher = hashlib.blake2b(digest_size=16)
    try:
        with Path(path).open("rb") as handle:
            for chunk in iter(lambda: handle.read(65536), b""):
                hasher.update(chunk)
    except OSError:
        return MISSING_DIGEST
    return hasher.hexdigest()


def snapshot(files: Iterable[str]) -> dict[str, str]:
    """Return content digests for ``files`` keyed by path.

    Args:
        files: Normalised file paths.

    Returns:
        dict[str, str]: Mapping of file path to digest.
    """

    return {file: file_digest(file) for file in files}


def fingerprint_key(fingerprint: str) -> str:
    """Return a short filesystem-safe key for ``fingerprint``."""

    return hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:16]


@dataclass(slots=True)
class FileState:
    """Cached analysis outcome of one file at one content digest."""

    digest: str
    issues: tuple[Issue, ...] = ()


@dataclass(slots=True)
class EngineSession:
    """Reusable analysis state keyed by configuration fingerprint and file set.

    Attributes:
        fingerprint: Opaque configuration fingerprint the session was built for.
        files: File set the session was built over.
        directory: Directory holding on-disk tool caches for this session.
        created_at: Wall-clock creation time.
        reuse_count: Number of invocations answered without running the tool.
        entries: Per-file cached outcomes keyed by normalised path.
    """

    fingerprint: str
    files: frozenset[str]
    directory: Path
    created_at: float = field(default_factory=time.time)
    reuse_count: int = 0
    entries: dict[str, FileState] = field(default_factory=dict)

    def matches(self, fingerprint: str) -> bool:
        """Return whether the session was built for ``fingerprint``."""

        return self.fingerprint == fingerprint

    def absorb(self, files: Iterable[str]) -> None:
        """Extend the session file set with ``files``."""

        self.files = self.files | frozenset(files)

    def stale_files(self, digests: Mapping[str, str]) -> list[str]:
        """Return files whose digest differs from the cached one.

        Args:
            digests: Current digests keyed by file path.

        Returns:
            list[str]: Files needing analysis, in ``digests`` order.
        """

        stale: list[str] = []
        for file, digest in digests.items():
            entry = self.entries.get(file)
            if entry is None or entry.digest != digest:
                stale.append(file)
        return stale

    def record(self, digests: Mapping[str, str], issues: Sequence[Issue]) -> None:
        """Store ``issues`` as the outcome of analysing the files in ``digests``.

        Args:
            digests: Digests of the analysed files at analysis time.
            issues: Issues reported for those files; other files are ignored.
        """

        grouped: dict[str, list[Issue]] = {file: [] for file in digests}
        for issue in issues:
            bucket = grouped.get(issue.file)
            if bucket is not None:
                bucket.append(issue)
        for file, digest in digests.items():
            self.entries[file] = FileState(digest=digest, issues=tuple(grouped[file]))

    def forget(self, files: Iterable[str]) -> None:
        """Drop cached outcomes for ``files``."""

        for file in files:
            self.entries.pop(file, None)

    def cached_issues(self, files: Iterable[str]) -> list[Issue]:
        """Return cached issues for ``files``.

        Args:
            files: Files whose cached issues are requested.

        Returns:
            list[Issue]: Issues in file order; files without entries contribute nothing.
        """

        collected: list[Issue] = []
        for file in files:
            entry = self.entries.get(file)
            if entry is not None:
                collected.extend(entry.issues)
        return collected


__all__ = [
    "MISSING_DIGEST",
    "EngineSession",
    "FileState",
    "file_digest",
    "fingerprint_key",
    "snapshot",
]
