"""Path sanitization for user-supplied template and output file names."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import re
import stat
from dataclasses import dataclass
from typing import Final

logger = logging.getLogger(__name__)

PATH_TRAVERSAL: Final[str] = "PATH_TRAVERSAL"
PATH_NOT_ALLOWED: Final[str] = "PATH_NOT_ALLOWED"
SYMLINK_NOT_ALLOWED: Final[str] = "SYMLINK_NOT_ALLOWED"
INVALID_PATH: Final[str] = "INVALID_PATH"

CONTROL_CHARS_PATTERN: Final[re.Pattern[str]] = re.compile(r"[\x00-\x1f\x7f]")
WINDOWS_DRIVE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]:")

_MISSING_ERRNOS: Final[frozenset[int]] = frozenset({errno.ENOENT, errno.ENOTDIR})


class PathSecurityError(Exception):
    """Raised when a candidate path violates sandbox policy."""

    def __init__(self, code: str, reason: str, hint: str) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason
        self.hint = hint


@dataclass(slots=True, frozen=True)
class PathSanitizerConfig:
    """Allowed base directories and symlink policy for one sanitizer."""

    allowed_base_paths: tuple[str, ...]
    allow_symlinks: bool = False


def _normalize_base(base: str) -> str:
    return os.path.abspath(base)


def _is_within(resolved: str, base: str) -> bool:
    if resolved == base:
        return True
    return resolved.startswith(base.rstrip(os.sep) + os.sep)


class PathSanitizer:
    """Resolve relative candidate paths inside a fixed set of base directories.

    Validation runs in two independent passes. The first rejects forbidden
    forms by pattern before anything is joined: absolute paths, drive
    letters, UNC prefixes and ``..`` segments. The second joins the
    candidate onto the base, collapses ``.``/``..`` lexically and checks
    that the result is still under the base.

    Instances are immutable after construction and safe to share between
    concurrent requests.
    """

    def __init__(self, config: PathSanitizerConfig) -> None:
        if not config.allowed_base_paths:
            raise ValueError("At least one allowed base path must be provided.")
        normalized: list[str] = []
        for base in config.allowed_base_paths:
            if not isinstance(base, str) or not base.strip():
                raise ValueError("Allowed base paths must be non-empty strings.")
            candidate = _normalize_base(base)
            if candidate not in normalized:
                normalized.append(candidate)
        self._config = config
        self._allowed_base_paths = tuple(normalized)

    @property
    def config(self) -> PathSanitizerConfig:
        """Return the configuration this sanitizer was built with."""
        return self._config

    @property
    def allowed_base_paths(self) -> tuple[str, ...]:
        """Return normalized allowed base directories in configuration order."""
        return self._allowed_base_paths

    def sanitize(self, candidate: str, base: str) -> str:
        """Return the absolute path for ``candidate`` under ``base``.

        Raises PathSecurityError with ``PATH_NOT_ALLOWED`` for unregistered
        bases and absolute, drive-letter or UNC candidates, ``PATH_TRAVERSAL``
        for anything that tries to leave the base, and ``INVALID_PATH`` for
        empty input or control characters.
        """
        normalized_base = self._validate_base(base)
        normalized = self._validate_candidate(candidate)

        resolved = os.path.normpath(os.path.join(normalized_base, normalized))
        if not _is_within(resolved, normalized_base):
            raise PathSecurityError(
                code=PATH_TRAVERSAL,
                reason="Resolved path escapes base directory.",
                hint="Use a path located under the configured base directory.",
            )
        return resolved

    async def check_symlink(self, path: str | os.PathLike[str]) -> None:
        """Raise PathSecurityError when ``path`` is a symlink and links are refused.

        A missing path is not a violation. Other filesystem errors are logged
        and ignored; the file operation that follows enforces its own access
        control.
        """
        try:
            info = await asyncio.to_thread(os.lstat, path)
        except OSError as error:
            if error.errno in _MISSING_ERRNOS:
                return
            logger.warning("Could not check symlink status for %s: %s", path, error)
            return

        if stat.S_ISLNK(info.st_mode) and not self._config.allow_symlinks:
            raise PathSecurityError(
                code=SYMLINK_NOT_ALLOWED,
                reason="Symbolic links are not allowed.",
                hint="Reference the file directly instead of through a link.",
            )

    async def check_symlinks(self, path: str, base: str) -> None:
        """Run check_symlink on every component of ``path`` below ``base``."""
        normalized_base = self._validate_base(base)
        path = os.path.abspath(path)
        if not _is_within(path, normalized_base):
            raise PathSecurityError(
                code=PATH_TRAVERSAL,
                reason="Resolved path escapes base directory.",
                hint="Sanitize the path against the same base before checking links.",
            )
        relative = os.path.relpath(path, normalized_base)
        if relative == os.curdir:
            return
        current = normalized_base
        for part in relative.split(os.sep):
            current = os.path.join(current, part)
            await self.check_symlink(current)

    def _validate_base(self, base: str) -> str:
        if not isinstance(base, str) or not base.strip():
            raise PathSecurityError(
                code=PATH_NOT_ALLOWED,
                reason="Base directory is empty.",
                hint="Pass one of the configured base directories.",
            )
        normalized_base = _normalize_base(base)
        if normalized_base not in self._allowed_base_paths:
            raise PathSecurityError(
                code=PATH_NOT_ALLOWED,
                reason="Base directory is not in the allow-list.",
                hint="Pass one of the configured base directories.",
            )
        return normalized_base

    @staticmethod
    def _validate_candidate(candidate: str) -> str:
        if not isinstance(candidate, str) or not candidate.strip():
            raise PathSecurityError(
                code=INVALID_PATH,
                reason="Path is empty.",
                hint="Provide a relative path such as 'employment/contract.pdf'.",
            )
        if CONTROL_CHARS_PATTERN.search(candidate):
            raise PathSecurityError(
                code=INVALID_PATH,
                reason="Path contains control characters.",
                hint="Remove NUL bytes and control characters from the path.",
            )

        normalized = candidate.replace("\\", "/")
        # "//server/share" lands here too.
        if normalized.startswith("/") or WINDOWS_DRIVE_PATTERN.match(normalized):
            raise PathSecurityError(
                code=PATH_NOT_ALLOWED,
                reason="Absolute paths are not allowed.",
                hint="Use a path relative to the base directory.",
            )
        if any(part == ".." for part in normalized.split("/")):
            raise PathSecurityError(
                code=PATH_TRAVERSAL,
                reason="Path traversal is blocked.",
                hint="Remove '..' segments and use a relative path.",
            )
        return normalized
