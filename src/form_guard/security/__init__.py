"""Sandboxing and path safety primitives."""

from .paths import (
    INVALID_PATH,
    PATH_NOT_ALLOWED,
    PATH_TRAVERSAL,
    SYMLINK_NOT_ALLOWED,
    PathSanitizer,
    PathSanitizerConfig,
    PathSecurityError,
)

__all__ = [
    "INVALID_PATH",
    "PATH_NOT_ALLOWED",
    "PATH_TRAVERSAL",
    "SYMLINK_NOT_ALLOWED",
    "PathSanitizer",
    "PathSanitizerConfig",
    "PathSecurityError",
]
