from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import pytest

from form_guard.security import (
    PATH_TRAVERSAL,
    SYMLINK_NOT_ALLOWED,
    PathSanitizer,
    PathSanitizerConfig,
    PathSecurityError,
)


def _sanitizer(base: Path, allow_symlinks: bool = False) -> PathSanitizer:
    return PathSanitizer(
        PathSanitizerConfig(allowed_base_paths=(str(base),), allow_symlinks=allow_symlinks)
    )


def test_regular_file_passes(tmp_path: Path) -> None:
    target = tmp_path / "real-file.pdf"
    target.write_bytes(b"%PDF-1.7")

    asyncio.run(_sanitizer(tmp_path).check_symlink(str(target)))


def test_missing_path_passes(tmp_path: Path) -> None:
    asyncio.run(_sanitizer(tmp_path).check_symlink(str(tmp_path / "missing.pdf")))


def test_path_below_regular_file_passes(tmp_path: Path) -> None:
    target = tmp_path / "real-file.pdf"
    target.write_bytes(b"%PDF-1.7")

    asyncio.run(_sanitizer(tmp_path).check_symlink(str(target / "child.pdf")))


def test_symlink_is_rejected_by_default(tmp_path: Path) -> None:
    private = tmp_path / "private"
    private.mkdir()
    secret = private / "secret-target.txt"
    secret.write_text("secret", encoding="utf-8")
    templates = tmp_path / "templates"
    templates.mkdir()
    link = templates / "link-to-secret"
    link.symlink_to(secret)

    with pytest.raises(PathSecurityError) as error:
        asyncio.run(_sanitizer(templates).check_symlink(str(link)))

    assert error.value.code == SYMLINK_NOT_ALLOWED


def test_dangling_symlink_is_rejected(tmp_path: Path) -> None:
    link = tmp_path / "dangling"
    link.symlink_to(tmp_path / "nowhere")

    with pytest.raises(PathSecurityError) as error:
        asyncio.run(_sanitizer(tmp_path).check_symlink(link))

    assert error.value.code == SYMLINK_NOT_ALLOWED


def test_symlink_is_accepted_when_policy_allows(tmp_path: Path) -> None:
    target = tmp_path / "real-file.pdf"
    target.write_bytes(b"%PDF-1.7")
    link = tmp_path / "alias.pdf"
    link.symlink_to(target)

    asyncio.run(_sanitizer(tmp_path, allow_symlinks=True).check_symlink(str(link)))


def test_unexpected_os_error_is_logged_and_ignored(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    def deny(path: object) -> os.stat_result:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(os, "lstat", deny)

    with caplog.at_level(logging.WARNING, logger="form_guard.security.paths"):
        asyncio.run(_sanitizer(tmp_path).check_symlink(str(tmp_path / "locked.pdf")))

    assert "Could not check symlink status" in caplog.text


def test_symlinked_directory_component_is_rejected(tmp_path: Path) -> None:
    base = tmp_path / "templates"
    base.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "leak.pdf").write_bytes(b"%PDF-1.7")
    (base / "link").symlink_to(outside, target_is_directory=True)
    sanitizer = _sanitizer(base)

    path = sanitizer.sanitize("link/leak.pdf", str(base))
    with pytest.raises(PathSecurityError) as error:
        asyncio.run(sanitizer.check_symlinks(path, str(base)))

    assert error.value.code == SYMLINK_NOT_ALLOWED


def test_component_walk_passes_for_plain_tree(tmp_path: Path) -> None:
    nested = tmp_path / "employment" / "2026"
    nested.mkdir(parents=True)
    (nested / "contract.pdf").write_bytes(b"%PDF-1.7")
    sanitizer = _sanitizer(tmp_path)

    path = sanitizer.sanitize("employment/2026/contract.pdf", str(tmp_path))

    asyncio.run(sanitizer.check_symlinks(path, str(tmp_path)))


def test_component_walk_requires_contained_path(tmp_path: Path) -> None:
    sanitizer = _sanitizer(tmp_path / "templates")

    with pytest.raises(PathSecurityError):
        asyncio.run(
            sanitizer.check_symlinks(str(tmp_path / "other.pdf"), str(tmp_path / "templates"))
        )


def test_concurrent_checks_are_independent(tmp_path: Path) -> None:
    plain = tmp_path / "plain.pdf"
    plain.write_bytes(b"%PDF-1.7")
    link = tmp_path / "link.pdf"
    link.symlink_to(plain)
    sanitizer = _sanitizer(tmp_path)

    async def run_both() -> list[object]:
        return await asyncio.gather(
            sanitizer.check_symlink(str(plain)),
            sanitizer.check_symlink(str(link)),
            return_exceptions=True,
        )

    results = asyncio.run(run_both())

    assert results[0] is None
    assert isinstance(results[1], PathSecurityError)
    assert results[1].code == SYMLINK_NOT_ALLOWED


def test_component_walk_rejects_base_prefixed_parent_segment(tmp_path: Path) -> None:
    base = tmp_path / "templates"
    base.mkdir()
    (tmp_path / "outside.pdf").write_bytes(b"%PDF-1.7")
    sanitizer = _sanitizer(base)

    with pytest.raises(PathSecurityError) as error:
        asyncio.run(sanitizer.check_symlinks(str(base) + "/../outside.pdf", str(base)))

    assert error.value.code == PATH_TRAVERSAL
