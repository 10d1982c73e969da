"""Request-facing path resolution with audit logging and response envelopes."""

from __future__ import annotations

import logging
from pathlib import Path

from form_guard.config import GuardConfig, GuardOverrides, load_effective_config
from form_guard.logging import AuditEvent, JsonlAuditLogger, sanitize_arguments, utc_timestamp
from form_guard.security import PathSanitizer, PathSecurityError

logger = logging.getLogger(__name__)

RESOLVE_ACTION = "path.resolve"


class PathResolver:
    """Turn untrusted relative paths into vetted absolute paths for handlers."""

    def __init__(self, config: GuardConfig) -> None:
        self._config = config
        self._sanitizer = PathSanitizer(config.sanitizer)
        self._audit_logger = JsonlAuditLogger(path=config.data_dir / "audit.jsonl")
        self._fallback_request_counter = 0

    @property
    def config(self) -> GuardConfig:
        """Return effective configuration."""
        return self._config

    @property
    def sanitizer(self) -> PathSanitizer:
        """Return the underlying sanitizer."""
        return self._sanitizer

    @property
    def audit_path(self) -> Path:
        """Return on-disk audit log path."""
        return self._audit_logger.path

    async def resolve(
        self,
        candidate: str,
        base: str | None = None,
        request_id: str | None = None,
    ) -> dict[str, object]:
        """Sanitize ``candidate`` and refuse symlinks along the way."""
        resolved_request_id = request_id or self.next_request_id()
        target_base = base if base is not None else self._sanitizer.allowed_base_paths[0]
        arguments: dict[str, object] = {"candidate": candidate, "base": target_base}

        try:
            path = self._sanitizer.sanitize(candidate, target_base)
            await self._sanitizer.check_symlinks(path, target_base)
        except PathSecurityError as error:
            logger.info("Blocked path request %s: %s", resolved_request_id, error.code)
            response = self.blocked_response(
                request_id=resolved_request_id,
                code=error.code,
                reason=error.reason,
                hint=error.hint,
            )
            self.log_request(resolved_request_id, arguments, error_code=error.code)
            return response

        response = self.success_response(request_id=resolved_request_id, result={"path": path})
        self.log_request(resolved_request_id, arguments)
        return response

    def read_audit(self, since: str | None = None, limit: int = 50) -> list[dict[str, object]]:
        """Return recent audit events."""
        return self._audit_logger.read(since=since, limit=limit)

    def next_request_id(self) -> str:
        """Generate deterministic fallback request IDs for missing IDs."""
        self._fallback_request_counter += 1
        return f"req-{self._fallback_request_counter:06d}"

    @staticmethod
    def success_response(request_id: str, result: dict[str, object]) -> dict[str, object]:
        """Build success envelope."""
        return {
            "request_id": request_id,
            "ok": True,
            "result": result,
            "warnings": [],
            "blocked": False,
        }

    @staticmethod
    def blocked_response(request_id: str, code: str, reason: str, hint: str) -> dict[str, object]:
        """Build explicit blocked response envelope."""
        return {
            "request_id": request_id,
            "ok": False,
            "result": {"reason": reason, "hint": hint},
            "warnings": [],
            "blocked": True,
            "error": {"code": code, "message": reason},
        }

    def log_request(
        self,
        request_id: str,
        arguments: dict[str, object],
        error_code: str | None = None,
    ) -> None:
        """Log one sanitized request event; a code marks the request as blocked."""
        event = AuditEvent(
            timestamp=utc_timestamp(),
            request_id=request_id,
            action=RESOLVE_ACTION,
            ok=error_code is None,
            blocked=error_code is not None,
            error_code=error_code,
            metadata=sanitize_arguments(arguments),
        )
        self._audit_logger.append(event)


def create_resolver(
    root: str,
    data_dir: str | None = None,
    overrides: GuardOverrides | None = None,
) -> PathResolver:
    """Create a configured resolver for a deployment root."""
    effective_overrides = overrides or GuardOverrides()
    if data_dir is not None:
        effective_overrides = GuardOverrides(
            data_dir=Path(data_dir).resolve(),
            allowed_base_paths=effective_overrides.allowed_base_paths,
            allow_symlinks=effective_overrides.allow_symlinks,
        )
    return PathResolver(load_effective_config(Path(root), effective_overrides))
