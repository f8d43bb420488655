"""Backend Sentry bootstrap and event sanitization."""

from __future__ import annotations

import re
from collections.abc import Mapping
from copy import deepcopy
from typing import Any, Literal

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration

from orderflow.config import settings
from orderflow.util.logger import logger

SentrySource = Literal["fastapi", "celery", "backend"]
_REDACTED_VALUE = "[REDACTED]"
_SANITIZE_MAX_DEPTH = 8

_SENSITIVE_KEYWORDS = {
    "authorization",
    "cookie",
    "password",
    "secret",
    "setcookie",
    "token",
    "xactorid",
    "addresstext",
    "apikey",
}

_BUILTIN_SENSITIVE_FIELD_PATHS = (
    ("request", "headers"),
    ("request", "env"),
    ("request", "data"),
    ("contexts", "request"),
    ("extra",),
)


def _normalize_key(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", value.strip().lower())


def _is_sensitive_key(raw_key: str) -> bool:
    key = _normalize_key(raw_key)
    if not key:
        return False
    if key in _SENSITIVE_KEYWORDS:
        return True
    if "authorization" in key:
        return True
    return key.endswith(("token", "secret", "password"))


def _sanitize_value(value: Any, *, depth: int = 0, key_hint: str | None = None) -> Any:
    if depth >= _SANITIZE_MAX_DEPTH:
        return str(value)

    if key_hint and _is_sensitive_key(key_hint):
        return _REDACTED_VALUE

    if isinstance(value, Mapping):
        sanitized: dict[str, Any] = {}
        for key, item in value.items():
            key_str = str(key)
            if _is_sensitive_key(key_str):
                sanitized[key_str] = _REDACTED_VALUE
            else:
                sanitized[key_str] = _sanitize_value(item, depth=depth + 1, key_hint=key_str)
        return sanitized

    if isinstance(value, list | tuple):
        items = [_sanitize_value(item, depth=depth + 1, key_hint=key_hint) for item in value]
        return items if isinstance(value, list) else tuple(items)

    return value


def _sanitize_path(event: dict[str, Any], path: tuple[str, ...]) -> None:
    parent: Any = event
    for segment in path[:-1]:
        if not isinstance(parent, dict):
            return
        parent = parent.get(segment)
    if not isinstance(parent, dict):
        return
    target = parent.get(path[-1])
    if target is None:
        return
    if isinstance(target, dict):
        parent[path[-1]] = _sanitize_value(target)
    else:
        parent[path[-1]] = _sanitize_value(target, key_hint=path[-1])


def sentry_before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """Redact secrets and actor identity from events before shipping to Sentry."""
    del hint
    sanitized = deepcopy(event)
    for path in _BUILTIN_SENSITIVE_FIELD_PATHS:
        _sanitize_path(sanitized, path)

    breadcrumbs = sanitized.get("breadcrumbs")
    if isinstance(breadcrumbs, dict):
        values = breadcrumbs.get("values")
        if isinstance(values, list):
            breadcrumbs["values"] = [
                _sanitize_value(item) if isinstance(item, dict) else item for item in values
            ]
    return sanitized


def _build_integrations(source: SentrySource) -> list[Any]:
    if source == "fastapi":
        return [FastApiIntegration(transaction_style="endpoint")]
    if source == "celery":
        return [CeleryIntegration()]
    return []


def _resolve_sentry_environment() -> str:
    explicit = settings.sentry_env.strip()
    if explicit:
        return explicit
    runtime = settings.app_env.strip().lower()
    if runtime == "prod":
        return "production"
    if runtime == "dev":
        return "development"
    return runtime or "development"


def init_backend_sentry(*, source: SentrySource) -> bool:
    """Initialize Sentry for one backend process role."""
    dsn = settings.sentry_dsn.strip()
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=_resolve_sentry_environment(),
        release=settings.sentry_release.strip() or None,
        before_send=sentry_before_send,
        send_default_pii=False,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=_build_integrations(source),
    )
    sentry_sdk.set_tag("source", source)
    logger.info(
        "Sentry initialized for source=%s env=%s",
        source,
        _resolve_sentry_environment(),
    )
    return True
