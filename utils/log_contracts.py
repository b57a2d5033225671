"""Stable log contracts for aggregation decisions."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Any

LOG_SCHEMA_VERSION = "2026-10-01.v1"

SCHEMA_CONNECTION_DECISION = "connection_decision.v1"
SCHEMA_REMINDER = "reminder.v1"

_STAGE_PREFIX: dict[str, str] = {
    "enrich": "CONN",
    "root": "ROOT",
    "reminder": "REMIND",
    "unknown": "UNKNOWN",
}

_REASON_CODE_OVERRIDES: dict[str, str] = {
    "included": "CONN_INCLUDED",
    "no_claim_history": "CONN_EXCLUDED_NO_CLAIM_HISTORY",
    "future_timestamp": "CONN_EXCLUDED_FUTURE_TIMESTAMP",
    "history_unavailable": "CONN_EXCLUDED_HISTORY_UNAVAILABLE",
    "balance_unavailable": "CONN_DEGRADED_BALANCE",
    "profile_unavailable": "CONN_DEGRADED_PROFILE",
    "root_unclaimed_unknown": "ROOT_UNCLAIMED_UNKNOWN",
}

REASON_CODE_TAXONOMY: dict[str, dict[str, str]] = {
    "CONN_INCLUDED": {"severity": "INFO", "category": "include", "title": "Connection accrual established"},
    "CONN_EXCLUDED_NO_CLAIM_HISTORY": {"severity": "INFO", "category": "exclude", "title": "No personalMint found"},
    "CONN_EXCLUDED_FUTURE_TIMESTAMP": {"severity": "WARN", "category": "exclude", "title": "Last claim is in the future"},
    "CONN_EXCLUDED_HISTORY_UNAVAILABLE": {"severity": "WARN", "category": "exclude", "title": "History lookup failed"},
    "CONN_DEGRADED_BALANCE": {"severity": "WARN", "category": "degrade", "title": "Balance lookup failed"},
    "CONN_DEGRADED_PROFILE": {"severity": "INFO", "category": "degrade", "title": "Profile lookup failed"},
    "ROOT_UNCLAIMED_UNKNOWN": {"severity": "WARN", "category": "degrade", "title": "Own accrual unknown"},
}


def _as_ts(value: Any) -> float:
    if value is None or value == "":
        return datetime.now(timezone.utc).timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp()
    text = str(value).strip()
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(timezone.utc).timestamp()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _iso_from_ts(ts: float) -> str:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat()


def _normalize_address(value: Any) -> str:
    raw = str(value or "").strip().lower()
    if len(raw) == 42 and raw.startswith("0x"):
        return raw
    return ""


def _normalize_reason_text(value: Any) -> str:
    text = str(value or "").strip().lower()
    if not text:
        return ""
    text = re.sub(r"[^a-z0-9]+", "_", text)
    return re.sub(r"_+", "_", text).strip("_")


def _sanitize_code_token(value: str) -> str:
    text = re.sub(r"[^A-Z0-9]+", "_", str(value or "").strip().upper())
    text = re.sub(r"_+", "_", text).strip("_")
    return text or "UNKNOWN"


def _stage_prefix(value: Any) -> str:
    stage = _normalize_reason_text(value) or "unknown"
    return _STAGE_PREFIX.get(stage, "UNKNOWN")


def reason_code_for_event(*, reason: Any, decision_stage: Any = "") -> str:
    normalized_reason = _normalize_reason_text(reason)
    if not normalized_reason:
        return "UNKNOWN"
    override = _REASON_CODE_OVERRIDES.get(normalized_reason)
    if override:
        return override
    return f"{_stage_prefix(decision_stage)}_{_sanitize_code_token(normalized_reason)}"


def reason_code_meta(code: str) -> dict[str, str]:
    key = _sanitize_code_token(code)
    if key in REASON_CODE_TAXONOMY:
        return dict(REASON_CODE_TAXONOMY[key])
    return {
        "severity": "INFO",
        "category": "unknown",
        "title": key.replace("_", " ").title(),
    }


def _digest_seed(*parts: Any) -> str:
    seed = "|".join(str(p or "").strip() for p in parts)
    return hashlib.sha1(seed.encode("utf-8", errors="ignore")).hexdigest()


def aggregation_trace_id(root_address: Any, *, started: Any = None, run_tag: str = "") -> str:
    """One id shared by every row logged for a single aggregation run."""
    ts = _as_ts(started)
    return f"agg_{_digest_seed(run_tag, _normalize_address(root_address), f'{ts:.6f}')[:20]}"


def stamp_event(
    event: dict[str, Any],
    *,
    schema_name: str,
    event_type: str,
    run_tag: str = "",
) -> dict[str, Any]:
    payload = dict(event or {})
    ts = _as_ts(payload.get("ts"))
    payload["ts"] = float(ts)
    payload["timestamp"] = str(payload.get("timestamp", "") or _iso_from_ts(ts))
    payload.setdefault("schema_version", LOG_SCHEMA_VERSION)
    payload.setdefault("schema_name", schema_name)
    payload.setdefault("event_type", str(event_type or "event"))
    if run_tag:
        payload.setdefault("run_tag", str(run_tag))
    root = _normalize_address(payload.get("root_address", ""))
    payload["root_address"] = root
    payload["address"] = _normalize_address(payload.get("address", ""))
    if not str(payload.get("trace_id", "") or "").strip():
        payload["trace_id"] = aggregation_trace_id(root, started=ts, run_tag=run_tag)
    if not str(payload.get("decision_id", "") or "").strip():
        payload["decision_id"] = "dec_" + _digest_seed(
            payload["trace_id"],
            payload.get("decision_stage", ""),
            payload.get("reason", ""),
            payload["address"],
        )[:20]
    return payload


def _apply_reason(payload: dict[str, Any]) -> dict[str, Any]:
    payload["reason"] = str(payload.get("reason", "") or "")
    payload["reason_code"] = str(
        payload.get("reason_code", "")
        or reason_code_for_event(reason=payload["reason"], decision_stage=payload.get("decision_stage", ""))
    ).strip().upper()
    meta = reason_code_meta(payload["reason_code"])
    payload["reason_severity"] = str(payload.get("reason_severity", meta.get("severity", "INFO")) or "INFO")
    payload["reason_category"] = str(payload.get("reason_category", meta.get("category", "unknown")) or "unknown")
    return payload


def connection_decision_event(event: dict[str, Any], *, run_tag: str = "") -> dict[str, Any]:
    payload = stamp_event(
        event,
        schema_name=SCHEMA_CONNECTION_DECISION,
        event_type=str((event or {}).get("event_type", "connection_decision")),
        run_tag=run_tag,
    )
    payload.setdefault("decision_stage", "enrich")
    payload.setdefault("decision", "unknown")
    payload["mutual_trust"] = bool(payload.get("mutual_trust", False))
    payload.setdefault("detail", "")
    return _apply_reason(payload)


def reminder_event(event: dict[str, Any], *, run_tag: str = "") -> dict[str, Any]:
    payload = stamp_event(
        event,
        schema_name=SCHEMA_REMINDER,
        event_type=str((event or {}).get("event_type", "reminder")),
        run_tag=run_tag,
    )
    payload["decision_stage"] = str(payload.get("decision_stage", "reminder") or "reminder")
    payload["decision"] = str(payload.get("decision", "emit") or "emit")
    payload["priority"] = str(payload.get("priority", "none") or "none")
    try:
        payload["unclaimed"] = round(float(payload.get("unclaimed", 0.0) or 0.0), 4)
    except (TypeError, ValueError):
        payload["unclaimed"] = 0.0
    if not str(payload.get("reason", "") or "").strip():
        payload["reason"] = f"priority_{payload['priority']}"
    return _apply_reason(payload)
