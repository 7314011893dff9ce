"""Scenario snapshots: canonical, hashable records of a raw input mapping.

A snapshot is what a persistence collaborator stores and hands back. The engine
itself never reads or writes snapshots; callers use :func:`parse_scenario_payload`
to recover the raw inputs and feed them to ``calculate_model``.
"""

from __future__ import annotations

import datetime as _dt
import hashlib
import json
import math
from dataclasses import dataclass, field
from typing import Any, Iterable

import numpy as np

SCENARIO_CONFIG_SCHEMA = "hdm.scenario_config.v1"
SCENARIO_SNAPSHOT_SCHEMA = "hdm.scenario_snapshot.v1"
APP_NAME = "Housing Decision Model"


def _normalize_float(x: float) -> int | float | None:
    v = float(x)
    if not math.isfinite(v):
        return None
    # Collapse signed zero and tiny floating noise for stable hashes across platforms.
    if abs(v) < 1e-15:
        v = 0.0
    v = float(f"{v:.12g}")
    if abs(v - round(v)) <= 1e-12:
        return int(round(v))
    return v


def canonicalize_jsonish(value: Any) -> Any:
    """Return a JSON-safe, deterministically ordered representation.

    Used for scenario hashing and snapshot storage. Unknown objects are stringified
    instead of raising.
    """
    if isinstance(value, np.generic):
        value = value.item()

    if value is None or isinstance(value, (str, bool)):
        return value

    if isinstance(value, int):
        return int(value)

    if isinstance(value, float):
        return _normalize_float(value)

    if isinstance(value, (_dt.datetime, _dt.date)):
        return value.isoformat()

    if isinstance(value, dict):
        return {str(k): canonicalize_jsonish(value[k]) for k in sorted(value.keys(), key=str)}

    if isinstance(value, (list, tuple)):
        return [canonicalize_jsonish(v) for v in value]

    if isinstance(value, (set, frozenset)):
        items = [canonicalize_jsonish(v) for v in value]
        return sorted(items, key=lambda x: json.dumps(x, sort_keys=True, separators=(",", ":"), ensure_ascii=True))

    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError):
        return str(value)


def _canonical_json(value: Any) -> str:
    return json.dumps(canonicalize_jsonish(value), sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def _filter_inputs(inputs: dict[str, Any] | None, allowed_keys: Iterable[str] | None = None) -> dict[str, Any]:
    if not isinstance(inputs, dict):
        return {}
    if allowed_keys is None:
        return dict(inputs)
    allowed = {str(k) for k in allowed_keys}
    return {k: v for k, v in inputs.items() if str(k) in allowed}


@dataclass(frozen=True)
class ScenarioConfig:
    inputs: dict[str, Any] = field(default_factory=dict)
    schema: str = SCENARIO_CONFIG_SCHEMA

    def __post_init__(self) -> None:
        # Freeze a shallow copy so later mutation of the caller's dict cannot change the hash.
        inputs = self.inputs if isinstance(self.inputs, dict) else {}
        object.__setattr__(self, "inputs", dict(inputs))
        object.__setattr__(self, "schema", str(self.schema or SCENARIO_CONFIG_SCHEMA))

    @property
    def canonical_inputs(self) -> dict[str, Any]:
        return canonicalize_jsonish(self.inputs)  # type: ignore[no-any-return]

    def canonical_json(self) -> str:
        return _canonical_json(self.inputs)

    def deterministic_hash(self) -> str:
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        return {"schema": self.schema, "inputs": self.canonical_inputs, "hash": self.deterministic_hash()}

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "ScenarioConfig":
        obj = dict(payload or {})
        if isinstance(obj.get("config"), dict):
            obj = obj["config"]
        schema = str(obj.get("schema") or SCENARIO_CONFIG_SCHEMA)
        if schema != SCENARIO_CONFIG_SCHEMA:
            raise ValueError(f"unsupported scenario config schema: {schema!r}")
        if isinstance(obj.get("inputs"), dict):
            return cls(inputs=dict(obj["inputs"]), schema=schema)
        if "inputs" in obj:
            raise ValueError("scenario config 'inputs' must be an object")
        # Bare mapping: treat the whole payload as the inputs.
        return cls(inputs={k: v for k, v in obj.items() if k != "schema"})


@dataclass(frozen=True)
class ScenarioSnapshot:
    config: ScenarioConfig
    label: str | None = None
    app: str = APP_NAME
    version: str | None = None
    exported_at: str = field(default_factory=lambda: _dt.datetime.now().isoformat(timespec="seconds"))
    meta: dict[str, Any] = field(default_factory=dict)
    schema: str = SCENARIO_SNAPSHOT_SCHEMA

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", dict(self.meta or {}))
        object.__setattr__(self, "schema", str(self.schema or SCENARIO_SNAPSHOT_SCHEMA))

    @property
    def scenario_hash(self) -> str:
        return self.config.deterministic_hash()

    def to_dict(self) -> dict[str, Any]:
        cfg = self.config.to_dict()
        return {
            "schema": self.schema,
            "app": self.app,
            "version": self.version,
            "exported_at": self.exported_at,
            "label": self.label,
            "scenario_hash": cfg["hash"],
            "config": cfg,
            "meta": canonicalize_jsonish(self.meta),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "ScenarioSnapshot":
        if payload is not None and not isinstance(payload, dict):
            raise ValueError("scenario snapshot payload must be a JSON object")
        obj = dict(payload or {})
        schema = str(obj.get("schema") or SCENARIO_SNAPSHOT_SCHEMA)
        if schema != SCENARIO_SNAPSHOT_SCHEMA:
            raise ValueError(f"unsupported scenario snapshot schema: {schema!r}")
        return cls(
            config=ScenarioConfig.from_payload(obj.get("config") if isinstance(obj.get("config"), dict) else {}),
            label=None if obj.get("label") is None else str(obj["label"]),
            app=str(obj.get("app") or APP_NAME),
            version=None if obj.get("version") is None else str(obj["version"]),
            exported_at=str(obj.get("exported_at") or _dt.datetime.now().isoformat(timespec="seconds")),
            meta=dict(obj["meta"]) if isinstance(obj.get("meta"), dict) else {},
            schema=schema,
        )


def build_scenario_config(inputs: dict[str, Any] | None, *, allowed_keys: Iterable[str] | None = None) -> ScenarioConfig:
    return ScenarioConfig(inputs=_filter_inputs(inputs, allowed_keys=allowed_keys))


def scenario_hash_from_inputs(inputs: dict[str, Any] | None, *, allowed_keys: Iterable[str] | None = None) -> str:
    return build_scenario_config(inputs, allowed_keys=allowed_keys).deterministic_hash()


def build_scenario_snapshot(
    inputs: dict[str, Any] | None,
    *,
    label: str | None = None,
    version: str | None = None,
    meta: dict[str, Any] | None = None,
    allowed_keys: Iterable[str] | None = None,
) -> ScenarioSnapshot:
    return ScenarioSnapshot(
        config=build_scenario_config(inputs, allowed_keys=allowed_keys),
        label=label,
        version=version,
        meta=dict(meta or {}),
    )


def parse_scenario_payload(payload: dict[str, Any] | None) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return (inputs, metadata) from a snapshot payload.

    Raises:
        ValueError: if the payload or its config carries an unknown schema.
    """
    snap = ScenarioSnapshot.from_payload(payload)
    meta: dict[str, Any] = {
        "label": snap.label,
        "scenario_hash": snap.scenario_hash,
        "schema": snap.schema,
        "version": snap.version,
        "exported_at": snap.exported_at,
        "app": snap.app,
    }
    # Payload-provided metadata never overrides the core fields.
    for k, v in canonicalize_jsonish(snap.meta).items():
        meta.setdefault(str(k), v)
    return dict(snap.config.canonical_inputs), meta


def _to_float_or_none(v: Any) -> float | None:
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(x):
        return None
    return x


def extract_terminal_metrics(output: Any) -> dict[str, float | None]:
    """Comparable headline figures from a ``ModelOutput`` (``None`` when absent)."""
    if output is None:
        return dict.fromkeys(_METRIC_KEYS)
    terminal = output.terminal
    return {
        "buy_total": _to_float_or_none(output.buy_total),
        "rent_total": _to_float_or_none(output.rent_total),
        "diff": _to_float_or_none(output.diff),
        "buy_nav_final": _to_float_or_none(terminal.buy_nav),
        "rent_nav_final": _to_float_or_none(terminal.rent_nav),
        "nav_gap_final": _to_float_or_none(terminal.gap),
        "monthly_payment": _to_float_or_none(output.monthly_payment),
        "break_even_growth": _to_float_or_none(output.break_even_growth),
    }


_METRIC_SPECS: tuple[tuple[str, str], ...] = (
    ("Buy Total Cost", "buy_total"),
    ("Rent Total Cost", "rent_total"),
    ("Cost Gap", "diff"),
    ("Final Buy NAV", "buy_nav_final"),
    ("Final Rent NAV", "rent_nav_final"),
    ("Final NAV Gap", "nav_gap_final"),
    ("Monthly Payment", "monthly_payment"),
    ("Break-even House Growth", "break_even_growth"),
)
_METRIC_KEYS = tuple(key for _, key in _METRIC_SPECS)


def compare_metric_rows(
    metrics_a: dict[str, Any] | None,
    metrics_b: dict[str, Any] | None,
    *,
    atol: float = 1e-9,
) -> list[dict[str, Any]]:
    """A/B metric rows with absolute and percent deltas (B - A)."""
    a = dict(metrics_a or {})
    b = dict(metrics_b or {})
    rows: list[dict[str, Any]] = []
    for label, key in _METRIC_SPECS:
        va = _to_float_or_none(a.get(key))
        vb = _to_float_or_none(b.get(key))
        delta = None
        pct_delta = None
        if va is not None and vb is not None:
            d = vb - va
            if abs(d) <= atol:
                d = 0.0
            delta = d
            if abs(va) > atol:
                pct_delta = d / abs(va) * 100.0
            elif d == 0.0:
                pct_delta = 0.0
        rows.append({"metric": label, "a": va, "b": vb, "delta": delta, "pct_delta": pct_delta})
    return rows


def scenario_input_diff_rows(
    inputs_a: dict[str, Any] | None,
    inputs_b: dict[str, Any] | None,
    *,
    atol: float = 1e-9,
) -> list[dict[str, Any]]:
    """Canonical A/B input diff rows (sorted by key; ignores tiny float noise)."""
    a = canonicalize_jsonish(inputs_a or {})
    b = canonicalize_jsonish(inputs_b or {})
    rows: list[dict[str, Any]] = []
    for k in sorted(set(a) | set(b)):
        va = a.get(k)
        vb = b.get(k)
        both_numeric = (
            isinstance(va, (int, float))
            and isinstance(vb, (int, float))
            and not isinstance(va, bool)
            and not isinstance(vb, bool)
        )
        if both_numeric and abs(float(va) - float(vb)) <= atol:
            continue
        if va != vb:
            rows.append({"key": str(k), "a": va, "b": vb})
    return rows
