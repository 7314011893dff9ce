"""CLI / headless entry point for the housing decision model.

Usage
-----
Run with a JSON scenario file:
    python -m hdm --config scenario.json --output monthly.csv

Dump an example scenario file:
    python -m hdm --example

Override individual inputs on the command line:
    python -m hdm --config scenario.json --set P=800 --set g_p=2 --set target_city=Beijing

Compare against a second scenario (B - A metric deltas plus the inputs that differ):
    python -m hdm --config a.json --compare b.json

The scenario file is ``{"inputs": {...}}``; the inputs map directly to the engine's
raw input keys (see --example for all of them and their defaults). A saved scenario
snapshot (see --snapshot) is accepted as a config file too.
"""

from __future__ import annotations

import argparse
import json
import sys
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path

from hdm.core.params import DEFAULTS, EXPERT_DEFAULTS
from hdm.core.policy_china import POLICY_LAST_REVIEWED
from hdm.core.scenario_snapshots import (
    SCENARIO_SNAPSHOT_SCHEMA,
    build_scenario_snapshot,
    compare_metric_rows,
    extract_terminal_metrics,
    parse_scenario_payload,
    scenario_input_diff_rows,
)


def _build_example() -> dict:
    """Return a complete example scenario (every input key with its default)."""
    inputs = dict(DEFAULTS)
    inputs.update(EXPERT_DEFAULTS)
    return {
        "_comment": (
            "Housing decision model scenario file. 'inputs' keys feed the engine directly. "
            "Amounts <= 10000 are read as wan (10,000 yuan); percents are whole percents. "
            "Expert-only keys are ignored unless expert_configured is true. "
            f"Policy baseline last reviewed {POLICY_LAST_REVIEWED.isoformat()}."
        ),
        "inputs": inputs,
    }


def _apply_overrides(d: dict, overrides: list[str]) -> dict:
    """Apply --set key=value overrides, with basic type coercion."""
    for kv in overrides or []:
        if "=" not in kv:
            print(f"Warning: ignoring malformed --set argument (expected key=value): {kv!r}", file=sys.stderr)
            continue
        key, _, raw = kv.partition("=")
        key = key.strip()
        raw = raw.strip()
        # Coerce type: bool -> int -> float -> str
        coerced: bool | int | float | str
        if raw.lower() in ("true", "false"):
            coerced = raw.lower() == "true"
        else:
            try:
                coerced = int(raw)
            except ValueError:
                try:
                    coerced = float(raw)
                except ValueError:
                    coerced = raw
        d[key] = coerced
    return d


def _load_inputs(config_path: Path) -> dict:
    """Read a scenario file or snapshot payload; raises ValueError on a bad shape."""
    payload = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("scenario file must contain a JSON object")
    if payload.get("schema") == SCENARIO_SNAPSHOT_SCHEMA:
        inputs, meta = parse_scenario_payload(payload)
        print(f"Loaded snapshot {meta['scenario_hash'][:12]} ({meta.get('label') or 'unlabelled'})", file=sys.stderr)
        return inputs
    inputs = payload.get("inputs", {})
    if not isinstance(inputs, dict):
        raise ValueError("'inputs' must be a JSON object")
    return dict(inputs)


def _compare_frame(rows: list[dict]):
    import pandas as pd

    return pd.DataFrame(rows).rename(
        columns={"metric": "Metric", "a": "A", "b": "B", "delta": "Delta", "pct_delta": "Delta %"}
    )


def _write(text: str, output: str) -> None:
    if output == "-":
        print(text, end="" if text.endswith("\n") else "\n")
    else:
        out_path = Path(output)
        out_path.write_text(text if text.endswith("\n") else text + "\n", encoding="utf-8")
        print(f"Results written to {out_path}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m hdm",
        description="Housing decision model (buy vs. rent), headless/CLI mode.",
    )
    parser.add_argument(
        "--config", "-c",
        metavar="FILE",
        help="Path to a JSON scenario file. Use --example to generate a template.",
    )
    parser.add_argument(
        "--output", "-o",
        metavar="FILE",
        default="-",
        help="Output file path. Use '-' (default) to print to stdout.",
    )
    parser.add_argument(
        "--set", "-s",
        dest="overrides",
        metavar="key=value",
        action="append",
        help="Override an input. Repeat for multiple overrides.",
    )
    parser.add_argument(
        "--example",
        action="store_true",
        help="Print an example JSON scenario file and exit.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output the full result as JSON instead of a CSV time-series.",
    )
    parser.add_argument(
        "--yearly",
        action="store_true",
        help="CSV output is the yearly net-worth series instead of monthly cash flows.",
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Reduced-fidelity mode: skip scenario and sensitivity-grid resimulation.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        metavar="N",
        help="Run scenario and grid simulations in N worker processes (default 1).",
    )
    parser.add_argument(
        "--snapshot",
        metavar="FILE",
        help="Also write a hashed scenario snapshot of the resolved inputs to FILE.",
    )
    parser.add_argument(
        "--compare",
        metavar="FILE",
        help="Run a second scenario file or snapshot as B and output the A/B comparison.",
    )

    args = parser.parse_args(argv)

    if args.example:
        print(json.dumps(_build_example(), indent=2, ensure_ascii=False))
        return 0

    inputs: dict = {}
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: config file not found: {config_path}", file=sys.stderr)
            return 1
        try:
            inputs = _load_inputs(config_path)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError
            print(f"Config error: {exc}", file=sys.stderr)
            return 1

    _apply_overrides(inputs, args.overrides or [])

    inputs_b: dict | None = None
    if args.compare:
        compare_path = Path(args.compare)
        if not compare_path.exists():
            print(f"Error: compare file not found: {compare_path}", file=sys.stderr)
            return 1
        try:
            inputs_b = _load_inputs(compare_path)
        except ValueError as exc:
            print(f"Config error: {exc}", file=sys.stderr)
            return 1

    # Deferred so --example works without numpy/pandas installed
    try:
        from hdm.core.engine import calculate_model
    except ImportError as exc:
        print(f"Error importing engine: {exc}", file=sys.stderr)
        print("Ensure all dependencies are installed: pip install -e .", file=sys.stderr)
        return 1

    print(
        f"Running model: city={inputs.get('target_city', DEFAULTS['target_city'])}, "
        f"P={inputs.get('P', DEFAULTS['P'])}, years={inputs.get('years', DEFAULTS['years'])}, "
        f"{'fast' if args.fast else 'full fidelity'}",
        file=sys.stderr,
    )

    fast = True if args.fast else None
    result_b = None
    try:
        if args.workers > 1:
            with ProcessPoolExecutor(max_workers=args.workers) as pool:
                result = calculate_model(inputs, fast=fast, executor=pool)
                if inputs_b is not None:
                    result_b = calculate_model(inputs_b, fast=fast, executor=pool)
        else:
            result = calculate_model(inputs, fast=fast)
            if inputs_b is not None:
                result_b = calculate_model(inputs_b, fast=fast)
    except Exception as exc:
        print(f"Model error: {exc}", file=sys.stderr)
        return 1

    for msg in result.warnings:
        print(f"Warning: {msg}", file=sys.stderr)
    print(
        f"Complete. {result.recommendation} by ¥{abs(result.diff):,}  |  "
        f"Monthly payment: ¥{result.monthly_payment:,.2f}  |  "
        f"Zone: {result.zone}  |  "
        f"Policy: {result.policy.policy_version}",
        file=sys.stderr,
    )

    if args.snapshot:
        snap = build_scenario_snapshot(inputs, meta={"policy_version": result.policy.policy_version})
        Path(args.snapshot).write_text(json.dumps(snap.to_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        print(f"Snapshot {snap.scenario_hash[:12]} written to {args.snapshot}", file=sys.stderr)

    if result_b is not None:
        metrics = compare_metric_rows(extract_terminal_metrics(result), extract_terminal_metrics(result_b))
        changed = scenario_input_diff_rows(inputs, inputs_b)
        print(f"Compared against {args.compare}: {len(changed)} input(s) differ", file=sys.stderr)
        if args.json:
            _write(json.dumps({"inputs": changed, "metrics": metrics}, indent=2, ensure_ascii=False), args.output)
        else:
            _write(_compare_frame(metrics).to_csv(index=False), args.output)
        return 0

    if args.json:
        _write(json.dumps(result.to_dict(), indent=2, ensure_ascii=False), args.output)
        return 0

    df = result.yearly_frame() if args.yearly else result.monthly_frame()
    _write(df.to_csv(index=False), args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
