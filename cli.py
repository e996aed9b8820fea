"""Adjusted SISD forecasting CLI.

Command-line interface for jump-drop detection, correction and SISD
forecasting of daily epidemic case counts.

Usage:
    python cli.py detect --series daily.csv [--metric C3_1day]
    python cli.py adjust --series daily.csv [--method mean] [--ub 5] [--output adj.csv]
    python cli.py forecast --cases cases.csv --cur-date 2020-05-29 [--adjusted]
    python cli.py compare --cases cases.csv [--series daily.csv] [--plot cmp.png]
    python cli.py demo [--seed 42]
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
import time
import traceback
from typing import Any

import numpy as np


# ===================================================================
# Text formatting utilities (stdlib only -- no tabulate/rich)
# ===================================================================

def _header(title: str, width: int = 78) -> str:
    """Return a formatted section header."""
    lines = [
        "",
        "=" * width,
        f"  {title}",
        "=" * width,
    ]
    return "\n".join(lines)


def _subheader(title: str, width: int = 78) -> str:
    """Return a formatted sub-section header."""
    return f"\n--- {title} {'-' * max(0, width - len(title) - 5)}"


def _table(headers: list[str], rows: list[list[str]],
           col_widths: list[int] | None = None, indent: int = 2) -> str:
    """Build a simple text table.

    Parameters
    ----------
    headers : column header strings.
    rows : list of row lists (each element is a string).
    col_widths : explicit per-column widths; auto-computed when *None*.
    indent : number of leading spaces.

    Returns
    -------
    Formatted table as a single string.
    """
    if not rows:
        return "  (no data)"

    n_cols = len(headers)

    if col_widths is None:
        col_widths = []
        for i in range(n_cols):
            max_w = len(str(headers[i]))
            for row in rows:
                if i < len(row):
                    max_w = max(max_w, len(str(row[i])))
            col_widths.append(max_w + 2)

    prefix = " " * indent
    hdr_line = prefix + "".join(
        str(h).ljust(w) for h, w in zip(headers, col_widths)
    )
    sep_line = prefix + "-" * sum(col_widths)
    body_lines = []
    for row in rows:
        body_lines.append(
            prefix + "".join(
                str(c).ljust(w) for c, w in zip(row, col_widths)
            )
        )

    return "\n".join([hdr_line, sep_line] + body_lines)


def _kv(key: str, value: Any, indent: int = 4) -> str:
    """Format a key-value pair."""
    return f"{' ' * indent}{key:30s}: {value}"


def _ff(v: float | None, decimals: int = 4) -> str:
    """Format a float; ``None`` prints as n/a."""
    if v is None:
        return "n/a"
    return f"{v:.{decimals}f}"


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


# ===================================================================
# Shared loaders
# ===================================================================

def _load_series(args: argparse.Namespace):
    from benchmarks.datasets import (
        daily_series_from_cases,
        load_case_table,
        load_daily_series,
    )

    if getattr(args, "series", None):
        return load_daily_series(args.series, date_format=args.date_format)
    if getattr(args, "cases", None):
        return daily_series_from_cases(
            load_case_table(args.cases, date_format=args.date_format)
        )
    raise ValueError("Provide --series or --cases")


def _build_config(args: argparse.Namespace):
    from sisd.config import AdjustmentConfig, ForecastConfig, GridConfig

    return ForecastConfig(
        population=args.population,
        gamma=args.gamma,
        cur_date=args.cur_date,
        start_date=args.start_date,
        last_n_day=args.last_n_day,
        last_limit=args.last_limit,
        next_n_days=args.next_n_days,
        mu=args.mu,
        adjustment=AdjustmentConfig(
            ub_for_adjustment=args.ub,
            metric=args.metric,
            method=args.method,
        ),
        grid=GridConfig(
            min_mu=args.min_mu,
            max_mu=args.max_mu,
            max_workers=args.workers,
        ),
    )


def _print_runs(adjusted) -> None:
    headers = ["Start", "End", "Days", "Right end", "Local mean", "Adjusted"]
    rows = []
    for run in adjusted.runs:
        rows.append([
            str(adjusted.dates[run.start]),
            str(adjusted.dates[run.stop - 1]),
            str(run.length),
            "yes" if run.has_right_endpoint else "no",
            _ff(run.local_mean, 2),
            "yes" if run.adjusted else "no",
        ])
    print(_table(headers, rows, [14, 14, 6, 11, 12, 10]))


def _print_forecast(title: str, result) -> None:
    print(_subheader(title))
    p = result.params
    print(_kv("Optimal training period", p.training_window))
    print(_kv("Optimal mu", _ff(p.mu, 4)))
    print(_kv("Optimal beta", _ff(p.beta, 2)))
    print(_kv("Validation RMSE", _ff(result.validation_rmse, 2)))
    print(_kv("Prediction RMSE", _ff(result.prediction_rmse, 2)))
    if result.is_adjusted:
        print(_kv("Outliers in training period", result.n_adjusted_in_training))


# ===================================================================
# 1. detect subcommand
# ===================================================================

def cmd_detect(args: argparse.Namespace) -> int:
    """List jump-drop runs in a daily series without correcting them."""
    from sisd.run_detection import scan_runs
    from sisd.types import AdjustedSeries, CorrectionPolicy, MetricVariant
    from sisd.window_stats import evaluate_all

    series = _load_series(args)
    variant = MetricVariant.from_name(args.metric)
    runs = scan_runs(series.values, variant)
    trace = evaluate_all(series.values, variant)

    print(_header("JUMP-DROP DETECTION"))
    print(_kv("Days", len(series)))
    print(_kv("Metric", f"{variant.label} (bound {variant.bound:g})"))
    print(_kv("Days with metric available", int(np.sum(np.isfinite(trace)))))
    print(_kv("Runs found", len(runs)))
    print(_kv("Runs within bound", sum(1 for r in runs if r.length <= args.ub)))

    print(_subheader("Runs"))
    _print_runs(AdjustedSeries(
        values=series.values,
        original=series.values,
        adjusted=np.zeros(len(series), dtype=np.int8),
        dates=series.dates,
        variant=variant,
        policy=CorrectionPolicy.MEAN_BLEND,
        runs=runs,
    ))
    return 0


# ===================================================================
# 2. adjust subcommand
# ===================================================================

def cmd_adjust(args: argparse.Namespace) -> int:
    """Correct short jump-drops and optionally write the result."""
    from sisd.correction import adjust

    series = _load_series(args)
    adjusted = adjust(series, args.ub, args.metric, args.method)

    print(_header("JUMP-DROP ADJUSTMENT"))
    print(_kv("Days", len(series)))
    print(_kv("Metric", adjusted.variant.label))
    print(_kv("Method", adjusted.policy.value))
    print(_kv("Max run length corrected", args.ub))
    print(_kv("Runs found", len(adjusted.runs)))
    print(_kv("Days adjusted", adjusted.n_adjusted))

    print(_subheader("Runs"))
    _print_runs(adjusted)

    if adjusted.n_adjusted:
        print(_subheader("Adjusted Days"))
        frame = adjusted.to_frame()
        rows = [
            [str(r.Date.date()), _ff(r.Observed, 2), _ff(r.Adjusted, 2)]
            for r in frame[frame["adjusted"] == 1].itertuples()
        ]
        print(_table(["Date", "Observed", "Adjusted"], rows, [14, 14, 14]))

    if args.output:
        adjusted.to_frame().to_csv(args.output, index=False)
        print(_kv("Written", args.output))
    if args.plot:
        from reporting.plots import plot_adjustment, save_figure
        print(_kv("Chart", save_figure(plot_adjustment(adjusted), args.plot)))
    return 0


# ===================================================================
# 3. forecast subcommand
# ===================================================================

def cmd_forecast(args: argparse.Namespace) -> int:
    """Fit the SISD model and forecast, with or without adjustment."""
    from benchmarks.datasets import load_case_table
    from orchestrator.pipeline import ForecastEngine

    cases = load_case_table(args.cases, date_format=args.date_format)
    daily = _load_series(args) if args.series else None
    config = _build_config(args)

    print(_header("SISD FORECAST"))
    print(_kv("Population", f"{config.population:g}"))
    print(_kv("Gamma", _ff(config.gamma, 4)))
    print(_kv("Training ends", config.cur_date))
    print(_kv("Adjusted", args.adjusted))

    engine = ForecastEngine(config)
    t0 = time.monotonic()
    result = engine.run(cases, daily, adjusted=args.adjusted)
    print(_kv("Run time", f"{time.monotonic() - t0:.3f}s"))

    _print_forecast("Adjusted Data" if args.adjusted else "Original Data", result)

    print(_subheader("Pipeline Steps"))
    print(_table(
        ["Step", "Duration (s)"],
        [[s.step_name, _ff(s.duration_seconds, 4)] for s in engine.steps],
        [14, 14],
    ))

    if args.output:
        result.to_frame().to_csv(args.output, index=False)
        print(_kv("Written", args.output))
    if args.plot:
        from reporting.plots import plot_forecast, save_figure
        print(_kv("Chart", save_figure(plot_forecast(result), args.plot)))
    return 0


# ===================================================================
# 4. compare subcommand
# ===================================================================

def cmd_compare(args: argparse.Namespace) -> int:
    """Forecast without and with adjustment and report the better one."""
    from benchmarks.datasets import load_case_table
    from orchestrator.pipeline import compare_results

    cases = load_case_table(args.cases, date_format=args.date_format)
    daily = _load_series(args) if args.series else None
    config = _build_config(args)

    comparison = compare_results(config, cases, daily)
    _report_comparison(comparison, config)

    if args.plot:
        from reporting.plots import plot_comparison, save_figure
        print(_kv("Chart", save_figure(plot_comparison(comparison), args.plot)))
    return 0


def _report_comparison(comparison, config) -> None:
    print(_header("ORIGINAL VS ADJUSTED"))
    print(_kv("Metric", config.adjustment.metric.label))
    print(_kv("Method", config.adjustment.method.value))
    _print_forecast("Original Data", comparison.original)
    _print_forecast("Adjusted Data", comparison.adjusted)

    print(_subheader("Summary"))
    headers = ["Data", "Validation RMSE", "Prediction RMSE"]
    rows = [
        ["Original", _ff(comparison.original.validation_rmse, 2),
         _ff(comparison.original.prediction_rmse, 2)],
        ["Adjusted", _ff(comparison.adjusted.validation_rmse, 2),
         _ff(comparison.adjusted.prediction_rmse, 2)],
    ]
    print(_table(headers, rows, [12, 18, 18]))
    print(_kv("Consider",
              "Adjusted data" if comparison.prefers_adjusted else "Original data"))


# ===================================================================
# 5. demo subcommand
# ===================================================================

def cmd_demo(args: argparse.Namespace) -> int:
    """End-to-end run on a synthetic epidemic with an injected jump."""
    from benchmarks.synthetic.generators import (
        generate_case_table,
        generate_logistic_cases,
        inject_jump_drop,
    )
    from orchestrator.pipeline import compare_results
    from sisd.config import AdjustmentConfig, ForecastConfig, GridConfig

    daily = generate_logistic_cases(
        n_days=40, total=600.0, midpoint=30.0, noise=args.noise, seed=args.seed,
    )
    spiked, mask = inject_jump_drop(daily, start=24, length=3, magnitude=10.0)
    cases = generate_case_table(spiked, start_date="2020-03-13")

    config = ForecastConfig(
        population=100_000,
        cur_date="2020-04-12",
        start_date="2020-03-13",
        last_n_day=5,
        last_limit=5,
        next_n_days=9,
        adjustment=AdjustmentConfig(
            ub_for_adjustment=5, metric=args.metric, method=args.method,
        ),
        grid=GridConfig(max_workers=args.workers),
    )

    print(_header("SYNTHETIC DEMO"))
    print(_kv("Days", len(cases)))
    print(_kv("Injected jump", f"positions {np.flatnonzero(mask).tolist()}"))
    print(_kv("Seed", args.seed))

    comparison = compare_results(config, cases)
    adjusted = comparison.adjusted.adjusted_series
    print(_subheader("Runs"))
    _print_runs(adjusted)
    _report_comparison(comparison, config)

    if args.plot:
        from reporting.plots import plot_comparison, save_figure
        print(_kv("Chart", save_figure(plot_comparison(comparison), args.plot)))
    return 0


# ===================================================================
# Argument parser
# ===================================================================

def _add_input_args(p: argparse.ArgumentParser, cases_required: bool) -> None:
    p.add_argument(
        "--cases", required=cases_required,
        help="Long-format CSV with Date, Status, Count columns",
    )
    p.add_argument(
        "--series",
        help="Two-column CSV (Date, Count) of daily confirmed cases",
    )
    p.add_argument(
        "--date-format", dest="date_format", default=None,
        help="strftime format of the Date column (default: inferred)",
    )


def _add_adjust_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--metric", default="C3_1day",
        choices=["C1", "C2", "C2_1day", "C3", "C3_1day"],
        help="Detection metric (default: C3_1day)",
    )
    p.add_argument(
        "--method", default="mean",
        help="Correction method: percentile, 'linear interpolation', "
             "'end points mean' or mean (default: mean)",
    )
    p.add_argument(
        "--ub", type=int, default=5,
        help="Longest run that is corrected (default: 5)",
    )


def _add_model_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--population", type=float, default=18_710_922,
                   help="Total population N (default: 18710922)")
    p.add_argument("--gamma", type=float, default=1 / 14.0,
                   help="Recovery rate (default: 1/14)")
    p.add_argument("--cur-date", dest="cur_date", default="2020-05-29",
                   help="Last training day (default: 2020-05-29)")
    p.add_argument("--start-date", dest="start_date", default="2020-03-13",
                   help="First day of the case table (default: 2020-03-13)")
    p.add_argument("--last-n-day", dest="last_n_day", type=int, default=20,
                   help="Initial training window and validation period (default: 20)")
    p.add_argument("--last-limit", dest="last_limit", type=int, default=30,
                   help="Extra training days searched (default: 30)")
    p.add_argument("--next-n-days", dest="next_n_days", type=int, default=20,
                   help="Forecast horizon in days (default: 20)")
    p.add_argument("--mu", type=float, default=None,
                   help="Fixed mortality rate (default: searched)")
    p.add_argument("--min-mu", dest="min_mu", type=float, default=0.001,
                   help="Lower end of the mu grid (default: 0.001)")
    p.add_argument("--max-mu", dest="max_mu", type=float, default=0.1,
                   help="Upper end of the mu grid (default: 0.1)")
    p.add_argument("--workers", type=int, default=None,
                   help="Threads for the grid search (default: serial)")


def build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="sisd",
        description=(
            "Adjusted SISD CLI -- jump-drop correction and SISD forecasting "
            "of daily epidemic counts"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              python cli.py detect --series daily.csv --metric C1
              python cli.py adjust --series daily.csv --method 'end points mean'
              python cli.py forecast --cases cases.csv --adjusted
              python cli.py compare --cases cases.csv --plot compare.png
              python cli.py demo
        """),
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Log progress (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ---- detect ----
    p_detect = subparsers.add_parser(
        "detect",
        help="List jump-drop runs",
        description="Scan a daily series and list every run of days whose "
                    "metric lies outside its bound.",
    )
    _add_input_args(p_detect, cases_required=False)
    _add_adjust_args(p_detect)

    # ---- adjust ----
    p_adjust = subparsers.add_parser(
        "adjust",
        help="Correct short jump-drops",
        description="Correct runs no longer than --ub days and report the "
                    "rewritten days.",
    )
    _add_input_args(p_adjust, cases_required=False)
    _add_adjust_args(p_adjust)
    p_adjust.add_argument("--output", help="Write the adjusted series as CSV")
    p_adjust.add_argument("--plot", help="Write an observed vs adjusted chart")

    # ---- forecast ----
    p_forecast = subparsers.add_parser(
        "forecast",
        help="Fit and forecast",
        description="Grid-search the SISD model on the training period and "
                    "forecast beyond --cur-date.",
    )
    _add_input_args(p_forecast, cases_required=True)
    _add_adjust_args(p_forecast)
    _add_model_args(p_forecast)
    p_forecast.add_argument(
        "--adjusted", action="store_true",
        help="Fit on jump-drop adjusted counts",
    )
    p_forecast.add_argument("--output", help="Write the tagged curve table as CSV")
    p_forecast.add_argument("--plot", help="Write a cumulative forecast chart")

    # ---- compare ----
    p_compare = subparsers.add_parser(
        "compare",
        help="Compare original and adjusted forecasts",
        description="Forecast with and without adjustment and report which "
                    "one fits the validation period better.",
    )
    _add_input_args(p_compare, cases_required=True)
    _add_adjust_args(p_compare)
    _add_model_args(p_compare)
    p_compare.add_argument("--plot", help="Write the comparison chart")

    # ---- demo ----
    p_demo = subparsers.add_parser(
        "demo",
        help="Run on a synthetic epidemic",
        description="Generate a logistic epidemic with an injected jump and "
                    "compare original and adjusted forecasts.",
    )
    p_demo.add_argument(
        "--metric", default="C1",
        choices=["C1", "C2", "C2_1day", "C3", "C3_1day"],
        help="Detection metric (default: C1)",
    )
    p_demo.add_argument("--method", default="end points mean",
                        help="Correction method (default: 'end points mean')")
    p_demo.add_argument("--noise", type=float, default=0.0,
                        help="Relative noise on daily counts (default: 0)")
    p_demo.add_argument("--seed", type=int, default=42,
                        help="Random seed for reproducibility (default: 42)")
    p_demo.add_argument("--workers", type=int, default=None,
                        help="Threads for the grid search (default: serial)")
    p_demo.add_argument("--plot", help="Write the comparison chart")

    return parser


# ===================================================================
# Main entry point
# ===================================================================

_COMMAND_MAP = {
    "detect": cmd_detect,
    "adjust": cmd_adjust,
    "forecast": cmd_forecast,
    "compare": cmd_compare,
    "demo": cmd_demo,
}


def main(argv: list[str] | None = None) -> int:
    """CLI main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    handler = _COMMAND_MAP.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    _configure_logging(args.verbose)
    try:
        return handler(args)
    except Exception as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
