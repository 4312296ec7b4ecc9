"""CLI entrypoint for the regional dryness indicator pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dryness.common.config_loader import AnalysisConfig, load_analysis_config
from dryness.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, MODES
from dryness.common.errors import PipelineError, StageError
from dryness.common.fs import out_dir
from dryness.common.ids import generate_run_id
from dryness.common.logging import build_logger, close_logger, log_event
from dryness.common.models import Observation, RegionFeature
from dryness.pipeline.executor import (
    Command,
    CompletedEvent,
    FailedEvent,
    FilterBBoxCommand,
    GridInterpolateCommand,
    MatchPointsCommand,
    ProcessCHSHCommand,
    ProcessHTHCommand,
    ProcessMonthlyCommand,
    ProgressEvent,
    ProgressExecutor,
)
from dryness.pipeline.export import write_flags_json, write_results_csv
from dryness.pipeline.extract import (
    extract_ch_observations,
    extract_hth_observations,
    extract_observations,
    extract_sh_observations,
)
from dryness.pipeline.regions import load_regions, read_collection, region_property_keys
from dryness.pipeline.reports import RunStats, run_status, write_run_summary
from dryness.pipeline.tabular import read_tabular_file


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=MODES)
    parser.add_argument("--data", default=None, help="Combined LAT/LONG/CH/SH file (or HTH file)")
    parser.add_argument("--ch", default=None, help="CH half file for split input")
    parser.add_argument("--sh", default=None, help="SH half file for split input")
    parser.add_argument("--regions", required=True, help="GeoJSON FeatureCollection of region boundaries")
    parser.add_argument("--method", default=None, choices=["identifier", "coordinates"])
    parser.add_argument(
        "--grid-interpolation",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Block-fill a 0.01 degree grid from split CH/SH cells instead of matching points",
    )
    parser.add_argument("--name-field", default=None)
    parser.add_argument("--period", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    return parser.parse_args(argv)


def execute(command: Command, logger: logging.Logger, run_id: str) -> Any:
    """Run a command on the background executor, logging its progress events."""
    executor = ProgressExecutor(logger=logger)
    executor.submit(command)
    for event in executor.events():
        if isinstance(event, ProgressEvent):
            log_event(
                logger,
                f"{event.fraction:.0%} {event.message}",
                level=logging.DEBUG,
                run_id=run_id,
                stage="progress",
                event="PROGRESS",
                status="ok",
            )
        elif isinstance(event, FailedEvent):
            raise StageError(event.message, error_code=event.error_code)
        elif isinstance(event, CompletedEvent):
            return event.payload
    raise StageError("Run ended without a result")


def _require(value: str | None, flag: str, mode: str) -> Path:
    if not value:
        raise PipelineError(f"{flag} is required for {mode}")
    return Path(value)


def load_combined(args: argparse.Namespace, stats: RunStats, logger: logging.Logger) -> list[Observation]:
    table = read_tabular_file(_require(args.data, "--data", args.command))
    extraction = extract_observations(table.columns, table.records, logger=logger)
    stats.add_extraction(extraction.rows_in, len(extraction.items))
    return extraction.items


def load_split(
    args: argparse.Namespace,
    cfg: AnalysisConfig,
    regions: list[RegionFeature],
    stats: RunStats,
    logger: logging.Logger,
    run_id: str,
) -> list[Observation]:
    ch_table = read_tabular_file(_require(args.ch, "--ch", args.command))
    sh_table = read_tabular_file(_require(args.sh, "--sh", args.command))
    ch = extract_ch_observations(ch_table.columns, ch_table.records, logger=logger)
    sh = extract_sh_observations(sh_table.columns, sh_table.records, logger=logger)
    stats.add_extraction(ch.rows_in, len(ch.items))
    stats.add_extraction(sh.rows_in, len(sh.items))

    grid = cfg.grid_interpolation if args.grid_interpolation is None else args.grid_interpolation
    if grid:
        ch_inside = execute(FilterBBoxCommand(ch.items, regions, cfg.bbox_chunk, cfg.repair_invalid), logger, run_id)
        sh_inside = execute(FilterBBoxCommand(sh.items, regions, cfg.bbox_chunk, cfg.repair_invalid), logger, run_id)
        filled = execute(
            GridInterpolateCommand(
                ch_points=ch_inside,
                sh_points=sh_inside,
                regions=regions,
                chunk_size=cfg.grid_chunk,
                repair_invalid=cfg.repair_invalid,
            ),
            logger,
            run_id,
        )
        stats.matched = len(filled)
        return filled

    matched = execute(
        MatchPointsCommand(
            ch_points=ch.items,
            sh_points=sh.items,
            method=args.method or cfg.matching_method,
            chunk_size=cfg.match_chunk,
        ),
        logger,
        run_id,
    )
    stats.matched = len(matched)
    return matched


def within_boundary(
    points: list,
    regions: list[RegionFeature],
    cfg: AnalysisConfig,
    stats: RunStats,
    logger: logging.Logger,
    run_id: str,
) -> list:
    kept = execute(
        FilterBBoxCommand(
            points=points,
            regions=regions,
            chunk_size=cfg.bbox_chunk,
            repair_invalid=cfg.repair_invalid,
        ),
        logger,
        run_id,
    )
    stats.in_boundary = len(kept)
    return kept


def _load_chsh(args, cfg, regions, stats, logger, run_id) -> list[Observation]:
    if args.command == "split" or (args.command == "monthly" and args.data is None):
        return load_split(args, cfg, regions, stats, logger, run_id)
    return load_combined(args, stats, logger)


def run_pipeline(args: argparse.Namespace, cfg: AnalysisConfig, logger: logging.Logger, run_id: str, data_dir: Path) -> int:
    name_field = args.name_field or cfg.name_field
    period = args.period or cfg.period
    regions_path = Path(args.regions)

    if args.command == "keys":
        print(json.dumps(region_property_keys(read_collection(regions_path))))
        return EXIT_SUCCESS

    regions = load_regions(regions_path, name_field, logger=logger)
    stats = RunStats(mode=args.command, regions=len(regions))
    outputs = out_dir(data_dir)

    if args.command == "hth":
        table = read_tabular_file(_require(args.data, "--data", args.command))
        extraction = extract_hth_observations(table.columns, table.records, logger=logger)
        stats.add_extraction(extraction.rows_in, len(extraction.items))
        points = within_boundary(extraction.items, regions, cfg, stats, logger, run_id)
        outcome = execute(
            ProcessHTHCommand(points=points, regions=regions, repair_invalid=cfg.repair_invalid),
            logger,
            run_id,
        )
        output = write_flags_json(outputs / "hth_flags.json", outcome.results)
    elif args.command == "monthly":
        observations = within_boundary(
            _load_chsh(args, cfg, regions, stats, logger, run_id), regions, cfg, stats, logger, run_id
        )
        outcome = execute(
            ProcessMonthlyCommand(
                points=observations,
                regions=regions,
                thresholds=cfg.monthly_thresholds,
                repair_invalid=cfg.repair_invalid,
            ),
            logger,
            run_id,
        )
        output = write_flags_json(outputs / "monthly_flags.json", outcome.results)
    else:
        observations = within_boundary(
            _load_chsh(args, cfg, regions, stats, logger, run_id), regions, cfg, stats, logger, run_id
        )
        outcome = execute(
            ProcessCHSHCommand(points=observations, regions=regions, repair_invalid=cfg.repair_invalid),
            logger,
            run_id,
        )
        output = write_results_csv(
            outputs / f"{args.command}_results.csv",
            outcome.results,
            period=period,
            province=cfg.province,
        )

    stats.skipped_regions = list(outcome.skipped_regions)
    stats.outputs.append(output.name)
    write_run_summary(data_dir, run_id=run_id, stats=stats)
    if run_status(stats) == "partial":
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    level = "WARNING" if args.log_level == "WARN" else args.log_level

    logger = build_logger(run_id, data_dir=data_dir, level=level)
    try:
        cfg = load_analysis_config(Path(args.config_dir), overlay_config_dir=overlay_config_dir)
        log_event(logger, "run start", run_id=run_id, stage=args.command, event="STAGE_START", status="ok")
        exit_code = run_pipeline(args, cfg, logger, run_id, data_dir)
        log_event(logger, "run end", run_id=run_id, stage=args.command, event="STAGE_END", status="ok")
        return exit_code
    except PipelineError as exc:
        log_event(
            logger,
            f"run failed: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            stage=args.command,
            event="STAGE_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    except Exception as exc:
        log_event(
            logger,
            f"unexpected failure: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            stage=args.command,
            event="STAGE_FAIL",
            status="error",
            error_code="UNEXPECTED_ERROR",
        )
        return EXIT_HARD_FAIL
    finally:
        close_logger(logger)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    return run_command(args)


if __name__ == "__main__":
    raise SystemExit(main())
