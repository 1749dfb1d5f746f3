"""
Command-line entry point.

    testmatrix ingest results.json [more.json ...] [--report-dir DIR]
    testmatrix report --format markdown --output summary.md
    testmatrix show
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from . import initialize_production_logging
from .config import EngineConfig, load_config
from .exceptions import TestMatrixError
from .models import AggregatedSnapshot, GateVerdict
from .pipeline import ingest_run_file, load_snapshot
from .reporting import build_summary, export_csv, export_json, write_markdown

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_GATE_FAILED = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="testmatrix",
        description="Aggregate test runner exports into a coverage matrix snapshot",
    )
    parser.add_argument('--config', type=str, help='Path to YAML configuration file')
    parser.add_argument('--snapshot', type=str, help='Override the snapshot file location')
    parser.add_argument(
        '--log-level',
        type=str.upper,
        default='INFO',
        choices=['TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Console log level (default: INFO)'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    ingest = subparsers.add_parser('ingest', help='Merge runner exports into the snapshot')
    ingest.add_argument('exports', nargs='+', help='Runner JSON exports, ingested in order')
    ingest.add_argument('--report-dir', type=str, help='Also write summary.md, snapshot.json and CSVs here')
    ingest.add_argument(
        '--fail-on-gate',
        action='store_true',
        help='Exit with status 2 when the quality gate verdict is FAILED'
    )

    report = subparsers.add_parser('report', help='Emit reports from the stored snapshot')
    report.add_argument(
        '--format',
        choices=['markdown', 'json', 'csv'],
        default='markdown',
        help='Report format (default: markdown)'
    )
    report.add_argument('--output', type=str, required=True, help='Output file (directory for csv)')

    show = subparsers.add_parser('show', help='Print the snapshot summary')
    show.add_argument('--json', action='store_true', help='Print the output snapshot as JSON')
    show.add_argument(
        '--fail-on-gate',
        action='store_true',
        help='Exit with status 2 when the quality gate verdict is FAILED'
    )
    return parser


def _load_config(args: argparse.Namespace) -> EngineConfig:
    config = load_config(args.config)
    if args.snapshot:
        config.storage.snapshot_path = Path(args.snapshot)
    return config


def _write_reports(snapshot: AggregatedSnapshot, config: EngineConfig, report_dir: Path) -> None:
    document = build_summary(snapshot, config.quality)
    write_markdown(document, report_dir / "summary.md")
    export_json(snapshot, report_dir / "snapshot.json")
    export_csv(snapshot, report_dir)


def _print_summary(snapshot: AggregatedSnapshot) -> None:
    s = snapshot.summary
    m = snapshot.quality_metrics
    print(f"Project:       {snapshot.identification.project_name}")
    print(f"Revision:      {snapshot.revision}")
    print(f"Tests:         {s.total} (passed {s.passed}, failed {s.failed}, skipped {s.skipped}, flaky {s.flaky})")
    print(f"Pass rate:     {m.pass_rate}%")
    print(f"Health:        {m.overall_health} ({m.health_status.value})")
    print(f"Quality gate:  {m.quality_gate.verdict.value} "
          f"({m.quality_gate.passed_count}/{m.quality_gate.total_count})")
    print(f"Defects:       {len(snapshot.defect_list)}")


def _gate_exit(snapshot: AggregatedSnapshot, fail_on_gate: bool) -> int:
    if fail_on_gate and snapshot.quality_metrics.quality_gate.verdict is GateVerdict.FAILED:
        logger.warning("Quality gate verdict is FAILED")
        return EXIT_GATE_FAILED
    return EXIT_OK


def _cmd_ingest(args: argparse.Namespace, config: EngineConfig) -> int:
    snapshot = None
    for export in args.exports:
        snapshot, metadata = ingest_run_file(export, config=config)
        if not metadata["success"]:
            logger.warning(f"Ingested {export} with problems: {metadata}")
    if args.report_dir:
        _write_reports(snapshot, config, Path(args.report_dir))
    _print_summary(snapshot)
    return _gate_exit(snapshot, args.fail_on_gate)


def _cmd_report(args: argparse.Namespace, config: EngineConfig) -> int:
    snapshot = load_snapshot(config)
    output = Path(args.output)
    if args.format == 'markdown':
        write_markdown(build_summary(snapshot, config.quality), output)
    elif args.format == 'json':
        export_json(snapshot, output)
    else:
        export_csv(snapshot, output)
    return EXIT_OK


def _cmd_show(args: argparse.Namespace, config: EngineConfig) -> int:
    snapshot = load_snapshot(config)
    if args.json:
        print(json.dumps(snapshot.to_output_dict(), indent=2, ensure_ascii=False))
    else:
        _print_summary(snapshot)
    return _gate_exit(snapshot, args.fail_on_gate)


COMMANDS = {
    'ingest': _cmd_ingest,
    'report': _cmd_report,
    'show': _cmd_show,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    initialize_production_logging(console_level=args.log_level, enable_file_logging=False)

    try:
        config = _load_config(args)
        return COMMANDS[args.command](args, config)
    except TestMatrixError as e:
        logger.error(str(e))
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
