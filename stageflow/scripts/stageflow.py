#!/usr/bin/env python3
"""
stageflow: run an external tool over a set of files and collect its output

Commands:
  stageflow run TOOL FILE...   # launch, wait for outputs, move them next to FILE
  stageflow check TOOL         # pre-flight check of the staging folder
  stageflow stop TOOL          # drop the stop file into the staging folder
  stageflow tools              # list configured tools
"""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from threading import Event, Thread
from typing import Dict, List, Optional
import logging

from pydantic import ValidationError
from rich.console import Console

from stageflow.core.configuration import ConfigurationManager
from stageflow.core.coordinator import RunCoordinator
from stageflow.core.error_handler import ErrorHandler
from stageflow.core.errors import InvalidSpec, StageflowError
from stageflow.core.models import CompletionState, RunResult
from stageflow.core.staging import StagingArea
from stageflow.tools import get_adapter
from stageflow.utils.display import RunProgress, reports_table, summary_table, tools_table, watch_progress
from stageflow.utils.file_management import FileManager
from stageflow.utils.logging_config import setup_logging

logger = logging.getLogger("stageflow")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def exit_code_for(result: RunResult) -> int:
    if result.cancelled or result.state == CompletionState.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_OK if result.succeeded else EXIT_FAILED


def _load_tool(args: argparse.Namespace):
    manager = ConfigurationManager(getattr(args, "config", None))
    return manager, manager.get_tool(args.tool)


def _run_in_thread(coordinator: RunCoordinator, spec, harvest) -> RunResult:
    """Run on a worker thread so Ctrl+C in the main thread can request cancellation."""
    box: Dict[str, object] = {}

    def target():
        try:
            box["result"] = coordinator.start(spec, harvest)
        except BaseException as ex:  # re-raised on the main thread
            box["error"] = ex

    worker = Thread(target=target, name="stageflow-run", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(timeout=0.2)
        except KeyboardInterrupt:
            print("Cancelling... (waiting for the current poll to finish)", file=sys.stderr)
            coordinator.cancel()
    if "error" in box:
        raise box["error"]
    return box["result"]


def cmd_run(args: argparse.Namespace) -> int:
    console = Console()
    try:
        manager, tool = _load_tool(args)
    except (FileNotFoundError, ValueError, KeyError) as e:
        setup_logging(level=args.log_level or "INFO")
        logger.error(f"Configuration error: {e}")
        console.print(f"[red]Configuration error:[/] {e}")
        return EXIT_FAILED
    setup_logging(level=args.log_level or manager.config.log_level, log_file=manager.config.log_file)

    inputs = [Path(p).expanduser().resolve() for p in args.files]
    adapter = get_adapter(tool.adapter)
    try:
        spec = adapter.build_spec(tool, inputs)
    except (ValueError, FileNotFoundError, ValidationError) as e:
        logger.error(f"Cannot prepare {tool.name}: {e}")
        console.print(f"[red]Cannot prepare {tool.name}:[/] {e}")
        return EXIT_FAILED

    dest = Path(args.dest).expanduser().resolve() if args.dest else adapter.destination(tool, inputs)
    moved: Dict[Path, Path] = {}
    if adapter.harvest_in_place(tool):
        def harvest(path: Path) -> bool:
            moved[path] = path
            return True
    else:
        harvest = FileManager.make_move_harvester(dest, on_moved=lambda src, target: moved.__setitem__(src, target))

    matcher_names = [m.describe() for m in spec.expected_artifacts]
    progress = RunProgress(tool.name, len(matcher_names))
    coordinator = RunCoordinator(on_progress=progress.update)

    stop = Event()
    watcher: Optional[Thread] = None
    if args.watch:
        watcher = Thread(target=watch_progress, args=(progress, stop, args.interval, console), daemon=False)
        watcher.start()
    logger.info(f"Running {tool.name} on {len(inputs)} file(s); results go to {dest}")
    try:
        result = _run_in_thread(coordinator, spec, harvest)
    except InvalidSpec as e:
        console.print(f"[red]Invalid run specification:[/] {e}")
        return EXIT_FAILED
    finally:
        stop.set()
        if watcher is not None:
            watcher.join(timeout=2.0)
            if watcher.is_alive():
                logger.warning("progress watcher did not exit within 2s")

    console.print(summary_table(result, matcher_names, moved))
    handler = ErrorHandler()
    reports = handler.analyze_result(result, tool=tool.name, matcher_names=matcher_names)
    if reports:
        console.print(reports_table(reports))
    if args.report:
        payload = result.to_dict()
        payload.update({
            "tool": tool.name,
            "inputs": [str(p) for p in inputs],
            "destination": str(dest),
            "moved": {str(k): str(v) for k, v in moved.items()},
            "problems": [
                {"category": r.category.value, "severity": r.severity.value, "description": r.description}
                for r in reports
            ],
            "problem_summary": handler.summary(),
        })
        FileManager.save_json(payload, Path(args.report))
    return exit_code_for(result)


def cmd_check(args: argparse.Namespace) -> int:
    setup_logging(level="INFO")
    console = Console()
    try:
        _, tool = _load_tool(args)
    except (FileNotFoundError, ValueError, KeyError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        return EXIT_FAILED
    allow, require = get_adapter(tool.adapter).staging_rules(tool)
    try:
        clear, unexpected = StagingArea().check_empty(tool.staging_dir, allow, require)
    except StageflowError as e:
        console.print(f"[red]{e}[/]")
        return EXIT_FAILED
    if clear:
        console.print(f"[green]{tool.staging_dir} is ready[/]")
        return EXIT_OK
    console.print(f"[red]{tool.staging_dir} is not ready:[/] {', '.join(unexpected)}")
    return EXIT_FAILED


def cmd_stop(args: argparse.Namespace) -> int:
    setup_logging(level="INFO")
    try:
        _, tool = _load_tool(args)
    except (FileNotFoundError, ValueError, KeyError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILED
    if not tool.sentinel:
        print(f"{tool.name} has no stop file configured", file=sys.stderr)
        return EXIT_FAILED
    path = StagingArea().write_sentinel(tool.staging_dir, tool.sentinel)
    print(f"Wrote {path}; the run stops at its next poll")
    return EXIT_OK


def cmd_tools(args: argparse.Namespace) -> int:
    setup_logging(level="INFO")
    console = Console()
    try:
        manager = ConfigurationManager(args.config)
        tools = [manager.config.tools[name] for name in manager.config.tool_names()]
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        return EXIT_FAILED
    console.print(tools_table(tools))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stageflow", description="Run external tools through a staging folder and collect their output")
    sub = parser.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="Run a configured tool over files")
    p_run.add_argument("tool", help="Tool name from the configuration")
    p_run.add_argument("files", nargs="+", help="Input files")
    p_run.add_argument("--config", default=None, help="Configuration YAML (default: $STAGEFLOW_CONFIG or ./stageflow.yaml)")
    p_run.add_argument("--dest", default=None, help="Where to move results (default: folder of the first input)")
    p_run.add_argument("--watch", dest="watch", action="store_true", default=True, help="Show live progress while running (default)")
    p_run.add_argument("--no-watch", dest="watch", action="store_false", help="Disable live progress display")
    p_run.add_argument("--interval", type=float, default=0.5, help="Progress refresh interval seconds (default: 0.5)")
    p_run.add_argument("--report", default=None, help="Write a JSON report of the run to this path")
    p_run.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default=None,
                       help="Log level (default: logging.level from the configuration)")
    p_run.set_defaults(func=cmd_run)

    p_check = sub.add_parser("check", help="Check the staging folder of a tool is ready")
    p_check.add_argument("tool")
    p_check.add_argument("--config", default=None)
    p_check.set_defaults(func=cmd_check)

    p_stop = sub.add_parser("stop", help="Ask a polling run to stop (writes the stop file)")
    p_stop.add_argument("tool")
    p_stop.add_argument("--config", default=None)
    p_stop.set_defaults(func=cmd_stop)

    p_tools = sub.add_parser("tools", help="List configured tools")
    p_tools.add_argument("--config", default=None)
    p_tools.set_defaults(func=cmd_tools)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    started = time.monotonic()
    rc = int(args.func(args))
    logger.debug(f"{args.cmd} finished rc={rc} in {time.monotonic() - started:.1f}s")
    return rc


if __name__ == "__main__":
    sys.exit(main())
