# cli.py
from __future__ import annotations

import logging
import queue
import sys
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

import click

from batchrun.dag import plan_stages, validate_steps
from batchrun.engine import (
    CancelToken,
    ConfirmBridge,
    ConfirmResponse,
    EngineEvent,
    ExecutionContext,
    RequestConfirm,
    ScenarioRuntime,
    StepFinished,
    StepLog,
    StepStarted,
    run_scenario,
)
from batchrun.errors import EngineError
from batchrun.executor import DbExecutor, DummyExecutor, PostgresExecutor
from batchrun.loader import load_scenario
from batchrun.model import LoopKind, Scenario, Step
from batchrun.ui.console import Console, get_console, set_console

CONFIRM_MODES = ("ask", "yes", "no", "default")
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def parse_vars(pairs: Tuple[str, ...]) -> Dict[str, str]:
    """KEY=VALUE pairs from --var into a dict."""
    out: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--var")
        out[key] = value
    return out


def load_or_exit(path: str) -> Scenario:
    console = get_console()
    try:
        return load_scenario(path)
    except FileNotFoundError as e:
        console.print_error(
            "Scenario file not found",
            str(e),
            suggestion="Pass a .py file defining SCENARIO, or a .json scenario:\n  batchrun run nightly.py",
        )
    except Exception as e:
        console.print_error("Failed to load scenario", f"Could not load scenario from {path}", details=[str(e)])
        if console.debug:
            import traceback
            traceback.print_exc()
    sys.exit(EXIT_FAILED)


class EventPrinter:
    """
    Event sink for the CLI. Console (or JSON line) output happens right away;
    confirmation requests in "ask" mode are queued for the main thread.
    """

    def __init__(self, console: Console, *, as_json: bool, mode: str, bridge: Optional[ConfirmBridge]):
        self.console = console
        self.as_json = as_json
        self.mode = mode
        self.bridge = bridge
        self.prompts: "queue.Queue[RequestConfirm]" = queue.Queue()
        self._lock = threading.Lock()

    def __call__(self, event: EngineEvent) -> None:
        if self.as_json:
            with self._lock:
                click.echo(event.model_dump_json())
        else:
            self._render(event)

        if isinstance(event, RequestConfirm) and self.bridge is not None:
            if self.mode == "ask":
                self.prompts.put(event)
            else:
                self.bridge.respond(event.request_id, self.mode == "yes")

    def _render(self, event: EngineEvent) -> None:
        c = self.console
        if isinstance(event, StepStarted):
            c.print_step_start(event.step_id)
        elif isinstance(event, StepLog):
            c.print_step_log(event.step_id, event.line)
        elif isinstance(event, StepFinished):
            c.print_step_finished(event.step_id, event.success)
        elif isinstance(event, RequestConfirm):
            c.print_confirm_request(
                event.step_id, event.step_name, event.step_kind, event.phase.value, event.summary, event.message
            )
        elif isinstance(event, ConfirmResponse):
            c.print_confirm_answer(event.step_id, event.accepted)

    def answer_prompts(self, done: threading.Event) -> None:
        """Serve interactive prompts on the calling (main) thread until `done` is set."""
        while not done.is_set():
            try:
                request = self.prompts.get(timeout=0.1)
            except queue.Empty:
                continue
            default = request.default_answer.value == "yes"
            # JSON mode keeps stdout for event lines only.
            accepted = click.confirm(
                f"Proceed with '{request.step_name}' ({request.phase.value})?", default=default, err=self.as_json
            )
            self.bridge.respond(request.request_id, accepted)


def build_default_executor(db_dsn: Optional[str]) -> DbExecutor:
    if db_dsn:
        return PostgresExecutor(db_dsn)
    return DummyExecutor()


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and DEBUG logging)",
)
@click.pass_context
def cli(ctx, debug):
    """batchrun: dependency-ordered batch scenario runner."""
    # Initialize console with debug flag
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("scenario_file", type=click.Path(dir_okay=False))
@click.option("--var", "variables", multiple=True, metavar="KEY=VALUE", help="Seed a context variable (repeatable)")
@click.option("--workers", default=None, type=click.IntRange(min=1), help="Max parallel steps (default: unbounded)")
@click.option(
    "--confirm",
    "confirm_mode",
    type=click.Choice(CONFIRM_MODES),
    default="ask",
    show_default=True,
    help="How confirmation gates are answered",
)
@click.option("--db-dsn", default=None, help="PostgreSQL DSN for the 'default' DB target (default: dummy)")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print events as JSON lines")
@click.pass_context
def run(ctx, scenario_file, variables, workers, confirm_mode, db_dsn, as_json):
    """Run a scenario."""
    console = get_console()
    scenario = load_or_exit(scenario_file)
    context = ExecutionContext(parse_vars(variables))

    if not as_json:
        console.print_run_started(scenario.name, Path(scenario_file).name, len(scenario))

    bridge = None if confirm_mode == "default" else ConfirmBridge()
    printer = EventPrinter(console, as_json=as_json, mode=confirm_mode, bridge=bridge)
    cancel = CancelToken()
    outcome: Dict[str, object] = {}
    done = threading.Event()

    def _engine() -> None:
        try:
            outcome["runtime"] = run_scenario(
                scenario,
                build_default_executor(db_dsn),
                printer,
                cancel,
                bridge,
                context=context,
                max_workers=workers,
            )
        except Exception as e:
            outcome["error"] = e
        finally:
            done.set()

    engine_thread = threading.Thread(target=_engine, name="batchrun-engine")
    engine_thread.start()
    interrupted = False
    try:
        printer.answer_prompts(done)
    except (KeyboardInterrupt, click.Abort):
        interrupted = True
        console.print_info("\nInterrupted by user, stopping running steps...")
        cancel.cancel()
        if bridge is not None:
            bridge.close()
    engine_thread.join()

    error = outcome.get("error")
    if error is not None:
        if isinstance(error, EngineError):
            console.print_error("Scenario not started", str(error))
        else:
            console.print_exception(error)
        sys.exit(EXIT_FAILED)

    runtime: ScenarioRuntime = outcome["runtime"]
    if not as_json:
        console.print_results(runtime)
    if interrupted or runtime.cancelled:
        sys.exit(EXIT_INTERRUPTED)
    if runtime.failed:
        sys.exit(EXIT_FAILED)


def _print_plan(console: Console, steps: list[Step], scope: str, indent: int = 0) -> None:
    for index, stage in enumerate(plan_stages(steps, scope=scope), start=1):
        console.print_plan_stage(index, stage, indent)
    for step in steps:
        if isinstance(step.kind, LoopKind):
            console.print_info(f"{'  ' * indent}loop {step.id} ({step.kind.glob_pattern} -> {step.kind.loop_var}):")
            _print_plan(console, step.kind.child_steps, f"loop '{step.id}'", indent + 1)


@cli.command()
@click.argument("scenario_file", type=click.Path(dir_okay=False))
def plan(scenario_file):
    """Print the dependency stages of a scenario."""
    console = get_console()
    scenario = load_or_exit(scenario_file)
    try:
        validate_steps(scenario.steps)
    except EngineError as e:
        console.print_error("Invalid scenario", str(e))
        sys.exit(EXIT_FAILED)
    console.print_header(f"PLAN: {scenario.name}")
    _print_plan(console, scenario.steps, "scenario")


@cli.command()
@click.argument("scenario_file", type=click.Path(dir_okay=False))
def check(scenario_file):
    """Validate a scenario without running it."""
    console = get_console()
    scenario = load_or_exit(scenario_file)
    try:
        validate_steps(scenario.steps)
    except EngineError as e:
        console.print_error("Invalid scenario", str(e))
        sys.exit(EXIT_FAILED)
    console.print_info(f"OK: {scenario.name} ({len(scenario)} steps, {len(scenario.db_connections)} DB targets)")


if __name__ == "__main__":
    cli()
