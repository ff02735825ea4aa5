"""Command line interface for gangflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from pydantic import ValidationError

from gangflow import WorkflowDefinition, WorkflowEngine, get_customer_store, get_repository
from gangflow.config import load_config
from gangflow.exceptions import (
    GangflowError,
    UserNotInSegment,
    WorkflowNotFoundOrInactive,
)
from gangflow.persistence import ExecutionStatus, WorkflowExecution

app = typer.Typer(help="CLI for gangflow marketing workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
execution_app = typer.Typer(help="Commands for inspecting and resuming executions")
event_app = typer.Typer(help="Commands for raising trigger events")
scheduler_app = typer.Typer(help="Commands for resuming waiting executions")
jobs_app = typer.Typer(help="Scheduled trigger jobs")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(event_app, name="event")
app.add_typer(scheduler_app, name="scheduler")
app.add_typer(jobs_app, name="jobs")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level, e.g. INFO or DEBUG"),
) -> None:
    """gangflow CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine() -> WorkflowEngine:
    return WorkflowEngine(
        repository=get_repository(),
        customers=get_customer_store(),
        config=load_config(),
    )


def _parse_payload(payload: Optional[str]) -> Dict[str, Any]:
    if not payload:
        return {}
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Payload is not valid JSON: {exc}")
    if not isinstance(data, dict):
        raise typer.BadParameter("Payload must be a JSON object")
    return data


def _echo_execution(execution: WorkflowExecution) -> None:
    typer.echo(f"Execution {execution.id}: {execution.status.value}")
    typer.echo(f"Workflow: {execution.workflow_id}  User: {execution.user_id}")
    typer.echo(f"Current step: {execution.current_step}")
    if execution.wait_until:
        typer.echo(f"Waiting until: {execution.wait_until.isoformat()}")
    if execution.error_message:
        typer.echo(f"Message: {execution.error_message}")
    for record in execution.step_results:
        result = record.result
        outcome = getattr(result, "status", None) or result.kind
        typer.echo(f"- {record.step_id}: {outcome} ({record.executed_at.isoformat()})")


# ----------------------------------------------------------------------
# workflow


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List workflow definitions with their trigger and state.

    Example:
        gangflow workflow list
        # Output: 3f1c...  Welcome series  active  event:user_registered  3 steps
    """
    workflows = asyncio.run(get_repository().list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        trigger = wf.trigger
        detail = getattr(trigger, "event", None) or getattr(trigger, "schedule", None)
        state = "active" if wf.is_active else "inactive"
        summary = f"{trigger.type}:{detail}" if detail else trigger.type
        typer.echo(f"{wf.id}\t{wf.name}\t{state}\t{summary}\t{len(wf.steps)} steps")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a workflow definition and its steps."""
    wf = asyncio.run(get_repository().get_workflow(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.id}: {wf.name} ({'active' if wf.is_active else 'inactive'})")
    if wf.description:
        typer.echo(wf.description)
    typer.echo(f"Trigger: {wf.trigger.model_dump_json()}")
    if wf.segment_id:
        typer.echo(f"Segment: {wf.segment_id}")
    for step in wf.steps:
        typer.echo(f"- {step.id}: {step.type}" + (f" ({step.name})" if step.name else ""))


@workflow_app.command("load")
def workflow_load(path: Path) -> None:
    """
    Load workflow definitions from a YAML or JSON file.

    The file may hold a single definition, a list of definitions, or a
    mapping with a ``workflows`` list. Existing ids are replaced.

    Example:
        gangflow workflow load ./workflows/welcome.yaml
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    data = yaml.safe_load(path.read_text()) or []
    if isinstance(data, dict):
        data = data.get("workflows", [data])

    try:
        workflows = [WorkflowDefinition.model_validate(item) for item in data]
    except ValidationError as exc:
        typer.secho(f"Invalid workflow definition: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    repo = get_repository()

    async def _save() -> None:
        for wf in workflows:
            await repo.save_workflow(wf)

    asyncio.run(_save())
    for wf in workflows:
        typer.echo(f"Loaded workflow {wf.id} ({wf.name})")


def _set_active(workflow_id: str, active: bool) -> None:
    if not asyncio.run(get_repository().set_workflow_active(workflow_id, active)):
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow_id} {'activated' if active else 'deactivated'}")


@workflow_app.command("activate")
def workflow_activate(workflow_id: str) -> None:
    """Mark a workflow as active."""
    _set_active(workflow_id, True)


@workflow_app.command("deactivate")
def workflow_deactivate(workflow_id: str) -> None:
    """Mark a workflow as inactive. Running executions are not affected."""
    _set_active(workflow_id, False)


@workflow_app.command("trigger")
def workflow_trigger(
    workflow_id: str,
    user_id: str,
    payload: Optional[str] = typer.Option(None, help="JSON object of trigger data"),
) -> None:
    """
    Start a workflow for one customer and run it until it completes or waits.

    Example:
        gangflow workflow trigger 3f1c... user-42 --payload '{"source": "admin"}'
    """
    data = _parse_payload(payload)

    async def _run() -> WorkflowExecution | None:
        engine = _engine()
        try:
            execution = await engine.trigger_workflow(workflow_id, user_id, data)
            await engine.wait_idle()
            return await engine.repository.get_execution(execution.id)
        finally:
            engine.close()

    try:
        execution = asyncio.run(_run())
    except (WorkflowNotFoundOrInactive, UserNotInSegment) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if execution is not None:
        _echo_execution(execution)


@workflow_app.command("launch")
def workflow_launch(workflow_id: str) -> None:
    """Start a workflow for its whole audience (segment or opted-in customers)."""

    async def _run() -> int:
        engine = _engine()
        try:
            started = await engine.triggers.launch_workflow(workflow_id)
            await engine.wait_idle()
            return len(started)
        finally:
            engine.close()

    try:
        count = asyncio.run(_run())
    except WorkflowNotFoundOrInactive as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Started {count} execution(s)")


# ----------------------------------------------------------------------
# execution


@execution_app.command("list")
def execution_list(
    workflow_id: Optional[str] = typer.Option(None, "--workflow", help="Filter by workflow id"),
    status: Optional[ExecutionStatus] = typer.Option(None, help="Filter by status"),
) -> None:
    """
    List executions with their status.

    Example:
        gangflow execution list --status FAILED
        # Output: 9a7e...  3f1c...  user-42  FAILED  step 2
    """
    executions = asyncio.run(
        get_repository().list_executions(workflow_id=workflow_id, status=status)
    )
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(
            f"{ex.id}\t{ex.workflow_id}\t{ex.user_id}\t{ex.status.value}\tstep {ex.current_step}"
        )


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution and its step audit trail."""
    execution = asyncio.run(get_repository().get_execution(execution_id))
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    _echo_execution(execution)


@execution_app.command("resume")
def execution_resume(execution_id: str) -> None:
    """Resume a RUNNING execution from its current step."""

    async def _run() -> WorkflowExecution | None:
        engine = _engine()
        try:
            await engine.execute_workflow(execution_id, force=True)
            await engine.wait_idle()
            return await engine.repository.get_execution(execution_id)
        finally:
            engine.close()

    execution = asyncio.run(_run())
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    _echo_execution(execution)


# ----------------------------------------------------------------------
# event


@event_app.command("emit")
def event_emit(
    event_name: str,
    payload: Optional[str] = typer.Option(None, help="JSON object; must contain user_id"),
) -> None:
    """
    Raise a storefront event and run the workflows it triggers.

    Example:
        gangflow event emit order_placed --payload '{"user_id": "user-42", "order_id": "o-1"}'
    """
    data = _parse_payload(payload)
    if "user_id" not in data:
        typer.secho("Payload must contain user_id", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def _run() -> None:
        engine = _engine()
        try:
            await engine.events.emit(event_name, data)
            await engine.wait_idle()
        finally:
            engine.close()

    asyncio.run(_run())
    typer.echo(f"Event {event_name} emitted for {data['user_id']}")


@event_app.command("conditions")
def event_conditions(user_id: str) -> None:
    """Evaluate condition-triggered workflows for one customer."""

    async def _run() -> int:
        engine = _engine()
        try:
            started = await engine.triggers.evaluate_condition_triggers(user_id)
            await engine.wait_idle()
            return len(started)
        finally:
            engine.close()

    try:
        started = asyncio.run(_run())
    except GangflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Started {started} execution(s)")


# ----------------------------------------------------------------------
# scheduler


@scheduler_app.command("sweep")
def scheduler_sweep() -> None:
    """Resume due executions and launch due recurring workflows once."""

    async def _run() -> tuple[int, int]:
        engine = _engine()
        try:
            counts = await engine.tick()
            await engine.wait_idle()
            return counts
        finally:
            engine.close()

    resumed, launched = asyncio.run(_run())
    typer.echo(f"Resumed {resumed} execution(s); launched {launched} recurring workflow(s)")


@scheduler_app.command("run")
def scheduler_run(
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run indefinitely)"
    ),
) -> None:
    """Run the sweep loop at the configured interval."""

    async def _run() -> None:
        engine = _engine()
        try:
            await engine.run(lifespan=lifespan)
            await engine.wait_idle()
        finally:
            engine.close()

    typer.echo("Starting scheduler")
    asyncio.run(_run())


# ----------------------------------------------------------------------
# jobs


@jobs_app.command("abandoned-carts")
def jobs_abandoned_carts() -> None:
    """Raise cart_abandoned for idle carts (run hourly)."""

    async def _run() -> int:
        engine = _engine()
        try:
            count = await engine.check_abandoned_carts()
            await engine.wait_idle()
            return count
        finally:
            engine.close()

    typer.echo(f"Processed {asyncio.run(_run())} abandoned cart(s)")


@jobs_app.command("inactive-customers")
def jobs_inactive_customers() -> None:
    """Raise inactive_customer for lapsed customers (run daily)."""

    async def _run() -> int:
        engine = _engine()
        try:
            count = await engine.check_inactive_customers()
            await engine.wait_idle()
            return count
        finally:
            engine.close()

    typer.echo(f"Processed {asyncio.run(_run())} inactive customer(s)")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
