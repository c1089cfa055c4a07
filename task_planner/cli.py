"""CLI for the agent task planner."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config_loader import PlannerConfig, create_default_config, load_config
from .dependency_resolver import DependencyResolver
from .exceptions import PlannerError
from .logging_config import configure_logging
from .models import DecompositionInput, ExecutionPlan, Issue, TaskType
from .planner import PlanningWorkflow

console = Console()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="task-planner",
        description="Plan agent assignments and execution order for tasks",
    )
    parser.add_argument("--config", "-c", help="Path to planner configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Plan command
    plan_parser = subparsers.add_parser("plan", help="Decompose a task and build an execution plan")
    plan_parser.add_argument("title", help="Task title")
    plan_parser.add_argument("--description", "-d", default="", help="Task description")
    plan_parser.add_argument(
        "--type", "-t",
        choices=[t.value for t in TaskType],
        default=TaskType.FEATURE.value,
        help="Task type",
    )
    plan_parser.add_argument("--priority", "-p", type=int, choices=[1, 2, 3], help="Base priority")
    plan_parser.add_argument("--agents", help="Comma-separated list of available agents")
    plan_parser.add_argument("--no-balance", action="store_true", help="Disable load balancing")
    plan_parser.add_argument("--max-parallel", type=int, help="Maximum agents per phase")
    plan_parser.add_argument("--id-prefix", default="task", help="Prefix for generated issue ids")
    plan_parser.add_argument("--json", action="store_true", help="Output JSON")

    # Classify command
    classify_parser = subparsers.add_parser("classify", help="Classify a task")
    classify_parser.add_argument("title", help="Task title")
    classify_parser.add_argument("--description", "-d", default="", help="Task description")
    classify_parser.add_argument("--json", action="store_true", help="Output JSON")

    # Compare command
    compare_parser = subparsers.add_parser("compare", help="Rank agents for a task")
    compare_parser.add_argument("title", help="Task title")
    compare_parser.add_argument("--description", "-d", default="", help="Task description")
    compare_parser.add_argument("--agents", help="Comma-separated list of available agents")

    # Resolve command
    resolve_parser = subparsers.add_parser("resolve", help="Order a YAML/JSON list of issues")
    resolve_parser.add_argument("file", help="Path to issues file")
    resolve_parser.add_argument("--strict", action="store_true", help="Reject unknown dependency ids")
    resolve_parser.add_argument("--json", action="store_true", help="Output JSON")

    # Status command
    status_parser = subparsers.add_parser("status", help="Summarize readiness of a backlog file")
    status_parser.add_argument("file", help="Path to issues file")
    status_parser.add_argument("--agents", help="Comma-separated list of available agents")
    status_parser.add_argument("--json", action="store_true", help="Output JSON")

    # Version command
    subparsers.add_parser("version", help="Show version information")

    args = parser.parse_args(argv)

    if args.command == "version":
        from . import __version__

        console.print(f"[bold blue]Agent Task Planner[/bold blue] v{__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    load_dotenv()
    # Logs stay off stdout while the config itself is loading
    configure_logging(level="DEBUG" if args.verbose else "WARNING", json_format=False)

    try:
        config = load_config(args.config) if args.config else create_default_config()
        _setup_logging(config, args.verbose)
        workflow = PlanningWorkflow.from_config(
            config, max_parallel_agents=getattr(args, "max_parallel", None)
        )

        if args.command == "plan":
            return plan_task(workflow, args)
        if args.command == "classify":
            return classify_task(workflow, args.title, args.description, args.json)
        if args.command == "compare":
            return compare_agents(workflow, args.title, args.description, args.agents)
        if args.command == "resolve":
            return resolve_issues(workflow.resolver, args.file, args.strict, args.json)
        if args.command == "status":
            return backlog_status(workflow, args.file, args.agents, args.json)

    except PlannerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        return 1

    parser.print_help()
    return 0


def _setup_logging(config: PlannerConfig, verbose: bool) -> None:
    settings = config.logging
    configure_logging(
        level="DEBUG" if verbose else settings.level.value,
        json_format=settings.format == "json",
        log_file=settings.file,
        max_bytes=settings.max_size_mb * 1024 * 1024,
        backup_count=settings.backup_count,
        console_output=settings.console,
    )


def _split_agents(value: Optional[str]) -> Optional[list[str]]:
    if value is None:
        return None
    return [name.strip() for name in value.split(",") if name.strip()]


def _print_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2) + "\n")


def plan_task(workflow: PlanningWorkflow, args: argparse.Namespace) -> int:
    """Decompose a task and print its execution plan."""
    task = DecompositionInput(
        title=args.title,
        description=args.description,
        type=args.type,
        priority=args.priority,
    )
    plan = workflow.plan_task(
        task,
        id_prefix=args.id_prefix,
        balance_load=False if args.no_balance else None,
        available_agents=_split_agents(args.agents),
    )

    if args.json:
        _print_json(plan.to_dict())
        return 0

    _render_plan(plan, args.id_prefix)
    return 0


def _render_plan(plan: ExecutionPlan, id_prefix: str) -> None:
    reasoning = plan.decomposition.reasoning if plan.decomposition else ""
    console.print(Panel(
        f"[bold]{plan.plan_id}[/bold]\n{reasoning}\n"
        f"Sessions: {plan.total_agent_sessions}  Parallelism: {plan.estimated_parallelism}",
        title="Execution Plan",
        border_style="blue",
    ))

    subtasks = plan.decomposition.subtasks if plan.decomposition else []
    titles = {f"{id_prefix}-{index + 1}": s.title for index, s in enumerate(subtasks)}

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Phase", justify="right")
    table.add_column("Issue")
    table.add_column("Title")
    table.add_column("Agent", style="green")
    table.add_column("Category")
    table.add_column("Confidence", justify="right")

    for phase in plan.phases:
        for assignment in phase.assignments:
            table.add_row(
                str(phase.phase_number),
                assignment.issue_id,
                titles.get(assignment.issue_id, ""),
                assignment.agent.value,
                assignment.category.value,
                f"{assignment.confidence:.2f}",
            )

    console.print(table)
    console.print(f"Critical path: {' -> '.join(plan.critical_path)}")
    for diagnostic in plan.diagnostics:
        console.print(f"[yellow]Warning:[/yellow] {diagnostic.message}")


def classify_task(workflow: PlanningWorkflow, title: str, description: str, as_json: bool) -> int:
    """Classify a task and print the result."""
    classifier = workflow.scorer.classifier
    result = classifier.classify(title, description)
    complexity = classifier.estimate_complexity(title, description)

    if as_json:
        data = result.to_dict()
        data["complexity"] = {
            "level": complexity.level.value,
            "score": complexity.score,
            "factors": list(complexity.factors),
        }
        _print_json(data)
        return 0

    console.print(Panel(
        f"Category: [bold]{result.category.value}[/bold]\n"
        f"Confidence: {result.confidence:.2f}\n"
        f"Complexity: {complexity.level.value} ({complexity.score})\n"
        f"{result.reasoning}",
        title="Classification",
        border_style="blue",
    ))
    return 0


def compare_agents(
    workflow: PlanningWorkflow,
    title: str,
    description: str,
    agents: Optional[str],
) -> int:
    """Print the agent ranking for a task."""
    scores = workflow.scorer.compare_agents_for_task(title, description, _split_agents(agents))

    table = Table(title="Agent Ranking", show_header=True, header_style="bold magenta")
    table.add_column("Rank", justify="right")
    table.add_column("Agent", style="green")
    table.add_column("Score", justify="right")
    table.add_column("Reasoning")

    for rank, score in enumerate(scores, start=1):
        table.add_row(str(rank), score.agent.value, f"{score.score:.3f}", score.reasoning)

    console.print(table)
    return 0


def load_issues(path: Path) -> list[Issue]:
    """Read issues from a YAML or JSON file holding a list or an ``issues`` key."""
    if not path.exists():
        raise PlannerError(f"Issues file not found: {path}", error_code="FILE_NOT_FOUND")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PlannerError(
            f"Issues file {path} is not valid YAML or JSON: {e}",
            error_code="INVALID_ISSUES",
        ) from e
    if isinstance(data, dict):
        data = data.get("issues", [])
    if not isinstance(data, list):
        raise PlannerError(f"Issues file {path} must contain a list", error_code="INVALID_ISSUES")

    issues = []
    for position, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise PlannerError(
                f"Issue #{position} in {path} must be a mapping",
                error_code="INVALID_ISSUES",
            )
        try:
            issues.append(Issue.from_dict(item))
        except KeyError as e:
            raise PlannerError(
                f"Issue #{position} in {path} is missing field {e}",
                error_code="INVALID_ISSUES",
            ) from e
        except (ValueError, TypeError) as e:
            raise PlannerError(
                f"Issue #{position} in {path} is invalid: {e}",
                error_code="INVALID_ISSUES",
            ) from e
    return issues


def resolve_issues(resolver: DependencyResolver, file: str, strict: bool, as_json: bool) -> int:
    """Print cycles, or the phases and critical path, for a batch of issues."""
    issues = load_issues(Path(file))
    graph = resolver.build_dependency_graph(issues, strict=strict)
    cycles = resolver.detect_cycles(graph)

    if cycles:
        if as_json:
            _print_json({"cycles": cycles})
        else:
            for cycle in cycles:
                console.print(f"[red]Cycle:[/red] {' -> '.join([*cycle, cycle[0]])}")
        return 1

    order = resolver.topological_sort(graph)
    if as_json:
        data = order.to_dict()
        data["diagnostics"] = [d.to_dict() for d in graph.diagnostics]
        _print_json(data)
        return 0

    table = Table(title="Execution Phases", show_header=True, header_style="bold magenta")
    table.add_column("Phase", justify="right")
    table.add_column("Issues")
    for number, phase in enumerate(order.parallel, start=1):
        table.add_row(str(number), ", ".join(phase))

    console.print(table)
    console.print(f"Critical path: {' -> '.join(order.critical_path)}")
    for diagnostic in graph.diagnostics:
        console.print(f"[yellow]Warning:[/yellow] {diagnostic.message}")
    return 0


def backlog_status(
    workflow: PlanningWorkflow,
    file: str,
    agents: Optional[str],
    as_json: bool,
) -> int:
    """Print readiness counts and an agent for every ready issue."""
    issues = load_issues(Path(file))
    summary = workflow.summary(issues)
    assignments = workflow.ready_assignments(issues, available_agents=_split_agents(agents))

    if as_json:
        data = summary.to_dict()
        data["ready_assignments"] = [a.to_dict() for a in assignments]
        _print_json(data)
        return 0

    next_agent = summary.recommended_next_agent.value if summary.recommended_next_agent else "-"
    console.print(Panel(
        f"Ready: {summary.ready_tasks}  Blocked: {summary.blocked_tasks}  "
        f"In progress: {summary.in_progress_tasks}\n"
        f"Next agent: {next_agent}  Estimated phases: {summary.estimated_phases}",
        title="Backlog Status",
        border_style="blue",
    ))

    if assignments:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Issue")
        table.add_column("Agent", style="green")
        table.add_column("Category")
        for assignment in assignments:
            table.add_row(assignment.issue_id, assignment.agent.value, assignment.category.value)
        console.print(table)
    return 0


if __name__ == "__main__":
    sys.exit(main())
