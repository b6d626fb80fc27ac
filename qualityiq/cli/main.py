"""QualityIQ CLI – Typer multi-command application."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from qualityiq.core.context import AppContext, create_context
from qualityiq.core.crossover import OPTIMIZATION_SUGGESTIONS, CrossoverViolationError, CrossoverWarning
from qualityiq.core.engine import AnalysisResult, CycleResult, EngineExecutionError
from qualityiq.storage.service import StorageError
from qualityiq.utils.logger import (
    console, create_table, format_severity_counts, print_error, print_info, print_success, print_warning,
    setup_logging, severity_style,
)

__all__ = ["app"]

app = typer.Typer(
    name="qualityiq",
    help="Code quality orchestrator for type checkers, linters and unused-export detectors.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _load_context(config: Path | None, project_dir: Path | None, verbose: bool) -> AppContext:
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    return create_context(root_dir=project_dir, config_path=config)


def _banner() -> None:
    console.print(Panel(
        Text("QualityIQ", style="bold magenta", justify="center"),
        subtitle="Code quality orchestration",
        border_style="magenta", expand=False, padding=(0, 4),
    ))
    console.print()


def _print_violations(result: AnalysisResult, limit: int) -> None:
    if not result.violations:
        return
    table = Table(title="🔎 Violations", show_lines=False, expand=True)
    table.add_column("Location", style="bold")
    table.add_column("Severity")
    table.add_column("Source", style="cyan")
    table.add_column("Rule")
    table.add_column("Message")
    for v in result.violations[:limit]:
        style = severity_style(v.severity.value)
        table.add_row(
            f"{v.file}:{v.line}",
            f"[{style}]{v.severity.value}[/{style}]",
            v.source.value,
            v.rule or "",
            v.message or v.code,
        )
    console.print(table)
    if len(result.violations) > limit:
        console.print(f"  [muted]… {len(result.violations) - limit} more[/muted]")


def _print_crossover(warnings: list[CrossoverWarning]) -> None:
    for w in warnings:
        style = "red" if w.severity.value == "error" else "yellow"
        body = f"{w.details}\n\n💡 {w.suggestion}"
        if w.affected_files:
            body += f"\n\nFiles: {', '.join(w.affected_files[:5])}"
        console.print(Panel(body, title=f"⚡ {w.message}", border_style=style))
    if warnings:
        console.print(Panel(
            "\n".join(f"• {s}" for s in OPTIMIZATION_SUGGESTIONS),
            title="🧭 Recommended split", border_style="cyan",
        ))


def _schedule_text(analyzer: dict) -> str:
    schedule = analyzer.get("schedule")
    if schedule is None:
        return "full run"
    return f"rule {schedule.progress}, {schedule.adaptive_rules} backed off"


def _print_summary(result: AnalysisResult) -> None:
    summary = result.summary
    console.print(Panel(
        f"[bold]Total: {summary.total}[/bold]  {format_severity_counts(summary.by_severity)}\n"
        f"Sources: {', '.join(f'{k}={v}' for k, v in summary.by_source.items()) or 'none'}\n"
        f"Analyzers: {len(result.engine_results)}  Time: {result.total_execution_time:.2f}s",
        title="📋 Analysis Summary", border_style="cyan",
    ))
    if summary.top_files:
        console.print(create_table(
            "📁 Top Files",
            [("File", "bold"), ("Violations", "cyan")],
            [[file, str(count)] for file, count in summary.top_files],
        ))
    for error in summary.errors:
        print_warning(f"Analyzer failed: {error}")


def _print_cycle(cycle: CycleResult) -> None:
    delta = cycle.delta.counts
    print_info(
        f"Check #{cycle.check_id}: +{delta['added']} added, -{delta['removed']} removed, "
        f"{delta['unchanged']} unchanged; {cycle.store.inserted} new, {cycle.store.updated} updated"
    )
    for error in cycle.store.errors:
        print_warning(f"Rejected: {error}")


@app.command()
def analyze(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to qualityiq.yaml"),
    project_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Project root directory"),
    target: Optional[str] = typer.Option(None, "--target", "-t", help="Directory to analyze"),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Store results and record deltas"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum violations to list"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run every analyzer once, merge the results and report them."""
    _banner()
    ctx = _load_context(config, project_dir, verbose)
    with ctx:
        engine = ctx.engine()
        cycle: CycleResult | None = None
        try:
            with console.status("[bold cyan]Running analyzers…"):
                if persist:
                    cycle = engine.run_cycle(target)
                    result = cycle.analysis
                else:
                    result = engine.analyze(target)
        except EngineExecutionError as exc:
            print_error(str(exc))
            raise typer.Exit(code=2)
        except CrossoverViolationError as exc:
            _print_crossover(exc.warnings)
            print_error(str(exc))
            raise typer.Exit(code=2)
        except StorageError as exc:
            print_error(f"Storage failure: {exc}")
            raise typer.Exit(code=2)

        _print_violations(result, limit)
        _print_crossover(result.crossover_warnings)
        _print_summary(result)
        if cycle is not None:
            _print_cycle(cycle)

        if not result.violations:
            print_success("No violations found.")
        elif result.has_errors:
            print_error("Error-severity violations found.")
        raise typer.Exit(code=result.exit_code)


@app.command()
def watch(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to qualityiq.yaml"),
    project_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Project root directory"),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between cycles"),
    max_cycles: Optional[int] = typer.Option(None, "--max-cycles", help="Stop after this many cycles"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Re-run the analysis cycle continuously until interrupted."""
    _banner()
    ctx = _load_context(config, project_dir, verbose)
    if interval is not None:
        ctx.settings.watch.interval = interval
    with ctx:
        watcher = ctx.watcher()

        def _report(cycle: CycleResult | None, error: Exception | None) -> None:
            if error is not None:
                print_error(f"Cycle {watcher.cycles} failed: {error}")
                return
            assert cycle is not None
            summary = cycle.analysis.summary
            console.print(
                f"[muted]#{watcher.cycles}[/muted] {summary.total} violations "
                f"({format_severity_counts(summary.by_severity, labels=False)}) "
                f"+{len(cycle.delta.added)} -{len(cycle.delta.removed)}"
            )

        watcher.add_listener(_report)
        print_info(f"Watching {ctx.root_dir} every {ctx.settings.watch.interval:g}s (Ctrl+C to stop)")
        try:
            watcher.run(max_cycles=max_cycles)
        except KeyboardInterrupt:
            watcher.stop()
        print_success(f"Watch stopped after {watcher.cycles} cycle(s), {watcher.failures} failed.")


@app.command()
def dashboard(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to qualityiq.yaml"),
    project_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Project root directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Show persisted violations, rule performance and recent history."""
    _banner()
    ctx = _load_context(config, project_dir, verbose)
    with ctx:
        data = ctx.storage.get_dashboard_data()
        stats = ctx.storage.get_storage_stats()
        analyzers = ctx.engine().status()

    console.print(Panel(
        f"[bold]Active violations:[/bold] {data.active_violations}  "
        f"[bold]Files affected:[/bold] {data.total_files_affected}\n"
        f"{format_severity_counts(data.by_severity)}\n"
        f"[bold]Last check:[/bold] {data.last_check_time or 'never'}  "
        f"[bold]History rows:[/bold] {stats.total_history_records}",
        title="📊 Dashboard", border_style="cyan",
    ))

    if data.summary:
        console.print(create_table(
            "📋 Active Violations by Rule",
            [("Rule", "bold"), ("Category", ""), ("Severity", ""), ("Source", "cyan"), ("Count", ""), ("Files", "")],
            [
                [item.rule_id or "-", item.category, item.severity, item.source, str(item.count), str(item.affected_files)]
                for item in data.summary
            ],
        ))
    if data.rule_performance:
        console.print(create_table(
            "⏱️  Rule Performance",
            [("Rule", "bold"), ("Engine", "cyan"), ("Runs", ""), ("Failed", "red"), ("Avg ms", ""), ("Zero streak", "")],
            [
                [p.rule_id, p.engine, str(p.total_runs), str(p.failed_runs),
                 f"{p.avg_execution_time_ms:.0f}", str(p.zero_streak)]
                for p in data.rule_performance
            ],
        ))
    if analyzers:
        console.print(create_table(
            "🧩 Analyzers",
            [("Analyzer", "bold"), ("Source", "cyan"), ("Priority", ""), ("Timeout", ""), ("Schedule", "")],
            [
                [a["name"], a["source"], str(a["priority"]), f"{a['timeout']:g}s" if a["timeout"] else "-", _schedule_text(a)]
                for a in analyzers
            ],
        ))
    if not data.active_violations:
        print_success("No active violations.")


@app.command()
def resolve(
    fingerprints: List[str] = typer.Argument(..., help="Fingerprints of violations to resolve"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to qualityiq.yaml"),
    project_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Project root directory"),
) -> None:
    """Mark active violations as resolved."""
    ctx = _load_context(config, project_dir, False)
    with ctx:
        changed = ctx.storage.resolve_violations(fingerprints)
    if changed:
        print_success(f"Resolved {changed} violation(s).")
    else:
        print_warning("No active violations matched.")


@app.command()
def cleanup(
    days: Optional[int] = typer.Option(None, "--days", help="Maximum age in days (defaults to database.max_history_days)"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to qualityiq.yaml"),
    project_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Project root directory"),
) -> None:
    """Purge old history rows, resolved violations and metrics."""
    ctx = _load_context(config, project_dir, False)
    with ctx:
        result = ctx.storage.cleanup_old_data(days)
    print_success(
        f"Removed {result.history_deleted} history row(s), {result.resolved_deleted} resolved violation(s), "
        f"{result.metrics_deleted} metric(s)."
    )


if __name__ == "__main__":
    app()
