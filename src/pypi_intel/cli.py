"""CLI entry point for pypi-intel."""

import asyncio
import json
import logging
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.tree import Tree

from pypi_intel.adapters.base import NotFoundError, PyPIIntelError
from pypi_intel.analyzers.changelog import calculate_update_recommendation
from pypi_intel.analyzers.dependencies import dependency_stats
from pypi_intel.analyzers.licenses import check_compatibility
from pypi_intel.analyzers.osv import count_by_severity
from pypi_intel.analyzers.overview import (
    analyze_bundle_stats,
    build_compatibility,
    build_download_stats,
    build_overview,
)
from pypi_intel.analyzers.pipeline import PackageIntel
from pypi_intel.config import Settings
from pypi_intel.models.schemas import HealthScore, PackageReport, Risk

app = typer.Typer(help="Health, dependency, changelog and license intelligence for PyPI packages.")

console = Console()

RATING_COLORS = {"excellent": "green", "good": "green", "fair": "yellow", "poor": "red"}
RISK_COLORS = {Risk.LOW: "green", Risk.MEDIUM: "yellow", Risk.HIGH: "red", Risk.CRITICAL: "bold red"}
SEVERITY_COLORS = {"CRITICAL": "bold red", "HIGH": "red", "MODERATE": "yellow", "MEDIUM": "yellow", "LOW": "green"}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _intel() -> PackageIntel:
    return PackageIntel(settings=Settings.from_env())


def _spinner() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )


def _fail(error: PyPIIntelError) -> None:
    """Print an error (with suggestions for unknown packages) and exit."""
    console.print(f"[red]{error}[/red]")
    if isinstance(error, NotFoundError) and error.suggestions:
        console.print("[dim]Did you mean:[/dim] " + ", ".join(error.suggestions))
    raise typer.Exit(1)


def _save(output: Path | None, data: BaseModel | list | dict) -> None:
    if not output:
        return
    if isinstance(data, BaseModel):
        payload = data.model_dump(mode="json")
    elif isinstance(data, list):
        payload = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    else:
        payload = data
    output.write_text(json.dumps(payload, indent=2, default=str))
    console.print(f"\n[green]Saved to {output}[/green]")


def _size(size: float) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def _score_bar(score: float, maximum: float, width: int = 20) -> str:
    """Create a visual score bar."""
    ratio = score / maximum if maximum else 0
    filled = int(ratio * width)
    empty = width - filled
    color = "green" if ratio >= 0.8 else "yellow" if ratio >= 0.5 else "red"
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * empty}[/dim]"


def _print_health(health: HealthScore) -> None:
    color = RATING_COLORS.get(health.rating.value, "white")
    console.print(
        Panel(
            f"[bold][{color}]{health.score}[/{color}][/bold] / 100  Rating: [bold]{health.rating.value}[/bold]",
            title="Health Score",
            expand=False,
        )
    )

    table = Table(title="Score Breakdown", show_header=True)
    table.add_column("Component", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Bar", width=20)

    components = [
        ("Recency", health.breakdown.recency, 25),
        ("Maintenance", health.breakdown.maintenance, 20),
        ("Compatibility", health.breakdown.compatibility, 25),
        ("Popularity", health.breakdown.popularity, 20),
        ("Stability", health.breakdown.stability, 10),
    ]
    for name, points, maximum in components:
        table.add_row(name, f"{points}/{maximum}", _score_bar(points, maximum))
    console.print(table)

    if health.warnings:
        console.print()
        console.print("[bold yellow]Warnings:[/bold yellow]")
        for warning in health.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
    if health.recommendations:
        console.print()
        console.print("[bold]Recommendations:[/bold]")
        for recommendation in health.recommendations:
            console.print(f"  [cyan]>[/cyan] {recommendation}")


@app.command()
def info(
    package: str = typer.Argument(..., help="Package name"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Show package metadata, compatibility and downloads."""
    asyncio.run(_info(package, output))


async def _info(package: str, output: Path | None) -> None:
    """Async implementation of info."""
    async with _intel() as intel:
        with _spinner() as progress:
            progress.add_task("Fetching package metadata...", total=None)
            try:
                record = await intel.pypi.fetch_package_info(package)
            except PyPIIntelError as e:
                _fail(e)
            recent = await intel.pypi.fetch_download_stats(package)

    overview = build_overview(record)
    compatibility = build_compatibility(record)
    downloads = build_download_stats(recent)
    bundle = analyze_bundle_stats(record)

    console.print()
    console.print(f"[bold cyan]{overview.name}[/bold cyan] v{overview.version}")
    console.print(f"[dim]{overview.summary}[/dim]")
    if overview.is_yanked:
        console.print("[bold red]This version has been yanked from PyPI[/bold red]")
    console.print()

    info_table = Table(show_header=False, box=None)
    info_table.add_column("Key", style="bold")
    info_table.add_column("Value")

    info_table.add_row("License", overview.license)
    info_table.add_row("Author", overview.author or "-")
    info_table.add_row("Maintainers", str(overview.maintainer_count))
    released = overview.last_release_date
    info_table.add_row("Released", released.date().isoformat() if released else "-")
    info_table.add_row("Python", ", ".join(compatibility.python_versions) or "-")
    platforms = [
        name
        for name, supported in compatibility.platforms.model_dump().items()
        if supported
    ]
    info_table.add_row("Platforms", ", ".join(platforms) or "-")
    info_table.add_row("Wheels", "Yes" if compatibility.wheels_available else "No")
    sizes = f"wheels {_size(bundle.wheel_size)}, sdist {_size(bundle.source_size)}"
    info_table.add_row("Size", f"{_size(bundle.total_size)} ({sizes})")
    info_table.add_row("Typed", "Yes" if bundle.has_type_stubs else "No")
    info_table.add_row("Downloads (30d)", f"{downloads.monthly:,}")
    for label, url in list(overview.project_urls.items())[:5]:
        info_table.add_row(label, url)

    console.print(info_table)
    _save(output, {
        "overview": overview.model_dump(mode="json"),
        "compatibility": compatibility.model_dump(mode="json"),
        "downloads": downloads.model_dump(mode="json"),
        "bundle": bundle.model_dump(mode="json"),
    })


@app.command()
def health(
    package: str = typer.Argument(..., help="Package name"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Calculate the package health score."""
    asyncio.run(_health(package, output))


async def _health(package: str, output: Path | None) -> None:
    """Async implementation of health."""
    async with _intel() as intel:
        with _spinner() as progress:
            progress.add_task("Fetching package data...", total=None)
            try:
                record = await intel.pypi.fetch_package_info(package)
            except PyPIIntelError as e:
                _fail(e)
            recent = await intel.pypi.fetch_download_stats(package)
            daily = await intel.pypi.fetch_daily_stats(package)

        score = intel.scorer.score(
            build_overview(record),
            build_compatibility(record),
            build_download_stats(recent, daily),
        )

    console.print()
    console.print(f"[bold cyan]{record.info.name}[/bold cyan] v{record.info.version}")
    _print_health(score)
    _save(output, score)


@app.command()
def deps(
    package: str = typer.Argument(..., help="Package name"),
    version: str | None = typer.Option(None, "--version", help="Package version (default: latest)"),
    include_optional: bool = typer.Option(False, "--include-optional", help="Include extras of dependencies"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Show the two-level dependency tree."""
    asyncio.run(_deps(package, version, include_optional, output))


async def _deps(package: str, version: str | None, include_optional: bool, output: Path | None) -> None:
    """Async implementation of deps."""
    async with _intel() as intel:
        with _spinner() as progress:
            progress.add_task("Resolving dependencies...", total=None)
            try:
                tree = await intel.resolver.resolve(package, version, include_optional=include_optional)
            except PyPIIntelError as e:
                _fail(e)

    stats = dependency_stats(tree)
    root = Tree(f"[bold cyan]{package}[/bold cyan]{f' {version}' if version else ''}")
    for node in tree:
        label = f"[bold]{node.name}[/bold] [dim]{node.specifier or '*'}[/dim]"
        if node.version:
            label += f" [green]{node.version}[/green]"
        if node.is_optional:
            label += " [yellow](optional)[/yellow]"
        branch = root.add(label)
        if node.error:
            branch.add(f"[red]{node.error}[/red]")
        for child in node.children:
            branch.add(f"{child.name} [dim]{child.specifier or '*'}[/dim]")

    console.print(root)
    console.print(
        f"\n[bold]Direct:[/bold] {stats.direct}  [bold]Transitive:[/bold] {stats.transitive}  "
        f"[bold]Optional:[/bold] {stats.optional}  [bold]Unique:[/bold] {stats.unique}  "
        f"[bold]Failed:[/bold] {stats.failed}"
    )
    _save(output, tree)


@app.command()
def vulns(
    package: str = typer.Argument(..., help="Package name"),
    version: str | None = typer.Option(None, "--version", help="Only vulnerabilities affecting this version"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """List known vulnerabilities from OSV."""
    asyncio.run(_vulns(package, version, output))


async def _vulns(package: str, version: str | None, output: Path | None) -> None:
    """Async implementation of vulns."""
    async with _intel() as intel:
        with _spinner() as progress:
            progress.add_task("Querying OSV...", total=None)
            vulnerabilities = await intel.osv.fetch_vulnerabilities(package, version)

    if not vulnerabilities:
        console.print(f"[green]No known vulnerabilities for {package}[/green]")
        _save(output, [])
        return

    counts = count_by_severity(vulnerabilities)
    table = Table(title=f"{len(vulnerabilities)} vulnerabilities for {package}")
    table.add_column("ID", style="cyan")
    table.add_column("Severity")
    table.add_column("Summary", max_width=60)
    table.add_column("Fixed in", style="green")

    for vuln in vulnerabilities:
        color = SEVERITY_COLORS.get(vuln.severity_label, "white")
        table.add_row(
            vuln.id,
            f"[{color}]{vuln.severity_label}[/{color}]",
            vuln.summary or "-",
            ", ".join(vuln.fixed_versions) or "-",
        )
    console.print(table)
    console.print("  ".join(f"[bold]{k}:[/bold] {v}" for k, v in counts.items()))
    _save(output, vulnerabilities)


@app.command()
def changelog(
    package: str = typer.Argument(..., help="Package name"),
    current: str | None = typer.Option(None, "--from", help="Installed version, to assess the upgrade"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of entries to show"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Show the classified changelog."""
    asyncio.run(_changelog(package, current, limit, output))


async def _changelog(package: str, current: str | None, limit: int, output: Path | None) -> None:
    """Async implementation of changelog."""
    async with _intel() as intel:
        with _spinner() as progress:
            progress.add_task("Fetching changelog...", total=None)
            try:
                record = await intel.pypi.fetch_package_info(package)
            except PyPIIntelError as e:
                _fail(e)
            data = await intel.changelogs.fetch(record)

    console.print(f"[bold cyan]{record.info.name}[/bold cyan] changelog [dim](source: {data.source.value})[/dim]")
    if data.error:
        console.print(f"[dim]{data.error}[/dim]")

    for entry in data.entries[:limit]:
        tags = [
            tag
            for tag, flag in (
                ("[red]breaking[/red]", entry.is_breaking),
                ("[magenta]security[/magenta]", entry.is_security),
                ("[green]feature[/green]", entry.is_feature),
                ("[cyan]fix[/cyan]", entry.is_fix),
            )
            if flag
        ]
        console.print()
        console.print(f"[bold]{entry.version}[/bold] [dim]{entry.date or ''}[/dim] {' '.join(tags)}")
        for change in entry.changes[:5]:
            console.print(f"  - {change}")
        if len(entry.changes) > 5:
            console.print(f"  [dim]... and {len(entry.changes) - 5} more[/dim]")

    if current:
        recommendation = calculate_update_recommendation(current, record.info.version, data)
        color = "green" if recommendation.risk_score < 30 else "yellow" if recommendation.risk_score < 60 else "red"
        console.print()
        console.print(
            Panel(
                f"Upgrade {current} -> {record.info.version}: "
                f"risk [{color}]{recommendation.risk_score}/100[/{color}]\n"
                f"Breaking: {'yes' if recommendation.breaking_changes else 'no'}  "
                f"Security fixes: {'yes' if recommendation.security_fixes else 'no'}  "
                f"Features: {'yes' if recommendation.new_features else 'no'}  "
                f"Bug fixes: {'yes' if recommendation.bug_fixes else 'no'}",
                title="Update Recommendation",
                expand=False,
            )
        )
    _save(output, data)


@app.command()
def license(
    project_license: str = typer.Argument(..., help="Your project's license, e.g. MIT"),
    package: str = typer.Argument(..., help="Package name, or a license when --offline is set"),
    offline: bool = typer.Option(False, "--offline", help="Treat PACKAGE as a license string"),
) -> None:
    """Check a dependency's license against your project's license."""
    asyncio.run(_license(project_license, package, offline))


async def _license(project_license: str, package: str, offline: bool) -> None:
    """Async implementation of license."""
    if offline:
        result = check_compatibility(project_license, package)
    else:
        async with _intel() as intel:
            try:
                result = await intel.check_license(project_license, package)
            except PyPIIntelError as e:
                _fail(e)

    color = RISK_COLORS[result.risk]
    verdict = "[green]compatible[/green]" if result.is_compatible else "[red]incompatible[/red]"
    console.print(
        Panel(
            f"{result.package_license.value} in a {result.project_license.value} project: {verdict}\n"
            f"Risk: [{color}]{result.risk.value}[/{color}]\n\n{result.explanation}",
            title="License Compatibility",
            expand=False,
        )
    )
    if result.requires_source_disclosure:
        console.print("[yellow]![/yellow] Requires source disclosure when distributed")
    if result.requires_same_license:
        console.print("[yellow]![/yellow] Requires the combined work to use the same license")


@app.command()
def report(
    package: str = typer.Argument(..., help="Package name"),
    include_optional: bool = typer.Option(False, "--include-optional", help="Include extras of dependencies"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Run the full analysis of a package."""
    asyncio.run(_report(package, include_optional, output))


async def _report(package: str, include_optional: bool, output: Path | None) -> None:
    """Async implementation of report."""
    async with _intel() as intel:
        with _spinner() as progress:
            progress.add_task("Analyzing package...", total=None)
            try:
                result = await intel.analyze(package, include_optional=include_optional)
            except PyPIIntelError as e:
                _fail(e)
        metrics = intel.metrics.snapshot()

    _print_report(result)
    console.print(
        f"\n[dim]{metrics.requests} requests, {metrics.retries} retries, "
        f"{metrics.fallbacks} fallbacks, cache hit rate {metrics.cache_hit_rate:.0%}[/dim]"
    )
    _save(output, result)


def _print_report(result: PackageReport) -> None:
    overview = result.overview
    console.print()
    console.print(f"[bold cyan]{overview.name}[/bold cyan] v{overview.version}")
    console.print(f"[dim]{overview.summary}[/dim]")
    console.print()
    _print_health(result.health)

    console.print()
    trend = result.downloads.trend.value
    console.print(
        f"[bold]Downloads:[/bold] {result.downloads.monthly:,}/month "
        f"[dim](trend {trend}, {result.downloads.trend_percentage}%)[/dim]"
    )
    if result.vulnerabilities:
        counts = count_by_severity(result.vulnerabilities)
        summary = ", ".join(f"{v} {k.lower()}" for k, v in counts.items())
        console.print(f"[bold red]Vulnerabilities:[/bold red] {summary}")
    else:
        console.print("[bold]Vulnerabilities:[/bold] [green]none known[/green]")
    stats = result.dependency_stats
    console.print(
        f"[bold]Dependencies:[/bold] {stats.direct} direct, {stats.transitive} transitive"
        + (f", [red]{stats.failed} unresolved[/red]" if stats.failed else "")
    )
    console.print(
        f"[bold]Changelog:[/bold] {len(result.changelog.entries)} entries "
        f"[dim](source: {result.changelog.source.value})[/dim]"
    )


@app.command()
def compare(
    packages: list[str] = typer.Argument(..., help="Package names"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Compare the health of several packages."""
    asyncio.run(_compare(packages, output))


async def _compare(packages: list[str], output: Path | None) -> None:
    """Async implementation of compare."""
    async with _intel() as intel:
        with _spinner() as progress:
            task = progress.add_task(f"Analyzing {len(packages)} packages...", total=None)

            def on_progress(done: int, total: int, name: str) -> None:
                progress.update(task, description=f"[{done}/{total}] {name}")

            results = await intel.analyze_many(packages, progress_callback=on_progress)

    table = Table(title="Package Comparison")
    table.add_column("Package", style="cyan")
    table.add_column("Version")
    table.add_column("Score", justify="right")
    table.add_column("Rating")
    table.add_column("Downloads (30d)", justify="right", style="green")
    table.add_column("Vulns", justify="right")
    table.add_column("License")

    reports = []
    for name, result in results.items():
        if isinstance(result, PyPIIntelError):
            table.add_row(name, "-", "-", f"[red]{result}[/red]", "-", "-", "-")
            continue
        reports.append(result)
        color = RATING_COLORS.get(result.health.rating.value, "white")
        table.add_row(
            result.overview.name,
            result.overview.version,
            str(result.health.score),
            f"[{color}]{result.health.rating.value}[/{color}]",
            f"{result.downloads.monthly:,}",
            str(len(result.vulnerabilities)),
            result.overview.license,
        )

    console.print(table)
    _save(output, reports)


@app.command()
def version() -> None:
    """Show version information."""
    from pypi_intel import __version__

    console.print(f"pypi-intel v{__version__}")


if __name__ == "__main__":
    app()
