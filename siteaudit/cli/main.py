#!/usr/bin/env python3
"""Main CLI entry point for SiteAudit using Typer."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import uvicorn
from typing_extensions import Annotated

from .. import __version__
from ..api.websocket import create_bridge_app
from ..audit.events import EventBus
from ..audit.exceptions import ConfigurationError
from ..audit.models.config import KNOWN_AUDITS, KNOWN_BUDGETS
from .config import CLIConfiguration, load_configuration, print_configuration, validate_configuration
from .progress import create_real_time_output
from .runner import AuditRunner, ExitCode


app = typer.Typer(
    name="siteaudit",
    help="SiteAudit - website quality audits with a pooled headless browser",
    add_completion=False,
)


UrlsArg = Annotated[Optional[List[str]], typer.Argument(help="URLs to audit (or use --sitemap)")]
SitemapOpt = Annotated[Optional[str], typer.Option("--sitemap", help="URL of a sitemap.xml")]
OutOpt = Annotated[Optional[Path], typer.Option("--out", "-o", help="Artifact directory [default: ./artifacts]")]
ConcurrencyOpt = Annotated[Optional[int], typer.Option("--concurrency", "-c", help="Concurrent pages")]
RetriesOpt = Annotated[Optional[int], typer.Option("--max-retries", help="Retries per page")]
DelayOpt = Annotated[Optional[int], typer.Option("--delay", help="Minimum ms between page attempts")]
RateOpt = Annotated[Optional[int], typer.Option("--rate-limit", help="Maximum page attempts per second")]
IncludeOpt = Annotated[Optional[List[str]], typer.Option("--include", help="Only audit URLs matching this regex")]
ExcludeOpt = Annotated[Optional[List[str]], typer.Option("--exclude", help="Skip URLs matching this regex")]
MaxPagesOpt = Annotated[Optional[int], typer.Option("--max-pages", help="Maximum pages to audit [default: 1000]")]
AuditsOpt = Annotated[
    Optional[str],
    typer.Option("--audits", help=f"Comma-separated audits ({', '.join(KNOWN_AUDITS)})")
]
BudgetOpt = Annotated[Optional[str], typer.Option("--budget", help=f"Performance budget ({', '.join(KNOWN_BUDGETS)})")]
RedirectsOpt = Annotated[Optional[str], typer.Option("--redirects", help="Redirect policy: follow or skip")]
ScreenshotsOpt = Annotated[bool, typer.Option("--screenshots", help="Capture a screenshot per page")]
HeadfulOpt = Annotated[bool, typer.Option("--headful", help="Run the browser with a window")]
ConfigOpt = Annotated[Optional[Path], typer.Option("--config", help="Configuration file (YAML or JSON)")]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")]
QuietOpt = Annotated[bool, typer.Option("--quiet", "-q", help="Quiet mode (minimal output)")]
JsonOpt = Annotated[bool, typer.Option("--json", help="Print events as JSON lines")]
PrintConfigOpt = Annotated[bool, typer.Option("--print-config", help="Print effective configuration and exit")]


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _build_overrides(
    urls: Optional[List[str]] = None,
    sitemap: Optional[str] = None,
    out: Optional[Path] = None,
    concurrency: Optional[int] = None,
    max_retries: Optional[int] = None,
    delay: Optional[int] = None,
    rate_limit: Optional[int] = None,
    include: Optional[List[str]] = None,
    exclude: Optional[List[str]] = None,
    max_pages: Optional[int] = None,
    audits: Optional[str] = None,
    budget: Optional[str] = None,
    redirects: Optional[str] = None,
    screenshots: bool = False,
    headful: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    json_output: bool = False,
) -> Dict[str, Any]:
    """Only explicitly provided flags become overrides."""
    overrides: Dict[str, Any] = {}

    input_config: Dict[str, Any] = {}
    if urls:
        input_config.update(urls=list(urls), sitemap_url=None)
    elif sitemap:
        input_config.update(urls=[], sitemap_url=sitemap)
    if include:
        input_config["include"] = list(include)
    if exclude:
        input_config["exclude"] = list(exclude)
    if max_pages is not None:
        input_config["max_pages"] = max_pages
    if input_config:
        overrides["input"] = input_config

    audit_config: Dict[str, Any] = {}
    if concurrency is not None:
        audit_config["concurrency"] = concurrency
    if max_retries is not None:
        audit_config["max_retries"] = max_retries
    if delay is not None:
        audit_config["delay_between_requests_ms"] = delay
    if rate_limit is not None:
        audit_config["max_requests_per_second"] = rate_limit
    if audits:
        audit_config["enabled_audits"] = [a.strip() for a in audits.split(",") if a.strip()]
    if budget:
        audit_config["performance_budget"] = budget
    if redirects:
        audit_config["redirect_policy"] = redirects.lower()
    if screenshots:
        audit_config["screenshots"] = True
    if audit_config:
        overrides["audit"] = audit_config

    if headful:
        overrides["browser"] = {"headless": False}

    output_config: Dict[str, Any] = {}
    if out:
        output_config["output_dir"] = out
    if verbose:
        output_config["verbose"] = True
    if quiet:
        output_config["quiet"] = True
    if json_output:
        output_config["json_output"] = True
    if output_config:
        overrides["output"] = output_config

    return overrides


def _load_or_exit(
    config_file: Optional[Path],
    overrides: Dict[str, Any],
    require_input: bool,
    print_config: bool = False
) -> CLIConfiguration:
    try:
        config = load_configuration(config_file=config_file, cli_overrides=overrides, search_paths=[Path.cwd()])
    except ConfigurationError as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if print_config:
        typer.echo("# Effective Configuration")
        typer.echo("# Loaded from: " + " -> ".join(config.loaded_from))
        typer.echo(print_configuration(config, "json" if config.output.json_output else "yaml"))
        raise typer.Exit()

    errors = validate_configuration(config, require_input=require_input)
    if errors:
        for error in errors:
            typer.echo(f"❌ Configuration error: {error}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    return config


@app.callback()
def main():
    """
    SiteAudit - website quality audits.

    Audits pages for HTTP health, performance, SEO, accessibility, content
    weight and mobile friendliness, writing one JSON artifact per page and a
    run summary.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"SiteAudit CLI v{__version__}")


@app.command()
def run(
    urls: UrlsArg = None,
    sitemap: SitemapOpt = None,
    out: OutOpt = None,
    concurrency: ConcurrencyOpt = None,
    max_retries: RetriesOpt = None,
    delay: DelayOpt = None,
    rate_limit: RateOpt = None,
    include: IncludeOpt = None,
    exclude: ExcludeOpt = None,
    max_pages: MaxPagesOpt = None,
    audits: AuditsOpt = None,
    budget: BudgetOpt = None,
    redirects: RedirectsOpt = None,
    screenshots: ScreenshotsOpt = False,
    headful: HeadfulOpt = False,
    serve: Annotated[bool, typer.Option("--serve", help="Stream events over WebSocket while running")] = False,
    port: Annotated[Optional[int], typer.Option("--port", help="WebSocket bridge port [default: 8080]")] = None,
    config_file: ConfigOpt = None,
    verbose: VerboseOpt = False,
    quiet: QuietOpt = False,
    json_output: JsonOpt = False,
    print_config: PrintConfigOpt = False,
):
    """
    Audit URLs through the shared browser pool.

    Examples:

        siteaudit run https://example.com https://example.com/about

        siteaudit run --sitemap https://example.com/sitemap.xml \\
            --include /blog/ --max-pages 50 --rate-limit 2 --out ./artifacts
    """
    if urls and sitemap:
        typer.echo("❌ Provide URLs or --sitemap, not both", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    overrides = _build_overrides(
        urls, sitemap, out, concurrency, max_retries, delay, rate_limit, include, exclude,
        max_pages, audits, budget, redirects, screenshots, headful, verbose, quiet, json_output,
    )
    server: Dict[str, Any] = {}
    if serve:
        server["enabled"] = True
    if port is not None:
        server["port"] = port
    if server:
        overrides["server"] = server

    config = _load_or_exit(config_file, overrides, require_input=True, print_config=print_config)
    _configure_logging(config.output.verbose, config.output.quiet)

    output = create_real_time_output(
        format_type="json" if config.output.json_output else "text",
        quiet=config.output.quiet,
        verbose=config.output.verbose,
    )
    exit_code = asyncio.run(AuditRunner(config, output).run())
    raise typer.Exit(code=exit_code.value)


@app.command()
def batch(
    urls: UrlsArg = None,
    sitemap: SitemapOpt = None,
    out: OutOpt = None,
    workers: Annotated[Optional[int], typer.Option("--workers", "-w", help="Concurrent batch workers")] = None,
    max_retries: RetriesOpt = None,
    include: IncludeOpt = None,
    exclude: ExcludeOpt = None,
    max_pages: MaxPagesOpt = None,
    audits: AuditsOpt = None,
    budget: BudgetOpt = None,
    redirects: RedirectsOpt = None,
    stop_on_error: Annotated[bool, typer.Option("--stop-on-error", help="Cancel remaining jobs after a failure")] = False,
    headful: HeadfulOpt = False,
    config_file: ConfigOpt = None,
    verbose: VerboseOpt = False,
    quiet: QuietOpt = False,
    json_output: JsonOpt = False,
    print_config: PrintConfigOpt = False,
):
    """
    Audit URLs as independent jobs with per-job retry and timeout.

    Writes the usual per-page artifacts plus a batch_report_<run>.json.
    """
    if urls and sitemap:
        typer.echo("❌ Provide URLs or --sitemap, not both", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    overrides = _build_overrides(
        urls, sitemap, out, None, None, None, None, include, exclude,
        max_pages, audits, budget, redirects, False, headful, verbose, quiet, json_output,
    )
    batch_config: Dict[str, Any] = {}
    if workers is not None:
        batch_config["workers"] = workers
    if max_retries is not None:
        batch_config["max_retries"] = max_retries
    if stop_on_error:
        batch_config["continue_on_error"] = False
    if batch_config:
        overrides["batch"] = batch_config

    config = _load_or_exit(config_file, overrides, require_input=True, print_config=print_config)
    _configure_logging(config.output.verbose, config.output.quiet)

    output = create_real_time_output(
        format_type="json" if config.output.json_output else "text",
        quiet=config.output.quiet,
        verbose=config.output.verbose,
    )
    exit_code = asyncio.run(AuditRunner(config, output).run_batch())
    raise typer.Exit(code=exit_code.value)


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", help="Bind port")] = 8080,
    verbose: VerboseOpt = False,
):
    """Run the WebSocket event bridge on its own (no audit)."""
    _configure_logging(verbose, False)
    typer.echo(f"🔌 Event bridge on http://{host}:{port} (WebSocket: ws://{host}:{port}/ws)")
    uvicorn.run(create_bridge_app(EventBus()), host=host, port=port, log_level="info" if verbose else "warning")


@app.command(name="validate-config")
def validate_config(
    config_file: Annotated[Path, typer.Argument(help="Configuration file to validate")],
    verbose: VerboseOpt = False,
):
    """Validate a configuration file without running an audit."""
    if not config_file.exists():
        typer.echo(f"❌ Configuration file not found: {config_file}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    config = _load_or_exit(config_file, {}, require_input=False)
    typer.echo(f"✅ Configuration file {config_file} is valid")

    if verbose:
        typer.echo(f"   Loaded from: {' -> '.join(config.loaded_from)}")
        typer.echo(f"   Audits: {', '.join(config.audit.enabled_audits)}")
        typer.echo(f"   Budget: {config.audit.performance_budget}")
        typer.echo(f"   Concurrency: {config.audit.concurrency}")


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
