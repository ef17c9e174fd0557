"""CLI entry point: python -m feedimport <type> <target> [options]"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from feedimport.fetcher import parse_duration
from feedimport.importer import Importer, PathConflictError
from feedimport.logger import setup_logging
from feedimport.settings import VERSION, ImportSettings, load_settings
from feedimport.sources import available_types

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedimport",
        description=(
            "Import RSS, Atom, WordPress and social feeds into local Markdown or HTML\n"
            "files with YAML front matter. Embedded assets are downloaded and rewritten."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("type", metavar="TYPE",
                        help=f"Source type ({', '.join(available_types())})")
    parser.add_argument("target", metavar="TARGET",
                        help="Feed URL, site URL, @user@host handle or channel id")
    parser.add_argument("--output", default=None, metavar="DIR",
                        help="Output directory (default: .)")
    parser.add_argument("--quiet", action="store_true", default=False,
                        help="Only log warnings and errors")
    parser.add_argument("--dryrun", action="store_true", default=False,
                        help="Fetch everything but write nothing")
    parser.add_argument("--overwrite", action="store_true", default=False,
                        help="Overwrite existing documents and assets (default: skip them)")
    parser.add_argument("--cacheduration", default=None, metavar="DURATION",
                        help="How long fetched responses stay cached, e.g. 20m, 24h, 1d, * (default: 24h)")
    parser.add_argument("--format", choices=["markdown", "html"], default=None,
                        help="Output format (default: markdown)")
    parser.add_argument("--assetrefs", choices=["relative", "absolute", "colocate"], default=None,
                        help="How documents refer to downloaded assets (default: relative)")
    parser.add_argument("--persist", default=None, metavar="TARGET",
                        help="Also commit written files, e.g. github:owner/repo#branch (needs GITHUB_TOKEN)")
    parser.add_argument("--config", default=None, metavar="FILE",
                        help="YAML file with import settings; flags override it")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        metavar="{DEBUG,INFO,WARNING,ERROR}",
                        help="Logging level (default: INFO)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser


def _settings_from_args(args: argparse.Namespace) -> ImportSettings:
    return load_settings(
        args.config,
        output_folder=args.output,
        cache_duration=args.cacheduration,
        format=args.format,
        asset_refs=args.assetrefs,
        persist=args.persist,
        overwrite=True if args.overwrite else None,
        dry_run=True if args.dryrun else None,
        verbose=False if args.quiet else None,
    )


def _print_banner(console: Console, args: argparse.Namespace, settings: ImportSettings) -> None:
    console.print(
        Panel.fit(
            f"[bold cyan]feedimport[/bold cyan] {VERSION}\n"
            f"Source:         [green]{args.type}[/green] {args.target}\n"
            f"Output:         [yellow]{settings.output_folder}[/yellow]\n"
            f"Format:         {settings.format}\n"
            f"Asset refs:     {settings.asset_refs}\n"
            f"Cache:          {settings.cache_duration}\n"
            f"Overwrite:      {'yes' if settings.overwrite else 'no'}\n"
            f"Dry run:        {'yes' if settings.dry_run else 'no'}\n"
            f"Persist:        {settings.persist or '-'}",
            border_style="cyan",
            title="[bold]Configuration[/bold]",
        ),
    )


def _print_summary(console: Console, importer: Importer) -> None:
    counts = importer.get_counts()
    table = Table(title="[bold cyan]Import Summary[/bold cyan]", box=box.SIMPLE_HEAVY, show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Documents", f"[green]{counts['documents']}[/green]")
    table.add_row("Assets", f"[green]{counts['assets']}[/green]")
    table.add_row("Assets cleaned", str(counts["cleaned"]))
    table.add_row("Errors", f"[red]{counts['errors']}[/red]" if counts["errors"] else "0")
    console.print(table)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging(args.log_level, quiet=args.quiet)
    console = Console(stderr=True, quiet=args.quiet)

    try:
        settings = _settings_from_args(args)
        parse_duration(settings.cache_duration)
        importer = Importer(settings)
        importer.add_source(args.type, args.target)
    except (ValueError, ValidationError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    _print_banner(console, args, settings)

    try:
        asyncio.run(importer.run())
    except PathConflictError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.warning("Import interrupted")
        return 1

    _print_summary(console, importer)
    return 0


if __name__ == "__main__":
    sys.exit(main())
