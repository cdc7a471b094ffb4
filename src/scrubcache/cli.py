"""Command-line interface for scrub-cache."""

import json
import sys
import logging
from pathlib import Path
from typing import Optional, Union

import click

from scrubcache import __version__
from scrubcache.config import ScrubCacheConfig, build_scrubber, load_config_file
from scrubcache.exceptions import ScrubCacheError
from scrubcache.models import ContentScope
from scrubcache.registry import load_registry
from scrubcache.scrubber import Scrubber

SCOPE_CHOICES = [scope.value for scope in ContentScope]


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration.

    Logs go to stderr and stay quiet unless verbose, so redacted output can
    be piped.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def text_options(func):
    """Options shared by every command that reads a document."""
    func = click.option(
        "--config",
        "-c",
        type=click.Path(exists=True, path_type=Path),
        help="Configuration file",
    )(func)
    func = click.option(
        "--patterns",
        "-p",
        type=click.Path(exists=True, path_type=Path),
        multiple=True,
        help="Pattern files to load (uses defaults if not specified)",
    )(func)
    func = click.option(
        "--scope",
        "-s",
        type=click.Choice(SCOPE_CHOICES),
        default=ContentScope.GENERAL.value,
        help="Content scope of the document",
    )(func)
    func = click.option(
        "--file",
        "-f",
        type=click.Path(exists=True, path_type=Path),
        help="File to read",
    )(func)
    func = click.option(
        "--text",
        "-t",
        help="Text to process (use --file for file input)",
    )(func)
    return func


def _read_input(text: Optional[str], file: Optional[Path]) -> Union[str, bytes]:
    if text is None and file is None:
        click.echo("Error: Must provide --text or --file", err=True)
        sys.exit(1)

    # Bytes go through the scrubber's own UTF-8 check.
    if file:
        return file.read_bytes()
    assert text is not None
    return text


def _make_scrubber(patterns: tuple[Path, ...], config: Optional[Path]) -> Scrubber:
    try:
        settings = load_config_file(config) if config else ScrubCacheConfig()
        registry = load_registry(paths=[str(p) for p in patterns]) if patterns else None
        return build_scrubber(settings, registry)
    except ScrubCacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """scrub-cache: Redact PII before analysis results are cached."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@main.command()
@text_options
@click.option(
    "--out",
    "output_file",
    type=click.Path(path_type=Path),
    help="Write redacted text to a file (prints to stdout if not specified)",
)
@click.option(
    "--output",
    "-o",
    type=click.Choice(["json", "text"]),
    default="text",
    help="Output format",
)
@click.option(
    "--stats",
    is_flag=True,
    help="Print redaction statistics",
)
def scrub(
    text: Optional[str],
    file: Optional[Path],
    scope: str,
    patterns: tuple[Path, ...],
    config: Optional[Path],
    output_file: Optional[Path],
    output: str,
    stats: bool,
) -> None:
    """Redact PII from text or file."""
    source = _read_input(text, file)
    scrubber = _make_scrubber(patterns, config)

    try:
        result = scrubber.scrub(source, scope)
    except ScrubCacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if output == "json":
        click.echo(
            json.dumps(
                {
                    "scope": result.scope.value,
                    "redacted_text": result.redacted_text,
                    "fingerprint": str(result.fingerprint),
                    "items_found": result.items_found,
                    "category_counts": {
                        c.value: n for c, n in result.category_counts.items()
                    },
                    "has_critical": result.has_critical,
                    "highest_severity": (
                        result.highest_severity.value if result.highest_severity else None
                    ),
                },
                indent=2,
            )
        )
        return

    if output_file:
        output_file.write_text(result.redacted_text, encoding="utf-8")
        if stats:
            click.echo(f"Redacted {result.items_found} items to {output_file}")
    else:
        click.echo(result.redacted_text)
        if stats:
            click.echo(f"\n[Redacted {result.items_found} items]", err=True)


@main.command()
@text_options
def mask(
    text: Optional[str],
    file: Optional[Path],
    scope: str,
    patterns: tuple[Path, ...],
    config: Optional[Path],
) -> None:
    """Partially mask PII for display, keeping the text length."""
    source = _read_input(text, file)
    scrubber = _make_scrubber(patterns, config)

    try:
        click.echo(scrubber.mask_for_display(source, scope))
    except ScrubCacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


@main.command()
@text_options
def check(
    text: Optional[str],
    file: Optional[Path],
    scope: str,
    patterns: tuple[Path, ...],
    config: Optional[Path],
) -> None:
    """Check whether text is free of critical PII."""
    source = _read_input(text, file)
    scrubber = _make_scrubber(patterns, config)

    try:
        is_safe, issues = scrubber.validate_safe_for_processing(source, scope)
    except ScrubCacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if is_safe:
        click.echo("✓ No critical PII found")
        sys.exit(0)

    click.echo("✗ Critical PII found")
    for issue in issues:
        click.echo(f"  {issue}")
    sys.exit(1)


@main.command()
@text_options
def fingerprint(
    text: Optional[str],
    file: Optional[Path],
    scope: str,
    patterns: tuple[Path, ...],
    config: Optional[Path],
) -> None:
    """Print the fingerprint of the scrubbed text."""
    source = _read_input(text, file)
    scrubber = _make_scrubber(patterns, config)

    try:
        result = scrubber.scrub(source, scope)
    except ScrubCacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    click.echo(str(result.fingerprint))


@main.command()
@click.option(
    "--patterns",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    multiple=True,
    help="Pattern files to list",
)
@click.option(
    "--scope",
    "-s",
    type=click.Choice(SCOPE_CHOICES),
    help="Only list rules that apply to this scope",
)
def list_patterns(patterns: tuple[Path, ...], scope: Optional[str]) -> None:
    """List available patterns in evaluation order."""
    pattern_paths = [str(p) for p in patterns] if patterns else None
    try:
        registry = load_registry(paths=pattern_paths)
    except ScrubCacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    rules = registry.patterns_for_scope(scope) if scope else tuple(registry)
    click.echo(f"Loaded {len(registry)} patterns, listing {len(rules)}\n")

    for rule in rules:
        click.echo(
            f"  {rule.category.value:<20} {rule.severity.value:<14} "
            f"{rule.replacement_label:<28} {rule.description}"
        )


if __name__ == "__main__":
    main()
