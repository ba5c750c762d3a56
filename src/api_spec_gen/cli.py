"""CLI entry point for api-spec-gen."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from api_spec_gen.config import Settings, load_settings
from api_spec_gen.errors import SchemaError
from api_spec_gen.generator.corpus import CorpusCompiler, CorpusResult, build_registry
from api_spec_gen.generator.report import format_violations, summarize


def _settings(
    config: Optional[Path],
    shared: tuple[Path, ...],
    doc_ids: Optional[Path],
    only: tuple[str, ...],
    workers: Optional[int],
    verbose: bool,
    target: Optional[str] = None,
) -> Settings:
    """Load settings and apply command-line overrides."""
    try:
        settings = load_settings(config)
    except (OSError, ValueError, ValidationError) as e:
        raise click.ClickException(f"invalid configuration: {e}")

    updates: dict = {}
    if shared:
        updates["shared_types"] = settings.shared_types + list(shared)
    if doc_ids:
        updates["doc_ids"] = doc_ids
    if only:
        updates["only"] = list(only)
    if workers:
        updates["workers"] = workers
    if target:
        updates["target"] = target
    if verbose:
        updates["log_level"] = "DEBUG"
    settings = settings.model_copy(update=updates)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    return settings


def _compile(paths: tuple[Path, ...], settings: Settings, emit: bool) -> CorpusResult:
    try:
        registry = build_registry(settings)
        return CorpusCompiler(registry, settings).compile(paths, emit=emit)
    except (SchemaError, OSError) as e:
        raise click.ClickException(str(e))


def _report(result: CorpusResult) -> None:
    """Print grouped violations and exit non-zero if there are any."""
    if result.violations:
        click.echo(format_violations(result.violations))
    for filename, error in result.emit_errors.items():
        click.echo(f"Emit error in {filename}: {error}")
    click.echo(summarize(len(result.operations), len(result.certified), len(result.violations)))
    if not result.ok:
        sys.exit(1)


def corpus_options(func):
    """Options shared by every command that reads a corpus."""
    options = [
        click.option("--config", type=click.Path(exists=True, dir_okay=False, path_type=Path),
                     help="Configuration file (default: ./api-spec-gen.yaml if present)."),
        click.option("--shared", multiple=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
                     help="Shared-type YAML library to seed the registry with (repeatable)."),
        click.option("--doc-ids", type=click.Path(exists=True, dir_okay=False, path_type=Path),
                     help="Table of known documentation ids."),
        click.option("--only", multiple=True, help="Only process operations matching this rest name pattern."),
        click.option("--workers", type=click.IntRange(min=1), default=None, help="Worker threads per phase."),
        click.option("-v", "--verbose", is_flag=True, help="Enable debug logging."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def main():
    """API Spec Gen — validate schema corpora and generate typed request bindings."""
    pass


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@corpus_options
def check(paths: tuple[Path, ...], **options):
    """Parse and validate a schema corpus."""
    settings = _settings(**options)
    click.echo(f"Checking {len(paths)} path(s)...")
    result = _compile(paths, settings, emit=False)
    _report(result)


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output directory for generated bindings.")
@click.option("--target", default=None, type=click.Choice(["python", "yaml"]), help="Binding format.")
@corpus_options
def gen(paths: tuple[Path, ...], output: Path, target: Optional[str], **options):
    """Full pipeline: parse -> validate -> emit bindings for certified operations."""
    settings = _settings(target=target, **options)
    click.echo(f"Compiling {len(paths)} path(s) (target: {settings.target})...")
    result = _compile(paths, settings, emit=True)

    files = result.files()
    output.mkdir(parents=True, exist_ok=True)
    for filename, content in files.items():
        file_path = output / filename
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        click.echo(f"  Created {file_path}")

    click.echo(f"Generated {len(files)} files in {output}")
    _report(result)


@main.command(name="list")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@corpus_options
def list_operations(paths: tuple[Path, ...], **options):
    """List the operations of a corpus with their routes."""
    settings = _settings(**options)
    result = _compile(paths, settings, emit=False)
    certified = set(result.certified)
    for name in sorted(result.operations):
        status = "ok" if name in certified else "invalid"
        for url in result.operations[name].urls:
            click.echo(f"{name}\t{','.join(url.methods)} {url.path}\t{status}")
