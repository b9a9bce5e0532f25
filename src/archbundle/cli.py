"""Typer CLI entrypoint for archbundle."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml

from archbundle.config import AppSettings, load_settings
from archbundle.errors import BundleError
from archbundle.logging_utils import configure_logging
from archbundle.models import BuildTarget, Platform, slice_token_issues
from archbundle.pipeline import BundleRunOptions, BundleRunResult, run_bundle_pipeline, run_prebuilt_pipeline
from archbundle.reports import bundle_inventory
from archbundle.validate.validator import validate_bundle

app = typer.Typer(
    add_completion=False,
    help="archbundle command line interface.",
    no_args_is_help=True,
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    help="Optional settings YAML path.",
    exists=False,
    file_okay=True,
    dir_okay=False,
    readable=True,
)


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=config_file)
    if configure:
        logger = configure_logging(settings.paths.logs_root / "archbundle.log", level=settings.project.log_level)
    else:
        logger = logging.getLogger("archbundle")
    return settings, logger


def parse_target(value: str) -> BuildTarget:
    """Parse ``arch:platform[:variant][@min_os]`` into a build target."""

    spec, _, min_os = value.strip().partition("@")
    parts = [part.strip() for part in spec.split(":")]
    if len(parts) not in (2, 3) or not all(parts):
        raise typer.BadParameter(f"target {value!r} must look like arch:platform[:variant][@min_os]")
    try:
        platform = Platform(parts[1].lower())
    except ValueError as exc:
        allowed = ",".join(item.value for item in Platform)
        raise typer.BadParameter(f"platform in {value!r} must be one of: {allowed}") from exc
    variant = parts[2] if len(parts) == 3 else None
    problems = slice_token_issues(parts[0], variant)
    if problems:
        raise typer.BadParameter(f"target {value!r}: {'; '.join(problems)}")
    return BuildTarget(
        architecture=parts[0],
        platform=platform,
        variant=variant,
        min_os_version=min_os.strip() or None,
    )


def parse_artifact(value: str) -> tuple[BuildTarget, Path]:
    """Parse ``arch:platform[:variant][@min_os]=PATH``."""

    target_text, sep, path_text = value.partition("=")
    if not sep or not path_text.strip():
        raise typer.BadParameter(f"artifact {value!r} must look like arch:platform[:variant][@min_os]=PATH")
    path = Path(path_text.strip()).expanduser()
    if not path.is_file():
        raise typer.BadParameter(f"artifact file {path} does not exist")
    return parse_target(target_text), path


def _echo_run(result: BundleRunResult) -> None:
    summary = result.summary
    typer.echo(f"run_id: {summary['run_id']}")
    typer.echo(f"destination: {summary['destination']}")
    typer.echo(f"slice_count: {summary['slice_count']}")
    typer.echo(f"slices: {','.join(summary['slices'])}")
    typer.echo(f"replaced_existing: {summary['replaced_existing']}")
    if result.report_paths is not None:
        typer.echo(f"summary_path: {result.report_paths.summary_path}")


@app.command("show-config")
def show_config(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("assemble")
def assemble_cmd(
    target: list[str] | None = typer.Option(
        None,
        "--target",
        help="Build target arch:platform[:variant][@min_os]; repeatable. Defaults to configured targets.",
    ),
    destination: Path | None = typer.Option(
        None,
        "--destination",
        help="Published bundle directory. Defaults to <output_root>/<name>.bundle.",
    ),
    no_reports: bool = typer.Option(False, "--no-reports", help="Skip run summary and inventory artifacts."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Build every target with the toolchain and publish one bundle."""

    targets = [parse_target(item) for item in target] if target else None
    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    options = BundleRunOptions(destination=destination, write_reports=not no_reports)
    try:
        result = run_bundle_pipeline(settings, targets, options=options, logger=logger)
    except BundleError as exc:
        logger.error("assemble.failed error=%s", exc)
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code) from exc
    _echo_run(result)


@app.command("bundle-artifacts")
def bundle_artifacts_cmd(
    artifact: list[str] = typer.Option(
        ...,
        "--artifact",
        help="Pre-built library arch:platform[:variant][@min_os]=PATH; repeatable.",
    ),
    destination: Path | None = typer.Option(
        None,
        "--destination",
        help="Published bundle directory. Defaults to <output_root>/<name>.bundle.",
    ),
    no_reports: bool = typer.Option(False, "--no-reports", help="Skip run summary and inventory artifacts."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Publish a bundle from already compiled libraries."""

    prebuilt = [parse_artifact(item) for item in artifact]
    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    options = BundleRunOptions(destination=destination, write_reports=not no_reports)
    try:
        result = run_prebuilt_pipeline(settings, prebuilt, options=options, logger=logger)
    except BundleError as exc:
        logger.error("bundle_artifacts.failed error=%s", exc)
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code) from exc
    _echo_run(result)


@app.command("validate")
def validate_cmd(
    bundle: Path = typer.Argument(..., help="Published bundle directory."),
    skip_fingerprints: bool = typer.Option(False, "--skip-fingerprints", help="Do not re-hash library files."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Validate a published bundle against its manifest."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=False)
    try:
        manifest = validate_bundle(
            bundle,
            allowed_architectures=settings.validation.allowed_architectures,
            verify_fingerprints=not skip_fingerprints,
            logger=logger,
        )
    except BundleError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code) from exc
    typer.echo(f"valid: {bundle} ({len(manifest.slices)} slices)")


@app.command("inspect")
def inspect_cmd(
    bundle: Path = typer.Argument(..., help="Published bundle directory."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Print the slice inventory of a published bundle."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=False)
    try:
        manifest = validate_bundle(
            bundle,
            allowed_architectures=settings.validation.allowed_architectures,
            verify_fingerprints=False,
            logger=logger,
        )
    except BundleError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code) from exc
    inventory = bundle_inventory(manifest, bundle)
    typer.echo(f"name: {manifest.name}")
    typer.echo(f"format_version: {manifest.format_version}")
    for row in inventory.iter_rows(named=True):
        typer.echo(
            f"{row['identifier']}: architecture={row['architecture']} platform={row['platform']} "
            f"variant={row['variant'] or '-'} library={row['library_path']} size_bytes={row['size_bytes']}"
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
