"""Typer CLI entrypoint for css_bundle."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import typer
import yaml

from css_bundle.bundler import CssBundler, RefreshResult
from css_bundle.config import AppSettings, load_settings
from css_bundle.errors import BundleError
from css_bundle.fragments.discover import scan_fragments
from css_bundle.fragments.fingerprint import combine_digests, file_digests
from css_bundle.fragments.manifest import build_fragment_manifest
from css_bundle.logging_utils import configure_logging, level_for_verbosity
from css_bundle.publish.layout import OutputLayout

app = typer.Typer(
    add_completion=False,
    help="Merge CSS module fragments into one atomically published stylesheet.",
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
OUTPUT_DIR_OPTION = typer.Option(
    None,
    "--output-dir",
    help="Override paths.output_dir (scan root and location of styles.css).",
    file_okay=False,
    dir_okay=True,
)
OUTPUT_FILE_OPTION = typer.Option(
    None,
    "--output-file",
    help="Override paths.output_file (its directory holds the buffer files).",
    dir_okay=False,
)


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=config_file)
    if configure:
        logger = configure_logging(
            settings.paths.logs_root / "css_bundle.log",
            level=level_for_verbosity(settings.bundle.verbose),
        )
    else:
        logger = logging.getLogger("css_bundle")
    return settings, logger


def _with_output_overrides(
    settings: AppSettings,
    output_dir: Path | None,
    output_file: Path | None,
) -> AppSettings:
    updates: dict[str, Path] = {}
    if output_dir is not None:
        updates["output_dir"] = output_dir.resolve()
    if output_file is not None:
        updates["output_file"] = output_file.resolve()
    if not updates:
        return settings
    return settings.model_copy(update={"paths": settings.paths.model_copy(update=updates)})


def _echo_result(result: RefreshResult) -> None:
    typer.echo(f"status: {result.status}")
    typer.echo(f"fragment_count: {result.fragment_count}")
    if result.fingerprint:
        typer.echo(f"fingerprint: {result.fingerprint}")
    if result.error:
        typer.echo(f"error: {result.error}", err=True)


@app.command("show-config")
def show_config(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("scan")
def scan_cmd(
    config_file: Path | None = CONFIG_FILE_OPTION,
    output_dir: Path | None = OUTPUT_DIR_OPTION,
    output_file: Path | None = OUTPUT_FILE_OPTION,
) -> None:
    """List the fragments a refresh would merge, with their digests."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=False)
    settings = _with_output_overrides(settings, output_dir, output_file)
    layout = OutputLayout.for_target(settings.paths.output_file, settings.paths.output_dir)
    try:
        files = scan_fragments(
            layout.output_dir,
            settings.bundle.file_name_pattern,
            exclude_paths=layout.scan_excludes,
            ignore_dir_names=settings.bundle.ignore_dir_names,
            logger=logger,
        )
        digests = file_digests(files, batch_size=settings.bundle.batch_size)
    except BundleError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"fragment_count: {len(files)}")
    if not files:
        return
    typer.echo(f"fingerprint: {combine_digests(digests)}")
    manifest = build_fragment_manifest(files, digests, root_dir=layout.output_dir, logger=logger)
    typer.echo(str(manifest.select(["relative_path", "size_bytes", "digest"])))


@app.command("refresh")
def refresh_cmd(
    config_file: Path | None = CONFIG_FILE_OPTION,
    output_dir: Path | None = OUTPUT_DIR_OPTION,
    output_file: Path | None = OUTPUT_FILE_OPTION,
) -> None:
    """Merge fragments once and publish styles.css if anything changed."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    settings = _with_output_overrides(settings, output_dir, output_file)
    with CssBundler.from_settings(settings, logger=logger) as bundler:
        result = bundler.refresh()
    _echo_result(result)
    typer.echo(f"main_link: {bundler.layout.main_link}")
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("clear")
def clear_cmd(
    config_file: Path | None = CONFIG_FILE_OPTION,
    output_dir: Path | None = OUTPUT_DIR_OPTION,
    output_file: Path | None = OUTPUT_FILE_OPTION,
) -> None:
    """Publish an empty styles.css."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    settings = _with_output_overrides(settings, output_dir, output_file)
    with CssBundler.from_settings(settings, logger=logger) as bundler:
        result = bundler.clear()
    _echo_result(result)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("watch")
def watch_cmd(
    interval: float | None = typer.Option(
        None,
        "--interval",
        min=0.0,
        help="Seconds between refreshes (defaults to watch.interval_seconds).",
    ),
    max_iterations: int | None = typer.Option(
        None,
        "--max-iterations",
        min=1,
        help="Stop after N refreshes instead of running until interrupted.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    output_dir: Path | None = OUTPUT_DIR_OPTION,
    output_file: Path | None = OUTPUT_FILE_OPTION,
) -> None:
    """Refresh repeatedly; unchanged fragments cost one hash pass per tick."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    settings = _with_output_overrides(settings, output_dir, output_file)
    sleep_seconds = settings.watch.interval_seconds if interval is None else interval

    bundler = CssBundler.from_settings(settings, logger=logger)
    uninstall_hooks = bundler.install_exit_hooks()
    logger.info("watch.start output_dir=%s interval=%s", bundler.layout.output_dir, sleep_seconds)
    iterations = 0
    failures = 0
    try:
        while max_iterations is None or iterations < max_iterations:
            result = bundler.refresh()
            iterations += 1
            if not result.ok:
                failures += 1
            if result.status in {"published", "failed", "inconsistent"}:
                _echo_result(result)
            if max_iterations is None or iterations < max_iterations:
                time.sleep(sleep_seconds)
    except KeyboardInterrupt:
        logger.info("watch.interrupted iterations=%s", iterations)
    finally:
        bundler.release_resources()
        uninstall_hooks()

    typer.echo(f"iterations: {iterations}")
    typer.echo(f"failures: {failures}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
