"""Command-line interface for tcga-explorer.

Provides CLI commands for running the staged TCGA exploration pipeline.
"""

import logging
import sys
from typing import Optional

import click

from tcga_explorer import __version__


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup console logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
        handlers=[handler],
    )
    return logging.getLogger("tcga_explorer")


def _load_config(ctx: click.Context, config_path: str, **overrides):
    from tcga_explorer.pipeline import PipelineConfig, PipelineConfigError

    try:
        cfg = PipelineConfig.from_yaml(config_path)
        if ctx.obj.get("debug"):
            overrides["log_level"] = "DEBUG"
        return cfg.replace(**overrides) if overrides else cfg
    except PipelineConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}")


def _build_orchestrator(cfg, pipeline_logger=None):
    from tcga_explorer.pipeline import PipelineConfigError, PipelineOrchestrator
    from tcga_explorer.stages import build_stages

    try:
        return PipelineOrchestrator(cfg, build_stages(cfg), logger=pipeline_logger)
    except PipelineConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}")


def _check_environment() -> None:
    from tcga_explorer.pipeline import verify_environment

    missing = verify_environment()
    if missing:
        raise click.ClickException(
            f"Missing required packages: {', '.join(missing)}. "
            "Install them with: pip install tcga-explorer"
        )


def _open_pipeline_logger(cfg):
    from tcga_explorer.pipeline import PipelineLogger

    pipeline_logger = PipelineLogger(
        str(cfg.log_dir),
        log_level=cfg.log_level,
        log_file=str(cfg.log_file) if cfg.log_file else None,
        console=False,
    )
    pipeline_logger.setup()
    return pipeline_logger


@click.group()
@click.version_option(version=__version__, prog_name="tcga-explorer")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """tcga-explorer: staged exploration of TCGA expression cohorts.

    Runs acquisition, preprocessing, differential expression, cell
    composition, clinical integration and survival modelling for each
    configured indication.

    Examples:

        # Run the whole pipeline
        tcga-explorer run --config pipeline.yaml

        # Show the execution plan only
        tcga-explorer run --config pipeline.yaml --dry-run

        # Re-run one stage against existing artifacts
        tcga-explorer stage survival_models --config pipeline.yaml --force

        # Show which stages are complete per indication
        tcga-explorer status --config pipeline.yaml
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--config", "-c", "config_path", required=True, type=click.Path(exists=True),
              help="Pipeline configuration file (YAML)")
@click.option("--force", is_flag=True, help="Recompute units whose outputs already exist")
@click.option("--workers", "-j", type=click.IntRange(min=1), default=None,
              help="Worker threads per stage (overrides config)")
@click.option("--dry-run", is_flag=True, help="Show execution plan without running")
@click.pass_context
def run(
    ctx: click.Context,
    config_path: str,
    force: bool,
    workers: Optional[int],
    dry_run: bool,
) -> None:
    """Run the full pipeline from configuration.

    Exits with status 1 only when the pipeline halts in a failed stage;
    individual unit failures are reported in the stage summaries.
    """
    logger = ctx.obj["logger"]

    overrides = {}
    if force:
        overrides["skip_if_done"] = False
    if workers is not None:
        overrides["n_workers"] = workers
    cfg = _load_config(ctx, config_path, **overrides)
    logger.info(f"Loaded pipeline config: {config_path}")

    if dry_run:
        orchestrator = _build_orchestrator(cfg)
        click.echo("Dry run - no stages will be executed")
        units = [u.unit_id for u in orchestrator.enumerate_units()]
        click.echo(f"Units: {', '.join(units) if units else '(discovered from raw artifacts)'}")
        for i, (stage, enabled) in enumerate(orchestrator.plan()):
            flag = "enabled" if enabled else f"disabled by '{stage.toggle}'"
            inputs = ", ".join(ref.key for ref in stage.requires) or "-"
            click.echo(f"  {i}: {stage.name} [{flag}] <- {inputs}")
        return

    _check_environment()

    from tcga_explorer.pipeline import ArtifactStoreError, check_connectivity, prepare_output_tree

    for host in check_connectivity(cfg):
        click.echo(f"Warning: no connection to {host}; downloads may fail", err=True)
    prepare_output_tree(cfg)
    pipeline_logger = _open_pipeline_logger(cfg)
    try:
        orchestrator = _build_orchestrator(cfg, pipeline_logger)
        try:
            report = orchestrator.run()
        except ArtifactStoreError as e:
            raise click.ClickException(f"Artifact store failure: {e}")
    finally:
        pipeline_logger.close()

    frame = report.to_frame()
    if not frame.empty:
        click.echo(frame.to_string(index=False))

    if report.succeeded:
        click.echo(f"Pipeline completed successfully (run {report.run_id})")
    else:
        click.echo(
            f"Pipeline halted at stage {report.failed_stage_index} "
            f"({report.failed_stage}); see {pipeline_logger.log_file}",
            err=True,
        )
        sys.exit(1)


@cli.command()
@click.argument("name")
@click.option("--config", "-c", "config_path", required=True, type=click.Path(exists=True),
              help="Pipeline configuration file (YAML)")
@click.option("--force", is_flag=True, help="Recompute units whose outputs already exist")
@click.pass_context
def stage(ctx: click.Context, name: str, config_path: str, force: bool) -> None:
    """Run a single stage NAME against existing artifacts.

    Exits with status 1 when no unit had its inputs available.
    """
    from tcga_explorer.pipeline import ArtifactStoreError, PipelineConfigError, prepare_output_tree

    cfg = _load_config(ctx, config_path, **({"skip_if_done": False} if force else {}))
    prepare_output_tree(cfg)
    pipeline_logger = _open_pipeline_logger(cfg)
    try:
        orchestrator = _build_orchestrator(cfg, pipeline_logger)
        try:
            summary = orchestrator.run_stage(name)
        except PipelineConfigError as e:
            raise click.ClickException(str(e))
        except ArtifactStoreError as e:
            raise click.ClickException(f"Artifact store failure: {e}")
    finally:
        pipeline_logger.close()

    if summary.total:
        click.echo(summary.to_frame().to_string(index=False))
    click.echo(
        f"Stage {name}: {summary.succeeded} succeeded, "
        f"{summary.skipped} skipped, {summary.failed} failed"
    )
    if summary.eligible == 0:
        click.echo(f"No unit had the inputs required by stage {name}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", "config_path", required=True, type=click.Path(exists=True),
              help="Pipeline configuration file (YAML)")
@click.pass_context
def status(ctx: click.Context, config_path: str) -> None:
    """Show which stages have complete outputs for each unit."""
    cfg = _load_config(ctx, config_path)
    orchestrator = _build_orchestrator(cfg)
    table = orchestrator.status()
    if table.empty:
        click.echo("No units configured or discovered")
        return
    click.echo(table.apply(lambda col: col.map({True: "done", False: "-"})).to_string())


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
