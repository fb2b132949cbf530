"""Command-line entry point for an extraction run.

Usage:
    mfa-extract --input items.json --output outputs/
    mfa-extract --query "urban renewal policy" --search-url http://localhost:8000
    mfa-extract --input items.json --preset thorough --trace-file trace.log
"""

from __future__ import annotations

import logging
import sys
from dataclasses import replace

import click

from mfa.config import PRESETS, PipelineConfig, get_preset
from mfa.extraction.inference import LLMInferenceClient
from mfa.extraction.types import GroupedOutput
from mfa.pipeline import ExtractionPipeline, PipelineResult
from mfa.search import HttpSearchService, load_work_items
from mfa.shared.errors import NotFoundError, PipelineError
from mfa.shared.llm import LLMConfig, get_provider
from mfa.shared.logger import PipelineLogger, set_logger
from mfa.shared.queue import create_queue


def _format_summary(result: PipelineResult) -> str:
    lines = [
        f"Run {result.run_id}",
        "",
        "Stage        Succeeded  Failed  Skipped  Cancelled",
        "-----        ---------  ------  -------  ---------",
    ]
    for name, stage in result.summary.stages.items():
        lines.append(
            f"{name:<13}{stage.succeeded:<11}{stage.failed:<8}{stage.skipped:<9}{stage.cancelled}"
        )
    lines += ["", "Bucket       Records", "------       -------"]
    for bucket in GroupedOutput.BUCKETS:
        lines.append(f"{bucket:<13}{result.summary.bucket_sizes.get(bucket, 0)}")
    if "grouped_results" in result.summary.artifacts:
        lines += ["", f"Grouped results: {result.summary.artifacts['grouped_results']}"]
    return "\n".join(lines)


def build_config(
    preset: str,
    output: str | None,
    concurrency: int | None,
    max_cycles: int | None,
    max_retries: int | None,
    no_tags: bool,
) -> PipelineConfig:
    """Preset, then environment, then explicit flags."""
    config = PipelineConfig.from_env(get_preset(preset))
    overrides: dict = {}
    if output is not None:
        overrides["output_dir"] = output
    if concurrency is not None:
        overrides["concurrency"] = concurrency
    if max_cycles is not None:
        overrides["max_cycles"] = max_cycles
    if max_retries is not None:
        overrides["max_retries"] = max_retries
    if no_tags:
        overrides["tag_records"] = False
    return replace(config, **overrides)


@click.command()
@click.option("--input", "input_path", type=click.Path(dir_okay=False), help="JSON file of work items")
@click.option("--query", help="Search query; hits become the work items")
@click.option(
    "--search-url",
    default="http://localhost:8000",
    help="Search service URL used with --query (default: http://localhost:8000)",
)
@click.option("--output", help="Directory for run artifacts (default: outputs)")
@click.option("--concurrency", type=click.IntRange(min=1), help="Worker pool size")
@click.option("--max-cycles", type=click.IntRange(min=0), help="Regenerate ceiling per item")
@click.option("--max-retries", type=click.IntRange(min=1), help="Attempts per collaborator call")
@click.option(
    "--preset",
    type=click.Choice(sorted(PRESETS)),
    default="default",
    help="Configuration preset (default: default)",
)
@click.option("--run-id", help="Run identifier used in artifact file names")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Persist INFO+ log lines here")
@click.option("--trace-file", type=click.Path(dir_okay=False), help="Persist every log line here")
@click.option("--no-tags", is_flag=True, help="Skip spatial tag classification after merging")
def main(
    input_path: str | None,
    query: str | None,
    search_url: str,
    output: str | None,
    concurrency: int | None,
    max_cycles: int | None,
    max_retries: int | None,
    preset: str,
    run_id: str | None,
    log_file: str | None,
    trace_file: str | None,
    no_tags: bool,
) -> None:
    """Extract, refine, merge and group policy records."""
    if bool(input_path) == bool(query):
        raise click.UsageError("Pass exactly one of --input or --query")

    try:
        config = build_config(preset, output, concurrency, max_cycles, max_retries, no_tags)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    log = PipelineLogger(log_file=log_file, trace_file=trace_file)
    set_logger(log)
    log.install_stdlib_bridge("mfa", logging.DEBUG if trace_file else logging.INFO)

    items = None
    if input_path:
        try:
            items = load_work_items(input_path)
        except (OSError, PipelineError) as e:
            click.echo(f"Error: could not read {input_path}: {e}", err=True)
            log.close()
            sys.exit(1)

    try:
        provider = get_provider("anthropic", LLMConfig.from_env())
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        log.close()
        sys.exit(1)

    search = HttpSearchService(search_url) if query else None
    client = LLMInferenceClient(provider)

    try:
        with ExtractionPipeline(client, config, search=search, queue=create_queue(), log=log) as pipeline:
            if items is not None:
                result = pipeline.run(items, run_id=run_id)
            else:
                result = pipeline.run_query(query, run_id=run_id)
    except NotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except PipelineError as e:
        click.echo(f"Error: search failed: {e}", err=True)
        sys.exit(1)
    finally:
        if search is not None:
            search.close()
        provider.close()
        log.summary()
        log.close()

    click.echo(_format_summary(result))


if __name__ == "__main__":
    main()
