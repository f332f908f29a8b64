"""Command line entry point.

    convoscript run examples/ideas.xml --config config.yaml --model openai:gpt-4o-mini
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from . import __version__
from .config import build_client, load_config
from .core.context import ExecutionContext
from .core.evaluator import evaluate
from .core.exceptions import ScriptError
from .tools import BUILTIN_HANDLERS
from .utilities import basic_log_config

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(__version__, prog_name="convoscript")
def main():
    """Run conversation scripts against an LLM."""


@main.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--config",
    "config_path",
    default="config.yaml",
    show_default=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML configuration file.",
)
@click.option("--model", default=None, help="Override the configured model ('provider:identifier').")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
def run(script: Path, config_path: Path, model: str | None, verbose: bool):
    """Evaluate SCRIPT and print its top-level bindings as JSON."""
    try:
        config = load_config(config_path)
        basic_log_config(level=logging.DEBUG if verbose else config.log_level)
        context = ExecutionContext(
            client=build_client(config),
            handlers=BUILTIN_HANDLERS,
            model=model or config.model,
            request_params=config.request_params,
        )
        scope = evaluate(script, context)
    except (ScriptError, ValueError) as e:
        logger.debug("Script failed", exc_info=True)
        raise click.ClickException(str(e)) from e

    click.echo(json.dumps(scope.bindings, indent=2, ensure_ascii=False, default=str))


if __name__ == "__main__":
    main()
