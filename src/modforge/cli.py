"""Command-line interface."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
import sys
from typing import Any

from modforge.archive import ArchiveError, load_module_zip, write_artifacts, write_zip
from modforge.config import Settings
from modforge.factory import build_model
from modforge.generator import GenerationRequestError, modify_module, run_generation
from modforge.protocol import ArtifactUpdate, CompletedUpdate, FailedUpdate, PlanUpdate, Update
from modforge.state import GenerationStatus, ResultState
from modforge.util.logging import set_level


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate PrestaShop modules with an LLM", allow_abbrev=False
    )
    parser.add_argument(
        "description",
        type=str,
        help="What the module should do (the change request when --modify-from is set)",
    )
    parser.add_argument("--mode", choices=["create", "modify"], default="create", dest="mode")
    parser.add_argument("--modify-from", dest="modify_from", help="Existing module zip to modify")
    parser.add_argument("--base-url", dest="base_url")
    parser.add_argument("--api-key", dest="api_key")
    parser.add_argument("--model", dest="model")
    parser.add_argument("--mock", action="store_true", dest="mock")
    parser.add_argument("--output", dest="output", help="Directory to write generated files into")
    parser.add_argument("--zip", dest="zip_path", help="Write generated files to this zip instead")
    parser.add_argument("--fail-on-truncation", action="store_true", dest="fail_on_truncation")
    parser.add_argument("--json", action="store_true", dest="json", help="Print the result as JSON")
    parser.add_argument("--verbose", action="store_true", dest="verbose")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    data: dict[str, Any] = settings.model_dump()
    if args.base_url:
        data["openai_base_url"] = args.base_url
    if args.api_key:
        data["openai_api_key"] = args.api_key
    if args.model:
        data["openai_model"] = args.model
    if args.output:
        data["output_dir"] = args.output
    if args.fail_on_truncation:
        data["fail_on_truncation"] = True
    return Settings(**data)


class ConsoleReporter:
    """Print updates as they are merged."""

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet
        self.seen_paths: set[str] = set()

    def __call__(self, update: Update, state: ResultState) -> None:
        if self.quiet:
            return
        if isinstance(update, PlanUpdate):
            print("Plan:")
            for step in update.plan:
                print(f"  {step}")
        elif isinstance(update, ArtifactUpdate):
            for path in update.artifacts:
                if path not in self.seen_paths:
                    self.seen_paths.add(path)
                    print(f"File: {path} ({state.progress_percent()}%)")
        elif isinstance(update, CompletedUpdate):
            print(f"Done: {update.message}")
        elif isinstance(update, FailedUpdate):
            print(f"Error: {update.error}", file=sys.stderr)


def _save(state: ResultState, settings: Settings, args: argparse.Namespace) -> None:
    if not state.artifacts:
        return
    if args.zip_path:
        write_zip(state.artifacts, Path(args.zip_path))
    else:
        write_artifacts(state.artifacts, Path(settings.output_dir))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        set_level(logging.DEBUG)
    settings = apply_overrides(Settings(), args)
    model = build_model(settings, use_mock=args.mock)
    reporter = ConsoleReporter(quiet=args.json)
    try:
        if args.modify_from:
            module = load_module_zip(Path(args.modify_from))
            state = asyncio.run(
                modify_module(
                    model,
                    module.description,
                    module.state,
                    args.description,
                    on_update=reporter,
                    fail_on_truncation=settings.fail_on_truncation,
                )
            )
        else:
            state = asyncio.run(
                run_generation(
                    model,
                    args.description,
                    args.mode,
                    on_update=reporter,
                    fail_on_truncation=settings.fail_on_truncation,
                )
            )
    except (GenerationRequestError, ArchiveError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    if state.status is GenerationStatus.COMPLETED:
        try:
            _save(state, settings, args)
        except (ArchiveError, OSError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    elif state.status is GenerationStatus.IN_PROGRESS:
        print("Error: generation ended before completion", file=sys.stderr)
    if args.json:
        print(state.model_dump_json(indent=2))
    return 0 if state.status is GenerationStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
