"""Command-line entry point for the ASCII animation engine."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from asciigen.errors import AsciiGenError
from asciigen.pipeline import AsciiAnimator
from asciigen.types import CombinationMode
from asciigen.utils.files import write_json


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Generate ASCII animations from text prompts.")
    parser.add_argument("--model", default=None, help="Model id from the registry (defaults to config).")
    parser.add_argument("--api-key", default=None, help="API key; falls back to OPENROUTER_API_KEY.")
    parser.add_argument("--output", default=None, help="Write the resulting frames and metadata as JSON.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate one animation.")
    generate.add_argument("prompt", help="What the animation should show.")

    combine = subparsers.add_parser("combine", help="Generate two animations and combine them.")
    combine.add_argument("first_prompt")
    combine.add_argument("second_prompt")
    combine.add_argument(
        "--mode",
        choices=[mode.value for mode in CombinationMode],
        default=CombinationMode.SEQUENCE.value,
    )
    combine.add_argument("--instructions", default="", help="Instructions used by the blend mode.")
    return parser.parse_args(argv)


async def _generate(animator: AsciiAnimator, args: argparse.Namespace) -> dict:
    generation_id = await animator.start_generation(args.prompt, args.model, args.api_key)
    return await animator.get_progress(generation_id)


async def _combine(animator: AsciiAnimator, args: argparse.Namespace) -> dict:
    ids = [
        await animator.start_generation(prompt, args.model, args.api_key)
        for prompt in (args.first_prompt, args.second_prompt)
    ]
    combined = await animator.combine_generations(
        ids,
        args.mode,
        args.instructions,
        args.api_key,
        model_id=args.model,
    )
    return {"frames": combined.frames, "metadata": combined.metadata}


def main(argv: list[str] | None = None) -> int:
    """Entry point used by ``python run.py``."""
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    animator = AsciiAnimator()
    runner = _generate if args.command == "generate" else _combine
    try:
        result = asyncio.run(runner(animator, args))
    except AsciiGenError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    frames = result["frames"]
    if frames:
        print(frames[-1] if args.command == "generate" else frames[0])
    print(f"{len(frames)} frames generated.")
    if args.output:
        write_json(Path(args.output), result)
        print(f"Result written to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
