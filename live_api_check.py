#!/usr/bin/env python3
"""Run live connectivity checks for the plan and frame calls against a real backend."""

from __future__ import annotations

import argparse
import asyncio
import sys
import textwrap
from typing import Iterable

from asciigen.config import EngineConfig
from asciigen.nodes.plan import PLAN_SCHEMA, parse_plan
from asciigen.services.base import PromptSpec
from asciigen.services.openrouter import OpenRouterClient
from asciigen.utils.frames import decode_frame_response, normalize_frame
from asciigen.utils.prompts import load_prompt


async def run_plan_test(client: OpenRouterClient, prompt: str) -> str:
    spec = PromptSpec(prompt=load_prompt("plan", {"user_prompt": prompt}), purpose="plan")
    plan = parse_plan(await client.generate_structured(spec, PLAN_SCHEMA))
    return f"{plan.frame_count} frames at {plan.width}x{plan.height}, {plan.style.value}, {plan.movement.describe()}"


async def run_frame_test(client: OpenRouterClient, subject: str, width: int, height: int) -> str:
    spec = PromptSpec(
        prompt=load_prompt(
            "frame_fallback",
            {
                "frame_number": 1,
                "frame_count": 1,
                "subject": subject,
                "characters": "*.-~",
                "width": width,
                "height": height,
                "progress": 0,
                "context": "",
            },
        ),
        purpose="frame_fallback",
    )
    text = await client.generate_text(spec)
    content, parse_path = decode_frame_response(text)
    frame = normalize_frame(content, width, height)
    return f"Decoded via {parse_path.value}:\n{frame}"


def parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=textwrap.dedent(
            """\
            Smoke-test connectivity for the plan and frame calls.
            Checks only run when --api-key is supplied; otherwise they are skipped.
            """
        ),
    )
    parser.add_argument("--api-key", help="OpenRouter (or OpenAI-compatible) API key.")
    parser.add_argument("--api-url", help="Base URL, defaults to OpenRouter.")
    parser.add_argument("--model", default=None, help="Model id from the registry.")
    parser.add_argument("--prompt", default="ocean waves at sunset", help="Prompt used for the plan check.")
    parser.add_argument("--width", type=int, default=40)
    parser.add_argument("--height", type=int, default=20)
    return parser.parse_args(list(argv))


async def _run_checks(args: argparse.Namespace) -> list[tuple[str, bool, str]]:
    config = EngineConfig.from_env()
    profile = config.resolve_model(args.model)
    client = OpenRouterClient(
        api_key=args.api_key,
        api_url=args.api_url,
        model=profile.api_model,
        use_mock=False,
        timeout=config.request_timeout,
    )
    results: list[tuple[str, bool, str]] = []
    try:
        results.append(("Plan", True, await run_plan_test(client, args.prompt)))
    except Exception as exc:  # noqa: BLE001 - surface connectivity failures
        results.append(("Plan", False, repr(exc)))
    try:
        results.append(("Frame", True, await run_frame_test(client, args.prompt, args.width, args.height)))
    except Exception as exc:  # noqa: BLE001
        results.append(("Frame", False, repr(exc)))
    return results


def main(argv: Iterable[str]) -> int:
    args = parse_args(argv)
    if not args.api_key:
        print("[Plan] FAIL: Skipped (no --api-key provided)")
        print("[Frame] FAIL: Skipped (no --api-key provided)")
        return 0

    any_failure = False
    for name, ok, detail in asyncio.run(_run_checks(args)):
        status = "SUCCESS" if ok else "FAIL"
        print(f"[{name}] {status}: {detail}")
        any_failure = any_failure or not ok
    return 1 if any_failure else 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
