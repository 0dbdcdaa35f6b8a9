"""Terminal client for the learning map API."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import re
import signal
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from learnmap_sdk.client import AsyncLearnMapClient
from learnmap_sdk.resilient import RequestResult
from learnmap_sdk.retry_policy import PROFILES, get_profile

DEFAULT_API_URL = "http://localhost:8000/api/v1"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="learnmap", description="Generate and fetch AI learning maps")
    parser.add_argument(
        "--api-url",
        default=os.getenv("LEARNMAP_API_URL", DEFAULT_API_URL),
        help="Base URL of the learning map API, including the base path",
    )
    parser.add_argument(
        "--profile",
        default=os.getenv("LEARNMAP_RETRY_PROFILE", "cold-start"),
        choices=sorted(PROFILES),
        help="Retry profile (cold-start tolerates a sleeping backend)",
    )
    parser.add_argument("--json", action="store_true", help="Print the raw map JSON instead of a tree")
    parser.add_argument("--export", metavar="PATH", nargs="?", const="", help="Write the map to a JSON file")

    commands = parser.add_subparsers(dest="command", required=True)
    generate = commands.add_parser("generate", help="Generate a new learning map")
    generate.add_argument("topic", help="Topic to map (3-200 characters)")
    generate.add_argument(
        "--level",
        default="Beginner",
        choices=["Beginner", "Intermediate", "Advanced"],
    )
    fetch = commands.add_parser("get", help="Fetch a saved learning map by id")
    fetch.add_argument("map_id")
    return parser.parse_args(argv)


def default_export_name(learning_map: dict[str, Any]) -> str:
    topic = str(learning_map.get("topic") or "learning-map").strip()
    return re.sub(r"\s+", "-", topic) + "-learning-map.json"


def _render_subtopics(subtopics: Any, depth: int, lines: list[str]) -> None:
    pad = "  " * depth
    for subtopic in subtopics if isinstance(subtopics, list) else []:
        lines.append(f"{pad}- {subtopic.get('title')}: {subtopic.get('description')}")
        for resource in subtopic.get("resources") or []:
            lines.append(f"{pad}    [{resource.get('type')}] {resource.get('title')} <{resource.get('url')}>")
        _render_subtopics(subtopic.get("subtopics"), depth + 1, lines)


def render_map(learning_map: dict[str, Any]) -> str:
    lines = [f"{learning_map.get('topic')} ({learning_map.get('level')})"]
    if learning_map.get("id"):
        lines.append(f"id: {learning_map['id']}")
    for index, branch in enumerate(learning_map.get("branches") or [], start=1):
        lines.append("")
        lines.append(f"{index}. {branch.get('title')}")
        if branch.get("description"):
            lines.append(f"   {branch['description']}")
        _render_subtopics(branch.get("subtopics"), 1, lines)
    return "\n".join(lines)


def _emit(result: RequestResult[dict[str, Any]], args: argparse.Namespace) -> int:
    if not result.ok:
        message = result.error.message if result.error else "Request failed"
        print(f"Error: {message}", file=sys.stderr)
        return 1

    learning_map = result.payload or {}
    print(json.dumps(learning_map, indent=2) if args.json else render_map(learning_map))

    if args.export is not None:
        target = Path(args.export or default_export_name(learning_map))
        target.write_text(json.dumps(learning_map, indent=2), encoding="utf-8")
        print(f"\nSaved to {target}")
    return 0


async def run(args: argparse.Namespace) -> int:
    abort = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort.set)
    except (NotImplementedError, RuntimeError):
        pass

    async with AsyncLearnMapClient(args.api_url, profile=get_profile(args.profile)) as client:
        if args.command == "generate":
            print(f"Generating a {args.level} learning map for '{args.topic}'...", file=sys.stderr)
            result = await client.generate_learning_map(args.topic, args.level, abort=abort)
        else:
            result = await client.get_learning_map(args.map_id, abort=abort)
    return _emit(result, args)


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
