# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""GeoLens CLI: parse, render, classify, serve commands.

Usage:
    geolens parse URL [--output FILE] [--html]
    geolens render IR_JSON [--output FILE]
    geolens classify [--user-agent UA] [--header K:V ...] [--query K=V ...] [--lenient]
    geolens serve [server options]
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from pathlib import Path

from .config import load_settings
from .errors import InvalidInputError


def _write_output(text: str, output: str | None) -> None:
    if not output:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")
        return
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    print(f"Saved to {path}", file=sys.stderr)


def _split_pairs(values: list[str] | None, sep: str, what: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in values or []:
        key, found, value = item.partition(sep)
        if not found or not key.strip():
            raise InvalidInputError(f"Invalid {what} {item!r}: expected KEY{sep}VALUE")
        pairs[key.strip()] = value.strip()
    return pairs


# ── Commands ─────────────────────────────────────────────────────────


def cmd_parse(args: argparse.Namespace) -> None:
    """Fetch URL and print the IR inspection JSON (or GEO HTML with --html)."""
    from .pipeline import GeoPipeline

    async def _run():
        pipeline = GeoPipeline.from_settings(load_settings())
        try:
            return await pipeline.parse(args.url)
        finally:
            await pipeline.aclose()

    result = asyncio.run(_run())
    if args.html:
        _write_output(result.geo_html, args.output)
    else:
        _write_output(json.dumps(result.to_dict(), ensure_ascii=False, indent=2), args.output)
    print(
        f"{result.ir.semantic.main_entity_type}: {result.ir.metadata.title} "
        f"({len(result.ir.content.paragraphs)} paragraphs, {result.processing_time_ms:.0f}ms)",
        file=sys.stderr,
    )


def cmd_render(args: argparse.Namespace) -> None:
    """Render a JSON IR file (``-`` for stdin) to GEO HTML."""
    from .geo_renderer import render
    from .schemas import parse_ir_payload

    try:
        raw = sys.stdin.read() if args.ir_json == "-" else Path(args.ir_json).read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidInputError(f"Cannot read IR file {args.ir_json}: {e.strerror}", field_name="ir") from e
    except UnicodeDecodeError as e:
        raise InvalidInputError(f"IR file {args.ir_json} is not UTF-8 text", field_name="ir") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"IR file is not valid JSON: {e.msg}", field_name="ir") from e
    # Accept both a bare IR and a saved `geolens parse` result.
    if isinstance(data, dict) and "ir" in data and "metadata" not in data:
        data = data["ir"]
    _write_output(render(parse_ir_payload(data)), args.output)


def cmd_classify(args: argparse.Namespace) -> None:
    """Classify a synthetic request and print the DetectionResult as JSON."""
    from .ai_detector import AIDetector, RequestSignals

    settings = load_settings()
    detector_settings = settings.detector
    if args.lenient:
        detector_settings = dataclasses.replace(detector_settings, strict_mode=False)
    detector = AIDetector(detector_settings)

    headers = _split_pairs(args.header, ":", "header")
    if args.user_agent is not None:
        headers["User-Agent"] = args.user_agent
    if args.accept is not None:
        headers["Accept"] = args.accept
    signals = RequestSignals.from_mapping(headers=headers, query=_split_pairs(args.query, "=", "query"))

    out = detector.classify(signals).to_dict()
    out["service"] = detector.service_of(signals)
    print(json.dumps(out, ensure_ascii=False, indent=2))


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the HTTP server, forwarding any extra args to it."""
    from .server import main

    main(argv=getattr(args, "_server_argv", []))


# ── Entry point ──────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GeoLens CLI", prog="geolens")
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_parse = subparsers.add_parser("parse", help="Fetch a URL and print its IR + GEO HTML as JSON")
    p_parse.add_argument("url", metavar="URL")
    p_parse.add_argument("-o", "--output", metavar="FILE", help="Write to FILE instead of stdout")
    p_parse.add_argument("--html", action="store_true", help="Output only the GEO HTML")

    p_render = subparsers.add_parser("render", help="Render a JSON IR file to GEO HTML")
    p_render.add_argument("ir_json", metavar="IR_JSON", help="Path to IR JSON, or - for stdin")
    p_render.add_argument("-o", "--output", metavar="FILE", help="Write to FILE instead of stdout")

    p_classify = subparsers.add_parser("classify", help="Classify a request as AI or human")
    p_classify.add_argument("--user-agent", "-A", metavar="UA")
    p_classify.add_argument("--accept", metavar="ACCEPT", help="Accept header value")
    p_classify.add_argument("--header", "-H", action="append", metavar="K:V", help="Extra header (repeatable)")
    p_classify.add_argument("--query", "-q", action="append", metavar="K=V", help="Query parameter (repeatable)")
    p_classify.add_argument("--lenient", action="store_true", help="Disable strict mode")

    subparsers.add_parser("serve", help="Start the HTTP server (extra args forwarded to server)")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args, remaining = parser.parse_known_args(argv)

    # Forward remaining args to server when using 'serve' command
    if args.command == "serve":
        args._server_argv = remaining
    elif remaining:
        parser.error(f"unrecognized arguments: {' '.join(remaining)}")

    commands = {
        "parse": cmd_parse,
        "render": cmd_render,
        "classify": cmd_classify,
        "serve": cmd_serve,
    }

    if args.command != "serve":
        from .logging_config import configure as configure_logging

        configure_logging(json_output=False, level="DEBUG" if args.verbose else "WARNING")

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        from .problem_details import from_exception

        problem = from_exception(e, instance=f"cli:{args.command}")
        print(problem.to_cli_text(), file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
