import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List

import structlog

from mdsync import __version__
from mdsync.config import SyncSettings
from mdsync.diff import generate_markdown_edits
from mdsync.document import Document
from mdsync.errors import MdSyncError
from mdsync.hosts import DocumentHost
from mdsync.markup import preview_markdown_edits, splice_edits
from mdsync.models import MarkdownEdit
from mdsync.parser import parse_markdown
from mdsync.serialize import serialize
from mdsync.service import StaticEditService, parse_response
from mdsync.sync.mapper import PositionMapper, build_selection
from mdsync.sync.orchestrator import EditSession
from mdsync.sync.planner import plan_node_edits
from mdsync.sync.stream import StreamProgress


def _configure_logging(verbose: bool):
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _read_text(path: Path) -> str:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _write_or_print(text: str, output: Path = None):
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"✅ Saved to {output}", file=sys.stderr)
    else:
        print(text)


def _load_edits_from_json(path: Path) -> List[MarkdownEdit]:
    """Accepts a bare list of edits or a full {"edits": [...]} response."""
    try:
        data = json.loads(_read_text(path))
        if isinstance(data, list):
            data = {"edits": data}
        return parse_response(data).edits
    except (json.JSONDecodeError, MdSyncError) as e:
        print(f"Error parsing JSON edits: {e}", file=sys.stderr)
        sys.exit(1)


def handle_serialize(args):
    data = json.loads(_read_text(args.input))
    _write_or_print(serialize(Document.from_dict(data)), args.output)


def handle_parse(args):
    doc = parse_markdown(_read_text(args.input))
    _write_or_print(json.dumps(doc.to_dict(), indent=2), args.output)


def handle_locate(args):
    markdown = _read_text(args.input)
    mapper = PositionMapper(parse_markdown(markdown))
    position = mapper.locate(markdown, args.offset)
    if position is None:
        print(f"Offset {args.offset} is outside the document (0..{len(markdown)})", file=sys.stderr)
        sys.exit(1)
    node = mapper.document.get_node_by_id(position.node_id)
    print(json.dumps({"nodeId": position.node_id, "localOffset": position.local_offset, "text": node.text}))


def handle_find(args):
    markdown = _read_text(args.input)
    selection = build_selection(markdown, args.text, hint=args.hint)
    if selection is None:
        print(f"Text not found: '{args.text}'", file=sys.stderr)
        sys.exit(1)
    print(selection.model_dump_json(by_alias=True, indent=2))


def handle_apply(args):
    markdown = _read_text(args.input)
    edits = _load_edits_from_json(args.edits)
    print(f"Applying {len(edits)} edits...", file=sys.stderr)

    if args.preview:
        _write_or_print(preview_markdown_edits(markdown, edits, include_index=args.index), args.output)
        return

    result, applied, skipped = splice_edits(markdown, edits)
    _write_or_print(result, args.output)
    print(f"Stats: {applied} applied, {skipped} skipped.", file=sys.stderr)
    if skipped > 0:
        sys.exit(1)


def handle_plan(args):
    markdown = _read_text(args.input)
    edits = _load_edits_from_json(args.edits)
    try:
        ops = plan_node_edits(parse_markdown(markdown), markdown, edits)
    except MdSyncError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps([op.model_dump(mode="json", by_alias=True, exclude_none=True) for op in ops], indent=2))


def handle_diff(args):
    original = _read_text(args.original)
    modified = _read_text(args.modified)
    edits = generate_markdown_edits(original, modified)

    if args.json:
        print(json.dumps([e.model_dump(by_alias=True) for e in edits], indent=2))
        return

    print(f"Found {len(edits)} changes:", file=sys.stderr)
    for e in edits:
        target = original[e.start_offset : e.end_offset]
        if not e.new_content:
            print(f"[-] {target}")
        elif not target:
            print(f"[+] {e.new_content}")
        else:
            print(f"[~] '{target}' -> '{e.new_content}'")


def handle_stream(args):
    """Replays an edit file through a full session, streaming into an in-memory tree."""
    host = DocumentHost.from_markdown(_read_text(args.input))
    service = StaticEditService(_load_edits_from_json(args.edits))
    settings = SyncSettings(chunk_interval=args.interval, highlight_dwell=0, edit_pause=0)

    last_node = None

    def show(progress: StreamProgress):
        nonlocal last_node
        if progress.node_id != last_node:
            print(f"✏️  node {progress.node_id}", file=sys.stderr)
            last_node = progress.node_id
        print(f"   {progress.progress:5.1f}% {progress.revealed!r}", file=sys.stderr)

    session = EditSession(host=host, service=service, settings=settings, on_progress=show if args.watch else None)
    outcome = asyncio.run(session.execute_edit(args.instruction))

    print(f"Outcome: {outcome.status.value} ({outcome.applied} applied) {outcome.message}", file=sys.stderr)
    if not outcome.ok:
        sys.exit(1)
    _write_or_print(outcome.markdown, args.output)


def main():
    parser = argparse.ArgumentParser(prog="mdsync", description="mdsync: Markdown <-> document tree edit sync")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_serialize = subparsers.add_parser("serialize", help="Serialize a JSON document tree to Markdown")
    p_serialize.add_argument("input", type=Path, help="Document JSON file")
    p_serialize.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_serialize.set_defaults(func=handle_serialize)

    p_parse = subparsers.add_parser("parse", help="Parse Markdown into a JSON document tree")
    p_parse.add_argument("input", type=Path, help="Markdown file")
    p_parse.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_parse.set_defaults(func=handle_parse)

    p_locate = subparsers.add_parser("locate", help="Resolve a Markdown offset to a node")
    p_locate.add_argument("input", type=Path, help="Markdown file")
    p_locate.add_argument("offset", type=int, help="Character offset")
    p_locate.set_defaults(func=handle_locate)

    p_find = subparsers.add_parser("find", help="Find selected text and report its offsets")
    p_find.add_argument("input", type=Path, help="Markdown file")
    p_find.add_argument("text", type=str, help="Selected text")
    p_find.add_argument("--hint", type=int, default=None, help="Approximate offset to disambiguate repeats")
    p_find.set_defaults(func=handle_find)

    p_apply = subparsers.add_parser("apply", help="Apply offset edits to a Markdown file")
    p_apply.add_argument("input", type=Path, help="Markdown file")
    p_apply.add_argument("edits", type=Path, help="JSON edits file")
    p_apply.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_apply.add_argument("--preview", action="store_true", help="Render edits as CriticMarkup instead")
    p_apply.add_argument(
        "-i",
        "--index",
        action="store_true",
        help="Include edit indices [Edit:N] in the preview",
    )
    p_apply.set_defaults(func=handle_apply)

    p_plan = subparsers.add_parser("plan", help="Show the node operations planned for offset edits")
    p_plan.add_argument("input", type=Path, help="Markdown file")
    p_plan.add_argument("edits", type=Path, help="JSON edits file")
    p_plan.set_defaults(func=handle_plan)

    p_diff = subparsers.add_parser("diff", help="Compare two Markdown files as offset edits")
    p_diff.add_argument("original", type=Path, help="Original Markdown")
    p_diff.add_argument("modified", type=Path, help="Modified Markdown")
    p_diff.add_argument("--json", action="store_true", help="Output raw JSON edits")
    p_diff.set_defaults(func=handle_diff)

    p_stream = subparsers.add_parser("stream", help="Run edits through a streaming edit session")
    p_stream.add_argument("input", type=Path, help="Markdown file")
    p_stream.add_argument("edits", type=Path, help="JSON edits file")
    p_stream.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_stream.add_argument("--instruction", default="Apply edits", help="Instruction recorded with the request")
    p_stream.add_argument("--interval", type=float, default=0.02, help="Seconds between chunks")
    p_stream.add_argument("--watch", action="store_true", help="Print each streamed chunk to stderr")
    p_stream.set_defaults(func=handle_stream)

    args = parser.parse_args()
    _configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
