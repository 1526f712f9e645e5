"""
python -m response_engine — parse a saved model response and print the result.

Usage
-----
# Parse a response file
python -m response_engine response.txt

# Read stdin, resolve creates/updates and patches against a project dir
cat response.txt | python -m response_engine --existing-dir ./my-app

# Replay the response as a stream of 64-character chunks
python -m response_engine response.txt --chunk-size 64

Exit status: 0 on success, 1 when no file operations were found,
2 on usage errors or a response over MAX_RESPONSE_SIZE.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from response_engine import config
from response_engine.contracts import ParseResult
from response_engine.engine import ResponseStream, parse_response
from response_engine.errors import NoOperationsFound, ResponseTooLarge
from response_engine.paths import is_ignored_path

logger = logging.getLogger(__name__)


def load_existing_files(root: Path, ignored: list[str]) -> dict[str, str]:
    """Read every UTF-8 text file under *root*, keyed by relative POSIX path."""
    files: dict[str, str] = {}
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root).as_posix()
        if is_ignored_path(rel, ignored):
            continue
        try:
            files[rel] = path.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError):
            logger.debug("[cli] skipping unreadable file %s", rel)
    return files


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="response-engine",
        description="Parse a model code-generation response into file operations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("file", nargs="?", help="Response file (default: stdin).")
    parser.add_argument(
        "--existing-dir",
        type=Path,
        help="Project directory holding the current files.",
    )
    parser.add_argument(
        "--format",
        choices=["json", "marker"],
        help="Envelope hint used to break detection ties.",
    )
    parser.add_argument(
        "--no-diff-mode",
        action="store_true",
        help="Ignore diffs in JSON envelopes; treat files as full content.",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=0,
        help="Feed the response in chunks of N characters (streaming replay).",
    )
    parser.add_argument("--no-repair", action="store_true", help="Disable all repair passes.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=config.settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.chunk_size < 0:
        parser.error("--chunk-size must be positive")
    if args.existing_dir is not None and not args.existing_dir.is_dir():
        parser.error(f"--existing-dir is not a directory: {args.existing_dir}")

    overrides: dict[str, object] = {}
    if args.format:
        overrides["RESPONSE_FORMAT"] = args.format
    if args.no_diff_mode:
        overrides["DIFF_MODE_ENABLED"] = False
    if args.no_repair:
        overrides.update(
            CLEAN_CONTENT=False,
            REPAIR_BRACKETS=False,
            REPAIR_JSX=False,
            REPAIR_IMPORTS=False,
            REPAIR_RETURNS=False,
        )
    settings = config.settings.model_copy(update=overrides)

    if args.file:
        try:
            text = Path(args.file).read_text(encoding="utf-8")
        except OSError as exc:
            parser.error(f"cannot read {args.file}: {exc}")
    else:
        text = sys.stdin.read()

    existing = (
        load_existing_files(args.existing_dir, settings.IGNORED_PATHS)
        if args.existing_dir is not None
        else None
    )

    try:
        if args.chunk_size:
            stream = ResponseStream(existing_files=existing, settings=settings)
            for start in range(0, len(text), args.chunk_size):
                stream.feed(text[start:start + args.chunk_size])
            result: ParseResult = stream.done()
        else:
            result = parse_response(text, existing_files=existing, settings=settings)
    except NoOperationsFound as exc:
        print(f"[response-engine] {exc}", file=sys.stderr)
        if exc.result is not None:
            print(exc.result.model_dump_json(indent=2, exclude={"raw_text"}))
        return 1
    except ResponseTooLarge as exc:
        print(f"[response-engine] {exc}", file=sys.stderr)
        return 2

    print(result.model_dump_json(indent=2, exclude={"raw_text"}))
    return 0 if result.operations else 1


if __name__ == "__main__":
    sys.exit(main())
