#!/usr/bin/env python3
"""
asmlit CLI: fill assembler placeholders with literal opcode bytes.

  asmlit kernel_amd64.s              rewrite the file in place
  asmlit kernel_amd64.s -o out.s     write the result elsewhere
  asmlit < kernel_amd64.s            filter stdin to stdout
  asmlit --check kernel_amd64.s      exit 1 if the file is out of date
"""

import argparse
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path

from asmlit import __version__
from asmlit.config import ARCHES, X86_MODES, RewriteConfig
from asmlit.errors import RewriteError
from asmlit.oracle import EncoderAdapter
from asmlit.rewriter import Rewriter

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def read_lines(path: str | None) -> list[str]:
    """Lines of ``path`` (or stdin) without their line terminators."""
    if path is None:
        return sys.stdin.read().splitlines()
    with open(path, encoding="utf-8") as f:
        return f.read().splitlines()


def write_lines(lines: list[str], path: str | None) -> None:
    """Write ``lines`` to ``path`` by atomic replace, or to stdout."""
    text = "".join(line + "\n" for line in lines)
    if path is None:
        sys.stdout.write(text)
        return

    target = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp",
                               dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        if target.exists():
            shutil.copymode(target, tmp)
        os.replace(tmp, target)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asmlit",
        description=(
            "asmlit: replace instructions the target assembler cannot encode\n"
            "with QUAD/LONG/WORD/BYTE literals computed by an external assembler.\n\n"
            "  placeholder:  <blank literal column>// VPADDQ  XMM0,XMM1,XMM8\n"
            "  result:       LONG $0xd471c1c4; BYTE $0xc0 // VPADDQ  XMM0,XMM1,XMM8\n"
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"asmlit {__version__}")
    parser.add_argument("input", nargs="?", help="assembly file (default: stdin → stdout)")
    parser.add_argument("-o", "--output", help="write here instead of rewriting INPUT in place")
    parser.add_argument("--arch", choices=ARCHES, help="instruction set (default: amd64)")
    parser.add_argument("--bits", type=int, choices=X86_MODES, help="x86 mode (default: 64)")
    parser.add_argument("--pack", action="store_true",
                        help="merge the bytes of consecutive instructions into shared tokens")
    parser.add_argument("--check", action="store_true",
                        help="write nothing; exit 1 if the input would change")
    parser.add_argument("--comment-column", type=int, metavar="N", dest="placeholder_width",
                        help="comment column for fresh layouts (default: 65)")
    parser.add_argument("--line-budget", type=int, metavar="N",
                        help="widest literal kept on one line (default: 80)")
    parser.add_argument("--timeout", type=float, metavar="SECONDS",
                        help="per-invocation oracle timeout (default: 30)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="-v for progress, -vv for oracle command lines")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        config = RewriteConfig.from_env(
            arch=args.arch,
            bits=args.bits,
            pack=args.pack,
            placeholder_width=args.placeholder_width,
            line_budget=args.line_budget,
            timeout=args.timeout,
        )
    except ValueError as e:
        parser.error(str(e))

    source = args.input or "<stdin>"
    if args.input:
        log.info("processing file %s", args.input)
    try:
        lines = read_lines(args.input)
    except (OSError, UnicodeDecodeError) as e:
        print(f"❌ Cannot read {source}: {e}", file=sys.stderr)
        return 1

    try:
        with EncoderAdapter.from_config(config) as adapter:
            rewriter = Rewriter(adapter, config)
            result = rewriter.rewrite(lines)
    except RewriteError as e:
        print(f"❌ {source}: {e}", file=sys.stderr)
        return 1

    stats = rewriter.stats
    log.info("%s: %d encoded, %d verified, %d corrected, %d group(s)",
             source, stats.encoded, stats.verified, stats.corrected, stats.groups)

    if args.check:
        if result != lines:
            print(f"❌ {source} is out of date", file=sys.stderr)
            return 1
        return 0

    target = args.output or args.input
    try:
        write_lines(result, target)
    except OSError as e:
        print(f"❌ Cannot write {target}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
