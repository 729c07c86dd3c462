"""Line classifier and continuation filter.

Every source line is tagged with exactly one of

    Passthrough             : copied to the output untouched
    EncodeRequest           : blank literal column awaiting bytes
    AlreadyEncoded          : literal column already holds tokens (re-verified)
    ContinuationOfPrevious  : token-only overflow line of the encoded line above

A candidate line splits into exactly two fields at ``//``: the literal column
and the instruction (kept verbatim as the trailing comment).  A literal
column ending in ``\\`` sits inside a multi-line macro body.
"""
from __future__ import annotations
import functools
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from asmlit.config import LINE_BUDGET, RewriteConfig
from asmlit.errors import ClassificationAmbiguous
from asmlit.tokens import (
    AMD64, INDENT, SEPARATOR, LOOKALIKE_RE, Token, TokenSet,
    literal_length, parse_literal, render_literal,
)

log = logging.getLogger(__name__)

COMMENT_DELIM = "//"
LINE_CONT     = "\\"


# ── Line model ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Instruction:
    text:           str     # what the oracle sees
    comment:        str     # everything after "//", verbatim
    line_number:    int     # 1-based
    comment_column: int
    in_define:      bool = False
    tab_indent:     bool = False


@dataclass(frozen=True)
class Passthrough:
    line_number: int
    text:        str


@dataclass(frozen=True)
class EncodeRequest:
    instruction: Instruction


@dataclass(frozen=True)
class AlreadyEncoded:
    instruction: Instruction
    tokens:      Tuple[Token, ...]


@dataclass(frozen=True)
class ContinuationOfPrevious:
    line_number: int
    text:        str
    tokens:      Tuple[Token, ...]


LineClass = Union[Passthrough, EncodeRequest, AlreadyEncoded, ContinuationOfPrevious]


# ── Field helpers ──────────────────────────────────────────────────────────────

def instruction_text(comment: str) -> str:
    """Strip trailing ``/* ... */`` and ``; ...`` remarks from the instruction."""
    text = comment.split("/*", 1)[0]
    text = text.split(";", 1)[0]
    return text.strip()


def expand_indent(text: str) -> Tuple[str, bool]:
    """Replace a leading tab by the literal indent; report whether there was one."""
    if text.startswith("\t"):
        return INDENT + text[1:], True
    return text, False


@dataclass(frozen=True)
class _Fields:
    prefix:     str     # literal column, tabs expanded
    comment:    str
    body:       str     # prefix without trailing blanks and macro marker
    in_define:  bool
    tab_indent: bool


def _split_fields(text: str) -> Optional[_Fields]:
    parts = text.split(COMMENT_DELIM)
    if len(parts) != 2:
        return None
    prefix, comment = parts
    tab_indent = prefix.startswith("\t")
    prefix = prefix.replace("\t", INDENT)
    body = prefix.rstrip()
    in_define = body.endswith(LINE_CONT)
    if in_define:
        body = body[:-1].rstrip()
    return _Fields(prefix, comment, body, in_define, tab_indent)


# ── Continuation filter ────────────────────────────────────────────────────────

@functools.lru_cache(maxsize=None)
def _continuation_re(table: TokenSet) -> "re.Pattern[str]":
    lit = rf"{INDENT}{table.pattern}(?:{re.escape(SEPARATOR)}{table.pattern})*"
    return re.compile(rf"^({lit})(?: +{re.escape(LINE_CONT)})?$")


def continuation_tokens(text: str, table: TokenSet = AMD64) -> Optional[Tuple[Token, ...]]:
    """Tokens of a comment-free token-only line, or None if ``text`` is not one."""
    if COMMENT_DELIM in text:
        return None
    work, _ = expand_indent(text.rstrip())
    mo = _continuation_re(table).match(work)
    if mo is None:
        return None
    return parse_literal(mo.group(1), table)


def _primary_tokens(text: str, table: TokenSet) -> Optional[Tuple[Token, ...]]:
    fields = _split_fields(text)
    if fields is None:
        return None
    try:
        return parse_literal(fields.body, table)
    except ValueError:
        return None


def find_continuations(lines: Sequence[str], line_budget: int = LINE_BUDGET,
                       table: TokenSet = AMD64) -> Dict[int, Tuple[Token, ...]]:
    """Pre-pass: map line index to tokens for each overflow line.

    A token-only line counts as overflow only directly below an encoded line
    (or another overflow line) whose literal could not have taken its first
    token within ``line_budget``.  Anything else there that looks like tokens
    is logged and left for the classifier to pass through.
    """
    found: Dict[int, Tuple[Token, ...]] = {}
    above: Optional[Tuple[Token, ...]] = None
    for idx, text in enumerate(lines):
        if above is not None:
            tokens = continuation_tokens(text, table)
            if tokens is not None:
                if len(render_literal(above + tokens[:1])) > line_budget:
                    found[idx] = tokens
                    above = tokens
                    continue
                log.warning("line %d: token line fits on the encoded line above, "
                            "kept as written: %r", idx + 1, text)
            else:
                work, _ = expand_indent(text)
                if COMMENT_DELIM not in text and LOOKALIKE_RE.match(work):
                    log.warning("line %d: malformed continuation line left unchanged: %r",
                                idx + 1, text)
        above = _primary_tokens(text, table)
    return found


# ── Classifier ─────────────────────────────────────────────────────────────────

class Classifier:
    def __init__(self, config: RewriteConfig | None = None):
        self.config = config or RewriteConfig()
        self.tokens = self.config.tokens
        natural = [literal_length(n, self.tokens)
                   for n in range(1, self.config.max_opcode_bytes + 1)
                   if self.tokens.cuttable(n)]
        pw = self.config.placeholder_width
        # blank prefixes are only trusted at widths the formatter itself produces
        self.plain_widths  = frozenset([pw] + [n + 1 for n in natural])
        self.define_widths = frozenset([pw] + [n + 3 for n in natural])

    def classify(self, line_number: int, text: str) -> LineClass:
        fields = _split_fields(text)
        if fields is None:
            return Passthrough(line_number, text)
        instr_text = instruction_text(fields.comment)
        if not instr_text:
            return Passthrough(line_number, text)

        instruction = Instruction(
            text=instr_text,
            comment=fields.comment,
            line_number=line_number,
            comment_column=len(fields.prefix),
            in_define=fields.in_define,
            tab_indent=fields.tab_indent,
        )

        if not fields.body.strip():
            widths = self.define_widths if fields.in_define else self.plain_widths
            if len(fields.prefix) not in widths:
                return Passthrough(line_number, text)
            return EncodeRequest(instruction)

        try:
            tokens = self._literal_tokens(line_number, fields.body)
        except ClassificationAmbiguous as e:
            log.warning("%s; left unchanged: %r", e, text)
            return Passthrough(line_number, text)
        if tokens is None:
            return Passthrough(line_number, text)
        return AlreadyEncoded(instruction, tokens)

    def _literal_tokens(self, line_number: int, body: str) -> Optional[Tuple[Token, ...]]:
        if not LOOKALIKE_RE.match(body):
            return None
        try:
            return parse_literal(body, self.tokens)
        except ValueError as e:
            raise ClassificationAmbiguous(line_number, body, str(e)) from e

    def classify_lines(self, lines: Sequence[str]) -> List[LineClass]:
        continuations = find_continuations(lines, self.config.line_budget, self.tokens)
        result: List[LineClass] = []
        for idx, text in enumerate(lines):
            prev = result[-1] if result else None
            if idx in continuations and isinstance(prev, (AlreadyEncoded, ContinuationOfPrevious)):
                result.append(ContinuationOfPrevious(idx + 1, text, continuations[idx]))
            else:
                result.append(self.classify(idx + 1, text))
        return result
