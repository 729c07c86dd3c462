"""Literal formatter: encoding bytes → column-aligned literal lines.

Layout of one rewritten instruction:

    <literal><padding>//<comment>                     primary line
    <literal>                                         overflow line(s)

Inside a macro body every physical line carries ``\\`` at one shared column
two places left of the comment:

    <literal><padding>\\ //<comment>
    <literal><padding>\\
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from asmlit.classify import COMMENT_DELIM, LINE_CONT, Instruction
from asmlit.config import RewriteConfig
from asmlit.tokens import INDENT, Token, render_literal, tokenize

DEFINE_MARKER = LINE_CONT + " "


@dataclass(frozen=True)
class RewrittenLines:
    primary:       str
    continuations: Tuple[str, ...] = ()

    def lines(self) -> List[str]:
        return [self.primary, *self.continuations]


def pad_literal(tokens: Sequence[Token], comment_column: int,
                in_define: bool = False) -> Tuple[str, bool]:
    """Render ``tokens`` and pad so the comment starts at ``comment_column``.

    Returns ``(text, overflowed)``; ``text`` runs up to the comment delimiter.
    A literal that leaves no blank column before the comment (or before the
    macro marker) gets exactly one separating space and ``overflowed`` is True.
    """
    literal = render_literal(tokens)
    stop = comment_column - len(DEFINE_MARKER) if in_define else comment_column
    if len(literal) < stop:
        text, overflowed = literal.ljust(stop), False
    else:
        text, overflowed = literal + " ", True
    if in_define:
        text += DEFINE_MARKER
    return text, overflowed


def split_tokens(tokens: Sequence[Token], budget: int) -> List[List[Token]]:
    """Break ``tokens`` into runs whose literal text fits ``budget`` columns.

    Every run holds at least one token, so a single oversized token still
    gets a line of its own.
    """
    if len(tokens) <= 1 or len(render_literal(tokens)) <= budget:
        return [list(tokens)]
    head = 1
    while head < len(tokens) and len(render_literal(tokens[:head + 1])) <= budget:
        head += 1
    return [list(tokens[:head])] + split_tokens(tokens[head:], budget)


def indent_with_tab(line: str) -> str:
    return "\t" + line[len(INDENT):] if line.startswith(INDENT) else line


class Formatter:
    def __init__(self, config: RewriteConfig | None = None):
        self.config = config or RewriteConfig()

    def format(self, encoding: bytes, instruction: Instruction) -> RewrittenLines:
        if not encoding:
            raise ValueError(f"line {instruction.line_number}: empty encoding")
        chunks   = split_tokens(tokenize(encoding, self.config.tokens), self.config.line_budget)
        literals = [render_literal(c) for c in chunks]
        column   = instruction.comment_column

        if instruction.in_define:
            # one marker column for the whole macro body slice
            marker = max(column - len(DEFINE_MARKER), max(len(l) for l in literals) + 1)
            text, _ = pad_literal(chunks[0], marker + len(DEFINE_MARKER), in_define=True)
            rest = [l.ljust(marker) + LINE_CONT for l in literals[1:]]
        else:
            text, _ = pad_literal(chunks[0], column)
            rest = literals[1:]

        lines = [text + COMMENT_DELIM + instruction.comment, *rest]
        if instruction.tab_indent:
            lines = [indent_with_tab(l) for l in lines]
        return RewrittenLines(lines[0], tuple(lines[1:]))
