"""Multi-instruction packer.

A run of consecutive instructions is encoded as one byte stream and re-cut
with the greedy token widths, ignoring instruction boundaries:

    5 + 5 + 5 + 5 + 5 + 5 + 4 = 34 bytes  →  QUAD QUAD QUAD QUAD WORD

Each instruction keeps its comment on exactly one output line.  When its
first byte opens a token, a new token line starts there and carries the
comment.  Otherwise the comment goes on a blank-literal line placed after the
token line holding that byte.  Blank-literal lines use the placeholder width,
so a later run reads them back as placeholders of the same group.
"""
from __future__ import annotations
import logging
from typing import Dict, List, Sequence

from asmlit.classify import COMMENT_DELIM, Instruction
from asmlit.config import RewriteConfig
from asmlit.formatter import indent_with_tab, pad_literal
from asmlit.tokens import Token, token_offsets, tokenize

log = logging.getLogger(__name__)


def instruction_offsets(encodings: Sequence[bytes]) -> List[int]:
    offsets, pos = [], 0
    for enc in encodings:
        offsets.append(pos)
        pos += len(enc)
    return offsets


class Packer:
    def __init__(self, config: RewriteConfig | None = None):
        self.config = config or RewriteConfig()

    def pack(self, instructions: Sequence[Instruction],
             encodings: Sequence[bytes]) -> List[str]:
        if len(instructions) != len(encodings):
            raise ValueError(
                f"{len(instructions)} instructions but {len(encodings)} encodings"
            )
        if not instructions:
            return []
        for instr, enc in zip(instructions, encodings):
            if not enc:
                raise ValueError(f"line {instr.line_number}: empty encoding")

        tokens: List[Token] = tokenize(b"".join(encodings), self.config.tokens)
        token_at: Dict[int, int] = {off: k for k, off in enumerate(token_offsets(tokens))}
        starts = instruction_offsets(encodings)

        # token index where each token line begins, in stream order
        breaks = [token_at[s] for s in starts if s in token_at]
        ends   = dict(zip(breaks, breaks[1:] + [len(tokens)]))

        column = self.config.placeholder_width
        lines: List[str] = []
        for instr, start in zip(instructions, starts):
            if start in token_at:
                k = token_at[start]
                text, _ = pad_literal(tokens[k:ends[k]], column)
            else:
                text = " " * column
            line = text + COMMENT_DELIM + instr.comment
            if instr.tab_indent:
                line = indent_with_tab(line)
            lines.append(line)

        log.debug("packed %d instruction(s), %d byte(s) into %d token line(s)",
                  len(instructions), sum(map(len, encodings)), len(breaks))
        return lines
