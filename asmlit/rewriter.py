"""Rewriting engine.

Walks the classified lines once, collecting consecutive encode targets into a
group and flushing the group whenever a passthrough line (or the end of
input) is reached:

    IDLE ──encode target──▶ ACCUMULATING ──passthrough / EOF──▶ FLUSHING ──▶ IDLE

A flush submits the whole group to the oracle in one call, then formats each
instruction on its own (or packs the group when packing is enabled).
Overflow lines of previously encoded instructions are dropped and regenerated,
which makes a second run over the output a no-op.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Sequence, Tuple

from asmlit.classify import (
    AlreadyEncoded, Classifier, ContinuationOfPrevious, EncodeRequest,
    Instruction, Passthrough,
)
from asmlit.config import RewriteConfig
from asmlit.errors import EncodeError
from asmlit.formatter import Formatter
from asmlit.oracle import EncoderAdapter
from asmlit.packer import Packer
from asmlit.tokens import Token, token_bytes

log = logging.getLogger(__name__)


class State(Enum):
    IDLE         = auto()
    ACCUMULATING = auto()
    FLUSHING     = auto()


@dataclass
class RewriteStats:
    lines_in:      int = 0
    lines_out:     int = 0
    encoded:       int = 0   # fresh placeholders filled in
    verified:      int = 0   # existing literals that were already right
    corrected:     int = 0   # existing literals with wrong bytes
    continuations: int = 0   # overflow lines dropped and regenerated
    groups:        int = 0


class Rewriter:
    def __init__(self, adapter: EncoderAdapter, config: RewriteConfig | None = None):
        self.config     = config or RewriteConfig()
        self.adapter    = adapter
        self.classifier = Classifier(self.config)
        self.formatter  = Formatter(self.config)
        self.packer     = Packer(self.config)
        self.state      = State.IDLE
        self.stats      = RewriteStats()
        self._group:    List[EncodeRequest | AlreadyEncoded] = []
        self._existing: List[Tuple[Token, ...]] = []   # literal already on the page
        self._out:      List[str] = []

    def rewrite(self, lines: Sequence[str]) -> List[str]:
        """Return the rewritten lines.  Raises RewriteError and leaves nothing half-done."""
        self.state  = State.IDLE
        self.stats  = RewriteStats(lines_in=len(lines))
        self._group    = []
        self._existing = []
        self._out      = []

        for entry in self.classifier.classify_lines(lines):
            if isinstance(entry, (EncodeRequest, AlreadyEncoded)):
                self._group.append(entry)
                self._existing.append(getattr(entry, "tokens", ()))
                self.state = State.ACCUMULATING
            elif isinstance(entry, ContinuationOfPrevious):
                self.stats.continuations += 1
                self._existing[-1] += entry.tokens
            elif isinstance(entry, Passthrough):
                self._flush()
                self._out.append(entry.text)
            else:
                raise TypeError(f"Unknown line class: {entry!r}")
        self._flush()

        out, self._out = self._out, []
        self.stats.lines_out = len(out)
        return out

    # ── group handling ─────────────────────────────────────────────────────── #

    def _flush(self) -> None:
        if self.state is not State.ACCUMULATING:
            return
        self.state = State.FLUSHING
        group, self._group = self._group, []
        existing, self._existing = self._existing, []
        self.stats.groups += 1

        instructions = [entry.instruction for entry in group]
        log.debug("flushing %d instruction(s) from line %d",
                  len(instructions), instructions[0].line_number)
        encodings = self.adapter.encode(instructions)
        self._check_layout(instructions, encodings)

        for entry, tokens, enc in zip(group, existing, encodings):
            self._tally(entry, tokens, enc)

        if self.config.pack:
            self._emit_packed(instructions, encodings)
        else:
            for instr, enc in zip(instructions, encodings):
                self._out.extend(self.formatter.format(enc, instr).lines())
        self.state = State.IDLE

    def _check_layout(self, instructions: List[Instruction], encodings: List[bytes]) -> None:
        table = self.config.tokens
        for instr, enc in zip(instructions, encodings):
            if not enc or not table.cuttable(len(enc)):
                raise EncodeError(instr.line_number, instr.text,
                                  f"{len(enc)}-byte encoding has no {table.arch} literal form")

    def _emit_packed(self, instructions: List[Instruction], encodings: List[bytes]) -> None:
        # macro-body lines keep their own layout and split the packed runs
        run: List[int] = []
        for idx, instr in enumerate(instructions):
            if instr.in_define:
                self._emit_run(run, instructions, encodings)
                run = []
                self._out.extend(self.formatter.format(encodings[idx], instr).lines())
            else:
                run.append(idx)
        self._emit_run(run, instructions, encodings)

    def _emit_run(self, run: List[int], instructions: List[Instruction],
                  encodings: List[bytes]) -> None:
        if run:
            self._out.extend(self.packer.pack([instructions[i] for i in run],
                                              [encodings[i] for i in run]))

    def _tally(self, entry: EncodeRequest | AlreadyEncoded,
               tokens: Tuple[Token, ...], enc: bytes) -> None:
        if isinstance(entry, EncodeRequest):
            self.stats.encoded += 1
            return
        if self.config.pack:
            # packed literals do not map one-to-one onto instructions
            return
        if token_bytes(tokens) == enc:
            self.stats.verified += 1
        else:
            self.stats.corrected += 1
            log.info("line %d: corrected literal for '%s'",
                     entry.instruction.line_number, entry.instruction.text)


def rewrite_lines(lines: Sequence[str], adapter: Optional[EncoderAdapter] = None,
                  config: RewriteConfig | None = None) -> List[str]:
    """One-shot helper: rewrite ``lines`` with a throwaway engine."""
    config = config or RewriteConfig()
    if adapter is not None:
        return Rewriter(adapter, config).rewrite(lines)
    with EncoderAdapter.from_config(config) as owned:
        return Rewriter(owned, config).rewrite(lines)
