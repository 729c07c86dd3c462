"""asmlit configuration: column widths, oracle selection and tool paths."""
from __future__ import annotations
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from asmlit.tokens import TokenSet, token_set

# ── Defaults ───────────────────────────────────────────────────────────────────
PLACEHOLDER_WIDTH = 65    # comment column of a freshly generated layout
LINE_BUDGET       = 80    # widest literal text kept on one physical line
MAX_OPCODE_BYTES  = 15    # longest x86 instruction
ORACLE_TIMEOUT    = 30.0  # seconds per oracle invocation

ARCHES = ("amd64", "arm64")
X86_MODES = (16, 32, 64)

ENV_YASM = "ASMLIT_YASM"
ENV_GAS  = "ASMLIT_AS"


@dataclass(frozen=True)
class RewriteConfig:
    placeholder_width: int             = PLACEHOLDER_WIDTH
    line_budget:       int             = LINE_BUDGET
    max_opcode_bytes:  int             = MAX_OPCODE_BYTES
    arch:              str             = "amd64"
    bits:              int             = 64
    pack:              bool            = False
    timeout:           Optional[float] = ORACLE_TIMEOUT
    yasm:              str             = "yasm"
    gas:               str             = "as"

    def __post_init__(self) -> None:
        if self.arch not in ARCHES:
            raise ValueError(f"Unknown arch {self.arch!r} (expected one of {ARCHES})")
        if self.bits not in X86_MODES:
            raise ValueError(f"Unsupported x86 mode: {self.bits}")
        if self.placeholder_width < 1:
            raise ValueError(f"placeholder_width must be positive: {self.placeholder_width}")
        if self.line_budget < 1:
            raise ValueError(f"line_budget must be positive: {self.line_budget}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout}")

    @property
    def tokens(self) -> TokenSet:
        """Pseudo-op names of the target assembler."""
        return token_set(self.arch)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "RewriteConfig":
        """Defaults, then ASMLIT_* environment variables, then ``overrides``."""
        env = os.environ if environ is None else environ
        cfg = cls()
        if env.get(ENV_YASM):
            cfg = replace(cfg, yasm=env[ENV_YASM])
        if env.get(ENV_GAS):
            cfg = replace(cfg, gas=env[ENV_GAS])
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(cfg, **overrides)
