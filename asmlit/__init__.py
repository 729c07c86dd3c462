"""
asmlit
======
Rewrites assembler placeholders into literal QUAD/LONG/WORD/BYTE opcode bytes
obtained from an external assembler.

Exports:
    Rewriter           engine: classify → encode → format / pack
    RewriteConfig      column widths, oracle selection, tool paths
    EncoderAdapter     ordered trial list of oracle backends
    Classifier         tags lines (Passthrough / EncodeRequest / ...)
    Formatter          bytes → column-aligned literal lines
    Packer             shared-token layout for runs of instructions
    rewrite_lines      one-shot helper
"""

__version__ = "1.0.0"

from .config    import RewriteConfig
from .classify  import Classifier
from .formatter import Formatter
from .packer    import Packer
from .oracle    import EncoderAdapter
from .rewriter  import Rewriter, rewrite_lines

__all__ = [
    "Classifier",
    "EncoderAdapter",
    "Formatter",
    "Packer",
    "RewriteConfig",
    "Rewriter",
    "rewrite_lines",
]
