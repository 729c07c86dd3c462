"""Literal token tables and grammar.

A token is one fixed-width pseudo-op carrying a contiguous slice of an
encoding.  Hex digits are printed most-significant first, so the slice is
stored little-endian inside the token:

    bytes c4 c1 71 d4 c0  →  LONG $0xd471c1c4; BYTE $0xc0      (amd64)
    bytes 20 48 28 4e     →  WORD $0x4e284820                  (arm64)

The pseudo-op names depend on the target assembler: the amd64 one spells a
32-bit value LONG, the arm64 one spells it WORD.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

INDENT    = "    "     # literal column starts after four blanks
SEPARATOR = "; "


# ── Token tables ───────────────────────────────────────────────────────────────

class TokenSet:
    """Pseudo-op name for every token width of one target assembler."""

    def __init__(self, arch: str, names: Mapping[int, str]):
        self.arch   = arch
        self.names: Dict[int, str] = dict(sorted(names.items(), reverse=True))
        self.widths: Dict[str, int] = {n: w for w, n in self.names.items()}

        alternatives = "|".join(rf"{n} \$0x[0-9a-f]{{{2 * w}}}" for w, n in self.names.items())
        self.pattern    = rf"(?:{alternatives})"
        self.token_re   = re.compile(rf"({'|'.join(self.widths)}) \$0x([0-9a-f]+)")
        self.literal_re = re.compile(
            rf"^{INDENT}{self.pattern}(?:{re.escape(SEPARATOR)}{self.pattern})*$"
        )

    def __repr__(self) -> str:
        return f"TokenSet({self.arch!r})"

    def cuttable(self, length: int) -> bool:
        """True if ``length`` bytes split exactly into this set's widths."""
        try:
            split_widths(length, self)
        except ValueError:
            return False
        return True


AMD64 = TokenSet("amd64", {8: "QUAD", 4: "LONG", 2: "WORD", 1: "BYTE"})
ARM64 = TokenSet("arm64", {8: "DWORD", 4: "WORD"})

TOKEN_SETS: Dict[str, TokenSet] = {ts.arch: ts for ts in (AMD64, ARM64)}

# anything that merely looks like the start of a literal, in any table
LOOKALIKE_RE = re.compile(
    r"^\s*(?:%s)\s*\$" % "|".join(sorted({n for ts in TOKEN_SETS.values() for n in ts.widths},
                                         key=len, reverse=True)),
    re.IGNORECASE,
)


def token_set(arch: str) -> TokenSet:
    try:
        return TOKEN_SETS[arch]
    except KeyError:
        raise ValueError(f"No token table for arch {arch!r}") from None


@dataclass(frozen=True)
class Token:
    """One literal pseudo-op; ``data`` holds its bytes in stream order."""
    data:  bytes
    table: TokenSet = field(default=AMD64, compare=False, repr=False)

    def __post_init__(self) -> None:
        if len(self.data) not in self.table.names:
            raise ValueError(f"Bad token width for {self.table.arch}: {len(self.data)}")

    @property
    def width(self) -> int:
        return len(self.data)

    @property
    def name(self) -> str:
        return self.table.names[self.width]

    def render(self) -> str:
        return f"{self.name} $0x{self.data[::-1].hex()}"

    @classmethod
    def parse(cls, text: str, table: TokenSet = AMD64) -> "Token":
        mo = table.token_re.fullmatch(text.strip())
        if mo is None:
            raise ValueError(f"Not a literal token: {text!r}")
        name, digits = mo.groups()
        if len(digits) != 2 * table.widths[name]:
            raise ValueError(f"{name} needs {2 * table.widths[name]} hex digits: {text!r}")
        return cls(bytes.fromhex(digits)[::-1], table)


# ── Greedy width selection ─────────────────────────────────────────────────────

def split_widths(length: int, table: TokenSet = AMD64) -> List[int]:
    """Widest tokens while they fit, then at most one of each narrower width.

    Raises ValueError when the table cannot cover ``length`` exactly (an arm64
    encoding that is not a whole number of words).
    """
    if length < 0:
        raise ValueError(f"Negative length: {length}")
    widest, *narrower = table.names
    widths = [widest] * (length // widest)
    rest   = length % widest
    for w in narrower:
        if rest >= w:
            widths.append(w)
            rest -= w
    if rest:
        raise ValueError(f"{length} bytes do not split into {table.arch} tokens")
    return widths


def tokenize(data: bytes, table: TokenSet = AMD64) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    for w in split_widths(len(data), table):
        tokens.append(Token(bytes(data[pos:pos + w]), table))
        pos += w
    return tokens


def token_bytes(tokens: Iterable[Token]) -> bytes:
    return b"".join(t.data for t in tokens)


def token_offsets(tokens: Sequence[Token]) -> List[int]:
    """Start offset of every token within the concatenated byte stream."""
    offsets, pos = [], 0
    for t in tokens:
        offsets.append(pos)
        pos += t.width
    return offsets


# ── Literal text ───────────────────────────────────────────────────────────────

def render_literal(tokens: Sequence[Token]) -> str:
    if not tokens:
        raise ValueError("Cannot render an empty literal")
    return INDENT + SEPARATOR.join(t.render() for t in tokens)


def literal_length(nbytes: int, table: TokenSet = AMD64) -> int:
    """Column width of the unsplit literal for an ``nbytes`` encoding."""
    return len(render_literal(tokenize(bytes(nbytes), table)))


def parse_literal(text: str, table: TokenSet = AMD64) -> Tuple[Token, ...]:
    """Parse a literal column (trailing blanks allowed).

    Raises ValueError unless the whole text is a well-formed literal.
    """
    body = text.rstrip()
    if not table.literal_re.match(body):
        raise ValueError(f"Not a {table.arch} literal: {text!r}")
    return tuple(Token.parse(part, table) for part in body[len(INDENT):].split(SEPARATOR))
