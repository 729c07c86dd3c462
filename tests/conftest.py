"""
Shared fixtures: an in-memory oracle so no test needs yasm or GNU as.

Opcode bytes below are the real VEX/EVEX encodings.
"""

from __future__ import annotations

import pytest

from asmlit.config import RewriteConfig
from asmlit.errors import EncodeError, EncoderUnavailable
from asmlit.oracle import Backend, EncoderAdapter, EncoderSession
from asmlit.rewriter import Rewriter


OPCODES: dict[str, bytes] = {
    "VPADDQ  XMM0,XMM1,XMM8":           bytes.fromhex("c4c171d4c0"),
    "VPADDQ  XMM1,XMM2,XMM9":           bytes.fromhex("c4c169d4c9"),
    "VPADDQ  XMM2,XMM3,XMM10":          bytes.fromhex("c4c161d4d2"),
    "VPALIGNR XMM8, XMM12, XMM12, 0x8": bytes.fromhex("c443190fc408"),
    "VPADDQ  ZMM0,ZMM1,ZMM8":           bytes.fromhex("62d1f548d4c0"),
    "VPANDQ   ZMM0, ZMM1, ZMM2":        bytes.fromhex("62f1f548dbc2"),
    "NOP":                              bytes.fromhex("90"),
    "RET":                              bytes.fromhex("c3"),
    "AESE V0.16B, V1.16B":              bytes.fromhex("2048284e"),
    "AESMC V0.16B, V0.16B":             bytes.fromhex("0068284e"),
}
# synthetic instructions of a given length: "LEN13" → 01 02 .. 0d
for _n in range(1, 17):
    OPCODES[f"LEN{_n}"] = bytes(range(1, _n + 1))


class FakeBackend(Backend):
    """Looks instructions up in a table; unknown text is a syntax error."""
    name    = "fake"
    batched = True

    def __init__(self, table: dict[str, bytes] | None = None, name: str = "fake",
                 unavailable: bool = False):
        super().__init__(executable=name)
        self.table       = OPCODES if table is None else table
        self.name        = name
        self.unavailable = unavailable
        self.calls: list[list[str]] = []

    def encode_batch(self, instructions, session):
        self.calls.append([i.text for i in instructions])
        if self.unavailable:
            raise EncoderUnavailable(self.name, "not installed")
        out = []
        for instr in instructions:
            if instr.text not in self.table:
                raise EncodeError(instr.line_number, instr.text,
                                  f"{self.name}: no such instruction")
            out.append(self.table[instr.text])
        return out


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def adapter(fake_backend, tmp_path):
    return EncoderAdapter([fake_backend], EncoderSession(base_dir=str(tmp_path)))


@pytest.fixture
def make_rewriter(adapter):
    def _make(**overrides) -> Rewriter:
        return Rewriter(adapter, RewriteConfig(**overrides))
    return _make


@pytest.fixture
def backend_factory():
    return FakeBackend
