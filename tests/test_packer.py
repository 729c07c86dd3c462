"""
tests/test_packer.py: one token stream for a run of instructions
"""

from __future__ import annotations

import pytest

from asmlit.classify import Instruction
from asmlit.config import RewriteConfig
from asmlit.packer import Packer, instruction_offsets


def run_of(*lengths: int):
    instructions = [
        Instruction(text=f"LEN{n}", comment=f" LEN{n}", line_number=i + 1,
                    comment_column=65)
        for i, n in enumerate(lengths)
    ]
    encodings = [bytes(range(1, n + 1)) for n in lengths]
    return instructions, encodings


@pytest.fixture
def packer():
    return Packer(RewriteConfig())


def test_instruction_offsets():
    assert instruction_offsets([b"12345", b"1", b"12"]) == [0, 5, 6]


class TestPack:

    def test_thirty_four_bytes(self, packer):
        lines = packer.pack(*run_of(5, 5, 5, 5, 5, 5, 4))
        assert len(lines) == 7
        head = lines[0].split("//")[0].split("; ")
        assert [t.split()[0] for t in head] == ["QUAD", "QUAD", "QUAD", "QUAD", "WORD"]
        assert head[0] == "    QUAD $0x0302010504030201"
        assert head[-1].strip() == "WORD $0x0403"
        assert lines[0].endswith("// LEN5")
        assert lines[1:] == [" " * 65 + "// LEN5"] * 5 + [" " * 65 + "// LEN4"]

    def test_lines_start_at_token_boundaries(self, packer):
        lines = packer.pack(*run_of(8, 4, 4, 2, 1))
        literals = [line[:65].strip() for line in lines]
        assert literals == [
            "QUAD $0x0807060504030201",
            "QUAD $0x0403020104030201",
            "",
            "WORD $0x0201",
            "BYTE $0x01",
        ]
        assert [line[65:] for line in lines] == [
            "// LEN8", "// LEN4", "// LEN4", "// LEN2", "// LEN1",
        ]

    def test_single_instruction(self, packer):
        assert packer.pack(*run_of(5)) == [
            "    LONG $0x04030201; BYTE $0x05".ljust(65) + "// LEN5",
        ]

    def test_tab_indent(self, packer):
        (instr,), encodings = run_of(4)
        tabbed = Instruction(instr.text, instr.comment, 1, 65, tab_indent=True)
        (line,) = packer.pack([tabbed], encodings)
        assert line.startswith("\tLONG $0x04030201")

    def test_empty_run(self, packer):
        assert packer.pack([], []) == []

    def test_length_mismatch(self, packer):
        instructions, encodings = run_of(4, 4)
        with pytest.raises(ValueError):
            packer.pack(instructions, encodings[:1])

    def test_empty_encoding(self, packer):
        instructions, _ = run_of(4)
        with pytest.raises(ValueError, match="empty encoding"):
            packer.pack(instructions, [b""])
