"""
tests/test_tokens.py: literal token table and greedy width selection
====================================================================

  - split_widths (greediness, at most one LONG/WORD/BYTE)
  - tokenize     (byte-length conservation, little-endian rendering)
  - Token.parse / parse_literal (grammar, rejects malformed text)

Run
---
    pytest tests/test_tokens.py -v
"""

from __future__ import annotations

import pytest

from asmlit.tokens import (
    ARM64, INDENT, Token, literal_length, parse_literal, render_literal,
    split_widths, token_bytes, token_offsets, token_set, tokenize,
)


# ══════════════════════════════════════════════════════════════════════════════
# Width selection
# ══════════════════════════════════════════════════════════════════════════════

class TestSplitWidths:

    @pytest.mark.parametrize("length, widths", [
        (1,  [1]),
        (2,  [2]),
        (3,  [2, 1]),
        (4,  [4]),
        (5,  [4, 1]),
        (6,  [4, 2]),
        (7,  [4, 2, 1]),
        (8,  [8]),
        (9,  [8, 1]),
        (13, [8, 4, 1]),
        (34, [8, 8, 8, 8, 2]),
    ])
    def test_greedy(self, length, widths):
        assert split_widths(length) == widths

    def test_five_bytes_is_never_five_byte_tokens(self):
        assert split_widths(5).count(1) == 1

    @pytest.mark.parametrize("length", range(0, 40))
    def test_at_most_one_small_token_each(self, length):
        widths = split_widths(length)
        assert sum(widths) == length
        for w in (4, 2, 1):
            assert widths.count(w) <= 1
        assert widths == sorted(widths, reverse=True)

    def test_negative_length_rejected(self):
        with pytest.raises(ValueError):
            split_widths(-1)


# ══════════════════════════════════════════════════════════════════════════════
# Tokens
# ══════════════════════════════════════════════════════════════════════════════

class TestTokenize:

    @pytest.mark.parametrize("length", [1, 2, 3, 4, 5, 6, 7, 8, 9, 13])
    def test_byte_length_conservation(self, length):
        data = bytes(range(0xA0, 0xA0 + length))
        tokens = tokenize(data)
        assert sum(t.width for t in tokens) == length
        assert token_bytes(tokens) == data

    def test_little_endian_rendering(self):
        tokens = tokenize(bytes.fromhex("c4c171d4c0"))
        assert [t.render() for t in tokens] == ["LONG $0xd471c1c4", "BYTE $0xc0"]

    def test_quad_rendering(self):
        (tok,) = tokenize(bytes(range(1, 9)))
        assert tok.render() == "QUAD $0x0807060504030201"

    def test_offsets(self):
        assert token_offsets(tokenize(bytes(13))) == [0, 8, 12]

    def test_bad_width_rejected(self):
        with pytest.raises(ValueError, match="width"):
            Token(b"\x00\x01\x02")


class TestLiteralText:

    def test_render_literal(self):
        lit = render_literal(tokenize(bytes.fromhex("c443190fc408")))
        assert lit == "    LONG $0x0f1943c4; WORD $0x08c4"

    def test_empty_literal_rejected(self):
        with pytest.raises(ValueError):
            render_literal([])

    @pytest.mark.parametrize("nbytes, width", [(1, 14), (4, 20), (5, 32), (6, 34), (8, 28)])
    def test_literal_length(self, nbytes, width):
        assert literal_length(nbytes) == width

    def test_parse_literal(self):
        tokens = parse_literal("    LONG $0xd471c1c4; BYTE $0xc0   ")
        assert token_bytes(tokens) == bytes.fromhex("c4c171d4c0")

    @pytest.mark.parametrize("text", [
        "LONG $0xd471c1c4",                    # no indent
        "    LONG $0xd471c1",                  # short LONG
        "    LONG $0xD471C1C4",                # upper-case hex
        "    LONG $0xd471c1c4;BYTE $0xc0",     # wrong separator
        "    DWORD $0xd471c1c4",
        INDENT,
    ])
    def test_parse_literal_rejects(self, text):
        with pytest.raises(ValueError):
            parse_literal(text)

    def test_token_parse_checks_digit_count(self):
        with pytest.raises(ValueError, match="hex digits"):
            Token.parse("WORD $0x123456")


# ══════════════════════════════════════════════════════════════════════════════
# arm64 table
# ══════════════════════════════════════════════════════════════════════════════

class TestArm64Tokens:

    def test_table_lookup(self):
        assert token_set("arm64") is ARM64
        with pytest.raises(ValueError):
            token_set("mips")

    def test_word_is_thirty_two_bits(self):
        (tok,) = tokenize(bytes.fromhex("2048284e"), ARM64)
        assert tok.render() == "WORD $0x4e284820"

    def test_dword(self):
        tokens = tokenize(bytes(range(1, 13)), ARM64)
        assert render_literal(tokens) == "    DWORD $0x0807060504030201; WORD $0x0c0b0a09"

    @pytest.mark.parametrize("length, widths", [(4, [4]), (8, [8]), (12, [8, 4]), (20, [8, 8, 4])])
    def test_split(self, length, widths):
        assert split_widths(length, ARM64) == widths

    @pytest.mark.parametrize("length", [1, 2, 3, 6, 10])
    def test_partial_word_has_no_layout(self, length):
        assert not ARM64.cuttable(length)
        with pytest.raises(ValueError, match="arm64"):
            split_widths(length, ARM64)

    def test_parse(self):
        tokens = parse_literal("    DWORD $0x0807060504030201; WORD $0x4e284820", ARM64)
        assert [t.name for t in tokens] == ["DWORD", "WORD"]
        assert token_bytes(tokens) == bytes(range(1, 9)) + bytes.fromhex("2048284e")

    def test_amd64_spelling_rejected(self):
        with pytest.raises(ValueError):
            parse_literal("    LONG $0x4e284820", ARM64)

    def test_literal_length(self):
        assert literal_length(4, ARM64) == 20
        assert literal_length(8, ARM64) == 29

    def test_width_checked_against_table(self):
        with pytest.raises(ValueError, match="arm64"):
            Token(b"\x00\x01", ARM64)
