"""Tests for fnitout.parser — formal knitout text to Instructions."""

from __future__ import annotations

import pytest

from fnitout.parser import ParseError, parse, parse_line, parse_needle
from fnitout.schemas.instruction import (
    Bed,
    Direction,
    Drop,
    In,
    Knit,
    Miss,
    Needle,
    Out,
    Rack,
    Split,
    Tuck,
    Xfer,
    YarnLength,
)


class TestParseNeedle:
    def test_front(self):
        assert parse_needle("f.3") == Needle(Bed.FRONT, 3)

    def test_back_negative(self):
        assert parse_needle("b.-12") == Needle(Bed.BACK, -12)

    @pytest.mark.parametrize("token", ["x.3", "f.3.5", "f3", "f.", "F.3", "fs.3"])
    def test_rejects_malformed(self, token):
        with pytest.raises(ParseError, match="Expecting bed.index"):
            parse_needle(token)


class TestParseLine:
    def test_knit(self):
        ins = parse_line("knit - f.0 30 (1,0)", 1)
        assert isinstance(ins, Knit)
        assert ins.direction is Direction.NEGATIVE
        assert ins.needle == Needle(Bed.FRONT, 0)
        assert ins.length == 30
        assert ins.yarns == (YarnLength(1, 0),)
        assert ins.source_line == 1

    def test_knit_several_yarns(self):
        ins = parse_line("knit + b.2 30 (1,0.5) (3,2e1)")
        assert ins.yarns == (YarnLength(1, 0.5), YarnLength(3, 20.0))

    def test_tuck(self):
        ins = parse_line("tuck + f.1 12.5 (2,1)")
        assert isinstance(ins, Tuck)
        assert ins.length == 12.5

    def test_split(self):
        ins = parse_line("split + f.1 b.1 30 (1,1)")
        assert isinstance(ins, Split)
        assert ins.target == Needle(Bed.BACK, 1)

    def test_miss_in_out(self):
        assert parse_line("miss + f.1 2") == Miss(Direction.POSITIVE, Needle(Bed.FRONT, 1), 2)
        assert parse_line("in - b.0 1") == In(Direction.NEGATIVE, Needle(Bed.BACK, 0), 1)
        assert parse_line("out + f.-1 0") == Out(Direction.POSITIVE, Needle(Bed.FRONT, -1), 0)

    def test_drop_xfer_rack(self):
        assert parse_line("drop f.4") == Drop(Needle(Bed.FRONT, 4))
        assert parse_line("xfer f.4 b.4") == Xfer(Needle(Bed.FRONT, 4), Needle(Bed.BACK, 4))
        assert parse_line("rack -1") == Rack(-1)
        assert parse_line("rack +2") == Rack(2)

    def test_comment_stripped_and_kept(self):
        ins = parse_line("rack 1 ; step one")
        assert ins == Rack(1)
        assert ins.comment == " step one"

    def test_only_first_semicolon_splits(self):
        ins = parse_line("rack 1;a;b")
        assert ins.comment == "a;b"

    def test_stray_whitespace_ignored(self):
        assert parse_line("   drop\tf.0   ") == Drop(Needle(Bed.FRONT, 0))

    def test_blank_and_comment_only_lines(self):
        assert parse_line("") is None
        assert parse_line("    ") is None
        assert parse_line("; just a comment") is None


class TestParseLineErrors:
    def test_unrecognized_operation(self):
        with pytest.raises(ParseError, match="Unrecognized operation 'purl'"):
            parse_line("purl + f.0 30 (1,0)")

    def test_ran_out_of_tokens(self):
        with pytest.raises(ParseError, match="Expecting needle but ran out of tokens"):
            parse_line("knit +")

    def test_bad_direction(self):
        with pytest.raises(ParseError, match="Expecting \\+/- for direction"):
            parse_line("knit ^ f.0 30 (1,0)")

    def test_bad_length(self):
        with pytest.raises(ParseError, match="Expecting length, got 'long'"):
            parse_line("knit + f.0 long (1,0)")

    def test_non_finite_length(self):
        with pytest.raises(ParseError, match="Expecting length"):
            parse_line("knit + f.0 inf (1,0)")

    def test_knit_without_yarns(self):
        with pytest.raises(ParseError, match="Knit must have at least one yarn"):
            parse_line("knit + f.0 30")

    def test_split_without_yarns(self):
        with pytest.raises(ParseError, match="Split must have at least one yarn"):
            parse_line("split + f.0 b.0 30")

    def test_tuck_with_two_yarns(self):
        with pytest.raises(ParseError, match="Tuck must have exactly one yarn"):
            parse_line("tuck + f.0 30 (1,0) (2,0)")

    def test_repeated_yarn(self):
        with pytest.raises(ParseError, match="Yarn 1 reused in yarns"):
            parse_line("knit + f.0 30 (1,0) (1,2)")

    def test_malformed_yarn_tuple(self):
        with pytest.raises(ParseError, match="Expecting '\\(yarn,length\\)'"):
            parse_line("knit + f.0 30 (1, 0)")

    def test_bad_length_inside_yarn(self):
        with pytest.raises(ParseError, match="Expecting length in yarn"):
            parse_line("knit + f.0 30 (1,1e)")

    def test_bad_bare_yarn(self):
        with pytest.raises(ParseError, match="Expecting yarn but got '01'"):
            parse_line("in + f.0 01")

    def test_bad_rack(self):
        with pytest.raises(ParseError, match="Expecting rack but got '0.5'"):
            parse_line("rack 0.5")

    def test_extra_tokens(self):
        with pytest.raises(ParseError, match="Extra tokens at end of line"):
            parse_line("drop f.0 f.1")


class TestParse:
    def test_scenario_program(self):
        result = parse("in + f.0 1\nknit - f.0 30 (1,0)\nout - f.0 1\n")
        assert result.passed
        assert [type(i) for i in result.instructions] == [In, Knit, Out]
        assert [i.source_line for i in result.instructions] == [1, 2, 3]

    def test_accepts_list_of_lines(self):
        result = parse(["rack 1", "rack 0"])
        assert result.instructions == (Rack(1), Rack(0))

    def test_crlf_line_endings(self):
        result = parse("rack 1\r\nrack 0\r\n")
        assert len(result.instructions) == 2
        assert result.errors == ()

    def test_errors_collected_and_parsing_continues(self):
        result = parse(["rack 1", "knit + f.0 30", "bogus", "rack 0"])
        assert result.instructions == (Rack(1), Rack(0))
        assert [e.line for e in result.errors] == [2, 3]
        assert not result.passed

    def test_every_line_accounted_for_once(self):
        lines = [
            "in + f.0 1",
            "",
            "; comment",
            "knit + f.0 30",
            "tuck + f.0 30 (1,0) (2,0)",
            "miss + f.0 1 ;trailing",
            "x.3",
        ]
        result = parse(lines)
        instruction_lines = {i.source_line for i in result.instructions}
        error_lines = {e.line for e in result.errors}
        assert instruction_lines == {1, 6}
        assert error_lines == {4, 5, 7}
        assert instruction_lines.isdisjoint(error_lines)
        assert len(result.instructions) + len(result.errors) == 5
