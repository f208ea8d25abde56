"""
End-to-end tests: knitout is lowered to formal knitout, the result is parsed
back, and the trace validator accepts every instruction.
"""

from __future__ import annotations

from fnitout import lower, parse, validate
from fnitout.schemas.instruction import Bed, Needle

# ── Shared programs ────────────────────────────────────────────────────────────

_SWATCH = """\
;!knitout-2
;;Machine: SWGN2
;;Gauge: 15
;;Carriers: 1 2 3
;;Yarn-1: red
; cast on
inhook 1
tuck - f2 1
tuck - f0 1
knit + f0 1
knit + f1 1
knit + f2 1
releasehook 1
xfer f1 b1
rack 1
xfer b1 f2
rack 0
drop f0
amiss f5
knit - f2 1
outhook 1
"""

_TWO_BED = """\
;!knitout-2
;;Carriers: A B
in A B
tuck + f0 A B
tuck + b1 A
knit - f0 A B
rack -1
knit + b1 A
rack 1
split - f0 b-1 B
out A
out B
"""


def _round_trip(source: str):
    result = lower(source)
    parsed = parse(result.text)
    return result, parsed, validate(parsed.instructions)


class TestSwatch:
    def test_output_parses_and_validates(self):
        _, parsed, validated = _round_trip(_SWATCH)
        assert parsed.passed
        assert validated.passed, validated.errors
        assert len(parsed.instructions) == 14
        assert len(validated.trace) == 15

    def test_lowering_and_validator_agree_on_loops(self):
        result, _, validated = _round_trip(_SWATCH)
        assert dict(validated.final_state.loops) == result.context.loops
        assert result.context.loops == {Needle(Bed.FRONT, 2): 1}

    def test_every_carrier_gone(self):
        _, _, validated = _round_trip(_SWATCH)
        assert dict(validated.final_state.carriers) == {}

    def test_unused_carriers_warned(self):
        result, _, _ = _round_trip(_SWATCH)
        assert [d.message for d in result.diagnostics] == [
            "Carrier '2' is named in the Carriers header but never used.",
            "Carrier '3' is named in the Carriers header but never used.",
        ]


class TestTwoBed:
    def test_output_parses_and_validates(self):
        result, parsed, validated = _round_trip(_TWO_BED)
        assert parsed.passed
        assert validated.passed, validated.errors
        assert result.diagnostics == ()

    def test_lowering_and_validator_agree_on_loops(self):
        result, _, validated = _round_trip(_TWO_BED)
        assert dict(validated.final_state.loops) == result.context.loops
        assert validated.final_state.rack == result.context.racking == 1
