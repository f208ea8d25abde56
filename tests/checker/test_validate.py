"""Tests for checker.validate — trace construction and error collection."""

from __future__ import annotations

import pytest

from fnitout.checker import validate
from fnitout.checker.machine_state import MachineState
from fnitout.parser import parse
from fnitout.schemas.instruction import Bed, Needle, Rack

F0 = Needle(Bed.FRONT, 0)


def instructions(*lines: str):
    result = parse(list(lines))
    assert result.passed, result.errors
    return result.instructions


class TestCanonicalProgram:
    def test_in_knit_out(self):
        result = validate(instructions("in + f.0 1", "knit - f.0 30 (1,0)", "out - f.0 1"))
        assert result.passed
        assert len(result.trace) == 4

    def test_state_after_knit(self):
        result = validate(instructions("in + f.0 1", "knit - f.0 30 (1,0)", "out - f.0 1"))
        after_knit = result.trace[2]
        assert after_knit.loop_count(F0) == 1
        assert after_knit.carriers[1] == 0

    def test_state_after_out(self):
        result = validate(instructions("in + f.0 1", "knit - f.0 30 (1,0)", "out - f.0 1"))
        final = result.final_state
        assert 1 not in final.carriers
        assert 1 not in final.attachments
        assert final.loop_count(F0) == 1

    def test_starts_from_empty_machine(self):
        result = validate([])
        assert result.trace == (MachineState(),)
        assert result.passed


class TestErrorSkip:
    def test_failed_instruction_contributes_no_state(self):
        result = validate(instructions("in + f.0 1", "knit + f.0 30 (1,0)", "out + f.0 1"))
        assert len(result.trace) == 3
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.instruction_index == 1
        assert error.source_line == 2
        assert "Expected yarn 1 at 0, but it is at 1" in error.message

    def test_later_instruction_sees_last_good_state(self):
        result = validate(instructions("in + f.0 1", "knit + f.0 30 (1,0)", "out + f.0 1"))
        assert result.final_state.loop_count(F0) == 0
        assert dict(result.final_state.carriers) == {}

    def test_all_errors_collected(self):
        result = validate(instructions("drop f.0", "rack 2", "out + f.0 3", "rack 1"))
        assert [e.instruction_index for e in result.errors] == [0, 1, 2]
        assert result.final_state.rack == 1

    def test_trace_length_is_successes_plus_one(self):
        program = instructions(
            "in - f.3 2",
            "tuck - f.2 30 (2,0)",
            "tuck + f.0 30 (2,0)",
            "knit + f.2 30 (2,1)",
            "drop f.9",
            "xfer f.2 b.2",
            "rack 1",
            "rack 3",
        )
        result = validate(program)
        assert len(result.trace) == len(program) - len(result.errors) + 1


class TestRackingProperty:
    @pytest.mark.parametrize(
        "racks",
        [
            [1, 2, 3, 2, 1, 0, -1],
            [1, 3, 2, 0, -1, -2],
            [0, 0, 1, 1, -1],
        ],
    )
    def test_successful_racks_change_by_one(self, racks):
        result = validate([Rack(r) for r in racks])
        racks_seen = [state.rack for state in result.trace]
        for before, after in zip(racks_seen, racks_seen[1:]):
            assert abs(after - before) == 1
