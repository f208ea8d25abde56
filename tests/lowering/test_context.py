"""Tests for lowering.context — carrier locations, emit slots, per-run state."""

from __future__ import annotations

from fnitout.diagnostics import DiagnosticSink
from fnitout.lowering import (
    CarrierLocation,
    CarrierState,
    EmitSlot,
    KnitoutHeader,
    LoweringContext,
    get_config,
    lower_line,
)
from fnitout.schemas.instruction import Bed, Direction, Needle, Rack


def make_context(carriers=("1", "2")) -> LoweringContext:
    header = KnitoutHeader(
        version=2,
        carriers=tuple(carriers),
        yarn_ids={name: i + 1 for i, name in enumerate(carriers)},
        gauge=15.0,
        headers={},
    )
    return LoweringContext.for_header(header, get_config())


class TestCarrierLocation:
    def test_front_column_ignores_racking(self):
        loc = CarrierLocation(Bed.FRONT, 3, Direction.POSITIVE)
        assert loc.column(2) == 3
        assert loc.needle == Needle(Bed.FRONT, 3)

    def test_back_column_shifts_with_racking(self):
        assert CarrierLocation(Bed.BACK, 3, Direction.POSITIVE).column(-2) == 1

    def test_half_position(self):
        assert CarrierLocation(Bed.FRONT, 3, Direction.POSITIVE).half_position(0) == 3.5
        assert CarrierLocation(Bed.BACK, 3, Direction.NEGATIVE).half_position(1) == 3.5


class TestEmitSlot:
    def test_instruction(self):
        assert EmitSlot(Rack(1)).render(30) == "rack 1"

    def test_note(self):
        assert EmitSlot(note="amiss ignored").render(30) == "; amiss ignored"

    def test_echo_padded_to_column(self):
        assert EmitSlot(Rack(1), echo="rack 1").render(10) == "rack 1    ; rack 1"

    def test_long_body_not_truncated(self):
        assert EmitSlot(Rack(-10), echo="x").render(3) == "rack -10; x"

    def test_empty(self):
        assert EmitSlot().render(30) == ""


class TestLoweringContext:
    def test_carriers_start_absent(self):
        ctx = make_context()
        assert [c.yarn for c in ctx.carriers.values()] == [1, 2]
        assert all(c.state is CarrierState.ABSENT for c in ctx.carriers.values())
        assert ctx.active_carriers() == []

    def test_echo_goes_on_first_slot_of_line(self):
        ctx = make_context()
        ctx.begin_line(4, "rack 2")
        first = ctx.emit(EmitSlot(Rack(1)))
        second = ctx.emit(EmitSlot(Rack(2)))
        assert (first, second) == (0, 1)
        assert ctx.slots[0].echo == "rack 2"
        assert ctx.slots[1].echo == ""

    def test_render_ends_every_line(self):
        ctx = make_context()
        ctx.emit(EmitSlot(Rack(1)))
        ctx.emit(EmitSlot(note="n"))
        assert ctx.render() == "rack 1\n; n\n"


class TestLowerLine:
    def test_in_marks_carrier_pending(self):
        ctx = make_context()
        lower_line(ctx, 3, "in 2", DiagnosticSink())
        carrier = ctx.carriers["2"]
        assert carrier.state is CarrierState.PENDING
        assert carrier.pending_slot == 0
        assert carrier.pending_line == 3
        assert ctx.slots[0].placeholder_for == "2"

    def test_first_use_resolves_placeholder(self):
        ctx = make_context()
        sink = DiagnosticSink()
        lower_line(ctx, 3, "in 1", sink)
        lower_line(ctx, 4, "tuck - f5 1", sink)
        carrier = ctx.carriers["1"]
        assert carrier.state is CarrierState.ACTIVE
        assert str(ctx.slots[0].instruction) == "in - f.6 1"
        assert ctx.slots[0].placeholder_for is None
        assert carrier.parked == CarrierLocation(Bed.FRONT, 5, Direction.NEGATIVE)

    def test_placeholder_written_on_front_bed(self):
        ctx = make_context()
        sink = DiagnosticSink()
        lower_line(ctx, 3, "rack 1", sink)
        lower_line(ctx, 4, "in 1", sink)
        lower_line(ctx, 5, "tuck + b0 1", sink)
        assert str(ctx.slots[1].instruction) == "in + f.0 1"

    def test_blank_line_emits_nothing(self):
        ctx = make_context()
        lower_line(ctx, 3, "   ", DiagnosticSink())
        assert ctx.slots == []

    def test_trailing_comment_echoed(self):
        ctx = make_context()
        lower_line(ctx, 3, "rack 1 ;shift", DiagnosticSink())
        assert ctx.slots[0].echo == "rack 1 ;shift"
        assert ctx.racking == 1
