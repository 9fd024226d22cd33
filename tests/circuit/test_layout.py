import pytest

from blssplit.circuit.layout import (
    BoundarySignal,
    SIGNAL_LAYOUT,
    Signal,
    SignalLayout,
    StageLayout,
)
from blssplit.circuit.tensor import shape_size
from blssplit.errors import LayoutMismatch


class TestStageTotals:
    @pytest.mark.parametrize("stage, total", [(1, 98), (2, 154), (3, 84)])
    def test_total(self, stage, total):
        assert SIGNAL_LAYOUT.stage(stage).total == total

    def test_stage_numbers(self):
        assert SIGNAL_LAYOUT.stage_numbers == (1, 2, 3)

    def test_unknown_stage(self):
        with pytest.raises(LayoutMismatch):
            SIGNAL_LAYOUT.stage(4)


class TestOffsets:
    """출력이 먼저, 그다음 공개 입력이 선언 순서대로."""

    @pytest.mark.parametrize("stage, name, offset", [
        (1, "Hm", (0, 28)),
        (1, "pubkey", (28, 14)),
        (1, "signature", (42, 28)),
        (1, "hash", (70, 28)),
        (2, "miller_out", (0, 84)),
        (2, "pubkey", (84, 14)),
        (2, "signature", (98, 28)),
        (2, "Hm", (126, 28)),
        (3, "miller_out", (0, 84)),
    ])
    def test_public_offset(self, stage, name, offset):
        assert SIGNAL_LAYOUT.get_offset(stage, name) == offset

    def test_witness_offset_shifted_by_one(self):
        assert SIGNAL_LAYOUT.stage(2).witness_offset("Hm") == (127, 28)

    def test_unknown_signal(self):
        with pytest.raises(LayoutMismatch, match="no public signal named 'Hm'"):
            SIGNAL_LAYOUT.get_offset(3, "Hm")

    def test_table_covers_record(self):
        table = SIGNAL_LAYOUT.stage(1).table()
        assert [row[0] for row in table] == ["Hm", "pubkey", "signature", "hash"]
        assert sum(row[3] for row in table) == 98


class TestCheckPublicLength:
    def test_matching_length(self):
        SIGNAL_LAYOUT.check_public_length(1, 98)

    def test_off_by_one(self):
        with pytest.raises(LayoutMismatch, match="has 97 values, layout declares 98"):
            SIGNAL_LAYOUT.check_public_length(1, 97)


class TestBoundaries:
    def test_outputs_into_stage2(self):
        names = [b.name for b in SIGNAL_LAYOUT.boundaries_into(2, kind="output")]
        assert names == ["Hm"]

    def test_passthrough_into_stage2(self):
        names = [b.name for b in SIGNAL_LAYOUT.boundaries_into(2, kind="passthrough")]
        assert names == ["pubkey", "signature"]

    def test_lookup(self):
        assert SIGNAL_LAYOUT.boundary("miller_out", 2, 3).length == 84

    def test_shape_disagreement_rejected(self):
        layout = SignalLayout(
            [StageLayout(1, [Signal("x", (2, 7))], []), StageLayout(2, [], [Signal("x", (14,))])],
            [BoundarySignal("x", (2, 7), 1, 2)],
        )
        with pytest.raises(LayoutMismatch, match="boundary 'x'"):
            layout.validate()

    def test_backward_flow_rejected(self):
        x = Signal("x", (7,))
        layout = SignalLayout(
            [StageLayout(1, [], [x]), StageLayout(2, [x], [])],
            [BoundarySignal("x", (7,), 2, 1)],
        )
        with pytest.raises(LayoutMismatch, match="does not flow forward"):
            layout.validate()


class TestOffsetInvariants:
    @pytest.mark.parametrize("stage", [1, 2, 3])
    def test_offsets_tile_the_record(self, stage):
        layout = SIGNAL_LAYOUT.stage(stage)
        expected_start = 0
        for name, shape, start, length in layout.table():
            assert start == expected_start
            assert length == shape_size(shape)
            assert start + length <= layout.total
            assert SIGNAL_LAYOUT.get_offset(stage, name) == (start, length)
            expected_start += length
        assert expected_start == layout.total
