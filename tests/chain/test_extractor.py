import pytest

from blssplit.chain.extractor import ChainExtractor
from blssplit.chain.records import PublicRecord, WitnessRecord
from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.errors import ExtractionError, LayoutMismatch


def numbered_witness(stage, n_public, n_private=5):
    """[1, 100, 101, ...]: 값 자체가 인덱스를 드러내는 witness."""
    values = (1,) + tuple(100 + i for i in range(n_public + n_private))
    return WitnessRecord(stage, values, n_public)


@pytest.fixture
def extractor():
    return ChainExtractor(SIGNAL_LAYOUT)


class TestExtractBoundary:
    def test_hm_from_witness_skips_constant(self, extractor):
        flat = extractor.extract_boundary(numbered_witness(1, 98), "Hm")
        assert flat == [100 + i for i in range(28)]

    def test_signature_offset(self, extractor):
        flat = extractor.extract_boundary(numbered_witness(1, 98), "signature")
        assert flat[0] == 100 + 42 and len(flat) == 28

    def test_from_public_record(self, extractor):
        record = PublicRecord(2, tuple(range(154)))
        assert extractor.extract_boundary(record, "miller_out") == list(range(84))

    def test_short_record_is_layout_mismatch(self, extractor):
        """97 개 공개 신호: 추출 전에 LayoutMismatch, 잘리거나 채워지지 않음"""
        with pytest.raises(LayoutMismatch, match="97"):
            extractor.extract_boundary(numbered_witness(1, 97), "Hm")

    def test_long_record_is_layout_mismatch(self, extractor):
        with pytest.raises(LayoutMismatch):
            extractor.extract_boundary(PublicRecord(1, tuple(range(99))), "Hm")


class TestReshape:
    def test_g2_shape(self, extractor):
        tensor = extractor.reshape(list(range(28)), (2, 2, 7))
        assert tensor[1][0][0] == 14

    def test_wrong_length(self, extractor):
        with pytest.raises(ExtractionError):
            extractor.reshape(list(range(27)), (2, 2, 7))


class TestBuildInput:
    def test_declared_order_and_decimal_strings(self, extractor):
        document = extractor.build_input(
            2,
            {"Hm": [[[1] * 7, [2] * 7], [[3] * 7, [4] * 7]]},
            {"pubkey": [[5] * 7, [6] * 7], "signature": [[["7"] * 7, ["8"] * 7]] * 2},
        )
        assert list(document) == ["pubkey", "signature", "Hm"]
        assert document["Hm"][1][1][0] == "4"
        assert document["pubkey"][0][0] == "5"

    def test_missing_input(self, extractor):
        with pytest.raises(ExtractionError, match="missing \\['signature'\\]"):
            extractor.build_input(2, {"Hm": [[[0] * 7] * 2] * 2}, {"pubkey": [[0] * 7] * 2})

    def test_unexpected_input(self, extractor):
        with pytest.raises(ExtractionError, match="unexpected \\['hash'\\]"):
            extractor.build_input(3, {"miller_out": [[[0] * 7] * 2] * 6}, {"hash": []})

    def test_supplied_twice(self, extractor):
        with pytest.raises(ExtractionError, match="supplied twice"):
            extractor.build_input(3, {"miller_out": [[[0] * 7] * 2] * 6},
                                  {"miller_out": [[[0] * 7] * 2] * 6})

    def test_wrong_shape(self, extractor):
        with pytest.raises(ExtractionError, match="miller_out"):
            extractor.build_input(3, {"miller_out": [[[0] * 7] * 2] * 5})


class TestNextInput:
    def test_stage2_from_stage1(self, extractor):
        request = {"pubkey": [[9] * 7] * 2, "signature": [[[8] * 7] * 2] * 2, "hash": "ignored"}
        document = extractor.next_input(numbered_witness(1, 98), 2, request)
        assert document["Hm"][0][0] == [str(100 + i) for i in range(7)]
        assert document["pubkey"] == [["9"] * 7] * 2

    def test_stage3_from_stage2(self, extractor):
        document = extractor.next_input(numbered_witness(2, 154), 3, {})
        assert list(document) == ["miller_out"]
        assert document["miller_out"][5][1][6] == str(100 + 83)

    def test_wrong_producer(self, extractor):
        with pytest.raises(ExtractionError, match="produced by stage 2"):
            extractor.next_input(numbered_witness(1, 98), 3, {})

    def test_passthrough_missing_from_request(self, extractor):
        with pytest.raises(ExtractionError, match="pubkey"):
            extractor.next_input(numbered_witness(1, 98), 2, {"signature": []})

    def test_matches_reference_chain(self, extractor, valid_chain):
        document = extractor.next_input(valid_chain["witness"][1], 2, valid_chain["request"])
        assert document == valid_chain["input"][2]
