import copy

import pytest

from py_ecc.bls.hash_to_curve import map_to_curve_G2
from py_ecc.optimized_bls12_381 import FQ, G2, field_modulus, multiply, normalize

from blssplit.chain.extractor import ChainExtractor
from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.circuit.limbs import (
    decode_g2,
    encode_g1,
    encode_g2,
    fq12_identity,
    from_limbs,
    to_decimal,
    to_limbs,
)
from blssplit.circuit.stages import build_contracts, flatten_coords
from blssplit.circuit.tensor import flatten
from blssplit.errors import StageUnsatisfiable, ValidationFailure

from conftest import OTHER_KEY, make_request


class TestStage1:
    def test_public_record_length(self, valid_chain):
        assert valid_chain["witness"][1].n_public == 98
        assert valid_chain["witness"][1].values[0] == 1

    def test_hm_matches_hash_to_curve(self, valid_chain, bls_keys):
        public = valid_chain["public"][1].values
        start, length = SIGNAL_LAYOUT.get_offset(1, "Hm")
        assert list(public[start:start + length]) == flatten(encode_g2(bls_keys["Hm"]), (2, 2, 7))

    def test_inputs_echoed_in_public(self, valid_chain, valid_request):
        public = valid_chain["public"][1].values
        start, length = SIGNAL_LAYOUT.get_offset(1, "pubkey")
        assert [str(v) for v in public[start:start + length]] == sum(valid_request["pubkey"], [])

    def test_limb_out_of_range(self, contracts, valid_request):
        request = copy.deepcopy(valid_request)
        request["pubkey"][0][3] = str(1 << 55)
        with pytest.raises(StageUnsatisfiable, match="outside"):
            contracts[1].evaluate(request)

    def test_non_canonical_coordinate(self, contracts, valid_request):
        """x + p 는 limb 범위는 맞지만 모듈러스보다 크다"""
        request = copy.deepcopy(valid_request)
        x = from_limbs([int(v) for v in request["pubkey"][0]])
        request["pubkey"][0] = to_decimal(to_limbs(x + field_modulus))
        with pytest.raises(StageUnsatisfiable, match="not less than the field modulus"):
            contracts[1].evaluate(request)

    def test_pubkey_off_curve(self, contracts, valid_request):
        request = copy.deepcopy(valid_request)
        request["pubkey"][1] = to_decimal(to_limbs(5))
        with pytest.raises(StageUnsatisfiable, match="pubkey"):
            contracts[1].evaluate(request)

    def test_missing_input(self, contracts, valid_request):
        request = {k: v for k, v in valid_request.items() if k != "hash"}
        with pytest.raises(ValidationFailure, match="missing inputs"):
            contracts[1].evaluate(request)

    def test_wrong_shape(self, contracts, valid_request):
        request = copy.deepcopy(valid_request)
        request["signature"] = request["signature"][0]
        with pytest.raises(StageUnsatisfiable, match="signature"):
            contracts[1].evaluate(request)


class TestStage2:
    def test_public_record_length(self, valid_chain):
        assert valid_chain["witness"][2].n_public == 154

    def test_input_document_shapes(self, valid_chain):
        document = valid_chain["input"][2]
        assert list(document) == ["pubkey", "signature", "Hm"]
        assert len(document["Hm"]) == 2 and len(document["Hm"][0][0]) == 7

    def test_miller_out_is_not_identity(self, valid_chain):
        """Miller loop 곱 자체는 항등원이 아니다 (최종 지수승 이후에만 1)"""
        start, length = SIGNAL_LAYOUT.get_offset(2, "miller_out")
        flat = list(valid_chain["public"][2].values[start:start + length])
        assert flat != [int(v) for c in fq12_identity() for pair in c for v in pair]


class TestStage3:
    def test_valid_signature_satisfies(self, valid_chain):
        assert valid_chain["witness"][3].n_public == 84

    def test_identity_rejected_after_tamper(self, contracts, valid_chain):
        document = copy.deepcopy(valid_chain["input"][3])
        document["miller_out"][0][0][0] = str(int(document["miller_out"][0][0][0]) ^ 1)
        with pytest.raises(StageUnsatisfiable) as excinfo:
            contracts[3].evaluate(document)
        assert excinfo.value.stage == 3

    def test_fq12_identity_input_satisfies(self, contracts):
        document = {"miller_out": to_decimal(fq12_identity())}
        record = contracts[3].evaluate(document)
        assert record.values[1:] == tuple(int(v) for c in fq12_identity() for p in c for v in p)


class TestWrongSigner:
    def test_stage1_and_stage2_pass_stage3_fails(self, contracts, bls_keys):
        """다른 키로 서명: 점 검증은 통과하지만 최종 판정에서 거부"""
        signature = multiply(bls_keys["Hm"], OTHER_KEY)
        request = make_request(bls_keys["pubkey"], signature, bls_keys["u0"], bls_keys["u1"])
        extractor = ChainExtractor()
        w1 = contracts[1].evaluate(request)
        w2 = contracts[2].evaluate(extractor.next_input(w1, 2, request))
        with pytest.raises(StageUnsatisfiable, match="signature invalid"):
            contracts[3].evaluate(extractor.next_input(w2, 3, request))


class TestSubgroup:
    def test_g2_generator_multiple_passes(self, primitives):
        assert primitives.validate_g2(multiply(G2, 99))

    def test_decode_normalizes(self):
        point = multiply(G2, 5)
        assert normalize(decode_g2(encode_g2(point))) == normalize(point)

    def test_g1_outside_subgroup_rejected(self, contracts, primitives, valid_request):
        """x³ + 4 가 제곱수인 가장 작은 x: 곡선 위에 있지만 r·P ≠ O"""
        point = g1_outside_subgroup()
        assert primitives.is_on_curve_g1(point)
        assert not primitives.in_subgroup(point)

        request = copy.deepcopy(valid_request)
        request["pubkey"] = to_decimal(encode_g1(point))
        with pytest.raises(StageUnsatisfiable, match="pubkey is not a G1 point of prime order"):
            contracts[1].evaluate(request)

    def test_g2_outside_subgroup_rejected(self, contracts, primitives, bls_keys, valid_request):
        """cofactor 제거 전의 map_to_curve 출력은 E2 위의 점이지만 G2 밖에 있다"""
        point = map_to_curve_G2(bls_keys["u0"])
        assert primitives.is_on_curve_g2(point)
        assert not primitives.in_subgroup(point)

        request = copy.deepcopy(valid_request)
        request["signature"] = to_decimal(encode_g2(point))
        with pytest.raises(StageUnsatisfiable, match="signature is not a G2 point of prime order"):
            contracts[1].evaluate(request)


def g1_outside_subgroup():
    x = 1
    while True:
        rhs = (x ** 3 + 4) % field_modulus
        y = pow(rhs, (field_modulus + 1) // 4, field_modulus)
        if y * y % field_modulus == rhs:
            return (FQ(x), FQ(y), FQ.one())
        x += 1


class TestHelpers:
    def test_flatten_coords(self):
        tensor = [[[1] * 7, [2] * 7], [[3] * 7, [4] * 7]]
        assert [c[0] for c in flatten_coords(tensor)] == [1, 2, 3, 4]

    def test_build_contracts(self):
        contracts = build_contracts()
        assert sorted(contracts) == [1, 2, 3]
        assert contracts[2].layout.total == 154
