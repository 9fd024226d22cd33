"""
단계 회로 계약 (Stage Circuit Contracts)
==========================================

분할된 BLS 서명 검증  e(-S, G1) · e(Hm, pubkey) = 1  의 세 단계를
순수한 검증 관계로 표현한다. 각 계약은 입력 문서를 받아 제약을 평가하고,
만족하면 그 단계의 WitnessRecord 를 돌려준다 (참조 witness 생성기).

  ┌──────────────────────────────────────────────────────────┐
  │  Stage1: 검증 + hash-to-curve                            │
  │    in : pubkey(G1), signature(G2), hash(Fp2 × 2)         │
  │    out: Hm(G2)                                           │
  ├──────────────────────────────────────────────────────────┤
  │  Stage2: Miller loop 누적                                │
  │    in : pubkey, signature, Hm  (Hm 은 Stage1 결과로 신뢰) │
  │    out: miller_out(Fp12)                                 │
  ├──────────────────────────────────────────────────────────┤
  │  Stage3: 최종 지수승 == 1                                │
  │    in : miller_out                                       │
  │    out: 없음 (만족 여부 자체가 판정)                       │
  └──────────────────────────────────────────────────────────┘

어떤 검사라도 실패하면 그 단계는 만족 불가(unsatisfiable)이며
StageUnsatisfiable 을 던진다. 재시도 대상이 아니다.
"""

from blssplit.chain.records import WitnessRecord
from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.circuit.limbs import (
    decode_fq12,
    decode_fq2,
    decode_g1,
    decode_g2,
    encode_fq12,
    encode_g2,
    is_canonical,
    limbs_in_range,
    parse_scalar,
)
from blssplit.circuit.primitives import PairingPrimitives
from blssplit.circuit.tensor import flatten, unflatten
from blssplit.errors import StageUnsatisfiable


class StageContract:
    """단계 계약의 공통 골격: 입력 파싱 → relation → 공개 레코드 조립."""

    stage = None

    def __init__(self, primitives=None, layout=SIGNAL_LAYOUT):
        self.primitives = primitives or PairingPrimitives()
        self.layout = layout.stage(self.stage)

    def read_inputs(self, document):
        """문서에서 선언된 입력을 꺼내 정수 텐서로 변환한다."""
        missing = [name for name in self.layout.input_names if name not in document]
        if missing:
            self.fail(f"missing inputs {missing}")
        inputs = {}
        for name in self.layout.input_names:
            signal = self.layout.signal(name)
            try:
                flat = [parse_scalar(v) for v in flatten(document[name], signal.shape)]
            except ValueError as exc:
                self.fail(f"{name}: {exc}")
            inputs[name] = unflatten(flat, signal.shape)
        return inputs

    def relation(self, inputs):
        """제약을 평가하고 {출력 이름: 텐서} 를 돌려준다."""
        raise NotImplementedError

    def evaluate(self, document):
        inputs = self.read_inputs(document)
        outputs = self.relation(inputs)
        values = [1]
        for signal in self.layout.public:
            source = outputs if signal in self.layout.outputs else inputs
            values.extend(int(v) for v in flatten(source[signal.name], signal.shape))
        return WitnessRecord(self.stage, tuple(values), n_public=len(values) - 1)

    def fail(self, reason):
        raise StageUnsatisfiable(self.stage, reason)


class Stage1Contract(StageContract):
    """검증 + MapToG2."""

    stage = 1

    def check_coordinates(self, name, tensor):
        # 2D range check: every limb in [0, 2^n); then BigLessThan(p) per coordinate
        coords = flatten_coords(tensor)
        for i, limbs in enumerate(coords):
            if not limbs_in_range(limbs):
                self.fail(f"{name} coordinate {i} has a limb outside [0, 2^55)")
            if not is_canonical(limbs):
                self.fail(f"{name} coordinate {i} is not less than the field modulus")

    def relation(self, inputs):
        for name in ("pubkey", "signature", "hash"):
            self.check_coordinates(name, inputs[name])

        pubkey = decode_g1(inputs["pubkey"])
        signature = decode_g2(inputs["signature"])
        if not self.primitives.validate_g1(pubkey):
            self.fail("pubkey is not a G1 point of prime order")
        if not self.primitives.validate_g2(signature):
            self.fail("signature is not a G2 point of prime order")

        u0, u1 = (decode_fq2(u) for u in inputs["hash"])
        hm = self.primitives.map_to_g2(u0, u1)
        if self.primitives.is_infinity(hm):
            self.fail("hash maps to the point at infinity")
        return {"Hm": encode_g2(hm)}


class Stage2Contract(StageContract):
    """두 쌍 Miller loop: ML(-S, G1) · ML(Hm, pubkey)."""

    stage = 2

    def relation(self, inputs):
        pubkey = decode_g1(inputs["pubkey"])
        signature = decode_g2(inputs["signature"])
        hm = decode_g2(inputs["Hm"])

        neg_signature = self.primitives.negate(signature)
        pairs = [
            (neg_signature, self.primitives.generator_g1),
            (hm, pubkey),
        ]
        try:
            miller_out = self.primitives.accumulate(pairs)
        except ValueError as exc:
            self.fail(str(exc))
        return {"miller_out": encode_fq12(miller_out)}


class Stage3Contract(StageContract):
    """최종 지수승 후 Fp12 항등원과 비교."""

    stage = 3

    def relation(self, inputs):
        f = decode_fq12(inputs["miller_out"])
        if not self.primitives.is_identity(self.primitives.finalize(f)):
            self.fail("final exponentiation is not the identity: signature invalid")
        return {}


def flatten_coords(tensor):
    """마지막 축(limb)을 제외하고 평탄화 → 좌표별 limb 리스트."""
    if tensor and not isinstance(tensor[0], list):
        return [tensor]
    coords = []
    for item in tensor:
        coords.extend(flatten_coords(item))
    return coords


CONTRACTS = {
    1: Stage1Contract,
    2: Stage2Contract,
    3: Stage3Contract,
}


def build_contracts(primitives=None, layout=SIGNAL_LAYOUT):
    primitives = primitives or PairingPrimitives()
    return {stage: cls(primitives, layout) for stage, cls in CONTRACTS.items()}
