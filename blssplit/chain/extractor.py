"""
경계 값 추출기 (Chain Extractor)
=================================

이전 단계의 완성된 witness 에서 다음 단계의 입력 문서를 만든다.

  witness(stage1) ──extract "Hm"──▶ flat[28] ──reshape──▶ Hm[2][2][7]
                                                          │
  원래 요청 ──── pubkey, signature (passthrough) ──────────┤
                                                          ▼
                                                 input.json (stage2)

길이가 선언과 다르면 절대 자르거나 채우지 않고 실패한다:
  - 측정된 공개 레코드 길이 ≠ 레이아웃 합계 → LayoutMismatch (추출 전에)
  - 슬라이스/형태 불일치                   → ExtractionError

passthrough 입력은 이전 witness 에서 다시 추출하지 않고 원래 요청에서
복사하므로, 그 일관성은 ChainVerifier 가 따로 확인한다.
"""

import logging

from blssplit.chain.records import WitnessRecord
from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.circuit.limbs import to_decimal
from blssplit.circuit.tensor import flatten, shape_size, unflatten
from blssplit.errors import ExtractionError

logger = logging.getLogger(__name__)


class ChainExtractor:

    def __init__(self, layout=SIGNAL_LAYOUT):
        self.layout = layout

    def public_view(self, source):
        """WitnessRecord 또는 PublicRecord → 길이가 검증된 PublicRecord."""
        record = source.public_record() if isinstance(source, WitnessRecord) else source
        self.layout.check_public_length(record.stage, len(record))
        return record

    def extract_boundary(self, source, name):
        """source 단계의 공개 신호 name 을 평탄한 리스트로 꺼낸다.

        Raises:
            LayoutMismatch: 측정된 공개 신호 수가 선언과 다를 때
            ExtractionError: 슬라이스 길이가 선언 길이와 다를 때
        """
        record = self.public_view(source)
        start, length = self.layout.get_offset(record.stage, name)
        flat = list(record.values[start:start + length])
        if len(flat) != length:
            raise ExtractionError(
                f"stage {record.stage} {name}: expected {length} values at "
                f"[{start}, {start + length}), found {len(flat)}"
            )
        return flat

    def reshape(self, flat, shape):
        if len(flat) != shape_size(shape):
            raise ExtractionError(
                f"cannot reshape {len(flat)} values into {tuple(shape)}"
            )
        return unflatten(flat, shape)

    def build_input(self, stage, named, passthrough=None):
        """다음 단계 입력 문서를 선언된 입력 순서대로 조립한다.

        Args:
            stage: 대상 단계
            named: 이전 단계에서 추출한 {이름: 텐서}
            passthrough: 원래 요청에서 복사하는 {이름: 텐서}
        """
        supplied = dict(passthrough or {})
        overlap = set(supplied) & set(named)
        if overlap:
            raise ExtractionError(f"inputs supplied twice for stage {stage}: {sorted(overlap)}")
        supplied.update(named)

        layout = self.layout.stage(stage)
        expected = layout.input_names
        missing = [n for n in expected if n not in supplied]
        extra = sorted(set(supplied) - set(expected))
        if missing or extra:
            raise ExtractionError(
                f"stage {stage} input mismatch: missing {missing}, unexpected {extra}"
            )

        document = {}
        for name in expected:
            shape = layout.signal(name).shape
            try:
                document[name] = to_decimal(unflatten(flatten(supplied[name], shape), shape))
            except ValueError as exc:
                raise ExtractionError(f"stage {stage} input {name}: {exc}") from exc
        return document

    def next_input(self, source, stage, request):
        """source 단계의 출력과 원래 요청으로 stage 의 입력 문서를 만든다."""
        record = self.public_view(source)
        named = {}
        passthrough = {}
        for boundary in self.layout.boundaries_into(stage):
            if boundary.kind == "output":
                if boundary.producer != record.stage:
                    raise ExtractionError(
                        f"{boundary.name} is produced by stage {boundary.producer}, "
                        f"not stage {record.stage}"
                    )
                flat = self.extract_boundary(record, boundary.name)
                named[boundary.name] = self.reshape(flat, boundary.shape)
                logger.info(
                    "extracted %s (%d values) from stage %d for stage %d",
                    boundary.name, len(flat), record.stage, stage,
                )
            else:
                if boundary.name not in request:
                    raise ExtractionError(
                        f"original request has no {boundary.name!r} to pass through"
                    )
                passthrough[boundary.name] = request[boundary.name]
        return self.build_input(stage, named, passthrough)
