"""
경계 일관성 검증기 (Chain Verifier)
====================================

세 증명은 서로 독립적으로 생성·검증되므로, 증명 시스템 자체는
"Stage1 의 Hm 출력 == Stage2 의 Hm 입력" 을 보장하지 않는다.
이 모듈은 두 단계의 PublicRecord 에서 경계 신호를 꺼내 값 단위로
정확히 비교하고, 첫 불일치 위치와 양쪽 값을 보고한다.

  Hm         : public1[0:28]   ↔ public2[126:154]
  miller_out : public2[0:84]   ↔ public3[0:84]
  pubkey     : public1[28:42]  ↔ public2[84:98]
  signature  : public1[42:70]  ↔ public2[98:126]

빌드 시점 진단 도구이다. 건전성(soundness)을 위해서는 증명된 공개 출력에
대해 집계 검증기(aggregator)가 같은 비교를 다시 수행해야 한다.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.errors import ChainMismatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundaryReport:
    signal: str
    producer: int
    consumer: int
    length: int
    producer_start: int
    consumer_start: int
    first_mismatch: Optional[int] = None
    producer_value: Optional[int] = None
    consumer_value: Optional[int] = None

    @property
    def matched(self):
        return self.first_mismatch is None

    def describe(self):
        arrow = f"{self.signal} (stage {self.producer} -> stage {self.consumer})"
        if self.matched:
            return f"{arrow}: {self.length} values match"
        i = self.first_mismatch
        return (
            f"{arrow}: first mismatch at index {i}: "
            f"stage {self.producer} public[{self.producer_start + i}] = {self.producer_value}, "
            f"stage {self.consumer} public[{self.consumer_start + i}] = {self.consumer_value}"
        )

    def as_dict(self):
        return {
            "signal": self.signal,
            "producer": self.producer,
            "consumer": self.consumer,
            "length": self.length,
            "matched": self.matched,
            "first_mismatch": self.first_mismatch,
            "producer_value": None if self.producer_value is None else str(self.producer_value),
            "consumer_value": None if self.consumer_value is None else str(self.consumer_value),
        }


class ChainVerifier:

    def __init__(self, layout=SIGNAL_LAYOUT):
        self.layout = layout

    def check_boundary(self, boundary, producer_record, consumer_record):
        """한 경계 신호를 전체 선언 길이에 걸쳐 비교한다."""
        for record, stage in ((producer_record, boundary.producer),
                              (consumer_record, boundary.consumer)):
            if record.stage != stage:
                raise ValueError(
                    f"{boundary.name}: expected a stage {stage} record, got stage {record.stage}"
                )
            self.layout.check_public_length(stage, len(record))

        p_start, length = self.layout.get_offset(boundary.producer, boundary.name)
        c_start, _ = self.layout.get_offset(boundary.consumer, boundary.name)
        left = producer_record.values[p_start:p_start + length]
        right = consumer_record.values[c_start:c_start + length]

        report = BoundaryReport(boundary.name, boundary.producer, boundary.consumer,
                                length, p_start, c_start)
        for i in range(length):
            if int(left[i]) != int(right[i]):
                report = BoundaryReport(
                    boundary.name, boundary.producer, boundary.consumer,
                    length, p_start, c_start,
                    first_mismatch=i,
                    producer_value=int(left[i]),
                    consumer_value=int(right[i]),
                )
                break
        logger.info(report.describe())
        return report

    def check_chain(self, records, include_passthrough=True):
        """records: {stage: PublicRecord}. 양쪽 레코드가 모두 있는 경계만 비교한다."""
        reports = []
        for boundary in self.layout.boundaries:
            if boundary.kind == "passthrough" and not include_passthrough:
                continue
            if boundary.producer not in records or boundary.consumer not in records:
                continue
            reports.append(self.check_boundary(
                boundary, records[boundary.producer], records[boundary.consumer]))
        return reports

    def require_consistent(self, records, include_passthrough=True):
        """불일치가 하나라도 있으면 ChainMismatch."""
        reports = self.check_chain(records, include_passthrough)
        for report in reports:
            if not report.matched:
                raise ChainMismatch(report)
        return reports
