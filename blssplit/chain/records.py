"""
Witness / Public 레코드
========================

외부 witness 생성기와 prover 가 주고받는 평탄한 값 배열을 감싼다.

  witness.json : [1, 공개 신호..., 비공개 신호...]   (인덱스 0 은 항상 1)
  public.json  : [공개 신호...]                     (witness[1 : 1+P])

두 레코드 모두 생성 이후 변경되지 않는다 (튜플 보관).
값은 정수로 보관하고 파일에는 10진 문자열로 쓴다.
"""

import json
from dataclasses import dataclass
from pathlib import Path

from blssplit.circuit.limbs import parse_scalar
from blssplit.errors import ExtractionError


@dataclass(frozen=True)
class PublicRecord:
    stage: int
    values: tuple

    def __len__(self):
        return len(self.values)

    def to_json(self):
        return [str(v) for v in self.values]


@dataclass(frozen=True)
class WitnessRecord:
    """한 단계의 전체 witness.

    n_public 은 컴파일된 산출물에서 *측정한* 공개 신호 수이며,
    레이아웃 선언과의 비교는 추출 시점에 이루어진다.
    """
    stage: int
    values: tuple
    n_public: int

    def __post_init__(self):
        if not self.values or self.values[0] != 1:
            raise ExtractionError(
                f"stage {self.stage} witness must start with the constant 1"
            )
        if len(self.values) < 1 + self.n_public:
            raise ExtractionError(
                f"stage {self.stage} witness has {len(self.values)} values, "
                f"too short for {self.n_public} public signals"
            )

    def public_record(self):
        return PublicRecord(self.stage, self.values[1:1 + self.n_public])

    def to_json(self):
        return [str(v) for v in self.values]


def _parse_values(data, path):
    if not isinstance(data, list):
        raise ExtractionError(f"{path}: expected a JSON array of field values")
    try:
        return tuple(parse_scalar(v) for v in data)
    except ValueError as exc:
        raise ExtractionError(f"{path}: {exc}") from exc


def load_json(path):
    """JSON 문서를 읽는다. 깨진 문서는 경로와 함께 ExtractionError."""
    try:
        with open(path) as f:
            return json.load(f)
    except ValueError as exc:
        raise ExtractionError(f"{path}: not a valid JSON document ({exc})") from exc


def load_witness(path, stage, n_public):
    data = load_json(path)
    return WitnessRecord(stage, _parse_values(data, path), n_public)


def load_public(path, stage):
    data = load_json(path)
    return PublicRecord(stage, _parse_values(data, path))


def dump_json(doc):
    """결정적(deterministic) 직렬화: 재실행 시 바이트 단위로 같은 파일."""
    return json.dumps(doc, indent=2) + "\n"


def save_json(path, doc):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(dump_json(doc))
