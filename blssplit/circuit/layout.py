"""
단계별 공개 신호 레이아웃 (Signal Layout)
===========================================

세 회로는 독립적으로 컴파일되므로, 경계 값을 정확히 옮기려면 각 단계의
공개 신호 순서와 오프셋이 모든 도구에서 똑같이 해석되어야 한다.
이 모듈은 그 오프셋 표의 **유일한 출처(single source of truth)** 이다.

**공개 신호 순서**: circom 규칙에 따라 출력(output) → 공개 입력(public input).

  | 단계 | 공개 순서                                          | 합계 |
  |------|---------------------------------------------------|------|
  | 1    | Hm(28), pubkey(14), signature(28), hash(28)       |  98  |
  | 2    | miller_out(84), pubkey(14), signature(28), Hm(28) | 154  |
  | 3    | miller_out(84)                                    |  84  |

**두 가지 시점(view)**:
  - PublicRecord : 공개 신호만 (public.json)        → offset = start
  - WitnessRecord: [1, 공개..., 비공개...] (witness) → offset = start + 1

**경계 신호(boundary signal)**:
  | 이름       | 형태      | 생산 → 소비 | 종류        |
  |------------|-----------|-------------|-------------|
  | Hm         | (2, 2, 7) | 1 → 2       | output      |
  | miller_out | (6, 2, 7) | 2 → 3       | output      |
  | pubkey     | (2, 7)    | 1 → 2       | passthrough |
  | signature  | (2, 2, 7) | 1 → 2       | passthrough |

사용 예시:
    >>> SIGNAL_LAYOUT.get_offset(2, "Hm")
    (126, 28)
    >>> SIGNAL_LAYOUT.stage(2).witness_offset("Hm")
    (127, 28)
"""

from dataclasses import dataclass

from blssplit.circuit.limbs import G1_SHAPE, G2_SHAPE, FQ12_SHAPE
from blssplit.circuit.tensor import shape_size
from blssplit.errors import LayoutMismatch


@dataclass(frozen=True)
class Signal:
    """이름과 형태를 가진 공개 신호 선언."""
    name: str
    shape: tuple

    @property
    def length(self):
        return shape_size(self.shape)


@dataclass(frozen=True)
class BoundarySignal:
    """단계 경계를 넘는 공개 값.

    kind:
        "output"      : 생산 단계의 출력을 다음 단계 입력으로 복사
        "passthrough" : 원래 요청에서 그대로 복사되는 공개 입력
    """
    name: str
    shape: tuple
    producer: int
    consumer: int
    kind: str = "output"

    @property
    def length(self):
        return shape_size(self.shape)


class StageLayout:
    """한 단계의 선언된 출력/공개 입력과 그로부터 생성된 오프셋 표."""

    def __init__(self, stage, outputs, inputs):
        self.stage = stage
        self.outputs = tuple(outputs)
        self.inputs = tuple(inputs)
        self.public = self.outputs + self.inputs

        self._offsets = {}
        start = 0
        for signal in self.public:
            self._offsets[signal.name] = (start, signal.length)
            start += signal.length
        self.total = start

    def __repr__(self):
        return f"StageLayout(stage={self.stage}, total={self.total})"

    def signal(self, name):
        for signal in self.public:
            if signal.name == name:
                return signal
        raise LayoutMismatch(f"stage {self.stage} declares no signal named {name!r}")

    @property
    def input_names(self):
        """입력 문서에 필요한 입력 이름, 선언 순서."""
        return [s.name for s in self.inputs]

    def get_offset(self, name):
        """PublicRecord 기준 (start, length)."""
        try:
            return self._offsets[name]
        except KeyError:
            raise LayoutMismatch(
                f"stage {self.stage} has no public signal named {name!r}"
            ) from None

    def witness_offset(self, name):
        """WitnessRecord 기준 (start, length): 인덱스 0 의 상수 1 때문에 +1."""
        start, length = self.get_offset(name)
        return start + 1, length

    def check_public_length(self, measured):
        """측정된 PublicRecord 길이가 선언된 합계와 같은지 확인한다.

        Raises:
            LayoutMismatch: 길이가 다를 때 (빌드/설정 결함)
        """
        if measured != self.total:
            raise LayoutMismatch(
                f"stage {self.stage} public record has {measured} values, "
                f"layout declares {self.total} "
                f"({', '.join(f'{s.name}({s.length})' for s in self.public)})"
            )

    def table(self):
        """오프셋 표 [(name, shape, start, length), ...]."""
        return [
            (s.name, s.shape, self._offsets[s.name][0], s.length)
            for s in self.public
        ]


class SignalLayout:
    """모든 단계의 레이아웃과 경계 신호 선언."""

    def __init__(self, stages, boundaries):
        self._stages = {layout.stage: layout for layout in stages}
        self.boundaries = tuple(boundaries)

    @property
    def stage_numbers(self):
        return tuple(sorted(self._stages))

    def stage(self, stage):
        try:
            return self._stages[stage]
        except KeyError:
            raise LayoutMismatch(f"no layout declared for stage {stage!r}") from None

    def get_offset(self, stage, name):
        return self.stage(stage).get_offset(name)

    def check_public_length(self, stage, measured):
        self.stage(stage).check_public_length(measured)

    def boundaries_into(self, consumer, kind=None):
        return [
            b for b in self.boundaries
            if b.consumer == consumer and (kind is None or b.kind == kind)
        ]

    def boundary(self, name, producer, consumer):
        for b in self.boundaries:
            if (b.name, b.producer, b.consumer) == (name, producer, consumer):
                return b
        raise LayoutMismatch(f"no boundary {name!r} declared from stage {producer} to {consumer}")

    def validate(self):
        """모든 경계 신호의 형태가 생산/소비 단계 선언과 일치하는지 확인한다."""
        for b in self.boundaries:
            for stage in (b.producer, b.consumer):
                declared = self.stage(stage).signal(b.name)
                if tuple(declared.shape) != tuple(b.shape):
                    raise LayoutMismatch(
                        f"boundary {b.name!r} has shape {b.shape} but stage {stage} "
                        f"declares {declared.shape}"
                    )
            if b.consumer <= b.producer:
                raise LayoutMismatch(f"boundary {b.name!r} does not flow forward")
        return self


# ─────────────────────────────────────────────────────────────────────
# 선언 (declaration)
# ─────────────────────────────────────────────────────────────────────

HM = Signal("Hm", G2_SHAPE)
PUBKEY = Signal("pubkey", G1_SHAPE)
SIGNATURE = Signal("signature", G2_SHAPE)
HASH = Signal("hash", G2_SHAPE)
MILLER_OUT = Signal("miller_out", FQ12_SHAPE)

STAGE_LAYOUTS = (
    StageLayout(1, outputs=[HM], inputs=[PUBKEY, SIGNATURE, HASH]),
    StageLayout(2, outputs=[MILLER_OUT], inputs=[PUBKEY, SIGNATURE, HM]),
    StageLayout(3, outputs=[], inputs=[MILLER_OUT]),
)

BOUNDARIES = (
    BoundarySignal("Hm", G2_SHAPE, 1, 2, "output"),
    BoundarySignal("miller_out", FQ12_SHAPE, 2, 3, "output"),
    BoundarySignal("pubkey", G1_SHAPE, 1, 2, "passthrough"),
    BoundarySignal("signature", G2_SHAPE, 1, 2, "passthrough"),
)

SIGNAL_LAYOUT = SignalLayout(STAGE_LAYOUTS, BOUNDARIES).validate()
