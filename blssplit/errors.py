"""
분할 검증 파이프라인 오류 분류 (Error Taxonomy)
================================================

세 단계(stage)로 나뉜 BLS 서명 검증에서 발생하는 실패를 종류별로 구분한다.

  | 오류                 | 의미                                   | 치명적? |
  |----------------------|----------------------------------------|---------|
  | ValidationFailure    | 단계 제약이 만족 불가 → "서명 무효"     | 아니오  |
  | LayoutMismatch       | 선언된 신호 길이 ≠ 측정된 길이          | 예      |
  | ExtractionError      | 경계 신호 추출 시 길이/형태 불일치       | 예      |
  | ChainMismatch        | 단계 경계 값이 서로 다름                | 예      |
  | ExternalToolFailure  | 외부 프로세스 비정상 종료 / 산출물 누락  | 예      |

ValidationFailure만이 정당한 부정 판정(negative verdict)이며,
나머지는 모두 운영상 결함으로 재실행 없이 디버깅할 수 있을 만큼의
문맥을 담아야 한다.
"""


class SplitError(Exception):
    """Base class for every failure raised by the split pipeline."""


class ValidationFailure(SplitError):
    """The signature, public key or hash does not satisfy a stage."""


class StageUnsatisfiable(ValidationFailure):

    def __init__(self, stage, reason):
        super().__init__(f"stage {stage} unsatisfiable: {reason}")
        self.stage = stage
        self.reason = reason


class LayoutMismatch(SplitError):
    """Declared and measured public-signal layouts disagree."""


class ExtractionError(SplitError):
    """A boundary value could not be copied out of a source record."""


class ChainMismatch(SplitError):
    """A value shared across a stage boundary differs between the two stages."""

    def __init__(self, report):
        super().__init__(report.describe())
        self.report = report


class ExternalToolFailure(SplitError):
    """An external collaborator exited abnormally or left no artifact."""

    def __init__(self, message, command=None, returncode=None, output=""):
        super().__init__(message)
        self.command = list(command) if command else []
        self.returncode = returncode
        self.output = output

    def __str__(self):
        text = self.args[0]
        if self.command:
            text += f"\n  command: {' '.join(str(c) for c in self.command)}"
        if self.returncode is not None:
            text += f"\n  exit code: {self.returncode}"
        if self.output:
            tail = self.output.strip().splitlines()[-20:]
            text += "\n  output (tail):\n    " + "\n    ".join(tail)
        return text
