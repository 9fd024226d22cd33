"""
파이프라인 설정 (Pipeline Configuration)
=========================================

메모리 상한, trusted-setup 파라미터(ptau) 경로, 도구 경로 등을
프로세스 전역 변수 대신 하나의 설정 객체로 묶어 Orchestrator 에 전달한다.

**환경 변수** (.env 파일도 읽는다):
  | 변수                        | 의미                                  |
  |-----------------------------|---------------------------------------|
  | BLS_SPLIT_PTAU              | Phase 1 ptau 파일 경로 (최우선)        |
  | BLS_SPLIT_BUILD_DIR         | 산출물 디렉터리                        |
  | BLS_SPLIT_INPUT             | 서명 입력 문서 (input_signature.json)  |
  | BLS_SPLIT_NODE              | node 실행 파일                         |
  | BLS_SPLIT_SNARKJS           | snarkjs 실행 파일                      |
  | BLS_SPLIT_CIRCOM            | circom 실행 파일                       |
  | BLS_SPLIT_PROVER            | rapidsnark prover (선택)               |
  | BLS_SPLIT_WITNESS_BACKEND   | "wasm" 또는 "reference"               |
  | BLS_SPLIT_MEMORY_MARGIN     | 가용 메모리 중 남겨 둘 비율 (기본 0.2) |

**메모리 상한**:
  분할의 목적은 프로세스당 최대 메모리를 약 1/3 로 줄이는 것이다.
  node 힙 상한은 고정값 대신 실행 시점의 가용 메모리에서 안전 여유를
  뺀 값으로 계산한다 (최소 2 GiB).
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import psutil
from dotenv import load_dotenv

from blssplit.errors import ExternalToolFailure

logger = logging.getLogger(__name__)

MIN_HEAP_MB = 2048
WITNESS_BACKENDS = ("wasm", "reference")


def node_heap_limit_mb(available_bytes=None, margin=0.2):
    """가용 메모리에서 margin 비율을 남긴 node 힙 상한 (MiB)."""
    if available_bytes is None:
        available_bytes = psutil.virtual_memory().available
    if not 0 <= margin < 1:
        raise ValueError(f"memory margin must be in [0, 1), got {margin}")
    usable = int(available_bytes * (1 - margin)) // (1024 * 1024)
    return max(MIN_HEAP_MB, usable)


@dataclass
class PipelineConfig:
    base_dir: Path
    build_dir: Path
    input_file: Path
    verifier_dir: Path
    log_dir: Path
    circuits_dir: Path
    ptau_candidates: tuple = ()
    circuit_prefix: str = "signature_part"
    circom: str = "circom"
    node: str = "node"
    snarkjs: str = "snarkjs"
    prover: Optional[str] = None
    witness_backend: str = "wasm"
    native_verify: bool = False
    memory_margin: float = 0.2
    stages: tuple = (1, 2, 3)
    extra_env: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.witness_backend not in WITNESS_BACKENDS:
            raise ValueError(
                f"witness backend must be one of {WITNESS_BACKENDS}, got {self.witness_backend!r}"
            )

    @classmethod
    def from_env(cls, base_dir, env=None, **overrides):
        """base_dir 기준 기본 경로 + BLS_SPLIT_* 환경 변수 + overrides."""
        if env is None:
            load_dotenv()
            env = os.environ
        base_dir = Path(base_dir).resolve()
        build_dir = Path(env.get("BLS_SPLIT_BUILD_DIR", base_dir / "build"))

        ptau_candidates = [
            base_dir / "circuits" / "pot25_final.ptau",
            base_dir / "powers_of_tau" / "powersOfTau28_hez_final_27.ptau",
        ]
        if env.get("BLS_SPLIT_PTAU"):
            ptau_candidates.insert(0, Path(env["BLS_SPLIT_PTAU"]))

        values = dict(
            base_dir=base_dir,
            build_dir=build_dir,
            input_file=Path(env.get("BLS_SPLIT_INPUT", base_dir / "input_signature.json")),
            verifier_dir=base_dir / "verifiers",
            log_dir=base_dir / "logs",
            circuits_dir=base_dir / "circuits",
            ptau_candidates=tuple(ptau_candidates),
            circom=env.get("BLS_SPLIT_CIRCOM", "circom"),
            node=env.get("BLS_SPLIT_NODE", "node"),
            snarkjs=env.get("BLS_SPLIT_SNARKJS", "snarkjs"),
            prover=env.get("BLS_SPLIT_PROVER") or None,
            witness_backend=env.get("BLS_SPLIT_WITNESS_BACKEND", "wasm"),
            memory_margin=float(env.get("BLS_SPLIT_MEMORY_MARGIN", 0.2)),
        )
        ptau_override = overrides.pop("ptau", None)
        values.update({k: v for k, v in overrides.items() if v is not None})
        if ptau_override:
            values["ptau_candidates"] = (Path(ptau_override),) + tuple(values["ptau_candidates"])
        return cls(**values)

    # ── 경로 ──

    def circuit_name(self, stage):
        return f"{self.circuit_prefix}{stage}"

    def stage_dir(self, stage):
        return self.build_dir / f"part{stage}"

    def circuit_source(self, stage):
        return self.circuits_dir / f"{self.circuit_name(stage)}.circom"

    def r1cs_path(self, stage):
        return self.stage_dir(stage) / f"{self.circuit_name(stage)}.r1cs"

    def wasm_dir(self, stage):
        return self.stage_dir(stage) / f"{self.circuit_name(stage)}_js"

    def zkey_path(self, stage):
        return self.stage_dir(stage) / f"{self.circuit_name(stage)}.zkey"

    def vkey_path(self, stage):
        return self.stage_dir(stage) / "vkey.json"

    def input_path(self, stage):
        return self.stage_dir(stage) / "input.json"

    def wtns_path(self, stage):
        return self.stage_dir(stage) / "witness.wtns"

    def witness_path(self, stage):
        return self.stage_dir(stage) / "witness.json"

    def proof_path(self, stage):
        return self.stage_dir(stage) / "proof.json"

    def public_path(self, stage):
        return self.stage_dir(stage) / "public.json"

    def calldata_path(self, stage):
        return self.stage_dir(stage) / "calldata.txt"

    def verifier_path(self, stage):
        return self.verifier_dir / f"VerifierPart{stage}.sol"

    @property
    def ledger_path(self):
        return self.build_dir / "ledger.yaml"

    def ensure_dirs(self):
        for stage in self.stages:
            self.stage_dir(stage).mkdir(parents=True, exist_ok=True)
        self.verifier_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    # ── 자원 ──

    def resolve_ptau(self):
        for candidate in self.ptau_candidates:
            if Path(candidate).is_file():
                logger.info("Found Phase 1 ptau file: %s", candidate)
                return Path(candidate)
        raise ExternalToolFailure(
            "no Phase 1 ptau file found; searched: "
            + ", ".join(str(c) for c in self.ptau_candidates)
            + " (set BLS_SPLIT_PTAU or pass --ptau)"
        )

    def node_options(self):
        return [f"--max-old-space-size={node_heap_limit_mb(margin=self.memory_margin)}"]
