"""
분할 회로 오케스트레이터 (Orchestrator)
========================================

세 단계의 컴파일 → witness → setup → 증명 → 검증 → 체인 검증을
순서대로, 멱등적으로 수행한다.

  ┌───────────────────────────────────────────────────────────────┐
  │  compile   : part1..3 .r1cs/.wasm        (있으면 건너뜀)       │
  │  witness   : input → w1 ─Hm→ w2 ─miller_out→ w3  (체인)        │
  │              + witness 수준 경계 점검 (조기 발견)               │
  │  setup     : zkey new/contribute/vkey    (r1cs 같으면 건너뜀)  │
  │  prove     : proof.json + public.json    (witness 같으면 건너뜀)│
  │  verify    : 단계별 Groth16 검증                              │
  │  chain     : public1 ↔ public2 ↔ public3 경계 일치              │
  │  export    : Solidity verifier + calldata (선택)               │
  └───────────────────────────────────────────────────────────────┘

Stage2 의 입력은 Stage1 의 출력에, Stage3 는 Stage2 에 데이터 의존하므로
단계 간 병렬성은 없다. 외부 프로세스 실패는 재시도 없이 즉시 중단한다.
재실행 시 기존 산출물이 유효하면 아무것도 다시 계산하거나 쓰지 않는다.
"""

import logging
import secrets
import time
from enum import IntEnum

from blssplit.chain.extractor import ChainExtractor
from blssplit.chain.records import dump_json, load_json, load_public, load_witness
from blssplit.chain.verifier import ChainVerifier
from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.errors import (
    ChainMismatch,
    ExternalToolFailure,
    ExtractionError,
    LayoutMismatch,
    SplitError,
    ValidationFailure,
)
from blssplit.groth16.verifying import verify_aggregate, verify_stage
from blssplit.pipeline.ledger import Ledger, file_digest, text_digest
from blssplit.pipeline.preflight import format_preflight, run_preflight
from blssplit.pipeline.toolchain import (
    CircomToolchain,
    ReferenceWitnessBackend,
    WasmWitnessBackend,
    require_artifact,
)

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    OK = 0
    SIGNATURE_INVALID = 2
    COMPILE = 10
    WITNESS = 20
    SETUP = 30
    PROVE = 40
    VERIFY = 50
    CHAIN = 60
    EXPORT = 70
    PREREQS = 80
    LAYOUT = 90


PHASE_EXIT_CODES = {
    "check-prereqs": ExitCode.PREREQS,
    "compile": ExitCode.COMPILE,
    "witness": ExitCode.WITNESS,
    "setup": ExitCode.SETUP,
    "prove": ExitCode.PROVE,
    "verify": ExitCode.VERIFY,
    "verify-chain": ExitCode.CHAIN,
    "export-verifiers": ExitCode.EXPORT,
}

FULL_PHASES = ("compile", "witness", "setup", "prove", "verify", "verify-chain",
               "export-verifiers")


def log_step(title):
    logger.info("=" * 40)
    logger.info(title)
    logger.info("=" * 40)


class Orchestrator:

    def __init__(self, config, toolchain=None, witness_backend=None, ledger=None,
                 layout=SIGNAL_LAYOUT):
        self.config = config
        self.layout = layout
        self.toolchain = toolchain or CircomToolchain(config)
        if witness_backend is None:
            if config.witness_backend == "reference":
                witness_backend = ReferenceWitnessBackend(config)
            else:
                witness_backend = WasmWitnessBackend(self.toolchain)
        self.witness_backend = witness_backend
        self.ledger = ledger or Ledger(config.ledger_path)
        self.extractor = ChainExtractor(layout)
        self.verifier = ChainVerifier(layout)
        self.performed = []

    def _stages(self, stages):
        return tuple(stages) if stages else tuple(self.config.stages)

    def _skip(self, what, stage):
        logger.info("---- %s for stage %d already up to date, skipping", what, stage)

    def _timed(self, phase, stage, fn):
        logger.info("---- %s stage %d", phase, stage)
        start = time.monotonic()
        result = fn()
        elapsed = time.monotonic() - start
        logger.info("stage %d %s done in %.1fs", stage, phase, elapsed)
        self.performed.append((phase, stage))
        return result, elapsed

    # ── compile ──

    def compile(self, stages=None):
        log_step("PHASE: Compiling circuits")
        for stage in self._stages(stages):
            r1cs = self.config.r1cs_path(stage)
            if r1cs.exists():
                self._skip("compile", stage)
                continue
            _, elapsed = self._timed("compile", stage, lambda: self.toolchain.compile(stage))
            self.ledger.record("compile", stage, r1cs, elapsed_s=elapsed)

    # ── witness ──

    def load_request(self):
        path = require_artifact(self.config.input_file, "provide an input document")
        request = load_json(path)
        if not isinstance(request, dict):
            raise ExtractionError(f"{path}: expected a JSON object of named inputs")
        return request

    def witness_record(self, stage):
        path = require_artifact(self.config.witness_path(stage), "witness")
        return load_witness(path, stage, self.witness_backend.public_count(stage))

    def stage_input(self, stage, request):
        """단계 입력 문서: Stage1 은 요청 그대로, 이후 단계는 이전 witness 에서 추출."""
        if stage == 1:
            names = self.layout.stage(1).input_names
            return self.extractor.build_input(
                1, {}, {n: request[n] for n in names if n in request})
        return self.extractor.next_input(self.witness_record(stage - 1), stage, request)

    def witness(self, stages=None):
        log_step("PHASE: Generating witnesses (with chaining)")
        request = self.load_request()
        for stage in self._stages(stages):
            document = self.stage_input(stage, request)
            text = dump_json(document)
            digest = text_digest(text)
            witness_path = self.config.witness_path(stage)
            if self.ledger.is_fresh("witness", stage, witness_path, digest):
                self._skip("witness", stage)
                continue
            input_path = self.config.input_path(stage)
            input_path.parent.mkdir(parents=True, exist_ok=True)
            input_path.write_text(text)
            _, elapsed = self._timed(
                "witness", stage, lambda: self.witness_backend.generate(stage, input_path))
            self.ledger.record("witness", stage, witness_path, digest, elapsed)
        self.check_witness_chain()

    def check_witness_chain(self):
        records = {}
        for stage in self.config.stages:
            if self.config.witness_path(stage).exists():
                records[stage] = self.extractor.public_view(self.witness_record(stage))
        return self.verifier.require_consistent(records)

    # ── setup ──

    def setup_fresh(self, stage, r1cs_digest):
        """zkey 가 현재 r1cs 로 만들어졌는가. 원장 밖에서 만든 zkey 는 vkey 까지 있어야 완료로 본다."""
        zkey = self.config.zkey_path(stage)
        if self.ledger.get("setup", stage) is None:
            return zkey.exists() and self.config.vkey_path(stage).exists()
        return self.ledger.is_fresh("setup", stage, zkey, r1cs_digest)

    def setup(self, stages=None):
        log_step("PHASE: Generating trusted setup (zkeys)")
        pending = {}
        for stage in self._stages(stages):
            digest = file_digest(require_artifact(self.config.r1cs_path(stage), "compile"))
            if self.setup_fresh(stage, digest):
                self._skip("zkey", stage)
            else:
                pending[stage] = digest
        if not pending:
            return
        ptau = self.config.resolve_ptau()
        for stage, digest in pending.items():
            entropy = secrets.token_hex(32)
            _, elapsed = self._timed(
                "setup", stage, lambda: self.toolchain.setup(stage, ptau, entropy))
            self.ledger.record("setup", stage, self.config.zkey_path(stage), digest, elapsed)

    # ── prove / verify ──

    def prove(self, stages=None):
        log_step("PHASE: Generating proofs")
        for stage in self._stages(stages):
            digest = text_digest(
                file_digest(require_artifact(self.config.wtns_path(stage), "witness"))
                + file_digest(require_artifact(self.config.zkey_path(stage), "setup")))
            proof = self.config.proof_path(stage)
            if (self.config.public_path(stage).exists()
                    and self.ledger.is_fresh("prove", stage, proof, digest)):
                self._skip("proof", stage)
                continue
            _, elapsed = self._timed("prove", stage, lambda: self.toolchain.prove(stage))
            self.ledger.record("prove", stage, proof, digest, elapsed)

    def stage_artifacts(self, stage):
        return (
            stage,
            require_artifact(self.config.vkey_path(stage), "setup"),
            require_artifact(self.config.proof_path(stage), "prove"),
            require_artifact(self.config.public_path(stage), "prove"),
        )

    def verify(self, stages=None):
        log_step("PHASE: Verifying proofs")
        stages = self._stages(stages)
        if not self.config.native_verify:
            for stage in stages:
                self.toolchain.verify(stage)
            return None
        if set(stages) != set(self.layout.stage_numbers):
            for stage in stages:
                ok, _ = verify_stage(*self.stage_artifacts(stage), self.layout)
                if not ok:
                    raise ExternalToolFailure(f"stage {stage} proof does not verify")
                logger.info("stage %d proof verified (native)", stage)
            return None

        # all stages: proofs and boundaries over the same proved public records
        result = verify_aggregate([self.stage_artifacts(s) for s in stages], self.layout)
        for stage, ok in sorted(result["proofs"].items()):
            if not ok:
                raise ExternalToolFailure(f"stage {stage} proof does not verify")
        for report in result["boundaries"]:
            if not report.matched:
                raise ChainMismatch(report)
        logger.info("all %d proofs verified (native), %d boundaries consistent",
                    len(result["proofs"]), len(result["boundaries"]))
        return result

    def verify_chain(self, stages=None):
        log_step("PHASE: Verifying chain consistency")
        records = {
            stage: load_public(require_artifact(self.config.public_path(stage), "prove"), stage)
            for stage in self.config.stages
        }
        reports = self.verifier.require_consistent(records)
        logger.info("All chain verifications passed (%d boundaries)", len(reports))
        return reports

    # ── export ──

    def export_verifiers(self, stages=None):
        log_step("PHASE: Exporting Solidity verifiers")
        self.config.verifier_dir.mkdir(parents=True, exist_ok=True)
        for stage in self._stages(stages):
            if not self.config.zkey_path(stage).exists():
                logger.warning("zkey for part %d not found, skipping verifier export", stage)
                continue
            if self.config.verifier_path(stage).exists():
                self._skip("verifier export", stage)
            else:
                self._timed("export", stage, lambda: self.toolchain.export_verifier(stage))
            if (self.config.proof_path(stage).exists() and self.config.public_path(stage).exists()
                    and not self.config.calldata_path(stage).exists()):
                self._timed("calldata", stage, lambda: self.toolchain.export_calldata(stage))

    def check_prereqs(self, stages=None):
        result = run_preflight(self.config)
        for line in format_preflight(result).splitlines():
            logger.info(line)
        if not result.all_passed:
            raise ExternalToolFailure("prerequisites missing: " + ", ".join(result.failed))
        return result

    # ── driver ──

    def phase(self, name):
        return {
            "check-prereqs": self.check_prereqs,
            "compile": self.compile,
            "witness": self.witness,
            "setup": self.setup,
            "prove": self.prove,
            "verify": self.verify,
            "verify-chain": self.verify_chain,
            "export-verifiers": self.export_verifiers,
        }[name]

    def run(self, phases, stages=None):
        """phases 를 순서대로 실행하고 ExitCode 를 돌려준다."""
        self.config.ensure_dirs()
        for name in phases:
            try:
                self.phase(name)(stages)
            except ValidationFailure as exc:
                logger.error("signature invalid: %s", exc)
                return ExitCode.SIGNATURE_INVALID
            except LayoutMismatch as exc:
                logger.error("signal layout mismatch in %s: %s", name, exc)
                return ExitCode.LAYOUT
            except SplitError as exc:
                logger.error("phase %s failed: %s", name, exc)
                return PHASE_EXIT_CODES[name]
        logger.info("Done!")
        return ExitCode.OK

    def full(self, stages=None, export=True):
        phases = FULL_PHASES if export else FULL_PHASES[:-1]
        return self.run(phases, stages)
