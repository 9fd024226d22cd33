"""
외부 도구 연동 (External Toolchain)
====================================

컴파일, witness 생성, trusted setup, 증명은 외부 프로세스가 담당한다.

  | 작업        | 도구                                            |
  |-------------|-------------------------------------------------|
  | compile     | circom --O1 --r1cs --wasm --sym                 |
  | witness     | node generate_witness.js → snarkjs wtns export  |
  | setup       | snarkjs zkey new / contribute / export vkey     |
  | prove       | rapidsnark (있으면) 또는 snarkjs groth16 prove   |
  | verify      | snarkjs groth16 verify                          |
  | export      | snarkjs zkey export solidityverifier / calldata |

모든 명령은 ToolRunner 를 거쳐 실행된다. 출력은 run log 에 남기고,
0 이 아닌 종료 코드는 자동 재시도 없이 ExternalToolFailure 로 올린다.
witness 계산기의 "Assert Failed" 는 회로가 만족 불가라는 뜻이므로
StageUnsatisfiable (서명 무효) 로 분류한다.
"""

import json
import logging
import os
import shutil
import struct
import subprocess
import time
from pathlib import Path

from blssplit.chain.records import save_json
from blssplit.circuit.stages import build_contracts
from blssplit.errors import ExternalToolFailure, StageUnsatisfiable

logger = logging.getLogger(__name__)

ASSERT_MARKERS = ("Assert Failed", "assert failed")


class ToolRunner:
    """subprocess 실행 + 출력 캡처 + 실패 시 ExternalToolFailure."""

    def __init__(self, env=None):
        self.env = dict(os.environ, **(env or {}))

    def run(self, cmd, cwd=None, stdout_path=None):
        cmd = [str(c) for c in cmd]
        logger.info("> %s", " ".join(cmd))
        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd, cwd=cwd, env=self.env,
                stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True,
            )
        except FileNotFoundError as exc:
            raise ExternalToolFailure(f"tool not found: {cmd[0]}", command=cmd) from exc

        for line in result.stdout.splitlines():
            logger.info("  %s", line)
        logger.info("  (%s exited %d after %.1fs)", Path(cmd[0]).name, result.returncode,
                    time.monotonic() - start)

        if result.returncode != 0:
            raise ExternalToolFailure(
                f"{Path(cmd[0]).name} failed", command=cmd,
                returncode=result.returncode, output=result.stdout,
            )
        if stdout_path is not None:
            Path(stdout_path).write_text(result.stdout)
        return result.stdout


def require_artifact(path, produced_by):
    if not Path(path).exists():
        raise ExternalToolFailure(f"expected artifact missing: {path} (run `{produced_by}` first)")
    return Path(path)


# ─────────────────────────────────────────────────────────────────────
# R1CS header
# ─────────────────────────────────────────────────────────────────────

def read_r1cs_header(path):
    """circom .r1cs 바이너리의 헤더 섹션을 읽는다.

    형식: "r1cs" | version u32 | nSections u32 | (type u32, size u64, body)*
    헤더(type 1): n8 u32 | prime[n8] | nWires u32 | nPubOut u32 | nPubIn u32 |
                  nPrvIn u32 | nLabels u64 | nConstraints u32
    """
    with open(path, "rb") as f:
        if f.read(4) != b"r1cs":
            raise ExternalToolFailure(f"{path} is not an r1cs file")
        _version, n_sections = struct.unpack("<II", f.read(8))
        for _ in range(n_sections):
            section_type, size = struct.unpack("<IQ", f.read(12))
            if section_type != 1:
                f.seek(size, os.SEEK_CUR)
                continue
            (n8,) = struct.unpack("<I", f.read(4))
            prime = int.from_bytes(f.read(n8), "little")
            n_wires, n_pub_out, n_pub_in, n_prv_in = struct.unpack("<IIII", f.read(16))
            (n_labels,) = struct.unpack("<Q", f.read(8))
            (n_constraints,) = struct.unpack("<I", f.read(4))
            return {
                "prime": prime,
                "nWires": n_wires,
                "nPubOut": n_pub_out,
                "nPubIn": n_pub_in,
                "nPrvIn": n_prv_in,
                "nLabels": n_labels,
                "nConstraints": n_constraints,
                "nPublic": n_pub_out + n_pub_in,
            }
    raise ExternalToolFailure(f"{path} has no r1cs header section")


# ─────────────────────────────────────────────────────────────────────
# circom / snarkjs
# ─────────────────────────────────────────────────────────────────────

class CircomToolchain:

    def __init__(self, config, runner=None):
        self.config = config
        self.runner = runner or ToolRunner(config.extra_env)

    def snarkjs_cmd(self, *args, heavy=False):
        cmd = [self.config.node]
        if heavy:
            cmd += self.config.node_options()
        snarkjs = shutil.which(self.config.snarkjs) or self.config.snarkjs
        return cmd + [snarkjs, *args]

    def compile(self, stage):
        cfg = self.config
        source = require_artifact(cfg.circuit_source(stage), "checkout circuits")
        self.runner.run([
            cfg.circom, source, "--O1", "--r1cs", "--wasm", "--sym",
            "--output", cfg.stage_dir(stage),
        ])
        header = read_r1cs_header(cfg.r1cs_path(stage))
        logger.info(
            "%s: %d constraints, %d wires, %d public (%d out + %d in)",
            cfg.circuit_name(stage), header["nConstraints"], header["nWires"],
            header["nPublic"], header["nPubOut"], header["nPubIn"],
        )
        return cfg.r1cs_path(stage)

    def public_count(self, stage):
        path = require_artifact(self.config.r1cs_path(stage), "compile")
        return read_r1cs_header(path)["nPublic"]

    def setup(self, stage, ptau, entropy):
        cfg = self.config
        r1cs = require_artifact(cfg.r1cs_path(stage), "compile")
        zkey = cfg.zkey_path(stage)
        zkey0 = zkey.with_name(f"{cfg.circuit_name(stage)}_0.zkey")
        self.runner.run(self.snarkjs_cmd("zkey", "new", r1cs, ptau, zkey0, heavy=True))
        self.runner.run(self.snarkjs_cmd(
            "zkey", "contribute", zkey0, zkey,
            "-n=First contribution", f"-e={entropy}",
        ))
        zkey0.unlink(missing_ok=True)
        self.runner.run(self.snarkjs_cmd("zkey", "export", "verificationkey", zkey, cfg.vkey_path(stage)))
        return zkey

    def prove(self, stage):
        cfg = self.config
        zkey = require_artifact(cfg.zkey_path(stage), "setup")
        wtns = require_artifact(cfg.wtns_path(stage), "witness")
        outputs = [cfg.proof_path(stage), cfg.public_path(stage)]
        if cfg.prover and Path(cfg.prover).is_file():
            self.runner.run([cfg.prover, zkey, wtns, *outputs])
        else:
            self.runner.run(self.snarkjs_cmd("groth16", "prove", zkey, wtns, *outputs, heavy=True))
        return outputs

    def verify(self, stage):
        cfg = self.config
        self.runner.run(self.snarkjs_cmd(
            "groth16", "verify",
            require_artifact(cfg.vkey_path(stage), "setup"),
            require_artifact(cfg.public_path(stage), "prove"),
            require_artifact(cfg.proof_path(stage), "prove"),
        ))
        return True

    def export_verifier(self, stage):
        cfg = self.config
        self.runner.run(self.snarkjs_cmd(
            "zkey", "export", "solidityverifier",
            require_artifact(cfg.zkey_path(stage), "setup"), cfg.verifier_path(stage),
        ))
        return cfg.verifier_path(stage)

    def export_calldata(self, stage):
        cfg = self.config
        self.runner.run(
            self.snarkjs_cmd(
                "zkey", "export", "soliditycalldata",
                require_artifact(cfg.public_path(stage), "prove"),
                require_artifact(cfg.proof_path(stage), "prove"),
            ),
            stdout_path=cfg.calldata_path(stage),
        )
        return cfg.calldata_path(stage)


# ─────────────────────────────────────────────────────────────────────
# witness 생성기
# ─────────────────────────────────────────────────────────────────────

class WasmWitnessBackend:
    """컴파일된 wasm witness 계산기 (node) + snarkjs JSON export."""

    def __init__(self, toolchain):
        self.toolchain = toolchain
        self.config = toolchain.config

    def generate(self, stage, input_path):
        cfg = self.config
        name = cfg.circuit_name(stage)
        wasm_dir = require_artifact(cfg.wasm_dir(stage), "compile")
        try:
            self.toolchain.runner.run([
                cfg.node, wasm_dir / "generate_witness.js", wasm_dir / f"{name}.wasm",
                input_path, cfg.wtns_path(stage),
            ])
        except ExternalToolFailure as exc:
            if any(marker in exc.output for marker in ASSERT_MARKERS):
                raise StageUnsatisfiable(stage, "witness calculator assertion failed") from exc
            raise
        self.toolchain.runner.run(self.toolchain.snarkjs_cmd(
            "wtns", "export", "json", cfg.wtns_path(stage), cfg.witness_path(stage),
        ))
        return cfg.witness_path(stage)

    def public_count(self, stage):
        return self.toolchain.public_count(stage)


class ReferenceWitnessBackend:
    """py_ecc 기반 단계 계약으로 witness.json 을 만든다 (wasm 없이 체인 점검용).

    .wtns 바이너리는 만들지 않으므로 증명 단계에는 wasm 백엔드가 필요하다.
    """

    def __init__(self, config, contracts=None):
        self.config = config
        self.contracts = contracts or build_contracts()
        self._counts = {}

    def generate(self, stage, input_path):
        with open(input_path) as f:
            document = json.load(f)
        record = self.contracts[stage].evaluate(document)
        self._counts[stage] = record.n_public
        path = self.config.witness_path(stage)
        save_json(path, record.to_json())
        return path

    def public_count(self, stage):
        if stage in self._counts:
            return self._counts[stage]
        # reference witnesses carry no private section
        with open(require_artifact(self.config.witness_path(stage), "witness")) as f:
            return len(json.load(f)) - 1
