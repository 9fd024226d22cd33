"""
사전 점검 (Prerequisite Check)
===============================

몇 시간짜리 실행을 시작하기 전에 필요한 도구와 파일이 모두 있는지 확인한다.
부분 실행 후에 발견되는 설정 오류는 그만큼의 시간을 낭비한다.

  - circom, node, snarkjs 가 PATH 에 있는가
  - rapidsnark prover (선택: 없으면 snarkjs 로 대체, 경고만)
  - Phase 1 ptau 파일
  - 세 단계의 .circom 소스
  - 입력 문서
  - 가용 메모리와 계산된 node 힙 상한
"""

import shutil
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from blssplit.errors import ExternalToolFailure
from blssplit.pipeline.config import node_heap_limit_mb


@dataclass
class PrereqCheck:
    name: str
    ok: bool
    detail: str = ""
    required: bool = True


@dataclass
class PreflightResult:
    checks: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    @property
    def all_passed(self):
        return all(c.ok for c in self.checks if c.required)

    @property
    def failed(self):
        return [c.name for c in self.checks if c.required and not c.ok]


def check_tool(name, executable, required=True):
    path = shutil.which(executable) if executable else None
    if path:
        return PrereqCheck(name, True, path, required)
    return PrereqCheck(name, False, f"{executable!r} not found on PATH", required)


def run_preflight(config):
    result = PreflightResult()

    result.checks.append(check_tool("circom", config.circom))
    result.checks.append(check_tool("node", config.node))
    result.checks.append(check_tool("snarkjs", config.snarkjs))

    if config.prover and Path(config.prover).is_file():
        result.checks.append(PrereqCheck("rapidsnark", True, config.prover, required=False))
    else:
        result.checks.append(PrereqCheck("rapidsnark", False, "not configured", required=False))
        result.warnings.append("rapidsnark not found; proving falls back to snarkjs (slower)")

    try:
        ptau = config.resolve_ptau()
        result.checks.append(PrereqCheck("ptau", True, str(ptau)))
    except ExternalToolFailure as exc:
        result.checks.append(PrereqCheck("ptau", False, str(exc)))

    for stage in config.stages:
        source = config.circuit_source(stage)
        result.checks.append(PrereqCheck(
            f"circuit {stage}", source.is_file(), str(source)))

    result.checks.append(PrereqCheck(
        "input", Path(config.input_file).is_file(), str(config.input_file)))

    available = psutil.virtual_memory().available
    heap_mb = node_heap_limit_mb(available, config.memory_margin)
    result.checks.append(PrereqCheck(
        "memory", True,
        f"{available / 2**30:.1f} GiB available, node heap ceiling {heap_mb} MiB",
        required=False,
    ))
    return result


def format_preflight(result):
    lines = ["PREREQUISITES"]
    for c in result.checks:
        mark = "OK  " if c.ok else ("FAIL" if c.required else "WARN")
        lines.append(f"  [{mark}] {c.name:<12} {c.detail}")
    for w in result.warnings:
        lines.append(f"  warning: {w}")
    status = "all required checks passed" if result.all_passed else (
        "missing: " + ", ".join(result.failed))
    lines.append(f"  -> {status}")
    return "\n".join(lines)
