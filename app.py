"""
BLS Split 상태 페이지 (Flask)
==============================

긴 파이프라인 실행 중/후에 산출물, 원장, 경계 일관성을 조회하는 JSON 엔드포인트.

  | 경로              | 내용                                          |
  |-------------------|-----------------------------------------------|
  | /                 | 단계별 산출물 존재 여부 + 원장 요약            |
  | /layout           | 단계별 공개 신호 오프셋 표와 경계 선언         |
  | /stages/<n>       | 한 단계의 원장 기록과 산출물 경로              |
  | /chain            | public.json 기준 경계 일관성 보고              |

실행:
    flask --app app run
"""

from pathlib import Path

from flask import Blueprint, Flask, abort, current_app, jsonify

from blssplit.chain.records import load_public
from blssplit.chain.verifier import ChainVerifier
from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.errors import SplitError
from blssplit.pipeline.config import PipelineConfig
from blssplit.pipeline.ledger import Ledger

status_bp = Blueprint("status", __name__)


# ─── 헬퍼 ───

def get_config():
    return current_app.config["PIPELINE"]


def get_ledger():
    return Ledger(get_config().ledger_path)


def artifact_status(config, stage):
    paths = {
        "r1cs": config.r1cs_path(stage),
        "input": config.input_path(stage),
        "witness": config.witness_path(stage),
        "zkey": config.zkey_path(stage),
        "vkey": config.vkey_path(stage),
        "proof": config.proof_path(stage),
        "public": config.public_path(stage),
        "verifier": config.verifier_path(stage),
    }
    return {name: Path(p).exists() for name, p in paths.items()}


# ─── 라우트 ───

@status_bp.route("/")
def index():
    config = get_config()
    ledger = get_ledger()
    return jsonify({
        "build_dir": str(config.build_dir),
        "stages": {
            str(stage): {
                "artifacts": artifact_status(config, stage),
                "ledger_entries": len(ledger.entries(stage)),
            }
            for stage in config.stages
        },
    })


@status_bp.route("/layout")
def layout():
    return jsonify({
        "stages": {
            str(n): {
                "total": SIGNAL_LAYOUT.stage(n).total,
                "signals": [
                    {"name": name, "shape": list(shape), "start": start, "length": length}
                    for name, shape, start, length in SIGNAL_LAYOUT.stage(n).table()
                ],
            }
            for n in SIGNAL_LAYOUT.stage_numbers
        },
        "boundaries": [
            {"name": b.name, "producer": b.producer, "consumer": b.consumer, "kind": b.kind}
            for b in SIGNAL_LAYOUT.boundaries
        ],
    })


@status_bp.route("/stages/<int:stage>")
def stage_status(stage):
    config = get_config()
    if stage not in SIGNAL_LAYOUT.stage_numbers:
        abort(404)
    return jsonify({
        "stage": stage,
        "circuit": config.circuit_name(stage),
        "artifacts": artifact_status(config, stage),
        "ledger": get_ledger().entries(stage),
    })


@status_bp.route("/chain")
def chain():
    config = get_config()
    records = {}
    try:
        for stage in config.stages:
            path = config.public_path(stage)
            if path.exists():
                records[stage] = load_public(path, stage)
        reports = ChainVerifier(SIGNAL_LAYOUT).check_chain(records)
    except SplitError as exc:
        return jsonify({"status": "error", "error": str(exc)}), 409

    if len(records) < len(config.stages):
        status = "incomplete"
    elif all(r.matched for r in reports):
        status = "consistent"
    else:
        status = "mismatch"
    return jsonify({
        "status": status,
        "stages": sorted(records),
        "boundaries": [r.as_dict() for r in reports],
    })


def create_app(config=None):
    app = Flask(__name__)
    app.config["PIPELINE"] = config or PipelineConfig.from_env(Path.cwd())
    app.register_blueprint(status_bp)
    return app


app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
