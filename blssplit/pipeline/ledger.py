"""
실행 원장 (Run Ledger)
=======================

각 단계·단계별 작업(phase)이 어떤 입력으로 어떤 산출물을 만들었는지 기록한다.
재실행 시 산출물이 존재하고 기록된 입력 digest 가 현재 입력과 같으면
작업을 건너뛴다 (멱등성). 입력이 바뀌었는데 예전 산출물을 재사용하는 것이
경계 불일치의 가장 흔한 원인이므로, 존재 여부만으로 판단하지 않는다.

저장 형식 (build/ledger.yaml):

    - key: witness.2
      phase: witness
      stage: 2
      artifact: build/part2/witness.json
      input_digest: 9f2c...
      output_digest: 41ab...
      elapsed_s: 12.5
"""

import hashlib
import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


def file_digest(path):
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            h.update(chunk)
    return h.hexdigest()


def text_digest(text):
    return hashlib.sha256(text.encode()).hexdigest()


class Ledger:

    def __init__(self, path):
        self.path = Path(path)

    def _load(self):
        if not self.path.exists():
            return []
        with open(self.path) as f:
            return yaml.safe_load(f) or []

    def _save(self, rows):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(rows, f, sort_keys=False)

    @staticmethod
    def key(phase, stage):
        return f"{phase}.{stage}"

    def get(self, phase, stage):
        key = self.key(phase, stage)
        for row in self._load():
            if row.get("key") == key:
                return row
        return None

    def entries(self, stage=None):
        rows = self._load()
        if stage is None:
            return rows
        return [row for row in rows if row.get("stage") == stage]

    def record(self, phase, stage, artifact, input_digest=None, elapsed_s=None):
        """작업 결과를 기록한다 (같은 key 는 덮어쓴다)."""
        artifact = Path(artifact)
        row = {
            "key": self.key(phase, stage),
            "phase": phase,
            "stage": stage,
            "artifact": str(artifact),
            "input_digest": input_digest,
            "output_digest": file_digest(artifact) if artifact.is_file() else None,
            "elapsed_s": None if elapsed_s is None else round(float(elapsed_s), 3),
        }
        rows = [r for r in self._load() if r.get("key") != row["key"]]
        rows.append(row)
        self._save(rows)
        return row

    def is_fresh(self, phase, stage, artifact, input_digest=None):
        """산출물이 존재하고, 기록된 입력 digest 가 같고, 산출물이 변조되지 않았는가."""
        artifact = Path(artifact)
        if not artifact.exists():
            return False
        row = self.get(phase, stage)
        if row is None:
            # artifact produced outside this ledger (e.g. by the shell scripts)
            return input_digest is None
        if input_digest is not None and row.get("input_digest") != input_digest:
            logger.info("%s.%d inputs changed since %s was produced", phase, stage, artifact)
            return False
        if artifact.is_file() and row.get("output_digest") not in (None, file_digest(artifact)):
            logger.warning("%s was modified after it was recorded", artifact)
            return False
        return True
