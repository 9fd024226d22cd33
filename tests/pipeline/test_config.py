from pathlib import Path

import pytest

from blssplit.errors import ExternalToolFailure
from blssplit.pipeline.config import MIN_HEAP_MB, PipelineConfig, node_heap_limit_mb


class TestNodeHeapLimit:
    def test_margin_applied(self):
        assert node_heap_limit_mb(10 * 2**30, margin=0.5) == 5 * 1024

    def test_floor(self):
        assert node_heap_limit_mb(2**30, margin=0.2) == MIN_HEAP_MB

    def test_invalid_margin(self):
        with pytest.raises(ValueError):
            node_heap_limit_mb(2**30, margin=1.0)


class TestFromEnv:
    def test_defaults(self, tmp_path):
        config = PipelineConfig.from_env(tmp_path, env={})
        assert config.build_dir == tmp_path.resolve() / "build"
        assert config.input_file == tmp_path.resolve() / "input_signature.json"
        assert config.witness_backend == "wasm"
        assert config.stages == (1, 2, 3)

    def test_environment_overrides(self, tmp_path):
        env = {
            "BLS_SPLIT_BUILD_DIR": str(tmp_path / "out"),
            "BLS_SPLIT_PTAU": str(tmp_path / "custom.ptau"),
            "BLS_SPLIT_WITNESS_BACKEND": "reference",
            "BLS_SPLIT_MEMORY_MARGIN": "0.3",
        }
        config = PipelineConfig.from_env(tmp_path, env=env)
        assert config.build_dir == tmp_path / "out"
        assert config.ptau_candidates[0] == tmp_path / "custom.ptau"
        assert config.witness_backend == "reference"
        assert config.memory_margin == 0.3

    def test_ptau_argument_takes_precedence(self, tmp_path):
        env = {"BLS_SPLIT_PTAU": "/env.ptau"}
        config = PipelineConfig.from_env(tmp_path, env=env, ptau="/cli.ptau")
        assert config.ptau_candidates[:2] == (Path("/cli.ptau"), Path("/env.ptau"))

    def test_none_overrides_ignored(self, tmp_path):
        config = PipelineConfig.from_env(tmp_path, env={}, build_dir=None, native_verify=None)
        assert config.build_dir == tmp_path.resolve() / "build"
        assert config.native_verify is False

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError, match="witness backend"):
            PipelineConfig.from_env(tmp_path, env={"BLS_SPLIT_WITNESS_BACKEND": "gpu"})


class TestPaths:
    def test_stage_artifacts(self, tmp_path):
        config = PipelineConfig.from_env(tmp_path, env={})
        assert config.r1cs_path(2) == config.build_dir / "part2" / "signature_part2.r1cs"
        assert config.wasm_dir(1).name == "signature_part1_js"
        assert config.public_path(3).parent.name == "part3"
        assert config.verifier_path(1).name == "VerifierPart1.sol"
        assert config.ledger_path == config.build_dir / "ledger.yaml"

    def test_ensure_dirs(self, tmp_path):
        config = PipelineConfig.from_env(tmp_path, env={})
        config.ensure_dirs()
        assert all(config.stage_dir(s).is_dir() for s in (1, 2, 3))
        assert config.log_dir.is_dir()


class TestResolvePtau:
    def test_first_existing(self, tmp_path):
        second = tmp_path / "b.ptau"
        second.write_bytes(b"ptau")
        config = PipelineConfig.from_env(tmp_path, env={}, ptau_candidates=(tmp_path / "a.ptau", second))
        assert config.resolve_ptau() == second

    def test_none_found(self, tmp_path):
        config = PipelineConfig.from_env(tmp_path, env={}, ptau_candidates=(tmp_path / "a.ptau",))
        with pytest.raises(ExternalToolFailure, match="BLS_SPLIT_PTAU"):
            config.resolve_ptau()

    def test_node_options(self, tmp_path):
        config = PipelineConfig.from_env(tmp_path, env={})
        (option,) = config.node_options()
        assert option.startswith("--max-old-space-size=")
        assert int(option.split("=")[1]) >= MIN_HEAP_MB
