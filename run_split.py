#!/usr/bin/env python3
"""
BLS Split Pipeline: Main Entry Point

Stage1 (validate + hash-to-G2) → Stage2 (Miller loop) → Stage3 (final exponentiation),
each proved as its own Groth16 circuit and chained through public signals.

Usage:
    python run_split.py full                      # everything, in order
    python run_split.py compile --stage 2         # one phase, one stage
    python run_split.py witness --witness-backend reference
    python run_split.py setup --ptau /data/pot25_final.ptau
    python run_split.py verify --native-verify    # py_ecc pairing check instead of snarkjs
    python run_split.py verify-chain
    python run_split.py check-prereqs
"""

import argparse
import logging
import sys
from pathlib import Path

from blssplit.pipeline.config import WITNESS_BACKENDS, PipelineConfig
from blssplit.pipeline.orchestrator import FULL_PHASES, Orchestrator
from blssplit.pipeline.runlog import ROOT_LOGGER, close_run_log, open_run_log

COMMANDS = ("check-prereqs",) + FULL_PHASES + ("full",)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Staged BLS12-381 signature verification proofs (circom + snarkjs)",
    )
    parser.add_argument("command", choices=COMMANDS, help="phase to run")
    parser.add_argument("--stage", type=int, choices=(1, 2, 3), default=None,
                        help="restrict the phase to a single stage")
    parser.add_argument("--base-dir", default=".", help="project root (circuits/, logs/)")
    parser.add_argument("--build-dir", default=None, help="artifact directory")
    parser.add_argument("--input", default=None, help="signature input document")
    parser.add_argument("--ptau", default=None, help="Phase 1 powers-of-tau file")
    parser.add_argument("--witness-backend", choices=WITNESS_BACKENDS, default=None)
    parser.add_argument("--native-verify", action="store_true",
                        help="verify proofs with py_ecc instead of snarkjs")
    parser.add_argument("--no-export", action="store_true",
                        help="skip Solidity verifier export in `full`")
    parser.add_argument("--quiet", action="store_true", help="log to the run log only")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    config = PipelineConfig.from_env(
        args.base_dir,
        build_dir=Path(args.build_dir) if args.build_dir else None,
        input_file=Path(args.input) if args.input else None,
        ptau=args.ptau,
        witness_backend=args.witness_backend,
        native_verify=args.native_verify or None,
    )
    log_path, handlers = open_run_log(config.log_dir, stream=not args.quiet)
    try:
        orchestrator = Orchestrator(config)
        stages = (args.stage,) if args.stage else None
        if args.command == "full":
            code = orchestrator.full(stages, export=not args.no_export)
        else:
            code = orchestrator.run([args.command], stages)
    except Exception:
        logging.getLogger(ROOT_LOGGER).exception("%s aborted", args.command)
        raise
    finally:
        close_run_log(handlers)

    print(f"{args.command}: exit {int(code)} ({code.name}), log: {log_path}")
    return int(code)


if __name__ == "__main__":
    sys.exit(main())
