import sys
import os
import hashlib
import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from py_ecc.optimized_bls12_381 import G1, multiply
from py_ecc.bls.hash_to_curve import hash_to_field_FQ2

from blssplit.chain.extractor import ChainExtractor
from blssplit.circuit.limbs import encode_fq2, encode_g1, encode_g2, to_decimal
from blssplit.circuit.primitives import PairingPrimitives
from blssplit.circuit.stages import build_contracts


# ── 테스트 상수 ──
SECRET_KEY = 0x2B5F_7C11_93A4_0E6D_51C8_2277_AF30_9D84_16E2_5B07_C3F9_8A12_0D4E_6B93_5C71_28F0
OTHER_KEY = 7331
MESSAGE = b"split bls12-381 signature verification"
OTHER_MESSAGE = b"a different message"
DST = b"BLS_SIG_BLS12381G2_XMD:SHA-256_SSWU_RO_POP_"


def hash_message(message):
    return hash_to_field_FQ2(message, 2, DST, hashlib.sha256)


def make_request(pubkey, signature, u0, u1):
    """optimized 점 / FQ2 원소 → 10진 문자열 limb 입력 문서."""
    return {
        "pubkey": to_decimal(encode_g1(pubkey)),
        "signature": to_decimal(encode_g2(signature)),
        "hash": to_decimal([encode_fq2(u0), encode_fq2(u1)]),
    }


@pytest.fixture(scope="session")
def primitives():
    return PairingPrimitives()


@pytest.fixture(scope="session")
def bls_keys(primitives):
    u0, u1 = hash_message(MESSAGE)
    hm = primitives.map_to_g2(u0, u1)
    return {
        "sk": SECRET_KEY,
        "pubkey": multiply(G1, SECRET_KEY),
        "u0": u0,
        "u1": u1,
        "Hm": hm,
        "signature": multiply(hm, SECRET_KEY),
    }


@pytest.fixture(scope="session")
def valid_request(bls_keys):
    return make_request(bls_keys["pubkey"], bls_keys["signature"], bls_keys["u0"], bls_keys["u1"])


@pytest.fixture(scope="session")
def contracts(primitives):
    return build_contracts(primitives)


@pytest.fixture(scope="session")
def valid_chain(contracts, valid_request):
    """참조 계약으로 세 단계를 체인 실행한 결과."""
    extractor = ChainExtractor()
    w1 = contracts[1].evaluate(valid_request)
    input2 = extractor.next_input(w1, 2, valid_request)
    w2 = contracts[2].evaluate(input2)
    input3 = extractor.next_input(w2, 3, valid_request)
    w3 = contracts[3].evaluate(input3)
    return {
        "request": valid_request,
        "witness": {1: w1, 2: w2, 3: w3},
        "input": {2: input2, 3: input3},
        "public": {1: w1.public_record(), 2: w2.public_record(), 3: w3.public_record()},
    }
