"""
다중 limb 필드 원소 표현 (Multi-limb Field Elements)
=====================================================

BLS12-381 기저체 Fp 의 원소(381비트)는 회로의 네이티브 필드(bn128 스칼라,
≈254비트)에 들어가지 않으므로 k개의 n비트 limb 로 나누어 표현한다.

    x = Σ limb[i] · 2^(n·i)     (little-endian, i = 0..k-1)

기본값 n = 55, k = 7 → 385비트 용량 (> 381비트 모듈러스).

**점(point) 인코딩** (아핀 좌표):
  - G1  : [x, y]                          → 형태 (2, 7)
  - G2  : [[x.c0, x.c1], [y.c0, y.c1]]    → 형태 (2, 2, 7)
  - Fp12: 6개의 Fp2 계수 (w^6 = 1 + u)     → 형태 (6, 2, 7)

**Fp12 기저 변환**:
  py_ecc 의 FQ12 는 Fp[w]/(w^12 - 2w^6 + 2) 위의 12개 계수 c_i 를 쓴다.
  u = w^6 - 1 로 두면 u² = -1 이므로 Fp2 = Fp[u] 이고,

    Σ (a_i + b_i·u)·w^i  =  Σ (a_i - b_i)·w^i + b_i·w^(i+6)

  즉 a_i = c_i + c_(i+6), b_i = c_(i+6) 이다.
"""

from py_ecc.optimized_bls12_381 import FQ, FQ2, FQ12, field_modulus, is_inf, normalize

N_BITS = 55
N_LIMBS = 7

G1_SHAPE = (2, N_LIMBS)
G2_SHAPE = (2, 2, N_LIMBS)
FQ12_SHAPE = (6, 2, N_LIMBS)


# ─────────────────────────────────────────────────────────────────────
# 정수 ↔ limb
# ─────────────────────────────────────────────────────────────────────

def to_limbs(value, n=N_BITS, k=N_LIMBS):
    """정수를 k개의 n비트 limb (little-endian) 로 분해한다.

    Raises:
        ValueError: 값이 음수이거나 n·k 비트를 넘을 때
    """
    value = int(value)
    if value < 0 or value >= 1 << (n * k):
        raise ValueError(f"{value} does not fit in {k} limbs of {n} bits")
    mask = (1 << n) - 1
    return [(value >> (n * i)) & mask for i in range(k)]


def from_limbs(limbs, n=N_BITS):
    """limb 리스트를 정수로 복원한다 (범위 검사 없음)."""
    return sum(int(limb) << (n * i) for i, limb in enumerate(limbs))


def limbs_in_range(limbs, n=N_BITS):
    """모든 limb 가 [0, 2^n) 안에 있는가."""
    return all(0 <= int(limb) < 1 << n for limb in limbs)


def is_canonical(limbs, modulus=field_modulus, n=N_BITS):
    """limb 들이 [0, modulus) 의 값을 나타내는가 (BigLessThan)."""
    return limbs_in_range(limbs, n) and from_limbs(limbs, n) < modulus


def parse_scalar(value):
    """문서의 스칼라(10진 문자열 또는 정수)를 정수로 변환한다."""
    if isinstance(value, bool):
        raise ValueError(f"not a field value: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError(f"not a decimal field value: {value!r}")


def to_decimal(tensor):
    """중첩 텐서의 모든 값을 10진 문자열로 바꾼다."""
    if isinstance(tensor, (list, tuple)):
        return [to_decimal(item) for item in tensor]
    return str(int(tensor))


# ─────────────────────────────────────────────────────────────────────
# 필드 원소 / 점 인코딩
# ─────────────────────────────────────────────────────────────────────

def encode_fq(x):
    return to_limbs(int(x))


def encode_fq2(x):
    return [encode_fq(c) for c in x.coeffs]


def encode_g1(point):
    """G1 점 (optimized 3D 또는 아핀 2D) → [[7], [7]]."""
    x, y = _affine(point)
    return [encode_fq(x), encode_fq(y)]


def encode_g2(point):
    """G2 점 → [[[7], [7]], [[7], [7]]]."""
    x, y = _affine(point)
    return [encode_fq2(x), encode_fq2(y)]


def encode_fq12(f):
    """FQ12 → 6×2×7 (Fp2 계수 a_i + b_i·u)."""
    c = [int(coeff) for coeff in f.coeffs]
    out = []
    for i in range(6):
        a = (c[i] + c[i + 6]) % field_modulus
        b = c[i + 6] % field_modulus
        out.append([to_limbs(a), to_limbs(b)])
    return out


def _affine(point):
    if len(point) == 3:
        if is_inf(point):
            raise ValueError("the point at infinity has no affine encoding")
        return normalize(point)
    return point


def decode_g1(tensor):
    """[[7], [7]] → optimized G1 점 (x, y, 1)."""
    x, y = (from_limbs(coord) for coord in tensor)
    return (FQ(x), FQ(y), FQ.one())


def decode_g2(tensor):
    """[[[7], [7]], [[7], [7]]] → optimized G2 점 (x, y, 1)."""
    x, y = (FQ2([from_limbs(c) for c in coord]) for coord in tensor)
    return (x, y, FQ2.one())


def decode_fq2(tensor):
    return FQ2([from_limbs(c) for c in tensor])


def decode_fq12(tensor):
    """6×2×7 → FQ12 (encode_fq12 의 역변환)."""
    a = [from_limbs(pair[0]) for pair in tensor]
    b = [from_limbs(pair[1]) for pair in tensor]
    coeffs = [(a[i] - b[i]) % field_modulus for i in range(6)] + [bi % field_modulus for bi in b]
    return FQ12(coeffs)


def fq12_identity():
    """Fp12 곱셈 항등원의 텐서 표현: out[0][0] = 1, 나머지 0."""
    return encode_fq12(FQ12.one())
