"""
페어링 기본 연산 (Opaque Pairing Primitives)
==============================================

단계 회로가 사용하는 암호 연산을 네 가지 능력(capability)으로 묶는다.

  | 능력        | 사용 단계 | 내용                                       |
  |-------------|-----------|--------------------------------------------|
  | validate    | 1         | 곡선 위 + 소수 위수 부분군 검사 (G1, G2)    |
  | map         | 1         | hash-to-curve: (u0, u1) ∈ Fp2² → G2        |
  | accumulate  | 2         | 다중 쌍 Miller loop 곱                     |
  | finalize    | 3         | 최종 지수승 (final exponentiation)          |

회로 쪽 코드는 이 능력들의 형태와 통과/실패 의미에만 의존한다.
여기서는 py_ecc 의 BLS12-381 구현으로 뒷받침한다.
"""

from py_ecc.optimized_bls12_381 import (
    FQ12,
    G1,
    add,
    b,
    b2,
    curve_order,
    final_exponentiate,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    pairing,
)
from py_ecc.bls.hash_to_curve import clear_cofactor_G2, map_to_curve_G2


class PairingPrimitives:
    """BLS12-381 위의 {validate, map, accumulate, finalize} 능력 집합."""

    generator_g1 = G1

    def is_on_curve_g1(self, point):
        return is_on_curve(point, b)

    def is_on_curve_g2(self, point):
        return is_on_curve(point, b2)

    def in_subgroup(self, point):
        """r·P == O  (r: 소수 위수)."""
        return is_inf(multiply(point, curve_order))

    def validate_g1(self, point):
        return self.is_on_curve_g1(point) and self.in_subgroup(point)

    def validate_g2(self, point):
        return self.is_on_curve_g2(point) and self.in_subgroup(point)

    def map_to_g2(self, u0, u1):
        """hash_to_field 출력 (u0, u1) 을 G2 의 점으로 사상한다.

        Hm = clear_cofactor(map(u0) + map(u1))
        """
        return clear_cofactor_G2(add(map_to_curve_G2(u0), map_to_curve_G2(u1)))

    def is_infinity(self, point):
        return is_inf(point)

    def negate(self, point):
        """y 좌표를 성분별로 부호 반전한다: (x, y) → (x, -y)."""
        return neg(point)

    def accumulate(self, pairs):
        """Miller loop 곱 Π ML(Q_i, P_i) (최종 지수승 없음).

        Args:
            pairs: [(G2 점, G1 점), ...]

        Raises:
            ValueError: 점이 곡선 위에 있지 않을 때
        """
        acc = FQ12.one()
        for q, p in pairs:
            acc = acc * pairing(q, p, final_exponentiate=False)
        return acc

    def finalize(self, f):
        return final_exponentiate(f)

    def is_identity(self, f):
        return f == FQ12.one()
