from py_ecc.fields import bn128_FQ as FQ
from py_ecc import bn128

from blssplit.chain.records import load_json, load_public
from blssplit.chain.verifier import ChainVerifier
from blssplit.circuit.layout import SIGNAL_LAYOUT
from blssplit.errors import ExtractionError, LayoutMismatch

g1 = bn128.G1
g2 = bn128.G2

# Elliptic Curve operations
mult = bn128.multiply
pairing = bn128.pairing
add = bn128.add
neg = bn128.neg


class FR(FQ):
    field_modulus = bn128.curve_order


# snarkjs JSON: G1 = [x, y, z], G2 = [[x0, x1], [y0, y1], [z0, z1]] (z == 1 or 0)
def load_g1(data):
    if int(data[2]) == 0:
        return None
    return (FQ(int(data[0])), FQ(int(data[1])))

def load_g2(data):
    if int(data[2][0]) == 0 and int(data[2][1]) == 0:
        return None
    return (
        bn128.FQ2([int(data[0][0]), int(data[0][1])]),
        bn128.FQ2([int(data[1][0]), int(data[1][1])])
    )

def vk_x(IC, pub_inputs):
    acc = IC[0]
    for ic, ri in zip(IC[1:], pub_inputs):
        acc = add(acc, mult(ic, int(FR(int(ri)))))
    return acc

def lhs(prf_A, prf_B):
    return pairing(prf_B, prf_A)

def rhs(prf_C, vk_alpha, vk_beta, vk_gamma, vk_delta, vkx):
    RHS = pairing(vk_beta, vk_alpha)
    RHS = (RHS * pairing(vk_gamma, vkx)) * pairing(vk_delta, prf_C)
    return RHS

def verify(vkey, proof, pub_inputs):
    """snarkjs 형식의 Groth16 증명 검증: e(B, A) == e(β, α)·e(γ, vk_x)·e(δ, C)."""
    IC = [load_g1(p) for p in vkey["IC"]]
    if len(IC) != len(pub_inputs) + 1:
        raise LayoutMismatch(
            "verification key expects {} public inputs, got {}".format(len(IC) - 1, len(pub_inputs))
        )
    for ri in pub_inputs:
        if int(ri) >= bn128.curve_order:
            return False

    prf_A = load_g1(proof["pi_a"])
    prf_B = load_g2(proof["pi_b"])
    prf_C = load_g1(proof["pi_c"])
    for point, b in ((prf_A, bn128.b), (prf_B, bn128.b2), (prf_C, bn128.b)):
        if point is None or not bn128.is_on_curve(point, b):
            return False

    LHS = lhs(prf_A, prf_B)
    RHS = rhs(prf_C,
              load_g1(vkey["vk_alpha_1"]),
              load_g2(vkey["vk_beta_2"]),
              load_g2(vkey["vk_gamma_2"]),
              load_g2(vkey["vk_delta_2"]),
              vk_x(IC, pub_inputs))
    return LHS == RHS

VKEY_KEYS = ("vk_alpha_1", "vk_beta_2", "vk_gamma_2", "vk_delta_2", "IC")
PROOF_KEYS = ("pi_a", "pi_b", "pi_c")

def load_document(path, keys):
    doc = load_json(path)
    if not isinstance(doc, dict):
        raise ExtractionError(f"{path}: expected a JSON object")
    missing = [k for k in keys if k not in doc]
    if missing:
        raise ExtractionError(f"{path}: missing {', '.join(missing)}")
    return doc

def verify_stage(stage, vkey_path, proof_path, public_path, layout=SIGNAL_LAYOUT):
    vkey = load_document(vkey_path, VKEY_KEYS)
    proof = load_document(proof_path, PROOF_KEYS)
    record = load_public(public_path, stage)

    declared = layout.stage(stage).total
    if int(vkey.get("nPublic", len(vkey["IC"]) - 1)) != declared:
        raise LayoutMismatch(
            "stage {} verification key has nPublic={}, layout declares {}".format(
                stage, vkey.get("nPublic"), declared)
        )
    layout.check_public_length(stage, len(record))
    return verify(vkey, proof, record.values), record

#(stages) = [(stage, vkey_path, proof_path, public_path), ... ]
def verify_aggregate(stages, layout=SIGNAL_LAYOUT):
    """모든 단계 증명 검증 + 증명된 공개 출력 위에서 경계 일치 재확인.

    레이아웃의 모든 단계가 있어야 한다. 빠진 단계가 있으면 그 단계로
    이어지는 경계를 확인할 수 없으므로 valid 는 False 이고 missing 에 남는다.
    """
    records = {}
    results = {}
    for stage, vkey_path, proof_path, public_path in stages:
        ok, record = verify_stage(stage, vkey_path, proof_path, public_path, layout)
        results[stage] = ok
        records[stage] = record
    missing = [s for s in layout.stage_numbers if s not in records]
    reports = ChainVerifier(layout).check_chain(records)
    valid = (not missing and all(results.values())
             and len(reports) == len(layout.boundaries)
             and all(r.matched for r in reports))
    return {"valid": valid, "proofs": results, "boundaries": reports, "missing": missing}
