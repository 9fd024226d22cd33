"""
텐서 평탄화 (Row-major Flatten / Unflatten)
=============================================

회로의 공개 신호는 중첩 배열(예: Hm[2][2][7])로 선언되지만,
witness/public 레코드에는 평탄한 1차원 순서로 저장된다.

**규칙**: 행 우선(row-major), 마지막 차원이 가장 빠르게 변한다.

    Hm[i][j][l]  →  flat[i·(2·7) + j·7 + l]

두 방향 모두 같은 규칙을 적용해야 하며, 형태(shape)가 맞지 않는 텐서는
조용히 자르거나 채우지 않고 거부한다.

사용 예시:
    >>> flatten([[1, 2], [3, 4]], (2, 2))
    [1, 2, 3, 4]
    >>> unflatten([1, 2, 3, 4], (2, 2))
    [[1, 2], [3, 4]]
"""

from math import prod


def shape_size(shape):
    """형태의 원소 수 (각 차원의 곱)."""
    return prod(shape)


def flatten(tensor, shape):
    """중첩 텐서를 행 우선 순서의 평탄한 리스트로 변환한다.

    Args:
        tensor: 중첩 리스트/튜플
        shape: 기대하는 형태 (d1, ..., dm)

    Returns:
        list: 길이 d1·...·dm 의 평탄한 리스트

    Raises:
        ValueError: 텐서가 선언된 형태와 다를 때 (ragged 포함)
    """
    flat = []
    _flatten_into(tensor, tuple(shape), flat, path=())
    return flat


def _flatten_into(node, shape, out, path):
    if not shape:
        if isinstance(node, (list, tuple)):
            raise ValueError(f"expected a scalar at {list(path)}, got a sequence")
        out.append(node)
        return
    if not isinstance(node, (list, tuple)):
        raise ValueError(f"expected a sequence of {shape[0]} at {list(path)}, got {node!r}")
    if len(node) != shape[0]:
        raise ValueError(
            f"dimension mismatch at {list(path)}: expected {shape[0]}, got {len(node)}"
        )
    for i, child in enumerate(node):
        _flatten_into(child, shape[1:], out, path + (i,))


def unflatten(flat, shape):
    """평탄한 시퀀스를 형태 shape 의 중첩 리스트로 복원한다.

    unflatten(flatten(T, s), s) == T  (T가 형태 s 를 가질 때)

    Raises:
        ValueError: 길이가 형태의 원소 수와 다를 때
    """
    flat = list(flat)
    shape = tuple(shape)
    if len(flat) != shape_size(shape):
        raise ValueError(
            f"cannot reshape {len(flat)} values into {shape} ({shape_size(shape)} values)"
        )
    if not shape:
        return flat[0]
    return _unflatten(flat, shape)


def _unflatten(flat, shape):
    if len(shape) == 1:
        return list(flat)
    step = shape_size(shape[1:])
    return [_unflatten(flat[i * step:(i + 1) * step], shape[1:]) for i in range(shape[0])]


def infer_shape(tensor):
    """첫 번째 원소를 따라 내려가며 형태를 추정한다 (검증은 flatten 이 담당)."""
    shape = []
    node = tensor
    while isinstance(node, (list, tuple)):
        shape.append(len(node))
        if not node:
            break
        node = node[0]
    return tuple(shape)
