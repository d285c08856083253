from typing import List, Sequence, Tuple

import attr
import numpy as np

from utils.custom_types import Array
from vbackend.manifold import PoseManifold
from vbackend.reprojection import ReprojectionError, POSE_BLOCK, EXTRINSICS_BLOCK, NUM_RESIDUALS


def _residual(error_term: ReprojectionError, parameters: Sequence[np.ndarray]) -> Array['2', np.float64]:
    residuals = np.zeros(NUM_RESIDUALS)
    error_term.evaluate(parameters, residuals)
    return residuals


def estimate_jacobians_numerically(
        error_term: ReprojectionError,
        parameters: Sequence[np.ndarray],
        eps: float = 1e-6
) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """ Central finite differences of the residual.

    Full Jacobians perturb each ambient scalar on its own (leaving the unit sphere for quaternions).
    Minimal Jacobians perturb pose-like blocks through PoseManifold.plus and the landmark directly.
    """
    parameters = [np.array(p, dtype=np.float64) for p in parameters]
    full, minimal = [], []

    for block_id, block in enumerate(parameters):
        J = np.zeros((NUM_RESIDUALS, block.size))
        for i in range(block.size):
            pre, post = [p.copy() for p in parameters], [p.copy() for p in parameters]
            pre[block_id][i] -= eps
            post[block_id][i] += eps
            J[:, i] = (_residual(error_term, post) - _residual(error_term, pre)) / eps / 2.
        full.append(J)

        if block_id not in (POSE_BLOCK, EXTRINSICS_BLOCK):
            minimal.append(J.copy())
            continue

        J_min = np.zeros((NUM_RESIDUALS, PoseManifold.MINIMAL_DIM))
        for i in range(PoseManifold.MINIMAL_DIM):
            dx = np.zeros(PoseManifold.MINIMAL_DIM)
            dx[i] = eps
            pre, post = [p.copy() for p in parameters], [p.copy() for p in parameters]
            pre[block_id] = PoseManifold.plus(block, -dx)
            post[block_id] = PoseManifold.plus(block, dx)
            J_min[:, i] = (_residual(error_term, post) - _residual(error_term, pre)) / eps / 2.
        minimal.append(J_min)

    return full, minimal


@attr.define
class JacobianCheckResult:
    max_abs_full_error: float
    max_abs_minimal_error: float
    ok: bool


def check_jacobians(
        error_term: ReprojectionError,
        parameters: Sequence[np.ndarray],
        rtol: float = 1e-6,
        atol: float = 1e-5,
        verbose: bool = False
) -> JacobianCheckResult:
    """ Compare analytic and numeric Jacobians of all blocks.

    Central differences with eps = 1e-6 on pixel-sized residuals carry a rounding error up to a few 1e-7,
    which sets the floor for atol. """
    sizes = error_term.parameter_block_sizes()
    minimal_sizes = error_term.minimal_parameter_block_sizes()

    residuals = np.zeros(NUM_RESIDUALS)
    jacobians = [np.zeros((NUM_RESIDUALS, size)) for size in sizes]
    jacobians_minimal = [np.zeros((NUM_RESIDUALS, size)) for size in minimal_sizes]
    error_term.evaluate(parameters, residuals, jacobians, jacobians_minimal)

    numeric_full, numeric_minimal = estimate_jacobians_numerically(error_term, parameters)

    full_err = max(np.abs(J - J_num).max() for J, J_num in zip(jacobians, numeric_full))
    minimal_err = max(np.abs(J - J_num).max() for J, J_num in zip(jacobians_minimal, numeric_minimal))
    ok = all(
        np.allclose(J, J_num, rtol=rtol, atol=atol)
        for J, J_num in zip(jacobians + jacobians_minimal, numeric_full + numeric_minimal)
    )

    if verbose:
        print(f"{error_term.type_info()}: full jac err = {full_err:.3g} minimal jac err = {minimal_err:.3g} {ok=}")

    return JacobianCheckResult(max_abs_full_error=full_err, max_abs_minimal_error=minimal_err, ok=ok)
