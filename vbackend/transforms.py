import numpy as np

from vbackend.types import HomogeneousPoint, CamCoords3d
from utils.custom_types import Array

# |w| below this is treated as a point at infinity and never divided by
HOMOGENEOUS_EPS = 1e-12


def is_point_at_infinity(hp: HomogeneousPoint) -> bool:
    return abs(hp[3]) <= HOMOGENEOUS_EPS


def normalize_homogeneous_point(hp: HomogeneousPoint) -> tuple[CamCoords3d, Array['3,4', np.float64]]:
    """ Divide by the homogeneous weight, unless it is a point at infinity.
    Returns the 3d point and its 3x4 Jacobian wrt the homogeneous point. """
    J = np.zeros((3, 4), dtype=np.float64)

    if is_point_at_infinity(hp):
        J[:, :3] = np.eye(3)
        return np.array(hp[:3], dtype=np.float64), J

    inv_w = 1. / hp[3]
    point = hp[:3] * inv_w
    J[:, :3] = inv_w * np.eye(3)
    J[:, 3] = -point * inv_w
    return point, J
