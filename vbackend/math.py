import math

import numpy as np
from liegroups.numpy.so3 import SO3Matrix

from utils.custom_types import Array
from vbackend.types import Vector3d, Quaternion, CameraRotationSO3

# below this rotation angle the exponential map uses its Taylor expansion
SMALL_ANGLE = 1e-8


def vec_hat(x: Vector3d) -> Array['3,3', np.float64]:
    return np.array([
        [  0.,  -x[2],  x[1]],
        [ x[2],    0., -x[0]],
        [-x[1],  x[0],    0.]
    ], dtype=np.float64)


def identity_quaternion() -> Quaternion:
    return np.array([0., 0., 0., 1.], dtype=np.float64)


def quat_normalize(q: Quaternion) -> Quaternion:
    return q / np.linalg.norm(q)


def quat_conjugate(q: Quaternion) -> Quaternion:
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.float64)


def quat_multiply(p: Quaternion, q: Quaternion) -> Quaternion:
    """ Hamilton product p * q, both stored as (x, y, z, w). """
    pv, pw = p[:3], p[3]
    qv, qw = q[:3], q[3]
    vec = pw * qv + qw * pv + np.cross(pv, qv)
    return np.array([vec[0], vec[1], vec[2], pw * qw - pv @ qv], dtype=np.float64)


def quat_right_multiplication_matrix(q: Quaternion) -> Array['4,4', np.float64]:
    """ Matrix M(q) such that p * q == M(q) @ p for any quaternion p. """
    M = np.empty((4, 4), dtype=np.float64)
    M[:3, :3] = q[3] * np.eye(3) - vec_hat(q[:3])
    M[:3, 3] = q[:3]
    M[3, :3] = -q[:3]
    M[3, 3] = q[3]
    return M


def delta_quaternion(d_alpha: Vector3d) -> Quaternion:
    """ Exponential map from a rotation vector to a unit quaternion. """
    theta = np.linalg.norm(d_alpha)
    half_theta = 0.5 * theta

    if theta < SMALL_ANGLE:
        # sin(t/2) / t ~ 1/2 - t^2 / 48
        sinc_half = 0.5 - theta * theta / 48.
    else:
        sinc_half = math.sin(half_theta) / theta

    vec = sinc_half * np.asarray(d_alpha, dtype=np.float64)
    return np.array([vec[0], vec[1], vec[2], math.cos(half_theta)], dtype=np.float64)


def quat_to_rotation_matrix(q: Quaternion) -> CameraRotationSO3:
    """ Rotation matrix of the normalized quaternion, the scale of q does not matter. """
    x, y, z, w = quat_normalize(np.asarray(q, dtype=np.float64))

    return np.array([
        [1. - 2. * (y * y + z * z), 2. * (x * y - z * w), 2. * (x * z + y * w)],
        [2. * (x * y + z * w), 1. - 2. * (x * x + z * z), 2. * (y * z - x * w)],
        [2. * (x * z - y * w), 2. * (y * z + x * w), 1. - 2. * (x * x + y * y)],
    ], dtype=np.float64)


def rotation_matrix_to_quat(R: CameraRotationSO3) -> Quaternion:
    """ Returns (x, y, z, w) with w >= 0. """
    q = quat_normalize(SO3Matrix(np.asarray(R, dtype=np.float64)).to_quaternion(ordering='xyzw'))
    return q if q[3] >= 0. else -q
