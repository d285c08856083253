"""
Rigid body transforms stored as 7 ambient scalars (translation, unit quaternion)
and perturbed through a 6 scalar minimal tangent space.

Ambient layout:  [tx, ty, tz, qx, qy, qz, qw]
Minimal layout:  [dtx, dty, dtz, d_alpha_1, d_alpha_2, d_alpha_3]

The increment is applied as
    t' = t + dt
    q' = exp(d_alpha) * q
i.e. the rotation perturbation lives on the left, in the frame the pose is expressed in.
"""
import numpy as np
from liegroups.numpy.so3 import SO3Matrix

from vbackend.math import (
    delta_quaternion,
    quat_conjugate,
    quat_multiply,
    quat_normalize,
    quat_right_multiplication_matrix,
    quat_to_rotation_matrix,
)
from vbackend.types import PoseAmbient, PoseMinimal, LiftJacobian, AmbientToMinimalJacobian, TransformSE3


class PoseManifold:
    AMBIENT_DIM = 7
    MINIMAL_DIM = 6

    @staticmethod
    def compose(a: PoseAmbient, b: PoseAmbient) -> PoseAmbient:
        """ a * b, e.g. compose(T_WS, T_SC) == T_WC """
        R_a = quat_to_rotation_matrix(a[3:7])
        t = a[:3] + R_a @ b[:3]
        q = quat_multiply(a[3:7], b[3:7])
        return np.concatenate([t, q])

    @staticmethod
    def inverse(a: PoseAmbient) -> PoseAmbient:
        R_a = quat_to_rotation_matrix(a[3:7])
        return np.concatenate([-R_a.T @ a[:3], quat_conjugate(a[3:7])])

    @staticmethod
    def to_matrix(a: PoseAmbient) -> TransformSE3:
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = quat_to_rotation_matrix(a[3:7])
        T[:3, 3] = a[:3]
        return T

    @staticmethod
    def plus(x: PoseAmbient, delta: PoseMinimal) -> PoseAmbient:
        x = np.asarray(x, dtype=np.float64)
        delta = np.asarray(delta, dtype=np.float64)
        t = x[:3] + delta[:3]
        q = quat_multiply(delta_quaternion(delta[3:6]), x[3:7])
        return np.concatenate([t, quat_normalize(q)])

    @staticmethod
    def minus(x: PoseAmbient, x0: PoseAmbient) -> PoseMinimal:
        """ delta such that plus(x0, delta) == x """
        R = quat_to_rotation_matrix(x[3:7])
        R0 = quat_to_rotation_matrix(x0[3:7])
        d_alpha = SO3Matrix.from_matrix(R @ R0.T, normalize=True).log()
        return np.concatenate([x[:3] - x0[:3], d_alpha])

    @staticmethod
    def lift_jacobian(x: PoseAmbient) -> LiftJacobian:
        """ d plus(x, delta) / d delta, evaluated at delta = 0.

        A full Jacobian wrt the 7 ambient scalars turns into the minimal one by
        right-multiplying with this matrix: J_minimal (2x6) = J_full (2x7) @ lift (7x6).
        """
        J = np.zeros((7, 6), dtype=np.float64)
        J[:3, :3] = np.eye(3)
        # d (exp(d_alpha) * q) / d d_alpha = M(q) @ [I/2; 0]
        J[3:7, 3:6] = 0.5 * quat_right_multiplication_matrix(x[3:7])[:, :3]
        return J

    @staticmethod
    def ambient_to_minimal_jacobian(x: PoseAmbient) -> AmbientToMinimalJacobian:
        """ Left inverse of the lift Jacobian, ambient_to_minimal @ lift == I.

        It maps a change of the ambient scalars onto the minimal perturbation it induces.
        The radial direction of the quaternion (its scale) maps to zero.
        """
        J = np.zeros((6, 7), dtype=np.float64)
        J[:3, :3] = np.eye(3)
        J[3:6, 3:7] = 2. * quat_right_multiplication_matrix(x[3:7])[:, :3].T
        return J

    @staticmethod
    def normalize(x: PoseAmbient) -> PoseAmbient:
        """ Re-normalize the quaternion. Call at update points only, never while evaluating. """
        x = np.array(x, dtype=np.float64)
        x[3:7] = quat_normalize(x[3:7])
        return x

    @staticmethod
    def is_valid(x: PoseAmbient, tol: float = 1e-6) -> bool:
        x = np.asarray(x)
        return x.shape == (7,) and abs(np.linalg.norm(x[3:7]) - 1.) < tol
