import numpy as np
from liegroups.numpy.se3 import SE3Matrix
from liegroups.numpy.so3 import SO3Matrix

from vbackend.math import quat_to_rotation_matrix, rotation_matrix_to_quat, identity_quaternion
from vbackend.types import CameraRotationSO3, TransformSE3, PoseAmbient


def identity_pose() -> PoseAmbient:
    return np.concatenate([np.zeros(3), identity_quaternion()])


def get_SO3_rotation_from_euler(
        yaw: float,
        pitch: float,
        roll: float
) -> CameraRotationSO3:
    """ Z-Y-X intrinsic rotation, yaw around z, then pitch around y, then roll around x. """
    return (
        SO3Matrix.rotz(yaw).dot(SO3Matrix.roty(pitch)).dot(SO3Matrix.rotx(roll))
    ).as_matrix()


def get_pose(
    x: float = 0.0,
    y: float = 0.0,
    z: float = 0.0,
    yaw: float = 0.0,
    pitch: float = 0.0,
    roll: float = 0.0
) -> PoseAmbient:
    """ Ambient (translation + quaternion) pose from position and Euler angles. """
    R = get_SO3_rotation_from_euler(yaw, pitch, roll)
    return np.concatenate([np.array([x, y, z], dtype=np.float64), rotation_matrix_to_quat(R)])


def ambient_to_SE3(pose: PoseAmbient) -> TransformSE3:
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = quat_to_rotation_matrix(pose[3:7])
    T[:3, 3] = pose[:3]
    return T


def SE3_to_ambient(T: TransformSE3) -> PoseAmbient:
    # goes through liegroups so that slightly non-orthogonal inputs get projected back onto SO(3)
    T_se3 = SE3Matrix.from_matrix(np.asarray(T, dtype=np.float64), normalize=True)
    return np.concatenate([T_se3.trans, rotation_matrix_to_quat(T_se3.rot.as_matrix())])


def random_pose(rng: np.random.Generator, translation_scale: float = 1.0, rotation_scale: float = 0.5) -> PoseAmbient:
    xi = np.concatenate([
        rng.normal(scale=translation_scale, size=3),
        rng.normal(scale=rotation_scale, size=3),
    ])
    return SE3_to_ambient(SE3Matrix.exp(xi).as_matrix())
