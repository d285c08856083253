"""
Reprojection error of a homogeneous landmark observed by one camera of a rig.

Parameter blocks (ambient sizes):
    0. pose of the sensor (body) in world, T_WS        7 = [t, q]
    1. homogeneous landmark in world, hp_W             4 = [x, y, z, w]
    2. pose of the camera in the sensor frame, T_SC    7 = [t, q]

Residual:
    r = sqrt_information @ (measurement - project(T_SC^-1 * T_WS^-1 * hp_W))

The chain used for the Jacobians:
    d r / d block = -sqrt_information @ J_project (2x3) @ J_normalize (3x4) @ d hp_C / d block (4xN)

Jacobians of the pose and extrinsics blocks are first derived wrt their minimal perturbation
(left increment, see vbackend.manifold), then mapped to the 7 ambient scalars. The minimal Jacobians
handed out are the full ones right-multiplied by the lift Jacobian.
"""
from typing import List, Optional, Sequence, Tuple

import attr
import numpy as np

from utils.custom_types import Array
from vbackend.cam import ICameraProjectionModel, ProjectionStatus
from vbackend.manifold import PoseManifold
from vbackend.math import vec_hat, quat_to_rotation_matrix
from vbackend.transforms import normalize_homogeneous_point
from vbackend.types import (
    HomogeneousPoint,
    InformationMatrix2d,
    PoseAmbient,
    PxCoords2d,
    ReprojectionErrorVector,
    TransformSE3,
)
from vbackend.weighting import InformationWeighting

NUM_RESIDUALS = 2
PARAMETER_BLOCK_SIZES = (7, 4, 7)
MINIMAL_PARAMETER_BLOCK_SIZES = (6, 4, 6)

POSE_BLOCK = 0
LANDMARK_BLOCK = 1
EXTRINSICS_BLOCK = 2

JacobianBuffers = Optional[Sequence[Optional[np.ndarray]]]


@attr.define
class _LandmarkInCamera:
    """ Per-call intermediates, never stored on the error term. """
    T_CW: TransformSE3
    hp_C: HomogeneousPoint
    pixel: PxCoords2d
    J_project: Array['2,3', np.float64]
    J_normalize: Array['3,4', np.float64]
    status: ProjectionStatus


class ReprojectionError:
    """ The 2D keypoint reprojection error, as a cost term with blocks [7, 4, 7] and 2 residuals.

    Evaluation never writes to the instance, so distinct calls (also on the same instance) can run
    concurrently as long as nobody calls a setter at the same time.
    """

    def __init__(
        self,
        camera_geometry: ICameraProjectionModel,
        camera_id: int,
        measurement: PxCoords2d,
        information: InformationMatrix2d,
    ):
        self._camera_geometry = camera_geometry
        self.camera_id = camera_id
        self._measurement = np.zeros(2, dtype=np.float64)
        self._weighting = InformationWeighting.from_information(np.eye(2))

        self.set_measurement(measurement)
        self.set_information(information)

    # setters, must not race with evaluate
    def set_measurement(self, measurement: PxCoords2d):
        measurement = np.array(measurement, dtype=np.float64).reshape(-1)
        if measurement.shape != (NUM_RESIDUALS,):
            raise ValueError(f"Measurement has to be a 2-vector, got shape {measurement.shape}")
        self._measurement = measurement

    def set_information(self, information: InformationMatrix2d):
        self._weighting = InformationWeighting.from_information(information)

    def set_camera_geometry(self, camera_geometry: ICameraProjectionModel):
        self._camera_geometry = camera_geometry

    # getters
    @property
    def measurement(self) -> PxCoords2d:
        return self._measurement

    @property
    def information(self) -> InformationMatrix2d:
        return self._weighting.information

    @property
    def covariance(self) -> InformationMatrix2d:
        return self._weighting.covariance

    @property
    def sqrt_information(self) -> InformationMatrix2d:
        return self._weighting.sqrt_information

    @property
    def camera_geometry(self) -> ICameraProjectionModel:
        return self._camera_geometry

    # sizes
    def residual_dim(self) -> int:
        return NUM_RESIDUALS

    def parameter_block_sizes(self) -> Tuple[int, int, int]:
        return PARAMETER_BLOCK_SIZES

    def minimal_parameter_block_sizes(self) -> Tuple[int, int, int]:
        return MINIMAL_PARAMETER_BLOCK_SIZES

    def parameter_blocks(self) -> int:
        return len(PARAMETER_BLOCK_SIZES)

    def parameter_block_dim(self, parameter_block_id: int) -> int:
        return PARAMETER_BLOCK_SIZES[parameter_block_id]

    def type_info(self) -> str:
        return "ReprojectionError"

    def evaluate(
        self,
        parameters: Sequence[Array['N', np.float64]],
        residuals: Array['2', np.float64],
        jacobians: JacobianBuffers = None,
        jacobians_minimal: JacobianBuffers = None,
    ) -> bool:
        """ Write the whitened residual and the requested Jacobians into caller-owned buffers.

        `jacobians` holds one buffer per block of 2 x ambient size, `jacobians_minimal` one of
        2 x minimal size. Buffers can be flat (row-major) or shaped; either list and every entry
        can be None, and blocks nobody asked for are not computed.
        Geometric degeneracies (point behind the camera, outside the image) do not fail the
        evaluation; they just produce whatever the projection gives. Wrong sizes raise ValueError.
        """
        pose, landmark, extrinsics = _read_parameter_blocks(parameters)
        _check_buffer_list(jacobians, PARAMETER_BLOCK_SIZES, 'jacobians')
        _check_buffer_list(jacobians_minimal, MINIMAL_PARAMETER_BLOCK_SIZES, 'jacobians_minimal')

        projection = self._project_landmark(pose, landmark, extrinsics)
        sqrt_information = self._weighting.sqrt_information

        error = self._measurement - projection.pixel
        _write_block(residuals, sqrt_information @ error)

        if not (_any_requested(jacobians) or _any_requested(jacobians_minimal)):
            return True

        # d r / d hp_C, shared by all blocks
        J_common = -sqrt_information @ projection.J_project @ projection.J_normalize

        if _block_requested(POSE_BLOCK, jacobians, jacobians_minimal):
            J_minimal = J_common @ _d_hp_C_d_pose_minimal(pose, landmark, projection.T_CW)
            J_full = J_minimal @ PoseManifold.ambient_to_minimal_jacobian(pose)
            self._write_pose_like_block(POSE_BLOCK, pose, J_full, jacobians, jacobians_minimal)

        if _block_requested(LANDMARK_BLOCK, jacobians, jacobians_minimal):
            # hp_C = T_CW @ hp_W is linear in the landmark, no manifold reduction
            J_full = J_common @ projection.T_CW
            if jacobians is not None and jacobians[LANDMARK_BLOCK] is not None:
                _write_block(jacobians[LANDMARK_BLOCK], J_full)
            if jacobians_minimal is not None and jacobians_minimal[LANDMARK_BLOCK] is not None:
                _write_block(jacobians_minimal[LANDMARK_BLOCK], J_full)

        if _block_requested(EXTRINSICS_BLOCK, jacobians, jacobians_minimal):
            J_minimal = J_common @ _d_hp_C_d_extrinsics_minimal(pose, landmark, extrinsics)
            J_full = J_minimal @ PoseManifold.ambient_to_minimal_jacobian(extrinsics)
            self._write_pose_like_block(EXTRINSICS_BLOCK, extrinsics, J_full, jacobians, jacobians_minimal)

        return True

    def evaluate_with_minimal_jacobians(
        self,
        parameters: Sequence[Array['N', np.float64]],
        residuals: Array['2', np.float64],
        jacobians: JacobianBuffers,
        jacobians_minimal: JacobianBuffers,
    ) -> bool:
        return self.evaluate(parameters, residuals, jacobians, jacobians_minimal)

    def compute_residual(
        self,
        pose: PoseAmbient,
        landmark: HomogeneousPoint,
        extrinsics: PoseAmbient,
    ) -> Tuple[ReprojectionErrorVector, ProjectionStatus]:
        """ Residual plus the projection status, for outlier checks outside the optimizer. """
        pose, landmark, extrinsics = _read_parameter_blocks([pose, landmark, extrinsics])
        projection = self._project_landmark(pose, landmark, extrinsics)
        residual = self._weighting.whiten(self._measurement - projection.pixel)
        return residual, projection.status

    def _project_landmark(
        self,
        pose: PoseAmbient,
        landmark: HomogeneousPoint,
        extrinsics: PoseAmbient,
    ) -> _LandmarkInCamera:
        T_CW = PoseManifold.to_matrix(
            PoseManifold.compose(PoseManifold.inverse(extrinsics), PoseManifold.inverse(pose))
        )
        hp_C = T_CW @ landmark
        point_C, J_normalize = normalize_homogeneous_point(hp_C)
        pixel, J_project, status = self._camera_geometry.project(point_C)

        return _LandmarkInCamera(
            T_CW=T_CW,
            hp_C=hp_C,
            pixel=pixel,
            J_project=J_project,
            J_normalize=J_normalize,
            status=status,
        )

    @staticmethod
    def _write_pose_like_block(
        block_id: int,
        x: PoseAmbient,
        J_full: Array['2,7', np.float64],
        jacobians: JacobianBuffers,
        jacobians_minimal: JacobianBuffers,
    ):
        if jacobians is not None and jacobians[block_id] is not None:
            _write_block(jacobians[block_id], J_full)
        if jacobians_minimal is not None and jacobians_minimal[block_id] is not None:
            _write_block(jacobians_minimal[block_id], J_full @ PoseManifold.lift_jacobian(x))


def _d_hp_C_d_pose_minimal(
    pose: PoseAmbient,
    landmark: HomogeneousPoint,
    T_CW: TransformSE3,
) -> Array['4,6', np.float64]:
    """ hp_C.xyz = R_CS R_WS^T (p - w t_WS); with R_WS <- exp(d_alpha) R_WS and t_WS <- t_WS + dt. """
    w = landmark[3]
    R_CW = T_CW[:3, :3]
    J = np.zeros((4, 6), dtype=np.float64)
    J[:3, :3] = -w * R_CW
    J[:3, 3:6] = R_CW @ vec_hat(landmark[:3] - w * pose[:3])
    return J


def _d_hp_C_d_extrinsics_minimal(
    pose: PoseAmbient,
    landmark: HomogeneousPoint,
    extrinsics: PoseAmbient,
) -> Array['4,6', np.float64]:
    """ hp_C.xyz = R_SC^T (hp_S.xyz - w t_SC); with R_SC <- exp(d_alpha) R_SC and t_SC <- t_SC + dt. """
    w = landmark[3]
    R_WS = quat_to_rotation_matrix(pose[3:7])
    R_SC = quat_to_rotation_matrix(extrinsics[3:7])
    hp_S = R_WS.T @ (landmark[:3] - w * pose[:3])

    J = np.zeros((4, 6), dtype=np.float64)
    J[:3, :3] = -w * R_SC.T
    J[:3, 3:6] = R_SC.T @ vec_hat(hp_S - w * extrinsics[:3])
    return J


def _read_parameter_blocks(parameters: Sequence[Array['N', np.float64]]) -> List[np.ndarray]:
    if len(parameters) != len(PARAMETER_BLOCK_SIZES):
        raise ValueError(f"Expected {len(PARAMETER_BLOCK_SIZES)} parameter blocks, got {len(parameters)}")

    blocks = []
    for i, (block, size) in enumerate(zip(parameters, PARAMETER_BLOCK_SIZES)):
        block = np.asarray(block, dtype=np.float64).reshape(-1)
        if block.shape != (size,):
            raise ValueError(f"Parameter block {i} has to have {size} entries, got {block.size}")
        blocks.append(block)

    return blocks


def _check_buffer_list(buffers: JacobianBuffers, block_sizes: Tuple[int, ...], what: str):
    if buffers is None:
        return
    if len(buffers) != len(block_sizes):
        raise ValueError(f"{what}: expected {len(block_sizes)} entries, got {len(buffers)}")
    for i, (buffer, size) in enumerate(zip(buffers, block_sizes)):
        if buffer is not None and buffer.size != NUM_RESIDUALS * size:
            raise ValueError(f"{what}[{i}] has to hold {NUM_RESIDUALS}x{size} entries, got {buffer.size}")


def _any_requested(buffers: JacobianBuffers) -> bool:
    return buffers is not None and any(buffer is not None for buffer in buffers)


def _block_requested(block_id: int, jacobians: JacobianBuffers, jacobians_minimal: JacobianBuffers) -> bool:
    return (
        (jacobians is not None and jacobians[block_id] is not None)
        or (jacobians_minimal is not None and jacobians_minimal[block_id] is not None)
    )


def _write_block(buffer: np.ndarray, value: np.ndarray):
    if buffer.size != value.size:
        raise ValueError(f"Output buffer holds {buffer.size} entries, value has {value.size}")
    buffer[...] = value.reshape(buffer.shape)
