from typing import Dict, List, Optional

import attr
import numpy as np

from utils.custom_types import Array
from utils.serialization import from_native_types, msgpack_dumps, msgpack_loads, to_native_types
from vbackend.cam import CameraIntrinsics, PinholeCamera
from vbackend.distortion import DISTORTION_MODELS
from vbackend.manifold import PoseManifold
from vbackend.poses import identity_pose
from vbackend.reprojection import ReprojectionError
from vbackend.types import InformationMatrix2d, PoseAmbient, PxCoords2d


@attr.define
class KeypointObservation:
    """ What the front end hands over per accepted keypoint. Only pixel and ids are used here. """
    keypoint_px: PxCoords2d
    landmark_id: int
    camera_id: int
    descriptor: Optional[Array['N', np.uint8]] = None
    keypoint_size: float = 1.0   # octave scale of the detection, the pixel std grows with it


@attr.define
class CameraConfig:
    """ Plain data description of one camera of the rig. """
    camera_id: int
    distortion_type: str
    distortion_coefficients: List[float]
    intrinsics: CameraIntrinsics
    extrinsics: List[float]   # T_SC as [tx, ty, tz, qx, qy, qz, qw]

    def to_camera(self) -> PinholeCamera:
        if self.distortion_type not in DISTORTION_MODELS:
            raise ValueError(f"Unknown distortion type {self.distortion_type}, known: {list(DISTORTION_MODELS)}")
        distortion = DISTORTION_MODELS[self.distortion_type].from_coefficients(self.distortion_coefficients)
        return PinholeCamera(intrinsics=self.intrinsics, distortion=distortion)

    @classmethod
    def from_camera(cls, camera_id: int, camera: PinholeCamera, extrinsics: PoseAmbient) -> 'CameraConfig':
        return cls(
            camera_id=camera_id,
            distortion_type=camera.distortion.NAME,
            distortion_coefficients=[float(c) for c in camera.distortion.coefficients()],
            intrinsics=camera.intrinsics,
            extrinsics=[float(v) for v in extrinsics],
        )


@attr.define
class CameraRig:
    """ Camera models and extrinsics (pose of each camera in the sensor frame) keyed by camera id.

    Extrinsics arrays are the parameter blocks shared by reference by every error term of that camera.
    """
    cameras: Dict[int, PinholeCamera] = attr.Factory(dict)
    extrinsics: Dict[int, PoseAmbient] = attr.Factory(dict)

    def add_camera(self, camera_id: int, camera: PinholeCamera, extrinsics: Optional[PoseAmbient] = None):
        extrinsics = identity_pose() if extrinsics is None else np.array(extrinsics, dtype=np.float64)
        if not PoseManifold.is_valid(extrinsics):
            raise ValueError(f"Extrinsics of camera {camera_id} are not a valid [t, unit q] pose")
        self.cameras[camera_id] = camera
        self.extrinsics[camera_id] = extrinsics

    def get_camera(self, camera_id: int) -> PinholeCamera:
        if camera_id not in self.cameras:
            raise KeyError(f"No camera with id {camera_id}, have {sorted(self.cameras)}")
        return self.cameras[camera_id]

    def create_reprojection_error(
        self,
        observation: KeypointObservation,
        information: Optional[InformationMatrix2d] = None,
    ) -> ReprojectionError:
        """ Bind an observation to the camera model of its camera id.
        Default weighting: isotropic, pixel std of keypoint_size / 8. """
        if information is None:
            sigma = observation.keypoint_size / 8.
            information = np.eye(2) / (sigma * sigma)

        return ReprojectionError(
            camera_geometry=self.get_camera(observation.camera_id),
            camera_id=observation.camera_id,
            measurement=observation.keypoint_px,
            information=information,
        )

    def to_config(self) -> List[CameraConfig]:
        return [
            CameraConfig.from_camera(camera_id, self.cameras[camera_id], self.extrinsics[camera_id])
            for camera_id in sorted(self.cameras)
        ]

    @classmethod
    def from_config(cls, configs: List[CameraConfig]) -> 'CameraRig':
        rig = cls()
        for config in configs:
            rig.add_camera(config.camera_id, config.to_camera(), np.array(config.extrinsics))
        return rig

    def dumps(self) -> bytes:
        return msgpack_dumps(to_native_types(self.to_config()))

    @classmethod
    def loads(cls, data: bytes) -> 'CameraRig':
        return cls.from_config(from_native_types(msgpack_loads(data), List[CameraConfig]))

    @classmethod
    def from_default(cls, distance_between_eyes: float = 0.11) -> 'CameraRig':
        """ Stereo pair looking forward, left camera at -baseline/2 along x of the sensor frame. """
        rig = cls()
        camera = PinholeCamera.create_test_object()
        rig.add_camera(0, camera, np.array([-distance_between_eyes / 2, 0., 0., 0., 0., 0., 1.]))
        rig.add_camera(1, camera, np.array([distance_between_eyes / 2, 0., 0., 0., 0., 0., 1.]))
        return rig
