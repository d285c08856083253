import enum
from typing import Optional, Protocol, Tuple, Union

import attr
import numpy as np

from vbackend.distortion import NoDistortion, RadialTangentialDistortion, EquidistantDistortion
from vbackend.types import CamCoords3d, PxCoords2d, ProjectionJacobian

Distortion = Union[NoDistortion, RadialTangentialDistortion, EquidistantDistortion]

# depths below this are reported as behind the camera, and |z| below this is clamped before dividing
MIN_PROJECTION_DEPTH = 1e-6


class ProjectionStatus(enum.Enum):
    SUCCESS = 'success'
    POINT_BEHIND_CAMERA = 'point_behind_camera'
    OUTSIDE_VALID_RANGE = 'outside_valid_range'


class ICameraProjectionModel(Protocol):
    def project(self, point_in_cam: CamCoords3d) -> Tuple[PxCoords2d, ProjectionJacobian, ProjectionStatus]:
        ...


@attr.s(auto_attribs=True)
class CameraIntrinsics:
    fx: float
    fy: float
    cx: float
    cy: float
    screen_h: int
    screen_w: int


@attr.define(frozen=True)
class PinholeCamera:
    """ Pinhole projection followed by a lens distortion model.

    Pixel convention: u goes right, v goes down, (0, 0) is the center of the top-left pixel.
    Instances are immutable, so one camera can be shared by many residual terms evaluated in parallel.
    """
    intrinsics: CameraIntrinsics
    distortion: Distortion = attr.field(factory=NoDistortion)

    @property
    def image_width(self) -> int:
        return self.intrinsics.screen_w

    @property
    def image_height(self) -> int:
        return self.intrinsics.screen_h

    def is_in_image(self, pixel: PxCoords2d) -> bool:
        return bool(
            -0.5 <= pixel[0] < self.image_width - 0.5
            and -0.5 <= pixel[1] < self.image_height - 0.5
        )

    def project(self, point_in_cam: CamCoords3d) -> Tuple[PxCoords2d, ProjectionJacobian, ProjectionStatus]:
        """ Project a point in camera coordinates to pixels.

        Never raises on geometry: a point at (numerically) zero or negative depth gets
        status POINT_BEHIND_CAMERA and a finite, mirrored / clamped projection.
        Away from the depth clamp the Jacobian is the exact derivative of the returned pixel.
        """
        x, y, z = float(point_in_cam[0]), float(point_in_cam[1]), float(point_in_cam[2])

        if abs(z) < MIN_PROJECTION_DEPTH:
            z = MIN_PROJECTION_DEPTH

        inv_z = 1. / z
        img_coords = np.array([x * inv_z, y * inv_z], dtype=np.float64)

        J_normalize = np.array([
            [inv_z, 0., -img_coords[0] * inv_z],
            [0., inv_z, -img_coords[1] * inv_z],
        ], dtype=np.float64)

        distorted, J_distort = self.distortion.distort(img_coords)

        focal = np.array([self.intrinsics.fx, self.intrinsics.fy], dtype=np.float64)
        pixel = focal * distorted + np.array([self.intrinsics.cx, self.intrinsics.cy], dtype=np.float64)
        jacobian = (focal[:, np.newaxis] * J_distort) @ J_normalize

        if float(point_in_cam[2]) < MIN_PROJECTION_DEPTH:
            status = ProjectionStatus.POINT_BEHIND_CAMERA
        elif not np.all(np.isfinite(pixel)) or not self.is_in_image(pixel):
            status = ProjectionStatus.OUTSIDE_VALID_RANGE
        else:
            status = ProjectionStatus.SUCCESS

        return pixel, jacobian, status

    def create_random_visible_point(
        self,
        rng: np.random.Generator,
        min_dist: float = 0.5,
        max_dist: float = 10.0,
        max_tries: int = 1000
    ) -> CamCoords3d:
        """ Rejection-sample a point in front of the camera that projects into the image. """
        for _ in range(max_tries):
            # aim at a random pixel of the undistorted image, then go out along the ray
            u = rng.uniform(0, self.image_width - 1)
            v = rng.uniform(0, self.image_height - 1)
            ray = np.array([
                (u - self.intrinsics.cx) / self.intrinsics.fx,
                (v - self.intrinsics.cy) / self.intrinsics.fy,
                1.
            ])
            ray /= np.linalg.norm(ray)
            point = ray * rng.uniform(min_dist, max_dist)

            _, _, status = self.project(point)
            if status == ProjectionStatus.SUCCESS:
                return point

        raise ValueError(f"Could not sample a visible point in {max_tries} tries")

    @classmethod
    def create_test_object(cls, distortion: Optional[Distortion] = None) -> 'PinholeCamera':
        """ A 752x480 camera with made-up but plausible parameters. """
        intrinsics = CameraIntrinsics(fx=350., fy=360., cx=378., cy=238., screen_h=480, screen_w=752)
        return cls(
            intrinsics=intrinsics,
            distortion=distortion if distortion is not None else NoDistortion(),
        )

