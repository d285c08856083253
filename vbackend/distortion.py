""" Lens distortion models acting on normalized image coordinates (X/Z, Y/Z). """
import math
from typing import List, Tuple

import attr
import numpy as np

from vbackend.types import ImgCoords2d, DistortionJacobian


@attr.define(frozen=True)
class NoDistortion:
    NAME = 'none'

    def distort(self, x: ImgCoords2d) -> Tuple[ImgCoords2d, DistortionJacobian]:
        return np.array(x, dtype=np.float64), np.eye(2, dtype=np.float64)

    def coefficients(self) -> List[float]:
        return []

    @classmethod
    def from_coefficients(cls, coefficients: List[float]) -> 'NoDistortion':
        assert len(coefficients) == 0, f'{len(coefficients)=} != 0'
        return cls()

    @classmethod
    def test_object(cls) -> 'NoDistortion':
        return cls()


@attr.define(frozen=True)
class RadialTangentialDistortion:
    """ Brown-Conrady with two radial and two tangential terms, same as the OpenCV (k1, k2, p1, p2) model. """
    k1: float
    k2: float
    p1: float
    p2: float

    NAME = 'radial_tangential'

    def distort(self, x: ImgCoords2d) -> Tuple[ImgCoords2d, DistortionJacobian]:
        u0, u1 = float(x[0]), float(x[1])
        mx2 = u0 * u0
        my2 = u1 * u1
        mxy = u0 * u1
        rho2 = mx2 + my2
        rad_dist = self.k1 * rho2 + self.k2 * rho2 * rho2

        distorted = np.array([
            u0 + u0 * rad_dist + 2. * self.p1 * mxy + self.p2 * (rho2 + 2. * mx2),
            u1 + u1 * rad_dist + 2. * self.p2 * mxy + self.p1 * (rho2 + 2. * my2),
        ], dtype=np.float64)

        # d rad_dist / d u = (2 k1 + 4 k2 rho2) * u
        d_rad = 2. * self.k1 + 4. * self.k2 * rho2
        J = np.array([
            [1. + rad_dist + d_rad * mx2 + 2. * self.p1 * u1 + 6. * self.p2 * u0,
             d_rad * mxy + 2. * self.p1 * u0 + 2. * self.p2 * u1],
            [d_rad * mxy + 2. * self.p2 * u1 + 2. * self.p1 * u0,
             1. + rad_dist + d_rad * my2 + 2. * self.p2 * u0 + 6. * self.p1 * u1],
        ], dtype=np.float64)

        return distorted, J

    def coefficients(self) -> List[float]:
        return [self.k1, self.k2, self.p1, self.p2]

    @classmethod
    def from_coefficients(cls, coefficients: List[float]) -> 'RadialTangentialDistortion':
        assert len(coefficients) == 4, f'{len(coefficients)=} != 4'
        return cls(*coefficients)

    @classmethod
    def test_object(cls) -> 'RadialTangentialDistortion':
        return cls(k1=-0.16, k2=0.15, p1=0.0003, p2=0.0002)


@attr.define(frozen=True)
class EquidistantDistortion:
    """ Kannala-Brandt fisheye model, same as the OpenCV fisheye (k1, k2, k3, k4) model. """
    k1: float
    k2: float
    k3: float
    k4: float

    NAME = 'equidistant'

    def distort(self, x: ImgCoords2d) -> Tuple[ImgCoords2d, DistortionJacobian]:
        x = np.asarray(x, dtype=np.float64)
        r = math.sqrt(x[0] * x[0] + x[1] * x[1])

        if r < 1e-8:
            # theta_d / r -> 1 and its derivative -> 0
            return np.array(x, dtype=np.float64), np.eye(2, dtype=np.float64)

        theta = math.atan(r)
        theta2 = theta * theta
        theta4 = theta2 * theta2
        theta6 = theta4 * theta2
        theta8 = theta4 * theta4
        theta_d = theta * (1. + self.k1 * theta2 + self.k2 * theta4 + self.k3 * theta6 + self.k4 * theta8)
        scaling = theta_d / r

        d_theta_d_d_theta = (
            1. + 3. * self.k1 * theta2 + 5. * self.k2 * theta4 + 7. * self.k3 * theta6 + 9. * self.k4 * theta8
        )
        d_theta_d_r = 1. / (1. + r * r)
        d_scaling_d_r = (d_theta_d_d_theta * d_theta_d_r * r - theta_d) / (r * r)

        # d (s(r) x) / dx = s I + x (ds/dr) (x / r)^T
        J = scaling * np.eye(2) + np.outer(x, x) * (d_scaling_d_r / r)

        return scaling * x, J

    def coefficients(self) -> List[float]:
        return [self.k1, self.k2, self.k3, self.k4]

    @classmethod
    def from_coefficients(cls, coefficients: List[float]) -> 'EquidistantDistortion':
        assert len(coefficients) == 4, f'{len(coefficients)=} != 4'
        return cls(*coefficients)

    @classmethod
    def test_object(cls) -> 'EquidistantDistortion':
        return cls(k1=-0.16, k2=0.15, k3=0.0003, k4=0.0002)


DISTORTION_MODELS = {
    NoDistortion.NAME: NoDistortion,
    RadialTangentialDistortion.NAME: RadialTangentialDistortion,
    EquidistantDistortion.NAME: EquidistantDistortion,
}
