import attr
import numpy as np

from vbackend.types import InformationMatrix2d
from utils.custom_types import Array

SYMMETRY_RTOL = 1e-9


@attr.define
class InformationWeighting:
    """ Keeps information, covariance and square root information of a measurement consistent.

    All three are derived once in `set_information` and only read afterwards.
    """
    _information: InformationMatrix2d
    _covariance: InformationMatrix2d
    _sqrt_information: InformationMatrix2d

    @classmethod
    def from_information(cls, information: InformationMatrix2d) -> 'InformationWeighting':
        weighting = cls(np.eye(2), np.eye(2), np.eye(2))
        weighting.set_information(information)
        return weighting

    @classmethod
    def from_pixel_sigma(cls, sigma_px: float) -> 'InformationWeighting':
        return cls.from_information(np.eye(2) / (sigma_px * sigma_px))

    def set_information(self, information: InformationMatrix2d):
        information = np.array(information, dtype=np.float64)

        if information.shape != (2, 2):
            raise ValueError(f"Information matrix has to be 2x2, got {information.shape}")
        # relative to the magnitude of the matrix, information can be arbitrarily small
        asymmetry = np.abs(information - information.T).max()
        if asymmetry > SYMMETRY_RTOL * np.abs(information).max():
            raise ValueError(f"Information matrix has to be symmetric, got {information.tolist()}")

        # information = L @ L.T, so sqrt_information = L.T satisfies sqrt_information.T @ sqrt_information = information
        # raises np.linalg.LinAlgError if not positive definite
        L = np.linalg.cholesky(information)

        self._information = information
        self._covariance = np.linalg.inv(information)
        self._sqrt_information = L.T

    @property
    def information(self) -> InformationMatrix2d:
        return self._information

    @property
    def covariance(self) -> InformationMatrix2d:
        return self._covariance

    @property
    def sqrt_information(self) -> InformationMatrix2d:
        return self._sqrt_information

    def whiten(self, x: Array['2,...', np.float64]) -> Array['2,...', np.float64]:
        """ Left-multiply a residual (2,) or a Jacobian (2, N) by the square root information. """
        return self._sqrt_information @ x
