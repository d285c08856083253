import cv2
import numpy as np
import pytest

from vbackend.cam import PinholeCamera, ProjectionStatus, MIN_PROJECTION_DEPTH
from vbackend.distortion import NoDistortion, RadialTangentialDistortion, EquidistantDistortion

ALL_DISTORTIONS = [NoDistortion.test_object(), RadialTangentialDistortion.test_object(), EquidistantDistortion.test_object()]


def _camera_matrix(camera: PinholeCamera) -> np.ndarray:
    intr = camera.intrinsics
    return np.array([
        [intr.fx, 0., intr.cx],
        [0., intr.fy, intr.cy],
        [0., 0., 1.],
    ], dtype=np.float64)


def _get_test_points(camera: PinholeCamera, n: int = 20, seed: int = 1) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return np.array([camera.create_random_visible_point(rng) for _ in range(n)])


@pytest.mark.parametrize('distortion', ALL_DISTORTIONS)
def test_optical_axis_projects_to_principal_point(distortion):
    camera = PinholeCamera.create_test_object(distortion)
    pixel, _, status = camera.project(np.array([0., 0., 3.]))

    assert status == ProjectionStatus.SUCCESS
    assert np.allclose(pixel, [camera.intrinsics.cx, camera.intrinsics.cy])


@pytest.mark.parametrize('distortion', ALL_DISTORTIONS)
def test_projection_jacobian_matches_finite_differences(distortion):
    camera = PinholeCamera.create_test_object(distortion)
    eps = 1e-6

    for point in _get_test_points(camera):
        _, J, status = camera.project(point)
        assert status == ProjectionStatus.SUCCESS

        J_num = np.zeros((2, 3))
        for i in range(3):
            dx = np.zeros(3)
            dx[i] = eps
            J_num[:, i] = (camera.project(point + dx)[0] - camera.project(point - dx)[0]) / eps / 2.

        assert np.allclose(J, J_num, rtol=1e-6, atol=1e-5)


@pytest.mark.parametrize('distortion', ALL_DISTORTIONS)
def test_distortion_jacobian_matches_finite_differences(distortion):
    eps = 1e-7
    for x in [np.array([0.1, -0.2]), np.array([-0.5, 0.3]), np.array([0.0, 0.4])]:
        _, J = distortion.distort(x)
        J_num = np.zeros((2, 2))
        for i in range(2):
            dx = np.zeros(2)
            dx[i] = eps
            J_num[:, i] = (distortion.distort(x + dx)[0] - distortion.distort(x - dx)[0]) / eps / 2.
        assert np.allclose(J, J_num, atol=1e-7)


def test_radial_tangential_matches_opencv():
    distortion = RadialTangentialDistortion.test_object()
    camera = PinholeCamera.create_test_object(distortion)
    points = _get_test_points(camera)

    expected, _ = cv2.projectPoints(
        points, np.zeros(3), np.zeros(3), _camera_matrix(camera), np.array(distortion.coefficients())
    )
    pixels = np.array([camera.project(p)[0] for p in points])

    assert np.allclose(pixels, expected.reshape(-1, 2), atol=1e-6)


def test_equidistant_matches_opencv_fisheye():
    distortion = EquidistantDistortion.test_object()
    camera = PinholeCamera.create_test_object(distortion)
    points = _get_test_points(camera)

    expected, _ = cv2.fisheye.projectPoints(
        points.reshape(-1, 1, 3), np.zeros(3), np.zeros(3), _camera_matrix(camera), np.array(distortion.coefficients())
    )
    pixels = np.array([camera.project(p)[0] for p in points])

    assert np.allclose(pixels, expected.reshape(-1, 2), atol=1e-6)


def test_point_behind_camera():
    camera = PinholeCamera.create_test_object()
    pixel, J, status = camera.project(np.array([0.1, 0.2, -2.]))

    assert status == ProjectionStatus.POINT_BEHIND_CAMERA
    assert np.all(np.isfinite(pixel)) and np.all(np.isfinite(J))


@pytest.mark.parametrize('distortion', ALL_DISTORTIONS)
def test_zero_depth_is_behind_and_finite(distortion):
    camera = PinholeCamera.create_test_object(distortion)

    for point in [np.array([1., 0.5, 0.]), np.array([0., 0., 0.]), np.array([1., 1., MIN_PROJECTION_DEPTH / 2])]:
        pixel, J, status = camera.project(point)
        assert status == ProjectionStatus.POINT_BEHIND_CAMERA
        assert np.all(np.isfinite(pixel)) and np.all(np.isfinite(J))


def test_outside_image():
    camera = PinholeCamera.create_test_object()
    # x / z = 5 lands way right of a 752 px wide image
    pixel, _, status = camera.project(np.array([5., 0., 1.]))

    assert status == ProjectionStatus.OUTSIDE_VALID_RANGE
    assert not camera.is_in_image(pixel)
    assert camera.is_in_image(np.array([-0.5, -0.5]))
    assert not camera.is_in_image(np.array([camera.image_width - 0.5, 0.]))
