import numpy as np
import pytest

from vbackend.cam import PinholeCamera, ProjectionStatus
from vbackend.distortion import EquidistantDistortion, RadialTangentialDistortion
from vbackend.poses import get_pose, identity_pose
from vbackend.rig import CameraConfig, CameraRig, KeypointObservation


def _get_mixed_rig() -> CameraRig:
    rig = CameraRig()
    rig.add_camera(0, PinholeCamera.create_test_object(RadialTangentialDistortion.test_object()))
    rig.add_camera(3, PinholeCamera.create_test_object(EquidistantDistortion.test_object()), get_pose(x=0.1, yaw=0.05))
    return rig


def test_error_term_uses_the_camera_of_the_observation():
    rig = _get_mixed_rig()
    observation = KeypointObservation(keypoint_px=np.array([300., 200.]), landmark_id=7, camera_id=3)

    error_term = rig.create_reprojection_error(observation)

    assert error_term.camera_id == 3
    assert error_term.camera_geometry is rig.get_camera(3)
    assert isinstance(error_term.camera_geometry.distortion, EquidistantDistortion)
    assert np.allclose(error_term.measurement, [300., 200.])


def test_default_information_follows_keypoint_size():
    rig = _get_mixed_rig()
    observation = KeypointObservation(keypoint_px=np.array([10., 20.]), landmark_id=0, camera_id=0, keypoint_size=16.)

    # sigma = 16 / 8 = 2 px
    error_term = rig.create_reprojection_error(observation)
    assert np.allclose(error_term.covariance, 4. * np.eye(2))

    custom = np.array([[3., 1.], [1., 2.]])
    assert np.allclose(rig.create_reprojection_error(observation, custom).information, custom)


def test_unknown_camera():
    rig = _get_mixed_rig()
    with pytest.raises(KeyError):
        rig.get_camera(1)
    with pytest.raises(KeyError):
        rig.create_reprojection_error(KeypointObservation(np.zeros(2), landmark_id=0, camera_id=1))


def test_bad_extrinsics_are_rejected():
    rig = CameraRig()
    bad = identity_pose()
    bad[6] = 2.
    with pytest.raises(ValueError):
        rig.add_camera(0, PinholeCamera.create_test_object(), bad)


def test_unknown_distortion_type():
    config = CameraConfig.from_camera(0, PinholeCamera.create_test_object(), identity_pose())
    config.distortion_type = 'double_sphere'
    with pytest.raises(ValueError):
        config.to_camera()


def test_dumps_loads_round_trip():
    rig = _get_mixed_rig()
    loaded = CameraRig.loads(rig.dumps())

    assert sorted(loaded.cameras) == [0, 3]
    for camera_id in rig.cameras:
        assert loaded.get_camera(camera_id) == rig.get_camera(camera_id)
        assert np.allclose(loaded.extrinsics[camera_id], rig.extrinsics[camera_id])


def test_default_stereo_rig_sees_a_point_in_both_cameras():
    rig = CameraRig.from_default(distance_between_eyes=0.2)
    landmark = np.array([0., 0., 5., 1.])
    pose = identity_pose()

    residuals = []
    for camera_id in (0, 1):
        observation = KeypointObservation(np.array([378., 238.]), landmark_id=0, camera_id=camera_id, keypoint_size=8.)
        error_term = rig.create_reprojection_error(observation)
        residual, status = error_term.compute_residual(pose, landmark, rig.extrinsics[camera_id])
        assert status == ProjectionStatus.SUCCESS
        residuals.append(residual)

    # disparity: the left camera sees the point right of center and vice versa, fx * 0.1 / 5 = 7 px each
    assert np.allclose(residuals[0], [-7., 0.])
    assert np.allclose(residuals[1], [7., 0.])
