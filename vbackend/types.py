import numpy as np
from utils.custom_types import Array


Vector3d = Array['3', np.float64]
CameraRotationSO3 = Array['3,3', np.float64]
TransformSE3 = Array['4,4', np.float64]

Quaternion = Array['4', np.float64]           # qx, qy, qz, qw (Hamilton, scalar last)
PoseAmbient = Array['7', np.float64]          # tx, ty, tz, qx, qy, qz, qw
PoseMinimal = Array['6', np.float64]          # dtx, dty, dtz, d_alpha_1, d_alpha_2, d_alpha_3
HomogeneousPoint = Array['4', np.float64]     # x, y, z, w (w = 0 for points at infinity)

PxCoords2d = Array['2', np.float64]           # u right, v down, sub-pixel, origin at center of top-left pixel
ImgCoords2d = Array['2', np.float64]          # x right, y down, normalized image plane (X/Z, Y/Z)
CamCoords3d = Array['3', np.float64]          # x right, y down, z out of the optical center

InformationMatrix2d = Array['2,2', np.float64]
ReprojectionErrorVector = Array['2', np.float64]

ProjectionJacobian = Array['2,3', np.float64]     # d pixel / d point in camera
DistortionJacobian = Array['2,2', np.float64]     # d distorted / d undistorted image coords
LiftJacobian = Array['7,6', np.float64]           # d (x [+] delta) / d delta at delta = 0
AmbientToMinimalJacobian = Array['6,7', np.float64]

"""
WorldCoords (homogeneous landmark)
    -[inv(pose of sensor in world)]->
        SensorCoords
            -[inv(pose of camera in sensor), aka extrinsics]->
                CamCoords4d
                    -[/w unless w == 0]->
                        CamCoords3d
                            -[/Z]->
                                ImgCoords2d
                                    -[distortion]->
                                        distorted ImgCoords2d
                                            -[*focal, +center]->
                                                PxCoords2d
"""
