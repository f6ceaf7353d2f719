"""Rotation utilities and frame transforms.

- Rotation representations (quaternions, matrices, Euler angles)
- Quaternion product, conjugate and vector rotation
- so(3) skew-symmetric matrices and the exponential map
- Camera-frame to world-frame tag positions
"""

from tagvio.coords.rotations import (
    IDENTITY_QUAT,
    euler_to_quat,
    quat_conjugate,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quat_to_euler,
    quat_to_rotation_matrix,
    rotation_matrix_to_quat,
    skew_symmetric,
    so3_exp_quat,
)
from tagvio.coords.transforms import tag_positions_world, tags_body_to_world

__all__ = [
    # Rotations
    "IDENTITY_QUAT",
    "euler_to_quat",
    "quat_conjugate",
    "quat_multiply",
    "quat_normalize",
    "quat_rotate",
    "quat_to_euler",
    "quat_to_rotation_matrix",
    "rotation_matrix_to_quat",
    "skew_symmetric",
    "so3_exp_quat",
    # Transforms
    "tag_positions_world",
    "tags_body_to_world",
]
