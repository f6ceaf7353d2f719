"""Rotation representations and quaternion algebra.

This module provides the rotation utilities used by the predict step:
- Conversions between quaternions, rotation matrices and Euler angles
- Quaternion product, conjugate and vector rotation
- Skew-symmetric (cross-product) matrices, the so(3) Lie algebra
- The exponential map from so(3) to unit quaternions

Conventions:
- Quaternions: [qw, qx, qy, qz] where qw is the scalar part (Hamilton product)
- A quaternion q rotates a vector v as C(q) @ v, so the body-to-world
  quaternion maps body-frame vectors into the world frame
- Euler angles: [roll, pitch, yaw] in radians (ZYX/3-2-1 convention)
- Rotation matrices: 3x3 numpy arrays
"""

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import expm

IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)


def euler_to_quat(
    roll: float,
    pitch: float,
    yaw: float,
) -> NDArray[np.float64]:
    """Quaternion of a ZYX (yaw-pitch-roll) Euler sequence.

    The rotation is composed as q = q_z(yaw) ⊗ q_y(pitch) ⊗ q_x(roll), so
    roll is applied first in the body frame.

    Args:
        roll: Rotation about x in radians.
        pitch: Rotation about y in radians.
        yaw: Rotation about z in radians.

    Returns:
        Unit quaternion [qw, qx, qy, qz].

    Example:
        >>> euler_to_quat(0.0, 0.0, np.pi / 2.0)  # ≈ [0.7071, 0, 0, 0.7071]
    """
    half = 0.5 * np.array([roll, pitch, yaw], dtype=np.float64)
    c, s = np.cos(half), np.sin(half)

    q_roll = np.array([c[0], s[0], 0.0, 0.0])
    q_pitch = np.array([c[1], 0.0, s[1], 0.0])
    q_yaw = np.array([c[2], 0.0, 0.0, s[2]])

    return quat_multiply(q_yaw, quat_multiply(q_pitch, q_roll))


def quat_to_euler(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """ZYX Euler angles [roll, pitch, yaw] of a unit quaternion.

    Pitch is taken from arcsin and lies in [-π/2, π/2]; near gimbal lock the
    split between roll and yaw is not unique.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    C = quat_to_rotation_matrix(q)

    roll = np.arctan2(C[2, 1], C[2, 2])
    pitch = -np.arcsin(np.clip(C[2, 0], -1.0, 1.0))
    yaw = np.arctan2(C[1, 0], C[0, 0])

    return np.array([roll, pitch, yaw], dtype=np.float64)


def quat_to_rotation_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Direction cosine matrix C(q) of a unit quaternion.

    Uses the vector form with scalar part w and vector part u:

        C = (w² - uᵀu) I + 2 u uᵀ + 2 w [u]x

    Args:
        q: Unit quaternion [qw, qx, qy, qz].

    Returns:
        3x3 matrix with v_out = C @ v_in.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")

    w, u = q[0], q[1:]

    return (w * w - u @ u) * np.eye(3) + 2.0 * np.outer(u, u) + 2.0 * w * skew_symmetric(u)


def rotation_matrix_to_quat(R: NDArray[np.float64]) -> NDArray[np.float64]:
    """Unit quaternion of a rotation matrix (Shepperd).

    The component with the largest magnitude is recovered from the diagonal
    and the other three from the off-diagonal sums and differences, which
    keeps the division well conditioned for every rotation angle.

    Args:
        R: 3x3 rotation matrix.

    Returns:
        Unit quaternion [qw, qx, qy, qz]. The sign is not canonicalized.

    Raises:
        ValueError: If R is not a 3x3 matrix.
    """
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {R.shape}")

    trace = np.trace(R)
    # 4 * component² for w, x, y, z
    weights = np.array(
        [
            1.0 + trace,
            1.0 + 2.0 * R[0, 0] - trace,
            1.0 + 2.0 * R[1, 1] - trace,
            1.0 + 2.0 * R[2, 2] - trace,
        ]
    )
    k = int(np.argmax(weights))
    big = 0.5 * np.sqrt(weights[k])
    d = 0.25 / big

    skew_part = np.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]])
    sym_xy, sym_xz, sym_yz = R[0, 1] + R[1, 0], R[0, 2] + R[2, 0], R[1, 2] + R[2, 1]

    if k == 0:
        q = np.array([big, *(skew_part * d)])
    elif k == 1:
        q = np.array([skew_part[0] * d, big, sym_xy * d, sym_xz * d])
    elif k == 2:
        q = np.array([skew_part[1] * d, sym_xy * d, big, sym_yz * d])
    else:
        q = np.array([skew_part[2] * d, sym_xz * d, sym_yz * d, big])

    return q / np.linalg.norm(q)


def quat_normalize(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Normalize quaternion(s) to unit norm along the last axis."""
    return q / np.linalg.norm(q, axis=-1, keepdims=True)


def quat_conjugate(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Quaternion conjugate, the inverse rotation for a unit quaternion.

    Accepts a single quaternion (4,) or a stack (N, 4).
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape[-1] != 4:
        raise ValueError(f"Expected quaternion(s) with last dim 4, got shape {q.shape}")

    return q * np.array([1.0, -1.0, -1.0, -1.0])


def quat_multiply(p: NDArray[np.float64], q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Hamilton product p ⊗ q.

    The composed rotation applies q first, then p:
        C(p ⊗ q) = C(p) @ C(q)

    Both operands may be (4,) or (N, 4); standard broadcasting applies.

    Args:
        p: Left quaternion(s) [qw, qx, qy, qz].
        q: Right quaternion(s) [qw, qx, qy, qz].

    Returns:
        Product quaternion(s), broadcast shape of the inputs.
    """
    p = np.asarray(p, dtype=np.float64)
    q = np.asarray(q, dtype=np.float64)
    if p.shape[-1] != 4 or q.shape[-1] != 4:
        raise ValueError(
            f"Expected quaternions with last dim 4, got shapes {p.shape} and {q.shape}"
        )

    pw, px, py, pz = np.moveaxis(p, -1, 0)
    qw, qx, qy, qz = np.moveaxis(q, -1, 0)

    return np.stack(
        [
            pw * qw - px * qx - py * qy - pz * qz,
            pw * qx + px * qw + py * qz - pz * qy,
            pw * qy - px * qz + py * qw + pz * qx,
            pw * qz + px * qy - py * qx + pz * qw,
        ],
        axis=-1,
    )


def quat_rotate(q: NDArray[np.float64], v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rotate vector(s) by a unit quaternion: C(q) @ v.

    Args:
        q: Unit quaternion [qw, qx, qy, qz], shape (4,).
        v: Vector (3,) or stack of row vectors (N, 3).

    Returns:
        Rotated vector(s), same shape as v.
    """
    v = np.asarray(v, dtype=np.float64)
    if v.shape[-1] != 3:
        raise ValueError(f"Expected vector(s) with last dim 3, got shape {v.shape}")

    C = quat_to_rotation_matrix(np.asarray(q, dtype=np.float64))

    return v @ C.T


def skew_symmetric(v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Build the cross-product matrix [v]x.

    The returned matrix satisfies [v]x @ u == np.cross(v, u) for any 3-vector u;
    it is the so(3) representative of v:

        [v]x = [  0   -vz    vy ]
               [  vz   0    -vx ]
               [ -vy   vx    0  ]

    Args:
        v: 3-vector, e.g. an angular velocity in rad/s.

    Returns:
        3x3 skew-symmetric matrix.
    """
    v = np.asarray(v, dtype=np.float64)
    if v.shape != (3,):
        raise ValueError(f"Expected 3-vector, got shape {v.shape}")

    vx, vy, vz = v

    return np.array(
        [
            [0.0, -vz, vy],
            [vz, 0.0, -vx],
            [-vy, vx, 0.0],
        ],
        dtype=np.float64,
    )


def so3_exp_quat(phi_mat: NDArray[np.float64]) -> NDArray[np.float64]:
    """Exponential map from so(3) to a unit quaternion.

    Computes the matrix exponential of a skew-symmetric matrix, which is the
    rotation obtained by turning at constant angular velocity ω for time dt
    when phi_mat = dt * [ω]x, and converts it to a quaternion.

    Args:
        phi_mat: 3x3 skew-symmetric matrix.

    Returns:
        Unit quaternion [qw, qx, qy, qz] of expm(phi_mat).

    Raises:
        ValueError: If phi_mat is not 3x3 or not skew-symmetric.
    """
    phi_mat = np.asarray(phi_mat, dtype=np.float64)
    if phi_mat.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {phi_mat.shape}")
    if not np.allclose(phi_mat, -phi_mat.T, atol=1e-12):
        raise ValueError("Exponential map requires a skew-symmetric matrix")

    return rotation_matrix_to_quat(expm(phi_mat))
