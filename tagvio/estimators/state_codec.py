"""
Flat-vector encoding of the VIO filter state.

Full state vector (fixed order, 23 + 7 * n_tags values):
    x = [p_wb (3), v_b (3), q_wb (4), b_f (3), b_ω (3), r_bv (3), q_vb (4),
         r_T1 (3), q_T1 (4), r_T2 (3), q_T2 (4), ...]^T

    Where:
        p_wb: body position in world frame
        v_b: body velocity in body frame
        q_wb: body-to-world quaternion
        b_f, b_ω: accelerometer and gyroscope biases
        r_bv, q_vb: camera extrinsic position and orientation
        r_Ti, q_Ti: i-th tag position and orientation in camera frame

Euclidean (integration) vector (15 + 3 * n_tags values):
    y = [p_wb, v_b, b_f, b_ω, r_bv, r_T1, r_T2, ...]^T

Quaternion time derivatives are not quaternions, so the ODE solver only sees
y. The rotations travel alongside it in a RotationBlocks handle and are
updated in closed form by the predict step.
"""

from typing import Dict, NamedTuple

import numpy as np

from tagvio.sensors.types import VioState

FULL_BASE_DIM = 23
FULL_TAG_DIM = 7
EUCLIDEAN_BASE_DIM = 15

# (name, width) in full-vector order, before the per-tag blocks
_FULL_FIELDS = (
    ("position_body", 3),
    ("velocity_body", 3),
    ("orientation_body", 4),
    ("bias_accel", 3),
    ("bias_gyro", 3),
    ("extrinsic_position", 3),
    ("extrinsic_orientation", 4),
)

EUCLIDEAN_FIELDS = (
    "position_body",
    "velocity_body",
    "bias_accel",
    "bias_gyro",
    "extrinsic_position",
)


class RotationBlocks(NamedTuple):
    """Quaternion sub-blocks kept outside the integration vector."""

    orientation_body: np.ndarray
    extrinsic_orientation: np.ndarray
    tag_orientations: np.ndarray

    @classmethod
    def of(cls, state: VioState) -> "RotationBlocks":
        return cls(
            orientation_body=state.orientation_body,
            extrinsic_orientation=state.extrinsic_orientation,
            tag_orientations=state.tag_orientations,
        )


class StateLayout:
    """
    Offsets of every sub-block for a fixed number of tag slots.

    Attributes:
        n_tags: Number of tag slots.
        slices: Slice of each Euclidean sub-block within the integration vector.
        tag_slice: Slice of all tag positions within the integration vector
                   (row-major, reshape to (n_tags, 3)).
    """

    def __init__(self, n_tags: int):
        if n_tags < 0:
            raise ValueError(f"n_tags must be non-negative, got {n_tags}")

        self.n_tags = n_tags
        self.slices: Dict[str, slice] = {
            name: slice(3 * k, 3 * k + 3) for k, name in enumerate(EUCLIDEAN_FIELDS)
        }
        self.tag_slice = slice(EUCLIDEAN_BASE_DIM, EUCLIDEAN_BASE_DIM + 3 * n_tags)

    def __repr__(self) -> str:
        return f"StateLayout(n_tags={self.n_tags})"

    @property
    def full_dim(self) -> int:
        return FULL_BASE_DIM + FULL_TAG_DIM * self.n_tags

    @property
    def euclidean_dim(self) -> int:
        return EUCLIDEAN_BASE_DIM + 3 * self.n_tags

    @classmethod
    def for_state(cls, state: VioState) -> "StateLayout":
        return cls(state.n_tags)

    @classmethod
    def from_full_dim(cls, dim: int) -> "StateLayout":
        """Infer the layout from a full-vector length."""
        n_tags, rem = divmod(dim - FULL_BASE_DIM, FULL_TAG_DIM)
        if dim < FULL_BASE_DIM or rem != 0:
            raise ValueError(
                f"State vector length {dim} does not match "
                f"{FULL_BASE_DIM} + {FULL_TAG_DIM} * n_tags"
            )
        return cls(n_tags)

    def _check_state(self, state: VioState) -> None:
        if state.n_tags != self.n_tags:
            raise ValueError(
                f"State carries {state.n_tags} tags, layout expects {self.n_tags}"
            )

    def _check_vector(self, x: np.ndarray, dim: int) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (dim,):
            raise ValueError(f"Expected vector of shape ({dim},), got {x.shape}")
        return x

    def encode(self, state: VioState) -> np.ndarray:
        """Full state vector, quaternions included."""
        self._check_state(state)

        blocks = [getattr(state, name) for name, _ in _FULL_FIELDS]
        tags = np.hstack([state.tag_positions, state.tag_orientations]).ravel()

        return np.concatenate(blocks + [tags])

    def decode(self, x: np.ndarray) -> VioState:
        """Inverse of encode()."""
        x = self._check_vector(x, self.full_dim)

        fields = {}
        offset = 0
        for name, width in _FULL_FIELDS:
            fields[name] = x[offset:offset + width]
            offset += width

        tags = x[offset:].reshape(self.n_tags, FULL_TAG_DIM)

        return VioState(tag_positions=tags[:, :3], tag_orientations=tags[:, 3:], **fields)

    def encode_euclidean(self, state: VioState) -> np.ndarray:
        """Integration vector y (Euclidean sub-blocks only)."""
        self._check_state(state)

        blocks = [getattr(state, name) for name in EUCLIDEAN_FIELDS]

        return np.concatenate(blocks + [state.tag_positions.ravel()])

    def decode_euclidean(self, y: np.ndarray, rotations: RotationBlocks) -> VioState:
        """Rejoin an integration vector with its rotation handle."""
        y = self._check_vector(y, self.euclidean_dim)

        fields = {name: y[sl] for name, sl in self.slices.items()}

        return VioState(
            orientation_body=rotations.orientation_body,
            extrinsic_orientation=rotations.extrinsic_orientation,
            tag_positions=y[self.tag_slice].reshape(self.n_tags, 3),
            tag_orientations=rotations.tag_orientations,
            **fields,
        )


def encode(state: VioState) -> np.ndarray:
    """Encode a state into its full flat vector."""
    return StateLayout.for_state(state).encode(state)


def decode(x: np.ndarray) -> VioState:
    """Decode a full flat vector, inferring the number of tags from its length."""
    x = np.asarray(x, dtype=np.float64)
    if x.ndim != 1:
        raise ValueError(f"State vector must be 1D, got shape {x.shape}")

    return StateLayout.from_full_dim(x.shape[0]).decode(x)
