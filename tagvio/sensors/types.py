"""
Data structures for IMU input and the tag-aided VIO filter state.

This module defines the shared data types used across the predict step:
    - IMU samples and time series (raw, bias-uncorrected readings)
    - The compound filter state with body pose, velocity, IMU biases,
      camera extrinsics and the poses of observed tags

All structures use NumPy arrays. States are value objects: arrays are copied
on construction and marked read-only, so a predicted state never aliases
the state it was computed from.

Time Base Convention:
    All timestamps are float seconds (monotonic).

Frame Conventions:
    - W: World frame (fixed, inertial)
    - B: Body frame (IMU frame)
    - V: Camera frame (the "vision" sensor)
    - Ti: Frame of the i-th tag

Quaternion Convention:
    - Scalar-first: [qw, qx, qy, qz]
    - orientation_body is the B -> W rotation: v_W = C(q) @ v_B
    - extrinsic_orientation is the B -> V rotation
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterator, Optional

import numpy as np


def _frozen_array(value: Any, name: str, shape: tuple) -> np.ndarray:
    arr = np.array(value, dtype=np.float64)
    if arr.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values: {arr}")
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class ImuSample:
    """
    Single IMU reading in the body frame.

    Attributes:
        accel: Measured specific force, shape (3,). Units: m/s².
               Not corrected for accelerometer bias.
        gyro: Measured angular velocity, shape (3,). Units: rad/s.
              Not corrected for gyroscope bias.
        t: Optional timestamp in seconds.

    Example:
        >>> imu = ImuSample(accel=[0.0, 0.0, 0.0], gyro=[0.0, 0.0, 0.1])
    """

    accel: np.ndarray
    gyro: np.ndarray
    t: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate shapes and finiteness of the reading."""
        object.__setattr__(self, "accel", _frozen_array(self.accel, "ImuSample.accel", (3,)))
        object.__setattr__(self, "gyro", _frozen_array(self.gyro, "ImuSample.gyro", (3,)))

        if self.t is not None and not np.isfinite(self.t):
            raise ValueError(f"ImuSample.t must be finite, got {self.t}")

    @classmethod
    def zero(cls, t: Optional[float] = None) -> "ImuSample":
        """Reading with zero specific force and zero angular rate."""
        return cls(accel=np.zeros(3), gyro=np.zeros(3), t=t)


@dataclass(frozen=True)
class ImuSeries:
    """
    Time-series packet for IMU data.

    Attributes:
        t: Timestamps in seconds, shape (N,). Strictly increasing.
        accel: Specific force in body frame, shape (N, 3). Units: m/s².
        gyro: Angular velocity in body frame, shape (N, 3). Units: rad/s.
        meta: Optional metadata dict (e.g. 'sample_rate_hz', 'source').

    Notes:
        - Sample k is assumed to hold over [t[k], t[k+1]) (zero-order hold).
    """

    t: np.ndarray
    accel: np.ndarray
    gyro: np.ndarray
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Convert to float arrays, validate shapes, finiteness and time ordering."""
        for name in ("t", "accel", "gyro"):
            arr = np.asarray(getattr(self, name), dtype=np.float64)
            if not np.all(np.isfinite(arr)):
                raise ValueError(f"ImuSeries.{name} contains non-finite values")
            object.__setattr__(self, name, arr)

        if self.t.ndim != 1:
            raise ValueError(f"ImuSeries.t must be 1D array, got shape {self.t.shape}")

        n_samples = self.t.shape[0]

        if self.accel.shape != (n_samples, 3):
            raise ValueError(
                f"ImuSeries.accel must have shape ({n_samples}, 3), "
                f"got {self.accel.shape}"
            )

        if self.gyro.shape != (n_samples, 3):
            raise ValueError(
                f"ImuSeries.gyro must have shape ({n_samples}, 3), "
                f"got {self.gyro.shape}"
            )

        if n_samples > 1 and np.any(np.diff(self.t) <= 0):
            raise ValueError("ImuSeries.t must be strictly increasing")

    def __len__(self) -> int:
        return self.t.shape[0]

    def sample(self, k: int) -> ImuSample:
        """Return the k-th reading as an ImuSample."""
        return ImuSample(accel=self.accel[k], gyro=self.gyro[k], t=float(self.t[k]))

    def __iter__(self) -> Iterator[ImuSample]:
        for k in range(len(self)):
            yield self.sample(k)


@dataclass(frozen=True, eq=False)
class VioState:
    """
    Filter state for tag-aided visual-inertial odometry.

    Attributes:
        position_body: Body position in world frame, shape (3,). Units: m.
        velocity_body: Body velocity in body frame, shape (3,). Units: m/s.
        orientation_body: Body-to-world quaternion, shape (4,).
        bias_accel: Accelerometer bias, shape (3,). Units: m/s².
        bias_gyro: Gyroscope bias, shape (3,). Units: rad/s.
        extrinsic_position: IMU-to-camera offset in camera frame, shape (3,).
        extrinsic_orientation: Body-to-camera quaternion, shape (4,).
        tag_positions: Tag positions in camera frame, shape (n_tags, 3).
        tag_orientations: Tag quaternions in camera frame, shape (n_tags, 4).

    Notes:
        - Arrays are stored as read-only float64 copies. Derive modified
          states with dataclasses.replace().
        - Quaternion norms are not checked here; the predict step checks
          them against its configured tolerance.

    Example:
        >>> state = VioState.identity(n_tags=1)
        >>> state.n_tags
        1
    """

    position_body: np.ndarray
    velocity_body: np.ndarray
    orientation_body: np.ndarray
    bias_accel: np.ndarray
    bias_gyro: np.ndarray
    extrinsic_position: np.ndarray
    extrinsic_orientation: np.ndarray
    tag_positions: np.ndarray
    tag_orientations: np.ndarray

    def __post_init__(self) -> None:
        """Copy, freeze and validate every sub-block."""
        for name in (
            "position_body",
            "velocity_body",
            "bias_accel",
            "bias_gyro",
            "extrinsic_position",
        ):
            object.__setattr__(self, name, _frozen_array(getattr(self, name), name, (3,)))

        for name in ("orientation_body", "extrinsic_orientation"):
            object.__setattr__(self, name, _frozen_array(getattr(self, name), name, (4,)))

        # An empty tag list arrives as shape (0,), reshape before checking
        tag_positions = np.array(self.tag_positions, dtype=np.float64)
        tag_orientations = np.array(self.tag_orientations, dtype=np.float64)
        if tag_positions.size == 0:
            tag_positions = tag_positions.reshape(0, 3)
        if tag_orientations.size == 0:
            tag_orientations = tag_orientations.reshape(0, 4)

        n_tags = tag_positions.shape[0] if tag_positions.ndim == 2 else -1
        if n_tags < 0:
            raise ValueError(
                f"tag_positions must have shape (n_tags, 3), got {tag_positions.shape}"
            )
        object.__setattr__(
            self, "tag_positions", _frozen_array(tag_positions, "tag_positions", (n_tags, 3))
        )
        object.__setattr__(
            self,
            "tag_orientations",
            _frozen_array(tag_orientations, "tag_orientations", (n_tags, 4)),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VioState):
            return NotImplemented
        return all(
            np.array_equal(getattr(self, f.name), getattr(other, f.name)) for f in fields(self)
        )

    # Compared by value; ndarray fields are not hashable
    __hash__ = None

    @property
    def n_tags(self) -> int:
        """Number of tag slots carried by the state."""
        return self.tag_positions.shape[0]

    def quaternions(self) -> Dict[str, np.ndarray]:
        """All orientation sub-blocks keyed by name (tags stacked)."""
        return {
            "orientation_body": self.orientation_body,
            "extrinsic_orientation": self.extrinsic_orientation,
            "tag_orientations": self.tag_orientations,
        }

    @classmethod
    def identity(cls, n_tags: int = 0) -> "VioState":
        """
        State at the origin, at rest, with identity rotations and zero biases.

        Tags sit at the camera origin with identity orientation; callers
        normally override them with dataclasses.replace().
        """
        if n_tags < 0:
            raise ValueError(f"n_tags must be non-negative, got {n_tags}")

        return cls(
            position_body=np.zeros(3),
            velocity_body=np.zeros(3),
            orientation_body=np.array([1.0, 0.0, 0.0, 0.0]),
            bias_accel=np.zeros(3),
            bias_gyro=np.zeros(3),
            extrinsic_position=np.zeros(3),
            extrinsic_orientation=np.array([1.0, 0.0, 0.0, 0.0]),
            tag_positions=np.zeros((n_tags, 3)),
            tag_orientations=np.tile([1.0, 0.0, 0.0, 0.0], (n_tags, 1)),
        )
