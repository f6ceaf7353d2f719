"""
Configuration for the tag-aided VIO predict step.

Gravity, integrator settings, quaternion handling and process noise are
explicit configuration rather than constants embedded in the dynamics.
"""

import warnings
from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np

SUPPORTED_METHODS = ("RK45", "DOP853")


@dataclass(frozen=True)
class ProcessNoiseParams:
    """
    Process noise standard deviations with explicit units in field names.

    The mean-state predict step does not inject these terms (no covariance
    is propagated); the values are carried so that a filter built on top of
    the predict step reads its noise model from one place.

    Attributes:
        accel_std_mps2: Accelerometer white noise (m/s²).
        gyro_std_rad_s: Gyroscope white noise (rad/s).
        accel_bias_rw_mps2_sqrt_s: Accelerometer bias random walk (m/s²/√s).
        gyro_bias_rw_rad_s_sqrt_s: Gyroscope bias random walk (rad/s/√s).
    """

    accel_std_mps2: float = 0.0
    gyro_std_rad_s: float = 0.0
    accel_bias_rw_mps2_sqrt_s: float = 0.0
    gyro_bias_rw_rad_s_sqrt_s: float = 0.0

    def __post_init__(self) -> None:
        """Validate that all standard deviations are finite and non-negative."""
        for name in (
            "accel_std_mps2",
            "gyro_std_rad_s",
            "accel_bias_rw_mps2_sqrt_s",
            "gyro_bias_rw_rad_s_sqrt_s",
        ):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be finite and non-negative, got {value}")


@dataclass(frozen=True)
class PredictConfig:
    """
    Settings of the predict step.

    Attributes:
        gravity: Gravity magnitude in m/s². The world gravity vector is
                 [0, 0, -gravity] (z up). Default 0.0 disables gravity,
                 which matches the reference behavior of the filter.
        method: Embedded Runge-Kutta pair used for the Euclidean sub-blocks.
                'RK45' is Dormand-Prince 5(4); 'DOP853' is Dormand-Prince 8(5,3).
        rtol: Relative tolerance of the adaptive integrator.
        atol: Absolute tolerance of the adaptive integrator.
        max_steps: Ceiling on accepted integrator steps per predict call.
        quat_norm_tol: Accepted deviation of input quaternion norms from 1.
        renormalize: Renormalize predicted quaternions to unit norm.
                     When False, drift from repeated compositions is left to
                     the caller or the correction step.
        process_noise: Noise model carried for the correction step. Not
                       applied by the predict step.

    Example:
        >>> config = PredictConfig(gravity=9.81, method='DOP853')
        >>> config.gravity_world
        array([ 0.  ,  0.  , -9.81])
    """

    gravity: float = 0.0
    method: Literal["RK45", "DOP853"] = "RK45"
    rtol: float = 1e-9
    atol: float = 1e-12
    max_steps: int = 10000
    quat_norm_tol: float = 1e-6
    renormalize: bool = True
    process_noise: Optional[ProcessNoiseParams] = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not np.isfinite(self.gravity) or self.gravity < 0:
            raise ValueError(f"gravity must be finite and non-negative, got {self.gravity}")

        if self.method not in SUPPORTED_METHODS:
            raise ValueError(
                f"method must be one of {SUPPORTED_METHODS}, got '{self.method}'"
            )

        if not self.rtol > 0 or not self.atol > 0:
            raise ValueError(
                f"rtol and atol must be positive, got rtol={self.rtol}, atol={self.atol}"
            )

        if (
            not np.isfinite(self.max_steps)
            or int(self.max_steps) != self.max_steps
            or self.max_steps < 1
        ):
            raise ValueError(f"max_steps must be a positive integer, got {self.max_steps}")

        if not 0 < self.quat_norm_tol < 1:
            raise ValueError(f"quat_norm_tol must be in (0, 1), got {self.quat_norm_tol}")

        if self.process_noise is not None:
            warnings.warn(
                "PredictConfig.process_noise is recorded but not injected: "
                "the predict step propagates the mean state only.",
                UserWarning,
            )

    @property
    def gravity_world(self) -> np.ndarray:
        """Gravity vector in the world frame (z up)."""
        return np.array([0.0, 0.0, -self.gravity])
