"""
IMU measurement correction.

Raw gyro and accelerometer readings are corrected for the bias carried in the
filter state before they drive the predict step:
    - Gyroscope:      ω = ω̃ - b_ω - n_ω
    - Accelerometer:  f = f̃ - b_f - n_f

The noise terms n are the process-noise hook of the predict step. The mean
state prediction passes None, so only the bias is removed. Every quantity is
expressed in the body (IMU) frame.
"""

from typing import Optional

import numpy as np


def correct_gyro(
    gyro_meas: np.ndarray,
    b_g: np.ndarray,
    n_g: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Remove the gyro bias (and an optional noise sample) from a rate reading.

    Args:
        gyro_meas: Uncorrected angular rate ω̃, shape (3,) or (N, 3). Units: rad/s.
        b_g: Gyro bias b_ω from the state, broadcastable to gyro_meas.
        n_g: Noise sample n_ω, or None for the mean prediction.

    Returns:
        Angular rate ω with the shape of gyro_meas.

    Example:
        >>> correct_gyro(np.array([0.1, 0.05, -0.02]), np.array([0.001, -0.0005, 0.0002]))
        array([ 0.099 ,  0.0505, -0.0202])
    """
    omega = gyro_meas - b_g

    if n_g is not None:
        omega = omega - n_g

    return omega


def correct_accel(
    accel_meas: np.ndarray,
    b_a: np.ndarray,
    n_a: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Remove the accelerometer bias (and an optional noise sample) from a reading.

    Args:
        accel_meas: Uncorrected specific force f̃, shape (3,) or (N, 3). Units: m/s².
        b_a: Accelerometer bias b_f from the state, broadcastable to accel_meas.
        n_a: Noise sample n_f, or None for the mean prediction.

    Returns:
        Specific force f with the shape of accel_meas.

    Notes:
        Gravity stays in the reading; the predict step adds the configured
        gravity vector rotated into the body frame.
    """
    f = accel_meas - b_a

    if n_a is not None:
        f = f - n_a

    return f
