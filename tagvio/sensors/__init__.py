"""
IMU input and filter state definitions.

Modules:
    types: ImuSample, ImuSeries and the VioState value object
    imu_models: Bias (and noise) correction of raw IMU readings

Example:
    >>> import numpy as np
    >>> from tagvio.sensors import ImuSample, VioState, correct_gyro
    >>> state = VioState.identity(n_tags=2)
    >>> imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.0, 0.0, 0.1]))
    >>> omega = correct_gyro(imu.gyro, state.bias_gyro)
"""

from tagvio.sensors.types import ImuSample, ImuSeries, VioState
from tagvio.sensors.imu_models import correct_accel, correct_gyro

__all__ = [
    # Data types
    "ImuSample",
    "ImuSeries",
    "VioState",
    # IMU correction
    "correct_accel",
    "correct_gyro",
]
