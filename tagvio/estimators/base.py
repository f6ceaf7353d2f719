"""
Base classes for state predictors.

Predictors are stateless with respect to the filter state: the state goes in
as a value and the predicted state comes out as a new value.
"""

from abc import ABC, abstractmethod
from typing import List

from tagvio.sensors.types import ImuSample, ImuSeries, VioState


class StatePredictor(ABC):
    """Abstract base class for EKF predict steps driven by IMU samples."""

    @abstractmethod
    def predict(self, state: VioState, imu: ImuSample, dt: float) -> VioState:
        """
        Perform the prediction step (time update) of the mean state.

        Args:
            state: Current state estimate.
            imu: Raw IMU sample held constant over the interval.
            dt: Interval length in seconds.

        Returns:
            A-priori state estimate at t + dt.
        """
        pass

    def propagate(self, state: VioState, imu_series: ImuSeries) -> List[VioState]:
        """
        Replay an IMU series from an initial state.

        Sample k drives the interval [t[k], t[k+1]); the last sample has no
        successor and is not applied.

        Args:
            state: State at imu_series.t[0].
            imu_series: Recorded IMU samples.

        Returns:
            List of states at every timestamp of the series, initial state first.
        """
        states = [state]
        for k in range(len(imu_series) - 1):
            dt = float(imu_series.t[k + 1] - imu_series.t[k])
            state = self.predict(state, imu_series.sample(k), dt)
            states.append(state)

        return states
