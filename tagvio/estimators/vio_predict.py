"""
Quaternion-based EKF predict step for tag-aided visual-inertial odometry.

Propagates the mean state over one IMU interval [0, dt]:

    Preprocessing (body frame, held constant over the interval):
        f = f̃ - b_f                     bias-corrected specific force
        ω = ω̃ - b_ω                     bias-corrected angular rate
        Ω = [ω]x                         so(3) matrix of the body rate
        Ω_v = [C(q_vb) ω]x               body rate seen in the camera frame
        g_b = C(q_wb)^T g_w              gravity in the body frame

    Continuous rates of the Euclidean sub-blocks:
        dp_wb/dt = C(q_wb) v_b
        dv_b/dt  = g_b + f - Ω v_b
        dr_Ti/dt = -Ω_v r_Ti - C(q_vb) (Ω r_bv + v_b)
        db_f/dt = db_ω/dt = dr_bv/dt = 0

    Closed-form rotation updates (constant rate over the interval):
        q_wb+ = q_wb ⊗ exp(dt Ω)
        q_Ti+ = q_Ti ⊗ exp(-dt Ω_v)
        q_vb+ = q_vb

The Euclidean sub-blocks are integrated with an adaptive embedded
Runge-Kutta pair (Dormand-Prince by default) so that repeated predict calls
do not accumulate the bias of fixed-step Euler integration.

References:
    Quaternion kinematics and the world-frame position equation:
        https://arxiv.org/abs/1606.05285
    Tag and camera-extrinsic states:
        https://arxiv.org/abs/1507.02081
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.integrate import DOP853, RK45

from tagvio.coords.rotations import (
    quat_conjugate,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quat_to_rotation_matrix,
    skew_symmetric,
    so3_exp_quat,
)
from tagvio.estimators.base import StatePredictor
from tagvio.estimators.config import PredictConfig
from tagvio.estimators.state_codec import RotationBlocks, StateLayout
from tagvio.sensors.imu_models import correct_accel, correct_gyro
from tagvio.sensors.types import ImuSample, VioState

logger = logging.getLogger(__name__)

_SOLVERS = {"RK45": RK45, "DOP853": DOP853}


class IntegrationError(RuntimeError):
    """
    The adaptive integrator failed to reach t = dt.

    Attributes:
        t_last: Last accepted integration time (s), in [0, dt).
        y_last: Integration vector at t_last.
        step_size: Last step size attempted by the solver (s), or None.
        n_steps: Number of accepted steps.
    """

    def __init__(
        self,
        message: str,
        t_last: float,
        y_last: np.ndarray,
        step_size: Optional[float],
        n_steps: int,
    ):
        super().__init__(
            f"{message} (t_last={t_last:.6g} s, step_size={step_size}, n_steps={n_steps})"
        )
        self.t_last = t_last
        self.y_last = y_last
        self.step_size = step_size
        self.n_steps = n_steps


@dataclass(frozen=True)
class RateModel:
    """
    Continuous-time rate function of the Euclidean sub-blocks.

    Built once per predict call from the bias-corrected IMU sample and the
    start-of-interval rotations; the solver calls it as rates = model(t, y).

    Attributes:
        layout: Offsets into the integration vector.
        f_corrected: Bias-corrected specific force, body frame, shape (3,).
        mat_omega: [ω]x of the corrected body rate, shape (3, 3).
        mat_omega_camera: [C(q_vb) ω]x, shape (3, 3).
        gravity_body: Gravity rotated into the body frame, shape (3,).
        C_wb: Body-to-world rotation matrix, shape (3, 3).
        C_vb: Body-to-camera rotation matrix, shape (3, 3).
    """

    layout: StateLayout
    f_corrected: np.ndarray
    mat_omega: np.ndarray
    mat_omega_camera: np.ndarray
    gravity_body: np.ndarray
    C_wb: np.ndarray
    C_vb: np.ndarray

    @classmethod
    def from_inputs(
        cls,
        state: VioState,
        imu: ImuSample,
        config: PredictConfig,
    ) -> "RateModel":
        """Preprocess the IMU sample against the current state."""
        f_corrected = correct_accel(imu.accel, state.bias_accel)
        omega_corrected = correct_gyro(imu.gyro, state.bias_gyro)

        mat_omega = skew_symmetric(omega_corrected)
        mat_omega_camera = skew_symmetric(
            quat_rotate(state.extrinsic_orientation, omega_corrected)
        )

        gravity_body = quat_rotate(quat_conjugate(state.orientation_body), config.gravity_world)

        return cls(
            layout=StateLayout.for_state(state),
            f_corrected=f_corrected,
            mat_omega=mat_omega,
            mat_omega_camera=mat_omega_camera,
            gravity_body=gravity_body,
            C_wb=quat_to_rotation_matrix(state.orientation_body),
            C_vb=quat_to_rotation_matrix(state.extrinsic_orientation),
        )

    def __call__(self, t: float, y: np.ndarray) -> np.ndarray:
        sl = self.layout.slices
        v_b = y[sl["velocity_body"]]
        r_bv = y[sl["extrinsic_position"]]
        r_tags = y[self.layout.tag_slice].reshape(self.layout.n_tags, 3)

        rates = np.zeros_like(y)
        rates[sl["position_body"]] = self.C_wb @ v_b
        rates[sl["velocity_body"]] = self.gravity_body + self.f_corrected - self.mat_omega @ v_b

        # Camera velocity seen by the tags, shared by every tag
        cam_rate = self.C_vb @ (self.mat_omega @ r_bv + v_b)
        tag_rates = -r_tags @ self.mat_omega_camera.T - cam_rate
        rates[self.layout.tag_slice] = tag_rates.ravel()

        return rates


def _check_quaternion(q: np.ndarray, name: str, tol: float) -> None:
    norms = np.linalg.norm(np.atleast_2d(q), axis=1)
    bad = np.abs(norms - 1.0) > tol
    if np.any(bad):
        raise ValueError(
            f"{name} must be unit quaternion(s) within {tol:g}, got norm(s) {norms[bad]}"
        )


def _validate_inputs(state: VioState, imu: ImuSample, dt: float, config: PredictConfig) -> None:
    if not isinstance(state, VioState):
        raise TypeError(f"state must be a VioState, got {type(state).__name__}")
    if not isinstance(imu, ImuSample):
        raise TypeError(f"imu must be an ImuSample, got {type(imu).__name__}")
    if not np.isfinite(dt) or dt <= 0:
        raise ValueError(f"dt must be positive and finite, got {dt}")

    for name, q in state.quaternions().items():
        _check_quaternion(q, name, config.quat_norm_tol)


def integrate_euclidean(
    rate_model: RateModel,
    y0: np.ndarray,
    dt: float,
    config: PredictConfig,
) -> np.ndarray:
    """
    Integrate the Euclidean sub-blocks over [0, dt] with an adaptive RK pair.

    Only the solution at t = dt is returned.

    Raises:
        IntegrationError: If the solver fails, exceeds config.max_steps or
            produces non-finite values.
    """
    solver = _SOLVERS[config.method](
        rate_model, 0.0, y0, dt, rtol=config.rtol, atol=config.atol
    )

    n_steps = 0
    t_last, y_last = solver.t, solver.y.copy()
    while solver.status == "running":
        if n_steps >= config.max_steps:
            raise IntegrationError(
                f"Integrator exceeded max_steps={config.max_steps}",
                t_last, y_last, solver.step_size, n_steps,
            )

        message = solver.step()
        if solver.status == "failed":
            raise IntegrationError(
                f"Integrator failed: {message}", t_last, y_last, solver.step_size, n_steps
            )
        if not np.all(np.isfinite(solver.y)):
            raise IntegrationError(
                "Integrator diverged to non-finite values",
                t_last, y_last, solver.step_size, n_steps,
            )

        n_steps += 1
        t_last, y_last = solver.t, solver.y.copy()

    logger.debug(
        "%s reached t=%.6g s in %i steps (%i rate evaluations)",
        config.method, solver.t, n_steps, solver.nfev,
    )

    return y_last


def predict(
    state: VioState,
    imu: ImuSample,
    dt: float,
    config: Optional[PredictConfig] = None,
) -> VioState:
    """
    EKF predict step of the mean state.

    Args:
        state: Current state estimate. Not modified.
        imu: Raw (bias-uncorrected) IMU sample, held over the interval.
        dt: Interval length in seconds, strictly positive.
        config: Predict settings. Default: PredictConfig().

    Returns:
        New VioState at t + dt with the same number of tag slots.

    Raises:
        ValueError: If dt is not positive and finite, or a quaternion of the
            state is not unit-norm within config.quat_norm_tol.
        IntegrationError: If the adaptive integrator does not reach dt.

    Example:
        >>> state = VioState.identity()
        >>> state = dataclasses.replace(state, velocity_body=[1.0, 0.0, 0.0])
        >>> nxt = predict(state, ImuSample.zero(), dt=1.0)
        >>> nxt.position_body  # ≈ [1, 0, 0]
    """
    if config is None:
        config = PredictConfig()

    _validate_inputs(state, imu, dt, config)

    rate_model = RateModel.from_inputs(state, imu, config)
    layout = rate_model.layout

    y_next = integrate_euclidean(rate_model, layout.encode_euclidean(state), dt, config)

    # Biases and extrinsics have zero rate, keep them bit-exact
    for name in ("bias_accel", "bias_gyro", "extrinsic_position"):
        y_next[layout.slices[name]] = getattr(state, name)

    q_body = quat_multiply(state.orientation_body, so3_exp_quat(dt * rate_model.mat_omega))
    q_tags = quat_multiply(
        state.tag_orientations, so3_exp_quat(-dt * rate_model.mat_omega_camera)
    )
    if config.renormalize:
        q_body = quat_normalize(q_body)
        q_tags = quat_normalize(q_tags)

    rotations = RotationBlocks(
        orientation_body=q_body,
        extrinsic_orientation=state.extrinsic_orientation,
        tag_orientations=q_tags,
    )

    return layout.decode_euclidean(y_next, rotations)


class TagVioPredictor(StatePredictor):
    """
    Predict step bound to a configuration.

    Example:
        >>> predictor = TagVioPredictor(PredictConfig(gravity=9.81))
        >>> states = predictor.propagate(initial_state, imu_series)
    """

    def __init__(self, config: Optional[PredictConfig] = None):
        self.config = config if config is not None else PredictConfig()

    def predict(self, state: VioState, imu: ImuSample, dt: float) -> VioState:
        return predict(state, imu, dt, self.config)
