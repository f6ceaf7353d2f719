"""
Unit tests for the tag-aided VIO predict step.

Tests cover:
    - Constant-velocity and constant-rate scenarios with known answers
    - Zero-input stability and pure-rotation invariants
    - Unit-norm quaternion outputs
    - Tag positions relative to a moving camera
    - Purity (inputs untouched, repeatable outputs)
    - Input validation and integrator failure reporting
    - IMU series replay
"""

import dataclasses
import unittest

import numpy as np
import pytest

from tagvio.coords.rotations import (
    euler_to_quat,
    quat_rotate,
    quat_to_rotation_matrix,
    skew_symmetric,
)
from tagvio.coords.transforms import tag_positions_world
from tagvio.estimators.config import PredictConfig
from tagvio.estimators.state_codec import StateLayout, encode
from tagvio.estimators.vio_predict import (
    IntegrationError,
    RateModel,
    TagVioPredictor,
    predict,
)
from tagvio.sensors.types import ImuSample, ImuSeries, VioState


def canonical(q: np.ndarray) -> np.ndarray:
    """Flip q to the hemisphere with non-negative scalar part."""
    return q if q[0] >= 0 else -q


def moving_state(n_tags: int = 2) -> VioState:
    return VioState(
        position_body=np.array([1.0, -2.0, 0.5]),
        velocity_body=np.array([0.8, 0.1, -0.3]),
        orientation_body=euler_to_quat(0.1, -0.2, 0.6),
        bias_accel=np.array([0.02, -0.01, 0.03]),
        bias_gyro=np.array([0.001, 0.002, -0.001]),
        extrinsic_position=np.array([0.05, -0.02, 0.1]),
        extrinsic_orientation=euler_to_quat(-np.pi / 2.0, 0.0, -np.pi / 2.0),
        tag_positions=np.array([[0.2, -0.1, 2.0], [-0.5, 0.3, 3.5]])[:n_tags],
        tag_orientations=np.array(
            [euler_to_quat(0.0, np.pi, 0.2), euler_to_quat(0.1, np.pi, -0.4)]
        )[:n_tags],
    )


class TestPredictScenarios(unittest.TestCase):
    """Known-answer scenarios."""

    def setUp(self):
        self.state = dataclasses.replace(
            VioState.identity(), velocity_body=np.array([1.0, 0.0, 0.0])
        )

    def test_constant_velocity(self) -> None:
        """Test v = (1, 0, 0), zero IMU, dt = 1 moves the body to (1, 0, 0)."""
        nxt = predict(self.state, ImuSample.zero(), dt=1.0)

        np.testing.assert_allclose(nxt.position_body, [1.0, 0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(nxt.velocity_body, [1.0, 0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(nxt.orientation_body, [1.0, 0.0, 0.0, 0.0], atol=1e-12)

    def test_quarter_turn_about_z(self) -> None:
        """Test ω = (0, 0, π/2) for 1 s gives a 90° yaw."""
        imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.0, 0.0, np.pi / 2.0]))

        nxt = predict(self.state, imu, dt=1.0)

        expected = np.array([np.cos(np.pi / 4.0), 0.0, 0.0, np.sin(np.pi / 4.0)])
        np.testing.assert_allclose(canonical(nxt.orientation_body), expected, atol=1e-9)

    def test_gravity_free_fall(self) -> None:
        """Test a body at rest with zero specific force falls under gravity."""
        config = PredictConfig(gravity=9.81)

        nxt = predict(VioState.identity(), ImuSample.zero(), dt=1.0, config=config)

        np.testing.assert_allclose(nxt.velocity_body, [0.0, 0.0, -9.81], atol=1e-8)
        np.testing.assert_allclose(nxt.position_body, [0.0, 0.0, -4.905], atol=1e-8)

    def test_gravity_balanced_by_specific_force(self) -> None:
        """Test a tilted, stationary IMU measuring the reaction to gravity stays put."""
        q = euler_to_quat(0.3, -0.2, 1.0)
        state = dataclasses.replace(VioState.identity(), orientation_body=q)
        f_b = quat_to_rotation_matrix(q).T @ np.array([0.0, 0.0, 9.81])
        imu = ImuSample(accel=f_b, gyro=np.zeros(3))

        nxt = predict(state, imu, dt=0.5, config=PredictConfig(gravity=9.81))

        np.testing.assert_allclose(nxt.velocity_body, np.zeros(3), atol=1e-9)
        np.testing.assert_allclose(nxt.position_body, np.zeros(3), atol=1e-9)


class TestPredictInvariants(unittest.TestCase):
    """Properties that hold for all valid inputs."""

    def test_zero_input_stability(self) -> None:
        """Test p+ = p + dt C(q) v and q+ = q with zero IMU input."""
        state = dataclasses.replace(moving_state(), bias_accel=np.zeros(3), bias_gyro=np.zeros(3))
        dt = 0.7

        nxt = predict(state, ImuSample.zero(), dt)

        expected = state.position_body + dt * quat_rotate(
            state.orientation_body, state.velocity_body
        )
        np.testing.assert_allclose(nxt.position_body, expected, atol=1e-9)
        np.testing.assert_allclose(nxt.velocity_body, state.velocity_body, atol=1e-12)
        np.testing.assert_allclose(
            canonical(nxt.orientation_body), canonical(state.orientation_body), atol=1e-12
        )

    def test_gyro_equal_to_bias_means_no_rotation(self) -> None:
        """Test the bias is removed before the rotation update."""
        state = dataclasses.replace(VioState.identity(), bias_gyro=np.array([0.1, -0.2, 0.3]))
        imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.1, -0.2, 0.3]))

        nxt = predict(state, imu, dt=1.0)

        np.testing.assert_allclose(nxt.orientation_body, [1.0, 0.0, 0.0, 0.0], atol=1e-12)

    def test_pure_rotation_preserves_speed(self) -> None:
        """Test |v| is preserved and the world-frame velocity is unchanged."""
        state = dataclasses.replace(VioState.identity(), velocity_body=np.array([1.0, 2.0, -0.5]))
        imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.3, -0.4, 1.2]))
        dt = 0.2

        nxt = predict(state, imu, dt)

        self.assertAlmostEqual(
            np.linalg.norm(nxt.velocity_body), np.linalg.norm(state.velocity_body), delta=1e-7
        )
        np.testing.assert_allclose(
            quat_rotate(nxt.orientation_body, nxt.velocity_body),
            quat_rotate(state.orientation_body, state.velocity_body),
            atol=1e-7,
        )

    def test_pure_rotation_at_rest_keeps_position(self) -> None:
        """Test a rotating body at rest does not move."""
        state = dataclasses.replace(VioState.identity(), position_body=np.array([3.0, 4.0, 0.0]))
        imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.5, 0.5, -1.0]))

        nxt = predict(state, imu, dt=0.5)

        np.testing.assert_allclose(nxt.position_body, state.position_body, atol=1e-12)

    def test_unit_norm_quaternions(self) -> None:
        """Test every predicted quaternion has unit norm within 1e-9."""
        rng = np.random.default_rng(42)
        state = moving_state()

        for renormalize in (True, False):
            config = PredictConfig(renormalize=renormalize)
            for _ in range(5):
                imu = ImuSample(accel=rng.normal(size=3), gyro=rng.normal(size=3))
                nxt = predict(state, imu, dt=float(rng.uniform(0.001, 0.1)), config=config)

                self.assertAlmostEqual(np.linalg.norm(nxt.orientation_body), 1.0, delta=1e-9)
                np.testing.assert_allclose(
                    np.linalg.norm(nxt.tag_orientations, axis=1), 1.0, atol=1e-9
                )

    def test_renormalize_removes_input_drift(self) -> None:
        """Test a slightly non-unit input comes out unit-norm when renormalizing."""
        q = euler_to_quat(0.2, 0.1, -0.3) * (1.0 + 5e-7)
        state = dataclasses.replace(VioState.identity(), orientation_body=q)

        nxt = predict(state, ImuSample.zero(), dt=0.1)
        raw = predict(state, ImuSample.zero(), dt=0.1, config=PredictConfig(renormalize=False))

        self.assertAlmostEqual(np.linalg.norm(nxt.orientation_body), 1.0, delta=1e-12)
        self.assertAlmostEqual(np.linalg.norm(raw.orientation_body), 1.0 + 5e-7, delta=1e-12)

    def test_biases_and_extrinsics_pass_through(self) -> None:
        """Test identity prediction of biases and extrinsics."""
        state = moving_state()
        imu = ImuSample(accel=np.array([0.5, 0.0, 0.2]), gyro=np.array([0.1, 0.2, 0.3]))

        nxt = predict(state, imu, dt=0.1)

        for name in ("bias_accel", "bias_gyro", "extrinsic_position", "extrinsic_orientation"):
            np.testing.assert_array_equal(getattr(nxt, name), getattr(state, name))

    def test_tag_count_preserved(self) -> None:
        """Test the predicted state has the same tag slots as the input."""
        for n_tags in (0, 1, 2):
            state = moving_state(n_tags)

            nxt = predict(state, ImuSample.zero(), dt=0.05)

            self.assertEqual(nxt.n_tags, n_tags)
            self.assertEqual(encode(nxt).shape, encode(state).shape)

    def test_input_untouched_and_repeatable(self) -> None:
        """Test predict is pure: the input is unchanged and outputs repeat."""
        state = moving_state()
        before = encode(state)
        imu = ImuSample(accel=np.array([0.1, 0.2, 0.3]), gyro=np.array([0.3, -0.1, 0.2]))

        first = predict(state, imu, dt=0.1)
        second = predict(state, imu, dt=0.1)

        np.testing.assert_array_equal(encode(state), before)
        np.testing.assert_array_equal(encode(first), encode(second))
        self.assertIsNot(first.position_body, state.position_body)

    def test_dop853_agrees_with_rk45(self) -> None:
        """Test both embedded RK pairs converge to the same answer."""
        state = moving_state()
        imu = ImuSample(accel=np.array([0.4, -0.3, 0.2]), gyro=np.array([0.5, -0.2, 0.9]))

        a = predict(state, imu, dt=0.5, config=PredictConfig(method="RK45"))
        b = predict(state, imu, dt=0.5, config=PredictConfig(method="DOP853"))

        np.testing.assert_allclose(encode(a), encode(b), atol=1e-7)


class TestTagPrediction(unittest.TestCase):
    """Tag positions seen from a moving, rotating camera."""

    def test_translation_moves_tags_backwards(self) -> None:
        """Test a camera moving toward a tag sees it approach."""
        state = dataclasses.replace(
            VioState.identity(1),
            velocity_body=np.array([1.0, 0.0, 0.0]),
            tag_positions=np.array([[5.0, 0.0, 0.0]]),
        )

        nxt = predict(state, ImuSample.zero(), dt=1.0)

        np.testing.assert_allclose(nxt.tag_positions, [[4.0, 0.0, 0.0]], atol=1e-9)
        np.testing.assert_allclose(nxt.tag_orientations, [[1.0, 0.0, 0.0, 0.0]], atol=1e-12)

    def test_static_tag_world_position_under_translation(self) -> None:
        """Test a static tag keeps its world position when the body translates."""
        state = dataclasses.replace(moving_state(), bias_accel=np.zeros(3), bias_gyro=np.zeros(3))

        nxt = predict(state, ImuSample.zero(), dt=0.5)

        np.testing.assert_allclose(
            tag_positions_world(nxt), tag_positions_world(state), atol=1e-7
        )

    def test_static_tag_world_position_under_rotation(self) -> None:
        """Test a static tag keeps its world position when the body rotates in place."""
        state = dataclasses.replace(
            moving_state(),
            velocity_body=np.zeros(3),
            bias_accel=np.zeros(3),
            bias_gyro=np.zeros(3),
        )
        imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.4, -0.7, 1.1]))

        nxt = predict(state, imu, dt=0.3)

        np.testing.assert_allclose(
            tag_positions_world(nxt), tag_positions_world(state), atol=1e-7
        )

    def test_tag_orientation_counter_rotates(self) -> None:
        """Test q_T+ = q_T ⊗ exp(-dt Ω_v) with identity extrinsics."""
        state = VioState.identity(1)
        imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.0, 0.0, np.pi / 2.0]))

        nxt = predict(state, imu, dt=1.0)

        expected = np.array([np.cos(np.pi / 4.0), 0.0, 0.0, -np.sin(np.pi / 4.0)])
        np.testing.assert_allclose(canonical(nxt.tag_orientations[0]), expected, atol=1e-9)


class TestRateModel(unittest.TestCase):
    """Direct evaluation of the continuous rate equations."""

    def test_rates_match_equations(self) -> None:
        """Test each sub-block rate against its closed-form expression."""
        state = moving_state()
        imu = ImuSample(accel=np.array([0.3, 0.2, -0.1]), gyro=np.array([0.2, -0.3, 0.5]))
        config = PredictConfig(gravity=9.81)
        model = RateModel.from_inputs(state, imu, config)
        layout = StateLayout.for_state(state)

        rates = model(0.0, layout.encode_euclidean(state))

        f = imu.accel - state.bias_accel
        omega = imu.gyro - state.bias_gyro
        C_wb = quat_to_rotation_matrix(state.orientation_body)
        C_vb = quat_to_rotation_matrix(state.extrinsic_orientation)
        v = state.velocity_body
        g_b = C_wb.T @ np.array([0.0, 0.0, -9.81])

        np.testing.assert_allclose(rates[layout.slices["position_body"]], C_wb @ v, atol=1e-12)
        np.testing.assert_allclose(
            rates[layout.slices["velocity_body"]], g_b + f - np.cross(omega, v), atol=1e-12
        )
        for i, r_tag in enumerate(state.tag_positions):
            expected = -np.cross(C_vb @ omega, r_tag) - C_vb @ (
                np.cross(omega, state.extrinsic_position) + v
            )
            np.testing.assert_allclose(
                rates[layout.tag_slice][3 * i:3 * i + 3], expected, atol=1e-12
            )
        for name in ("bias_accel", "bias_gyro", "extrinsic_position"):
            np.testing.assert_array_equal(rates[layout.slices[name]], np.zeros(3))

    def test_camera_rate_matrix(self) -> None:
        """Test Ω_v = [C(q_vb) ω]x."""
        state = moving_state()
        imu = ImuSample(accel=np.zeros(3), gyro=np.array([0.2, -0.3, 0.5]))

        model = RateModel.from_inputs(state, imu, PredictConfig())

        omega = imu.gyro - state.bias_gyro
        expected = skew_symmetric(quat_rotate(state.extrinsic_orientation, omega))
        np.testing.assert_allclose(model.mat_omega_camera, expected, atol=1e-12)


class TestPredictValidation(unittest.TestCase):
    """Input-contract violations and integrator failures."""

    def setUp(self):
        self.state = moving_state()
        self.imu = ImuSample.zero()

    def test_non_positive_dt(self) -> None:
        """Test zero, negative and non-finite dt raise error."""
        for dt in (0.0, -0.01, np.nan, np.inf):
            with pytest.raises(ValueError, match="dt must be positive"):
                predict(self.state, self.imu, dt)

    def test_non_unit_quaternion(self) -> None:
        """Test quaternions outside the norm tolerance raise error."""
        state = dataclasses.replace(self.state, orientation_body=np.array([1.1, 0.0, 0.0, 0.0]))

        with pytest.raises(ValueError, match="orientation_body must be unit"):
            predict(state, self.imu, 0.1)

    def test_non_unit_tag_quaternion(self) -> None:
        """Test a drifted tag quaternion is caught as well."""
        tags = np.array(self.state.tag_orientations)
        tags[1] *= 1.01
        state = dataclasses.replace(self.state, tag_orientations=tags)

        with pytest.raises(ValueError, match="tag_orientations must be unit"):
            predict(state, self.imu, 0.1)

    def test_tolerance_is_configurable(self) -> None:
        """Test a looser tolerance accepts a drifted quaternion."""
        q = euler_to_quat(0.0, 0.0, 0.3) * 1.001
        state = dataclasses.replace(self.state, orientation_body=q)

        nxt = predict(state, self.imu, 0.1, config=PredictConfig(quat_norm_tol=1e-2))

        self.assertAlmostEqual(np.linalg.norm(nxt.orientation_body), 1.0, delta=1e-12)

    def test_wrong_input_types(self) -> None:
        """Test raw arrays are refused in place of the value objects."""
        with pytest.raises(TypeError, match="imu must be an ImuSample"):
            predict(self.state, np.zeros(6), 0.1)

        with pytest.raises(TypeError, match="state must be a VioState"):
            predict(encode(self.state), self.imu, 0.1)

    def test_step_ceiling_raises_integration_error(self) -> None:
        """Test exceeding max_steps surfaces diagnostics instead of truncating."""
        imu = ImuSample(accel=np.array([1.0, -2.0, 0.5]), gyro=np.array([10.0, -8.0, 12.0]))
        config = PredictConfig(max_steps=1)

        with pytest.raises(IntegrationError, match="max_steps=1") as excinfo:
            predict(self.state, imu, dt=1.0, config=config)

        err = excinfo.value
        self.assertEqual(err.n_steps, 1)
        self.assertGreater(err.t_last, 0.0)
        self.assertLess(err.t_last, 1.0)
        self.assertEqual(err.y_last.shape, (StateLayout(2).euclidean_dim,))
        self.assertTrue(np.all(np.isfinite(err.y_last)))


class TestTagVioPredictor(unittest.TestCase):
    """Predictor object and IMU series replay."""

    def test_predict_uses_config(self) -> None:
        """Test the bound configuration is applied."""
        predictor = TagVioPredictor(PredictConfig(gravity=9.81))

        nxt = predictor.predict(VioState.identity(), ImuSample.zero(), 1.0)

        np.testing.assert_allclose(nxt.velocity_body, [0.0, 0.0, -9.81], atol=1e-8)

    def test_propagate_series(self) -> None:
        """Test replaying 1 s of constant yaw rate gives a 90° turn."""
        n = 11
        t = np.linspace(0.0, 1.0, n)
        series = ImuSeries(
            t=t,
            accel=np.zeros((n, 3)),
            gyro=np.tile([0.0, 0.0, np.pi / 2.0], (n, 1)),
            meta={"sample_rate_hz": 10},
        )
        state = dataclasses.replace(VioState.identity(), velocity_body=np.array([1.0, 0.0, 0.0]))

        states = TagVioPredictor().propagate(state, series)

        self.assertEqual(len(states), n)
        self.assertIs(states[0], state)
        expected = np.array([np.cos(np.pi / 4.0), 0.0, 0.0, np.sin(np.pi / 4.0)])
        np.testing.assert_allclose(canonical(states[-1].orientation_body), expected, atol=1e-9)
        # Body-frame velocity turns opposite to the body
        np.testing.assert_allclose(states[-1].velocity_body, [0.0, -1.0, 0.0], atol=1e-7)

    def test_propagate_single_sample(self) -> None:
        """Test a one-sample series returns only the initial state."""
        series = ImuSeries(t=np.array([0.0]), accel=np.zeros((1, 3)), gyro=np.zeros((1, 3)))
        state = VioState.identity()

        self.assertEqual(TagVioPredictor().propagate(state, series), [state])
