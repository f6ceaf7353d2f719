"""Tag position transforms from the camera frame to the world frame.

A tag observed at r_Ti in the camera frame V sits in the world frame W at

    p_Ti^W = p_wb + C(q_wb) r_bv + C(q_wb) C(q_vb)^T r_Ti

where p_wb, q_wb is the body pose and r_bv, q_vb are the camera extrinsics.
The extrinsic offset r_bv is applied with the body rotation only, matching
how the filter state stores it.

Only positions are transformed. World-frame tag orientations are not
produced.
"""

from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from tagvio.coords.rotations import quat_conjugate, quat_rotate
from tagvio.sensors.types import VioState


def tag_positions_world(state: VioState) -> NDArray[np.float64]:
    """Transform the tag positions of one state into the world frame.

    Args:
        state: Filter state holding body pose, extrinsics and tag positions.

    Returns:
        Tag positions in the world frame, shape (n_tags, 3).

    Example:
        >>> state = VioState.identity(n_tags=1)
        >>> tag_positions_world(state)  # [[0, 0, 0]]
    """
    offset_world = quat_rotate(state.orientation_body, state.extrinsic_position)
    tags_body = quat_rotate(quat_conjugate(state.extrinsic_orientation), state.tag_positions)
    tags_world = quat_rotate(state.orientation_body, tags_body)

    return state.position_body + offset_world + tags_world


def tags_body_to_world(states: Sequence[VioState]) -> NDArray[np.float64]:
    """Transform tag positions of a batch of states into the world frame.

    Each state is transformed independently.

    Args:
        states: Sequence of N states, all with the same number of tags.

    Returns:
        World-frame tag positions, shape (N, n_tags, 3). An empty sequence
        gives shape (0, 0, 3).

    Raises:
        ValueError: If the states do not share the same number of tags.
    """
    if len(states) == 0:
        return np.zeros((0, 0, 3))

    n_tags = {state.n_tags for state in states}
    if len(n_tags) != 1:
        raise ValueError(f"All states must carry the same number of tags, got {sorted(n_tags)}")

    return np.stack([tag_positions_world(state) for state in states])
