"""Tests for the reference skeleton."""

import numpy as np
import pytest

from skelmorph.constants import INDEX_NONE
from skelmorph.core.math_utils import quat_from_axis_angle, vec3
from skelmorph.core.skeleton import (
    BoneInfo, BoneTransform, ReferenceSkeleton, compute_component_matrices,
)


def _chain() -> ReferenceSkeleton:
    return ReferenceSkeleton.from_parents(
        ["root", "spine", "head"], [INDEX_NONE, 0, 1],
        positions=[(0, 0, 1), (0, 0, 2), (0, 0, 3)],
    )


def test_component_positions_accumulate():
    skel = _chain()
    np.testing.assert_allclose(skel.component_position(2), [0, 0, 6])


def test_inverse_bind_matrices():
    skel = _chain()
    for comp, inv in zip(skel.component_matrices, skel.inverse_bind_matrices):
        np.testing.assert_allclose(comp @ inv, np.eye(4), atol=1e-12)


def test_parent_lookup():
    skel = _chain()
    assert skel.parent_index(0) == INDEX_NONE
    assert skel.parent_index(2) == 1
    assert skel.parent_index(99) == INDEX_NONE
    assert skel.bone_name(1) == "spine"
    assert skel.find_bone("head") == 2
    assert skel.find_bone("tail") == INDEX_NONE


def test_child_before_parent_rejected():
    with pytest.raises(ValueError):
        ReferenceSkeleton(
            [BoneInfo("a", 1), BoneInfo("b", INDEX_NONE)],
            [BoneTransform(), BoneTransform()],
        )


def test_mismatched_pose_rejected():
    with pytest.raises(ValueError):
        ReferenceSkeleton([BoneInfo("a")], [])


def test_update_and_rebuild():
    skel = _chain()
    skel.update_ref_pose_transform(1, BoneTransform(position=vec3(5, 0, 0)))
    skel.rebuild()
    np.testing.assert_allclose(skel.component_position(2), [5, 0, 4])


def test_copy_is_independent():
    skel = _chain()
    dup = skel.copy()
    dup.update_ref_pose_transform(0, BoneTransform(position=vec3(9, 9, 9)))
    dup.rebuild()
    np.testing.assert_allclose(skel.component_position(0), [0, 0, 1])
    np.testing.assert_allclose(dup.component_position(0), [9, 9, 9])


def test_compute_component_matrices_with_rotation():
    skel = _chain()
    pose = [t.copy() for t in skel.ref_pose]
    pose[0].quaternion = quat_from_axis_angle(vec3(1, 0, 0), np.pi / 2)
    mats = compute_component_matrices(skel, pose)
    # +z under a 90° X rotation points to -y
    np.testing.assert_allclose(mats[1][:3, 3], [0, -2, 1], atol=1e-12)
