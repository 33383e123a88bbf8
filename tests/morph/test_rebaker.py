"""Tests for baking translations into a private reference skeleton."""

import numpy as np

from skelmorph.constants import INDEX_NONE
from skelmorph.core.config_loader import MorphBakeSettings
from skelmorph.core.math_utils import quat_from_axis_angle, quat_identity, vec3
from skelmorph.core.mesh import RenderSection, SkinnedMesh, SkinWeightBuffer
from skelmorph.core.skeleton import BoneInfo, BoneTransform, ReferenceSkeleton
from skelmorph.morph.rebaker import ComponentPose, SkeletonRebaker


def _make_mesh(root: BoneTransform, child: BoneTransform) -> SkinnedMesh:
    skel = ReferenceSkeleton(
        [BoneInfo("root", INDEX_NONE), BoneInfo("child", 0)],
        [root, child],
    )
    skin = SkinWeightBuffer.from_float_weights([[0], [1]], [[1.0], [1.0]])
    return SkinnedMesh(
        name="rig",
        sections=[RenderSection(0, 2, [0, 1])],
        skin_weights=skin,
        skeleton=skel,
    )


def _rest_pose(mesh: SkinnedMesh) -> ComponentPose:
    return ComponentPose.from_local_pose(mesh.skeleton, mesh.skeleton.ref_pose)


class _RecordingPose:
    """Identity pose that records the calls it receives."""

    def __init__(self):
        self.calls = []

    def to_parent_space(self, parent_index, location, rotation):
        self.calls.append(("to", parent_index))
        return np.asarray(location, dtype=np.float64), rotation

    def from_parent_space(self, parent_index, location, rotation):
        self.calls.append(("from", parent_index))
        return np.asarray(location, dtype=np.float64), rotation


def test_root_translation_written_directly_with_axis_swap():
    q = quat_from_axis_angle(vec3(0, 0, 1), 0.4)
    mesh = _make_mesh(
        BoneTransform(position=vec3(7, 7, 7), quaternion=q),
        BoneTransform(position=vec3(0, 0, 5)),
    )
    baked = SkeletonRebaker().bake(mesh, {0: vec3(1, 2, 3)}, _rest_pose(mesh))
    root = baked.skeleton.ref_pose[0]
    np.testing.assert_allclose(root.position, [2, 1, 3])
    np.testing.assert_allclose(root.quaternion, q)


def test_child_translation_with_identity_parent():
    mesh = _make_mesh(BoneTransform(), BoneTransform(position=vec3(0, 0, 5)))
    baked = SkeletonRebaker().bake(mesh, {1: vec3(1, 2, 3)}, _rest_pose(mesh))
    np.testing.assert_allclose(baked.skeleton.ref_pose[1].position, [2, -1, 8], atol=1e-12)


def test_child_translation_through_rotated_parent():
    mesh = _make_mesh(
        BoneTransform(
            position=vec3(0, 0, 10),
            quaternion=quat_from_axis_angle(vec3(0, 0, 1), np.pi / 2),
        ),
        BoneTransform(position=vec3(1, 0, 0)),
    )
    baked = SkeletonRebaker().bake(mesh, {1: vec3(1, 2, 3)}, _rest_pose(mesh))
    child = baked.skeleton.ref_pose[1]
    # component-space offset (2, -1, 3) lands at (2, 0, 13); in the rotated
    # parent's space that is (0, -2, 3)
    np.testing.assert_allclose(child.position, [0, -2, 3], atol=1e-10)
    q = child.quaternion if child.quaternion[3] >= 0 else -child.quaternion
    np.testing.assert_allclose(q, quat_identity(), atol=1e-10)
    np.testing.assert_allclose(baked.skeleton.component_position(1), [2, 0, 13], atol=1e-10)


def test_pose_provider_is_used_for_children_only():
    mesh = _make_mesh(BoneTransform(), BoneTransform(position=vec3(0, 0, 5)))
    pose = _RecordingPose()
    SkeletonRebaker().bake(mesh, {0: vec3(0, 1, 0), 1: vec3(0, 1, 0)}, pose)
    assert pose.calls == [("to", 0), ("from", 0)]


def test_source_skeleton_untouched():
    mesh = _make_mesh(BoneTransform(), BoneTransform(position=vec3(0, 0, 5)))
    baked = SkeletonRebaker().bake(mesh, {1: vec3(0, 0, 10)}, _rest_pose(mesh))
    assert baked is not mesh
    assert baked.skeleton is not mesh.skeleton
    np.testing.assert_allclose(mesh.skeleton.ref_pose[1].position, [0, 0, 5])
    np.testing.assert_allclose(mesh.skeleton.component_position(1), [0, 0, 5])
    np.testing.assert_allclose(baked.skeleton.component_position(1), [0, 0, 15])


def test_copy_reused_and_rebaked_from_original():
    mesh = _make_mesh(BoneTransform(), BoneTransform(position=vec3(0, 0, 5)))
    rebaker = SkeletonRebaker()
    first = rebaker.bake(mesh, {1: vec3(0, 0, 10)}, _rest_pose(mesh))
    second = rebaker.bake(mesh, {1: vec3(0, 0, 10)}, _rest_pose(mesh))
    assert first is second
    np.testing.assert_allclose(second.skeleton.ref_pose[1].position, [0, 0, 15])

    third = rebaker.bake(mesh, {}, _rest_pose(mesh))
    np.testing.assert_allclose(third.skeleton.ref_pose[1].position, [0, 0, 5])


def test_invalid_bone_index_skipped():
    mesh = _make_mesh(BoneTransform(), BoneTransform(position=vec3(0, 0, 5)))
    baked = SkeletonRebaker().bake(mesh, {9: vec3(1, 1, 1)}, _rest_pose(mesh))
    np.testing.assert_allclose(baked.skeleton.ref_pose[1].position, [0, 0, 5])


def test_original_scale_preserved():
    mesh = _make_mesh(
        BoneTransform(),
        BoneTransform(position=vec3(0, 0, 5), scale=vec3(2, 2, 2)),
    )
    baked = SkeletonRebaker().bake(mesh, {1: vec3(0, 0, 1)}, _rest_pose(mesh))
    np.testing.assert_allclose(baked.skeleton.ref_pose[1].scale, [2, 2, 2])


def test_custom_axis_settings():
    settings = MorphBakeSettings(
        child_axis_order=(0, 1, 2), child_axis_signs=(1.0, 1.0, 1.0),
    )
    mesh = _make_mesh(BoneTransform(), BoneTransform(position=vec3(0, 0, 5)))
    baked = SkeletonRebaker(settings).bake(mesh, {1: vec3(1, 2, 3)}, _rest_pose(mesh))
    np.testing.assert_allclose(baked.skeleton.ref_pose[1].position, [1, 2, 8], atol=1e-12)


def test_baking_a_baked_copy_starts_from_original():
    mesh = _make_mesh(BoneTransform(), BoneTransform(position=vec3(0, 0, 5)))
    first = SkeletonRebaker().bake(mesh, {1: vec3(0, 0, 10)}, _rest_pose(mesh))
    again = SkeletonRebaker().bake(first, {1: vec3(0, 0, 10)}, _rest_pose(first))
    assert again is not first
    assert again.original is mesh
    np.testing.assert_allclose(again.skeleton.ref_pose[1].position, [0, 0, 15])
    np.testing.assert_allclose(first.skeleton.ref_pose[1].position, [0, 0, 15])
