"""Bakes resolved bone translations into a private reference skeleton."""

import logging
from collections.abc import Mapping
from typing import Optional, Protocol

import numpy as np

from skelmorph.constants import INDEX_NONE
from skelmorph.core.config_loader import MorphBakeSettings
from skelmorph.core.math_utils import (
    Mat4, Quat, Vec3,
    mat4_compose, mat4_decompose, mat4_identity, mat4_inverse, remap_axes, vec3,
)
from skelmorph.core.mesh import SkinnedMesh, SkinnedMeshInstance
from skelmorph.core.skeleton import BoneTransform, ReferenceSkeleton, compute_component_matrices

logger = logging.getLogger(__name__)


class PoseProvider(Protocol):
    """Converts transforms between a bone's parent space and component space."""

    def to_parent_space(
        self, parent_index: int, location: Vec3, rotation: Quat,
    ) -> tuple[Vec3, Quat]:
        """Local transform under ``parent_index`` → component space."""
        ...

    def from_parent_space(
        self, parent_index: int, location: Vec3, rotation: Quat,
    ) -> tuple[Vec3, Quat]:
        """Component-space transform → local under ``parent_index``."""
        ...


class ComponentPose:
    """PoseProvider backed by a snapshot of per-bone component matrices."""

    def __init__(self, component_matrices: list[Mat4]):
        self._matrices = component_matrices
        self._inverses: dict[int, Mat4] = {}

    @classmethod
    def from_local_pose(
        cls,
        skeleton: ReferenceSkeleton,
        local_pose: list[BoneTransform],
    ) -> "ComponentPose":
        return cls(compute_component_matrices(skeleton, local_pose))

    @classmethod
    def from_instance(cls, instance: SkinnedMeshInstance) -> "ComponentPose":
        """Snapshot the instance's current (animated or reference) pose."""
        return cls.from_local_pose(instance.mesh.skeleton, instance.current_local_pose())

    def _parent_matrix(self, parent_index: int) -> Mat4:
        if parent_index == INDEX_NONE or not 0 <= parent_index < len(self._matrices):
            return mat4_identity()
        return self._matrices[parent_index]

    def _parent_inverse(self, parent_index: int) -> Mat4:
        inv = self._inverses.get(parent_index)
        if inv is None:
            inv = mat4_inverse(self._parent_matrix(parent_index))
            self._inverses[parent_index] = inv
        return inv

    def to_parent_space(self, parent_index, location, rotation):
        m = self._parent_matrix(parent_index) @ mat4_compose(location, rotation, vec3(1, 1, 1))
        position, quaternion, _ = mat4_decompose(m)
        return position, quaternion

    def from_parent_space(self, parent_index, location, rotation):
        m = self._parent_inverse(parent_index) @ mat4_compose(location, rotation, vec3(1, 1, 1))
        position, quaternion, _ = mat4_decompose(m)
        return position, quaternion


class SkeletonRebaker:
    """Writes bone translations into an instance-private skeleton copy.

    The copy is created on the first bake and reused afterwards. Each bake
    starts again from the source mesh's reference pose, so the result only
    depends on the translations passed in.
    """

    def __init__(self, settings: Optional[MorphBakeSettings] = None):
        self.settings = settings or MorphBakeSettings()
        self.baked_mesh: Optional[SkinnedMesh] = None
        self._source: Optional[SkinnedMesh] = None

    def reset(self) -> None:
        self.baked_mesh = None
        self._source = None

    def _ensure_copy(self, source: SkinnedMesh) -> SkinnedMesh:
        if self.baked_mesh is None or self._source is not source:
            self.baked_mesh = source.duplicate()
            self._source = source
            logger.info("Duplicated %s for baking as %s", source.name, self.baked_mesh.name)
        return self.baked_mesh

    def bake_bone(
        self,
        bone_index: int,
        parent_index: int,
        original: BoneTransform,
        translation: Vec3,
        pose: PoseProvider,
    ) -> BoneTransform:
        """New local reference transform for one bone."""
        s = self.settings
        if parent_index == INDEX_NONE:
            location = remap_axes(translation, s.root_axis_order, s.root_axis_signs)
            return BoneTransform(
                position=location,
                quaternion=np.array(original.quaternion, dtype=np.float64),
                scale=np.array(original.scale, dtype=np.float64),
            )

        world_loc, world_rot = pose.to_parent_space(
            parent_index, original.position, original.quaternion,
        )
        world_loc = world_loc + remap_axes(translation, s.child_axis_order, s.child_axis_signs)
        local_loc, local_rot = pose.from_parent_space(parent_index, world_loc, world_rot)
        return BoneTransform(
            position=local_loc,
            quaternion=local_rot,
            scale=np.array(original.scale, dtype=np.float64),
        )

    def bake(
        self,
        source: SkinnedMesh,
        translations: Mapping[int, Vec3],
        pose: PoseProvider,
    ) -> SkinnedMesh:
        source = source.original
        baked = self._ensure_copy(source)
        skeleton = baked.skeleton
        original_pose = source.skeleton.ref_pose

        for i, transform in enumerate(original_pose):
            skeleton.update_ref_pose_transform(i, transform)

        written = 0
        for bone_index, translation in translations.items():
            if not skeleton.is_valid_index(bone_index):
                continue
            new_transform = self.bake_bone(
                bone_index,
                skeleton.parent_index(bone_index),
                original_pose[bone_index],
                np.asarray(translation, dtype=np.float64),
                pose,
            )
            skeleton.update_ref_pose_transform(bone_index, new_transform)
            written += 1

        skeleton.rebuild()
        logger.info("Baked %d bone translations into %s", written, baked.name)
        return baked
