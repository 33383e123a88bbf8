"""Reference skeleton: bone hierarchy, reference pose and bind matrices."""

import copy
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from skelmorph.constants import INDEX_NONE
from skelmorph.core.math_utils import (
    Mat4, Quat, Vec3,
    mat4_compose, mat4_identity, mat4_inverse,
    quat_identity, vec3,
)


@dataclass
class BoneTransform:
    """Local bone transform relative to its parent (TRS)."""
    position: Vec3 = field(default_factory=vec3)
    quaternion: Quat = field(default_factory=quat_identity)
    scale: Vec3 = field(default_factory=lambda: vec3(1, 1, 1))

    def to_matrix(self) -> Mat4:
        return mat4_compose(self.position, self.quaternion, self.scale)

    def copy(self) -> "BoneTransform":
        return BoneTransform(
            position=np.array(self.position, dtype=np.float64),
            quaternion=np.array(self.quaternion, dtype=np.float64),
            scale=np.array(self.scale, dtype=np.float64),
        )


@dataclass
class BoneInfo:
    name: str
    parent_index: int = INDEX_NONE


class ReferenceSkeleton:
    """Flat bone list with parent indices and a reference (bind) pose.

    Parents must precede their children. ``rebuild()`` derives the
    component-space matrices and inverse bind matrices from the local
    reference pose, the way a scene graph derives world matrices.
    """

    def __init__(self, bones: list[BoneInfo], ref_pose: list[BoneTransform]):
        if len(bones) != len(ref_pose):
            raise ValueError(
                f"bone count ({len(bones)}) does not match ref pose ({len(ref_pose)})"
            )
        for i, bone in enumerate(bones):
            if bone.parent_index >= i:
                raise ValueError(f"bone {bone.name!r} listed before its parent")
        self.bones = bones
        self.ref_pose = ref_pose
        self._name_to_index = {b.name: i for i, b in enumerate(bones)}

        self.component_matrices: list[Mat4] = []
        self.inverse_bind_matrices: list[Mat4] = []
        self.rebuild()

    @classmethod
    def from_parents(
        cls,
        names: list[str],
        parents: list[int],
        positions: Optional[list[tuple[float, float, float]]] = None,
    ) -> "ReferenceSkeleton":
        """Convenience constructor from parallel name/parent lists."""
        bones = [BoneInfo(name=n, parent_index=p) for n, p in zip(names, parents)]
        if positions is None:
            pose = [BoneTransform() for _ in bones]
        else:
            pose = [BoneTransform(position=vec3(*p)) for p in positions]
        return cls(bones, pose)

    @property
    def num_bones(self) -> int:
        return len(self.bones)

    def is_valid_index(self, bone_index: int) -> bool:
        return 0 <= bone_index < len(self.bones)

    def parent_index(self, bone_index: int) -> int:
        if not self.is_valid_index(bone_index):
            return INDEX_NONE
        return self.bones[bone_index].parent_index

    def bone_name(self, bone_index: int) -> str:
        if not self.is_valid_index(bone_index):
            return ""
        return self.bones[bone_index].name

    def find_bone(self, name: str) -> int:
        return self._name_to_index.get(name, INDEX_NONE)

    def update_ref_pose_transform(self, bone_index: int, transform: BoneTransform) -> None:
        """Overwrite one bone's local reference transform (call rebuild() after)."""
        self.ref_pose[bone_index] = transform.copy()

    def rebuild(self) -> None:
        """Recompute component-space and inverse bind matrices from the ref pose."""
        comp: list[Mat4] = []
        for i, bone in enumerate(self.bones):
            local = self.ref_pose[i].to_matrix()
            if bone.parent_index == INDEX_NONE:
                comp.append(local)
            else:
                comp.append(comp[bone.parent_index] @ local)
        self.component_matrices = comp
        self.inverse_bind_matrices = [mat4_inverse(m) for m in comp]

    def component_position(self, bone_index: int) -> Vec3:
        return self.component_matrices[bone_index][:3, 3].copy()

    def copy(self) -> "ReferenceSkeleton":
        """Deep copy: bone list and reference pose are independent of the source."""
        return ReferenceSkeleton(
            copy.deepcopy(self.bones),
            [t.copy() for t in self.ref_pose],
        )


def compute_component_matrices(
    skeleton: ReferenceSkeleton,
    local_pose: list[BoneTransform],
) -> list[Mat4]:
    """Compose a local pose down the hierarchy into component-space matrices."""
    result: list[Mat4] = []
    for i in range(skeleton.num_bones):
        local = local_pose[i].to_matrix() if i < len(local_pose) else mat4_identity()
        parent = skeleton.parent_index(i)
        result.append(local if parent == INDEX_NONE else result[parent] @ local)
    return result
