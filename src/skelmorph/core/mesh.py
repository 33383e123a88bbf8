"""Skinned mesh data structures (no rendering dependencies)."""

import uuid
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from skelmorph.constants import WEIGHT_QUANTIZATION
from skelmorph.core.skeleton import BoneTransform, ReferenceSkeleton


@dataclass
class RenderSection:
    """A contiguous vertex range with its own local → global bone remap."""
    base_vertex_index: int
    num_vertices: int
    bone_map: NDArray[np.int32]

    def __post_init__(self):
        self.bone_map = np.asarray(self.bone_map, dtype=np.int32)

    @property
    def end_vertex_index(self) -> int:
        return self.base_vertex_index + self.num_vertices

    def contains(self, vertex_index: int) -> bool:
        return self.base_vertex_index <= vertex_index < self.end_vertex_index

    def in_range_mask(self, vertex_indices: NDArray) -> NDArray[np.bool_]:
        return (vertex_indices >= self.base_vertex_index) & (vertex_indices < self.end_vertex_index)

    def resolve_bones(self, local_indices: NDArray) -> tuple[NDArray[np.int32], NDArray[np.bool_]]:
        """Map section-local bone indices to global ones.

        Returns (global_indices, valid_mask). Negative or out-of-range local
        indices are invalid; their global index is reported as -1.
        """
        local = np.asarray(local_indices, dtype=np.int64)
        valid = (local >= 0) & (local < len(self.bone_map))
        global_idx = np.full(local.shape, -1, dtype=np.int32)
        if len(self.bone_map):
            global_idx[valid] = self.bone_map[local[valid]]
        return global_idx, valid


@dataclass
class SkinWeightBuffer:
    """Per-vertex bone influences.

    bone_indices: (V, K) section-local bone indices, negative = no bone
    weights: (V, K) uint16 quantized weights, decoded as raw / 65535
    """
    bone_indices: NDArray[np.int32]
    weights: NDArray[np.uint16]

    def __post_init__(self):
        self.bone_indices = np.asarray(self.bone_indices, dtype=np.int32)
        self.weights = np.asarray(self.weights, dtype=np.uint16)
        if self.bone_indices.shape != self.weights.shape:
            raise ValueError(
                f"bone index shape {self.bone_indices.shape} != weight shape {self.weights.shape}"
            )

    @classmethod
    def from_float_weights(cls, bone_indices, weights) -> "SkinWeightBuffer":
        """Build a buffer from float weights in [0, 1], quantizing to 16 bits."""
        w = np.clip(np.asarray(weights, dtype=np.float64), 0.0, 1.0)
        raw = np.rint(w * WEIGHT_QUANTIZATION).astype(np.uint16)
        return cls(bone_indices=np.asarray(bone_indices), weights=raw)

    @property
    def num_vertices(self) -> int:
        return self.bone_indices.shape[0]

    @property
    def max_influences(self) -> int:
        return self.bone_indices.shape[1] if self.bone_indices.ndim == 2 else 0

    def bone_index(self, vertex_index: int, influence: int) -> int:
        return int(self.bone_indices[vertex_index, influence])

    def raw_weight(self, vertex_index: int, influence: int) -> int:
        return int(self.weights[vertex_index, influence])

    def decoded_weights(self, quantization: float = WEIGHT_QUANTIZATION) -> NDArray[np.float64]:
        return self.weights.astype(np.float64) / quantization


@dataclass
class MorphTargetLOD:
    """Sparse per-vertex position deltas for one LOD of a morph target."""
    vertex_indices: NDArray[np.int64]
    position_deltas: NDArray[np.float64]
    section_indices: list[int] = field(default_factory=list)

    def __post_init__(self):
        self.vertex_indices = np.asarray(self.vertex_indices, dtype=np.int64).ravel()
        self.position_deltas = np.asarray(self.position_deltas, dtype=np.float64).reshape(-1, 3)
        if len(self.vertex_indices) != len(self.position_deltas):
            raise ValueError("vertex index and delta counts differ")


@dataclass
class MorphTarget:
    """Named blend shape with one or more LOD representations."""
    name: str
    lods: list[MorphTargetLOD] = field(default_factory=list)

    def get_lod(self, lod_index: int) -> Optional[MorphTargetLOD]:
        if 0 <= lod_index < len(self.lods):
            return self.lods[lod_index]
        return None


@dataclass
class SkinnedMesh:
    """Render geometry, skin weights, reference skeleton and morph targets.

    Sections, skin weights and morph targets are treated as read-only and
    shared between a mesh and its duplicates. The skeleton is copied on
    duplicate() so its reference pose can be edited privately.
    """
    name: str
    sections: list[RenderSection]
    skin_weights: SkinWeightBuffer
    skeleton: ReferenceSkeleton
    morph_targets: dict[str, MorphTarget] = field(default_factory=dict)
    mesh_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    # Handle of the mesh this one was duplicated from
    source_id: Optional[str] = None
    # The original mesh behind a duplicate; never another duplicate
    source: Optional["SkinnedMesh"] = field(default=None, repr=False, compare=False)

    @property
    def asset_key(self) -> str:
        """Stable cache key; duplicates share their source's key."""
        return self.source_id or self.mesh_id

    @property
    def original(self) -> "SkinnedMesh":
        """The unedited mesh this one derives from (itself if not a duplicate)."""
        return self.source if self.source is not None else self

    @property
    def vertex_count(self) -> int:
        return self.skin_weights.num_vertices

    def add_morph_target(self, target: MorphTarget) -> None:
        self.morph_targets[target.name] = target

    def find_morph_target(self, name: str) -> Optional[MorphTarget]:
        return self.morph_targets.get(name)

    def duplicate(self, name: Optional[str] = None) -> "SkinnedMesh":
        """Create a private copy with an independent reference skeleton."""
        return SkinnedMesh(
            name=name or f"{self.name}_baked",
            sections=self.sections,
            skin_weights=self.skin_weights,
            skeleton=self.skeleton.copy(),
            morph_targets=self.morph_targets,
            source_id=self.asset_key,
            source=self.original,
        )


@dataclass
class SkinnedMeshInstance:
    """A rendered instance of a skinned mesh (the host component)."""
    name: str
    mesh: Optional[SkinnedMesh]
    cpu_skinning: bool = False
    morph_weights: dict[str, float] = field(default_factory=dict)
    # Current animated local pose; None follows the mesh's reference pose
    local_pose: Optional[list[BoneTransform]] = None
    # Flag for render updates
    needs_update: bool = True

    def set_skinned_mesh(self, mesh: SkinnedMesh, reinit_pose: bool = True) -> None:
        self.mesh = mesh
        if reinit_pose:
            self.local_pose = None
        self.needs_update = True

    def set_cpu_skinning_enabled(self, enabled: bool) -> None:
        self.cpu_skinning = enabled
        self.needs_update = True

    def set_morph_target(self, name: str, weight: float) -> None:
        self.morph_weights[name] = weight
        self.needs_update = True

    def current_local_pose(self) -> list[BoneTransform]:
        if self.local_pose is not None:
            return self.local_pose
        if self.mesh is None:
            return []
        return self.mesh.skeleton.ref_pose

    def bone_name(self, bone_index: int) -> str:
        if self.mesh is None:
            return ""
        return self.mesh.skeleton.bone_name(bone_index)
