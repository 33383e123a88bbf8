"""Per-bone vertex weight index, built once per mesh and cached."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import numpy as np

from skelmorph.core.config_loader import MorphBakeSettings
from skelmorph.core.mesh import RenderSection, SkinnedMesh, SkinWeightBuffer

logger = logging.getLogger(__name__)

# global bone index → (vertex index → weight)
BoneWeightIndex = dict[int, dict[int, float]]


class BoneWeightIndexCache:
    """Mesh key → BoneWeightIndex, guarded by a single coarse lock.

    Entries are shared read-only once stored.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, BoneWeightIndex] = {}
        self.build_count: int = 0

    def get_or_build(
        self,
        mesh_key: str,
        builder: Callable[[], BoneWeightIndex],
    ) -> tuple[BoneWeightIndex, bool]:
        """Return (index, built). Lookup, build and store all hold the lock."""
        with self._lock:
            existing = self._entries.get(mesh_key)
            if existing is not None:
                return existing, False
            index = builder()
            self._entries[mesh_key] = index
            self.build_count += 1
            return index, True

    def get(self, mesh_key: str) -> Optional[BoneWeightIndex]:
        with self._lock:
            return self._entries.get(mesh_key)

    def contains(self, mesh_key: str) -> bool:
        with self._lock:
            return mesh_key in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_cache = BoneWeightIndexCache()


def default_cache() -> BoneWeightIndexCache:
    """Process-wide cache used when a caller does not inject one."""
    return _default_cache


def index_section(
    section: RenderSection,
    skin_weights: SkinWeightBuffer,
    num_bones: int,
    settings: MorphBakeSettings,
) -> BoneWeightIndex:
    """Collect (vertex, weight) pairs per global bone for one render section."""
    start = max(section.base_vertex_index, 0)
    end = min(section.end_vertex_index, skin_weights.num_vertices)
    partial: BoneWeightIndex = {}
    if end <= start:
        return partial

    local = skin_weights.bone_indices[start:end]
    weights = skin_weights.weights[start:end].astype(np.float64) / settings.weight_quantization
    global_bones, valid = section.resolve_bones(local)
    valid &= (global_bones >= 0) & (global_bones < num_bones)
    valid &= weights > settings.min_influence_weight

    rows, cols = np.nonzero(valid)
    vertices = rows + start
    bones = global_bones[rows, cols]
    bone_weights = weights[rows, cols]

    # Slot order is preserved, so a later slot naming the same bone wins
    for vertex, bone, weight in zip(vertices.tolist(), bones.tolist(), bone_weights.tolist()):
        partial.setdefault(bone, {})[vertex] = weight
    return partial


def merge_partials(partials: list[BoneWeightIndex]) -> BoneWeightIndex:
    merged: BoneWeightIndex = {}
    for partial in partials:
        for bone, vertex_weights in partial.items():
            merged.setdefault(bone, {}).update(vertex_weights)
    return merged


class BoneWeightIndexer:
    """Builds and memoizes BoneWeightIndex objects for meshes.

    Sections are indexed in parallel on a thread pool; the partial maps are
    merged on the calling thread. The whole check-build-store sequence runs
    under the cache lock so a mesh is never indexed twice.
    """

    def __init__(
        self,
        cache: Optional[BoneWeightIndexCache] = None,
        settings: Optional[MorphBakeSettings] = None,
    ):
        self.cache = cache if cache is not None else default_cache()
        self.settings = settings or MorphBakeSettings()

    def get(self, mesh: Optional[SkinnedMesh]) -> Optional[BoneWeightIndex]:
        """Return the cached index for a mesh without building it."""
        if mesh is None:
            return None
        return self.cache.get(mesh.asset_key)

    def build_index(self, mesh: Optional[SkinnedMesh]) -> Optional[BoneWeightIndex]:
        if mesh is None:
            logger.error("Cannot index bone weights: mesh is None")
            return None

        key = mesh.asset_key
        existing = self.cache.get(key)
        if existing is not None:
            return existing

        index, built = self.cache.get_or_build(key, lambda: self._build(mesh))
        if not built:
            return index

        logger.info(
            "Indexed bone weights for %s: %d bones, %d sections",
            mesh.name, len(index), len(mesh.sections),
        )
        return index

    def _build(self, mesh: SkinnedMesh) -> BoneWeightIndex:
        num_bones = mesh.skeleton.num_bones
        sections = mesh.sections
        if not sections:
            return {}

        def work(section: RenderSection) -> BoneWeightIndex:
            return index_section(section, mesh.skin_weights, num_bones, self.settings)

        if len(sections) == 1:
            partials = [work(sections[0])]
        else:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
                partials = list(pool.map(work, sections))
        return merge_partials(partials)
