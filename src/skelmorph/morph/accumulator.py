"""Folds weighted morph-target deltas into per-bone displacement totals.

Every morph delta lands on the bones that skin its vertex:

    displacement[bone] += skin_weight * net_weight * delta
    weight[bone]       += skin_weight   (once, when the vertex first moves)

The weighted average ``displacement / weight`` is what the resolver turns
into a bone translation. Before resolving, ``apply_zero_dilution`` folds in
the bone's unmoved vertices with zero displacement so a bone that only
partly moved is not over-translated.
"""

import logging
from collections.abc import Mapping
from typing import Iterator, Optional

import numpy as np
from numpy.typing import NDArray

from skelmorph.core.config_loader import MorphBakeSettings
from skelmorph.core.mesh import MorphTargetLOD, RenderSection, SkinnedMesh
from skelmorph.core.state import BoneTotals, MorphState
from skelmorph.morph.weight_index import BoneWeightIndex

logger = logging.getLogger(__name__)

_DEFAULT_SETTINGS = MorphBakeSettings()

# Residue left on a bone after a morph is removed again
_PRUNE_EPSILON = 1e-9


def _section_deltas(
    mesh: SkinnedMesh,
    lod: MorphTargetLOD,
) -> Iterator[tuple[int, RenderSection, NDArray[np.int64], NDArray[np.float64]]]:
    """Yield (section_index, section, vertices, deltas) per affected section."""
    vertex_count = mesh.vertex_count
    seen: set[int] = set()
    for section_index in lod.section_indices:
        if section_index in seen or not 0 <= section_index < len(mesh.sections):
            continue
        seen.add(section_index)
        section = mesh.sections[section_index]
        mask = section.in_range_mask(lod.vertex_indices)
        mask &= (lod.vertex_indices >= 0) & (lod.vertex_indices < vertex_count)
        if mask.any():
            yield section_index, section, lod.vertex_indices[mask], lod.position_deltas[mask]


def _influences(
    mesh: SkinnedMesh,
    section: RenderSection,
    vertices: NDArray[np.int64],
    settings: MorphBakeSettings,
) -> tuple[NDArray[np.intp], NDArray[np.int32], NDArray[np.float64]]:
    """Look up skin influences straight from the weight buffer.

    Returns (rows, bones, weights) where ``rows`` indexes into ``vertices``.
    """
    skin = mesh.skin_weights
    local = skin.bone_indices[vertices]
    weights = skin.weights[vertices].astype(np.float64) / settings.weight_quantization
    bones, valid = section.resolve_bones(local)
    valid &= (bones >= 0) & (bones < mesh.skeleton.num_bones)
    valid &= weights > settings.min_influence_weight
    rows, cols = np.nonzero(valid)
    return rows, bones[rows, cols], weights[rows, cols]


def _fold(
    state: MorphState,
    bones: NDArray,
    weights: NDArray[np.float64],
    displacements: NDArray[np.float64],
) -> None:
    """Sum contributions per bone and add them to the running totals."""
    if len(bones) == 0:
        return
    unique, inverse = np.unique(bones, return_inverse=True)
    inverse = inverse.ravel()
    w_sum = np.zeros(len(unique), dtype=np.float64)
    d_sum = np.zeros((len(unique), 3), dtype=np.float64)
    np.add.at(w_sum, inverse, weights)
    np.add.at(d_sum, inverse, displacements)
    for bone, w, d in zip(unique.tolist(), w_sum, d_sum):
        state.totals_for(bone).add(w, d)


def _register_morph_vertices(
    state: MorphState,
    mesh: SkinnedMesh,
    name: str,
    lod: MorphTargetLOD,
    settings: MorphBakeSettings,
) -> None:
    """Mark a morph's vertices as affected; first-time vertices add their weight."""
    if name in state.morph_vertices:
        return
    per_section = [
        (section_index, section, np.unique(vertices))
        for section_index, section, vertices, _ in _section_deltas(mesh, lod)
    ]
    touched: set[int] = set()
    for _, _, vertices in per_section:
        touched.update(vertices.tolist())
    fresh = {v for v in touched if not state.is_affected(v)}
    for v in touched:
        state.vertex_refcounts[v] = state.vertex_refcounts.get(v, 0) + 1

    # A vertex listed by overlapping sections still adds its weight once
    for section_index, section, vertices in per_section:
        first = [v for v in vertices.tolist() if v in fresh]
        if not first:
            continue
        fresh.difference_update(first)
        for v in first:
            state.vertex_sections[v] = section_index
        rows, bones, weights = _influences(
            mesh, section, np.asarray(first, dtype=np.int64), settings,
        )
        _fold(state, bones, weights, np.zeros((len(bones), 3)))
    state.morph_vertices[name] = frozenset(touched)


def _release_morph_vertices(
    state: MorphState,
    mesh: SkinnedMesh,
    name: str,
    settings: MorphBakeSettings,
) -> None:
    """Undo _register_morph_vertices for a morph whose weight returned to zero."""
    vertices = state.morph_vertices.pop(name, None)
    if not vertices:
        return
    released: dict[int, list[int]] = {}
    for v in vertices:
        count = state.vertex_refcounts.get(v, 0) - 1
        if count > 0:
            state.vertex_refcounts[v] = count
            continue
        state.vertex_refcounts.pop(v, None)
        section_index = state.vertex_sections.pop(v, None)
        if section_index is not None:
            released.setdefault(section_index, []).append(v)

    # Subtract through the same section that added the weight
    for section_index, section_vertices in sorted(released.items()):
        rows, bones, weights = _influences(
            mesh, mesh.sections[section_index],
            np.asarray(sorted(section_vertices), dtype=np.int64), settings,
        )
        _fold(state, bones, -weights, np.zeros((len(bones), 3)))


def _prune_empty_bones(state: MorphState) -> None:
    empty = [
        bone for bone, t in state.totals.items()
        if abs(t.weight) <= _PRUNE_EPSILON
        and np.linalg.norm(t.displacement) <= _PRUNE_EPSILON
    ]
    for bone in empty:
        del state.totals[bone]


def apply_morph_delta(
    state: MorphState,
    mesh: Optional[SkinnedMesh],
    morph_target_name: str,
    net_weight: float,
    settings: Optional[MorphBakeSettings] = None,
) -> bool:
    """Add ``net_weight`` worth of a morph target's deltas to the bone totals.

    Returns True if the totals changed. A near-zero weight, a missing mesh
    or an unknown morph target leaves the state untouched.
    """
    settings = settings or _DEFAULT_SETTINGS
    if mesh is None:
        logger.error("Cannot apply morph %s: mesh is None", morph_target_name)
        return False
    if abs(net_weight) <= settings.weight_epsilon:
        return False

    target = mesh.find_morph_target(morph_target_name)
    if target is None:
        logger.warning("Morph target not found on %s: %s", mesh.name, morph_target_name)
        return False
    lod = target.get_lod(settings.lod_index)
    if lod is None:
        logger.warning("Morph target %s has no LOD %d", morph_target_name, settings.lod_index)
        return False

    _register_morph_vertices(state, mesh, morph_target_name, lod, settings)

    for _, section, vertices, deltas in _section_deltas(mesh, lod):
        scaled = deltas * net_weight
        rows, bones, weights = _influences(mesh, section, vertices, settings)
        _fold(state, bones, np.zeros(len(bones)), weights[:, None] * scaled[rows])

    state.version += 1
    return True


def set_morph_weight(
    state: MorphState,
    mesh: Optional[SkinnedMesh],
    morph_target_name: str,
    weight: float,
    settings: Optional[MorphBakeSettings] = None,
) -> bool:
    """Move a morph to ``weight``, feeding only the change since last time."""
    settings = settings or _DEFAULT_SETTINGS
    if abs(weight) <= settings.weight_epsilon:
        weight = 0.0
    previous = state.applied_morphs.get(morph_target_name, 0.0)
    net = weight - previous
    if not apply_morph_delta(state, mesh, morph_target_name, net, settings):
        return False

    state.applied_morphs[morph_target_name] = weight
    if abs(weight) <= settings.weight_epsilon:
        _release_morph_vertices(state, mesh, morph_target_name, settings)
        _prune_empty_bones(state)
        del state.applied_morphs[morph_target_name]
    return True


def accumulate_morphs(
    state: MorphState,
    mesh: Optional[SkinnedMesh],
    targets: Mapping[str, float],
    settings: Optional[MorphBakeSettings] = None,
) -> int:
    """Batch form of set_morph_weight. Returns how many targets changed."""
    changed = 0
    for name, weight in targets.items():
        if set_morph_weight(state, mesh, name, weight, settings):
            changed += 1
    return changed


def apply_zero_dilution(
    state: MorphState,
    index: Optional[BoneWeightIndex],
    mesh_name: str = "",
) -> dict[int, BoneTotals]:
    """Return a copy of the totals with each bone's unmoved vertices folded in.

    Every vertex a bone influences that is not in the affected set adds its
    weight with zero displacement. The state itself is not modified, so the
    pass can run before every resolve without compounding.
    """
    diluted = state.copy_totals()
    if index is None:
        logger.error("No bone weight index for %s; zero-dilution skipped", mesh_name)
        return diluted

    affected = state.affected_vertices
    for bone, totals in diluted.items():
        vertex_weights = index.get(bone)
        if vertex_weights is None:
            logger.error("Bone weight index for %s has no entry for bone %d", mesh_name, bone)
            continue
        extra = sum(w for v, w in vertex_weights.items() if v not in affected)
        totals.weight += extra
    return diluted
