"""Sparse ``.target`` morph file parser → MorphTarget."""

from pathlib import Path
from typing import Optional

import numpy as np

from skelmorph.core.mesh import MorphTarget, MorphTargetLOD, RenderSection


def parse_target(
    text: str,
    name: str,
    vertex_count: int,
    sections: Optional[list[RenderSection]] = None,
    strict: bool = False,
) -> MorphTarget:
    """Parse sparse ASCII morph deltas into a single-LOD MorphTarget.

    Each data line is ``vertex_index dx dy dz``; lines starting with ``#``
    are comments. Out-of-range vertices and malformed lines are skipped
    unless ``strict`` is set, in which case they raise ValueError.

    When ``sections`` is given, the LOD's affected sections are the ones
    whose vertex range contains at least one parsed vertex.
    """
    indices: list[int] = []
    deltas: list[tuple[float, float, float]] = []

    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        try:
            if len(parts) < 4:
                raise ValueError(f"expected 4 fields, got {len(parts)}")
            idx = int(parts[0])
            dx, dy, dz = float(parts[1]), float(parts[2]), float(parts[3])
            if not 0 <= idx < vertex_count:
                raise ValueError(f"vertex {idx} out of range")
        except ValueError as e:
            if strict:
                raise ValueError(f"{name}:{line_no}: {e}") from e
            continue
        indices.append(idx)
        deltas.append((dx, dy, dz))

    vertex_indices = np.asarray(indices, dtype=np.int64)
    section_indices: list[int] = []
    if sections is not None and len(vertex_indices):
        section_indices = [
            i for i, section in enumerate(sections)
            if section.in_range_mask(vertex_indices).any()
        ]

    lod = MorphTargetLOD(
        vertex_indices=vertex_indices,
        position_deltas=np.asarray(deltas, dtype=np.float64).reshape(-1, 3),
        section_indices=section_indices,
    )
    return MorphTarget(name=name, lods=[lod])


def load_target_file(
    path,
    vertex_count: int,
    sections: Optional[list[RenderSection]] = None,
    name: Optional[str] = None,
) -> MorphTarget:
    """Load a ``.target`` file from disk; the morph is named after the file stem."""
    path = Path(path)
    with open(path, "r") as f:
        text = f.read()
    return parse_target(text, name or path.stem, vertex_count, sections)
