"""Per-instance morph accumulation state."""

from dataclasses import dataclass, field

import numpy as np

from skelmorph.core.math_utils import Vec3, vec3


@dataclass
class BoneTotals:
    """Running (total weight, total weighted displacement) for one bone."""
    weight: float = 0.0
    displacement: Vec3 = field(default_factory=vec3)

    def add(self, weight: float, displacement) -> None:
        self.weight += float(weight)
        self.displacement = self.displacement + np.asarray(displacement, dtype=np.float64)

    def average(self) -> Vec3:
        if self.weight > 0:
            return self.displacement / self.weight
        return vec3()

    def copy(self) -> "BoneTotals":
        return BoneTotals(weight=self.weight, displacement=self.displacement.copy())


@dataclass
class MorphState:
    """Everything one mesh instance remembers between morph updates.

    applied_morphs: morph name → weight already folded into ``totals``
    vertex_refcounts: vertex → number of active morphs touching it; a vertex
        is in the affected set while its count is positive
    morph_vertices: morph name → vertices it touched when it became active
    vertex_sections: affected vertex → section whose bone map supplied its
        weight, so release subtracts the same influences
    totals: global bone index → BoneTotals
    relative_translations: last resolved bone → translation
    version: bumped on every mutation of ``totals``
    """
    applied_morphs: dict[str, float] = field(default_factory=dict)
    vertex_refcounts: dict[int, int] = field(default_factory=dict)
    morph_vertices: dict[str, frozenset[int]] = field(default_factory=dict)
    vertex_sections: dict[int, int] = field(default_factory=dict)
    totals: dict[int, BoneTotals] = field(default_factory=dict)
    relative_translations: dict[int, Vec3] = field(default_factory=dict)
    translated_bone_names: list[str] = field(default_factory=list)
    translated_bone_translations: list[Vec3] = field(default_factory=list)
    version: int = 0
    resolved_version: int = -1

    @property
    def affected_vertices(self) -> set[int]:
        return {v for v, count in self.vertex_refcounts.items() if count > 0}

    def is_affected(self, vertex_index: int) -> bool:
        return self.vertex_refcounts.get(vertex_index, 0) > 0

    @property
    def needs_resolve(self) -> bool:
        return self.resolved_version != self.version

    def totals_for(self, bone_index: int) -> BoneTotals:
        totals = self.totals.get(bone_index)
        if totals is None:
            totals = BoneTotals()
            self.totals[bone_index] = totals
        return totals

    def copy_totals(self) -> dict[int, BoneTotals]:
        return {bone: t.copy() for bone, t in self.totals.items()}

    def clear(self) -> None:
        self.applied_morphs.clear()
        self.vertex_refcounts.clear()
        self.morph_vertices.clear()
        self.vertex_sections.clear()
        self.totals.clear()
        self.relative_translations.clear()
        self.translated_bone_names.clear()
        self.translated_bone_translations.clear()
        self.version += 1
