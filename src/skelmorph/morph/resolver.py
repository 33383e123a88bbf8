"""Turns per-bone displacement totals into parent-relative translations."""

import logging
from collections.abc import Mapping
from typing import Callable

import numpy as np

from skelmorph.constants import INDEX_NONE, TRANSLATION_EPSILON
from skelmorph.core.math_utils import Vec3
from skelmorph.core.state import BoneTotals

logger = logging.getLogger(__name__)


def resolve_translations(
    totals: Mapping[int, BoneTotals],
    parent_of: Callable[[int], int],
) -> dict[int, Vec3]:
    """Weighted-average displacement per bone, relative to its parent.

    A child's translation is applied in its parent's space after the parent
    has already moved, so when the parent also has totals its average is
    subtracted. Bones without a parent, or whose parent never moved, keep
    their own average.
    """
    averages = {bone: t.average() for bone, t in totals.items()}
    result: dict[int, Vec3] = {}
    for bone, average in averages.items():
        parent = parent_of(bone)
        if parent != INDEX_NONE and parent in averages:
            result[bone] = average - averages[parent]
        else:
            result[bone] = average.copy()
    return result


def translated_bone_pairs(
    translations: Mapping[int, Vec3],
    bone_name: Callable[[int], str],
    epsilon: float = TRANSLATION_EPSILON,
) -> tuple[list[str], list[Vec3]]:
    """Parallel (names, translations) lists for bones that actually moved."""
    names: list[str] = []
    values: list[Vec3] = []
    for bone in sorted(translations):
        translation = translations[bone]
        if np.linalg.norm(translation) <= epsilon:
            continue
        name = bone_name(bone)
        logger.debug("Bone: %s, relative translation: %s", name, translation)
        names.append(name)
        values.append(translation)
    return names, values
