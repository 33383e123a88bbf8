"""Morph-to-skeleton engine: weight index, accumulator, resolver, rebaker."""

from skelmorph.morph.accumulator import (
    accumulate_morphs,
    apply_morph_delta,
    apply_zero_dilution,
    set_morph_weight,
)
from skelmorph.morph.component import MorphToSkeletonComponent
from skelmorph.morph.rebaker import ComponentPose, PoseProvider, SkeletonRebaker
from skelmorph.morph.resolver import resolve_translations, translated_bone_pairs
from skelmorph.morph.weight_index import (
    BoneWeightIndex,
    BoneWeightIndexCache,
    BoneWeightIndexer,
    default_cache,
)

__all__ = [
    "BoneWeightIndex",
    "BoneWeightIndexCache",
    "BoneWeightIndexer",
    "ComponentPose",
    "MorphToSkeletonComponent",
    "PoseProvider",
    "SkeletonRebaker",
    "accumulate_morphs",
    "apply_morph_delta",
    "apply_zero_dilution",
    "default_cache",
    "resolve_translations",
    "set_morph_weight",
    "translated_bone_pairs",
]
