"""Morph-to-skeleton component: the public surface for one mesh instance."""

import logging
from collections.abc import Mapping
from typing import Optional

from skelmorph.core.config_loader import MorphBakeSettings
from skelmorph.core.events import EventBus, EventType
from skelmorph.core.math_utils import Vec3
from skelmorph.core.mesh import SkinnedMesh, SkinnedMeshInstance
from skelmorph.core.state import MorphState
from skelmorph.morph.accumulator import accumulate_morphs, apply_zero_dilution
from skelmorph.morph.rebaker import ComponentPose, PoseProvider, SkeletonRebaker
from skelmorph.morph.resolver import resolve_translations, translated_bone_pairs
from skelmorph.morph.weight_index import BoneWeightIndexCache, BoneWeightIndexer

logger = logging.getLogger(__name__)


class MorphToSkeletonComponent:
    """Turns morph-target weights on a skinned mesh into skeleton edits.

    Usage::

        component = MorphToSkeletonComponent()
        component.pre_morph_initialize(instance)
        component.morph_to_skeleton(instance, {"Open": 1.0})
        component.relative_translations  # bone index -> translation

    State (applied morphs, per-bone totals, baked mesh) belongs to this
    component and is never shared; only the bone weight index cache is.
    """

    def __init__(
        self,
        cache: Optional[BoneWeightIndexCache] = None,
        settings: Optional[MorphBakeSettings] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.settings = settings or MorphBakeSettings.from_config()
        self.indexer = BoneWeightIndexer(cache, self.settings)
        self.rebaker = SkeletonRebaker(self.settings)
        self.state = MorphState()
        self.event_bus = event_bus
        self._source_mesh: Optional[SkinnedMesh] = None

    def _publish(self, event_type: EventType, **data) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event_type, **data)

    def _source_for(self, instance: Optional[SkinnedMeshInstance]) -> Optional[SkinnedMesh]:
        """The unbaked mesh behind an instance.

        The instance may show a baked copy, ours or another component's;
        work always starts from the original it was duplicated from.
        """
        if instance is None or instance.mesh is None:
            return None
        mesh = instance.mesh.original
        if self._source_mesh is not None and mesh is not self._source_mesh:
            logger.info("Instance %s switched mesh; clearing morph state", instance.name)
            self.reset()
        self._source_mesh = mesh
        return mesh

    # ── Public operations ─────────────────────────────────────────────

    def pre_morph_initialize(self, instance: Optional[SkinnedMeshInstance]) -> None:
        """Index the instance's mesh bone weights (no-op when already cached)."""
        mesh = self._source_for(instance)
        if mesh is None:
            logger.error("pre_morph_initialize: no skinned mesh on instance")
            return
        already = self.indexer.get(mesh) is not None
        index = self.indexer.build_index(mesh)
        if index is not None and not already:
            self._publish(EventType.MESH_INDEXED, mesh_key=mesh.asset_key, bone_count=len(index))

    def set_morph(
        self,
        instance: Optional[SkinnedMeshInstance],
        target_name: str,
        weight: float,
    ) -> None:
        self.set_morphs(instance, {target_name: weight})

    def set_morphs(
        self,
        instance: Optional[SkinnedMeshInstance],
        targets: Mapping[str, float],
    ) -> None:
        mesh = self._source_for(instance)
        if mesh is None:
            logger.error("set_morphs: no skinned mesh on instance")
            return
        if accumulate_morphs(self.state, mesh, targets, self.settings):
            self._publish(
                EventType.MORPHS_ACCUMULATED,
                instance=instance.name, targets=dict(targets), version=self.state.version,
            )

    def resolve(self, instance: Optional[SkinnedMeshInstance]) -> dict[int, Vec3]:
        """Recompute relative translations from the current totals."""
        mesh = self._source_for(instance)
        if mesh is None:
            logger.error("resolve: no skinned mesh on instance")
            return {}
        index = self.indexer.get(mesh)
        if index is None:
            logger.warning(
                "%s was not initialized with pre_morph_initialize", mesh.name,
            )
        diluted = apply_zero_dilution(self.state, index, mesh.name)
        skeleton = mesh.skeleton
        translations = resolve_translations(diluted, skeleton.parent_index)
        names, values = translated_bone_pairs(
            translations, skeleton.bone_name, self.settings.translation_epsilon,
        )
        self.state.relative_translations = translations
        self.state.translated_bone_names = names
        self.state.translated_bone_translations = values
        self.state.resolved_version = self.state.version
        self._publish(
            EventType.TRANSLATIONS_RESOLVED, instance=instance.name, translations=translations,
        )
        return translations

    def apply_translations_to_skeleton(
        self,
        instance: Optional[SkinnedMeshInstance],
        pose: Optional[PoseProvider] = None,
    ) -> Optional[SkinnedMesh]:
        """Resolve, bake into the private skeleton and switch the instance to it."""
        mesh = self._source_for(instance)
        if mesh is None:
            logger.error("apply_translations_to_skeleton: no skinned mesh on instance")
            return None
        translations = self.resolve(instance)
        if pose is None:
            pose = ComponentPose.from_instance(instance)

        baked = self.rebaker.bake(mesh, translations, pose)
        self._publish(
            EventType.SKELETON_BAKED,
            instance=instance.name, mesh=baked, bone_count=len(translations),
        )

        instance.set_skinned_mesh(baked, reinit_pose=False)
        # Edited reference poses need CPU skinning
        instance.set_cpu_skinning_enabled(True)
        self._publish(EventType.MESH_SWAPPED, instance=instance.name, mesh=baked)
        return baked

    def morph_to_skeleton(
        self,
        instance: Optional[SkinnedMeshInstance],
        targets: Mapping[str, float],
        pose: Optional[PoseProvider] = None,
    ) -> None:
        """set_morphs, bake the skeleton, then show the morphs on the baked mesh."""
        if self._source_for(instance) is None:
            logger.error("morph_to_skeleton: no skinned mesh on instance")
            return
        self.set_morphs(instance, targets)
        self.apply_translations_to_skeleton(instance, pose)
        for name, weight in targets.items():
            instance.set_morph_target(name, weight)

    def reset(self) -> None:
        """Forget all applied morphs and the baked mesh."""
        self.state.clear()
        self.rebaker.reset()
        self._source_mesh = None

    # ── Accessors ─────────────────────────────────────────────────────

    @property
    def relative_translations(self) -> dict[int, Vec3]:
        return self.state.relative_translations

    @property
    def translated_bone_names(self) -> list[str]:
        return self.state.translated_bone_names

    @property
    def translated_bone_translations(self) -> list[Vec3]:
        return self.state.translated_bone_translations

    @property
    def applied_morphs(self) -> dict[str, float]:
        return dict(self.state.applied_morphs)
