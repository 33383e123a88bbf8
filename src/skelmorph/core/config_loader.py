"""JSON config file loading utilities."""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from skelmorph.constants import (
    BAKE_CONFIG_NAME,
    CONFIG_DIR,
    DEFAULT_LOD,
    TRANSLATION_EPSILON,
    WEIGHT_EPSILON,
    WEIGHT_QUANTIZATION,
)

logger = logging.getLogger(__name__)


def load_json(path: Path) -> Any:
    """Load and return parsed JSON from a file."""
    with open(path) as f:
        return json.load(f)


def load_config(name: str, config_dir: Optional[Path] = None) -> Any:
    """Load a config file from assets/config/."""
    return load_json((config_dir or CONFIG_DIR) / name)


@dataclass
class MorphBakeSettings:
    """Tunables for indexing, accumulation and baking.

    The axis remaps reconcile the morph-delta coordinate convention with the
    skeleton's local convention: ``out[i] = t[order[i]] * signs[i]``.
    """
    weight_epsilon: float = WEIGHT_EPSILON
    translation_epsilon: float = TRANSLATION_EPSILON
    weight_quantization: float = WEIGHT_QUANTIZATION
    min_influence_weight: float = 0.0
    max_workers: Optional[int] = None
    lod_index: int = DEFAULT_LOD
    root_axis_order: tuple[int, int, int] = (1, 0, 2)
    root_axis_signs: tuple[float, float, float] = (1.0, 1.0, 1.0)
    child_axis_order: tuple[int, int, int] = (1, 0, 2)
    child_axis_signs: tuple[float, float, float] = (1.0, -1.0, 1.0)

    _TUPLE_FIELDS = ("root_axis_order", "root_axis_signs",
                     "child_axis_order", "child_axis_signs")

    @classmethod
    def from_dict(cls, data: dict) -> "MorphBakeSettings":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key.startswith("_"):
                continue
            if key not in known:
                logger.warning("Ignoring unknown bake setting: %s", key)
                continue
            if key in cls._TUPLE_FIELDS:
                value = tuple(value)
            kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_config(
        cls,
        name: str = BAKE_CONFIG_NAME,
        config_dir: Optional[Path] = None,
    ) -> "MorphBakeSettings":
        """Load settings from the bake config, falling back to defaults."""
        try:
            data = load_config(name, config_dir)
        except FileNotFoundError as e:
            logger.warning("Bake config not found, using defaults: %s", e)
            return cls()
        return cls.from_dict(data)
