"""Shared constants and paths for SkelMorph."""

from pathlib import Path

# Package paths
PACKAGE_ROOT = Path(__file__).parent
ASSETS_DIR = PACKAGE_ROOT / "assets"
CONFIG_DIR = ASSETS_DIR / "config"

BAKE_CONFIG_NAME = "morph_bake.json"

# Sentinel for "no bone" / "no parent"
INDEX_NONE = -1

# Skin weights are stored as 16-bit fixed point
WEIGHT_QUANTIZATION = 65535.0

# Morph weights with |w| at or below this are treated as zero
WEIGHT_EPSILON = 1e-8

# Bones whose resolved translation is shorter than this count as unmoved
TRANSLATION_EPSILON = 1e-8

# Morph targets are evaluated at this LOD
DEFAULT_LOD = 0
