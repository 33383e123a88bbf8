"""Tests for the sparse .target morph parser."""

import numpy as np
import pytest

from skelmorph.core.mesh import RenderSection
from skelmorph.loaders.target_parser import load_target_file, parse_target


SAMPLE = """\
# jaw open
2 0.0 0.0 10.0
3 0.0 0.0 10.0

5 1.5 -2.0 0.25
"""


def test_parse_basic():
    target = parse_target(SAMPLE, "Open", vertex_count=8)
    assert target.name == "Open"
    assert len(target.lods) == 1
    lod = target.lods[0]
    np.testing.assert_array_equal(lod.vertex_indices, [2, 3, 5])
    np.testing.assert_allclose(lod.position_deltas[2], [1.5, -2.0, 0.25])
    assert lod.section_indices == []


def test_sections_from_vertices():
    sections = [RenderSection(0, 4, [0]), RenderSection(4, 4, [1]), RenderSection(8, 4, [2])]
    target = parse_target(SAMPLE, "Open", vertex_count=12, sections=sections)
    assert target.lods[0].section_indices == [0, 1]


def test_bad_lines_skipped():
    text = "1 0 0 1\nnot a line\n2 0 0\n99 1 1 1\n"
    lod = parse_target(text, "Bad", vertex_count=4).lods[0]
    np.testing.assert_array_equal(lod.vertex_indices, [1])
    assert lod.position_deltas.shape == (1, 3)


def test_strict_raises_with_line_number():
    with pytest.raises(ValueError, match="Bad:2"):
        parse_target("1 0 0 1\n2 0 0\n", "Bad", vertex_count=4, strict=True)


def test_out_of_range_strict():
    with pytest.raises(ValueError, match="out of range"):
        parse_target("7 0 0 1\n", "Far", vertex_count=4, strict=True)


def test_empty_text():
    lod = parse_target("# nothing\n", "Empty", vertex_count=4).lods[0]
    assert len(lod.vertex_indices) == 0
    assert lod.position_deltas.shape == (0, 3)


def test_load_target_file(tmp_path):
    path = tmp_path / "mouth-open.target"
    path.write_text(SAMPLE)
    target = load_target_file(path, vertex_count=8)
    assert target.name == "mouth-open"
    assert len(target.lods[0].vertex_indices) == 3

    renamed = load_target_file(path, vertex_count=8, name="Open")
    assert renamed.name == "Open"
