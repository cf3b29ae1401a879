from dataclasses import replace

import pytest

from qrstudio.classify import classify_pixels, draw_order, resolve_marker_style
from qrstudio.encoder import ModuleType
from qrstudio.rand import cell_random
from qrstudio.state import MARGIN_NOISE_SPACES, GeneratorState, MarkerState, normalize_state


def classify(symbol, state, **changes):
    return classify_pixels(symbol, normalize_state(replace(state, **changes)))


def by_source(pixels):
    return {p.source: p for p in pixels}


def dark_sources(pixels):
    return {p.source for p in pixels if p.is_dark and not p.is_ignored}


def test_covers_margin_expanded_grid(symbol, state):
    pixels = classify(symbol, state, margin={"top": 1, "right": 2, "bottom": 3, "left": 4})
    assert len(pixels) == (symbol.size + 6) * (symbol.size + 4)
    sources = {p.source for p in pixels}
    assert (-4, -1) in sources
    assert (symbol.size + 1, symbol.size + 2) in sources


def test_sorted_in_draw_order(symbol, state):
    orders = [draw_order(p) for p in classify(symbol, state)]
    assert orders == sorted(orders)
    assert orders[0] == 0


def test_finder_markers_are_tagged(symbol, state):
    size = symbol.size
    px = by_source(classify(symbol, state))
    tl, tr, bl = px[(3, 3)].marker, px[(size - 4, 3)].marker, px[(3, size - 4)].marker
    assert (tl.position, tr.position, bl.position) == ("top-left", "top-right", "bottom-left")
    assert tl.is_center and tl.is_inner and not tl.is_border
    corner = px[(0, 0)].marker
    assert corner.is_border and not corner.is_inner
    assert px[(2, 4)].marker.is_inner and not px[(2, 4)].marker.is_center
    assert px[(7, 7)].marker is None


def test_alignment_sub_marker(symbol, state):
    px = by_source(classify(symbol, state))
    centre = px[(18, 18)].marker
    assert centre.is_sub
    assert (centre.x, centre.y) == (2, 2)
    assert centre.is_center and centre.is_inner
    edge = px[(16, 20)].marker
    assert edge.is_sub and edge.is_border
    assert (edge.x, edge.y) == (0, 4)


def test_resolve_marker_style():
    state = normalize_state(replace(
        GeneratorState(),
        marker_shape="plus",
        markers=[MarkerState(marker_shape="circle"), MarkerState(marker_shape="octagon", marker_style="dot")],
    ))
    assert resolve_marker_style(state, 0) == MarkerState("auto", "plus", "square")
    assert resolve_marker_style(state, 1) == MarkerState("auto", "circle", "circle")
    assert resolve_marker_style(state, 2) == MarkerState("dot", "octagon", "diamond")
    assert resolve_marker_style(state, 3) == MarkerState("auto", "plus", "square")


def test_auto_inner_shape_for_tiny_plus():
    state = replace(GeneratorState(), marker_shape="tiny-plus")
    assert resolve_marker_style(state, 0).marker_inner_shape == "plus"
    state = replace(state, marker_inner_shape="eye")
    assert resolve_marker_style(state, 0).marker_inner_shape == "eye"


def test_circle_marker_clears_border_cells(symbol, state):
    px = by_source(classify(symbol, state, marker_shape="circle"))
    ring = [p for p in px.values() if p.marker and not p.marker.is_sub and p.marker.is_border]
    assert len(ring) == 3 * 40
    assert not any(p.is_dark for p in ring)
    # inner block keeps the symbol's bits
    assert px[(3, 3)].is_dark


def test_plus_marker_keeps_the_cross(symbol, state):
    px = by_source(classify(symbol, state, marker_shape="plus"))
    assert not px[(0, 0)].is_dark
    assert px[(3, 0)].is_dark
    assert px[(0, 3)].is_dark


def test_inner_plus_clears_inner_corners(symbol, state):
    px = by_source(classify(symbol, state, marker_inner_shape="plus"))
    assert not px[(2, 2)].is_dark
    assert px[(3, 2)].is_dark
    assert px[(3, 3)].is_dark


def test_sub_marker_plus(symbol, state):
    px = by_source(classify(symbol, state, marker_sub="plus"))
    assert not px[(16, 16)].is_dark
    assert px[(18, 16)].is_dark


def test_margin_is_light_without_noise(symbol, state):
    for space in MARGIN_NOISE_SPACES:
        pixels = classify(symbol, state, margin=3, margin_noise_space=space)
        outside = [p for p in pixels if not (0 <= p.source[0] < symbol.size and 0 <= p.source[1] < symbol.size)]
        assert not any(p.is_dark for p in outside), space


@pytest.mark.parametrize("space", MARGIN_NOISE_SPACES)
def test_full_noise_rate_darkens_every_border_cell(symbol, state, space):
    pixels = classify(symbol, state, margin=3, margin_noise=True, margin_noise_rate=1.0, margin_noise_space=space)
    eligible = [p for p in pixels if p.is_border and not p.is_ignored]
    assert eligible
    assert all(p.is_dark for p in eligible)


def test_noise_follows_seeded_hash(symbol, state):
    pixels = classify(symbol, state, margin=3, margin_noise=True, margin_noise_space="none", seed=7)
    for p in pixels:
        if p.is_border:
            x, y = p.source
            assert p.is_dark == (cell_random(7, "border-noise", x, y) < 0.5)


def test_full_space_widens_the_symbol_by_one(symbol, state):
    px = by_source(classify(symbol, state, margin=3, margin_noise_space="full"))
    assert not px[(-1, -1)].is_border
    assert px[(-2, -1)].is_border
    assert not px[(symbol.size, 5)].is_border


def test_marker_space_clears_border_around_finders(symbol, state):
    px = by_source(classify(symbol, state, margin=3, margin_noise=True, margin_noise_space="marker"))
    assert not px[(-1, -1)].is_border
    assert not px[(7, -1)].is_border
    assert px[(12, -1)].is_border


def test_extreme_cutouts(symbol, state):
    px = by_source(classify(symbol, state, margin=3, margin_noise=True, margin_noise_rate=1.0,
                            margin_noise_space="extreme"))
    cut = px[(-1, -1)]
    assert cut.is_ignored and cut.is_border and not cut.is_dark
    assert px[(symbol.size, 5)].is_ignored
    assert px[(-3, -3)].is_dark


def test_render_filter_completeness(symbol, state):
    dark = {
        points: dark_sources(classify(symbol, state, render_points_type=points))
        for points in ("all", "data", "function", "marker")
    }
    assert dark["data"] | dark["function"] == dark["all"]
    assert not dark["data"] & dark["function"]
    assert dark["marker"] <= dark["function"]


def test_data_filter_ignores_function_modules(symbol, state):
    px = by_source(classify(symbol, state, render_points_type="data"))
    for (x, y), p in px.items():
        if symbol.type_at(x, y) >= ModuleType.FUNCTION:
            assert p.is_ignored


def test_guide_filter_drops_markers(symbol, state):
    px = by_source(classify(symbol, state, render_points_type="guide"))
    assert px[(3, 3)].is_ignored
    assert px[(18, 18)].is_ignored
    assert not px[(10, 6)].is_ignored


@pytest.mark.parametrize("rotate, expected", [
    (0, lambda s: (0, 0)),
    (90, lambda s: (0, s - 1)),
    (180, lambda s: (s - 1, s - 1)),
    (270, lambda s: (s - 1, 0)),
])
def test_rotation_targets(symbol, state, rotate, expected):
    px = by_source(classify(symbol, state, margin=0, rotate=rotate))
    p = px[(0, 0)]
    assert (p.x, p.y) == expected(symbol.size)


def test_targets_include_margin_offset(symbol, state):
    px = by_source(classify(symbol, state, margin={"top": 1, "right": 0, "bottom": 0, "left": 4}))
    p = px[(0, 0)]
    assert (p.x, p.y) == (4, 1)


def test_rotation_is_a_permutation(symbol, state):
    pixels = classify(symbol, state, rotate=90)
    targets = [(p.x, p.y) for p in pixels]
    assert len(set(targets)) == len(targets)
