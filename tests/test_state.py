from dataclasses import replace

import pytest

from qrstudio.state import (
    DEFAULT_SEED,
    EFFECTS,
    MARKER_INNER_SHAPES,
    MARKER_SHAPES,
    PIXEL_STYLES,
    STYLE_LABELS,
    GeneratorState,
    Margin,
    MarkerState,
    StateError,
    load_state,
    normalize_state,
    resolve_margin,
    save_state,
    style_label,
)


def test_defaults():
    s = GeneratorState()
    assert s.text == "https://ishortn.ink"
    assert s.ecc == "M"
    assert s.margin == 2
    assert s.scale == 20
    assert s.pixel_style == "rounded"
    assert s.marker_shape == "square"
    assert s.seed == DEFAULT_SEED
    assert s.effect == "none" and s.effect_timing == "after"
    assert (s.logo_size, s.logo_margin, s.logo_border_radius) == (25.0, 8, 10.0)


def test_with_random_seed_only_changes_seed():
    s = GeneratorState(pixel_style="dot")
    other = s.with_random_seed()
    assert replace(other, seed=s.seed) == s


def test_from_dict_camel_case():
    s = GeneratorState.from_dict({
        "text": "hello",
        "darkColor": "#ff0000",
        "marginNoiseSpace": "full",
        "boostECC": True,
        "ecc": "q",
        "markers": [{"markerShape": "circle"}, {"markerShape": "octagon", "markerInnerShape": "eye"}],
        "marginNoiseOpacity": [0.2, 0.8],
        "somethingElse": 1,
    })
    assert s.dark_color == "#ff0000"
    assert s.margin_noise_space == "full"
    assert s.boost_ecc is True
    assert s.ecc == "Q"
    assert s.markers == [
        MarkerState(marker_shape="circle"),
        MarkerState(marker_shape="octagon", marker_inner_shape="eye"),
    ]
    assert s.margin_noise_opacity == (0.2, 0.8)


def test_from_dict_snake_case():
    s = GeneratorState.from_dict({"pixel_style": "dot", "margin_noise": True})
    assert s.pixel_style == "dot"
    assert s.margin_noise is True


@pytest.mark.parametrize("data", [
    {"pixelStyle": "hexagon"},
    {"ecc": "X"},
    {"effect": "blur"},
    {"markers": [{"markerShape": "star"}]},
])
def test_from_dict_rejects_unknown_values(data):
    with pytest.raises(StateError):
        GeneratorState.from_dict(data)


def test_state_error_is_value_error():
    with pytest.raises(ValueError):
        GeneratorState.from_dict({"renderPointsType": "everything"})


@pytest.mark.parametrize("margin, expected", [
    (3, Margin(3, 3, 3, 3)),
    ({"top": 1, "right": 2, "bottom": 3, "left": 4}, Margin(1, 2, 3, 4)),
    ({"left": 5}, Margin(0, 0, 0, 5)),
    (Margin(1, 1, 0, 0), Margin(1, 1, 0, 0)),
])
def test_resolve_margin(margin, expected):
    assert resolve_margin(margin) == expected


def test_normalize_clamps_out_of_range_values():
    s = normalize_state(GeneratorState(
        margin=-3,
        scale=0,
        min_version=50,
        max_version=2,
        mask_pattern=12,
        margin_noise_rate=1.7,
        margin_noise_opacity=(0.9, 0.1),
        rotate=100,
        effect_liquidify_threshold=400,
        transform_perspective_x=3,
        transform_scale=0,
        logo_size=150,
        logo_margin=-4,
        logo_border_radius=80,
    ))
    assert s.margin == Margin(0, 0, 0, 0)
    assert s.scale == 1
    assert (s.min_version, s.max_version) == (40, 40)
    assert s.mask_pattern == -1
    assert s.margin_noise_rate == 1.0
    assert s.margin_noise_opacity == (0.1, 0.9)
    assert s.rotate == 90
    assert s.effect_liquidify_threshold == 255
    assert s.transform_perspective_x == 1.0
    assert s.transform_scale == 1.0
    assert s.logo_size == 100
    assert s.logo_margin == 0
    assert s.logo_border_radius == 50


def test_normalize_keeps_valid_values():
    s = GeneratorState(margin={"top": 1, "right": 2, "bottom": 3, "left": 4}, rotate=270, scale=7)
    n = normalize_state(s)
    assert n.margin == Margin(1, 2, 3, 4)
    assert n.rotate == 270
    assert n.scale == 7
    # the input is not mutated
    assert s.margin == {"top": 1, "right": 2, "bottom": 3, "left": 4}


def test_normalize_rejects_bad_enum():
    with pytest.raises(StateError):
        normalize_state(GeneratorState(marker_shape="triangle"))


def test_json_round_trip(tmp_path):
    s = GeneratorState(
        text="round trip",
        markers=[MarkerState(marker_shape="circle")],
        margin_noise=True,
        margin_noise_opacity=(0.3, 0.6),
        background_image="#123456",
    )
    path = tmp_path / "state.json"
    save_state(s, path)
    assert load_state(path) == s


def test_to_dict_drops_in_memory_images():
    from PIL import Image

    s = GeneratorState(logo_image=Image.new("RGB", (2, 2)))
    assert s.to_dict()["logo_image"] is None


@pytest.mark.parametrize("field, values", [
    ("pixel_style", PIXEL_STYLES),
    ("marker_shape", MARKER_SHAPES),
    ("marker_inner_shape", MARKER_INNER_SHAPES),
    ("effect", EFFECTS),
])
def test_style_labels_cover_every_choice(field, values):
    assert set(STYLE_LABELS[field]) == set(values)


def test_style_label_lookup():
    assert style_label("marker_shape", "tiny-plus") == "Tiny Plus"
    assert style_label("pixel_style", "squircle") == "Squircle"
    assert style_label("rotate", "90") == "90"
