from dataclasses import replace

import numpy as np
from PIL import Image

from qrstudio.effects import EFFECTS, apply_effect, crystalize, liquidify
from qrstudio.state import GeneratorState

BLACK = (0, 0, 0, 255)
WHITE = (255, 255, 255, 255)


def checkerboard(size=120, tile=10):
    arr = np.zeros((size, size, 4), dtype=np.uint8)
    arr[..., 3] = 255
    yy, xx = np.mgrid[0:size, 0:size]
    arr[((yy // tile + xx // tile) % 2) == 0, :3] = 255
    return Image.fromarray(arr)


def colours(img):
    return {tuple(c) for c in np.asarray(img).reshape(-1, 4)}


def test_crystalize_is_deterministic():
    img = checkerboard()
    a = np.asarray(crystalize(img, 12, seed=5))
    b = np.asarray(crystalize(img, 12, seed=5))
    assert np.array_equal(a, b)


def test_crystalize_changes_the_image():
    img = checkerboard()
    out = crystalize(img, 12, seed=5)
    assert out.size == img.size
    assert not np.array_equal(np.asarray(out), np.asarray(img))
    # every output colour is sampled from the input
    assert colours(out) <= colours(img)


def test_crystalize_depends_on_seed():
    img = checkerboard()
    assert not np.array_equal(np.asarray(crystalize(img, 12, 1)), np.asarray(crystalize(img, 12, 2)))


def test_liquidify_is_two_tone():
    red, blue = (255, 0, 0, 255), (0, 0, 255, 255)
    out = liquidify(checkerboard(), 12, 128, light=red, dark=blue)
    assert colours(out) <= {red, blue}


def test_liquidify_treats_transparent_as_light():
    img = Image.new("RGBA", (40, 40), (0, 0, 0, 0))
    out = liquidify(img, 6, 128, light=WHITE, dark=BLACK)
    assert colours(out) == {WHITE}


def test_liquidify_without_blur_is_a_threshold():
    img = checkerboard()
    out = liquidify(img, 0, 128, light=WHITE, dark=BLACK)
    assert np.array_equal(np.asarray(out), np.asarray(img))


def test_none_effect_returns_the_input():
    img = checkerboard()
    assert apply_effect(img, GeneratorState()) is img


def test_effect_table_covers_every_effect():
    from qrstudio.state import EFFECTS as NAMES

    assert set(EFFECTS) == set(NAMES)


def test_liquidify_distort_prepass():
    img = checkerboard()
    state = GeneratorState(effect="liquidify", effect_liquidify_radius=3)
    plain = apply_effect(img, replace(state, effect_liquidify_distort_radius=0))
    distorted = apply_effect(img, state)
    assert not np.array_equal(np.asarray(plain), np.asarray(distorted))


def test_crystalize_accepts_negative_seed():
    img = checkerboard()
    a = np.asarray(crystalize(img, 12, seed=-7))
    b = np.asarray(crystalize(img, 12, seed=-7))
    assert np.array_equal(a, b)
    assert colours(Image.fromarray(a)) <= colours(img)


def test_liquidify_distort_with_negative_seed():
    state = GeneratorState(effect="liquidify", effect_liquidify_distort_radius=4, seed=-7)
    out = apply_effect(checkerboard(), state)
    assert colours(out) <= {WHITE, BLACK}
