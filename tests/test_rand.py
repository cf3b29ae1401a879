from qrstudio.rand import cell_random


def test_deterministic():
    assert cell_random(42, "border-noise", 3, -1) == cell_random(42, "border-noise", 3, -1)


def test_in_unit_interval():
    values = [cell_random(1, "t", x, y) for x in range(-5, 5) for y in range(-5, 5)]
    assert all(0.0 <= v < 1.0 for v in values)
    assert 0.3 < sum(values) / len(values) < 0.7


def test_every_key_part_matters():
    base = cell_random(1, "a", 2, 3)
    assert cell_random(2, "a", 2, 3) != base
    assert cell_random(1, "b", 2, 3) != base
    assert cell_random(1, "a", 3, 2) != base
    assert cell_random(1, "a", 2, 4) != base
