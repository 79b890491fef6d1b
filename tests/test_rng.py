import pytest

from storyplay.core.rng import RNG


def test_rng_determinism_same_seed() -> None:
    rng_a = RNG(12345)
    rng_b = RNG(12345)

    floats_a = [rng_a.random() for _ in range(5)]
    floats_b = [rng_b.random() for _ in range(5)]
    choices_a = [rng_a.choice(["a", "b", "c"]) for _ in range(5)]
    choices_b = [rng_b.choice(["a", "b", "c"]) for _ in range(5)]

    assert floats_a == floats_b
    assert choices_a == choices_b


def test_rng_different_seed() -> None:
    rng_a = RNG(11111)
    rng_b = RNG(22222)

    draws_a = [rng_a.random() for _ in range(5)]
    draws_b = [rng_b.random() for _ in range(5)]

    assert draws_a != draws_b


def test_rng_random_in_unit_interval() -> None:
    rng = RNG(7)
    for _ in range(100):
        value = rng.random()
        assert 0.0 <= value < 1.0


def test_rng_choice_empty_raises() -> None:
    with pytest.raises(ValueError):
        RNG(1).choice([])


def test_rng_exposes_seed() -> None:
    assert RNG(99).seed == 99
    assert RNG().seed is None
