import numpy as np
import pytest

from ascii_deck.sampler import GridSampler, grid_size


def test_grid_size_1080p():
    assert grid_size(1920, 1080, 120) == (120, 33)


def test_grid_size_never_below_one_row():
    assert grid_size(4000, 10, 40) == (40, 1)


@pytest.mark.parametrize("w,h", [(0, 10), (10, 0), (-5, 5)])
def test_grid_size_rejects_bad_dimensions(w, h):
    with pytest.raises(ValueError):
        grid_size(w, h, 80)


def test_sample_reuses_buffer_until_dimensions_change():
    sampler = GridSampler()
    frame = np.zeros((1080, 1920, 3), dtype=np.uint8)

    first = sampler.sample(frame, 120)
    assert first.shape == (33, 120, 3)
    second = sampler.sample(frame, 120)
    assert second is first
    assert sampler.grid_changes == 1

    # new video with another aspect ratio
    other = sampler.sample(np.zeros((480, 640, 3), dtype=np.uint8), 120)
    assert other.shape == (45, 120, 3)
    assert sampler.grid_changes == 2

    sampler.sample(np.zeros((480, 640, 3), dtype=np.uint8), 80)
    assert sampler.size == (80, 30)
    assert sampler.grid_changes == 3


def test_sample_area_average():
    frame = np.zeros((90, 160, 3), dtype=np.uint8)
    frame[:, 80:] = 255
    grid = sampler_grid(frame, 40)
    assert grid.shape == (11, 40, 3)
    assert np.all(grid[:, :20] == 0)
    assert np.all(grid[:, 20:] == 255)


def test_sample_accepts_bgra_and_gray():
    sampler = GridSampler()
    bgra = np.full((90, 160, 4), 200, dtype=np.uint8)
    assert sampler.sample(bgra, 40).shape == (11, 40, 3)
    gray = np.full((90, 160), 50, dtype=np.uint8)
    grid = sampler.sample(gray, 40)
    assert grid.shape == (11, 40, 3)
    assert np.all(grid == 50)


def test_sample_rejects_empty_frame():
    with pytest.raises(ValueError):
        GridSampler().sample(np.zeros((0, 0, 3), dtype=np.uint8), 40)


def sampler_grid(frame, width):
    return GridSampler().sample(frame, width)
