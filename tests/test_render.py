"""Tests for the pixel sampler and the serial/parallel frame renderers"""

import numpy as np
import pytest

from ao_render import render, render_dynamic, render_frame, render_parallel, resolve_pixel, split_rows
from camera import Camera
from geometry import IntersectInfo, Ray, intersect_scene
from render_settings import RenderSettings
from scene import default_scene
from surfaces.infinite_plane import InfinitePlane

SEED = 20240101


@pytest.fixture(scope="module")
def serial_frame():
    settings = RenderSettings(256, 256, subsamples=2, seed=SEED)
    return render(settings, default_scene())


def test_resolve_pixel_clamp():
    # Every sub-sample fully unoccluded
    assert resolve_pixel(4.0, 4) == 255
    # Hits that were fully occluded take the black path
    assert resolve_pixel(0.0, 4) == 0
    assert resolve_pixel(0.00005, 4) == 0
    assert resolve_pixel(2.0, 4) == 127
    assert resolve_pixel(9.0, 4) == 255


def test_split_rows():
    assert split_rows(256, 1) == [(0, 256)]
    assert split_rows(256, 3) == [(0, 85), (85, 170), (170, 256)]
    assert split_rows(10, 4) == [(0, 2), (2, 4), (4, 6), (6, 10)]
    assert split_rows(3, 8) == [(0, 1), (1, 2), (2, 3)]


def test_split_rows_rejects_zero_bands():
    with pytest.raises(ValueError):
        split_rows(10, 0)


def test_settings_validation():
    with pytest.raises(ValueError):
        RenderSettings(width=0)
    with pytest.raises(ValueError):
        RenderSettings(subsamples=1.5)

    settings = RenderSettings(seed=None)
    assert 0 <= settings.seed < 2**32
    assert settings.samples_per_pixel == 4


def test_seed_is_folded_into_32_bits():
    assert RenderSettings(seed=2**64 + 5).seed == 5
    assert RenderSettings(seed=-1).seed == 2**32 - 1
    assert RenderSettings(seed=SEED).seed == SEED


def test_huge_seed_renders_like_its_32_bit_value():
    surfaces = [InfinitePlane((0, -0.5, 0), (0, 1, 0))] + default_scene()[:1]
    folded = render(RenderSettings(8, 8, seed=2**70 + 3), surfaces)
    plain = render(RenderSettings(8, 8, seed=3), surfaces)

    assert np.array_equal(folded, plain)


def test_ground_only_frame():
    # Half the rays hit an unoccluded floor, the rest see nothing
    settings = RenderSettings(16, 16, subsamples=2, seed=SEED)
    surfaces = [InfinitePlane((0, -0.5, 0), (0, 1, 0))]

    frame = render(settings, surfaces)

    assert frame.shape == (16, 16, 3)
    assert frame.dtype == np.uint8
    assert np.all(frame[:8] == 0)
    # On the horizon row the upper sub-samples run parallel to the floor
    assert np.all(frame[8] == 127)
    assert np.all(frame[9:] == 255)


def test_frame_is_gray(serial_frame):
    assert serial_frame.shape == (256, 256, 3)
    assert serial_frame.dtype == np.uint8
    assert np.array_equal(serial_frame[..., 0], serial_frame[..., 1])
    assert np.array_equal(serial_frame[..., 0], serial_frame[..., 2])
    assert serial_frame.reshape(-1, 3).shape == (256 * 256, 3)


def test_missed_pixels_are_black(serial_frame):
    surfaces = default_scene()
    camera = Camera()

    checked = 0
    for y in range(0, 256, 7):
        for x in range(0, 256, 5):
            missed = True
            for u in range(2):
                for v in range(2):
                    origin, direction = camera.generate_ray(x, y, u, v, 256, 256, 2)
                    if intersect_scene(Ray(origin, direction), surfaces, IntersectInfo()):
                        missed = False
            if missed:
                checked += 1
                assert tuple(serial_frame[y, x]) == (0, 0, 0)

    assert checked > 0


def test_visible_geometry_is_lit(serial_frame):
    # The floor in the lower part of the image is mostly open sky
    assert serial_frame[200:].mean() > 100


def test_same_seed_renders_same_frame(serial_frame):
    settings = RenderSettings(256, 256, subsamples=2, seed=SEED)
    assert np.array_equal(render(settings, default_scene()), serial_frame)


@pytest.mark.parametrize("num_workers", [2, 4, 8])
def test_static_bands_match_serial(serial_frame, num_workers):
    settings = RenderSettings(256, 256, subsamples=2, seed=SEED)
    frame = render_parallel(settings, default_scene(), num_workers)

    assert frame.shape == serial_frame.shape
    assert np.array_equal(frame, serial_frame)


@pytest.mark.parametrize("num_workers", [2, 4, 8])
def test_dynamic_rows_match_serial(serial_frame, num_workers):
    settings = RenderSettings(256, 256, subsamples=2, seed=SEED)
    frame = render_dynamic(settings, default_scene(), num_workers)

    assert frame.shape == serial_frame.shape
    assert np.array_equal(frame, serial_frame)


def test_different_seeds_agree_statistically(serial_frame):
    settings = RenderSettings(256, 256, subsamples=2, seed=SEED + 1)
    frame = render_frame(settings, default_scene(), num_workers=2, dispatch='static')

    assert not np.array_equal(frame, serial_frame)
    assert abs(frame.mean() - serial_frame.mean()) < 1.0


def test_render_frame_rejects_bad_arguments():
    settings = RenderSettings(8, 8, seed=SEED)
    with pytest.raises(ValueError):
        render_frame(settings, default_scene(), num_workers=0)
    with pytest.raises(ValueError):
        render_frame(settings, default_scene(), num_workers=2, dispatch='round-robin')
