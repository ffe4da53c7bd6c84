import argparse
import multiprocessing as mp
import os
import sys
import time

from PIL import Image
import numpy as np
from numba import njit

from camera import Camera
from geometry import OCCLUSION_FAR, PRIMARY_FAR
from render_settings import HEIGHT, NAO_SAMPLES, WIDTH, RenderSettings
from scene import (PLANE, SPHERE, default_scene, freeze_surface_data, parse_scene_file,
                   prepare_surface_data, scene_arrays)
from surfaces.infinite_plane import plane_distance
from surfaces.sphere import sphere_distance
from vector import add, cross, normalize, scale, sub, vec3


# Occlusion rays start this far above the surface to avoid self-intersection
AO_EPSILON = 1e-4

# Accumulated occlusion at or below this is rendered as pure black
NOISE_THRESHOLD = 1e-4

TAU = 2.0 * np.pi

# Rows rendered between progress reports on the single-process path
PROGRESS_ROWS = 32


# =============================================================================
# Numba JIT-compiled kernels
# =============================================================================

@njit(cache=True)
def _intersect_scene(ray_origin, ray_direction, max_distance,
                     surface_types, surface_indices,
                     sphere_centers, sphere_radii, plane_points, plane_normals):
    """
    Nearest hit of one ray against all surfaces (JIT-compiled).

    Surfaces are visited in declaration order and a hit only replaces the
    current one when it is strictly nearer, so ties go to the first surface.

    Returns (hit, distance, position, normal).
    """
    hit = False
    best_t = max_distance
    position = (0.0, 0.0, 0.0)
    normal = (0.0, 1.0, 0.0)

    for surf_idx in range(surface_types.shape[0]):
        type_idx = surface_indices[surf_idx]

        if surface_types[surf_idx] == SPHERE:
            center = (sphere_centers[type_idx, 0],
                      sphere_centers[type_idx, 1],
                      sphere_centers[type_idx, 2])
            t = sphere_distance(ray_origin, ray_direction, center, sphere_radii[type_idx])
            if t > 0.0 and t < best_t:
                best_t = t
                position = add(ray_origin, scale(ray_direction, t))
                normal = normalize(sub(position, center))
                hit = True

        elif surface_types[surf_idx] == PLANE:
            point = (plane_points[type_idx, 0],
                     plane_points[type_idx, 1],
                     plane_points[type_idx, 2])
            plane_normal = (plane_normals[type_idx, 0],
                            plane_normals[type_idx, 1],
                            plane_normals[type_idx, 2])
            t = plane_distance(ray_origin, ray_direction, point, plane_normal)
            if t > 0.0 and t < best_t:
                best_t = t
                position = add(ray_origin, scale(ray_direction, t))
                normal = plane_normal
                hit = True

    return hit, best_t, position, normal


@njit(cache=True)
def _occluded(ray_origin, ray_direction,
              surface_types, surface_indices,
              sphere_centers, sphere_radii, plane_points, plane_normals):
    """True as soon as any surface is hit within OCCLUSION_FAR (JIT-compiled)."""
    for surf_idx in range(surface_types.shape[0]):
        type_idx = surface_indices[surf_idx]
        t = -1.0

        if surface_types[surf_idx] == SPHERE:
            center = (sphere_centers[type_idx, 0],
                      sphere_centers[type_idx, 1],
                      sphere_centers[type_idx, 2])
            t = sphere_distance(ray_origin, ray_direction, center, sphere_radii[type_idx])
        elif surface_types[surf_idx] == PLANE:
            point = (plane_points[type_idx, 0],
                     plane_points[type_idx, 1],
                     plane_points[type_idx, 2])
            plane_normal = (plane_normals[type_idx, 0],
                            plane_normals[type_idx, 1],
                            plane_normals[type_idx, 2])
            t = plane_distance(ray_origin, ray_direction, point, plane_normal)

        if t > 0.0 and t < OCCLUSION_FAR:
            return True

    return False


@njit(cache=True)
def ortho_basis(n):
    """
    Build an orthonormal basis (tangent0, tangent1, n) around the unit normal n.

    The helper axis is the first world axis whose component of n lies in
    (-0.6, 0.6), which keeps the cross products away from degenerate cases.
    """
    if n[0] < 0.6 and n[0] > -0.6:
        helper = (1.0, 0.0, 0.0)
    elif n[1] < 0.6 and n[1] > -0.6:
        helper = (0.0, 1.0, 0.0)
    elif n[2] < 0.6 and n[2] > -0.6:
        helper = (0.0, 0.0, 1.0)
    else:
        helper = (1.0, 0.0, 0.0)

    tangent0 = normalize(cross(helper, n))
    tangent1 = normalize(cross(n, tangent0))
    return tangent0, tangent1, n


@njit(cache=True)
def _seed_samples(seed):
    np.random.seed(seed)


@njit(cache=True)
def _ambient_occlusion(position, normal, n_samples,
                       surface_types, surface_indices,
                       sphere_centers, sphere_radii, plane_points, plane_normals):
    """
    Unoccluded fraction of the hemisphere above a hit (JIT-compiled).

    Casts n_samples * n_samples rays distributed around the normal and
    returns (total - occluded) / total.
    """
    ray_origin = add(position, scale(normal, AO_EPSILON))
    basis0, basis1, basis2 = ortho_basis(normal)
    occlusion = 0.0

    for j in range(n_samples):
        for i in range(n_samples):
            theta = np.sqrt(np.random.random())
            phi = TAU * np.random.random()

            x = np.cos(phi) * theta
            y = np.sin(phi) * theta
            z = np.sqrt(1.0 - theta * theta)

            # local -> world
            direction = (x * basis0[0] + y * basis1[0] + z * basis2[0],
                         x * basis0[1] + y * basis1[1] + z * basis2[1],
                         x * basis0[2] + y * basis1[2] + z * basis2[2])

            if _occluded(ray_origin, direction,
                         surface_types, surface_indices,
                         sphere_centers, sphere_radii, plane_points, plane_normals):
                occlusion += 1.0

    total = float(n_samples * n_samples)
    return (total - occlusion) / total


@njit(cache=True)
def resolve_pixel(occlusion, samples_per_pixel):
    """
    Gray level for a pixel's accumulated occlusion.

    Below the noise threshold the pixel is black; otherwise the average is
    scaled to [0, 255] and clamped.
    """
    if occlusion > NOISE_THRESHOLD:
        c = occlusion / samples_per_pixel
        return min(255, int(c * 255.0))
    return 0


@njit(cache=True)
def _render_rows(directions, camera_origin, y_start, num_rows, width,
                 samples_per_pixel, ao_samples, seed,
                 surface_types, surface_indices,
                 sphere_centers, sphere_radii, plane_points, plane_normals):
    """
    Render a block of rows (JIT-compiled).

    directions holds the primary rays in row, column, sub-sample order.
    The random generator is reseeded per image row, so the output of a row
    does not depend on which other rows were rendered in the same call.
    """
    pixels = np.zeros((num_rows, width, 3), dtype=np.uint8)

    for row in range(num_rows):
        np.random.seed((seed + y_start + row) & 0xFFFFFFFF)

        for x in range(width):
            occlusion = 0.0
            base = (row * width + x) * samples_per_pixel

            for s in range(samples_per_pixel):
                ray_direction = (directions[base + s, 0],
                                 directions[base + s, 1],
                                 directions[base + s, 2])
                hit, distance, position, normal = _intersect_scene(
                    camera_origin, ray_direction, PRIMARY_FAR,
                    surface_types, surface_indices,
                    sphere_centers, sphere_radii, plane_points, plane_normals)
                if hit:
                    occlusion += _ambient_occlusion(
                        position, normal, ao_samples,
                        surface_types, surface_indices,
                        sphere_centers, sphere_radii, plane_points, plane_normals)

            value = resolve_pixel(occlusion, samples_per_pixel)
            pixels[row, x, 0] = value
            pixels[row, x, 1] = value
            pixels[row, x, 2] = value

    return pixels


# =============================================================================
# Python-level rendering
# =============================================================================

def _as_surface_data(scene):
    """Accept either a list of surfaces or already packed surface data."""
    if isinstance(scene, dict):
        return scene
    return prepare_surface_data(scene)


def ambient_occlusion(isect, scene, n_samples=NAO_SAMPLES, seed=None):
    """
    Estimate how much of the hemisphere above a hit is open.

    Args:
        isect: IntersectInfo of the hit
        scene: list of surfaces or packed surface data
        n_samples: samples per hemisphere axis (n_samples**2 rays in total)
        seed: reseeds the sampler first when given

    Returns:
        The unoccluded fraction in [0, 1]; 1.0 means nothing blocks the hit.
    """
    surface_data = _as_surface_data(scene)
    if seed is not None:
        _seed_samples(seed & 0xFFFFFFFF)
    return _ambient_occlusion(vec3(*isect.position), vec3(*isect.normal), n_samples,
                              *scene_arrays(surface_data))


def render_rows(settings, surface_data, camera, y_start, y_end):
    """Render rows [y_start, y_end) and return them as a (rows, width, 3) uint8 array."""
    directions = camera.generate_rays_for_rows(settings.width, settings.height,
                                               y_start, y_end, settings.subsamples)
    return _render_rows(directions, camera.position, y_start, y_end - y_start, settings.width,
                        settings.samples_per_pixel, settings.ao_samples, settings.seed,
                        *scene_arrays(surface_data))


def render(settings, surfaces, camera=None):
    """
    Render the scene in this process.

    Returns:
        (height, width, 3) uint8 frame
    """
    start_time = time.time()

    if camera is None:
        camera = Camera()
    surface_data = _as_surface_data(surfaces)
    width, height = settings.width, settings.height

    print(f"Rendering {width}x{height}, {settings.subsamples}x{settings.subsamples} sub-samples, "
          f"AO samples: {settings.ao_samples}x{settings.ao_samples}={settings.ao_samples**2}")

    frame = np.zeros((height, width, 3), dtype=np.uint8)

    for y_start in range(0, height, PROGRESS_ROWS):
        y_end = min(y_start + PROGRESS_ROWS, height)
        block_start = time.time()
        frame[y_start:y_end] = render_rows(settings, surface_data, camera, y_start, y_end)

        elapsed = time.time() - start_time
        progress = y_end / height
        eta = (elapsed / progress) * (1 - progress)
        print(f"Row {y_end}/{height} ({progress*100:.1f}%) - Block time: "
              f"{time.time() - block_start:.2f}s - ETA: {eta:.0f}s")
        sys.stdout.flush()

    print(f"Rendering complete in {time.time() - start_time:.1f}s")

    return frame


def split_rows(height, num_bands):
    """
    Split rows into contiguous (y_start, y_end) bands.

    The last band absorbs the remainder; there are never more bands than rows.
    """
    if num_bands < 1:
        raise ValueError("num_bands must be at least 1, got {}".format(num_bands))

    num_bands = min(num_bands, height)
    rows_per_band = height // num_bands

    bands = []
    for i in range(num_bands):
        y_start = i * rows_per_band
        y_end = height if i == num_bands - 1 else y_start + rows_per_band
        bands.append((y_start, y_end))
    return bands


# Per-process state of pool workers, set once by _init_worker
_worker_state = {}


def _init_worker(settings, surface_data, camera):
    _worker_state['settings'] = settings
    _worker_state['surface_data'] = freeze_surface_data(surface_data)
    _worker_state['camera'] = camera
    print(f" Worker {os.getpid()}: started.")
    sys.stdout.flush()


def _render_band(band):
    """
    Worker function to render a band of rows.
    Called by multiprocessing pool.

    Returns:
        (y_start, y_end, pixels)
    """
    y_start, y_end = band
    pixels = render_rows(_worker_state['settings'], _worker_state['surface_data'],
                         _worker_state['camera'], y_start, y_end)
    return y_start, y_end, pixels


def _render_line(y):
    """Worker function to render a single row. Returns (y, pixels)."""
    pixels = render_rows(_worker_state['settings'], _worker_state['surface_data'],
                         _worker_state['camera'], y, y + 1)
    return y, pixels[0]


def _make_pool(settings, surface_data, camera, num_workers):
    return mp.Pool(num_workers, initializer=_init_worker,
                   initargs=(settings, surface_data, camera))


def render_parallel(settings, surfaces, num_workers, camera=None):
    """
    Render the scene with one contiguous band of rows per worker process.

    Bands are merged in band order, so the frame is identical to render().
    """
    start_time = time.time()

    if camera is None:
        camera = Camera()
    surface_data = _as_surface_data(surfaces)
    bands = split_rows(settings.height, num_workers)

    print(f"Parallel rendering {settings.width}x{settings.height} "
          f"with {len(bands)} workers (static bands)...")

    with _make_pool(settings, surface_data, camera, len(bands)) as pool:
        results = pool.map(_render_band, bands)

    frame = np.concatenate([pixels for _, _, pixels in results], axis=0)

    print(f"Parallel rendering complete in {time.time() - start_time:.1f}s")

    return frame


def render_dynamic(settings, surfaces, num_workers, camera=None):
    """
    Render the scene by handing out rows one at a time to idle workers.

    Rows may finish in any order; each is written into its own slot of a
    pre-sized frame, so the result is identical to render().
    """
    start_time = time.time()

    if camera is None:
        camera = Camera()
    surface_data = _as_surface_data(surfaces)
    height = settings.height
    num_workers = min(num_workers, height)

    print(f"Parallel rendering {settings.width}x{height} "
          f"with {num_workers} workers (dynamic rows)...")

    frame = np.zeros((height, settings.width, 3), dtype=np.uint8)
    received = np.zeros(height, dtype=bool)

    with _make_pool(settings, surface_data, camera, num_workers) as pool:
        for y, pixels in pool.imap_unordered(_render_line, range(height), chunksize=1):
            frame[y] = pixels
            received[y] = True

    if not np.all(received):
        missing = np.flatnonzero(~received)
        raise RuntimeError("Rows never rendered: {}".format(missing.tolist()))

    print(f"Parallel rendering complete in {time.time() - start_time:.1f}s")

    return frame


def render_frame(settings, surfaces, num_workers=1, dispatch='dynamic', camera=None):
    """Render with the requested number of workers and dispatch strategy."""
    if num_workers < 1:
        raise ValueError("num_workers must be at least 1, got {}".format(num_workers))
    if num_workers == 1:
        return render(settings, surfaces, camera)
    if dispatch == 'static':
        return render_parallel(settings, surfaces, num_workers, camera)
    if dispatch == 'dynamic':
        return render_dynamic(settings, surfaces, num_workers, camera)
    raise ValueError("Unknown dispatch strategy: {}".format(dispatch))


def save_image(image_array, output_path):
    """Save the rendered frame as a binary PPM (P6) file."""
    image = Image.fromarray(np.ascontiguousarray(image_array, dtype=np.uint8))
    image.save(output_path, format='PPM')
    print(f"Image saved to {output_path}")


def positive_int(value):
    """argparse type for strictly positive integers."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError("invalid positive integer: {!r}".format(value))
    if number < 1:
        raise argparse.ArgumentTypeError("must be a positive integer: {!r}".format(value))
    return number


def seed_value(value):
    """argparse type for seeds of the 32-bit sample generator."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError("invalid seed: {!r}".format(value))
    if not 0 <= number < 2**32:
        raise argparse.ArgumentTypeError("seed must be in [0, 2**32): {!r}".format(value))
    return number


def main(argv=None):
    parser = argparse.ArgumentParser(description='Ambient occlusion renderer')
    parser.add_argument('workers', type=positive_int, nargs='?', default=1,
                        help='Number of worker processes (default: 1, single-process)')
    parser.add_argument('--output', type=str, default='image.ppm',
                        help='Output PPM file (default: image.ppm)')
    parser.add_argument('--scene', type=str, default=None,
                        help='Scene file with sph/pln lines (default: built-in scene)')
    parser.add_argument('--width', type=positive_int, default=WIDTH, help='Image width')
    parser.add_argument('--height', type=positive_int, default=HEIGHT, help='Image height')
    parser.add_argument('--seed', type=seed_value, default=None,
                        help='Seed for occlusion sampling (default: random)')
    parser.add_argument('--dispatch', choices=('dynamic', 'static'), default='dynamic',
                        help='How rows are handed to workers')
    args = parser.parse_args(argv)

    if args.scene is None:
        surfaces = default_scene()
    else:
        try:
            surfaces = parse_scene_file(args.scene)
        except (OSError, ValueError) as e:
            parser.error("cannot load scene {}: {}".format(args.scene, e))

    settings = RenderSettings(args.width, args.height, seed=args.seed)

    print(f"Scene loaded: {len(surfaces)} surfaces")
    print(f"Seed: {settings.seed}")

    frame = render_frame(settings, surfaces, args.workers, args.dispatch)

    try:
        save_image(frame, args.output)
    except OSError as e:
        sys.exit("Fatal: cannot write image {}: {}".format(args.output, e))


if __name__ == '__main__':
    main()
