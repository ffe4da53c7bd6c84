import numpy as np

from surfaces.infinite_plane import InfinitePlane
from surfaces.sphere import Sphere


# Surface type codes used by the compiled kernels
SPHERE = 0
PLANE = 1


def default_scene():
    """Three spheres resting on a ground plane."""
    return [
        Sphere((-2.0, 0.0, -3.5), 0.5),
        Sphere((-0.5, 0.0, -3.0), 0.5),
        Sphere((1.0, 0.0, -2.2), 0.5),
        InfinitePlane((0.0, -0.5, 0.0), (0.0, 1.0, 0.0)),
    ]


def parse_scene_file(file_path):
    """
    Parse a scene file into a list of surfaces, in file order.

    Each non-empty line that is not a comment describes one surface:
        sph cx cy cz radius
        pln px py pz nx ny nz
    """
    surfaces = []

    with open(file_path, 'r') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split()
            obj_type = parts[0]
            try:
                params = [float(p) for p in parts[1:]]
            except ValueError:
                raise ValueError("Line {}: non-numeric parameter in {!r}".format(line_number, line))

            if obj_type == "sph":
                if len(params) != 4:
                    raise ValueError("Line {}: sph expects 4 parameters, got {}".format(
                        line_number, len(params)))
                surfaces.append(Sphere(params[:3], params[3]))
            elif obj_type == "pln":
                if len(params) != 6:
                    raise ValueError("Line {}: pln expects 6 parameters, got {}".format(
                        line_number, len(params)))
                surfaces.append(InfinitePlane(params[:3], params[3:6]))
            else:
                raise ValueError("Line {}: unknown object type: {}".format(line_number, obj_type))

    return surfaces


def prepare_surface_data(surfaces):
    """
    Pack surfaces into numpy arrays for the compiled kernels.

    Each surface gets a type code and an index into the arrays of its type,
    so declaration order is preserved. The arrays are read-only.
    """
    spheres = [s for s in surfaces if isinstance(s, Sphere)]
    planes = [s for s in surfaces if isinstance(s, InfinitePlane)]

    num_spheres = len(spheres)
    num_planes = len(planes)
    num_surfaces = len(surfaces)

    # Arrays for spheres
    sphere_centers = np.zeros((max(1, num_spheres), 3))
    sphere_radii = np.zeros(max(1, num_spheres))
    for idx, s in enumerate(spheres):
        sphere_centers[idx] = s.center
        sphere_radii[idx] = s.radius

    # Arrays for planes
    plane_points = np.zeros((max(1, num_planes), 3))
    plane_normals = np.zeros((max(1, num_planes), 3))
    for idx, s in enumerate(planes):
        plane_points[idx] = s.point
        plane_normals[idx] = s.normal

    surface_types = np.zeros(num_surfaces, dtype=np.int32)
    surface_type_indices = np.zeros(num_surfaces, dtype=np.int32)

    sphere_idx = 0
    plane_idx = 0
    for i, s in enumerate(surfaces):
        if isinstance(s, Sphere):
            surface_types[i] = SPHERE
            surface_type_indices[i] = sphere_idx
            sphere_idx += 1
        elif isinstance(s, InfinitePlane):
            surface_types[i] = PLANE
            surface_type_indices[i] = plane_idx
            plane_idx += 1
        else:
            raise TypeError("Unsupported surface: {!r}".format(s))

    return freeze_surface_data({
        'surface_types': surface_types,
        'surface_indices': surface_type_indices,
        'sphere_centers': sphere_centers,
        'sphere_radii': sphere_radii,
        'plane_points': plane_points,
        'plane_normals': plane_normals,
        'num_spheres': num_spheres,
        'num_planes': num_planes,
    })


def freeze_surface_data(surface_data):
    """Mark the packed arrays read-only (again, after a copy into a worker)."""
    for value in surface_data.values():
        if isinstance(value, np.ndarray):
            value.flags.writeable = False
    return surface_data


def scene_arrays(surface_data):
    """The packed arrays in the argument order the kernels expect."""
    return (surface_data['surface_types'], surface_data['surface_indices'],
            surface_data['sphere_centers'], surface_data['sphere_radii'],
            surface_data['plane_points'], surface_data['plane_normals'])
