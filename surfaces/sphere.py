import numpy as np
from numba import njit

from vector import add, dot, normalize, scale, sub, vec3


@njit(cache=True)
def sphere_distance(ray_origin, ray_direction, center, radius):
    """
    Distance to the near root of the ray-sphere quadratic, or -1.0 on a miss.

    Only the near root is considered, so a ray starting inside the sphere
    yields a negative distance and is treated as a miss by callers.
    """
    rs = sub(ray_origin, center)
    b = dot(rs, ray_direction)
    c = dot(rs, rs) - radius * radius
    d = b * b - c
    if d > 0.0:
        return -b - np.sqrt(d)
    return -1.0


class Sphere:
    def __init__(self, center, radius):
        self.center = vec3(*center)
        self.radius = float(radius)

    def intersect(self, ray, isect):
        """Record the hit in isect if it is nearer than the current one."""
        t = sphere_distance(ray.origin, ray.direction, self.center, self.radius)
        if 0.0 < t < isect.distance:
            isect.distance = t
            isect.position = add(ray.origin, scale(ray.direction, t))
            isect.normal = normalize(sub(isect.position, self.center))
            return True
        return False

    def __repr__(self):
        return "Sphere(center={}, radius={})".format(self.center, self.radius)
