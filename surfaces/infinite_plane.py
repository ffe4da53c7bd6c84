from numba import njit

from vector import EPSILON, add, dot, scale, vec3


@njit(cache=True)
def plane_distance(ray_origin, ray_direction, point, normal):
    """Distance along the ray to the plane, or -1.0 if the ray is parallel to it."""
    d = -dot(point, normal)
    denom = dot(ray_direction, normal)
    if abs(denom) < EPSILON:
        return -1.0
    return -(dot(ray_origin, normal) + d) / denom


class InfinitePlane:
    def __init__(self, point, normal):
        # The normal is kept as given; pass a unit normal for correct shading
        self.point = vec3(*point)
        self.normal = vec3(*normal)

    def intersect(self, ray, isect):
        """Record the hit in isect if it is nearer than the current one."""
        t = plane_distance(ray.origin, ray.direction, self.point, self.normal)
        if 0.0 < t < isect.distance:
            isect.distance = t
            isect.position = add(ray.origin, scale(ray.direction, t))
            isect.normal = self.normal
            return True
        return False

    def __repr__(self):
        return "InfinitePlane(point={}, normal={})".format(self.point, self.normal)
