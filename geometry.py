from vector import vec3


# Sentinel distances a traversal starts from
PRIMARY_FAR = 1.0e17
OCCLUSION_FAR = 1.0e9


class Ray:
    def __init__(self, origin, direction):
        self.origin = vec3(*origin)
        self.direction = vec3(*direction)


class IntersectInfo:
    """
    Closest hit found so far along a ray.

    Surfaces only overwrite the record with a hit that is positive and
    strictly nearer than the current distance.
    """

    def __init__(self, distance=PRIMARY_FAR):
        self.distance = distance
        self.position = (0.0, 0.0, 0.0)
        self.normal = (0.0, 1.0, 0.0)


def intersect_scene(ray, surfaces, isect):
    """
    Intersect the ray with every surface in declaration order.

    Returns True if any surface updated isect, which then holds the nearest
    positive hit. On exact ties the first declared surface wins.
    """
    hit = False
    for surface in surfaces:
        hit = surface.intersect(ray, isect) or hit
    return hit
