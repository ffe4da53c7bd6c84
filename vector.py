import numpy as np
from numba import njit


# Vectors shorter than this are left untouched by normalize
EPSILON = 1e-9


def vec3(x, y, z):
    """Build a vector as a tuple of floats."""
    return (float(x), float(y), float(z))


@njit(cache=True)
def add(v0, v1):
    return (v0[0] + v1[0], v0[1] + v1[1], v0[2] + v1[2])


@njit(cache=True)
def sub(v0, v1):
    return (v0[0] - v1[0], v0[1] - v1[1], v0[2] - v1[2])


@njit(cache=True)
def mul(v0, v1):
    """Element-wise product."""
    return (v0[0] * v1[0], v0[1] * v1[1], v0[2] * v1[2])


@njit(cache=True)
def dot(v0, v1):
    return v0[0] * v1[0] + v0[1] * v1[1] + v0[2] * v1[2]


@njit(cache=True)
def cross(v0, v1):
    return (v0[1] * v1[2] - v0[2] * v1[1],
            v0[2] * v1[0] - v0[0] * v1[2],
            v0[0] * v1[1] - v0[1] * v1[0])


@njit(cache=True)
def scale(v, s):
    return (v[0] * s, v[1] * s, v[2] * s)


@njit(cache=True)
def normalize(v):
    """
    Return v scaled to unit length.

    A vector whose length is within EPSILON of zero is returned unchanged.
    """
    length = np.sqrt(dot(v, v))
    if length < -EPSILON or length > EPSILON:
        return (v[0] / length, v[1] / length, v[2] / length)
    return v


def new_normal(x, y, z):
    return normalize(vec3(x, y, z))


def normalize_rows(v):
    """Normalize an array of vectors (N, 3), leaving degenerate rows as they are."""
    lengths = np.sqrt(v[:, 0] * v[:, 0] + v[:, 1] * v[:, 1] + v[:, 2] * v[:, 2])
    degenerate = lengths <= EPSILON
    lengths = np.where(degenerate, 1.0, lengths)
    return v / lengths[:, np.newaxis]
