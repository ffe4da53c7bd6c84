import numpy as np

from vector import new_normal, normalize_rows


class Camera:
    """Pinhole camera at the origin looking down -z with +y up."""

    def __init__(self):
        self.position = (0.0, 0.0, 0.0)

    def screen_coordinates(self, x, y, u, v, image_width, image_height, nsubsamples):
        """Map sub-sample (u, v) of pixel (x, y) to [-1, 1] screen space; row 0 is the top."""
        half_w = image_width / 2.0
        half_h = image_height / 2.0
        px = (x + u / nsubsamples - half_w) / half_w
        py = -(y + v / nsubsamples - half_h) / half_h
        return px, py

    def generate_ray(self, x, y, u, v, image_width, image_height, nsubsamples):
        """Generate a ray through sub-sample (u, v) of pixel (x, y)."""
        px, py = self.screen_coordinates(x, y, u, v, image_width, image_height, nsubsamples)
        return self.position, new_normal(px, py, -1.0)

    def generate_rays_for_rows(self, image_width, image_height, y_start, y_end, nsubsamples):
        """
        Generate primary ray directions for a range of rows (vectorized).

        Returns an (N, 3) array ordered by row, column, u, v, with
        N = (y_end - y_start) * image_width * nsubsamples**2.
        """
        y = np.arange(y_start, y_end, dtype=np.float64)
        x = np.arange(image_width, dtype=np.float64)
        u = np.arange(nsubsamples, dtype=np.float64) / nsubsamples
        v = np.arange(nsubsamples, dtype=np.float64) / nsubsamples

        yy, xx, uu, vv = np.meshgrid(y, x, u, v, indexing='ij')

        half_w = image_width / 2.0
        half_h = image_height / 2.0
        px = (xx.ravel() + uu.ravel() - half_w) / half_w
        py = -(yy.ravel() + vv.ravel() - half_h) / half_h

        directions = np.stack([px, py, np.full_like(px, -1.0)], axis=1)
        return normalize_rows(directions)
