import numpy as np


WIDTH = 256
HEIGHT = 256
NSUBSAMPLES = 2   # sub-samples per pixel axis
NAO_SAMPLES = 8   # occlusion samples per hemisphere axis


class RenderSettings:
    def __init__(self, width=WIDTH, height=HEIGHT, subsamples=NSUBSAMPLES,
                 ao_samples=NAO_SAMPLES, seed=None):
        for name, value in (('width', width), ('height', height),
                            ('subsamples', subsamples), ('ao_samples', ao_samples)):
            if int(value) != value or value < 1:
                raise ValueError("{} must be a positive integer, got {!r}".format(name, value))

        self.width = int(width)
        self.height = int(height)
        self.subsamples = int(subsamples)
        self.ao_samples = int(ao_samples)

        # Rows are seeded from this, so every run is reproducible given the seed
        if seed is None:
            seed = int(np.random.default_rng().integers(0, 2**32))
        # The row kernels seed a 32-bit generator
        self.seed = int(seed) & 0xFFFFFFFF

    @property
    def samples_per_pixel(self):
        return self.subsamples * self.subsamples

    def __repr__(self):
        return ("RenderSettings(width={}, height={}, subsamples={}, ao_samples={}, seed={})"
                .format(self.width, self.height, self.subsamples, self.ao_samples, self.seed))
