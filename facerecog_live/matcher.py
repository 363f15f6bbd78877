"""
Nearest-identity matching of a query descriptor against the reference gallery.
"""
import numpy as np

from . import config
from .common_types import UNKNOWN_LABEL, FaceMatch, LabeledFaceDescriptors


class FaceMatcher:
    """
    Built once from the gallery, queried every tick.

    All reference descriptors are stacked into one (M, D) matrix with a parallel
    owner index, so a query is a single vectorised distance computation.
    An identity's distance is the distance to its closest reference descriptor;
    the closest identity wins unless that distance reaches the threshold, in
    which case the result is "unknown".
    """

    def __init__(self, labeled_descriptors, distance_threshold=None):
        self.distance_threshold = config.DISTANCE_THRESHOLD if distance_threshold is None else distance_threshold
        self.labeled_descriptors = tuple(labeled_descriptors)
        if not self.labeled_descriptors:
            raise ValueError("FaceMatcher requires at least one labeled descriptor set")

        rows = []
        owners = []
        for index, identity in enumerate(self.labeled_descriptors):
            if not isinstance(identity, LabeledFaceDescriptors):
                raise TypeError(f"Expected LabeledFaceDescriptors, got {type(identity).__name__}")
            if not identity.descriptors:
                raise ValueError(f"Identity '{identity.label}' has no reference descriptors")
            for descriptor in identity.descriptors:
                rows.append(descriptor.ravel())
                owners.append(index)

        dims = {row.shape[0] for row in rows}
        if len(dims) != 1:
            raise ValueError(f"Reference descriptors have mixed dimensions: {sorted(dims)}")

        self._matrix = np.vstack(rows).astype(np.float32)
        self._owners = np.asarray(owners)
        self.descriptor_size = dims.pop()

    @property
    def labels(self):
        return [identity.label for identity in self.labeled_descriptors]

    def _identity_distances(self, query):
        query = np.asarray(query, dtype=np.float32).ravel()
        if query.shape[0] != self.descriptor_size:
            raise ValueError(f"Query descriptor has size {query.shape[0]}, expected {self.descriptor_size}")
        distances = np.linalg.norm(self._matrix - query, axis=1)
        best = np.full(len(self.labeled_descriptors), np.inf, dtype=np.float32)
        np.minimum.at(best, self._owners, distances)
        return best

    def match_descriptor(self, query):
        """Closest identity regardless of the threshold."""
        best = self._identity_distances(query)
        index = int(np.argmin(best))
        return FaceMatch(self.labeled_descriptors[index].label, float(best[index]))

    def find_best_match(self, query):
        best_match = self.match_descriptor(query)
        if best_match.distance < self.distance_threshold:
            return best_match
        return FaceMatch(UNKNOWN_LABEL, best_match.distance)

    def match_descriptors(self, queries):
        return [self.find_best_match(query) for query in queries]
