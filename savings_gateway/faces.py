"""Face-embedding collaborator.

The detector itself is an off-the-shelf model supplied by the caller.
``load_models`` returns a handle that every detection call takes explicitly,
so there is no process-wide "models loaded" state.
"""

from typing import Callable, Optional, Sequence

import numpy as np

DESCRIPTOR_SIZE = 128

Embedder = Callable[[np.ndarray], Optional[Sequence[float]]]


class FaceModels:
    """Handle to a loaded face detector + embedder.

    The API process holds a handle without an embedder: descriptors arrive
    already computed by the browser and are only checked against its size.
    """

    def __init__(self, embedder: Optional[Embedder], descriptor_size: int = DESCRIPTOR_SIZE) -> None:
        self.embedder = embedder
        self.descriptor_size = descriptor_size


def load_models(embedder: Optional[Embedder] = None, descriptor_size: int = DESCRIPTOR_SIZE) -> FaceModels:
    if embedder is not None and not callable(embedder):
        raise TypeError("embedder must be callable")
    return FaceModels(embedder, descriptor_size)


def to_descriptor(models: FaceModels, values) -> np.ndarray:
    """Coerce a submitted descriptor to a float vector of the handle's size."""

    try:
        vector = np.asarray(values, dtype=np.float32).reshape(-1)
    except (TypeError, ValueError):
        raise ValueError("descriptor must be a list of numbers")
    if vector.shape[0] != models.descriptor_size:
        raise ValueError(f"descriptor has {vector.shape[0]} values, expected {models.descriptor_size}")
    if not np.all(np.isfinite(vector)):
        raise ValueError("descriptor contains non-finite values")
    return vector


def detect_face(models: FaceModels, frame) -> Optional[np.ndarray]:
    """Return the face descriptor for a video frame, or None if no face was found."""

    if models.embedder is None:
        raise RuntimeError("face models were loaded without an embedder")
    frame = np.asarray(frame)
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"expected an HxWx3 frame, got shape {frame.shape}")

    descriptor = models.embedder(frame)
    if descriptor is None:
        return None
    return to_descriptor(models, descriptor)


def euclidean_distance(a, b) -> float:
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape != b.shape:
        raise ValueError(f"descriptor length mismatch: {a.shape[0]} != {b.shape[0]}")
    return float(np.linalg.norm(a - b))
