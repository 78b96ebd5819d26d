class ClassifierError(Exception):
    """Base class for every error raised by the classification pipeline."""


class EmptyInputError(ClassifierError):
    def __init__(self, message: str = "No file uploaded"):
        super().__init__(message)


class DecodeError(ClassifierError):
    """Image bytes could not be decoded into a bitmap."""


class InferenceError(ClassifierError):
    """The forward pass failed (shape mismatch, runtime error in the graph)."""


class ConstructionError(ClassifierError):
    """The model could not be built. Fatal at startup."""


class ArtifactError(ConstructionError):
    pass


class GraphLoadError(ConstructionError):
    pass


class ModelInitError(ConstructionError):
    pass


class NodeNotFoundError(ConstructionError):
    pass


class PayloadTooLargeError(ClassifierError):
    """Upload is larger than the configured body limit."""
