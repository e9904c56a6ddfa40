"""
Exceptions raised by the face recognition engine.

Shape errors are caller mistakes; singular matrices and bad training input
are data-dependent and always reach the caller so it can report them.
"""


class FaceRecError(Exception):
    """Base class for every error raised by this package."""


class DimensionMismatchError(FaceRecError, ValueError):
    """Operand shapes are incompatible for the requested operation."""


class SingularMatrixError(FaceRecError, ArithmeticError):
    """A matrix could not be inverted (or is too ill-conditioned to be)."""


class NoImagesError(FaceRecError, ValueError):
    """A directory yielded no readable images."""


class InconsistentDimensionsError(FaceRecError, ValueError):
    """Images differ in pixel dimensions."""


class MissingLabelError(FaceRecError, ValueError):
    """A training image has no parsable class label."""


class DatabaseIOError(FaceRecError, IOError):
    """A persisted artifact could not be read or written, or is corrupt."""


class MatrixReleasedError(FaceRecError, RuntimeError):
    """A matrix was used after its storage was released."""


class EmptyDatabaseError(FaceRecError, RuntimeError):
    """The database holds no trained model."""
