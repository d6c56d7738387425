"""
Exceptions raised by mesh loading, saving and classification.
"""


class MeshIOError(OSError):
    """A mesh file could not be opened, read or written."""


class MeshFormatError(ValueError):
    """A mesh file does not match the grammar or layout of its format."""


class MeshIndexError(MeshFormatError, IndexError):
    """A face references a vertex index outside the loaded vertex range."""


class ClassificationIndeterminate(RuntimeError):
    """A ray-parity probe hit a triangle edge or vertex and cannot be counted."""
