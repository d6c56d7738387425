from pathlib import Path

from data_types import MeshFormatError

from .obj import load_obj, save_obj
from .ply import decode_ply, encode_ply, load_ply, save_ply
from .stl import encode_stl, save_stl

_LOADERS = {
    ".obj": load_obj,
    ".ply": load_ply,
}

_SAVERS = {
    ".obj": save_obj,
    ".ply": save_ply,
    ".stl": save_stl,
}


def _get_handler(handlers, path, action):
    suffix = Path(path).suffix.lower()
    if suffix not in handlers:
        raise MeshFormatError(f"Cannot {action} '{suffix}' files; supported: {', '.join(sorted(handlers))}")
    return handlers[suffix]


def load_mesh(path, **kwargs):
    """Load a mesh, choosing the reader from the file extension. Keyword arguments go to the reader."""
    return _get_handler(_LOADERS, path, "load")(path, **kwargs)


def save_mesh(mesh, path):
    """Save a mesh, choosing the writer from the file extension."""
    _get_handler(_SAVERS, path, "save")(mesh, path)
