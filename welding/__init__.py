from .vertex_welding import (
    DEFAULT_JOIN_TOLERANCE,
    DUPLICATE_VERTEX_EPS,
    apply_vertex_remap,
    find_duplicate_vertex_pairs,
    join,
    remove_duplicate_vertices,
)
