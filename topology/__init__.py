from .polyhedra import (
    build_face_graph,
    get_polyhedra,
    get_polyhedron_volume,
    get_signed_triangle_volumes,
    is_polyhedron_hole,
    remove_holes,
    remove_minimum_triangle_count_polyhedra,
    remove_minimum_volume_polyhedra,
)
