from setuptools import setup, find_packages

setup(
    name="watertight-mesh",
    version="0.1.0",
    description="Watertight triangle mesh analysis: spatial indexing, inside/outside cell classification, "
                "polyhedron cleanup, vertex welding and OBJ/PLY/STL I/O",
    author="",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["mesh_index"],
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "scipy",
        "trimesh",
        "matplotlib",
        "tqdm",
        "networkx",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["mesh-index=mesh_index:main"],
    },
)
