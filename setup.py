from setuptools import find_packages, setup

setup(
    name="coherence-physics",
    version="0.1.0",
    description="Semantic coherence decay, asymmetry and stability analysis for glossed corpora",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "pandas",
        "matplotlib",
    ],
    extras_require={
        "test": ["pytest"],
        "transformers": ["sentence-transformers"],
    },
    entry_points={
        "console_scripts": [
            "coherence-physics=coherence_physics.cli:main",
        ],
    },
)
