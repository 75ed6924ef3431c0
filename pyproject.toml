[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nnkern"
version = "0.1.0"
description = "Reference neural-network kernels, quantization helpers and model-format records for a small inference runtime"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["neural network", "inference", "quantization", "kernels", "k210"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["nnkern"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
