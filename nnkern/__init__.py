"""Reference neural-network kernels, quantization helpers and model-format records."""

__version__ = "0.1.0"