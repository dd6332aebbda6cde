"""LabelX: label image directories with an ensemble of quantized classifiers."""

__version__ = "0.1.0"
