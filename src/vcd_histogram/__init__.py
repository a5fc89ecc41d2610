"""vcd-histogram - per-signal value frequency tables from VCD dumps.

Reads a value change dump as a stream, samples the watched signals on a
clock edge and counts how often each value occurs, so that fixed-point
formats can be sized from what a simulation actually produced.
"""

from vcd_histogram.config import HistogramConfig
from vcd_histogram.errors import (
    ConfigurationError,
    DecodeError,
    DuplicateIdentifier,
    StructuralError,
    TooManyErrors,
    VCDHistogramError,
)
from vcd_histogram.pipeline import Pipeline, RunResult, histogram_file

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DecodeError",
    "DuplicateIdentifier",
    "HistogramConfig",
    "Pipeline",
    "RunResult",
    "StructuralError",
    "TooManyErrors",
    "VCDHistogramError",
    "histogram_file",
]
