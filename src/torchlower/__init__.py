__docformat__ = "restructuredtext"
__version__ = "2026.1.0"
__all__ = [
    "ConversionError",
    "LoweringError",
    "PreconditionError",
    "ShapeError",
    "TorchLower",
    "UnsupportedOperatorError",
]

from torchlower._torchlower import TorchLower
from torchlower.errors import (
    ConversionError,
    LoweringError,
    PreconditionError,
    ShapeError,
    UnsupportedOperatorError,
)
