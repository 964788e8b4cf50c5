from .base import Base, as_utc
from .farm import Farm
from .diagnostic import CropStatus, Diagnostic, Severity

__all__ = [
    "Base",
    "CropStatus",
    "Diagnostic",
    "Farm",
    "Severity",
    "as_utc",
]
