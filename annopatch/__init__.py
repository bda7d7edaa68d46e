from annopatch.errors import KeyCollisionError, PatchError, RecordParseError, SpecError
from annopatch.version import VERSION

__all__ = [
    "KeyCollisionError",
    "PatchError",
    "RecordParseError",
    "SpecError",
    "VERSION",
]
