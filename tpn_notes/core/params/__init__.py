from .dependencies import CircularDependencyError, extract_direct, extract_transitive, required_inputs
from .formulas import format_number, get_value
from .keys import canonicalize
from .store import ParameterStore

__all__ = [
    "CircularDependencyError",
    "ParameterStore",
    "canonicalize",
    "extract_direct",
    "extract_transitive",
    "format_number",
    "get_value",
    "required_inputs",
]
