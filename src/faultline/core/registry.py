"""
Error kinds and the variant registry.

``classify_error`` maps a Python error to a closed set of kinds; the
registry maps each kind (and each tag) to the managed variant that wraps it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, Optional, Tuple, Type

if TYPE_CHECKING:
    from faultline.core.exceptions import ManagedException


class ErrorKind(Enum):
    """Closed enumeration of runtime error kinds."""

    GENERIC = "generic"
    EVAL = "eval"
    RANGE = "range"
    REFERENCE = "reference"
    SYNTAX = "syntax"
    TYPE = "type"
    URI = "uri"


# Checked in order: subclasses must precede the classes they derive from
# (UnicodeError is a ValueError, OverflowError is an ArithmeticError).
_KIND_TABLE: Tuple[Tuple[ErrorKind, Tuple[Type[BaseException], ...]], ...] = (
    (ErrorKind.URI, (UnicodeError,)),
    (ErrorKind.SYNTAX, (SyntaxError,)),
    (ErrorKind.TYPE, (TypeError, AttributeError)),
    (ErrorKind.REFERENCE, (NameError, LookupError)),
    (ErrorKind.RANGE, (ValueError, OverflowError, RecursionError)),
    (ErrorKind.EVAL, (ArithmeticError,)),
)


def classify_error(value: object) -> ErrorKind:
    """
    Classify a raised value.

    Anything that is not a recognised Python error (including strings and
    arbitrary objects) is GENERIC.
    """
    if isinstance(value, BaseException):
        for kind, types in _KIND_TABLE:
            if isinstance(value, types):
                return kind
    return ErrorKind.GENERIC


@dataclass(frozen=True)
class VariantSpec:
    """Registry entry for one variant."""

    tag: str
    variant: Type["ManagedException"]
    native: Type[BaseException]
    kind: Optional[ErrorKind] = None


class VariantRegistry:
    """Tag → variant lookup, plus the variant chosen for each error kind."""

    def __init__(self) -> None:
        self._by_tag: Dict[str, VariantSpec] = {}
        self._by_kind: Dict[ErrorKind, VariantSpec] = {}

    def register(self, spec: VariantSpec) -> None:
        self._by_tag[spec.tag] = spec
        if spec.kind is not None:
            self._by_kind[spec.kind] = spec

    def get(self, tag: str) -> Optional[VariantSpec]:
        return self._by_tag.get(tag)

    def for_kind(self, kind: ErrorKind) -> Optional[VariantSpec]:
        return self._by_kind.get(kind)

    def __contains__(self, tag: object) -> bool:
        return tag in self._by_tag

    def __iter__(self) -> Iterator[VariantSpec]:
        return iter(list(self._by_tag.values()))

    def __len__(self) -> int:
        return len(self._by_tag)


variant_registry = VariantRegistry()
