from __future__ import annotations

import sys
from typing import Optional, Sequence, Tuple

MINIMUM_PYTHON: Tuple[int, int] = (3, 9)


class RuntimeVersionError(RuntimeError):
    """Raised when the interpreter is older than the supported minimum."""


def ensure_supported_runtime(
    minimum: Tuple[int, int] = MINIMUM_PYTHON,
    current: Optional[Sequence[int]] = None,
) -> None:
    version = tuple(current if current is not None else sys.version_info[:3])
    if version[:2] < tuple(minimum):
        found = ".".join(str(part) for part in version)
        required = ".".join(str(part) for part in minimum)
        raise RuntimeVersionError(
            f"Python {required} or later is required; this interpreter is {found}."
        )
