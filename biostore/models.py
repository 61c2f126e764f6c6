"""
Data Models Module

Records kept by the biometric identity store:

- Embedding: one stored face descriptor per identity
- RegistryRecord: account metadata and enrollment flag per identity
- OfflineSession: the single-slot session used while the identity provider
  is unreachable
- IdentityAccount: the verified account handle delivered by the identity
  provider on sign-in

All timestamps are integer milliseconds since the epoch (see now_ms()).
Storage and wire documents use the keys produced by to_dict().
"""

import math
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np


DESCRIPTOR_LENGTH = 128


def now_ms() -> int:
    """Return the current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def _require(data: Dict[str, Any], key: str, kind: type, model: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"{model} payload must be a mapping, got {type(data).__name__}")
    if key not in data:
        raise ValueError(f"{model} payload is missing '{key}'")
    value = data[key]
    if kind is int and isinstance(value, bool):
        raise ValueError(f"{model}.{key} must be int, got bool")
    if not isinstance(value, kind):
        expected = " or ".join(k.__name__ for k in kind) if isinstance(kind, tuple) else kind.__name__
        raise ValueError(f"{model}.{key} must be {expected}, got {type(value).__name__}")
    return value


def _optional_str(data: Dict[str, Any], key: str, model: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{model}.{key} must be a string or null")
    return value


@dataclass
class Embedding:
    """
    A stored face descriptor for one identity.

    The descriptor is converted to an immutable tuple of floats on
    construction. It is never mutated in place; re-enrollment replaces the
    whole record.

    Attributes:
        identity_id: Unique identity key.
        descriptor: 128 floats produced by the external descriptor extractor.
        updated_at: Freshness timestamp (ms since epoch).
    """

    identity_id: str
    descriptor: Tuple[float, ...]
    updated_at: int

    def __post_init__(self):
        if not isinstance(self.identity_id, str) or not self.identity_id:
            raise ValueError("identity_id must be a non-empty string")

        try:
            values = tuple(float(v) for v in self.descriptor)
        except (TypeError, ValueError) as e:
            raise ValueError(f"descriptor must be a sequence of numbers: {e}") from e

        if len(values) != DESCRIPTOR_LENGTH:
            raise ValueError(
                f"descriptor must have {DESCRIPTOR_LENGTH} values, got {len(values)}"
            )
        if not all(math.isfinite(v) for v in values):
            raise ValueError("descriptor contains non-finite values")

        self.descriptor = values
        self.updated_at = int(self.updated_at)

    def as_array(self) -> np.ndarray:
        """Return the descriptor as a float64 numpy vector."""
        return np.asarray(self.descriptor, dtype=np.float64)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_id": self.identity_id,
            "descriptor": list(self.descriptor),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Embedding":
        identity_id = _require(data, "identity_id", str, "Embedding")
        descriptor = _require(data, "descriptor", (list, tuple), "Embedding")
        updated_at = _require(data, "updated_at", int, "Embedding")
        return cls(identity_id=identity_id, descriptor=descriptor, updated_at=updated_at)


@dataclass
class RegistryRecord:
    """
    Account metadata and enrollment state for one identity.

    Merges are whole-record last-write-wins on updated_at; there is no
    per-field merge.
    """

    identity_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    enrolled: bool = False
    updated_at: int = 0

    MUTABLE_FIELDS = ("email", "display_name", "photo_url", "enrolled")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryRecord":
        identity_id = _require(data, "identity_id", str, "RegistryRecord")
        updated_at = _require(data, "updated_at", int, "RegistryRecord")
        enrolled = data.get("enrolled", False)
        if not isinstance(enrolled, bool):
            raise ValueError("RegistryRecord.enrolled must be a boolean")

        return cls(
            identity_id=identity_id,
            email=_optional_str(data, "email", "RegistryRecord"),
            display_name=_optional_str(data, "display_name", "RegistryRecord"),
            photo_url=_optional_str(data, "photo_url", "RegistryRecord"),
            enrolled=enrolled,
            updated_at=updated_at,
        )


@dataclass
class OfflineSession:
    """Single-slot session written after a biometric match made offline."""

    identity_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineSession":
        return cls(
            identity_id=_require(data, "identity_id", str, "OfflineSession"),
            email=_optional_str(data, "email", "OfflineSession"),
            display_name=_optional_str(data, "display_name", "OfflineSession"),
            created_at=_require(data, "created_at", int, "OfflineSession"),
        )


@dataclass
class IdentityAccount:
    """Verified account handle supplied by the identity provider."""

    identity_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


def as_descriptor(values: Sequence[float]) -> np.ndarray:
    """Convert a descriptor-like sequence into a flat float64 vector."""
    return np.asarray(values, dtype=np.float64).ravel()
