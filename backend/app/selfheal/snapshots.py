"""
Snapshots

Versioned, JSON-able state handed to an external persistence layer by
the history ledger, the pattern learner and the strategy optimizer.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field

SNAPSHOT_VERSION = 1


class HistoryEntryModel(BaseModel):
    id: str
    timestamp: datetime
    operation: str
    element_description: str
    original_locator: Optional[str] = None
    healed_locator: Optional[str] = None
    strategy: str = ""
    success: bool
    confidence: Optional[float] = None
    duration_ms: int = 0
    context: Dict[str, Any] = {}


class LedgerSnapshot(BaseModel):
    """History ledger rows; aggregates are rebuilt from them on restore"""
    version: int = SNAPSHOT_VERSION
    max_entries: int = 10000
    entries: List[HistoryEntryModel] = []
    created_at: datetime = Field(default_factory=datetime.now)


class UIPatternModel(BaseModel):
    name: str
    description: str = ""
    selectors: List[str] = []
    attributes: Dict[str, str] = {}
    tags: List[str] = []
    structure: Optional[Dict[str, Any]] = None
    confidence: float = 0.75
    weight: float = 0.8


class LearnedPatternModel(BaseModel):
    shape_key: str
    pattern: UIPatternModel
    occurrences: int
    success_rate: float = 1.0
    first_seen: datetime
    last_seen: datetime
    confidence: float
    registered: bool = False


class LearnedPatternsSnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    min_occurrences: int = 3
    min_confidence: float = 0.7
    patterns: List[LearnedPatternModel] = []
    created_at: datetime = Field(default_factory=datetime.now)


class PrioritySnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    priorities: Dict[str, float] = {}
    created_at: datetime = Field(default_factory=datetime.now)


SnapshotT = TypeVar("SnapshotT", bound=BaseModel)


def load_snapshot(model: Type[SnapshotT], data: Union[SnapshotT, Dict[str, Any]]) -> SnapshotT:
    """
    Validate snapshot input and check its version.

    Args:
        model: Snapshot model class
        data: Model instance or the dict produced by model_dump()

    Returns:
        Validated snapshot

    Raises:
        ValueError: unknown version or malformed data
    """
    snapshot = data if isinstance(data, model) else model.model_validate(data)
    if snapshot.version != SNAPSHOT_VERSION:
        raise ValueError(
            f"Unsupported {model.__name__} version {snapshot.version} "
            f"(expected {SNAPSHOT_VERSION})"
        )
    return snapshot
