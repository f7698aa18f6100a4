# shellcue/prediction/models.py
"""
Output types of the prediction engines.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class SuggestionSource(str, Enum):
    """Where a suggestion came from."""
    LEARNED = "learned"
    CONTEXT = "context"
    PARAMETER_VALUE = "parameter-value"
    SEQUENCE = "sequence"


@dataclass
class Suggestion:
    """A ranked completion for the command line being typed."""
    text: str
    score: float
    description: Optional[str] = None
    is_flag: bool = False
    source: SuggestionSource = SuggestionSource.LEARNED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        return data


@dataclass
class DirectorySuggestion:
    """A ranked target for a directory jump."""
    path: str
    display_path: str
    score: float
    usage_count: int = 0
    last_used: Optional[datetime] = None
    match_type: str = "partial"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "display_path": self.display_path,
            "score": self.score,
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "match_type": self.match_type,
        }
