from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionModel(BaseModel):
    """
    A graph edge set: dependencies, optional transition and targets.

    ``from`` is a Python keyword, so the field is ``from_`` with the wire
    name kept as alias. Repeated names in ``from`` need that many arrivals.
    """
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    from_: List[str] = Field(alias='from')
    transition: Optional[str] = None
    to: List[str] = Field(default_factory=list)

    def occurrences(self) -> Dict[str, int]:
        """Required arrival count per dependency name."""
        counts: Dict[str, int] = {}
        for name in self.from_:
            counts[name] = counts.get(name, 0) + 1
        return counts
