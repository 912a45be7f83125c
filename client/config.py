"""
Client tunables.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict


MAX_COST_LIMIT = 2 ** 63 - 1


@dataclass
class ClientConfig:
    """Tunables of the registry client."""
    cost_buffer_percent: float = 20
    read_attempts: int = 3
    read_retry_delay: float = 1.0
    max_cost_limit: int = MAX_COST_LIMIT

    def __post_init__(self):
        if self.cost_buffer_percent < 0:
            raise ValueError("Cost buffer percent cannot be negative")
        if self.read_attempts < 1:
            raise ValueError("Read attempts must be at least 1")
        if self.read_retry_delay < 0:
            raise ValueError("Read retry delay cannot be negative")
        if self.max_cost_limit <= 0:
            raise ValueError("Max cost limit must be positive")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'ClientConfig':
        """Build from a configuration section, ignoring unknown keys."""
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in (values or {}).items() if k in known and v is not None})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
