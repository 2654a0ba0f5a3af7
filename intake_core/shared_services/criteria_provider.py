"""
Criteria Providers

Supply the AgencyCriteria used for each decision. Criteria are loaded outside
the engine so deployments can tune weights and thresholds without code
changes; a malformed ruleset is a ConfigurationError, never a silent fallback.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

from structlog import get_logger

from agents.referral_intake.criteria import AgencyCriteria, validate_criteria

from ..exceptions import ConfigurationError

logger = get_logger()


@runtime_checkable
class CriteriaProvider(Protocol):
    """Source of the active agency criteria."""

    async def get_criteria(self) -> AgencyCriteria:
        """
        Return the active criteria.

        Raises:
            ConfigurationError: If the criteria cannot be loaded or are invalid
        """
        ...

    def invalidate(self) -> None:
        """Drop any cached criteria so the next call reloads them."""
        ...


class StaticCriteriaProvider:
    """Serves a fixed ruleset (defaults when none is given)."""

    def __init__(self, criteria: Optional[AgencyCriteria] = None):
        self.criteria = criteria or AgencyCriteria()
        validate_criteria(self.criteria)

    async def get_criteria(self) -> AgencyCriteria:
        return self.criteria

    def invalidate(self) -> None:
        pass


class FileCriteriaProvider:
    """
    Loads criteria from a JSON file and caches them until invalidated.

    Example file:
        {
            "weights": {"geographic": 0.2, "insurance": 0.25, "clinical": 0.25,
                        "capacity": 0.15, "quality": 0.15},
            "accept_threshold": 0.8,
            "review_threshold": 0.55,
            "max_travel_distance": 30
        }
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._cached: Optional[AgencyCriteria] = None
        self._lock = asyncio.Lock()

    async def get_criteria(self) -> AgencyCriteria:
        if self._cached is not None:
            return self._cached

        async with self._lock:
            if self._cached is None:
                self._cached = self._load()
            return self._cached

    def invalidate(self) -> None:
        self._cached = None
        logger.info("criteria_invalidated", path=str(self.path))

    def _load(self) -> AgencyCriteria:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read criteria file {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Criteria file {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Criteria file {self.path} must contain a JSON object")

        criteria = AgencyCriteria.from_mapping(data)
        logger.info(
            "criteria_loaded",
            path=str(self.path),
            accept_threshold=criteria.accept_threshold,
            review_threshold=criteria.review_threshold,
        )
        return criteria
