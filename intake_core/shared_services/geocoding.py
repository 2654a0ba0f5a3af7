"""
Geocoding

Resolves travel distance for referrals whose email did not state one.
An unresolved distance stays unknown; it is never guessed.
"""

import json
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

from structlog import get_logger

from agents.referral_intake.models import GeographicLocation

from ..exceptions import ConfigurationError

logger = get_logger()


@runtime_checkable
class Geocoder(Protocol):
    """Distance lookup collaborator."""

    async def distance_miles(self, location: GeographicLocation) -> Optional[float]:
        """
        Miles from the agency office to the location.

        Returns:
            Distance, or None if the location cannot be resolved
        """
        ...


class ZipDistanceGeocoder:
    """Looks up distance by zip code in a fixed table."""

    def __init__(self, distances: Optional[dict[str, float]] = None):
        self.distances = dict(distances or {})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ZipDistanceGeocoder":
        """
        Load a ``{"zip": miles}`` JSON table.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot load zip distance table {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Zip distance table {path} must be a JSON object")

        try:
            return cls({str(zip_code): float(miles) for zip_code, miles in data.items()})
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Zip distance table {path} has a non-numeric distance") from e

    async def distance_miles(self, location: GeographicLocation) -> Optional[float]:
        distance = self.distances.get(location.zip_code)
        if distance is None:
            logger.info("zip_not_geocoded", zip_code=location.zip_code)
        return distance
