"""LocationDirectory backed by the configured region list."""

from sgbridge.config import Settings
from sgbridge.dao.base import LocationDirectory
from sgbridge.errors import UnsupportedRegion
from sgbridge.schemas.security_group import Location


class ConfiguredLocationDirectory(LocationDirectory):
    def __init__(self, locations: dict[str, Location]) -> None:
        self._locations = dict(locations)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConfiguredLocationDirectory":
        codes = settings.get_iso3166_codes()
        return cls(
            {
                region: Location(
                    id=region,
                    description=region,
                    iso3166_codes=frozenset([codes[region]]) if region in codes else frozenset(),
                )
                for region in settings.get_regions()
            }
        )

    def get(self, region_id: str) -> Location:
        try:
            return self._locations[region_id]
        except KeyError:
            raise UnsupportedRegion(region_id) from None

    def region_ids(self) -> list[str]:
        return list(self._locations)
