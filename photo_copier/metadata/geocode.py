import logging
from typing import Dict, Optional, Tuple

from geopy.exc import GeopyError
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

from ..models import GeoLocation

USER_AGENT = "photo_copier"

# Nominatim address keys, most specific first
_PLACE_KEYS = ('attraction', 'tourism', 'village', 'hamlet', 'suburb', 'neighbourhood',
               'city_district', 'quarter', 'city', 'town', 'municipality')
_CITY_KEYS = ('city', 'town', 'village', 'municipality', 'county')
_STATE_KEYS = ('state', 'province', 'region')


class ReverseGeocoder:
    """
    Turns coordinates into place names via Nominatim.

    Best effort: timeouts, service errors and empty answers all resolve to
    None, and answers are cached per rounded coordinate pair for the run.
    """

    def __init__(self, geocoder=None, min_delay_seconds: float = 1.0,
                 error_wait_seconds: float = 5.0, timeout: int = 10, precision: int = 3):
        self.geocoder = geocoder or Nominatim(user_agent=USER_AGENT, timeout=timeout)
        # Nominatim's usage policy allows one request per second
        self._reverse = RateLimiter(self.geocoder.reverse,
                                    min_delay_seconds=min_delay_seconds,
                                    max_retries=1,
                                    error_wait_seconds=error_wait_seconds,
                                    swallow_exceptions=False)
        self.precision = precision
        self._cache: Dict[Tuple[float, float], Optional[GeoLocation]] = {}

    def resolve(self, latitude: float, longitude: float) -> Optional[GeoLocation]:
        key = (round(latitude, self.precision), round(longitude, self.precision))
        if key in self._cache:
            place = self._cache[key]
        else:
            place = self._lookup(latitude, longitude)
            self._cache[key] = place

        if place is None:
            return None
        # Keep the file's own coordinates, not the cached neighbour's
        return GeoLocation(latitude, longitude, place.place, place.city, place.state, place.country)

    def _lookup(self, latitude: float, longitude: float) -> Optional[GeoLocation]:
        try:
            location = self._reverse((latitude, longitude), language='en', exactly_one=True)
        except (GeopyError, OSError, ValueError) as e:
            logging.warning(f"Reverse geocoding failed for ({latitude:.5f}, {longitude:.5f}): {e}")
            return None

        if not location or not getattr(location, 'raw', None):
            return None

        address = location.raw.get('address', {})
        return GeoLocation(
            latitude,
            longitude,
            place=_first(address, _PLACE_KEYS),
            city=_first(address, _CITY_KEYS),
            state=_first(address, _STATE_KEYS),
            country=address.get('country'),
        )


def _first(address: Dict[str, str], keys) -> Optional[str]:
    for key in keys:
        if address.get(key):
            return address[key]
    return None
