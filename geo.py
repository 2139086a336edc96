import logging
import math
from typing import Any, Iterable, List, NamedTuple, Optional

import httpx

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
GEOCODING_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class Location(NamedTuple):
    latitude: Optional[float]
    longitude: Optional[float]

    @property
    def is_set(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ShopMatch(NamedTuple):
    shop: Any
    distance: float  # km


class OrderMatch(NamedTuple):
    order: Any
    distance: str  # km, two decimals


class GeocodingError(Exception):
    pass


def calculate_distance(lat1, lon1, lat2, lon2) -> float:
    """Great-circle distance in kilometres (Haversine formula)."""
    lat1, lon1, lat2, lon2 = (float(v) for v in (lat1, lon1, lat2, lon2))
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def location_of(obj) -> Location:
    return Location(getattr(obj, "latitude", None), getattr(obj, "longitude", None))


def filter_nearby_shops(buyer_location: Location, shops: Iterable[Any], max_radius: Optional[float] = None) -> List[ShopMatch]:
    """
    Keeps the shops whose delivery radius reaches the buyer.
    Shops without coordinates are skipped. `max_radius` optionally caps the
    search distance on the buyer side. Results are sorted nearest first.
    """
    if not buyer_location.is_set:
        return []

    matches = []
    for shop in shops:
        shop_location = location_of(shop)
        if not shop_location.is_set:
            continue
        distance = calculate_distance(
            buyer_location.latitude, buyer_location.longitude,
            shop_location.latitude, shop_location.longitude,
        )
        if distance > shop.delivery_radius:
            continue
        if max_radius is not None and distance > max_radius:
            continue
        matches.append(ShopMatch(shop, distance))
    return sorted(matches, key=lambda m: m.distance)


def find_nearby_orders(shop_location: Location, delivery_radius: float, orders: Iterable[Any]) -> List[OrderMatch]:
    """
    Keeps the orders whose delivery address lies inside the shop's radius,
    each annotated with its distance. Linear scan, no spatial index.
    """
    if not shop_location.is_set:
        return []

    matches = []
    for order in orders:
        address = getattr(order, "address", None)
        if address is None or not location_of(address).is_set:
            continue
        distance = calculate_distance(
            shop_location.latitude, shop_location.longitude,
            address.latitude, address.longitude,
        )
        if distance <= delivery_radius:
            matches.append(OrderMatch(order, f"{distance:.2f}"))
    return matches


class Geocoder:
    """
    Forward geocoding through the Google Maps Geocoding API.
    Without an API key every lookup fails fast with GeocodingError.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def geocode(self, address: str) -> Location:
        if not self.api_key:
            raise GeocodingError("Geocoding API key not configured")

        params = {"address": address, "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(GEOCODING_URL, params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise GeocodingError(f"Geocoding request failed: {e}") from e

        if payload.get("status") != "OK" or not payload.get("results"):
            raise GeocodingError(f"Geocoding failed: {payload.get('status')}")

        location = payload["results"][0]["geometry"]["location"]
        return Location(location["lat"], location["lng"])

    async def try_geocode(self, address: str) -> Optional[Location]:
        """Best-effort lookup: logs and returns None instead of raising."""
        try:
            return await self.geocode(address)
        except GeocodingError as e:
            logger.warning(f"Could not geocode '{address}': {e}. Continuing without coordinates.")
            return None
