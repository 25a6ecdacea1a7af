"""Reverse geocoding of coordinates to place names for alert messages."""
from __future__ import annotations

import logging

import httpx

log = logging.getLogger(__name__)

# Nominatim (OpenStreetMap) API - free, no API key required
NOMINATIM_URL = "https://nominatim.openstreetmap.org/reverse"


async def reverse_geocode(lat: float, lon: float, language: str = "ar") -> str | None:
    """Reverse geocode coordinates to a readable address.

    Prefers a named place (landmark, business) or street, followed by the
    district and city. Returns None if the lookup fails for any reason;
    callers fall back to raw coordinates.

    Args:
        lat: Latitude
        lon: Longitude
        language: Preferred language for names (Accept-Language)

    Returns:
        Human-readable location string or None
    """
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                NOMINATIM_URL,
                params={
                    "lat": lat,
                    "lon": lon,
                    "format": "json",
                    "zoom": 16,  # Street level
                    "addressdetails": 1,
                },
                headers={
                    "User-Agent": "SafeReturn/1.0 (trip safety alerts)",
                    "Accept-Language": language,
                },
                timeout=10.0
            )

            if response.status_code != 200:
                log.warning(f"Nominatim returned {response.status_code}")
                return None

            data = response.json()

            if not data:
                return None

            address = data.get("address", {})
            components = []

            # Named place first (mosque, mall, park, ...)
            poi_keys = ["amenity", "tourism", "leisure", "shop", "building"]
            if data.get("name") and any(address.get(key) for key in poi_keys):
                components.append(data["name"])
            else:
                road = address.get("road") or address.get("pedestrian")
                if road:
                    components.append(road)

            district = address.get("neighbourhood") or address.get("suburb") or address.get("quarter")
            if district and district not in components:
                components.append(district)

            city = (address.get("city") or address.get("town") or
                    address.get("village") or address.get("state"))
            if city and city not in components:
                components.append(city)

            if not components:
                display_name = data.get("display_name", "")
                if display_name:
                    return ", ".join(display_name.split(", ")[:3])
                return None

            return ", ".join(components)

    except httpx.TimeoutException:
        log.warning(f"Geocoding timeout for ({lat}, {lon})")
        return None
    except Exception as e:
        log.warning(f"Geocoding error for ({lat}, {lon}): {e}")
        return None
