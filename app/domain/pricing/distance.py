"""Driving distance from headquarters via the Google Maps Distance Matrix API"""

import logging
from typing import Optional

import httpx

from ...config import GOOGLE_MAPS_BACKEND_KEY, HQ_COORDINATES

logger = logging.getLogger(__name__)

DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
METERS_TO_MILES = 0.000621371


class DistanceLookupError(Exception):
    """Address could not be resolved to a driving distance"""


def format_destination(
    address: str,
    city: Optional[str] = None,
    state: Optional[str] = None,
    zip_code: Optional[str] = None,
) -> str:
    return ", ".join(part for part in (address, city, state, zip_code) if part)


async def get_driving_distance_miles(
    destination: str,
    api_key: Optional[str] = GOOGLE_MAPS_BACKEND_KEY,
    origin: str = HQ_COORDINATES,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> float:
    """Return the driving distance in miles, or raise DistanceLookupError"""
    params = {
        "origins": origin,
        "destinations": destination,
        "units": "imperial",
        "key": api_key,
    }

    try:
        async with httpx.AsyncClient(timeout=8.0, transport=transport) as client:
            resp = await client.get(DISTANCE_MATRIX_URL, params=params)
    except httpx.HTTPError as e:
        logger.error(f"❌ Distance Matrix request failed: {e}")
        raise DistanceLookupError("Distance provider unavailable") from e

    if resp.status_code >= 400:
        logger.warning(f"Distance Matrix error {resp.status_code}: {resp.text[:200]}")
        raise DistanceLookupError("Distance provider error")

    data = resp.json()
    rows = data.get("rows") or []
    elements = rows[0].get("elements") if rows else None
    if data.get("status") != "OK" or not elements:
        logger.error(f"❌ Distance Matrix returned {data.get('status')}")
        raise DistanceLookupError("Unable to calculate distance. Please verify the address.")

    element = elements[0]
    if element.get("status") != "OK":
        raise DistanceLookupError("Unable to calculate distance. Please verify the address.")

    meters = element["distance"]["value"]
    miles = meters * METERS_TO_MILES
    logger.info(f"✅ Driving distance to '{destination}': {miles:.1f} mi")
    return miles
