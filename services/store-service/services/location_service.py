"""Store locations and distance-based shipping estimates."""
import logging
import math
from decimal import Decimal
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from models import DeliveryOption
from monitoring import shipping_estimates_counter
from services.geocoding_service import GeocodingClient
from services.pricing import FREE_SHIPPING_THRESHOLD, to_money

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371

LOCAL_DELIVERY_COST = Decimal("9.99")
REGIONAL_DELIVERY_COST = Decimal("19.99")
NATIONAL_DELIVERY_COST = Decimal("29.99")

DELIVERY_MULTIPLIERS = {
    DeliveryOption.STANDARD: Decimal(1),
    DeliveryOption.EXPRESS: Decimal(2),
    DeliveryOption.PRIORITY: Decimal(3),
}

# Used when the customer address cannot be located
DEFAULT_DELIVERY_MULTIPLIERS = {
    DeliveryOption.STANDARD: Decimal(1),
    DeliveryOption.EXPRESS: Decimal("1.5"),
    DeliveryOption.PRIORITY: Decimal(2),
}
DEFAULT_ESTIMATED_DAYS = 3

STORES: List[Dict[str, Any]] = [
    {
        "id": 1,
        "name": "TechStore NYC",
        "address": "123 Tech Street, New York, NY 10001",
        "lat": 40.7128,
        "lng": -74.0060,
        "phone": "+1 (555) 123-4567",
        "hours": "9:00 AM - 9:00 PM"
    },
    {
        "id": 2,
        "name": "TechStore LA",
        "address": "456 Innovation Ave, Los Angeles, CA 90001",
        "lat": 34.0522,
        "lng": -118.2437,
        "phone": "+1 (555) 123-4568",
        "hours": "9:00 AM - 9:00 PM"
    },
    {
        "id": 3,
        "name": "TechStore Chicago",
        "address": "789 Gadget Blvd, Chicago, IL 60601",
        "lat": 41.8781,
        "lng": -87.6298,
        "phone": "+1 (555) 123-4569",
        "hours": "9:00 AM - 9:00 PM"
    },
    {
        "id": 4,
        "name": "TechStore Miami",
        "address": "321 Digital Drive, Miami, FL 33101",
        "lat": 25.7617,
        "lng": -80.1918,
        "phone": "+1 (555) 123-4570",
        "hours": "9:00 AM - 9:00 PM"
    },
    {
        "id": 5,
        "name": "TechStore Seattle",
        "address": "654 Tech Way, Seattle, WA 98101",
        "lat": 47.6062,
        "lng": -122.3321,
        "phone": "+1 (555) 123-4571",
        "hours": "9:00 AM - 9:00 PM"
    },
]

SHIPPING_ZONES = [
    {"name": "Local", "min_km": 0, "max_km": 25, "cost": Decimal("9.99"), "delivery_time": "1-2 days"},
    {"name": "Regional", "min_km": 25, "max_km": 100, "cost": Decimal("19.99"), "delivery_time": "2-3 days"},
    {"name": "National", "min_km": 100, "max_km": None, "cost": Decimal("29.99"), "delivery_time": "3-5 days"},
]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_tier_cost(distance_km: float) -> Decimal:
    if distance_km < 10:
        return LOCAL_DELIVERY_COST
    if distance_km < 50:
        return REGIONAL_DELIVERY_COST
    return NATIONAL_DELIVERY_COST


def calculate_estimated_days(distance_km: float, delivery_option: DeliveryOption) -> int:
    """Transit days at roughly 100km per day, shortened for faster options."""
    base_days = math.ceil(distance_km / 100)
    option = DeliveryOption(delivery_option)
    if option is DeliveryOption.EXPRESS:
        return max(1, base_days // 2)
    if option is DeliveryOption.PRIORITY:
        return 1
    return base_days


class LocationService:
    """Nearest-store lookup and shipping cost estimation."""

    def __init__(self, geocoder: GeocodingClient, stores: Optional[List[Dict[str, Any]]] = None):
        """
        Initialize location service.

        Args:
            geocoder: Address geocoder
            stores: Store catalog, defaults to the fixed store list
        """
        self.geocoder = geocoder
        self.stores = stores if stores is not None else STORES
        self.tracer = trace.get_tracer(__name__)

    def get_stores(self) -> List[Dict[str, Any]]:
        return list(self.stores)

    def get_shipping_zones(self) -> List[Dict[str, Any]]:
        return list(SHIPPING_ZONES)

    async def validate_address(self, address: str) -> Optional[Dict[str, Any]]:
        return await self.geocoder.geocode(address)

    def nearest_store_to(self, lat: float, lng: float) -> Optional[Dict[str, Any]]:
        """Closest store to a coordinate, with its distance in km attached."""
        nearest = None
        min_distance = math.inf
        for store in self.stores:
            distance = haversine_distance(lat, lng, store["lat"], store["lng"])
            if distance < min_distance:
                min_distance = distance
                nearest = {**store, "distance": distance}
        return nearest

    async def find_nearest_store(self, address: str) -> Optional[Dict[str, Any]]:
        """
        Find the store closest to a customer address.

        Returns:
            Store with its distance, or None when the address cannot be located
        """
        coords = await self.geocoder.geocode(address)
        if coords is None:
            return None
        return self.nearest_store_to(coords["lat"], coords["lng"])

    async def calculate_shipping(
        self,
        address: str,
        order_value: Decimal,
        delivery_option: DeliveryOption = DeliveryOption.STANDARD
    ) -> Dict[str, Any]:
        """
        Estimate shipping for an address.

        Distance to the nearest store picks the tier (under 10km local, under
        50km regional, else national), scaled by the delivery option. Orders
        over 500 ship free.

        Args:
            address: Customer address
            order_value: Order value used for the free-shipping rule
            delivery_option: standard, express or priority

        Returns:
            cost, store, estimated_days and free_shipping_eligible
        """
        option = DeliveryOption(delivery_option)
        if option not in DELIVERY_MULTIPLIERS:
            raise ValueError(f"Delivery option {option.value} has no shipping estimate")

        span = trace.get_current_span()
        span.set_attribute("shipping.delivery_option", option.value)

        free_shipping = Decimal(order_value) > FREE_SHIPPING_THRESHOLD

        with self.tracer.start_as_current_span("location.find_nearest_store"):
            store = await self.find_nearest_store(address)

        if store is None:
            shipping_estimates_counter.add(1, {"delivery_option": option.value, "source": "default"})
            logger.warning("Address could not be located, using default shipping", extra={
                "delivery_option": option.value
            })
            base_cost = Decimal(0) if free_shipping else NATIONAL_DELIVERY_COST
            return {
                "cost": to_money(base_cost * DEFAULT_DELIVERY_MULTIPLIERS[option]),
                "store": None,
                "estimated_days": DEFAULT_ESTIMATED_DAYS,
                "free_shipping_eligible": free_shipping
            }

        base_cost = Decimal(0) if free_shipping else distance_tier_cost(store["distance"])
        shipping_estimates_counter.add(1, {"delivery_option": option.value, "source": "distance"})
        return {
            "cost": to_money(base_cost * DELIVERY_MULTIPLIERS[option]),
            "store": store,
            "estimated_days": calculate_estimated_days(store["distance"], option),
            "free_shipping_eligible": free_shipping
        }
