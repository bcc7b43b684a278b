"""Location and shipping estimate API router."""
from fastapi import APIRouter, Depends

from dependencies import get_location_service
from schemas import (
    AddressRequest,
    NearestStoreResponse,
    ShippingCostRequest,
    ShippingCostResponse,
    ShippingZonesResponse,
    StoresResponse,
    ValidateAddressResponse,
)
from services.location_service import LocationService

router = APIRouter(prefix="/api/location", tags=["location"])


@router.post("/shipping-cost", response_model=ShippingCostResponse)
async def shipping_cost(
    request: ShippingCostRequest,
    location_service: LocationService = Depends(get_location_service)
):
    """
    Estimate shipping for an address.

    Falls back to a default estimate when the address cannot be located.
    """
    return await location_service.calculate_shipping(
        request.address,
        request.order_value,
        request.delivery_option
    )


@router.post("/nearest-store", response_model=NearestStoreResponse)
async def nearest_store(
    request: AddressRequest,
    location_service: LocationService = Depends(get_location_service)
):
    """Find the closest store to an address."""
    return {"store": await location_service.find_nearest_store(request.address)}


@router.post("/validate-address", response_model=ValidateAddressResponse)
async def validate_address(
    request: AddressRequest,
    location_service: LocationService = Depends(get_location_service)
):
    """Geocode an address. `address` is null when it cannot be resolved."""
    return {"address": await location_service.validate_address(request.address)}


@router.get("/stores", response_model=StoresResponse)
async def list_stores(location_service: LocationService = Depends(get_location_service)):
    """List all store locations."""
    return {"stores": location_service.get_stores()}


@router.get("/shipping-zones", response_model=ShippingZonesResponse)
async def list_shipping_zones(location_service: LocationService = Depends(get_location_service)):
    return {"zones": location_service.get_shipping_zones()}
