"""
GHN (Giao Hàng Nhanh) shipping service

Address master data (provinces, districts, wards) and shipping fee quotes
from the GHN public API. Fee quotes never fail the checkout: when GHN is
unreachable or rejects the request, a flat fallback fee is returned.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from gearshop.core.config import settings
from gearshop.core.exceptions import ShippingProviderError, ShopError

logger = logging.getLogger(__name__)

GHN_SUCCESS_CODE = 200


def _find_by_name(items: List[Dict[str, Any]], name_field: str, wanted: str) -> Optional[Dict[str, Any]]:
    wanted = wanted.lower()
    for item in items:
        if wanted in str(item.get(name_field, "")).lower():
            return item
    return None


class GHNService:
    """
    Client for the GHN public API

    The warehouse (origin of every shipment) comes from settings when
    GHN_FROM_DISTRICT_ID / GHN_FROM_WARD_CODE are set, otherwise it is
    looked up once by province, district and ward name and cached.
    """

    _resolved_warehouse: Optional[Dict[str, Any]] = None

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, shop_id: Optional[str] = None):
        self.base_url = (base_url or settings.GHN_API_URL).rstrip("/")
        self.token = token if token is not None else settings.GHN_TOKEN
        self.shop_id = shop_id if shop_id is not None else settings.GHN_SHOP_ID

    def _headers(self, with_shop: bool = False) -> Dict[str, str]:
        headers = {"Token": self.token, "Content-Type": "application/json"}
        if with_shop:
            headers["ShopId"] = str(self.shop_id)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        with_shop: bool = False
    ) -> Any:
        """Call GHN and return the `data` member of its {code, message, data} envelope"""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=payload,
                    params=params,
                    headers=self._headers(with_shop),
                    timeout=15.0
                )
                response.raise_for_status()
                body = response.json()

            except httpx.HTTPStatusError as e:
                logger.error(f"GHN API error on {path}: {e.response.status_code} - {e.response.text}")
                raise ShippingProviderError(f"GHN API returned HTTP {e.response.status_code}")
            except httpx.HTTPError as e:
                logger.error(f"GHN API unreachable on {path}: {e}")
                raise ShippingProviderError(f"GHN API unreachable: {e}")

        if body.get("code") != GHN_SUCCESS_CODE:
            raise ShippingProviderError(f"GHN API error: {body.get('message', 'unknown error')}")
        return body.get("data")

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------

    async def get_provinces(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/master-data/province") or []

    async def get_districts(self, province_id: int) -> List[Dict[str, Any]]:
        return await self._request("POST", "/master-data/district", payload={"province_id": int(province_id)}) or []

    async def get_wards(self, district_id: int) -> List[Dict[str, Any]]:
        return await self._request(
            "POST",
            "/master-data/ward",
            payload={"district_id": int(district_id)},
            params={"district_id": int(district_id)}
        ) or []

    # ------------------------------------------------------------------
    # Warehouse
    # ------------------------------------------------------------------

    async def get_warehouse(self) -> Dict[str, Any]:
        """
        Origin district and ward of every shipment

        Raises:
            ShippingProviderError: the configured names are not in GHN master data
        """
        if settings.GHN_FROM_DISTRICT_ID and settings.GHN_FROM_WARD_CODE:
            return {"district_id": settings.GHN_FROM_DISTRICT_ID, "ward_code": settings.GHN_FROM_WARD_CODE}

        if GHNService._resolved_warehouse is not None:
            return GHNService._resolved_warehouse

        province = _find_by_name(await self.get_provinces(), "ProvinceName", settings.GHN_WAREHOUSE_PROVINCE)
        if not province:
            raise ShippingProviderError(f"Province '{settings.GHN_WAREHOUSE_PROVINCE}' not found in GHN")

        district = _find_by_name(
            await self.get_districts(province["ProvinceID"]), "DistrictName", settings.GHN_WAREHOUSE_DISTRICT
        )
        if not district:
            raise ShippingProviderError(f"District '{settings.GHN_WAREHOUSE_DISTRICT}' not found in GHN")

        ward = _find_by_name(await self.get_wards(district["DistrictID"]), "WardName", settings.GHN_WAREHOUSE_WARD)
        if not ward:
            raise ShippingProviderError(f"Ward '{settings.GHN_WAREHOUSE_WARD}' not found in GHN")

        GHNService._resolved_warehouse = {
            "province_id": province["ProvinceID"],
            "district_id": district["DistrictID"],
            "ward_code": ward["WardCode"],
        }
        logger.info(f"GHN warehouse resolved: {GHNService._resolved_warehouse}")
        return GHNService._resolved_warehouse

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    async def calculate_fee(
        self,
        to_district_id: int,
        to_ward_code: str,
        weight: int = 200,
        length: int = 20,
        width: int = 20,
        height: int = 5,
        cod_value: int = 0,
        insurance_value: int = 0
    ) -> Dict[str, Any]:
        """
        Quote a shipment from the warehouse to the given ward

        Returns:
            {"success": True, "fee": total, "details": {...}} or, when GHN
            fails, {"success": False, "fee": GHN_FALLBACK_FEE, "message": ..., "error": ...}
        """
        try:
            warehouse = await self.get_warehouse()
            payload = {
                "from_district_id": warehouse["district_id"],
                "from_ward_code": warehouse["ward_code"],
                "service_type_id": settings.GHN_SERVICE_TYPE_ID,
                "to_district_id": int(to_district_id),
                "to_ward_code": str(to_ward_code),
                "height": int(height),
                "length": int(length),
                "weight": int(weight),
                "width": int(width),
                "insurance_value": int(insurance_value),
                "cod_value": int(cod_value),
                "coupon": None,
            }
            details = await self._request("POST", "/v2/shipping-order/fee", payload=payload, with_shop=True)

        except ShopError as e:
            logger.warning(f"GHN fee quote failed, using fallback fee: {e.message}")
            return {
                "success": False,
                "fee": settings.GHN_FALLBACK_FEE,
                "message": "Using fallback shipping fee",
                "error": e.message,
            }

        return {"success": True, "fee": details.get("total", 0), "details": details}
