"""
Coupon Service

Fixed coupon catalog keyed by price segment:
10% coupons for every segment, 20% coupons only for orders from 20M VND,
plus a free-shipping coupon.
"""
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from gearshop.core.exceptions import InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)


PREMIUM_COUPON_THRESHOLD = Decimal("20000000")


@dataclass(frozen=True)
class Coupon:
    code: str
    type: str  # 'percentage' | 'freeship'
    description: str
    min_order: int
    max_discount: Optional[int]
    segment: str
    discount_percent: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


COUPONS: Dict[str, Coupon] = {
    coupon.code: coupon for coupon in [
        Coupon("SAVE10LOW", "percentage", "10% off orders under 5M VND",
               min_order=1_500_000, max_discount=500_000, segment="LOW", discount_percent=10),
        Coupon("SAVE10MID", "percentage", "10% off orders of 15-25M VND",
               min_order=10_000_000, max_discount=2_000_000, segment="MID_LOW", discount_percent=10),
        Coupon("SAVE10HIGH", "percentage", "10% off orders of 25-40M VND",
               min_order=15_000_000, max_discount=3_000_000, segment="MID_HIGH", discount_percent=10),
        Coupon("SAVE20MID", "percentage", "20% off orders from 20M VND",
               min_order=20_000_000, max_discount=4_000_000, segment="MID_LOW", discount_percent=20),
        Coupon("SAVE20HIGH", "percentage", "20% off orders from 30M VND",
               min_order=30_000_000, max_discount=6_000_000, segment="MID_HIGH", discount_percent=20),
        Coupon("SAVE20PREMIUM", "percentage", "20% off orders from 50M VND",
               min_order=50_000_000, max_discount=10_000_000, segment="PREMIUM", discount_percent=20),
        Coupon("FREESHIP", "freeship", "Free shipping",
               min_order=1_000_000, max_discount=None, segment="ALL"),
    ]
}


def get_coupon(code: str) -> Optional[Coupon]:
    return COUPONS.get((code or "").strip().upper())


def get_all_coupons() -> List[Coupon]:
    return list(COUPONS.values())


def _rule_violation(coupon: Coupon, order_total: Decimal) -> Optional[str]:
    if coupon.min_order and order_total < coupon.min_order:
        return f"Minimum order of {coupon.min_order:,} VND required for this coupon"
    if coupon.discount_percent == 20 and order_total < PREMIUM_COUPON_THRESHOLD:
        return "20% coupons only apply to orders from 20,000,000 VND"
    return None


def validate_coupon(code: str, order_total) -> Coupon:
    """
    Check a coupon code against an order total.

    Raises:
        NotFoundError: unknown code
        InvalidRequestError: order total does not qualify
    """
    coupon = get_coupon(code)
    if coupon is None:
        raise NotFoundError(f"Coupon '{code}' does not exist")

    violation = _rule_violation(coupon, Decimal(str(order_total)))
    if violation:
        raise InvalidRequestError(violation)

    return coupon


def calculate_discount(coupon: Coupon, order_total, shipping_price=0) -> Decimal:
    """Percent of the total capped at max_discount; FREESHIP waives shipping"""
    if coupon.type == "freeship":
        return Decimal(str(shipping_price))

    discount = (Decimal(str(order_total)) * coupon.discount_percent / 100).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    if coupon.max_discount is not None:
        discount = min(discount, Decimal(coupon.max_discount))
    return discount


def recommend_coupons(order_total) -> List[Coupon]:
    """
    Coupons the order qualifies for, biggest discount first,
    then lowest minimum order
    """
    total = Decimal(str(order_total))
    eligible = [c for c in COUPONS.values() if _rule_violation(c, total) is None]
    return sorted(eligible, key=lambda c: (-c.discount_percent, c.min_order))


def apply_coupon(code: str, order_total, shipping_price=0) -> dict:
    """Validate and price a coupon for the /api/coupons/apply endpoint"""
    coupon = validate_coupon(code, order_total)
    discount = calculate_discount(coupon, order_total, shipping_price)
    logger.info(f"Coupon {coupon.code} applied to total {order_total}: discount {discount}")
    return {
        'code': coupon.code,
        'type': coupon.type,
        'discount_percent': coupon.discount_percent,
        'discount_amount': float(discount),
        'description': coupon.description,
    }
