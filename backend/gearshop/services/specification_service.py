"""
Specification Service

Standardizes the free-form product spec sheets, classifies every product
into a performance tier (entry / mid / high) and a use case (competitive /
content / casual), and serves filter, compare and recommend queries on top.
"""
import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from gearshop.core.exceptions import InvalidRequestError, NotFoundError
from gearshop.domain.product import Product
from gearshop.domain.specification import (
    PERFORMANCE_TIERS,
    USE_CASES,
    CompareRequest,
    RecommendRequest,
    SpecificationFilter,
)
from gearshop.repositories.product_repository import ProductRepository

logger = logging.getLogger(__name__)

MIN_COMPARE = 2
MAX_COMPARE = 5

# Spec keys are stored in English or Vietnamese; everything else is lower snake case
KEY_ALIASES = {
    "bộ xử lý": "processor",
    "đồ họa": "graphics",
    "bộ nhớ": "memory",
    "lưu trữ": "storage",
    "màn hình": "display",
    "refresh rate": "refresh_rate",
    "response time": "response_time",
}

# Category name (Vietnamese or English) -> spec family
CATEGORY_KEYS = {
    "bàn phím cơ": "keyboards",
    "mechanical keyboard": "keyboards",
    "chuột": "mice",
    "mouse": "mice",
    "tai nghe": "headsets",
    "headset": "headsets",
    "màn hình": "monitors",
    "monitor": "monitors",
    "gaming laptops": "laptops",
    "gaming laptop": "laptops",
    "gaming pcs": "desktops",
    "gaming pc": "desktops",
}

TIER_ORDER = {"high": 3, "mid": 2, "entry": 1, "unknown": 0}

PREMIUM_SWITCHES = ("Cherry MX", "Razer", "Corsair OPX")

_NUMBER = re.compile(r"(\d+(?:[.,]\d+)?)")


def _first_number(value: Any, default: float = 0) -> float:
    match = _NUMBER.search(str(value or ""))
    if not match:
        return default
    return float(match.group(1).replace(",", ""))


def standard_key(key: str) -> str:
    lowered = key.strip().lower()
    return KEY_ALIASES.get(lowered, lowered.replace(" ", "_"))


def category_key(category_name: Optional[str]) -> str:
    return CATEGORY_KEYS.get((category_name or "").strip().lower(), "unknown")


# ============================================================================
# Value standardizers
# ============================================================================

def _connectivity(value: str) -> str:
    lowered = value.lower()
    if "wireless" in lowered and "bluetooth" in lowered:
        return "Hybrid Wireless"
    if "wireless" in lowered or "bluetooth" in lowered or "không dây" in lowered:
        return "Wireless"
    if "wired" in lowered or "usb" in lowered or "có dây" in lowered:
        return "Wired"
    return value


def _type(value: str) -> str:
    lowered = value.lower()
    if "mechanical" in lowered or "cơ học" in lowered:
        return "Mechanical"
    if "optical" in lowered:
        return "Optical-Mechanical"
    if "membrane" in lowered:
        return "Membrane"
    if "over-ear" in lowered:
        return "Over-ear"
    return value


def _backlight(value: str) -> str:
    lowered = value.lower()
    if "rgb" in lowered or "chroma" in lowered:
        return "RGB"
    if "white" in lowered or "led" in lowered:
        return "White LED"
    return "None"


def _layout(value: str) -> str:
    lowered = value.lower()
    if "full" in lowered or "100%" in lowered:
        return "Full-size"
    if "tenkeyless" in lowered or "tkl" in lowered or "80%" in lowered:
        return "Tenkeyless"
    if "65%" in lowered:
        return "65%"
    if "60%" in lowered:
        return "60%"
    return value


def _weight(value: str) -> str:
    match = re.search(r"(\d+(?:\.\d+)?)\s*g", value)
    return f"{match.group(1)}g" if match else value


def _battery(value: str) -> str:
    if "up to" in value.lower():
        return value
    match = re.search(r"(\d+)\s*(?:hour|giờ)", value, re.IGNORECASE)
    return f"Up to {match.group(1)} hours" if match else value


def _dpi(value: str) -> str:
    if "up to" in value.lower():
        return value
    match = re.search(r"(\d+(?:,\d+)?)", value)
    return f"Up to {match.group(1).replace(',', '')}" if match else value


def _memory(value: str) -> str:
    match = re.search(r"(\d+)\s*GB\s*(DDR\d+)?", value, re.IGNORECASE)
    if not match:
        return value
    return f"{match.group(1)}GB {(match.group(2) or 'DDR5').upper()}"


def _collapse_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


VALUE_STANDARDIZERS: Dict[str, Callable[[str], str]] = {
    "connectivity": _connectivity,
    "type": _type,
    "switches": _collapse_spaces,
    "backlight": _backlight,
    "layout": _layout,
    "weight": _weight,
    "battery": _battery,
    "dpi": _dpi,
    "processor": _collapse_spaces,
    "graphics": _collapse_spaces,
    "memory": _memory,
    "storage": _collapse_spaces,
}


def standardize_specs(specifications: Dict[str, Any]) -> Dict[str, str]:
    standardized = {}
    for key, value in (specifications or {}).items():
        std_key = standard_key(key)
        standardizer = VALUE_STANDARDIZERS.get(std_key, str.strip)
        standardized[std_key] = standardizer(str(value))
    return standardized


# ============================================================================
# Classification
# ============================================================================

def _mouse_tier(specs: Dict[str, str]) -> str:
    dpi = _first_number(specs.get("dpi"))
    weight = _first_number(specs.get("weight"), default=100)
    wireless = "Wireless" in specs.get("connectivity", "")

    if dpi >= 25000 and weight <= 80 and wireless:
        return "high"
    if dpi >= 15000 and weight <= 100:
        return "mid"
    return "entry"


def _keyboard_tier(specs: Dict[str, str]) -> str:
    wireless = "Wireless" in specs.get("connectivity", "")
    premium = any(name in specs.get("switches", "") for name in PREMIUM_SWITCHES)
    rgb = specs.get("backlight") == "RGB"

    if wireless and premium and rgb:
        return "high"
    if specs.get("type") == "Mechanical" and (premium or rgb):
        return "mid"
    return "entry"


def _laptop_tier(specs: Dict[str, str]) -> str:
    graphics = specs.get("graphics", "")
    memory = _first_number(specs.get("memory"), default=8)

    if "RTX 4090" in graphics or "RTX 4080" in graphics or memory >= 32:
        return "high"
    if "RTX 4070" in graphics or "RTX 4060" in graphics or memory >= 16:
        return "mid"
    return "entry"


def _monitor_tier(specs: Dict[str, str]) -> str:
    resolution = specs.get("resolution", "")
    refresh_rate = _first_number(specs.get("refresh_rate"), default=60)

    if "4K" in resolution or "OLED" in specs.get("panel", "") or refresh_rate >= 240:
        return "high"
    if "1440" in resolution or refresh_rate >= 144:
        return "mid"
    return "entry"


TIER_CLASSIFIERS = {
    "mice": _mouse_tier,
    "keyboards": _keyboard_tier,
    "laptops": _laptop_tier,
    "monitors": _monitor_tier,
}


def classify_performance_tier(specs: Dict[str, str], cat_key: str) -> str:
    classifier = TIER_CLASSIFIERS.get(cat_key)
    return classifier(specs) if classifier else "unknown"


def _use_case_scores(name: str, description: str, specs: Dict[str, str]) -> Dict[str, float]:
    competitive = 0
    if re.search(r"\bpro\b", name) or "competitive" in name or "esport" in name:
        competitive += 30
    if "cạnh tranh" in description or "chuyên nghiệp" in description:
        competitive += 20
    if specs.get("layout") in ("Tenkeyless", "60%"):
        competitive += 25
    if "refresh_rate" in specs and _first_number(specs["refresh_rate"]) >= 240:
        competitive += 30
    if "response_time" in specs and _first_number(specs["response_time"], default=99) <= 1:
        competitive += 25

    content = 0
    if "creator" in name or "professional" in name:
        content += 30
    if "sáng tạo" in description or "chuyên nghiệp" in description:
        content += 20
    resolution = specs.get("resolution", "")
    if "4K" in resolution or "1440" in resolution:
        content += 25
    if specs.get("layout") == "Full-size":
        content += 20
    panel = specs.get("panel", "")
    if "IPS" in panel or "OLED" in panel:
        content += 15

    casual = 0
    if "gaming" in name or "rgb" in name:
        casual += 20
    if "chơi game" in description or "rgb" in description:
        casual += 15
    if specs.get("backlight") == "RGB":
        casual += 25
    if "Wireless" in specs.get("connectivity", ""):
        casual += 20

    return {"competitive": competitive, "content": content, "casual": casual}


def classify_use_case(name: str, description: str, specs: Dict[str, str]) -> str:
    """Highest scoring use case; casual when nothing scores"""
    scores = _use_case_scores((name or "").lower(), (description or "").lower(), specs)
    best, best_score = "casual", 0
    for use_case in USE_CASES:
        if scores[use_case] > best_score:
            best, best_score = use_case, scores[use_case]
    return best


def analyze_product(product: Product) -> Dict[str, Any]:
    """Product payload plus standardized specs, tier, use case and spec family"""
    specs = standardize_specs(product.specifications)
    cat_key = category_key(product.category_name)

    data = product.to_dict()
    data["original_specifications"] = product.specifications
    data["specifications"] = specs
    data["category_key"] = cat_key
    data["performance_tier"] = classify_performance_tier(specs, cat_key)
    data["use_case"] = classify_use_case(product.name, product.description, specs)
    return data


def _spec_matches(actual: Optional[str], wanted) -> bool:
    if not actual:
        return False
    actual = actual.lower()
    if isinstance(wanted, list):
        return any(str(w).lower() in actual for w in wanted)
    return str(wanted).lower() in actual


class SpecificationService:
    """Spec-driven analysis over the whole catalog"""

    def __init__(self, product_repository: Optional[ProductRepository] = None):
        self.product_repo = product_repository or ProductRepository()

    def _products(
        self,
        category_id: Optional[int] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None
    ) -> List[Product]:
        products = self.product_repo.find_all_for_index()
        if category_id is not None:
            products = [p for p in products if p.category_id == category_id]
        if min_price is not None:
            products = [p for p in products if p.effective_price >= min_price]
        if max_price is not None:
            products = [p for p in products if p.effective_price <= max_price]
        return products

    @staticmethod
    def _report(analyzed: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        categories: Dict[str, int] = {}
        tiers = {tier: 0 for tier in PERFORMANCE_TIERS + ("unknown",)}
        use_cases = {use_case: 0 for use_case in USE_CASES}
        values: Dict[str, set] = {}

        for product in analyzed:
            categories[product["category_key"]] = categories.get(product["category_key"], 0) + 1
            tiers[product["performance_tier"]] += 1
            use_cases[product["use_case"]] += 1
            for key, value in product["specifications"].items():
                values.setdefault(key, set()).add(value)

        return {
            "total_products": len(analyzed),
            "categories": categories,
            "performance_tiers": tiers,
            "use_cases": use_cases,
            "specifications": {key: sorted(found) for key, found in values.items()},
        }

    def analyze(self) -> Dict[str, Any]:
        """
        Classify the whole catalog

        Raises:
            NotFoundError: the catalog is empty
        """
        products = self._products()
        if not products:
            raise NotFoundError("No products found")

        analyzed = [analyze_product(p) for p in products]
        report = self._report(analyzed)
        report["analyzed_products"] = analyzed
        return report

    def category_specifications(self, category_id: int) -> Dict[str, Any]:
        products = self._products(category_id=category_id)
        if not products:
            raise NotFoundError("No products found for this category")

        analyzed = [analyze_product(p) for p in products]
        report = self._report(analyzed)
        return {
            "category_id": category_id,
            "category_key": analyzed[0]["category_key"],
            "total_products": report["total_products"],
            "specifications": report["specifications"],
            "performance_tiers": report["performance_tiers"],
            "use_cases": report["use_cases"],
        }

    def filter(self, criteria: SpecificationFilter) -> Dict[str, Any]:
        analyzed = [
            analyze_product(p)
            for p in self._products(criteria.category_id, criteria.min_price, criteria.max_price)
        ]

        if criteria.performance_tier:
            analyzed = [p for p in analyzed if p["performance_tier"] == criteria.performance_tier]
        if criteria.use_case:
            analyzed = [p for p in analyzed if p["use_case"] == criteria.use_case]
        if criteria.specifications:
            wanted = {standard_key(k): v for k, v in criteria.specifications.items()}
            analyzed = [
                p for p in analyzed
                if all(_spec_matches(p["specifications"].get(k), v) for k, v in wanted.items())
            ]

        sort_keys = {
            "name": lambda p: (p["name"] or "").lower(),
            "price": lambda p: p["effective_price"],
            "rating": lambda p: p["average_rating"],
        }
        analyzed.sort(key=sort_keys[criteria.sort_by], reverse=criteria.sort_order == "desc")

        total = len(analyzed)
        pages = math.ceil(total / criteria.limit)
        start = (criteria.page - 1) * criteria.limit

        return {
            "products": analyzed[start:start + criteria.limit],
            "total_products": total,
            "current_page": criteria.page,
            "total_pages": pages,
            "has_next_page": criteria.page < pages,
            "has_prev_page": criteria.page > 1,
            "filters": criteria.model_dump(exclude={"page", "limit", "sort_by", "sort_order"}),
        }

    def compare(self, request: CompareRequest) -> Dict[str, Any]:
        """
        Side-by-side spec matrix for 2-5 products

        Raises:
            InvalidRequestError: fewer than 2 or more than 5 products
            NotFoundError: any product is missing
        """
        product_ids = list(dict.fromkeys(request.product_ids))
        if len(product_ids) < MIN_COMPARE:
            raise InvalidRequestError(f"Please provide at least {MIN_COMPARE} product IDs for comparison")
        if len(product_ids) > MAX_COMPARE:
            raise InvalidRequestError(f"Maximum {MAX_COMPARE} products can be compared at once")

        products = self.product_repo.find_by_ids(product_ids)
        if len(products) != len(product_ids):
            found = {p.id for p in products}
            missing = [pid for pid in product_ids if pid not in found]
            raise NotFoundError(f"Products not found: {missing}")

        analyzed = [analyze_product(p) for p in products]

        spec_keys: List[str] = []
        for product in analyzed:
            for key in product["specifications"]:
                if key not in spec_keys:
                    spec_keys.append(key)

        return {
            "products": [
                {
                    "id": p["id"],
                    "name": p["name"],
                    "price": p["price"],
                    "discount_price": p["discount_price"],
                    "category_name": p["category_name"],
                    "performance_tier": p["performance_tier"],
                    "use_case": p["use_case"],
                    "specifications": p["specifications"],
                }
                for p in analyzed
            ],
            "specification_matrix": {
                key: [{"product_id": p["id"], "value": p["specifications"].get(key, "N/A")} for p in analyzed]
                for key in spec_keys
            },
        }

    def recommend(self, request: RecommendRequest) -> Dict[str, Any]:
        """
        Products for a use case within budget

        Casual products always qualify. With priority_specs, products are
        ranked by the summed weight of matching specs, then by price;
        otherwise by performance tier, then by price.
        """
        analyzed = [analyze_product(p) for p in self._products(request.category_id, max_price=request.budget)]
        candidates = [p for p in analyzed if p["use_case"] in (request.use_case, "casual")]

        if request.priority_specs:
            for product in candidates:
                product["recommendation_score"] = sum(
                    spec.weight
                    for spec in request.priority_specs
                    if _spec_matches(product["specifications"].get(standard_key(spec.key)), spec.value)
                )
            candidates.sort(key=lambda p: (-p["recommendation_score"], p["effective_price"]))
        else:
            candidates.sort(key=lambda p: (-TIER_ORDER[p["performance_tier"]], p["effective_price"]))

        recommendations = candidates[:request.limit]
        logger.info(
            f"Spec recommendations for use_case={request.use_case} budget={request.budget}: "
            f"{len(recommendations)} of {len(analyzed)}"
        )
        return {
            "recommendations": recommendations,
            "criteria": request.model_dump(),
        }
