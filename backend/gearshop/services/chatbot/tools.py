"""
Shopping assistant tools for the Claude tool-use loop

Seven tools, bound to the chatting user:
1. product_search - Semantic search over the catalog
2. product_details - Full product record
3. product_filter - Structured brand/category/price filtering
4. category_list_tool - Category tree with product counts
5. cart_tool - Cart read/add/remove/clear, search-and-add
6. wishlist_tool - Wishlist read/add/remove
7. order_tool - Checkout from the cart, order status

Every tool returns a JSON string. Failures come back as {"error": ...}
so the model can explain them instead of the loop crashing.
"""
import json
import logging
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

from gearshop.core.exceptions import ShopError
from gearshop.domain.order import OrderCreate
from gearshop.domain.product import Product
from gearshop.services.chatbot.workflow_intent import ORDER_ERROR_MARKER, ORDER_SUCCESS_MARKER

logger = logging.getLogger(__name__)


DEFAULT_SHIPPING_FEE = Decimal("30000")
MAX_QUANTITY = 1000
RECENT_ORDERS_LIMIT = 5

LOGIN_REQUIRED_MESSAGE = "🔒 Bạn cần đăng nhập để sử dụng giỏ hàng, danh sách yêu thích và đặt hàng."

CHAT_PAYMENT_METHODS = {
    "cod": "CashOnDelivery",
    "cashondelivery": "CashOnDelivery",
    "vnpay": "VNPay",
}

COMPLETION_MARKER_PATTERN = re.compile(r"\[(?:TASK_COMPLETED|ACTION_SUCCESS)[^\]]*\]")


def task_completed(reason: str) -> str:
    return f"[TASK_COMPLETED: {reason}]"


ACTION_SUCCESS = "[ACTION_SUCCESS]"


def has_completion_marker(text: str) -> bool:
    return bool(COMPLETION_MARKER_PATTERN.search(text or ""))


def strip_completion_markers(text: str) -> str:
    return COMPLETION_MARKER_PATTERN.sub("", text or "").strip()


def format_vnd(amount: Any) -> str:
    """30000 -> '30.000đ'"""
    return f"{int(Decimal(str(amount))):,}".replace(",", ".") + "đ"


# ============================================================================
# QUANTITY EXTRACTION
# ============================================================================

_UNIT_WORDS = r"(?:cái|chiếc|sản phẩm|sp|món|bộ|con|pieces?|items?|units?|pcs?)"

_NUMERIC_PATTERNS = [
    re.compile(r"số lượng\s*(?:là|:)?\s*(\d+)"),
    re.compile(r"quantity\s*(?:is|:)?\s*(\d+)"),
    re.compile(rf"(\d+)\s*{_UNIT_WORDS}(?!\w)"),
    re.compile(r"(?<!\w)x(\d+)(?!\w)"),
    re.compile(r"(?<!\w)(\d+)x(?!\w)"),
    re.compile(r"(?:mua|thêm|lấy|đặt|buy|add|get|order|purchase)\s+(\d+)(?!\d)"),
]

VIETNAMESE_NUMBERS = {
    "một": 1, "hai": 2, "ba": 3, "bốn": 4, "năm": 5,
    "sáu": 6, "bảy": 7, "tám": 8, "chín": 9, "mười": 10,
    "đôi": 2, "cặp": 2,
}

ENGLISH_NUMBERS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "a pair of": 2, "a couple of": 2,
}

_VIETNAMESE_WORD_PATTERN = re.compile(
    r"(?<!\w)(" + "|".join(VIETNAMESE_NUMBERS) + rf")\s+{_UNIT_WORDS}(?!\w)"
)
_ENGLISH_WORD_PATTERN = re.compile(
    r"(?<!\w)(" + "|".join(sorted(ENGLISH_NUMBERS, key=len, reverse=True)) + r")(?!\w)"
)


def extract_quantity(text: Optional[str], default: int = 1) -> int:
    """
    Pull a quantity out of free text: "2 cái", "x3", "số lượng 4",
    "hai chiếc", "three". Falls back to default.
    """
    if not text:
        return default

    lowered = text.lower()

    for pattern in _NUMERIC_PATTERNS:
        match = pattern.search(lowered)
        if match:
            quantity = int(match.group(1))
            if 0 < quantity <= MAX_QUANTITY:
                return quantity

    match = _VIETNAMESE_WORD_PATTERN.search(lowered)
    if match:
        return VIETNAMESE_NUMBERS[match.group(1)]

    match = _ENGLISH_WORD_PATTERN.search(lowered)
    if match:
        return ENGLISH_NUMBERS[match.group(1)]

    return default


# ============================================================================
# PRODUCT SELECTION
# ============================================================================

def select_product(products: List[Product], selection: Optional[str] = None) -> Optional[Product]:
    """
    Pick one product from search results.

    selection: cheapest, best / highest_rated, first, or a 1-based index.
    Anything else picks the first (most relevant) result.
    """
    if not products:
        return None

    criteria = (selection or "first").strip().lower()

    if criteria == "cheapest":
        return min(products, key=lambda p: p.effective_price)

    if criteria in ("best", "highest_rated"):
        return max(products, key=lambda p: (p.average_rating, p.num_reviews))

    if criteria.isdigit():
        index = int(criteria) - 1
        return products[index] if 0 <= index < len(products) else None

    return products[0]


def _product_summary(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "brand": product.brand,
        "category": product.category_name,
        "price": float(product.effective_price),
        "original_price": float(product.price),
        "stock": product.stock,
        "in_stock": product.in_stock,
        "rating": product.average_rating,
        "num_reviews": product.num_reviews,
        "image": product.main_image,
    }


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# TOOL DEFINITIONS (Anthropic format)
# ============================================================================

TOOLS = [
    {
        "name": "product_search",
        "description": "Semantic search for gaming gear (mice, keyboards, headsets, monitors, gaming PCs and laptops). Understands Vietnamese and English queries such as 'chuột gaming không dây' or 'màn hình 144Hz'. Use it whenever the customer describes what they want.",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "What the customer is looking for, in their own words"
                },
                "category": {
                    "type": "string",
                    "description": "Optional: Category name (e.g. 'Chuột', 'Màn hình', 'Gaming Laptops')"
                },
                "min_price": {
                    "type": "number",
                    "description": "Optional: Minimum price in VND"
                },
                "max_price": {
                    "type": "number",
                    "description": "Optional: Maximum price in VND (e.g. 'dưới 2 triệu' -> 2000000)"
                },
                "brand": {
                    "type": "string",
                    "description": "Optional: Brand filter (Logitech, Razer, ASUS...)"
                },
                "limit": {
                    "type": "integer",
                    "description": "Number of results (default: 5)"
                }
            },
            "required": ["query"]
        }
    },
    {
        "name": "product_details",
        "description": "Full details of one product: description, specifications, features, stock, rating. Pass the product id from a previous search, or a product name.",
        "input_schema": {
            "type": "object",
            "properties": {
                "product_id": {
                    "type": "integer",
                    "description": "Product ID"
                },
                "name": {
                    "type": "string",
                    "description": "Product name when the ID is unknown"
                }
            },
            "required": []
        }
    },
    {
        "name": "product_filter",
        "description": "Structured product listing by category, brand and price range, sorted. Use for requests like 'chuột Logitech dưới 1 triệu, rẻ nhất trước'.",
        "input_schema": {
            "type": "object",
            "properties": {
                "category": {"type": "string", "description": "Optional: Category name"},
                "brand": {"type": "string", "description": "Optional: Brand"},
                "min_price": {"type": "number", "description": "Optional: Minimum price in VND"},
                "max_price": {"type": "number", "description": "Optional: Maximum price in VND"},
                "sort": {
                    "type": "string",
                    "enum": ["newest", "price_asc", "price_desc", "rating", "best_selling", "name"],
                    "description": "Sort order (default: rating)"
                },
                "limit": {"type": "integer", "description": "Number of results (default: 10)"}
            },
            "required": []
        }
    },
    {
        "name": "category_list_tool",
        "description": "List all product categories with their product counts.",
        "input_schema": {
            "type": "object",
            "properties": {},
            "required": []
        }
    },
    {
        "name": "cart_tool",
        "description": """Manage the customer's shopping cart. Requires a logged-in customer.

Actions:
- get_cart: show cart contents and total
- add_to_cart: add product_id (quantity defaults to 1)
- search_and_add: search with 'query' and add the selected result in one step
- remove_from_cart: remove product_id
- clear_cart: empty the cart

When the customer writes the quantity in words ('2 cái', 'x3', 'three'), pass their message as 'message'.""",
        "input_schema": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["get_cart", "add_to_cart", "search_and_add", "remove_from_cart", "clear_cart"]
                },
                "product_id": {"type": "integer", "description": "Product ID for add/remove"},
                "query": {"type": "string", "description": "Search query for search_and_add"},
                "quantity": {"type": "integer", "description": "Quantity (default: 1)"},
                "selection": {
                    "type": "string",
                    "description": "For search_and_add: 'cheapest', 'best', 'highest_rated', 'first' or a 1-based index"
                },
                "message": {"type": "string", "description": "Customer's original message, used to read the quantity"}
            },
            "required": ["action"]
        }
    },
    {
        "name": "wishlist_tool",
        "description": "Manage the customer's wishlist (danh sách yêu thích). Requires a logged-in customer.",
        "input_schema": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["get_wishlist", "add_to_wishlist", "remove_from_wishlist"]
                },
                "product_id": {"type": "integer", "description": "Product ID for add/remove"}
            },
            "required": ["action"]
        }
    },
    {
        "name": "order_tool",
        "description": """Checkout and order status. Requires a logged-in customer.

Actions:
- create_order: place an order for everything in the cart, shipped to the saved address. Only call after the customer confirmed the cart and the payment method.
- check_status: status of order_id, or the most recent orders when no id is given""",
        "input_schema": {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["create_order", "check_status"]},
                "payment_method": {
                    "type": "string",
                    "enum": ["COD", "VNPay"],
                    "description": "COD (cash on delivery, default) or VNPay"
                },
                "order_id": {"type": "integer", "description": "Order ID for check_status"},
                "notes": {"type": "string", "description": "Optional delivery notes"}
            },
            "required": ["action"]
        }
    },
]


# ============================================================================
# TOOL EXECUTOR
# ============================================================================

class ChatToolExecutor:
    """
    Runs tools on behalf of one chat user

    Collaborators are injected for tests; by default the real services and
    repositories are built.
    """

    def __init__(
        self,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
        vector_store=None,
        product_repository=None,
        category_repository=None,
        user_repository=None,
        cart_service=None,
        order_service=None,
        vnpay_service=None
    ):
        self.user_id = user_id
        self.session_id = session_id
        self._vector_store = vector_store
        self._product_repo = product_repository
        self._category_repo = category_repository
        self._user_repo = user_repository
        self._cart_service = cart_service
        self._order_service = order_service
        self._vnpay_service = vnpay_service

        self.tool_functions = {
            "product_search": self.product_search,
            "product_details": self.product_details,
            "product_filter": self.product_filter,
            "category_list_tool": self.category_list,
            "cart_tool": self.cart_tool,
            "wishlist_tool": self.wishlist_tool,
            "order_tool": self.order_tool,
        }

    # Lazily built collaborators

    @property
    def vector_store(self):
        if self._vector_store is None:
            from gearshop.services.chatbot.vector_store import get_vector_store
            self._vector_store = get_vector_store()
        return self._vector_store

    @property
    def product_repo(self):
        if self._product_repo is None:
            from gearshop.repositories.product_repository import ProductRepository
            self._product_repo = ProductRepository()
        return self._product_repo

    @property
    def category_repo(self):
        if self._category_repo is None:
            from gearshop.repositories.category_repository import CategoryRepository
            self._category_repo = CategoryRepository()
        return self._category_repo

    @property
    def user_repo(self):
        if self._user_repo is None:
            from gearshop.repositories.user_repository import UserRepository
            self._user_repo = UserRepository()
        return self._user_repo

    @property
    def cart_service(self):
        if self._cart_service is None:
            from gearshop.services.cart_service import CartService
            self._cart_service = CartService(product_repository=self.product_repo)
        return self._cart_service

    @property
    def order_service(self):
        if self._order_service is None:
            from gearshop.services.order_service import OrderService
            self._order_service = OrderService(product_repository=self.product_repo)
        return self._order_service

    @property
    def vnpay_service(self):
        if self._vnpay_service is None:
            from gearshop.services.vnpay_service import VNPayService
            self._vnpay_service = VNPayService()
        return self._vnpay_service

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def execute(self, tool_name: str, tool_input: Dict[str, Any]) -> str:
        """
        Execute a tool by name with given input parameters.

        Returns:
            JSON string result from the tool
        """
        if tool_name not in self.tool_functions:
            return _dumps({"error": f"Tool '{tool_name}' not found"})

        try:
            return self.tool_functions[tool_name](**(tool_input or {}))
        except TypeError as e:
            return _dumps({"error": f"Invalid parameters for {tool_name}: {str(e)}"})
        except ShopError as e:
            return _dumps({"error": e.message})
        except Exception as e:
            logger.error(f"Error executing {tool_name}: {e}", exc_info=True)
            return _dumps({"error": f"Error executing {tool_name}: {str(e)}"})

    def _login_required(self) -> Optional[str]:
        if self.user_id:
            return None
        return _dumps({
            "login_required": True,
            "message": f"{LOGIN_REQUIRED_MESSAGE}\n\n{task_completed('Authentication required')}"
        })

    # ------------------------------------------------------------------
    # Catalog tools
    # ------------------------------------------------------------------

    def _search_products(
        self,
        query: str,
        limit: int = 5,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        brand: Optional[str] = None
    ) -> List[Product]:
        """Semantic search, falling back to a keyword query if the index is unavailable"""
        try:
            results = self.vector_store.search(
                query, k=limit, category=category, min_price=min_price, max_price=max_price, brand=brand
            )
            return self.product_repo.find_by_ids([r.product_id for r in results])
        except Exception as e:
            logger.warning(f"Vector search failed, falling back to keyword search: {e}")
            products, _ = self.product_repo.find_all(
                keyword=query, brand=brand, min_price=min_price, max_price=max_price, sort="rating", limit=limit
            )
            return products

    def product_search(
        self,
        query: str,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        brand: Optional[str] = None,
        limit: int = 5
    ) -> str:
        products = self._search_products(query, limit, category, min_price, max_price, brand)

        if not products:
            return _dumps({
                "query": query,
                "count": 0,
                "products": [],
                "message": "Không tìm thấy sản phẩm phù hợp. Hãy thử mô tả khác hoặc nới rộng khoảng giá."
            })

        return _dumps({
            "query": query,
            "count": len(products),
            "products": [_product_summary(p) for p in products],
        })

    def product_details(self, product_id: Optional[int] = None, name: Optional[str] = None) -> str:
        product = None
        if product_id:
            product = self.product_repo.find_by_id(int(product_id))
        elif name:
            matches, _ = self.product_repo.find_all(keyword=name, limit=1)
            product = matches[0] if matches else None
        else:
            return _dumps({"error": "product_id or name is required"})

        if not product:
            return _dumps({"error": f"Product not found: {product_id or name}"})

        details = _product_summary(product)
        details.update({
            "description": product.description,
            "specifications": product.specifications,
            "features": product.features,
            "sold": product.sold,
            "is_new_arrival": product.is_new_arrival,
        })
        return _dumps({"product": details})

    def _resolve_category_id(self, category: Optional[str]) -> Optional[int]:
        if not category:
            return None

        found = self.category_repo.find_by_name(category)
        if not found:
            from gearshop.services.chatbot.vector_store import VI_EN_CATEGORY_MAP
            for vi_name, en_name in VI_EN_CATEGORY_MAP.items():
                if en_name.lower() == category.lower():
                    found = self.category_repo.find_by_name(vi_name)
                    break

        if not found:
            raise ValueError(f"Unknown category: {category}")
        return found.id

    def product_filter(
        self,
        category: Optional[str] = None,
        brand: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort: str = "rating",
        limit: int = 10
    ) -> str:
        try:
            category_id = self._resolve_category_id(category)
        except ValueError as e:
            return _dumps({"error": str(e)})

        products, total = self.product_repo.find_all(
            category_id=category_id,
            brand=brand,
            min_price=min_price,
            max_price=max_price,
            in_stock=True,
            sort=sort,
            limit=limit
        )

        return _dumps({
            "filters": {
                "category": category,
                "brand": brand,
                "min_price": min_price,
                "max_price": max_price,
                "sort": sort,
            },
            "total": total,
            "products": [_product_summary(p) for p in products],
        })

    def category_list(self) -> str:
        categories = self.category_repo.find_all()
        counts = self.category_repo.product_counts()

        return _dumps({
            "count": len(categories),
            "categories": [
                {
                    "id": c.id,
                    "name": c.name,
                    "slug": c.slug,
                    "parent_id": c.parent_id,
                    "product_count": counts.get(c.id, 0),
                }
                for c in categories
            ],
        })

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    def _cart_payload(self, cart, message: Optional[str] = None) -> Dict[str, Any]:
        payload = cart.to_dict()
        if message:
            payload["message"] = message
        return payload

    def cart_tool(
        self,
        action: str,
        product_id: Optional[int] = None,
        query: Optional[str] = None,
        quantity: Optional[int] = None,
        selection: Optional[str] = None,
        message: Optional[str] = None
    ) -> str:
        denied = self._login_required()
        if denied:
            return denied

        if action == "get_cart":
            cart = self.cart_service.get_cart(self.user_id)
            text = "🛒 Giỏ hàng đang trống." if cart.is_empty else (
                f"🛒 Giỏ hàng có {cart.total_items} sản phẩm, tổng {format_vnd(cart.total_price)}."
            )
            return _dumps(self._cart_payload(cart, text))

        if action == "clear_cart":
            cart = self.cart_service.clear(self.user_id)
            return _dumps(self._cart_payload(cart, f"🗑️ Đã xóa toàn bộ giỏ hàng. {ACTION_SUCCESS}"))

        if action == "remove_from_cart":
            if not product_id:
                return _dumps({"error": "product_id is required for remove_from_cart"})
            cart = self.cart_service.remove_item(self.user_id, int(product_id))
            return _dumps(self._cart_payload(cart, f"Đã xóa sản phẩm khỏi giỏ hàng. {ACTION_SUCCESS}"))

        wanted = quantity if quantity else extract_quantity(message)

        if action == "add_to_cart":
            if not product_id:
                return _dumps({"error": "product_id is required for add_to_cart"})
            return self._add(int(product_id), wanted)

        if action == "search_and_add":
            if not query:
                return _dumps({"error": "query is required for search_and_add"})

            candidates = [p for p in self._search_products(query, limit=5) if p.in_stock]
            product = select_product(candidates, selection)
            if not product:
                return _dumps({
                    "error": f"Không tìm thấy sản phẩm còn hàng cho '{query}'",
                    "selection": selection,
                })
            return self._add(product.id, wanted, product)

        return _dumps({"error": f"Unknown cart action: {action}"})

    def _add(self, product_id: int, quantity: int, product: Optional[Product] = None) -> str:
        cart = self.cart_service.add_item(self.user_id, product_id, quantity)
        line = cart.find_item(product_id)
        name = product.name if product else (line.name if line else f"#{product_id}")

        text = (
            f"✅ Đã thêm {quantity} x {name} vào giỏ hàng. "
            f"Giỏ hàng: {cart.total_items} sản phẩm, tổng {format_vnd(cart.total_price)}. {ACTION_SUCCESS}"
        )
        logger.info(f"Chat cart add: user {self.user_id} product {product_id} x{quantity}")
        return _dumps(self._cart_payload(cart, text))

    # ------------------------------------------------------------------
    # Wishlist
    # ------------------------------------------------------------------

    def wishlist_tool(self, action: str, product_id: Optional[int] = None) -> str:
        denied = self._login_required()
        if denied:
            return denied

        if action == "get_wishlist":
            ids = self.user_repo.get_wishlist_ids(self.user_id)
            products = self.product_repo.find_by_ids(ids) if ids else []
            return _dumps({
                "count": len(products),
                "products": [_product_summary(p) for p in products],
                "message": None if products else "💝 Danh sách yêu thích đang trống.",
            })

        if not product_id:
            return _dumps({"error": f"product_id is required for {action}"})

        product = self.product_repo.find_by_id(int(product_id))
        if not product:
            return _dumps({"error": f"Product {product_id} not found"})

        if action == "add_to_wishlist":
            added = self.user_repo.add_to_wishlist(self.user_id, product.id)
            text = f"💝 Đã thêm {product.name} vào danh sách yêu thích." if added else (
                f"{product.name} đã có trong danh sách yêu thích."
            )
            return _dumps({"added": added, "message": f"{text} {ACTION_SUCCESS}"})

        if action == "remove_from_wishlist":
            removed = self.user_repo.remove_from_wishlist(self.user_id, product.id)
            text = f"Đã xóa {product.name} khỏi danh sách yêu thích." if removed else (
                f"{product.name} không có trong danh sách yêu thích."
            )
            return _dumps({"removed": removed, "message": f"{text} {ACTION_SUCCESS}"})

        return _dumps({"error": f"Unknown wishlist action: {action}"})

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def order_tool(
        self,
        action: str,
        payment_method: Optional[str] = None,
        order_id: Optional[int] = None,
        notes: Optional[str] = None
    ) -> str:
        denied = self._login_required()
        if denied:
            return denied

        if action == "create_order":
            return self._create_order(payment_method or "COD", notes)

        if action == "check_status":
            return self._check_status(order_id)

        return _dumps({"error": f"Unknown order action: {action}"})

    def _create_order(self, payment_method: str, notes: Optional[str]) -> str:
        method = CHAT_PAYMENT_METHODS.get(payment_method.replace(" ", "").lower())
        if not method:
            return _dumps({"error": f"Unsupported payment method: {payment_method}. Use COD or VNPay."})

        cart = self.cart_service.get_cart(self.user_id)
        if cart.is_empty:
            return _dumps({
                "message": "🛒 Giỏ hàng của bạn đang trống. Hãy thêm sản phẩm trước khi đặt hàng.\n\n"
                           + task_completed("Empty cart")
            })

        user = self.user_repo.find_by_id(self.user_id)
        if not user or not user.address or not user.address.is_complete:
            return _dumps({
                "message": "📍 Bạn chưa có địa chỉ giao hàng đầy đủ. Vui lòng cập nhật địa chỉ trong hồ sơ rồi thử lại.\n\n"
                           + task_completed("Missing address")
            })

        try:
            order = self.order_service.create_order(self.user_id, OrderCreate(
                shipping_address=user.address,
                payment_method=method,
                shipping_price=DEFAULT_SHIPPING_FEE,
                notes=notes,
                order_source="chatbot",
                conversation_id=self.session_id
            ))
        except ShopError as e:
            logger.warning(f"Chat order failed for user {self.user_id}: {e.message}")
            return _dumps({
                "success": False,
                "message": f"{ORDER_ERROR_MARKER}\n\nCó lỗi xảy ra: {e.message}. Vui lòng thử lại sau.",
            })

        payment_url = None
        if method == "VNPay":
            payment_url = self.vnpay_service.create_payment_url(order, "127.0.0.1")

        lines = [
            f"{ORDER_SUCCESS_MARKER}**",
            f"Mã đơn hàng của bạn là **#{order.id}**.",
            f"Giao đến: {user.address.format()}",
            f"Tổng số tiền: {format_vnd(order.total_price)} (gồm phí vận chuyển {format_vnd(order.shipping_price)}).",
        ]
        if payment_url:
            lines.append(f"Thanh toán VNPay tại: {payment_url}")
        else:
            lines.append("Thanh toán khi nhận hàng (COD).")
        lines.append("Cảm ơn bạn đã mua sắm!")

        return _dumps({
            "success": True,
            "order": order.to_dict(),
            "payment_url": payment_url,
            "message": "\n".join(lines) + "\n\n" + task_completed("Order created"),
        })

    def _check_status(self, order_id: Optional[int]) -> str:
        if order_id:
            try:
                order = self.order_service.get_order(int(order_id), self.user_id)
            except ShopError:
                return _dumps({"error": f"❌ Không tìm thấy đơn hàng {order_id}."})
            return _dumps({"order": self._order_status(order)})

        orders = self.order_service.list_user_orders(self.user_id)[:RECENT_ORDERS_LIMIT]
        if not orders:
            return _dumps({"orders": [], "message": "📦 Bạn chưa có đơn hàng nào."})
        return _dumps({"orders": [self._order_status(o) for o in orders]})

    @staticmethod
    def _order_status(order) -> Dict[str, Any]:
        return {
            "id": order.id,
            "status": order.status,
            "is_paid": order.is_paid,
            "is_delivered": order.is_delivered,
            "payment_method": order.payment_method,
            "total_price": float(order.total_price),
            "item_count": order.item_count,
            "tracking_number": order.tracking_number,
            "created_at": order.created_at.isoformat() if order.created_at else None,
        }
