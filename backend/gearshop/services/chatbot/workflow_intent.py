"""
Workflow intent detection and post-turn workflow updates

detect_workflow_intent() classifies an incoming message (Vietnamese or
English) into a workflow type. update_workflow() moves the session workflow
forward after each assistant turn, based on the tools that ran and what
they returned.
"""
import logging
import re
import unicodedata
from typing import List, Optional

from gearshop.services.chatbot.workflow_state import WorkflowStateManager

logger = logging.getLogger(__name__)


ORDER_SUCCESS_MARKER = "✅ **ĐẶT HÀNG THÀNH CÔNG!"
ORDER_ERROR_MARKER = "❌ **LỖI TẠO ĐƠN HÀNG**"

_PRODUCT_WORDS = (
    r"(?:tai nghe|headset|mouse|chuột|bàn phím|keyboard|laptop|gaming|màn hình|monitor)"
)

PURCHASE_WITH_PRODUCT_PATTERNS = [
    re.compile(rf"đặt hàng.*{_PRODUCT_WORDS}"),
    re.compile(rf"mua.*{_PRODUCT_WORDS}"),
    re.compile(rf"cần mua.*{_PRODUCT_WORDS}"),
    re.compile(rf"\b(?:buy|purchase|order)\b.*{_PRODUCT_WORDS}"),
]

GENERAL_PURCHASE_PATTERNS = [
    re.compile(r"tôi muốn mua"),
    re.compile(r"mua.*tầm.*triệu"),
    re.compile(r"tìm và mua"),
    re.compile(r"mua.*gaming"),
    re.compile(r"\bi want to buy\b"),
    re.compile(r"\bfind and buy\b"),
]

ORDER_WORDS = re.compile(r"đặt hàng|\border\b")

WISHLIST_PURCHASE_PATTERNS = [
    re.compile(r"mua.*wishlist"),
    re.compile(r"đặt hàng.*yêu thích"),
    re.compile(r"mua.*từ.*danh sách"),
    re.compile(r"\b(?:buy|order)\b.*\bwishlist\b"),
]

CATEGORY_BROWSE_PATTERNS = [
    re.compile(r"xem.*danh mục"),
    re.compile(r"loại.*sản phẩm"),
    re.compile(r"\b(?:show|list|browse)\b.*\bcategor(?:y|ies)\b"),
]

SEARCH_PATTERNS = [
    re.compile(r"tìm"),
    re.compile(r"tư vấn"),
    re.compile(r"gợi ý"),
    re.compile(r"recommend"),
    re.compile(r"có gì"),
    re.compile(r"xem.*sản phẩm"),
    re.compile(r"\b(?:find|search|suggest|looking for)\b"),
]

PRODUCT_KEYWORDS = [
    "tai nghe", "headset", "mouse", "chuột", "bàn phím", "keyboard",
    "màn hình", "monitor", "laptop", "pc", "máy tính",
    "logitech", "razer", "steelseries", "corsair", "asus", "msi", "alienware",
    "acer", "hp", "benq", "aoc", "samsung", "lg",
    "gaming", "game", "chơi game", "sản phẩm",
]

_KEYWORD_PATTERN = re.compile(
    r"(?<!\w)(?:" + "|".join(re.escape(k) for k in sorted(PRODUCT_KEYWORDS, key=len, reverse=True)) + r")(?!\w)"
)


def _normalize(message: str) -> str:
    return unicodedata.normalize("NFC", message or "").lower()


def has_product_keywords(message: str) -> bool:
    return bool(_KEYWORD_PATTERN.search(_normalize(message)))


def _matches(patterns, text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def detect_workflow_intent(message: str) -> Optional[str]:
    """
    Classify a message into purchase, wishlist_purchase, category_browse,
    search or None, in that order of precedence.
    """
    text = _normalize(message)
    with_products = has_product_keywords(text)

    if _matches(PURCHASE_WITH_PRODUCT_PATTERNS, text):
        return "purchase"

    if with_products and (_matches(GENERAL_PURCHASE_PATTERNS, text) or ORDER_WORDS.search(text)):
        return "purchase"

    if _matches(WISHLIST_PURCHASE_PATTERNS, text):
        return "wishlist_purchase"

    if _matches(GENERAL_PURCHASE_PATTERNS, text):
        return "purchase"

    if _matches(CATEGORY_BROWSE_PATTERNS, text):
        return "category_browse"

    if _matches(SEARCH_PATTERNS, text):
        return "search"

    return None


def should_use_complete_workflow(message: str, workflow_intent: Optional[str]) -> bool:
    if workflow_intent:
        return True

    text = _normalize(message)
    return bool(re.search(r"đặt hàng|\border\b|mua|\bbuy\b", text)) and has_product_keywords(text)


def _user_declined(output: str) -> bool:
    text = _normalize(output)
    return "không" in text and ("mua" in text or "đặt hàng" in text)


def update_workflow(
    manager: WorkflowStateManager,
    session_id: str,
    output: str,
    tools_used: List[str],
    tool_outputs: Optional[List[str]] = None,
    step_was_current: Optional[int] = None
) -> None:
    """
    Advance, complete, error or cancel the session workflow after a turn.

    Steps are walked in order:
    - a tool step advances when its tool ran this turn
    - a user-interaction step (no tool) advances when the user has answered
      since it became current (step_was_current), or when a later step's tool
      ran this turn
    An order error marker in any tool output marks the workflow as error;
    an order success marker completes it.
    """
    workflow = manager.get_workflow(session_id)
    if not workflow or workflow.status != "active":
        return

    combined = "\n".join([output or ""] + list(tool_outputs or []))

    if "order_tool" in tools_used and ORDER_ERROR_MARKER in combined:
        manager.error_workflow(session_id, "order creation failed", {"tools_used": list(tools_used)})
        return

    order_success = "order_tool" in tools_used and ORDER_SUCCESS_MARKER in combined

    while workflow.current_step < len(workflow.steps):
        index = workflow.current_step
        step = workflow.steps[index]

        if step.tool is not None:
            if step.tool not in tools_used:
                break
        else:
            later_tool_used = any(s.tool in tools_used for s in workflow.steps[index + 1:] if s.tool)
            answered = step_was_current is not None and index <= step_was_current
            if not (later_tool_used or answered):
                break

        manager.advance_workflow(session_id, {
            "tools_used": list(tools_used),
            "completed_step": step.name,
        })

    if order_success or not manager.should_continue_workflow(session_id):
        manager.complete_workflow(session_id, {
            "final_output": output,
            "tools_used": list(tools_used),
            "total_steps": workflow.current_step,
            "order_success": order_success,
        })
        return

    if _user_declined(output):
        manager.cancel_workflow(session_id, "user_declined")
