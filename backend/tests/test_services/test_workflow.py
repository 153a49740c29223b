"""
Unit tests for chatbot workflow tracking and intent detection

A controllable clock replaces time.time so expiry can be tested.

Author: GearShop
Date: 2025-06-02
"""
import pytest

from gearshop.services.chatbot.workflow_intent import (
    ORDER_ERROR_MARKER,
    ORDER_SUCCESS_MARKER,
    detect_workflow_intent,
    has_product_keywords,
    should_use_complete_workflow,
    update_workflow,
)
from gearshop.services.chatbot.workflow_state import WorkflowStateManager


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return WorkflowStateManager(clock=clock)


class TestIntentDetection:

    @pytest.mark.parametrize("message,expected", [
        ("Tôi muốn mua chuột gaming", "purchase"),
        ("Đặt hàng bàn phím cơ Razer", "purchase"),
        ("I want to buy a gaming mouse", "purchase"),
        ("Mua tầm 2 triệu", "purchase"),
        ("Mua sản phẩm từ wishlist của tôi", "wishlist_purchase"),
        ("Cho tôi xem danh mục", "category_browse"),
        ("Show me the categories", "category_browse"),
        ("Tìm tai nghe chống ồn", "search"),
        ("Gợi ý màn hình 144Hz", "search"),
        ("Xin chào", None),
    ])
    def test_detect_intent(self, message, expected):
        assert detect_workflow_intent(message) == expected

    def test_product_keywords_need_word_boundaries(self):
        assert has_product_keywords("chuột Logitech")
        assert not has_product_keywords("shipping fee")

    def test_complete_workflow_without_intent(self):
        assert should_use_complete_workflow("xin chào", None) is False
        assert should_use_complete_workflow("abc", "search") is True
        assert detect_workflow_intent("buy this razer") is None
        assert should_use_complete_workflow("buy this razer", None) is True


class TestWorkflowStateManager:

    def test_init_records_message_and_user(self, manager, clock):
        workflow = manager.init_workflow("s1", "purchase", {"user_id": 7, "original_message": "mua chuột"})

        assert workflow.id == f"s1_{int(clock.now * 1000)}"
        assert workflow.current_step == 0
        assert workflow.data["user_id"] == 7
        assert workflow.data["original_message"] == "mua chuột"
        assert len(workflow.steps) == 5

    def test_unknown_type_uses_search_steps(self, manager):
        workflow = manager.init_workflow("s1", "mystery")
        assert [s.name for s in workflow.steps] == ["search", "display_results", "suggest_action"]

    def test_advance_records_history_and_durations(self, manager, clock):
        manager.init_workflow("s1", "purchase")
        clock.advance(3)
        manager.advance_workflow("s1", {"query": "chuột"})
        clock.advance(2)
        workflow = manager.advance_workflow("s1")

        assert workflow.current_step == 2
        assert [h["step_name"] for h in workflow.history] == ["search", "select"]
        assert [h["duration"] for h in workflow.history] == [3, 2]
        assert workflow.data["query"] == "chuột"

    def test_complete_computes_efficiency(self, manager):
        manager.init_workflow("s1", "purchase")
        for _ in range(5):
            manager.advance_workflow("s1")

        workflow = manager.complete_workflow("s1", {"ok": True})

        assert workflow.status == "completed"
        assert workflow.data["efficiency"] == pytest.approx(60.0)

    def test_step_info(self, manager):
        manager.init_workflow("s1", "purchase")
        current = manager.get_current_step_info("s1")
        upcoming = manager.get_next_step_info("s1")

        assert current["name"] == "search"
        assert current["tool"] == "product_search"
        assert current["step_number"] == 1
        assert current["progress"] == pytest.approx(20.0)
        assert upcoming["name"] == "select"

    def test_can_advance(self, manager):
        manager.init_workflow("s1", "purchase")
        assert manager.can_advance_workflow("s1", "product_search") is True
        assert manager.can_advance_workflow("s1", "cart_tool") is False
        manager.advance_workflow("s1")
        # select is a user-interaction step
        assert manager.can_advance_workflow("s1") is True

    def test_idle_workflow_stops_continuing(self, manager, clock):
        manager.init_workflow("s1", "search")
        assert manager.should_continue_workflow("s1") is True

        clock.advance(WorkflowStateManager.MAX_AGE_SECONDS + 1)

        assert manager.should_continue_workflow("s1") is False

    def test_peek_does_not_touch_activity(self, manager, clock):
        manager.init_workflow("s1", "purchase")
        clock.advance(600)

        manager.peek_workflow("s1")

        assert manager.peek_workflow("s1").last_activity == clock.now - 600

    def test_expire_idle_workflow(self, manager, clock):
        """Test an active workflow idle past max age is cancelled as expired"""
        # Arrange
        manager.init_workflow("s1", "purchase")
        manager.init_workflow("s2", "purchase")
        clock.advance(2 * 60 * 60)
        manager.get_workflow("s2")

        # Act
        expired = manager.expire_idle_workflow("s1")

        # Assert
        assert expired.status == "cancelled"
        assert expired.data["cancellation_reason"] == "expired"
        assert manager.expire_idle_workflow("s1") is None
        assert manager.expire_idle_workflow("s2") is None
        assert manager.expire_idle_workflow("missing") is None

    def test_cleanup_drops_idle_and_trims_oldest(self, clock):
        manager = WorkflowStateManager(clock=clock)
        manager.MAX_WORKFLOWS = 2
        for sid in ("old", "a", "b", "c"):
            manager.init_workflow(sid, "search")
            clock.advance(1)
        clock.advance(WorkflowStateManager.MAX_AGE_SECONDS + 1)
        for sid in ("a", "b", "c"):
            manager.get_workflow(sid)
            clock.advance(1)

        removed = manager.cleanup()

        assert removed == 2
        assert manager.get_workflow("old") is None
        assert manager.get_workflow("a") is None
        assert len(manager) == 2

    def test_summary_and_active_list(self, manager):
        manager.init_workflow("s1", "purchase")
        manager.init_workflow("s2", "search")
        manager.cancel_workflow("s2", "user_declined")

        summary = manager.get_workflows_summary()
        active = manager.get_active_workflows()

        assert summary["total"] == 2
        assert summary["active"] == 1
        assert summary["cancelled"] == 1
        assert summary["by_type"]["purchase"]["active"] == 1
        assert [w["session_id"] for w in active] == ["s1"]

    def test_error_workflow(self, manager):
        manager.init_workflow("s1", "purchase")
        workflow = manager.error_workflow("s1", "boom", {"tool": "order_tool"})
        assert workflow.status == "error"
        assert workflow.data["error"]["step_name"] == "search"


class TestUpdateWorkflow:
    """Post-turn workflow updates across a full purchase conversation"""

    def test_purchase_flow_completes_on_order_success(self, manager):
        manager.init_workflow("s1", "purchase")

        # Turn 1: search; the select step waits for the user
        update_workflow(manager, "s1", "Đây là 3 mẫu chuột phù hợp", ["product_search"])
        assert manager.get_workflow("s1").current_step == 1

        # Turn 2: user picks one and it is added to the cart
        update_workflow(manager, "s1", "Đã thêm vào giỏ", ["cart_tool"], step_was_current=1)
        assert manager.get_workflow("s1").current_step == 3

        # Turn 3: user confirms, order placed
        update_workflow(
            manager, "s1", "Xong",
            ["order_tool"],
            tool_outputs=[f'{{"message": "{ORDER_SUCCESS_MARKER}** #42"}}'],
            step_was_current=3
        )

        workflow = manager.get_workflow("s1")
        assert workflow.status == "completed"
        assert workflow.current_step == 5
        assert workflow.data["result"]["order_success"] is True

    def test_order_error_marks_workflow_error(self, manager):
        manager.init_workflow("s1", "purchase")

        update_workflow(manager, "s1", f"{ORDER_ERROR_MARKER} hết hàng", ["order_tool"])

        assert manager.get_workflow("s1").status == "error"

    def test_user_declining_cancels(self, manager):
        manager.init_workflow("s1", "purchase")
        update_workflow(manager, "s1", "Kết quả tìm kiếm", ["product_search"])

        update_workflow(manager, "s1", "Vâng, bạn không muốn mua nữa. Hẹn gặp lại!", [], step_was_current=None)

        assert manager.get_workflow("s1").status == "cancelled"

    def test_search_workflow_completes_when_steps_run_out(self, manager):
        manager.init_workflow("s1", "search")
        update_workflow(manager, "s1", "Kết quả", ["product_search"])
        update_workflow(manager, "s1", "Gợi ý thêm", [], step_was_current=2)

        assert manager.get_workflow("s1").status == "completed"

    def test_inactive_workflow_is_left_alone(self, manager):
        manager.init_workflow("s1", "search")
        manager.cancel_workflow("s1")

        update_workflow(manager, "s1", "Kết quả", ["product_search"])

        assert manager.get_workflow("s1").current_step == 0
