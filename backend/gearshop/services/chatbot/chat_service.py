"""
GearShop shopping assistant

Runs the Claude tool-use loop for one chat turn: loads the session history,
tracks the multi-step workflow (search -> cart -> order), executes shopping
tools on behalf of the user and records the exchange.

Features:
- System prompt in Vietnamese shop context, with the current workflow step
- 7 catalog/cart/wishlist/order tools
- Bounded tool rounds, early stop on completion markers
- Plain-LLM fallback, then a fixed apology, when the tool loop fails
- Progress events for streaming (llm:start, llm:end, tool:start, tool:end, agent:end)
"""
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import anthropic

from gearshop.core.config import settings
from gearshop.core.exceptions import PermissionDeniedError
from gearshop.services.chatbot.chat_history import ChatHistoryManager, estimate_tokens, limit_history
from gearshop.services.chatbot.tools import (
    TOOLS,
    ChatToolExecutor,
    has_completion_marker,
    strip_completion_markers,
)
from gearshop.services.chatbot.workflow_intent import (
    detect_workflow_intent,
    should_use_complete_workflow,
    update_workflow,
)
from gearshop.services.chatbot.workflow_state import WorkflowStateManager

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], None]

FALLBACK_RESPONSE = (
    "Xin lỗi, trợ lý mua sắm đang gặp sự cố. "
    "Bạn vui lòng thử lại sau ít phút hoặc liên hệ bộ phận hỗ trợ."
)
EMPTY_RESPONSE = "Xin lỗi, tôi chưa hiểu yêu cầu. Bạn có thể nói rõ hơn sản phẩm bạn đang tìm không?"

CHATBOT_LOGGERS = (
    "gearshop.services.chatbot.chat_service",
    "gearshop.services.chatbot.tools",
    "gearshop.services.chatbot.vector_store",
    "gearshop.services.chatbot.workflow_state",
    "gearshop.services.chatbot.workflow_intent",
    "gearshop.services.chatbot.chat_history",
)


def get_system_prompt(workflow_context: Optional[str] = None, logged_in: bool = False) -> str:
    """Generate system prompt with current date and the active workflow step."""
    today = datetime.now().strftime("%Y-%m-%d")

    prompt = f"""Bạn là trợ lý mua sắm của GearShop, cửa hàng gaming gear tại Việt Nam (chuột, bàn phím cơ, tai nghe, màn hình, PC và laptop gaming).

Hôm nay là: {today}

## Vai trò
- Tư vấn sản phẩm dựa trên nhu cầu và ngân sách của khách
- Thêm sản phẩm vào giỏ hàng, danh sách yêu thích
- Đặt hàng từ giỏ hàng (COD hoặc VNPay) và tra cứu đơn hàng

## Quy tắc
1. Luôn trả lời bằng tiếng Việt, ngắn gọn, thân thiện
2. KHÔNG bịa thông tin sản phẩm, giá hay tồn kho: chỉ dùng kết quả từ tool
3. Giá hiển thị theo VND (ví dụ 1.290.000đ)
4. Chỉ gọi order_tool với action=create_order sau khi khách xác nhận giỏ hàng và phương thức thanh toán
5. Nếu kết quả tool chứa [TASK_COMPLETED: ...] hoặc [ACTION_SUCCESS], dừng gọi tool và trả lời ngay
6. KHÔNG bao giờ đưa các marker [TASK_COMPLETED: ...] hoặc [ACTION_SUCCESS] vào câu trả lời
7. Khi đặt hàng thành công, giữ nguyên dòng "✅ **ĐẶT HÀNG THÀNH CÔNG!**" trong câu trả lời

## Khách hàng
{"Khách đã đăng nhập." if logged_in else "Khách CHƯA đăng nhập: giỏ hàng, yêu thích và đặt hàng cần đăng nhập."}
"""

    if workflow_context:
        prompt += f"\n## Tiến trình hiện tại\n{workflow_context}\n"

    return prompt


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class ChatResult:
    """Result of processing a chat message"""
    response: str
    session_id: str
    tools_used: List[str] = field(default_factory=list)
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    iterations: int = 0
    duration_ms: int = 0
    workflow: Optional[Dict[str, Any]] = None
    fallback: bool = False
    estimated_cost_usd: float = 0.0
    context_messages: int = 0

    def __post_init__(self):
        # Claude Haiku pricing: $1/1M input, $5/1M output
        input_cost = (self.input_tokens / 1_000_000) * 1.0
        output_cost = (self.output_tokens / 1_000_000) * 5.0
        self.estimated_cost_usd = round(input_cost + output_cost, 6)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "session_id": self.session_id,
            "tools_used": self.tools_used,
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "iterations": self.iterations,
            "duration_ms": self.duration_ms,
            "workflow": self.workflow,
            "fallback": self.fallback,
            "estimated_cost_usd": self.estimated_cost_usd,
            "context_messages": self.context_messages,
        }


@dataclass
class AgentRun:
    """Outcome of one tool-use loop"""
    text: str
    tools_used: List[str] = field(default_factory=list)
    tool_outputs: List[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    iterations: int = 0
    context_messages: int = 0


def _extract_text(response) -> str:
    parts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
    return "\n".join(part for part in parts if part).strip()


# ============================================================================
# MAIN SERVICE CLASS
# ============================================================================

class ChatbotService:
    """
    Service for processing shopping assistant messages using Claude AI.
    """

    def __init__(
        self,
        client=None,
        history_manager: Optional[ChatHistoryManager] = None,
        workflow_manager: Optional[WorkflowStateManager] = None,
        tool_executor_factory: Optional[Callable[..., ChatToolExecutor]] = None,
        model: Optional[str] = None
    ):
        """Initialize the Claude client"""
        if client is None:
            if not settings.ANTHROPIC_API_KEY:
                raise ValueError("ANTHROPIC_API_KEY environment variable not set")
            client = anthropic.Anthropic(api_key=settings.ANTHROPIC_API_KEY)

        self.client = client
        self.model = model or settings.CLAUDE_MODEL
        self.max_tokens = settings.CLAUDE_MAX_TOKENS
        self.max_iterations = settings.CHATBOT_MAX_ITERATIONS
        self.history = history_manager or ChatHistoryManager()
        self.workflows = workflow_manager or WorkflowStateManager()
        self.tool_executor_factory = tool_executor_factory or ChatToolExecutor

        if settings.CHATBOT_DEBUG:
            for name in CHATBOT_LOGGERS:
                logging.getLogger(name).setLevel(logging.DEBUG)

        logger.info(f"ChatbotService initialized with model: {self.model}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _emit(on_event: Optional[EventCallback], event_type: str, payload: Dict[str, Any]) -> None:
        if on_event is None:
            return
        try:
            on_event(event_type, payload)
        except Exception as e:
            logger.warning(f"Event callback failed for {event_type}: {e}")

    def _workflow_context(self, session_id: str) -> Optional[str]:
        workflow = self.workflows.get_workflow(session_id)
        if not workflow or workflow.status != "active":
            return None

        current = self.workflows.get_current_step_info(session_id)
        if not current:
            return None

        lines = [
            f"Quy trình: {workflow.type} (bước {current['step_number']}/{current['total_steps']})",
            f"Bước hiện tại: {current['description']}",
        ]
        if current["tool"]:
            lines.append(f"Tool nên dùng: {current['tool']}")
        upcoming = self.workflows.get_next_step_info(session_id)
        if upcoming:
            lines.append(f"Bước tiếp theo: {upcoming['description']}")
        return "\n".join(lines)

    def _prepare_workflow(self, session_id: str, message: str, user_id: Optional[int]) -> Optional[int]:
        """
        Start a workflow for a new intent, or keep the active one.

        Returns the step index that was current before this turn, or None
        when the workflow starts now. A workflow idle past its max age is
        cancelled first and the message is classified afresh.
        """
        if self.workflows.expire_idle_workflow(session_id):
            logger.info(f"Session {session_id}: idle workflow expired")

        workflow = self.workflows.get_workflow(session_id)
        if workflow and workflow.status == "active":
            return workflow.current_step

        intent = detect_workflow_intent(message)
        if not intent and should_use_complete_workflow(message, intent):
            intent = "purchase"
        if intent:
            self.workflows.init_workflow(session_id, intent, {
                "user_id": user_id,
                "original_message": message,
            })
            logger.info(f"Session {session_id}: started {intent} workflow")
        return None

    def _build_messages(self, history: List[Dict[str, str]], message: str) -> Tuple[List[Dict[str, Any]], int]:
        messages: List[Dict[str, Any]] = []
        history_tokens = 0

        if history:
            limited_history, history_tokens = limit_history(history)
            for msg in limited_history:
                messages.append({
                    "role": msg["role"],
                    "content": msg["content"]
                })

        messages.append({
            "role": "user",
            "content": message
        })
        return messages, history_tokens + estimate_tokens(message)

    # ------------------------------------------------------------------
    # LLM
    # ------------------------------------------------------------------

    def _create(self, system: str, messages: List[Dict[str, Any]], force_answer: bool = False):
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "tools": TOOLS,
            "messages": messages,
        }
        if force_answer:
            kwargs["tool_choice"] = {"type": "none"}
        return self.client.messages.create(**kwargs)

    def _run_agent(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        executor: ChatToolExecutor,
        on_event: Optional[EventCallback] = None
    ) -> AgentRun:
        """
        Tool-use loop.

        At most max_iterations tool rounds; after the last round, or once a
        tool result carries a completion marker, the model is asked for a
        final answer with tools disabled.
        """
        run = AgentRun(text="")

        self._emit(on_event, "llm:start", {"iteration": 0})
        response = self._create(system, messages)
        run.input_tokens += response.usage.input_tokens
        run.output_tokens += response.usage.output_tokens
        self._emit(on_event, "llm:end", {"iteration": 0, "stop_reason": response.stop_reason})

        while response.stop_reason == "tool_use":
            run.iterations += 1

            tool_use_blocks = [
                block for block in response.content
                if block.type == "tool_use"
            ]

            tool_results = []
            completed = False
            for tool_use in tool_use_blocks:
                tool_name = tool_use.name
                tool_input = tool_use.input or {}

                logger.info(f"Executing tool: {tool_name} with input: {tool_input}")
                run.tools_used.append(tool_name)
                self._emit(on_event, "tool:start", {"tool": tool_name, "input": tool_input})

                started = time.time()
                result = executor.execute(tool_name, tool_input)
                run.tool_outputs.append(result)
                completed = completed or has_completion_marker(result)

                logger.debug(f"Tool {tool_name} returned: {result[:500]}")
                self._emit(on_event, "tool:end", {
                    "tool": tool_name,
                    "output": result,
                    "duration_ms": int((time.time() - started) * 1000),
                })

                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": tool_use.id,
                    "content": result
                })

            messages.append({
                "role": "assistant",
                "content": response.content
            })
            messages.append({
                "role": "user",
                "content": tool_results
            })

            force_answer = completed or run.iterations >= self.max_iterations
            if force_answer:
                logger.debug(
                    f"Stopping tool loop after {run.iterations} rounds "
                    f"({'completion marker' if completed else 'iteration limit'})"
                )

            self._emit(on_event, "llm:start", {"iteration": run.iterations})
            response = self._create(system, messages, force_answer=force_answer)
            run.input_tokens += response.usage.input_tokens
            run.output_tokens += response.usage.output_tokens
            self._emit(on_event, "llm:end", {"iteration": run.iterations, "stop_reason": response.stop_reason})

            if force_answer:
                break

        run.text = _extract_text(response)
        run.context_messages = len(messages)
        return run

    def _fallback(self, system: str, history: List[Dict[str, str]], message: str) -> Optional[str]:
        """Plain completion without tools"""
        messages, _ = self._build_messages(history, message)
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=messages
            )
        except Exception as e:
            logger.error(f"Fallback LLM call failed: {e}", exc_info=True)
            return None
        return _extract_text(response) or None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_message(
        self,
        message: str,
        session_id: Optional[str] = None,
        user_id: Optional[int] = None,
        on_event: Optional[EventCallback] = None
    ) -> ChatResult:
        """
        Process one customer message.

        Args:
            message: Customer message
            session_id: Existing session, or None to start one
            user_id: Logged-in user, or None for guests
            on_event: Optional callback(event_type, payload) for progress events

        Returns:
            ChatResult with response text and metadata
        """
        started = time.time()
        session_id, history = self.history.get_or_create(session_id, user_id)
        step_was_current = self._prepare_workflow(session_id, message, user_id)

        system = get_system_prompt(self._workflow_context(session_id), logged_in=bool(user_id))
        messages, context_tokens = self._build_messages(history, message)
        logger.info(f"Session {session_id}: {len(messages)} messages, ~{context_tokens} tokens")
        logger.info(f"Processing message: {message[:100]}...")

        executor = self.tool_executor_factory(user_id=user_id, session_id=session_id)

        fallback = False
        try:
            run = self._run_agent(system, messages, executor, on_event)
            text = strip_completion_markers(run.text)
            if not text:
                text = self._text_from_tool_outputs(run.tool_outputs) or EMPTY_RESPONSE
        except Exception as e:
            logger.error(f"Tool loop failed for session {session_id}: {e}", exc_info=True)
            run = AgentRun(text="")
            text = self._fallback(system, history, message)
            if text is None:
                text = FALLBACK_RESPONSE
                fallback = True
            text = strip_completion_markers(text)

        self.history.add_exchange(session_id, message, text)

        if not fallback:
            update_workflow(
                self.workflows,
                session_id,
                text,
                run.tools_used,
                tool_outputs=run.tool_outputs,
                step_was_current=step_was_current
            )

        duration_ms = int((time.time() - started) * 1000)
        self._emit(on_event, "agent:end", {
            "output": text,
            "tools_used": run.tools_used,
            "duration_ms": duration_ms,
        })

        logger.info(
            f"Message completed. Tools used: {run.tools_used}, "
            f"Tokens: {run.input_tokens}/{run.output_tokens}, {duration_ms}ms"
        )

        return ChatResult(
            response=text,
            session_id=session_id,
            tools_used=run.tools_used,
            model=self.model,
            input_tokens=run.input_tokens,
            output_tokens=run.output_tokens,
            iterations=run.iterations,
            duration_ms=duration_ms,
            workflow=self.workflows.get_workflow_analytics(session_id),
            fallback=fallback,
            context_messages=run.context_messages
        )

    @staticmethod
    def _text_from_tool_outputs(tool_outputs: List[str]) -> Optional[str]:
        """Use the last tool 'message' when the model returned no text"""
        for output in reversed(tool_outputs):
            try:
                payload = json.loads(output)
            except ValueError:
                continue
            if isinstance(payload, dict) and payload.get("message"):
                return strip_completion_markers(payload["message"])
        return None

    def clear_session(self, session_id: str, user_id: Optional[int] = None, is_admin: bool = False) -> bool:
        """
        Forget a session's history and workflow.

        Sessions started by a logged-in user can only be cleared by that
        user or an admin; guest sessions by whoever holds the id.
        """
        owner = self.history.owner_of(session_id)
        if owner is not None and not is_admin and owner != user_id:
            raise PermissionDeniedError("Not allowed to clear this chat session")

        self.workflows.remove_workflow(session_id)
        return self.history.clear(session_id)

    def get_health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "model": self.model,
            "max_iterations": self.max_iterations,
            "history": self.history.get_stats(),
            "active_workflows": len(self.workflows.get_active_workflows()),
        }


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_service_instance: Optional[ChatbotService] = None


def get_chatbot_service() -> ChatbotService:
    """
    Get the singleton chatbot service instance.

    Returns:
        ChatbotService instance

    Raises:
        ValueError: ANTHROPIC_API_KEY is not configured
    """
    global _service_instance
    if _service_instance is None:
        _service_instance = ChatbotService()
    return _service_instance
