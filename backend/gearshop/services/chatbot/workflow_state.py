"""
Workflow state tracking for multi-step chatbot conversations

A workflow is the per-session record of where the assistant believes the
user is in a multi-tool flow (search -> add to cart -> order). State lives in
memory only and expires after MAX_AGE_SECONDS of inactivity.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowStep:
    name: str
    tool: Optional[str]
    description: str
    required: bool


WORKFLOW_STEPS: Dict[str, List[WorkflowStep]] = {
    "purchase": [
        WorkflowStep("search", "product_search", "Search products", True),
        WorkflowStep("select", None, "User picks a product", False),
        WorkflowStep("add_to_cart", "cart_tool", "Add to cart", True),
        WorkflowStep("confirm_order", None, "User confirms the order", False),
        WorkflowStep("initiate_order", "order_tool", "Place the order", True),
    ],
    "search": [
        WorkflowStep("search", "product_search", "Search products", True),
        WorkflowStep("display_results", None, "Show results", False),
        WorkflowStep("suggest_action", None, "Suggest a next action", False),
    ],
    "wishlist_purchase": [
        WorkflowStep("get_wishlist", "wishlist_tool", "Load the wishlist", True),
        WorkflowStep("select_item", None, "User picks an item", False),
        WorkflowStep("add_to_cart", "cart_tool", "Add to cart", True),
        WorkflowStep("initiate_order", "order_tool", "Place the order", True),
    ],
    "category_browse": [
        WorkflowStep("list_categories", "category_list_tool", "List categories", True),
        WorkflowStep("search_products", "product_search", "Search products in a category", False),
        WorkflowStep("add_to_cart", "cart_tool", "Add to cart", False),
        WorkflowStep("initiate_order", "order_tool", "Place the order", False),
    ],
}

WORKFLOW_STATUSES = ("active", "completed", "cancelled", "error")


def get_workflow_steps(workflow_type: str) -> List[WorkflowStep]:
    """Unknown types fall back to the search workflow"""
    return WORKFLOW_STEPS.get(workflow_type, WORKFLOW_STEPS["search"])


@dataclass
class Workflow:
    id: str
    session_id: str
    type: str
    steps: List[WorkflowStep]
    data: Dict[str, Any]
    current_step: int = 0
    history: List[Dict[str, Any]] = field(default_factory=list)
    status: str = "active"
    timestamp: float = 0.0
    last_activity: float = 0.0

    @property
    def progress(self) -> float:
        return self.current_step / len(self.steps) * 100 if self.steps else 100.0

    @property
    def required_steps(self) -> int:
        return sum(1 for step in self.steps if step.required)


class WorkflowStateManager:
    """
    In-memory per-session workflow store

    Cleanup runs opportunistically on writes: entries idle longer than
    MAX_AGE_SECONDS are dropped, then the least recently active ones while
    more than MAX_WORKFLOWS remain.
    """

    MAX_AGE_SECONDS = 30 * 60
    CLEANUP_INTERVAL_SECONDS = 5 * 60
    MAX_WORKFLOWS = 1000

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._workflows: Dict[str, Workflow] = {}
        self._last_cleanup = clock()

    def _now(self) -> float:
        return self._clock()

    def _maybe_cleanup(self):
        if self._now() - self._last_cleanup >= self.CLEANUP_INTERVAL_SECONDS:
            self.cleanup()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init_workflow(self, session_id: str, workflow_type: str, data: Optional[Dict[str, Any]] = None) -> Workflow:
        """Start a workflow for the session, replacing any previous one"""
        self._maybe_cleanup()

        now = self._now()
        data = dict(data or {})
        workflow = Workflow(
            id=f"{session_id}_{int(now * 1000)}",
            session_id=session_id,
            type=workflow_type,
            steps=get_workflow_steps(workflow_type),
            data={
                "start_time": now,
                "user_id": data.pop("user_id", None),
                "original_message": data.pop("original_message", ""),
                **data,
            },
            timestamp=now,
            last_activity=now,
        )
        self._workflows[session_id] = workflow

        logger.debug(f"Workflow initialized: {workflow_type} for session {session_id}")
        return workflow

    def get_workflow(self, session_id: str) -> Optional[Workflow]:
        """Fetch the session workflow and mark it active now"""
        workflow = self._workflows.get(session_id)
        if workflow:
            workflow.last_activity = self._now()
        return workflow

    def peek_workflow(self, session_id: str) -> Optional[Workflow]:
        """Fetch the session workflow without counting it as activity"""
        return self._workflows.get(session_id)

    def is_idle(self, session_id: str) -> bool:
        workflow = self._workflows.get(session_id)
        return workflow is not None and self._now() - workflow.last_activity >= self.MAX_AGE_SECONDS

    def expire_idle_workflow(self, session_id: str) -> Optional[Workflow]:
        """Cancel an active workflow idle past MAX_AGE_SECONDS; returns it when expired"""
        workflow = self._workflows.get(session_id)
        if not workflow or workflow.status != "active" or not self.is_idle(session_id):
            return None
        return self.cancel_workflow(session_id, "expired")

    def advance_workflow(self, session_id: str, step_data: Optional[Dict[str, Any]] = None) -> Optional[Workflow]:
        workflow = self._workflows.get(session_id)
        if not workflow:
            logger.debug(f"No workflow to advance for session {session_id}")
            return None

        now = self._now()
        step_data = dict(step_data or {})
        current = workflow.steps[workflow.current_step] if workflow.current_step < len(workflow.steps) else None
        previous_ts = workflow.history[-1]["timestamp"] if workflow.history else workflow.data["start_time"]

        workflow.history.append({
            "step": workflow.current_step,
            "step_name": current.name if current else "unknown",
            "tool": current.tool if current else None,
            "data": step_data,
            "timestamp": now,
            "duration": now - previous_ts,
        })

        workflow.current_step += 1
        workflow.data.update(step_data)
        workflow.timestamp = now
        workflow.last_activity = now

        logger.debug(
            f"Workflow advanced: {workflow.type} step {workflow.current_step}/{len(workflow.steps)} "
            f"({workflow.progress:.1f}%)"
        )
        return workflow

    def complete_workflow(self, session_id: str, result: Optional[Dict[str, Any]] = None) -> Optional[Workflow]:
        """
        Mark completed and record efficiency:
        required steps / max(completed steps, 1) * 100
        """
        workflow = self._workflows.get(session_id)
        if not workflow:
            return None

        now = self._now()
        workflow.status = "completed"
        workflow.data["completion_time"] = now
        workflow.data["duration"] = now - workflow.data["start_time"]
        workflow.data["result"] = result or {}
        workflow.data["efficiency"] = workflow.required_steps / max(workflow.current_step, 1) * 100
        workflow.last_activity = now

        logger.info(
            f"Workflow completed: {workflow.type} for session {session_id} "
            f"({workflow.current_step} steps, {workflow.data['efficiency']:.1f}% efficiency)"
        )
        return workflow

    def cancel_workflow(self, session_id: str, reason: str = "user_cancelled") -> Optional[Workflow]:
        workflow = self._workflows.get(session_id)
        if not workflow:
            return None

        now = self._now()
        workflow.status = "cancelled"
        workflow.data["cancellation_reason"] = reason
        workflow.data["cancellation_time"] = now
        workflow.data["duration"] = now - workflow.data["start_time"]
        workflow.last_activity = now

        logger.info(f"Workflow cancelled: {workflow.type} for session {session_id} - {reason}")
        return workflow

    def error_workflow(
        self,
        session_id: str,
        error: Any,
        step_data: Optional[Dict[str, Any]] = None
    ) -> Optional[Workflow]:
        workflow = self._workflows.get(session_id)
        if not workflow:
            return None

        now = self._now()
        current = workflow.steps[workflow.current_step] if workflow.current_step < len(workflow.steps) else None
        workflow.status = "error"
        workflow.data["error"] = {
            "message": str(error),
            "step": workflow.current_step,
            "step_name": current.name if current else None,
            "timestamp": now,
            "data": dict(step_data or {}),
        }
        workflow.data["duration"] = now - workflow.data["start_time"]
        workflow.last_activity = now

        logger.error(f"Workflow error: {workflow.type} at step {workflow.current_step} - {error}")
        return workflow

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_step_info(self, session_id: str) -> Optional[Dict[str, Any]]:
        workflow = self._workflows.get(session_id)
        if not workflow or workflow.current_step >= len(workflow.steps):
            return None

        step = workflow.steps[workflow.current_step]
        previous_ts = workflow.history[-1]["timestamp"] if workflow.history else workflow.data["start_time"]
        return {
            "name": step.name,
            "tool": step.tool,
            "description": step.description,
            "required": step.required,
            "step_number": workflow.current_step + 1,
            "total_steps": len(workflow.steps),
            "is_last_step": workflow.current_step >= len(workflow.steps) - 1,
            "progress": (workflow.current_step + 1) / len(workflow.steps) * 100,
            "time_in_step": self._now() - previous_ts,
        }

    def get_next_step_info(self, session_id: str) -> Optional[Dict[str, Any]]:
        workflow = self._workflows.get(session_id)
        if not workflow:
            return None

        next_index = workflow.current_step + 1
        if next_index >= len(workflow.steps):
            return None

        step = workflow.steps[next_index]
        return {
            "name": step.name,
            "tool": step.tool,
            "description": step.description,
            "required": step.required,
            "step_number": next_index + 1,
            "total_steps": len(workflow.steps),
        }

    def should_continue_workflow(self, session_id: str) -> bool:
        """Active, steps remaining and not idle past MAX_AGE_SECONDS"""
        workflow = self._workflows.get(session_id)
        if not workflow:
            return False

        return (
            workflow.status == "active"
            and workflow.current_step < len(workflow.steps)
            and (self._now() - workflow.last_activity) < self.MAX_AGE_SECONDS
        )

    def can_advance_workflow(self, session_id: str, tool_used: Optional[str] = None) -> bool:
        """A tool step advances on its own tool; a user-interaction step always can"""
        workflow = self._workflows.get(session_id)
        if not workflow or workflow.current_step >= len(workflow.steps):
            return False

        step = workflow.steps[workflow.current_step]
        if step.tool is None:
            return True
        return tool_used == step.tool

    def get_workflow_analytics(self, session_id: str) -> Optional[Dict[str, Any]]:
        workflow = self._workflows.get(session_id)
        if not workflow:
            return None

        duration = workflow.data.get("duration")
        if duration is None:
            duration = self._now() - workflow.data["start_time"]

        history = workflow.history
        return {
            "id": workflow.id,
            "session_id": workflow.session_id,
            "type": workflow.type,
            "status": workflow.status,
            "current_step": workflow.current_step,
            "total_steps": len(workflow.steps),
            "progress": round(workflow.progress),
            "duration": duration,
            "efficiency": workflow.data.get("efficiency"),
            "step_history": [
                {"step": h["step_name"], "tool": h["tool"], "duration": h["duration"], "timestamp": h["timestamp"]}
                for h in history
            ],
            "current_step_info": self.get_current_step_info(session_id),
            "next_step_info": self.get_next_step_info(session_id),
            "average_step_duration": sum(h["duration"] for h in history) / len(history) if history else 0,
            "start_time": workflow.data["start_time"],
            "last_activity": workflow.last_activity,
            "user_id": workflow.data.get("user_id"),
            "original_message": workflow.data.get("original_message"),
        }

    def get_workflows_summary(self) -> Dict[str, Any]:
        now = self._now()
        summary: Dict[str, Any] = {
            "total": len(self._workflows),
            "active": 0,
            "completed": 0,
            "cancelled": 0,
            "error": 0,
            "by_type": {},
            "oldest_workflow": None,
            "newest_workflow": None,
        }

        oldest = newest = None
        for session_id, workflow in self._workflows.items():
            summary[workflow.status] += 1

            by_type = summary["by_type"].setdefault(
                workflow.type, {"total": 0, "active": 0, "completed": 0, "cancelled": 0, "error": 0}
            )
            by_type["total"] += 1
            by_type[workflow.status] += 1

            start = workflow.data["start_time"]
            if oldest is None or start < oldest.data["start_time"]:
                oldest = workflow
            if newest is None or start > newest.data["start_time"]:
                newest = workflow

        for key, workflow in (("oldest_workflow", oldest), ("newest_workflow", newest)):
            if workflow:
                summary[key] = {
                    "session_id": workflow.session_id,
                    "type": workflow.type,
                    "age": now - workflow.data["start_time"],
                }

        return summary

    def get_active_workflows(self) -> List[Dict[str, Any]]:
        return [
            self.get_workflow_analytics(session_id)
            for session_id, workflow in self._workflows.items()
            if workflow.status == "active"
        ]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup(self) -> int:
        """Drop idle workflows, then trim to MAX_WORKFLOWS by last activity"""
        now = self._now()
        before = len(self._workflows)

        for session_id in [
            sid for sid, wf in self._workflows.items()
            if now - wf.last_activity > self.MAX_AGE_SECONDS
        ]:
            del self._workflows[session_id]

        if len(self._workflows) > self.MAX_WORKFLOWS:
            by_activity = sorted(self._workflows.items(), key=lambda item: item[1].last_activity)
            for session_id, _ in by_activity[:len(self._workflows) - self.MAX_WORKFLOWS]:
                del self._workflows[session_id]

        self._last_cleanup = now
        removed = before - len(self._workflows)
        if removed:
            logger.info(f"Workflow cleanup removed {removed} workflows ({len(self._workflows)} remaining)")
        return removed

    def remove_workflow(self, session_id: str) -> bool:
        return self._workflows.pop(session_id, None) is not None

    def clear_all(self) -> int:
        count = len(self._workflows)
        self._workflows.clear()
        logger.info(f"Cleared {count} workflows")
        return count

    def __len__(self) -> int:
        return len(self._workflows)
