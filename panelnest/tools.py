"""
Tool catalog shared by all jobs of a session

Tool records are read freely, but usage counters are only changed while
holding that tool's lock, so concurrent jobs selecting the same tool do
not lose updates.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import NotFoundError, ValidationError
from .models import EPS, OperationType, Tool

logger = logging.getLogger(__name__)


class ToolCatalog:
    """Tools indexed by id, with per-tool usage locks"""

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: Dict[str, Tool] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        for t in tools:
            self.add_tool(t)

    def __len__(self) -> int:
        return len(self._tools)

    def add_tool(self, tool: Tool) -> Tool:
        with self._registry_lock:
            if tool.id in self._tools:
                raise ValidationError(f"Tool with ID '{tool.id}' already exists", entity_id=tool.id)
            self._tools[tool.id] = tool.model_copy()
            self._locks[tool.id] = threading.Lock()
        return tool

    def get(self, tool_id: str) -> Tool:
        """Snapshot of a tool's current record"""
        lock = self._locks.get(tool_id)
        if lock is None:
            raise NotFoundError("Tool", tool_id)
        with lock:
            return self._tools[tool_id].model_copy()

    def tools(self) -> List[Tool]:
        with self._registry_lock:
            tool_ids = sorted(self._tools)
        return [self.get(tool_id) for tool_id in tool_ids]

    def select(self, op_type: OperationType, depth: float,
               diameter: Optional[float] = None) -> Optional[Tool]:
        """
        Pick a tool for an operation

        Candidates must match the type, reach the depth and, when a
        diameter is given, match it. Tools with life left win over worn
        ones; ties go to the lowest id.
        """
        candidates = []
        for tool in self.tools():
            if tool.type != op_type or tool.max_depth + EPS < depth:
                continue
            if diameter is not None and abs(tool.diameter - diameter) > 1e-6:
                continue
            candidates.append(tool)
        if not candidates:
            return None
        candidates.sort(key=lambda t: (t.needs_replacement, t.id))
        return candidates[0]

    def record_usage(self, tool_id: str, minutes: float) -> Tuple[Tool, bool]:
        """
        Add cutting minutes to a tool

        Returns the updated snapshot and whether this call pushed the tool
        past its life. Exhaustion is reported, never raised.
        """
        if tool_id not in self._tools:
            raise NotFoundError("Tool", tool_id)
        with self._locks[tool_id]:
            tool = self._tools[tool_id]
            used = tool.used_minutes + minutes
            newly_worn = not tool.needs_replacement and used > tool.life_minutes + EPS
            updated = tool.model_copy(update={
                "used_minutes": used,
                "needs_replacement": tool.needs_replacement or newly_worn,
            })
            self._tools[tool_id] = updated
        if newly_worn:
            logger.warning(
                "Tool %s exceeded its life (%.1f of %.1f min); replacement needed",
                tool_id, used, tool.life_minutes,
            )
        return updated.model_copy(), newly_worn

    def reset_usage(self, tool_id: str) -> Tool:
        """Mark a tool as replaced"""
        if tool_id not in self._tools:
            raise NotFoundError("Tool", tool_id)
        with self._locks[tool_id]:
            tool = self._tools[tool_id].model_copy(update={"used_minutes": 0.0, "needs_replacement": False})
            self._tools[tool_id] = tool
        logger.info("Tool %s replaced, usage reset", tool_id)
        return tool.model_copy()
