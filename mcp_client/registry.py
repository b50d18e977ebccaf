"""Registry of tools discovered from a tool provider."""

import copy
import logging
import threading
from typing import Dict, Iterable, List, Optional, Set

from .protocol import Tool


logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Mapping from tool name to tool definition.

    Owned by a single client. ``register_all`` merges by name (last write
    wins); ``replace_all`` drops entries absent from the new listing.
    Lookups hand out copies so callers cannot alter the stored entries.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}
        self._lock = threading.Lock()

    def register_all(self, tools: Iterable[Tool]) -> int:
        """Merge ``tools`` into the registry. Returns the registry size."""
        tools = list(tools)
        with self._lock:
            for tool in tools:
                if tool.name in self._tools:
                    logger.debug(f"Replacing tool definition: {tool.name}")
                self._tools[tool.name] = tool
            return len(self._tools)

    def replace_all(self, tools: Iterable[Tool]) -> int:
        """Replace the whole registry with ``tools``."""
        fresh = {}
        for tool in tools:
            fresh[tool.name] = tool
        with self._lock:
            removed = set(self._tools) - set(fresh)
            self._tools = fresh
        if removed:
            logger.debug(f"Removed tools: {', '.join(sorted(removed))}")
        return len(fresh)

    def lookup(self, name: str) -> Optional[Tool]:
        with self._lock:
            tool = self._tools.get(name)
        return copy.deepcopy(tool)

    def names(self) -> Set[str]:
        with self._lock:
            return set(self._tools)

    def tools(self) -> List[Tool]:
        """All tool definitions, sorted by name."""
        with self._lock:
            tools = [self._tools[name] for name in sorted(self._tools)]
        return copy.deepcopy(tools)

    def clear(self) -> None:
        with self._lock:
            self._tools.clear()

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)
