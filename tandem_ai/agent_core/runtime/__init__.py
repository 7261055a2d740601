"""Runtime execution of single agents.

- ``ReasonActLoop``: LangGraph based, resumable ReAct state machine.
- ``ReActOptions``: step limits, feedback mode and planning switches.
- ``LoopChunk``: events yielded by ``ReasonActLoop.stream``.
"""

from .loop import ReasonActLoop, describe_tool_failure
from .models import ChunkKind, LoopChunk, ReActOptions

__all__ = ["ChunkKind", "LoopChunk", "ReActOptions", "ReasonActLoop", "describe_tool_failure"]
