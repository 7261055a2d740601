"""tandem_ai.

An agent execution core: a resumable ReAct loop with human-in-the-loop
approval, multi-agent teams with loop detection, and serializable sessions.

Core subpackages
----------------

- ``tandem_ai.agent_core``: traces, interceptors, the ReAct runtime, teams,
  session stores and ``AgentService``.
- ``tandem_ai.core``: settings (``pydantic-settings``) and logging setup.
"""
