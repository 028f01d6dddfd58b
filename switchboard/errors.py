"""
Error taxonomy shared by the router, agents, storage and tool layers.

Validation and identity errors are surfaced synchronously to whoever called the
operation. Tool errors never reach the end user: the executor turns them into
payloads for the model. Model backend errors propagate out of the agent and the
router converts them into a generic apology.
"""

from __future__ import annotations


class SwitchboardError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(SwitchboardError, ValueError):
    """A create/update/assign request was malformed. No state was changed."""


class AgentNotFound(SwitchboardError, LookupError):
    """The referenced agent id has no live agent or stored profile."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class DuplicateAgent(SwitchboardError):
    """An agent with the requested id already exists."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent with ID {agent_id} already exists")
        self.agent_id = agent_id


class ProtectedAgent(SwitchboardError):
    """The operation is not permitted on a built-in agent."""

    def __init__(self, agent_id: str):
        super().__init__(f"Cannot delete built-in agent {agent_id}")
        self.agent_id = agent_id


class StoreError(SwitchboardError):
    """The persistence layer failed or timed out."""


class ToolNotFound(SwitchboardError, LookupError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Tool {name} not found")
        self.name = name


class ToolExecutionError(SwitchboardError):
    """A registered tool could not be invoked (disabled or missing a handler)."""


class ModelBackendError(SwitchboardError):
    """The language-model call failed, timed out or returned an unusable reply."""
