"""
Switchboard: multi-agent chat routing.

This package routes inbound chat messages to one of many independently configured
conversational agents. Each agent carries its own persona, model parameters and
optional tools; the router picks the agent assigned to a sender, the agent runs a
bounded tool-calling exchange against Claude, and conversation state is persisted
per (agent, sender) pair.

Architecture layers (bottom to top):
    1. Tool registry + executor (named, schema-described callables)
    2. Storage (agent profiles + conversation history, SQLite)
    3. Model backend (Anthropic Messages API)
    4. Agent (message-handling protocol + single tool round trip)
    5. Agent router (sender selection, lifecycle, assignment mutation)
"""

__version__ = "0.1.0"
