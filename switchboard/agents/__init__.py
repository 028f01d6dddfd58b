from switchboard.agents.personas import (
    BUILTIN_AGENT_IDS,
    BUILTIN_PROFILES,
    builtin_profiles,
    is_builtin,
)

__all__ = ["BUILTIN_AGENT_IDS", "BUILTIN_PROFILES", "builtin_profiles", "is_builtin"]
