"""Custom exception hierarchy for kairo."""


class KairoError(Exception):
    """Base for all kairo errors."""


class SpawnError(KairoError):
    """The OS could not create the agent process."""


class AgentNotFoundError(KairoError):
    """No agent with the given ID exists."""


class AgentNotRunningError(KairoError):
    """The operation requires a running agent."""


class NoProcessIdError(KairoError):
    """The agent's OS process id was never recorded."""


class AgentIOError(KairoError):
    """Writing to the agent's stdin failed."""


class SubscriptionClosed(KairoError):
    """The event subscription was closed and has no more events."""
