"""Exception types shared by the relay components.

Components raise these (or hand them back inside a result tuple); the tick
scheduler is the one place that decides how loudly each one is logged.
"""


class RelayError(Exception):
    """Base class for everything the relay raises on purpose."""


class ConfigError(RelayError):
    pass


class LogUnavailable(RelayError):
    """A log directory or file could not be read this tick (transient)."""


class MalformedLine(RelayError):
    """A grammar pattern matched but one of its fields would not convert."""

    def __init__(self, message, line=None):
        RelayError.__init__(self, message)
        self.line = line


class CheckpointCorrupt(RelayError):
    pass
