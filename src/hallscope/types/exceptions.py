"""Exceptions shared across the client, the session and the host."""


class CommsError(Exception):
    """Base exception for communication errors."""

    pass


class CommandError(CommsError):
    """A host command failed. Carries the command name and the host's reason."""

    def __init__(self, command: str, reason: str):
        super().__init__(f"{command} failed: {reason}")
        self.command = command
        self.reason = reason


class SessionStateError(RuntimeError):
    """A command was issued in a session state that does not allow it."""

    def __init__(self, action: str, state: str):
        super().__init__(f"'{action}' is not allowed while {state}")
        self.action = action
        self.state = state


class MalformedSampleError(ValueError):
    """A sample payload does not have the expected shape."""

    pass
