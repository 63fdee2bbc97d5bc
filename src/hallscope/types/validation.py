"""Handler/client correspondence bookkeeping.

Every host command is implemented twice: a `@handler` in the mock host and a
`@command` function in the client. Both decorators register here so the two
sides can be checked against each other (from test, or at startup).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable


@dataclass
class HandlerInfo:
    """Stores the mapping between a host handler and its client methods.

    Attributes:
        handler_func: The host handler function
        client_methods: List of client method names that use this handler
        command: The command string that identifies this handler
        requires_device: Whether the handler refuses to run before `init_device`
    """

    handler_func: Callable
    client_methods: list[str]
    command: str
    requires_device: bool = False


HANDLER_REGISTRY: dict[str, HandlerInfo] = {}
PENDING_COMMAND_VALIDATIONS: list[tuple[str, str]] = []


class ValidationError(Exception):
    """Base exception for validation errors."""

    pass


def validate_handler_client_correspondence() -> list[str]:
    """Validates the bidirectional correspondence between handlers and client methods.

    Checks that:

    1. All client commands (@command decorated) have matching handlers registered
    2. All handlers (@handler decorated) have at least one client method
    3. All declared client methods exist in the client module and are decorated
       with the same command

    Both the client and the mock host modules must have been imported first.

    Returns:
        List of validation error messages, empty if all valid
    """
    errors = []

    for command, func_name in PENDING_COMMAND_VALIDATIONS:
        if command not in HANDLER_REGISTRY:
            errors.append(
                f"Command {command} used by {func_name} not found in handler registry"
            )

    for command, info in HANDLER_REGISTRY.items():
        if not info.client_methods:
            errors.append(
                f"Handler {info.handler_func.__name__} for command {command}"
                + " has no registered client methods"
            )

    import hallscope.host.client as client

    for command, info in HANDLER_REGISTRY.items():
        for client_method in info.client_methods:
            if not hasattr(client, client_method):
                errors.append(
                    f"Client method {client_method} for command {command}"
                    + " not found in client module"
                )
                continue

            func = getattr(client, client_method)
            if not hasattr(func, "_is_client_method"):
                errors.append(
                    f"Client method {client_method} is not decorated with @command"
                )
            elif func._command != command:
                errors.append(
                    f"Client method {client_method} uses command {func._command}"
                    + f" but handler registered it for {command}"
                )

    return errors


def assert_valid_handler_client_correspondence():
    """Validates handler-client correspondence and raises if invalid.

    Raises:
        AssertionError: If any validation errors are found
    """
    errors = validate_handler_client_correspondence()
    if errors:
        raise AssertionError(
            "Handler-client correspondence validation failed:\n"
            + "\n".join(f"- {err}" for err in errors)
        )
