"""Uniform wrapper around every host command invocation.

`CommandGateway.invoke` is the only place a command outcome is turned into a
user-visible notice. Callers decide whether to react further to a failure (the
failure is always re-raised as `CommandError`), never whether the user is told.
"""

from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from hallscope.types import (
    SEVERITY,
    CommandError,
    HostInvoker,
    Notice,
    Notifier,
)

DEFAULT_SUCCESS_TITLE = "Sent"
DEFAULT_SUCCESS_BODY = "Done"
DEFAULT_ERROR_TITLE = "Request failed"


class LogNotifier:
    """Notifier that only writes to the log. Used when no UI is attached."""

    _LEVELS = {
        SEVERITY.INFO: "INFO",
        SEVERITY.SUCCESS: "SUCCESS",
        SEVERITY.WARNING: "WARNING",
        SEVERITY.ERROR: "ERROR",
    }

    def notify(self, notice: Notice) -> None:
        logger.log(
            self._LEVELS.get(notice.severity, "INFO"),
            "[notice] {}: {}",
            notice.title,
            notice.body,
        )


class CommandGateway:
    def __init__(self, invoker: HostInvoker, notifier: Optional[Notifier] = None):
        self._invoker = invoker
        self.notifier: Notifier = notifier if notifier is not None else LogNotifier()

    async def invoke(
        self,
        name: str,
        args: Optional[dict[str, Any]] = None,
        *,
        success_title: Optional[str] = None,
        error_title: Optional[str] = None,
        quiet: bool = False,
        report_errors: bool = True,
    ) -> Any:
        """Run host command `name` and resolve with its payload.

        On success a notice is emitted (unless `quiet`) titled `success_title`
        (default "Sent") whose body is the payload when the host answered with
        a string, "Done" otherwise.

        On failure an error notice carrying the stringified reason is emitted
        (unless `report_errors` is False, as for background polling) and the
        failure is re-raised as `CommandError`.
        """
        try:
            result = await self._invoker(name, args or {})
        except CommandError as e:
            self._report(e, error_title, report_errors)
            raise
        except Exception as e:
            err = CommandError(name, str(e))
            self._report(err, error_title, report_errors)
            raise err from e

        logger.debug("Command {} succeeded: {}", name, result)
        if not quiet:
            body = result if isinstance(result, str) and result else DEFAULT_SUCCESS_BODY
            self.notifier.notify(
                Notice(SEVERITY.SUCCESS, success_title or DEFAULT_SUCCESS_TITLE, body)
            )
        return result

    def _report(
        self, err: CommandError, error_title: Optional[str], report_errors: bool
    ) -> None:
        logger.warning("Command {} failed: {}", err.command, err.reason)
        if report_errors:
            self.notifier.notify(
                Notice(SEVERITY.ERROR, error_title or DEFAULT_ERROR_TITLE, err.reason)
            )

    def report_failure(self, title: str, reason: str) -> None:
        """Surface a failure that did not come from a single command (e.g. a
        stalled stream)."""
        logger.error("{}: {}", title, reason)
        self.notifier.notify(Notice(SEVERITY.ERROR, title, reason))

    def forward(self, notice: Notice) -> None:
        """Pass a host-originated notice through to the user unchanged."""
        self.notifier.notify(notice)
