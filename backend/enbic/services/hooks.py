# Overview: Post-commit side effects returned by mutating operations.

"""
Post-commit hooks.

Mutating operations never run their side effects inline. They record the
event names on a caller-owned PostCommitHooks; the caller runs them after
the primary transaction commits. A failing hook is logged and swallowed so it
can never fail the operation that triggered it.
"""

from __future__ import annotations

import logging
import threading

from flask import Flask, current_app

from ..extensions import db
from .concurrency import commit_with_retry


logger = logging.getLogger(__name__)

HOOK_REGENERATE_REMINDERS = "regenerate_reminders"


def _regenerate_reminders() -> None:
    from .reminder_service import generate_reminders
    generate_reminders()


HOOK_HANDLERS = {
    HOOK_REGENERATE_REMINDERS: _regenerate_reminders,
}


class PostCommitHooks:
    """Ordered, de-duplicated list of post-commit events."""

    def __init__(self) -> None:
        self._events: list[str] = []

    def add(self, event: str) -> None:
        if event not in HOOK_HANDLERS:
            raise KeyError(f"Unknown post-commit hook: {event}")
        if event not in self._events:
            self._events.append(event)

    @property
    def events(self) -> list[str]:
        return list(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)

    def run(self, app: Flask) -> None:
        """
        Execute the recorded hooks in a fresh app context.

        POST_COMMIT_HOOKS_ASYNC=True: fire-and-forget daemon thread.
        Otherwise inline (still isolated from the caller's session).
        """
        events = self.events
        self._events.clear()
        if not events:
            return

        if app.config.get("POST_COMMIT_HOOKS_ASYNC", True):
            thread = threading.Thread(
                target=_run_events,
                args=(app, events),
                daemon=True,
                name="enbic-post-commit",
            )
            thread.start()
        else:
            _run_events(app, events)


def _run_events(app: Flask, events: list[str]) -> None:
    with app.app_context():
        for event in events:
            try:
                HOOK_HANDLERS[event]()
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Post-commit hook %s failed", event)


def commit_and_run(hooks: PostCommitHooks | None = None) -> None:
    """Commit the request's unit of work, then fire its post-commit hooks."""
    commit_with_retry()
    if hooks:
        hooks.run(current_app._get_current_object())
