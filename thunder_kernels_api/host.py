"""Collaborators supplied by the host application.

The host (an editor or a Jupyter front end) subclasses or duck-types these to
hand document lifecycle events and user notifications to the provider.
"""

import asyncio
import inspect
import logging
import typing as t
from dataclasses import dataclass

logger = logging.getLogger(__name__)

NOTEBOOK_LANGUAGE_ID = "jupyter"
NOTEBOOK_SUFFIX = ".ipynb"


@dataclass(frozen=True)
class Document:
    file_name: str
    language_id: str = ""


def is_notebook_document(document: t.Any) -> bool:
    """Whether ``document`` is one whose closing may end remote sessions."""
    language_id = getattr(document, "language_id", "")
    file_name = str(getattr(document, "file_name", ""))
    return language_id == NOTEBOOK_LANGUAGE_ID or file_name.endswith(NOTEBOOK_SUFFIX)


class DocumentEvents:
    """Document lifecycle notifier.

    The default implementation keeps its own open-document list; hosts with
    a native notion of open documents override ``open_documents``.
    """

    def __init__(self) -> None:
        self._open: t.List[t.Any] = []
        self._close_callbacks: t.List[t.Callable[[t.Any], t.Any]] = []
        self._tasks: t.Set["asyncio.Future[t.Any]"] = set()

    def open_documents(self) -> t.List[t.Any]:
        return list(self._open)

    def on_did_close(self, callback: t.Callable[[t.Any], t.Any]) -> t.Callable[[], None]:
        """Subscribe to close events, returning a function that unsubscribes."""
        self._close_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._close_callbacks:
                self._close_callbacks.remove(callback)

        return unsubscribe

    def did_open(self, document: t.Any) -> None:
        self._open.append(document)

    async def did_close(self, document: t.Any) -> None:
        """Drop ``document`` from the open list and notify subscribers.

        Coroutine callbacks are scheduled as tasks and not awaited, so closing
        never waits on their work; ``drain`` waits for them. Callback failures
        are logged.
        """
        if document in self._open:
            self._open.remove(document)
        for callback in list(self._close_callbacks):
            try:
                result = callback(document)
            except Exception:
                logger.exception("Document close callback failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._callback_done)

    async def drain(self) -> None:
        """Wait for every scheduled close callback to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _callback_done(self, task: "asyncio.Future[t.Any]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Document close callback failed", exc_info=task.exception())


class Notifier:
    """User-visible status and error messages; logs them by default."""

    def show_status(self, message: str, timeout: t.Optional[float] = None) -> None:
        logger.info(message)

    def show_error(self, message: str) -> None:
        logger.error(message)
