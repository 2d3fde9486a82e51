from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

import requests

from jira_agent.errors import DelegateStreamError

_TIMEOUT = 45.0
_CONNECT_TIMEOUT = 5.0

TERMINAL_EVENT = "done"
ERROR_EVENT = "error"


@dataclass
class SseEvent:
    data: str
    event: str = "message"
    id: str | None = None


def iter_sse_events(lines: Iterable[str]) -> Iterator[SseEvent]:
    """
    Parse server-sent event lines into events.

    Events are separated by a blank line; comment lines (starting with ':') are
    ignored and multi-line data fields are joined with newlines. Events without
    data are skipped.
    """
    data_lines: list[str] = []
    event_name = "message"
    event_id: str | None = None

    for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data_lines:
                yield SseEvent(data="\n".join(data_lines), event=event_name, id=event_id)
            data_lines, event_name, event_id = [], "message", None
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event_name = value.strip() or "message"
        elif name == "id":
            event_id = value.strip()

    # A trailing event without its blank-line delimiter is incomplete and dropped


def build_query(query: str, issue_key: str | None = None) -> str:
    if issue_key:
        return f"{query}\n\nJira issue relacionado: {issue_key}"
    return query


class DevelopmentClient:
    """
    Client for the downstream development (code-generation) service.

    The service answers with a text/event-stream. Data chunks are accumulated until
    the terminal event arrives; a stream that closes before it is a failure.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = _TIMEOUT,
        terminal_event: str = TERMINAL_EVENT,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not url or not api_key:
            raise ValueError("Missing required development agent configuration")

        self.url = url if url.startswith(("http://", "https://")) else f"https://{url}"
        self.api_key = api_key
        self.timeout = timeout
        self.terminal_event = terminal_event
        self.session = session or requests.Session()
        self._clock = clock

    def _bounded_lines(self, lines: Iterable[str], deadline: float) -> Iterator[str]:
        # Checked per raw line so keep-alive comments cannot hold the stream open
        for line in lines:
            if self._clock() > deadline:
                raise DelegateStreamError(
                    f"Development agent did not finish within {self.timeout:.0f}s"
                )
            yield line

    def delegate(self, query: str, issue_key: str | None = None) -> str:
        """
        Send a development task and wait for the final result.

        Raises:
            DelegateStreamError: On HTTP errors, error events, timeouts, or a stream
                that ends without the terminal event.
        """
        deadline = self._clock() + self.timeout
        headers = {
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
        }
        payload = {"query": build_query(query, issue_key)}

        try:
            resp = self.session.post(
                self.url,
                json=payload,
                headers=headers,
                stream=True,
                timeout=(_CONNECT_TIMEOUT, self.timeout),
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise DelegateStreamError(f"Development agent request failed ({self.url}): {e}") from e

        # Without a charset requests would yield bytes from iter_lines
        resp.encoding = resp.encoding or "utf-8"
        chunks: list[str] = []
        try:
            lines = self._bounded_lines(resp.iter_lines(decode_unicode=True), deadline)
            for event in iter_sse_events(lines):
                if event.event == ERROR_EVENT:
                    raise DelegateStreamError(f"Development agent error: {event.data}")
                if event.event == self.terminal_event:
                    return event.data or "".join(chunks)
                chunks.append(event.data)
        except requests.RequestException as e:
            raise DelegateStreamError(f"Development agent stream failed: {e}") from e
        finally:
            resp.close()

        raise DelegateStreamError(
            "Development agent stream ended before the terminal event "
            f"({len(chunks)} chunks received)"
        )
