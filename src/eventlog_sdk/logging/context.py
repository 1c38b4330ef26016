"""Context variables for structured logging."""

from contextvars import ContextVar

_session_id: ContextVar[str] = ContextVar("session_id", default="")
_stream: ContextVar[str] = ContextVar("stream", default="")
_subject: ContextVar[str] = ContextVar("subject", default="")


def set_log_context(
    session_id: str | None = None,
    stream: str | None = None,
    subject: str | None = None,
) -> None:
    if session_id is not None:
        _session_id.set(session_id)
    if stream is not None:
        _stream.set(stream)
    if subject is not None:
        _subject.set(subject)


def get_log_context() -> dict[str, str]:
    return {
        "session_id": _session_id.get(),
        "stream": _stream.get(),
        "subject": _subject.get(),
    }


def clear_log_context() -> None:
    _session_id.set("")
    _stream.set("")
    _subject.set("")
