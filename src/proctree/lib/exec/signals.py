"""Signal name parsing and return-code mapping."""

from __future__ import annotations

import signal


def parse_signal(value: signal.Signals | int | str) -> signal.Signals:
    """Resolve `SIGTERM`, `TERM`, `15` or a `Signals` member to a signal."""

    if isinstance(value, signal.Signals):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return signal.Signals(value)
        except ValueError as error:
            raise ValueError(f"Unknown signal number: {value}.") from error
    if not isinstance(value, str):
        raise ValueError(f"Unsupported signal value: {value!r}.")

    normalized = value.strip().upper()
    if not normalized:
        raise ValueError("Signal name must not be empty.")
    if normalized.isdigit():
        return parse_signal(int(normalized))
    if not normalized.startswith("SIG"):
        normalized = f"SIG{normalized}"
    try:
        return signal.Signals[normalized]
    except KeyError as error:
        raise ValueError(f"Unknown signal name: {value!r}.") from error


def split_return_code(raw_return_code: int) -> tuple[int | None, signal.Signals | None]:
    """Split an asyncio/Popen return code into (exit_code, terminating signal)."""

    if raw_return_code >= 0:
        return raw_return_code, None
    try:
        return None, signal.Signals(-raw_return_code)
    except ValueError:
        return raw_return_code, None


def signal_to_exit_code(received_signal: signal.Signals) -> int:
    """Shell convention for a process killed by a signal."""

    return 128 + int(received_signal)
