"""Disconnect cause codes reported by the chat network when a socket closes."""
from enum import IntEnum
from typing import Optional, Union


class DisconnectCause(IntEnum):
    """Close codes as reported by the network (HTTP-like numbering)."""
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    LOGGED_OUT = 401
    FORBIDDEN = 403
    MULTIDEVICE_MISMATCH = 411
    PRECONDITION_FAILED = 412
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515


# Causes after which retrying with the same credentials cannot succeed.
PERMANENT_CAUSES = frozenset({
    DisconnectCause.LOGGED_OUT,
    DisconnectCause.FORBIDDEN,
    DisconnectCause.MULTIDEVICE_MISMATCH,
    DisconnectCause.PRECONDITION_FAILED,
    DisconnectCause.BAD_SESSION,
})

_ALIASES = {
    "connectionclosed": DisconnectCause.CONNECTION_CLOSED,
    "connectionlost": DisconnectCause.CONNECTION_LOST,
    "timedout": DisconnectCause.CONNECTION_LOST,
    "connectionreplaced": DisconnectCause.CONNECTION_REPLACED,
    "loggedout": DisconnectCause.LOGGED_OUT,
    "unauthorized": DisconnectCause.LOGGED_OUT,
    "forbidden": DisconnectCause.FORBIDDEN,
    "multidevicemismatch": DisconnectCause.MULTIDEVICE_MISMATCH,
    "preconditionfailed": DisconnectCause.PRECONDITION_FAILED,
    "badsession": DisconnectCause.BAD_SESSION,
    "unavailableservice": DisconnectCause.UNAVAILABLE_SERVICE,
    "restartrequired": DisconnectCause.RESTART_REQUIRED,
}


def parse_cause(raw: Union[int, str, None]) -> Optional[DisconnectCause]:
    """Map a raw close cause to a known DisconnectCause.

    Accepts the numeric code (as int or digit string) or a symbolic name
    in camelCase, snake_case or upper case (``loggedOut``,
    ``logged_out``, ``LOGGED_OUT``). Returns None for anything not
    recognised, which callers treat as a transient failure.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        code = raw
    else:
        text = raw.strip()
        if text.isdigit():
            code = int(text)
        else:
            return _ALIASES.get(text.replace("_", "").replace("-", "").lower())
    try:
        return DisconnectCause(code)
    except ValueError:
        return None


def is_permanent(cause: Optional[DisconnectCause]) -> bool:
    return cause in PERMANENT_CAUSES
