"""Recipient normalization for outbound sends."""

from __future__ import annotations

import re

from wagate.errors import InvalidRecipient

USER_SERVER = "s.whatsapp.net"
GROUP_SERVER = "g.us"

_NON_DIGITS = re.compile(r"\D")


def normalize_jid(to: object) -> str:
    """Turn a caller-supplied recipient into a qualified JID.

    Anything containing ``@`` is taken as already qualified. Otherwise every
    non-digit is stripped (so ``"+1 (555) 123-4567"`` works) and the result
    is addressed as a direct message.
    """
    raw = "" if to is None else str(to)
    if "@" in raw:
        return raw
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        raise InvalidRecipient(f"cannot derive a phone number from {raw!r}")
    return f"{digits}@{USER_SERVER}"


def is_group_jid(jid: str) -> bool:
    return jid.endswith(f"@{GROUP_SERVER}")
