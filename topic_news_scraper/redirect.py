from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional

from topic_news_scraper.errors import DecodeFailure


logger = logging.getLogger(__name__)

_MARKER = "5:"
_URL_RE = re.compile(r'https?://[^"\s]+')
_URLSAFE_TO_STD = str.maketrans("-_", "+/")


def _payload(jslog: str) -> str:
    _head, sep, rest = jslog.partition(_MARKER)
    if not sep:
        raise DecodeFailure("attribute has no '5:' segment")
    payload = rest.split(";", 1)[0].strip()
    if not payload:
        raise DecodeFailure("empty '5:' segment")
    return payload


def decode_jslog_strict(jslog: str) -> str:
    """Recover the publisher URL from a Google News ``jslog`` attribute.

    The attribute looks like ``"95014; 5:<base64>; track:click"``; the base64
    text after ``5:`` is a JSON-ish array holding the article URL.
    Raises ``DecodeFailure`` when any step fails.
    """

    # either base64 alphabet may show up; normalize the URL-safe one
    payload = _payload(jslog).translate(_URLSAFE_TO_STD)
    # jslog payloads drop the trailing "=" padding
    padded = payload + "=" * (-len(payload) % 4)
    try:
        raw = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeFailure(f"invalid base64 payload: {e}") from e

    decoded = raw.decode("utf-8", errors="replace")
    m = _URL_RE.search(decoded)
    if not m:
        raise DecodeFailure("decoded payload holds no URL")
    return m.group(0)


def decode_jslog(jslog: Optional[str]) -> Optional[str]:
    """Like ``decode_jslog_strict`` but returns None instead of raising."""

    if not jslog:
        return None
    try:
        return decode_jslog_strict(jslog)
    except DecodeFailure as e:
        logger.debug("Could not decode jslog %.60r: %s", jslog, e)
        return None
    except Exception:
        logger.exception("Unexpected error decoding jslog %.60r", jslog)
        return None
