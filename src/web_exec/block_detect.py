from __future__ import annotations

"""
block_detect.py — эвристики "этого уровня исполнения недостаточно".

Три разные вещи:
- check_escalation(): смотрит на ответ HTTP-уровня и решает, нужен ли браузер;
- detect_challenge(): смотрит на DOM в браузере (challenge/captcha/fingerprint/rate-limit);
- block_hint(): грубая подсказка для диагностики (как раньше в HttpEngine).

Важно: это НЕ "обход". Решать challenge будет провайдер на более дорогом уровне,
здесь только детектор, который говорит "поднимаемся выше".
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

_TAG_RE = re.compile(r"<[^>]*>")

JS_REQUIRED_MARKERS = ("Please enable JavaScript", "JavaScript is required")
CHALLENGE_BODY_MARKERS = ("challenge", "captcha")
CHALLENGE_STATUSES = (403, 503)
BLOCKED_STATUS = 403

MINIMAL_BODY_CHARS = 1000
MINIMAL_TEXT_CHARS = 100

# порядок важен: первый сработавший тип и есть ответ
CHALLENGE_TYPES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("challenge", ("cf-browser-verification", "challenge-running")),
    ("captcha", ("captcha", "recaptcha", "hcaptcha")),
    ("fingerprint", ("browser check", "validating your browser")),
    ("rate-limit", ("rate limit", "too many requests")),
)
CHALLENGE_URL_MARKERS = ("cf_chl",)


def visible_text(html: str) -> str:
    return _TAG_RE.sub("", html or "").strip()


def is_challenge(status_code: int, body: str) -> bool:
    """403/503 с маркером challenge/captcha в теле."""
    text = body or ""
    return int(status_code or 0) in CHALLENGE_STATUSES and any(m in text for m in CHALLENGE_BODY_MARKERS)


@dataclass(frozen=True)
class EscalationCheck:
    needed: bool
    reason: Optional[str] = None


def check_escalation(status_code: int, body: str) -> EscalationCheck:
    """Decide whether an HTTP-tier response is good enough or needs a browser."""
    text = body or ""

    for marker in JS_REQUIRED_MARKERS:
        if marker in text:
            return EscalationCheck(True, "JavaScript required")

    if is_challenge(status_code, text):
        return EscalationCheck(True, "Challenge not resolved")

    if int(status_code or 0) == BLOCKED_STATUS:
        return EscalationCheck(True, "Blocked - HTTP 403")

    # SPA shell: <div id="root"></div> и почти ничего видимого
    if len(text) < MINIMAL_BODY_CHARS and len(visible_text(text)) < MINIMAL_TEXT_CHARS:
        return EscalationCheck(True, "Minimal content - likely SPA")

    return EscalationCheck(False)


def detect_challenge(html: str, url: str = "") -> Optional[str]:
    """Returns challenge type for a rendered page, or None."""
    content = (html or "").lower()
    if any(m in (url or "") for m in CHALLENGE_URL_MARKERS):
        return "challenge"
    for kind, markers in CHALLENGE_TYPES:
        if any(m in content for m in markers):
            return kind
    return None


def _headers_lower(headers: Optional[Mapping[str, Any]]) -> dict[str, str]:
    out: dict[str, str] = {}
    for k, v in (headers or {}).items():
        out[str(k).lower()] = str(v)
    return out


def block_hint(status_code: int, headers: Optional[Mapping[str, Any]], body: str) -> Optional[str]:
    """Очень грубая эвристика: помогает в отладке, но не является 'детектором'."""
    sc = int(status_code or 0)
    if sc not in (401, 403, 429, 503):
        return None
    h = _headers_lower(headers)
    txt = (body or "")[:6000].lower()
    if "cf-ray" in h or "cloudflare" in h.get("server", "").lower():
        return "cloudflare"
    if "captcha" in txt:
        return "captcha"
    if "checking your browser" in txt or "just a moment" in txt:
        return "js_challenge"
    if sc == 429 or "too many requests" in txt:
        return "rate_limited"
    if "access denied" in txt or "forbidden" in txt:
        return "access_denied"
    if sc == 401 or "sign in" in txt or "authorization" in txt:
        return "auth_required"
    return None
