"""
Browser helper utilities.

User-agent generation for the login browser context and cURL rendering of
intercepted requests for debugging. Rendered requests are redacted: sensitive
headers and credential fields never appear in clear text.
"""

import json
import random
import shlex
from typing import Any, Mapping, Optional

from peakauth.core.immutables import (
    CURL_SKIPPED_HEADERS, FALLBACK_USER_AGENT, SENSITIVE_HEADERS,
    USER_AGENT_BROWSERS, USER_AGENT_PLATFORMS
)
from peakauth.utils.logger import REDACTED, redact_mapping, redact_text


def generate_user_agent(rng: Optional[random.Random] = None) -> str:
    """Return a realistic desktop User-Agent string picked at random."""
    rng = rng or random
    name = rng.choice(sorted(USER_AGENT_BROWSERS))
    browser = USER_AGENT_BROWSERS[name]
    version = rng.choice(browser["versions"])
    platform = rng.choice(USER_AGENT_PLATFORMS)
    webkit = browser["webkit"]

    if name == "Chrome":
        return f"Mozilla/5.0 ({platform}) AppleWebKit/{webkit} (KHTML, like Gecko) Chrome/{version} Safari/{webkit}"
    if name == "Firefox":
        return f"Mozilla/5.0 ({platform}; rv:{version}) Gecko/20100101 Firefox/{version}"
    if name == "Safari":
        return f"Mozilla/5.0 ({platform}) AppleWebKit/{webkit} (KHTML, like Gecko) Version/{version} Safari/{webkit}"
    return FALLBACK_USER_AGENT


def _redact_body(body: Any) -> Optional[str]:
    if body is None or body == "":
        return None
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, Mapping):
        return json.dumps(redact_mapping(body))
    if isinstance(body, str):
        try:
            parsed = json.loads(body)
        except ValueError:
            return redact_text(body)
        if isinstance(parsed, Mapping):
            return json.dumps(redact_mapping(parsed))
        return body
    return redact_text(str(body))


def render_curl(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    body: Any = None
) -> str:
    """
    Render a request as an equivalent, redacted cURL command.

    Args:
        method: HTTP method
        url: Request URL
        headers: Request headers; browser noise headers are dropped
        body: Request body as text, bytes or a mapping

    Returns:
        A multi-line cURL command
    """
    parts = [f"curl -X {method.upper()} {shlex.quote(url)}"]

    for key, value in (headers or {}).items():
        lowered = key.lower()
        if lowered in CURL_SKIPPED_HEADERS or lowered.startswith("sec-fetch-"):
            continue
        if lowered in SENSITIVE_HEADERS:
            value = REDACTED
        parts.append(f"-H {shlex.quote(f'{key}: {value}')}")

    data = _redact_body(body)
    if data is not None:
        parts.append(f"-d {shlex.quote(data)}")

    return " \\\n  ".join(parts)
