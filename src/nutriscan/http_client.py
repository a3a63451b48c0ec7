from __future__ import annotations

import json
import urllib.error
import urllib.request


class HttpRequestError(RuntimeError):
    pass


def post_json(
    url: str,
    payload: dict,
    *,
    timeout_s: float = 5.0,
    headers: dict[str, str] | None = None,
) -> dict:
    data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", "Accept": "application/json", **(headers or {})},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            body = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
        raise HttpRequestError(f"HTTP {exc.code} from {url}: {body}") from exc
    except urllib.error.URLError as exc:
        raise HttpRequestError(f"Request to {url} failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise HttpRequestError(f"Request to {url} timed out after {timeout_s}s") from exc

    try:
        data = json.loads(body) if body else {}
    except json.JSONDecodeError as exc:
        raise HttpRequestError(f"Non-JSON response from {url}: {body[:200]}") from exc
    if not isinstance(data, dict):
        raise HttpRequestError(f"Expected a JSON object from {url}, got {type(data).__name__}")
    return data
