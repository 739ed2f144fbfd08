from __future__ import annotations

import hashlib
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_TRACKING_QUERY_PARAMS = {
    "fbclid",
    "gclid",
    "igshid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
    "ref",
    "source",
}

_GITHUB_API_REPO_PATH = re.compile(r"^/repos/(?P<repo>[^/]+/[^/]+)(?:/(?P<rest>.*))?$")
_GITHUB_WEB_SEGMENTS = {
    "pulls": "pull",
    "commits": "commit",
}


def canonicalize_url(url: str) -> str:
    value = (url or "").strip()
    if not value:
        return value

    parsed = urlsplit(value)
    if not parsed.scheme or not parsed.netloc:
        return value

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()

    path = parsed.path or "/"
    if path != "/":
        path = path.rstrip("/")

    filtered_query = []
    for key, query_value in parse_qsl(parsed.query, keep_blank_values=True):
        lowered = key.lower()
        if lowered.startswith("utm_"):
            continue
        if lowered in _TRACKING_QUERY_PARAMS:
            continue
        filtered_query.append((key, query_value))

    filtered_query.sort(key=lambda item: (item[0], item[1]))
    query = urlencode(filtered_query, doseq=True)

    return urlunsplit((scheme, netloc, path, query, ""))


def stable_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def derive_external_id(raw_id: str | None, canonical_url: str) -> str:
    if raw_id:
        normalized_raw = raw_id.strip()
        if normalized_raw.startswith("http://") or normalized_raw.startswith("https://"):
            return canonicalize_url(normalized_raw)
        return normalized_raw

    return f"urlhash:{stable_hash(canonical_url)}"


def github_web_url(api_url: str | None, fallback: str = "") -> str:
    """Map a REST API subject URL (``/repos/o/r/pulls/5``) to its github.com page.

    Release and other subject URLs without a web counterpart resolve to the
    repository page, or ``fallback`` when the URL is missing or not a repo URL.
    """
    value = (api_url or "").strip()
    if not value:
        return fallback

    parsed = urlsplit(value)
    path = parsed.path
    # GitHub Enterprise serves the API under /api/v3 on the web host.
    if path.startswith("/api/v3/"):
        path = path[len("/api/v3"):]
    match = _GITHUB_API_REPO_PATH.match(path)
    if match is None:
        return fallback or value

    host = parsed.netloc.lower()
    if host.startswith("api."):
        host = host[len("api."):]

    base = f"{parsed.scheme or 'https'}://{host}/{match.group('repo')}"
    rest = match.group("rest") or ""
    segments = [segment for segment in rest.split("/") if segment]
    if len(segments) >= 2 and segments[0] in {"pulls", "issues", "commits", "discussions"}:
        kind = _GITHUB_WEB_SEGMENTS.get(segments[0], segments[0])
        return f"{base}/{kind}/{segments[1]}"
    return base
