"""Share link construction and token extraction.

A share link is ``{base_url}/shared/{token}``. Doctors may paste either the
full link or just the code, so ``extract_token`` accepts both.
"""

from __future__ import annotations

from urllib.parse import quote, unquote, urlsplit

SHARED_SEGMENT = 'shared'


def build_share_link(base_url: str, token: str) -> str:
    """Return the public share URL for *token*."""
    if not token:
        raise ValueError('token is required')
    return f'{base_url.rstrip("/")}/{SHARED_SEGMENT}/{quote(token, safe="")}'


def extract_token(value: str | None) -> str | None:
    """Pull a share token out of a pasted link, path, or bare code.

    Resolution order for inputs that look like URLs or paths:
      1. the segment right after ``/shared/``;
      2. otherwise the last non-empty path segment.
    Anything else is treated as the token itself. Returns None for empty
    input or a link that ends at ``/shared/``.
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None

    parts = urlsplit(raw)
    if parts.scheme and parts.netloc:
        path = parts.path
    elif raw.startswith('/') or f'{SHARED_SEGMENT}/' in raw:
        path = parts.path or raw
    else:
        return raw

    segments = [unquote(s) for s in path.split('/') if s]
    if not segments:
        return None
    # Last "shared" that is followed by a segment; the base URL may itself
    # contain a "shared" segment.
    for idx in range(len(segments) - 2, -1, -1):
        if segments[idx] == SHARED_SEGMENT:
            return segments[idx + 1]
    if segments[-1] == SHARED_SEGMENT:
        return None
    return segments[-1]
