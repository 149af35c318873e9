"""GitHub helpers: repo URL parsing, webhook signatures, ref handling."""

from __future__ import annotations

import hashlib
import hmac
import re

SIGNATURE_PREFIX = "sha256="

_GITHUB_URL = re.compile(r"github\.com[/:]([^/]+)/([^/?#]+)")


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Extract (owner, repo) from a GitHub URL.

    Handles:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - git@github.com:owner/repo.git

    Raises ValueError if the URL cannot be parsed.
    """
    match = _GITHUB_URL.search(repo_url.strip())
    if match is None:
        raise ValueError(f"cannot parse GitHub repo URL: {repo_url!r}")
    owner, repo = match.group(1), match.group(2).rstrip("/")
    if repo.endswith(".git"):
        repo = repo[:-4]
    if not owner or not repo:
        raise ValueError(f"cannot parse GitHub repo URL: {repo_url!r}")
    return owner, repo


def sign_payload(body: bytes, secret: str) -> str:
    """Return the ``X-Hub-Signature-256`` header value for *body*."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Constant-time check of a ``sha256=<hex>`` signature over the raw body."""
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(signature, sign_payload(body, secret))


def branch_from_ref(ref: str | None) -> str:
    """``refs/heads/feature/x`` → ``feature/x``."""
    if not ref:
        return ""
    return ref.removeprefix("refs/heads/")
