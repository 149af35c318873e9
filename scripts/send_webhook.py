#!/usr/bin/env python3
"""Replay a saved GitHub webhook payload against a running Ontrackr API.

The body is signed with ONTRACKR_WEBHOOK_SECRET exactly like GitHub does.

Usage:
    python scripts/send_webhook.py push payload.json
    python scripts/send_webhook.py pull_request pr.json --url http://localhost:8000
"""

from __future__ import annotations

import argparse
import os
import sys
import uuid
from pathlib import Path

import httpx

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

from ontrackr.core.github import sign_payload


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("event", help="X-GitHub-Event value (push, pull_request, issues, ping)")
    parser.add_argument("payload", type=Path, help="JSON payload file")
    parser.add_argument("--url", default="http://localhost:8000")
    args = parser.parse_args()

    body = args.payload.read_bytes()
    headers = {
        "Content-Type": "application/json",
        "X-GitHub-Event": args.event,
        "X-GitHub-Delivery": str(uuid.uuid4()),
    }
    if secret := os.environ.get("ONTRACKR_WEBHOOK_SECRET"):
        headers["X-Hub-Signature-256"] = sign_payload(body, secret)

    resp = httpx.post(f"{args.url}/api/webhooks/github", content=body, headers=headers, timeout=30)
    print(resp.status_code)
    print(resp.text)
    return 0 if resp.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
