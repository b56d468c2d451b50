#!/usr/bin/env python3
"""
Portal smoke check against a live backend.

Signs in with the given credentials, prints the dashboard for the chosen
period and, with --ping, checks the chat webhook.
Configuration comes from the environment (SUPABASE_URL, SUPABASE_ANON_KEY,
WEBHOOK_URL, ...).
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.api_models import LoginRequest
from portal.chat_webhook_client import ChatIdentity
from portal.container import build_portal
from portal.logging_config import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Sign in and print the portal dashboard")
    parser.add_argument("--email", default=os.getenv("PORTAL_EMAIL", ""))
    parser.add_argument("--period", default="")
    parser.add_argument("--ping", action="store_true", help="also ping the chat webhook")
    args = parser.parse_args()

    configure_logging()
    password = os.getenv("PORTAL_PASSWORD", "")
    if not args.email or not password:
        print("--email (or PORTAL_EMAIL) and PORTAL_PASSWORD are required", file=sys.stderr)
        return 2

    portal = build_portal()
    if not portal.identity.login(LoginRequest(email=args.email, password=password)):
        print("login failed", file=sys.stderr)
        return 1

    user = portal.identity.current_user()
    result = portal.service.dashboard(args.period or None)
    summary = {
        "user": user.display_name,
        "role": user.role,
        "status": result.status,
        "error": result.error,
        "metrics": portal.gateway.metrics.snapshot(),
    }
    if result.data:
        data = dict(result.data)
        data.pop("user", None)
        summary["dashboard"] = json.loads(json.dumps(data, default=lambda o: o.model_dump()))

    if args.ping:
        identity = ChatIdentity(user_id=user.id, role=user.role, email=user.email, display_name=user.display_name)
        summary["webhook"] = portal.chat.ping(identity).as_dict()

    portal.identity.logout()
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0 if result.status != "error" else 1


if __name__ == "__main__":
    raise SystemExit(main())
