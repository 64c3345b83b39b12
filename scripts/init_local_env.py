#!/usr/bin/env python3
from __future__ import annotations

import argparse
import secrets
import sys
from pathlib import Path


def _set_or_append(lines: list[str], key: str, value: str) -> list[str]:
    prefix = f"{key}="
    replaced = False
    next_lines: list[str] = []
    for line in lines:
        if line.startswith(prefix):
            next_lines.append(f"{prefix}{value}")
            replaced = True
        else:
            next_lines.append(line)
    if not replaced:
        next_lines.append(f"{prefix}{value}")
    return next_lines


def _render_env(example_path: Path, *, user: str, token: str, admin_token: str) -> str:
    lines = example_path.read_text(encoding="utf-8").splitlines()
    lines = _set_or_append(lines, "AUTH_TOKENS", f"{user}:{token},admin:{admin_token}")
    lines = _set_or_append(lines, "AUTH_ADMIN_USERS", "admin")
    lines = _set_or_append(lines, "AUTH_ENABLED", "true")
    lines = _set_or_append(lines, "CONFIG_PROFILE", "local-dev")
    return "\n".join(lines) + "\n"


def _mask(token: str) -> str:
    return f"{token[:4]}...{token[-4:]}" if len(token) >= 8 else token


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Create a local .env from .env.example with fresh reader and admin tokens.",
    )
    parser.add_argument("--example", default=".env.example", help="Template path (default: .env.example)")
    parser.add_argument("--output", default=".env", help="Output path (default: .env)")
    parser.add_argument("--user", default="local-user", help="Reader account name (default: local-user)")
    parser.add_argument("--token", default="", help="Reader token override; random when empty.")
    parser.add_argument("--force", action="store_true", help="Overwrite the output file if it exists.")
    args = parser.parse_args()

    example_path = Path(args.example).resolve()
    output_path = Path(args.output).resolve()

    if not example_path.exists():
        print(f"[init-local-env] missing template: {example_path}")
        return 2
    if output_path.exists() and not args.force:
        print(f"[init-local-env] output exists: {output_path}")
        print("[init-local-env] rerun with --force to overwrite")
        return 1

    user = args.user.strip() or "local-user"
    token = args.token.strip() or secrets.token_urlsafe(32)
    admin_token = secrets.token_urlsafe(32)
    rendered = _render_env(example_path, user=user, token=token, admin_token=admin_token)
    output_path.write_text(rendered, encoding="utf-8", newline="\n")

    print(f"[init-local-env] wrote {output_path}")
    print(f"[init-local-env] reader {user}: {_mask(token)}")
    print(f"[init-local-env] admin: {_mask(admin_token)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
