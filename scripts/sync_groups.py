"""Command-line helper for inspecting and reconciling SAML group memberships.

This module serves as a CLI wrapper around saml_groups.core services.
"""
from __future__ import annotations
import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from saml_groups.bootstrap import create_backend, create_reconciler
from saml_groups.config.settings import settings
from saml_groups.core.groups.exceptions import GroupSyncError
from saml_groups.core.privileges import SubAdminManager
from scripts import audit


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SAML group membership helper")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--operator", default="cli",
                        help="Operator identifier for audit logs (default: cli)")

    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("init-db")

    sr = sub.add_parser("reconcile")
    sr.add_argument("--uid", required=True)
    sr.add_argument("--groups", nargs="*", default=[])
    sr.add_argument("--sub-admin", action=argparse.BooleanOptionalAction,
                    default=settings.grant_sub_admin,
                    help="Make the user sub-admin of newly joined groups (default: SAML_GRANT_SUB_ADMIN)")

    sg = sub.add_parser("list-groups")
    sg.add_argument("--search", default="")
    sg.add_argument("--limit", type=int)
    sg.add_argument("--offset", type=int)

    sm = sub.add_parser("members")
    sm.add_argument("--gid", required=True)
    sm.add_argument("--search", default="")
    sm.add_argument("--limit", type=int)
    sm.add_argument("--offset", type=int)

    su = sub.add_parser("user-groups")
    su.add_argument("--uid", required=True)

    sd = sub.add_parser("delete-group")
    sd.add_argument("--gid", required=True)

    return parser


def main(argv: list[str] | None = None, sub_admin_manager: SubAdminManager | None = None) -> None:
    """Command-line entry point.

    Hosts embedding the CLI pass their sub_admin_manager; without one,
    reconcile --sub-admin is refused before anything is changed.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = settings
    if args.database_url != settings.database_url:
        config = replace(settings, database_url=args.database_url)

    try:
        backend = create_backend(config)
        if args.cmd == "init-db":
            backend.ensure_schema()
            print(f"[init-db] Schema ready at {config.database_url.split('@')[-1]}")
        elif args.cmd == "reconcile":
            if args.sub_admin and sub_admin_manager is None:
                raise ValueError("--sub-admin needs the host framework's sub-admin manager")
            reconciler = create_reconciler(config, backend, sub_admin_manager, operator=args.operator)
            result = reconciler.reconcile(args.uid, args.groups, grant_sub_admin=args.sub_admin)
            print(json.dumps(result.to_dict(), indent=2))
        elif args.cmd == "list-groups":
            for gid in backend.get_groups(args.search, args.limit, args.offset):
                print(gid)
        elif args.cmd == "members":
            for uid in backend.users_in_group(args.gid, args.search, args.limit, args.offset):
                print(uid)
        elif args.cmd == "user-groups":
            for gid in backend.get_user_groups(args.uid):
                print(gid)
        elif args.cmd == "delete-group":
            if backend.delete_group(args.gid):
                audit.log_membership_event("group_delete", "", args.gid, operator=args.operator)
                print(f"[delete-group] Group '{args.gid}' deleted")
            else:
                print(f"[delete-group] Group '{args.gid}' not found", file=sys.stderr)
                sys.exit(1)
    except (GroupSyncError, ValueError) as e:
        print(f"[{args.cmd}] Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
