"""
Marketplace CLI - operator tooling for a local marketplace database.

Usage:
    marketplace stats [--json]
    marketplace ratings recompute [--user ID] [--role ROLE]
    marketplace complaints list [--status S] [--json]
    marketplace complaints actions COMPLAINT_ID [--json]
    marketplace upgrades list [--status S] [--json]
    marketplace users show USER_ID [--json]
    marketplace users verify USER_ID [--revoke]
    marketplace serve [--host H] [--port P] [--reload]
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from marketplace import Marketplace
from marketplace.config import MarketplaceConfig
from marketplace.errors import MarketplaceError
from marketplace.logging_config import setup_marketplace_logging

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_stats(args, m: Marketplace):
    """Show marketplace counts."""
    stats = m.dashboard_stats()
    if args.json:
        _print_json(stats)
        return

    users = stats["users"]
    jobs = stats["jobs"]
    complaints = stats["complaints"]
    upgrades = stats["upgrade_requests"]
    print("Marketplace Status")
    print("=" * 40)
    print(
        f"Users:      {users['total']} "
        f"({users['seekers']} seekers, {users['providers']} providers, {users['admins']} admins)"
    )
    print(f"Jobs:       {jobs['total']}")
    for status, count in sorted(jobs["by_status"].items()):
        print(f"  {status:<12} {count}")
    print(
        f"Complaints: {complaints['total']} "
        f"({complaints['pending']} pending, {complaints['investigating']} investigating)"
    )
    print(f"Upgrades:   {upgrades['total']} ({upgrades['pending']} pending)")


def cmd_ratings(args, m: Marketplace):
    """Handle ratings subcommands."""
    if args.ratings_action == "recompute":
        if args.user:
            snapshot = m.ratings.recompute(args.user)
            print(
                f"{snapshot.user_id}: rating={snapshot.rating:.2f} "
                f"reviews={snapshot.review_count} completed={snapshot.total_jobs_completed} "
                f"top_rated={snapshot.is_top_rated}"
            )
        else:
            count = m.ratings.recompute_all(role=args.role)
            print(f"Recomputed ratings for {count} users")


def cmd_complaints(args, m: Marketplace):
    """Handle complaints subcommands."""
    if args.complaints_action == "list":
        complaints = m.moderation.list_complaints(status=args.status, limit=args.limit)
        if args.json:
            _print_json([c.to_dict() for c in complaints])
            return
        if not complaints:
            print("No complaints found.")
            return
        for c in complaints:
            print(
                f"[{c.id[:8]}] {c.status:<13} {c.problem_type:<16} "
                f"{c.reporter_id} -> {c.reported_user_id} (action: {c.admin_action})"
            )

    elif args.complaints_action == "actions":
        actions = m.moderation.get_actions(args.complaint_id)
        if args.json:
            _print_json([a.to_dict() for a in actions])
            return
        if not actions:
            print("No admin actions recorded.")
            return
        for a in actions:
            print(
                f"{a.created_at.isoformat()} {a.action_type:<11} by {a.admin_id}: "
                f"{a.previous_status} -> {a.new_status}, "
                f"{a.previous_admin_action} -> {a.new_admin_action}"
            )
            if a.notes:
                print(f"    {a.notes}")


def cmd_upgrades(args, m: Marketplace):
    """Handle upgrades subcommands."""
    if args.upgrades_action == "list":
        requests = m.upgrades.list_requests(status=args.status, limit=args.limit)
        if args.json:
            _print_json([r.to_dict() for r in requests])
            return
        if not requests:
            print("No upgrade requests found.")
            return
        for r in requests:
            print(
                f"[{r.id[:8]}] {r.status:<9} user={r.user_id} "
                f"attachments={len(r.attachments)} created={r.created_at.date()}"
            )


def cmd_users(args, m: Marketplace):
    """Handle users subcommands."""
    if args.users_action == "show":
        user = m.users.get(args.user_id)
        if args.json:
            _print_json(user.to_dict())
            return
        print(f"User {user.id}")
        print("=" * 40)
        print(f"Roles:      {', '.join(sorted(user.roles))}")
        print(f"Upgrade:    {user.provider_upgrade_status}")
        print(f"Rating:     {user.rating:.2f} ({user.review_count} reviews)")
        print(f"Completed:  {user.total_jobs_completed}")
        print(f"Top rated:  {'Yes' if user.is_top_rated else 'No'}")
        if user.is_blocked:
            print(f"Blocked:    {user.blocked_reason or 'yes'}")

    elif args.users_action == "verify":
        verified = not args.revoke
        m.users.set_provider_verified(args.user_id, verified)
        snapshot = m.ratings.recompute(args.user_id)
        print(f"{args.user_id}: verified={verified} top_rated={snapshot.is_top_rated}")


def cmd_serve(args):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "marketplace.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="marketplace",
        description="Operator tooling for the services marketplace",
    )
    parser.add_argument("--db", help="Path to the SQLite database", default=None)
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # stats
    p_stats = subparsers.add_parser("stats", help="Show marketplace counts")
    p_stats.add_argument("--json", "-j", action="store_true")

    # ratings
    p_ratings = subparsers.add_parser("ratings", help="Rating maintenance")
    ratings_sub = p_ratings.add_subparsers(dest="ratings_action", required=True)
    r_recompute = ratings_sub.add_parser("recompute", help="Re-derive rating aggregates")
    r_recompute.add_argument("--user", "-u", help="Only this user")
    r_recompute.add_argument(
        "--role", choices=["seeker", "provider", "admin"], help="Only users holding this role"
    )

    # complaints
    p_complaints = subparsers.add_parser("complaints", help="Inspect complaints")
    complaints_sub = p_complaints.add_subparsers(dest="complaints_action", required=True)
    c_list = complaints_sub.add_parser("list", help="List complaints")
    c_list.add_argument(
        "--status", "-s", choices=["pending", "investigating", "resolved", "dismissed"]
    )
    c_list.add_argument("--limit", "-l", type=int, default=50)
    c_list.add_argument("--json", "-j", action="store_true")
    c_actions = complaints_sub.add_parser("actions", help="Show a complaint's audit trail")
    c_actions.add_argument("complaint_id", help="Complaint ID")
    c_actions.add_argument("--json", "-j", action="store_true")

    # upgrades
    p_upgrades = subparsers.add_parser("upgrades", help="Inspect provider upgrade requests")
    upgrades_sub = p_upgrades.add_subparsers(dest="upgrades_action", required=True)
    u_list = upgrades_sub.add_parser("list", help="List upgrade requests")
    u_list.add_argument("--status", "-s", choices=["pending", "accepted", "rejected"])
    u_list.add_argument("--limit", "-l", type=int, default=50)
    u_list.add_argument("--json", "-j", action="store_true")

    # users
    p_users = subparsers.add_parser("users", help="Inspect and verify users")
    users_sub = p_users.add_subparsers(dest="users_action", required=True)
    us_show = users_sub.add_parser("show", help="Show a user")
    us_show.add_argument("user_id", help="User ID")
    us_show.add_argument("--json", "-j", action="store_true")
    us_verify = users_sub.add_parser("verify", help="Mark a provider as verified")
    us_verify.add_argument("user_id", help="User ID")
    us_verify.add_argument("--revoke", action="store_true", help="Clear the verified flag")

    # serve
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", "-p", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")

    args = parser.parse_args(argv)

    if args.verbose:
        setup_marketplace_logging("DEBUG")

    if args.command == "serve":
        cmd_serve(args)
        return

    # Initialize Marketplace with error handling
    try:
        config = MarketplaceConfig.from_env()
        if args.db:
            config.db_path = Path(args.db).expanduser()
        m = Marketplace(config=config)
    except (ValueError, TypeError) as e:
        logger.error(f"Failed to initialize marketplace: {e}")
        sys.exit(1)

    # Dispatch with error handling
    try:
        if args.command == "stats":
            cmd_stats(args, m)
        elif args.command == "ratings":
            cmd_ratings(args, m)
        elif args.command == "complaints":
            cmd_complaints(args, m)
        elif args.command == "upgrades":
            cmd_upgrades(args, m)
        elif args.command == "users":
            cmd_users(args, m)
    except MarketplaceError as e:
        logger.error(f"{e.code}: {e.message}")
        sys.exit(1)
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
