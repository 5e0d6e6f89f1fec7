#!/usr/bin/env python3
"""
Operator script for the push broadcast endpoints.

Usage:
    python scripts/send_push_notification.py broadcast --hours-ahead 48
    python scripts/send_push_notification.py send <user_id> [<user_id> ...] "Title" "Message"
    python scripts/send_push_notification.py diagnose <user_id>

Environment Variables:
    PUSH_ADMIN_SECRET: Operator secret sent as X-Admin-Secret
    API_URL: Base API URL (default: http://localhost:8000)
"""

import argparse
import json
import os
import sys

import dotenv
import requests

dotenv.load_dotenv()


def post(path: str, payload: dict) -> dict:
    """POST to an operator endpoint and return the JSON body."""
    admin_secret = os.getenv("PUSH_ADMIN_SECRET")
    if not admin_secret:
        print("Error: PUSH_ADMIN_SECRET environment variable not set", file=sys.stderr)
        sys.exit(1)

    api_url = os.getenv("API_URL", "http://localhost:8000")
    url = f"{api_url}/api/v1/notifications/{path}"

    headers = {
        "X-Admin-Secret": admin_secret,
        "Content-Type": "application/json",
    }

    try:
        response = requests.post(url, json=payload, headers=headers, timeout=60)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.HTTPError as e:
        print(f"HTTP Error: {e}", file=sys.stderr)
        print(f"Response: {e.response.text}", file=sys.stderr)
        sys.exit(1)
    except requests.exceptions.RequestException as e:
        print(f"Request Error: {e}", file=sys.stderr)
        sys.exit(1)


def broadcast(args: argparse.Namespace) -> None:
    payload = {"hours_ahead": args.hours_ahead, "test_mode": args.test}
    if args.title:
        payload["custom_title"] = args.title
    if args.body:
        payload["custom_body"] = args.body

    result = post("broadcast", payload)
    print(f"{'✅' if result['success'] else '⚠️ '} {result['message']}")
    print(f"   Events:        {result['events_found']}")
    print(f"   Users:         {result['users_processed']}")
    print(f"   Notified:      {result['users_notified']}")
    print(f"   Sent:          {result['notifications_sent']}")
    for error in result.get("errors", []):
        print(f"   Error: {error}")


def send(args: argparse.Namespace) -> None:
    if len(args.values) < 3:
        print("Error: expected at least one user id, a title and a body", file=sys.stderr)
        sys.exit(1)
    *user_ids, title, body = args.values

    payload = {"user_ids": user_ids, "title": title, "body": body}
    if args.data:
        try:
            payload["data"] = json.loads(args.data)
        except json.JSONDecodeError as e:
            print(f"Error: Invalid JSON in --data: {e}", file=sys.stderr)
            sys.exit(1)

    result = post("send", payload)
    print("✅ Notification sent!")
    print(f"   Success: {result['success_count']} device(s)")
    print(f"   Failed:  {result['failure_count']} device(s)")
    print(f"   Removed: {result['removed_tokens']} stale token(s)")
    print(f"   Message: {result['message']}")


def diagnose(args: argparse.Namespace) -> None:
    result = post("diagnose", {"user_id": args.user_id})
    summary = result["summary"]
    print(f"Tokens: {summary['total_tokens']}")
    print(f"   Working: {summary['successful_tokens']}")
    print(f"   Failed:  {summary['failed_tokens']}")
    print(f"   Removed: {summary['removed_tokens']}")
    for token in result["results"]:
        status = "ok" if token["success"] else token.get("error_code") or "failed"
        print(f"   {token['token_preview']}  {status}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Send push notifications through the calendar API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Remind everyone about the next day's events
  python send_push_notification.py broadcast

  # One message to two users
  python send_push_notification.py send USER_A USER_B "Office closed" "Friday is a holiday"

  # Check which devices of a user still receive pushes
  python send_push_notification.py diagnose USER_ID
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    broadcast_parser = subparsers.add_parser("broadcast", help="Announce upcoming events")
    broadcast_parser.add_argument("--hours-ahead", type=int, default=24)
    broadcast_parser.add_argument("--title", help="Custom notification title")
    broadcast_parser.add_argument("--body", help="Custom notification body")
    broadcast_parser.add_argument("--test", action="store_true", help="Tag as a test message")
    broadcast_parser.set_defaults(func=broadcast)

    send_parser = subparsers.add_parser("send", help="Send a message to specific users")
    send_parser.add_argument("values", nargs="+", help="User ids followed by title and body")
    send_parser.add_argument(
        "--data",
        type=str,
        help='Custom data payload as JSON string (e.g., \'{"url":"/"}\')',
    )
    send_parser.set_defaults(func=send)

    diagnose_parser = subparsers.add_parser("diagnose", help="Test every token of a user")
    diagnose_parser.add_argument("user_id")
    diagnose_parser.set_defaults(func=diagnose)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
