"""Command-line interface: run the bot and manage its data."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from wabot.bot.persona import analyze_style, sanitize_phone, to_chat_id
from wabot.config import settings
from wabot.errors import WabotError
from wabot.llm.client import AnthropicCompletionService
from wabot.storage.models import Profile, Tone
from wabot.storage.store import JsonStore
from wabot.whatsapp.client import WhatsAppBridgeClient
from wabot.whatsapp.transport import GROUP_SUFFIX

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wabot",
        description="WhatsApp bot with AI replies, profiles and a live dashboard",
    )
    parser.add_argument(
        "--data-dir", type=Path, default=None, help="Directory holding the JSON data files"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("start", help="Start the bot")

    # profiles
    profiles = subparsers.add_parser("profiles", help="Manage reply profiles")
    profile_cmds = profiles.add_subparsers(dest="action", required=True)
    profile_cmds.add_parser("list", help="List profiles")

    create = profile_cmds.add_parser("create", help="Create a profile")
    create.add_argument("name")
    _add_profile_fields(create)
    create.add_argument("--activate", action="store_true", help="Make it the active profile")

    edit = profile_cmds.add_parser("edit", help="Edit a profile")
    edit.add_argument("id", type=int)
    edit.add_argument("--name")
    _add_profile_fields(edit)

    activate = profile_cmds.add_parser("activate", help="Make a profile the active one")
    activate.add_argument("id", type=int)

    delete = profile_cmds.add_parser("delete", help="Delete a profile")
    delete.add_argument("id", type=int)

    analyze = profile_cmds.add_parser("analyze", help="Describe a contact's writing style")
    analyze.add_argument("chat", help="Phone number or chat id")
    analyze.add_argument(
        "--apply", type=int, metavar="ID", help="Store the result as this profile's custom style"
    )

    # message log
    messages = subparsers.add_parser("messages", help="Show recent answered messages")
    messages.add_argument("-n", "--limit", type=int, default=10)

    clear = subparsers.add_parser("clear-messages", help="Delete the message log")
    clear.add_argument("--yes", action="store_true", help="Skip confirmation")

    subparsers.add_parser("status", help="Show bot status")

    # block list
    blacklist = subparsers.add_parser("blacklist", help="Manage blocked senders")
    block_cmds = blacklist.add_subparsers(dest="action", required=True)
    block_cmds.add_parser("list", help="List blocked senders")
    block_add = block_cmds.add_parser("add", help="Block a sender")
    block_add.add_argument("sender", help="Phone number or chat id")
    block_remove = block_cmds.add_parser("remove", help="Unblock a sender")
    block_remove.add_argument("sender", help="Phone number or chat id")

    broadcast = subparsers.add_parser("broadcast", help="Send a message to every chat")
    broadcast.add_argument("text")
    broadcast.add_argument("--yes", action="store_true", help="Skip confirmation")

    return parser


def _add_profile_fields(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--phone", help="Use this profile for one contact")
    parser.add_argument("--tone", choices=[t.value for t in Tone])
    parser.add_argument("--instruction", help="System instruction")
    parser.add_argument("--style", help="Custom writing style")


def _confirm(question: str) -> bool:
    return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")


# -- Profiles ---------------------------------------------------------------------


def _profiles(store: JsonStore, args: argparse.Namespace) -> int:
    if args.action == "list":
        if not store.profiles:
            print("No profiles.")
            return 0
        for p in store.profiles:
            marker = "*" if p.active else " "
            phone = f" [{p.phone}]" if p.phone else ""
            print(f"{marker} {p.id:>3}  {p.name}{phone}  ({p.tone.value})")
        return 0

    if args.action == "create":
        profile = Profile(
            id=store.next_profile_id(),
            name=args.name,
            phone=sanitize_phone(args.phone) if args.phone else "",
            tone=Tone(args.tone) if args.tone else Tone.NEUTRAL,
            system_instruction=args.instruction or "",
            custom_style=args.style or "",
            active=args.activate,
        )
        store.add_profile(profile)
        print(f"Created profile {profile.id}: {profile.name}")
        return 0

    if args.action == "edit":
        profile = store.find_profile(args.id)
        if profile is None:
            print(f"Profile {args.id} not found", file=sys.stderr)
            return 1
        if args.name:
            profile.name = args.name
        if args.phone is not None:
            profile.phone = sanitize_phone(args.phone)
        if args.tone:
            profile.tone = Tone(args.tone)
        if args.instruction is not None:
            profile.system_instruction = args.instruction
        if args.style is not None:
            profile.custom_style = args.style
        store.save_profiles()
        print(f"Updated profile {profile.id}: {profile.name}")
        return 0

    if args.action == "activate":
        profile = store.activate_profile(args.id)
        if profile is None:
            print(f"Profile {args.id} not found", file=sys.stderr)
            return 1
        print(f"Active profile: {profile.name}")
        return 0

    if args.action == "delete":
        if not store.delete_profile(args.id):
            print(f"Profile {args.id} not found", file=sys.stderr)
            return 1
        print(f"Deleted profile {args.id}")
        return 0

    return _analyze(store, args)


def _analyze(store: JsonStore, args: argparse.Namespace) -> int:
    chat_id = to_chat_id(args.chat)
    history = store.history_for(chat_id)
    target = None
    if args.apply is not None:
        target = store.find_profile(args.apply)
        if target is None:
            print(f"Profile {args.apply} not found", file=sys.stderr)
            return 1

    service = AnthropicCompletionService()
    if not service.is_configured():
        print("ANTHROPIC_API_KEY is not set", file=sys.stderr)
        return 1

    try:
        style = asyncio.run(analyze_style(history, service))
    except WabotError as exc:
        print(f"Analysis failed: {exc}", file=sys.stderr)
        return 1
    if style is None:
        print(
            f"Not enough history for {chat_id} ({len(history)} message(s)); need at least 5",
            file=sys.stderr,
        )
        return 1

    print(style)
    if target is not None:
        target.custom_style = style
        target.learn_from_chat = chat_id
        store.save_profiles()
        print(f"\nSaved as the custom style of profile {target.id}: {target.name}")
    return 0


# -- Messages and status --------------------------------------------------------------


def _messages(store: JsonStore, args: argparse.Namespace) -> int:
    records = store.messages[: max(args.limit, 0)]
    if not records:
        print("No messages.")
        return 0
    for r in records:
        print(f"[{r.timestamp}] {r.sender_name or r.sender} ({r.profile_used})")
        print(f"  < {r.message}")
        print(f"  > {r.response}")
    return 0


def _clear_messages(store: JsonStore, args: argparse.Namespace) -> int:
    if not args.yes and not _confirm(f"Delete {len(store.messages)} logged message(s)?"):
        print("Cancelled.")
        return 1
    count = store.clear_messages()
    print(f"Deleted {count} message(s).")
    return 0


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _status(store: JsonStore, args: argparse.Namespace) -> int:
    record = store.read_status()
    if record is None:
        state = "disconnected"
    elif not _pid_alive(record.pid):
        state = "disconnected (process not running)"
    else:
        state = record.status
    active = store.active_profile
    print(f"Bot:      {settings.bot_name}")
    print(f"Status:   {state}")
    if record is not None:
        print(f"Updated:  {record.timestamp} (pid {record.pid})")
    print(f"AI:       {'enabled' if settings.ai_enabled() else 'disabled'}")
    print(f"Profiles: {len(store.profiles)} (active: {active.name if active else 'none'})")
    print(f"Messages: {len(store.messages)}")
    print(f"Chats:    {len(store.chat_history)}")
    print(f"Blocked:  {len(store.blacklist)}")
    print(f"Data dir: {store.data_dir}")
    return 0


# -- Block list and broadcast -----------------------------------------------------------


def _blacklist(store: JsonStore, args: argparse.Namespace) -> int:
    if args.action == "list":
        if not store.blacklist:
            print("No blocked senders.")
        for sender in store.blacklist:
            print(sender)
        return 0

    sender = to_chat_id(args.sender)
    if args.action == "add":
        if store.block(sender):
            print(f"Blocked {sender}")
        else:
            print(f"{sender} is already blocked")
        return 0

    if store.unblock(sender):
        print(f"Unblocked {sender}")
        return 0
    print(f"{sender} is not blocked", file=sys.stderr)
    return 1


async def broadcast(
    client: WhatsAppBridgeClient, store: JsonStore, text: str
) -> tuple[list[str], list[str]]:
    """Send ``text`` to every non-group, non-blocked chat. Returns (sent, failed)."""
    sent: list[str] = []
    failed: list[str] = []
    try:
        chats = await client.list_chats()
        for chat in chats:
            chat_id = str(chat.get("id", ""))
            if not chat_id or chat.get("isGroup") or chat_id.endswith(GROUP_SUFFIX):
                continue
            if store.is_blocked(chat_id):
                continue
            try:
                await client.send_message(chat_id, text)
            except WabotError as exc:
                logger.warning("Broadcast to %s failed: %s", chat_id, exc)
                failed.append(chat_id)
            else:
                sent.append(chat_id)
    finally:
        await client.close()
    return sent, failed


def _broadcast(store: JsonStore, args: argparse.Namespace) -> int:
    text = args.text.strip()
    if not text:
        print("Message cannot be empty", file=sys.stderr)
        return 1
    if not args.yes and not _confirm(f"Send {text!r} to every chat?"):
        print("Cancelled.")
        return 1
    try:
        sent, failed = asyncio.run(broadcast(WhatsAppBridgeClient(), store, text))
    except WabotError as exc:
        print(f"Broadcast failed: {exc}", file=sys.stderr)
        return 1
    print(f"Sent to {len(sent)} chat(s).")
    for chat_id in failed:
        print(f"  failed: {chat_id}", file=sys.stderr)
    return 1 if failed else 0


_HANDLERS = {
    "profiles": _profiles,
    "messages": _messages,
    "clear-messages": _clear_messages,
    "status": _status,
    "blacklist": _blacklist,
    "broadcast": _broadcast,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None or args.command == "start":
        if args.data_dir is not None:
            settings.data_dir = args.data_dir
        from wabot.main import main as run_bot

        run_bot()
        return 0

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.WARNING,
    )
    store = JsonStore(args.data_dir)
    store.load()
    return _HANDLERS[args.command](store, args)


if __name__ == "__main__":
    sys.exit(main())
