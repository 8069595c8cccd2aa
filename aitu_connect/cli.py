#!/usr/bin/env python3
"""
Command-line interface for the aitu-connect chat client

Usage:
    aitu-chat conversations
    aitu-chat history <conversation_id>
    aitu-chat chat <conversation_id>

Session: --session SID (or AITU_SESSION_TOKEN), or --email/--password to sign in.
"""

import argparse
import asyncio
import sys
from typing import Optional

from aitu_connect.api_client import ChatApiClient
from aitu_connect.chat_sync import ChatView, Conversation, Message, SyncOrchestrator
from aitu_connect.config import ConnectSettings, configure_logging
from aitu_connect.error_handler import ConnectError


def format_message(message: Message) -> str:
    author = f"{message.author_first_name} {message.author_last_name}".strip() or str(message.user_id)
    return f"[{author}] {message.content}"


def _find_conversation(orchestrator: SyncOrchestrator, conversation_id: str) -> Optional[Conversation]:
    for conversation in orchestrator.store.list():
        if str(conversation.id) == conversation_id:
            return conversation
    return None


async def _sign_in(api: ChatApiClient, args) -> None:
    if args.email:
        await api.login(args.email, args.password or "")


async def conversations_command(args, settings: ConnectSettings) -> int:
    """Print the signed-in user's conversations"""
    async with ChatApiClient(settings) as api:
        await _sign_in(api, args)
        conversations = await api.list_conversations()

    if not conversations:
        print("No conversations yet")
        return 0

    for conversation in conversations:
        kind = "group" if conversation.is_group else "direct"
        print(f"{conversation.id}\t{kind}\t{conversation.display_name}")
    return 0


async def history_command(args, settings: ConnectSettings) -> int:
    """Print a conversation's message history"""
    async with ChatApiClient(settings) as api:
        await _sign_in(api, args)
        messages = await api.list_messages(args.conversation_id)

    if not messages:
        print("No messages yet")
    for message in messages:
        print(format_message(message))
    return 0


async def read_line() -> str:
    return await asyncio.to_thread(sys.stdin.readline)


async def chat_command(args, settings: ConnectSettings) -> int:
    """Follow a conversation live and send lines from stdin"""
    async with ChatApiClient(settings) as api:
        await _sign_in(api, args)
        orchestrator = SyncOrchestrator(api, settings=settings)

        if not await orchestrator.start():
            print("Could not load the current user (not signed in?)", file=sys.stderr)
            return 1

        conversation = _find_conversation(orchestrator, args.conversation_id)
        if conversation is None:
            print(f"Conversation {args.conversation_id} not found", file=sys.stderr)
            await orchestrator.stop()
            return 1

        shown = 0
        revision = 0
        connected = False

        def render(view: ChatView) -> None:
            nonlocal shown, revision, connected
            if view.connected != connected:
                connected = view.connected
                print("* connected" if connected else "* disconnected, reconnecting...", file=sys.stderr)
            if view.history_revision != revision:
                # history replaced by a fetch; pushes shown before it are gone
                revision = view.history_revision
                shown = 0
            for message in view.messages[shown:]:
                print(format_message(message))
            shown = len(view.messages)

        orchestrator.on_change(render)
        await orchestrator.select_conversation(conversation)
        print(f"Chatting in {conversation.display_name or conversation.id} (Ctrl-D to quit)", file=sys.stderr)

        try:
            while True:
                line = await read_line()
                if not line:
                    break
                orchestrator.compose = line
                if line.strip() and not await orchestrator.send_message():
                    print("* not sent: not connected", file=sys.stderr)
        finally:
            await orchestrator.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aitu-chat",
        description="aitu-connect chat client - follow and send direct/group messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--base-url', help='Server base URL (default: AITU_BASE_URL or http://localhost:8080)')
    parser.add_argument('--session', help='Existing session cookie value')
    parser.add_argument('--email', help='Sign in with this email')
    parser.add_argument('--password', help='Password for --email')
    parser.add_argument('--log-level', help='Logging level (default: AITU_LOG_LEVEL or INFO)')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    subparsers.add_parser('conversations', help='List conversations')

    history_parser = subparsers.add_parser('history', help='Print a conversation history')
    history_parser.add_argument('conversation_id', help='Conversation id')

    chat_parser = subparsers.add_parser('chat', help='Follow a conversation and send messages')
    chat_parser.add_argument('conversation_id', help='Conversation id')

    return parser


def main(argv=None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    overrides = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.session:
        overrides["session_token"] = args.session
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = ConnectSettings(**overrides)
    configure_logging(settings.log_level)

    commands = {
        'conversations': conversations_command,
        'history': history_command,
        'chat': chat_command,
    }

    try:
        return asyncio.run(commands[args.command](args, settings))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except ConnectError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
