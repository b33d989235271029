# src/geotoggle/cli/commands.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.models import LocationSample, Permission
from ..core.state import AppState

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tap, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."
        return handler(state, parts[1:], emit)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_widget_id(args: list[str], state: AppState) -> int | None:
    if args:
        try:
            return int(args[0])
        except ValueError:
            return None
    ids = list(getattr(state.settings, "widget_ids", []) or [])
    return ids[0] if ids else None


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    service = state.service
    latest = service.latest_sample
    latest_str = f"{latest.format_latitude()}, {latest.format_longitude()}" if latest else "-"
    stop = service.last_stop_reason.value if service.last_stop_reason else "-"
    if service.last_stop_detail:
        stop = f"{stop} ({service.last_stop_detail})"
    return (
        "Status:\n"
        f"  Service: {service.state.value}\n"
        f"  Log file: {service.current_log_path or '-'}\n"
        f"  Latest fix: {latest_str}\n"
        f"  Last stop: {stop}\n"
        f"  Permissions: {', '.join(state.permissions.granted()) or 'none'}"
    )


def cmd_widgets(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    ids = state.toggle_store.widget_ids()
    if not ids:
        return "No widgets placed."
    lines = ["Widgets:"]
    for wid in ids:
        lines.append(f"  #{wid}: {'ON' if state.toggle_store.get(wid) else 'OFF'}")
    return "\n".join(lines)


def cmd_tap(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /tap        -> toggle the first configured widget
    /tap <id>   -> toggle widget <id>
    """
    wid = _parse_widget_id(args, state)
    if wid is None:
        return "Usage: /tap <widget_id>"
    requested = state.widget.on_toggle(wid)
    return f"Widget #{wid} switched {'ON (start requested)' if requested else 'OFF (stop requested)'}."


def cmd_fix(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/fix <lat> <lon> -> deliver a location fix from the provider"""
    if len(args) != 2:
        return "Usage: /fix <lat> <lon>"
    try:
        sample = LocationSample(int(time.time() * 1000), float(args[0]), float(args[1]))
    except ValueError as e:
        return f"Invalid fix: {e}"
    if not state.location.push_fix(sample):
        return "No active location subscription (tracking is off)."
    return f"Fix delivered: {sample.format_latitude()}, {sample.format_longitude()}"


def cmd_fixerr(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    message = " ".join(args) or "no GPS fix"
    if not state.location.push_error(message):
        return "No active location subscription (tracking is off)."
    return f"Transient provider error delivered: {message}"


def cmd_fail(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    message = " ".join(args) or "location provider failed"
    if not state.location.fail(message):
        return "No active location subscription (tracking is off)."
    return f"Fatal provider error delivered: {message}"


def _permission_arg(args: list[str]) -> str | None:
    if len(args) != 1:
        return None
    name = args[0].strip().lower()
    known = {p.value for p in Permission}
    return name if name in known else None


def cmd_grant(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    name = _permission_arg(args)
    if name is None:
        return f"Usage: /grant <{'|'.join(p.value for p in Permission)}>"
    state.permissions.grant(name)
    return f"Permission {name} granted."


def cmd_revoke(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    name = _permission_arg(args)
    if name is None:
        return f"Usage: /revoke <{'|'.join(p.value for p in Permission)}>"
    state.permissions.revoke(name)
    return f"Permission {name} revoked."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show tracking service status.")
registry.register("widgets", cmd_widgets, help_text="List placed widgets and their switch state.")
registry.register("tap", cmd_tap, help_text="Tap a widget's location switch: /tap [widget_id].", aliases=["toggle"])
registry.register("fix", cmd_fix, help_text="Deliver a location fix: /fix <lat> <lon>.")
registry.register("fixerr", cmd_fixerr, help_text="Deliver a transient fix failure: /fixerr [message].")
registry.register("fail", cmd_fail, help_text="Break the location subscription: /fail [message].")
registry.register("grant", cmd_grant, help_text="Grant a permission: /grant <name>.")
registry.register("revoke", cmd_revoke, help_text="Revoke a permission: /revoke <name>.")
