"""Plain-English templates for message bodies.

Bodies are built with string.Template so a missing variable renders as an empty
string instead of raising.
"""

from __future__ import annotations

from collections import defaultdict
from string import Template
from typing import Any

MESSAGES: dict[str, str] = {
    "connected": "Connected",
    "disconnected": "Disconnected",
    "connected_to": "Connected to ${network}!",
    "has_joined": "${nick} has joined",
    "has_left": "${nick} has left",
    "has_quit": "${nick} has quit",
    "kicked_you_from": "${nick} kicked you from ${channel}",
    "was_kicked_from": "${nick} was kicked from ${channel} by ${chanop}",
    "now_known_as": "${nick} is now known as ${newnick}",
    "invited_you": "${nick} invited you to ${channel}",
    "changed_topic_to": "${nick} changed the topic to: ${topic}",
    "nick_in_use": "The nickname '${nick}' is already in use!",
    "nick_retry_exhausted": "Nickname '${nick}' is in use and no alternative was free after ${attempts} attempts",
    "action": "${nick} ${text}",
    "wallops": "[WALLOPS] ${text}",
    "ctcp_request": "[CTCP ${type}] from ${nick}: ${message}",
    "ctcp_response": "[CTCP ${type} reply] from ${nick}: ${message}",
    "modes_give_ops": "${nick} gives ops to ${target}",
    "modes_take_ops": "${nick} takes ops from ${target}",
    "modes_give_halfops": "${nick} gives halfops to ${target}",
    "modes_take_halfops": "${nick} takes halfops from ${target}",
    "modes_give_voice": "${nick} gives voice to ${target}",
    "modes_take_voice": "${nick} takes voice from ${target}",
    "modes_give_admin": "${nick} gives admin to ${target}",
    "modes_take_admin": "${nick} takes admin from ${target}",
    "modes_give_owner": "${nick} gives owner to ${target}",
    "modes_take_owner": "${nick} takes owner from ${target}",
    "modes_gives_ban": "${nick} bans ${target}",
    "modes_takes_ban": "${nick} unbans ${target}",
    "modes_other": "${nick} sets ${mode} on ${target}",
}


def t(key: str, **variables: Any) -> str:
    """Render template `key`; unknown keys render the key itself."""
    template = MESSAGES.get(key)
    if template is None:
        return key
    values: defaultdict[str, Any] = defaultdict(str, {k: "" if v is None else v for k, v in variables.items()})
    return Template(template).safe_substitute(values)


def with_reason(text: str, reason: str | None) -> str:
    return f"{text} ({reason})" if reason else text


def format_user(nick: str) -> str:
    return nick


def format_user_full(nick: str, ident: str = "", host: str = "") -> str:
    if not ident and not host:
        return nick
    return f"{nick} ({ident or '*'}@{host or '*'})"
