"""Tests for LineTranslator (ircstate/adapters/irc_translate.py)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ircstate import events as ev
from ircstate.adapters.irc_translate import (
    LIST_BATCH_SIZE,
    LineTranslator,
    parse_prefix,
    parse_server_time,
    split_source,
    unescape_isupport,
)

ISUPPORT = [
    "alice",
    "NETWORK=Libera.Chat",
    "PREFIX=(qaohv)~&@%+",
    "CHANMODES=beI,k,l,imnpst",
    "CASEMAPPING=rfc1459",
    "CHATHISTORY=100",
    "are supported by this server",
]


@pytest.fixture
def tr():
    return LineTranslator()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("bob!~b@host.example", ("bob", "~b", "host.example")),
            ("irc.example.net", ("irc.example.net", "", "")),
            ("bob@host", ("bob", "", "host")),
            (None, ("", "", "")),
        ],
    )
    def test_split_source(self, source, expected):
        assert split_source(source) == expected

    def test_parse_prefix(self):
        assert parse_prefix("(ov)@+") == [("@", "o"), ("+", "v")]
        assert parse_prefix("garbage") == []

    def test_parse_server_time(self):
        assert parse_server_time({"time": "2024-05-01T12:00:00.123Z"}) == datetime(
            2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc
        )
        assert parse_server_time({"time": "not a time"}) is None
        assert parse_server_time({}) is None

    def test_unescape_isupport(self):
        assert unescape_isupport("Example\\x20Net") == "Example Net"


# ---------------------------------------------------------------------------
# Registration and server options
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_welcome(self, tr):
        [evt] = tr.translate("001", ["alice_", "Welcome"], "irc.example.net")
        assert evt == ev.Registered(nick="alice_")

    def test_isupport(self, tr):
        [evt] = tr.translate("005", ISUPPORT, "irc.example.net")

        assert isinstance(evt, ev.ServerOptions)
        assert evt.network_name == "Libera.Chat"
        assert evt.options["CHATHISTORY"] == "100"
        assert tr.prefixes == [("~", "q"), ("&", "a"), ("@", "o"), ("%", "h"), ("+", "v")]
        assert tr.supports("chathistory")
        assert tr.network_name == "Libera.Chat"

    def test_isupport_negation(self, tr):
        tr.translate("005", ISUPPORT)
        tr.translate("005", ["alice", "-CHATHISTORY", "are supported"])

        assert not tr.supports("CHATHISTORY")

    def test_network_name_placeholder(self, tr):
        assert tr.network_name == "Network"

    def test_reset_forgets_server(self, tr):
        tr.translate("005", ISUPPORT)

        tr.reset()

        assert tr.isupport == {}
        assert tr.prefixes == [("@", "o"), ("+", "v")]

    def test_nick_in_use(self, tr):
        [evt] = tr.translate("433", ["*", "alice", "Nickname is already in use"])
        assert (evt.nick, evt.reason) == ("alice", "Nickname is already in use")

    def test_channel_redirect(self, tr):
        [evt] = tr.translate("470", ["alice", "#linux", "##linux", "Forwarding"])
        assert evt == ev.ChannelRedirect(source="#linux", to="##linux")

    def test_silent_commands(self, tr):
        assert tr.translate("PING", ["x"]) == []
        assert tr.translate("002", ["alice", "Your host"]) == []

    def test_unknown_command(self, tr):
        [evt] = tr.translate("999", ["alice", "odd"])
        assert evt == ev.UnknownCommand(command="999", params=["alice", "odd"])


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class TestMessages:
    def test_privmsg_with_server_time(self, tr):
        tags = {"time": "2024-05-01T12:00:00.000Z", "msgid": "abc"}
        [evt] = tr.translate("PRIVMSG", ["#a", "hello"], "bob!b@h", tags)

        assert evt.type == "privmsg"
        assert (evt.nick, evt.ident, evt.hostname, evt.target, evt.message) == ("bob", "b", "h", "#a", "hello")
        assert evt.time == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        assert evt.tags["msgid"] == "abc"
        assert evt.from_server is False

    def test_server_notice(self, tr):
        [evt] = tr.translate("NOTICE", ["*", "*** Looking up your hostname"], "irc.example.net")
        assert evt.type == "notice"
        assert evt.from_server is True

    def test_action(self, tr):
        [evt] = tr.translate("PRIVMSG", ["#a", "\x01ACTION waves\x01"], "bob!b@h")
        assert (evt.type, evt.message) == ("action", "waves")

    def test_ctcp_request_and_response(self, tr):
        [req] = tr.translate("PRIVMSG", ["alice", "\x01VERSION\x01"], "bob!b@h")
        [resp] = tr.translate("NOTICE", ["alice", "\x01PING 123\x01"], "bob!b@h")

        assert isinstance(req, ev.CtcpRequest)
        assert (req.type, req.message) == ("VERSION", "")
        assert isinstance(resp, ev.CtcpResponse)
        assert (resp.type, resp.message) == ("PING", "123")

    def test_wallops(self, tr):
        [evt] = tr.translate("WALLOPS", ["maintenance soon"], "oper!o@h")
        assert (evt.nick, evt.message) == ("oper", "maintenance soon")


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


class TestMembership:
    def test_extended_join(self, tr):
        [evt] = tr.translate("JOIN", ["#a", "bobacct", "Bob Real"], "bob!b@h")
        assert (evt.channel, evt.account, evt.gecos) == ("#a", "bobacct", "Bob Real")

    def test_extended_join_logged_out(self, tr):
        [evt] = tr.translate("JOIN", ["#a", "*", "Bob"], "bob!b@h")
        assert evt.account == ""

    def test_part_kick_quit(self, tr):
        [part] = tr.translate("PART", ["#a", "bye"], "bob!b@h")
        [kick] = tr.translate("KICK", ["#a", "carol", "spam"], "op!o@h")
        [quit_] = tr.translate("QUIT", ["Ping timeout"], "dave!d@h")

        assert (part.channel, part.message) == ("#a", "bye")
        assert (kick.nick, kick.kicked, kick.message) == ("op", "carol", "spam")
        assert (quit_.nick, quit_.message) == ("dave", "Ping timeout")

    def test_nick_invite_account(self, tr):
        [nick] = tr.translate("NICK", ["robert"], "bob!b@h")
        [invite] = tr.translate("INVITE", ["alice", "#secret"], "bob!b@h")
        [account] = tr.translate("ACCOUNT", ["*"], "bob!b@h")

        assert (nick.nick, nick.new_nick) == ("bob", "robert")
        assert invite.channel == "#secret"
        assert account.account == ""

    def test_away_notify(self, tr):
        [away] = tr.translate("AWAY", ["lunch"], "bob!b@h")
        [back] = tr.translate("AWAY", [], "bob!b@h")

        assert away == ev.Away(nick="bob", message="lunch")
        assert back == ev.Back(nick="bob")


# ---------------------------------------------------------------------------
# Accumulated replies
# ---------------------------------------------------------------------------


class TestAccumulation:
    def test_names(self, tr):
        tr.translate("005", ISUPPORT)
        assert tr.translate("353", ["alice", "=", "#a", "@bob ~&carol dave!d@h"]) == []
        assert tr.translate("353", ["alice", "=", "#A", "+erin"]) == []

        [evt] = tr.translate("366", ["alice", "#a", "End of /NAMES list."])

        assert evt.channel == "#a"
        assert [(u.nick, u.modes) for u in evt.users] == [
            ("bob", ("o",)),
            ("carol", ("q", "a")),
            ("dave", ()),
            ("erin", ("v",)),
        ]
        assert evt.users[2].hostname == "h"

    def test_names_end_without_rows(self, tr):
        [evt] = tr.translate("366", ["alice", "#empty", "End"])
        assert evt.users == []

    def test_who(self, tr):
        tr.translate("352", ["alice", "#a", "b", "h1", "srv", "bob", "G@", "0 Bob Real"])
        tr.translate("352", ["alice", "*", "c", "h2", "srv", "carol", "H", "3 Carol"])

        [evt] = tr.translate("315", ["alice", "#a", "End of /WHO list."])

        assert evt.target == "#a"
        assert [(u.nick, u.away, u.real_name, u.channel) for u in evt.users] == [
            ("bob", True, "Bob Real", "#a"),
            ("carol", False, "Carol", ""),
        ]

    def test_whois(self, tr):
        tr.translate("311", ["alice", "Bob", "b", "host", "*", "Bob Real"])
        tr.translate("312", ["alice", "bob", "srv.example", "Example server"])
        tr.translate("319", ["alice", "bob", "#a @#b"])
        tr.translate("317", ["alice", "bob", "42", "1700000000", "seconds idle"])
        tr.translate("330", ["alice", "bob", "bobacct", "is logged in as"])
        tr.translate("671", ["alice", "bob", "is using a secure connection"])
        assert tr.translate("301", ["alice", "bob", "gone fishing"]) == []

        [evt] = tr.translate("318", ["alice", "bob", "End of /WHOIS list."])

        assert (evt.nick, evt.ident, evt.hostname, evt.real_name, evt.away) == (
            "Bob",
            "b",
            "host",
            "Bob Real",
            "gone fishing",
        )
        assert evt.extra == {
            "server": "srv.example",
            "server_info": "Example server",
            "channels": "#a @#b",
            "idle": 42,
            "logon": 1700000000,
            "account": "bobacct",
            "secure": True,
        }

    def test_away_reply_outside_whois(self, tr):
        [evt] = tr.translate("301", ["alice", "bob", "brb"])
        assert evt == ev.Away(nick="bob", message="brb")

    def test_whois_operator_line(self, tr):
        tr.translate("311", ["alice", "oper", "o", "host", "*", "Oper"])
        tr.translate("313", ["alice", "oper", "is an IRC operator"])

        [evt] = tr.translate("318", ["alice", "oper", "End of /WHOIS list."])

        assert evt.extra == {"operator": "is an IRC operator"}

    def test_whois_end_without_start(self, tr):
        assert tr.translate("318", ["alice", "nobody", "End"]) == []

    def test_motd(self, tr):
        tr.translate("375", ["alice", "- irc.example.net Message of the day -"])
        tr.translate("372", ["alice", "- Welcome"])
        tr.translate("372", ["alice", "- Be nice"])

        [evt] = tr.translate("376", ["alice", "End of /MOTD command."])

        assert evt.motd == "Welcome\nBe nice"

    def test_list_batches(self, tr):
        [start] = tr.translate("321", ["alice", "Channel", "Users  Name"])
        batches = []
        for i in range(LIST_BATCH_SIZE + 3):
            batches.extend(tr.translate("322", ["alice", f"#c{i}", str(i), f"topic {i}"]))
        end = tr.translate("323", ["alice", "End of /LIST"])

        assert isinstance(start, ev.ChannelListStart)
        assert len(batches) == 1
        assert len(batches[0].entries) == LIST_BATCH_SIZE
        assert [type(e) for e in end] == [ev.ChannelList, ev.ChannelListEnd]
        assert [entry.channel for entry in end[0].entries] == [f"#c{i}" for i in range(LIST_BATCH_SIZE, LIST_BATCH_SIZE + 3)]

    def test_empty_list(self, tr):
        tr.translate("321", ["alice"])
        assert [type(e) for e in tr.translate("323", ["alice", "End"])] == [ev.ChannelListEnd]


# ---------------------------------------------------------------------------
# Modes and topic
# ---------------------------------------------------------------------------


class TestModes:
    def test_channel_mode_params(self, tr):
        tr.translate("005", ISUPPORT)
        [evt] = tr.translate("MODE", ["#a", "+ob-v+lk-l", "bob", "carol", "10", "pw"], "op!o@h")

        assert evt.modes == [
            ev.ModeDelta("+o", "bob"),
            ev.ModeDelta("+b", "carol"),
            ev.ModeDelta("-v", "10"),
            ev.ModeDelta("+l", "pw"),
            ev.ModeDelta("+k", None),
            ev.ModeDelta("-l", None),
        ]

    def test_set_only_mode_takes_no_param_when_unset(self, tr):
        [evt] = tr.translate("MODE", ["#a", "-l+v", "bob"], "op!o@h")
        assert evt.modes == [ev.ModeDelta("-l", None), ev.ModeDelta("+v", "bob")]

    def test_user_mode_has_no_params(self, tr):
        [evt] = tr.translate("MODE", ["alice", "+iw"], "alice")
        assert evt.modes == [ev.ModeDelta("+i"), ev.ModeDelta("+w")]

    def test_channel_mode_dump_and_creation(self, tr):
        [dump] = tr.translate("324", ["alice", "#a", "+ntk", "pw"])
        [created] = tr.translate("329", ["alice", "#a", "1700000000"])

        assert dump.modes == [ev.ModeDelta("+n"), ev.ModeDelta("+t"), ev.ModeDelta("+k", "pw")]
        assert created.created_at == 1700000000

    def test_topic(self, tr):
        [changed] = tr.translate("TOPIC", ["#a", "new topic"], "bob!b@h")
        [current] = tr.translate("332", ["alice", "#a", "old topic"])
        [none] = tr.translate("331", ["alice", "#a", "No topic is set"])

        assert (changed.nick, changed.topic) == ("bob", "new topic")
        assert (current.nick, current.topic) == ("", "old topic")
        assert none.topic == ""


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_channel_error(self, tr):
        [evt] = tr.translate("475", ["alice", "#a", "Cannot join channel (+k)"])
        assert (evt.error, evt.channel, evt.nick, evt.reason) == (
            "bad_channel_key",
            "#a",
            "",
            "Cannot join channel (+k)",
        )

    def test_nick_error(self, tr):
        [evt] = tr.translate("401", ["alice", "ghost", "No such nick/channel"])
        assert (evt.error, evt.nick) == ("no_such_nick", "ghost")

    def test_server_error(self, tr):
        [evt] = tr.translate("ERROR", ["Closing Link: (Ping timeout)"])
        assert (evt.error, evt.reason) == ("irc", "Closing Link: (Ping timeout)")
