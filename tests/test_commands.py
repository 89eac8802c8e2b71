import asyncio

import pytest

from conftest import wait_until, write_data
from jack.bot.codec import Frame
from jack.bot.commands import DENIAL_MESSAGE, TYPING_WORDS


async def start_connected(connector, fake_connect):
    await connector.start()
    await wait_until(lambda: connector.transport.is_connected)
    return fake_connect.latest


async def say_as(connector, uid, name, text):
    await connector.events.dispatch(Frame("chat_message", {"UID": uid, "NM": name, "MSG": text}))


def admin_says(connector, text):
    return say_as(connector, "u-boss", "Boss", text)


def user_says(connector, text):
    return say_as(connector, "u-joe", "Joe", text)


@pytest.fixture
def with_admin(data_dir):
    write_data(data_dir, admins_txt="boss", settings_json={"banLevel": 0})


def replies(ws):
    return [p["text"] for p in ws.events_tagged("send_message")]


def run(connector, fake_connect, steps):
    """Start, run steps(ws), stop; returns the socket."""
    async def scenario():
        ws = await start_connected(connector, fake_connect)
        await steps(ws)
        await connector.stop()
        return ws

    return asyncio.run(scenario())


def test_non_admin_gets_denial_and_nothing_happens(connector, fake_connect, with_admin):
    async def steps(ws):
        await user_says(connector, "/kick u-victim")

    ws = run(connector, fake_connect, steps)

    assert replies(ws) == [DENIAL_MESSAGE]
    assert ws.events_tagged("kick_member") == []


def test_admin_kick(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/kick u-victim")

    ws = run(connector, fake_connect, steps)

    kick = ws.events_tagged("kick_member")[0]
    assert kick["uid"] == "u-victim"
    assert kick["reason"] == "kicked by Boss"


def test_kick_never_targets_the_bot(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/kick bot-1")

    assert run(connector, fake_connect, steps).events_tagged("kick_member") == []


def test_plain_text_is_ignored(connector, fake_connect, with_admin):
    async def steps(ws):
        await user_says(connector, "just chatting")
        await admin_says(connector, "also chatting")

    assert replies(run(connector, fake_connect, steps)) == []


def test_unknown_command_from_admin_gets_hint(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/dance")

    assert replies(run(connector, fake_connect, steps)) == ["Unknown command. Try /help"]


def test_correct_guess_picks_a_new_secret(connector, fake_connect, with_admin):
    async def steps(ws):
        connector.state.games.secret = 42
        await user_says(connector, "/guess 10")
        await user_says(connector, "/guess 90")
        await user_says(connector, "/guess 42")

    ws = run(connector, fake_connect, steps)

    texts = replies(ws)
    assert texts[0] == "📈 Higher than 10!"
    assert texts[1] == "📉 Lower than 90!"
    assert "Joe guessed it" in texts[2]
    assert connector.state.games.secret != 42


def test_guess_needs_a_number(connector, fake_connect, with_admin):
    async def steps(ws):
        await user_says(connector, "/guess lots")

    assert replies(run(connector, fake_connect, steps)) == ["Usage: /guess <1-100>"]


def test_typing_challenge(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/type")
        word = connector.state.games.typing_word
        await user_says(connector, word.upper())

    ws = run(connector, fake_connect, steps)

    texts = replies(ws)
    assert texts[0].split(": ")[-1] in TYPING_WORDS
    assert texts[1] == "🏆 Joe typed it first!"
    assert connector.state.games.typing_word is None


def test_mention_reply_is_chunked(connector, fake_connect, provider, with_admin):
    long_reply = " ".join(["sentence"] * 50)
    provider.replies = [long_reply]

    async def steps(ws):
        await user_says(connector, "Hey ELIJAH what's up?")
        await wait_until(lambda: " ".join(replies(ws)) == long_reply)

    ws = run(connector, fake_connect, steps)

    chunks = replies(ws)
    assert all(len(c) <= 150 for c in chunks)
    assert " ".join(chunks) == long_reply
    assert provider.calls[0][-1] == {"role": "user", "content": "Hey what's up?"}


def test_mention_falls_back_when_completion_fails(connector, fake_connect, provider, with_admin):
    provider.error = RuntimeError("service down")

    async def steps(ws):
        await user_says(connector, "elijah tell me a joke")
        await wait_until(lambda: replies(ws))

    assert replies(run(connector, fake_connect, steps)) == ["Sorry, I couldn't process that."]


def test_spam_command_updates_file_and_policy(connector, fake_connect, data_dir, with_admin):
    async def steps(ws):
        await admin_says(connector, "/spam crypto deal")
        await user_says(connector, "great CRYPTO DEAL here")

    ws = run(connector, fake_connect, steps)

    assert "crypto deal" in (data_dir / "spam.txt").read_text(encoding="utf-8")
    assert ws.events_tagged("kick_member")[0]["uid"] == "u-joe"


def test_whois_is_public(connector, fake_connect, with_admin):
    async def steps(ws):
        await connector.events.dispatch(Frame("member_list", {"ML": [
            {"UID": "u1", "NM": "Annabel", "LVL": 7},
            {"UID": "u2", "NM": "Bob", "LVL": 3},
        ]}))
        await user_says(connector, "/whois anna")
        await user_says(connector, "/whois nobody")

    texts = replies(run(connector, fake_connect, steps))
    assert texts == ["🔍 Annabel (u1) lvl 7", "🔍 No member matches 'nobody'."]


def test_admins_command_lists_admins(connector, fake_connect, with_admin):
    async def steps(ws):
        await user_says(connector, "/admins")

    assert replies(run(connector, fake_connect, steps)) == ["👑 Admins: boss"]


def test_mic_invites_roster_members_only(connector, fake_connect, with_admin):
    async def steps(ws):
        await user_says(connector, "/mic")
        await connector.events.dispatch(Frame("member_joined", {"UID": "u-joe", "NM": "Joe", "LVL": 5}))
        await user_says(connector, "/mic")

    ws = run(connector, fake_connect, steps)

    assert [p["uid"] for p in ws.events_tagged("invite_member")] == ["u-joe"]
    assert replies(ws)[0] == "🎤 Mic invites are for club members only."


def test_take_and_leave_mic(connector, fake_connect, with_admin):
    async def steps(ws):
        await connector.events.dispatch(Frame("mic_update", {"MICS": ["u1", "u2"]}))
        await admin_says(connector, "/take")
        await admin_says(connector, "/leave")

    ws = run(connector, fake_connect, steps)

    assert ws.events_tagged("take_mic")[0]["index"] == 2
    assert ws.events_tagged("leave_mic")[0]["index"] == 2
    assert connector.state.mics.slot_of("bot-1") is None


def test_lock_all_mics(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/lm all")
        await admin_says(connector, "/ulm 3")
        await admin_says(connector, "/lm 11")

    ws = run(connector, fake_connect, steps)

    assert [p["index"] for p in ws.events_tagged("lock_mic")] == list(range(10))
    assert [p["index"] for p in ws.events_tagged("unlock_mic")] == [2]
    assert replies(ws) == ["Usage: /lm <1-10|all>"]


def test_joinmic_validates_slot(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/joinmic 0")
        await admin_says(connector, "/joinmic 4")

    ws = run(connector, fake_connect, steps)

    assert replies(ws) == ["Usage: /joinmic <1-10>"]
    assert [p["index"] for p in ws.events_tagged("join_mic")] == [3]
    assert connector.state.mics.slot_of("bot-1") == 3


def test_joinmic_rejects_non_ascii_digits(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/joinmic ²")

    ws = run(connector, fake_connect, steps)

    assert replies(ws) == ["Usage: /joinmic <1-10>"]
    assert ws.events_tagged("join_mic") == []


def test_unban_all(connector, fake_connect, with_admin):
    async def steps(ws):
        connector.state.banned_ids.extend(["x1", "x2"])
        await admin_says(connector, "/ub all")
        await admin_says(connector, "/ub all")
        await admin_says(connector, "/ub x1")

    ws = run(connector, fake_connect, steps)

    assert [p["uid"] for p in ws.events_tagged("unban_member")] == ["x1", "x2"]
    assert replies(ws) == ["🔓 Unbanned 2 user(s).", "Nobody is banned.", "Usage: /ub <all|check>"]
    assert connector.state.banned_ids == []


def test_unban_check_lists_banned_ids(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/ub check")
        connector.state.banned_ids.extend(["x1", "x2"])
        await admin_says(connector, "/ub CHECK")

    ws = run(connector, fake_connect, steps)

    assert replies(ws) == ["Nobody is banned.", "🚫 Banned (2): x1, x2"]
    assert ws.events_tagged("unban_member") == []
    assert connector.state.banned_ids == ["x1", "x2"]


def test_second_kick_of_same_id_is_acknowledged(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/kick u-victim")
        await admin_says(connector, "/kick u-victim")

    ws = run(connector, fake_connect, steps)

    assert [p["uid"] for p in ws.events_tagged("kick_member")] == ["u-victim"]
    assert replies(ws) == ["👢 Kicked u-victim.", "u-victim was already kicked."]


def test_say_cn_and_invite(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/say hello room")
        await admin_says(connector, "/cn Jack")
        await admin_says(connector, "/invite u9")

    ws = run(connector, fake_connect, steps)

    assert replies(ws) == ["hello room", "✏️ Name changed to Jack.", "📨 Invited u9."]
    assert ws.events_tagged("change_name")[0]["name"] == "Jack"
    assert ws.events_tagged("invite_member")[0]["uid"] == "u9"


def test_stats_and_count(connector, fake_connect, with_admin):
    async def steps(ws):
        await connector.events.dispatch(Frame("member_list", {"ML": [{"UID": "u1"}, {"UID": "u2"}]}))
        await admin_says(connector, "/count")
        await admin_says(connector, "/stats")

    texts = replies(run(connector, fake_connect, steps))

    assert texts[0] == "👥 Members: 2"
    assert texts[1].startswith("📊 Messages: 0 | Kicked: 0 | Spam blocked: 0")


def test_rejoin_reconnects(connector, fake_connect, with_admin):
    async def steps(ws):
        await admin_says(connector, "/rejoin")
        await wait_until(lambda: len(fake_connect.sockets) == 2 and connector.transport.is_connected)

    ws = run(connector, fake_connect, steps)

    assert replies(ws) == ["🔄 Rejoining..."]
    assert ws.closed


def test_help_is_public(connector, fake_connect, with_admin):
    async def steps(ws):
        await user_says(connector, "/help")

    text = replies(run(connector, fake_connect, steps))[0]
    assert "/guess" in text and "/kick" in text
