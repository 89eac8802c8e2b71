"""
Command Dispatcher

Handles chat lines that survived moderation:

1. An answer to the active typing challenge
2. A mention of the bot's name -> completion service, replied in chunks
3. A prefixed command -> admin grammar (a few commands are public)

Anything else is ignored. Exactly one of the above applies per message.
"""

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from .assistant import split_message
from .events import MIC_SLOTS
from .state import SECRET_MAX, SECRET_MIN

if TYPE_CHECKING:
    from .connector import Connector

logger = logging.getLogger(__name__)

DENIAL_MESSAGE = "⛔ Only admins can use that command."

PUBLIC_COMMANDS = frozenset({"mic", "admins", "whois", "guess", "help"})

TYPING_WORDS = (
    "galaxy", "whisper", "thunder", "velvet", "lantern", "horizon",
    "crystal", "marble", "phoenix", "harmony", "breeze", "compass",
    "meadow", "rhythm", "sapphire", "voyage", "ember", "puzzle",
)

HELP_TEXT = (
    "Public: {p}mic {p}admins {p}whois <id|name> {p}guess <1-100> {p}help | "
    "Admin: {p}take {p}leave {p}say <msg> {p}spam <word> {p}kick <id> {p}cn <name> "
    "{p}invite <id> {p}joinmic <1-10> {p}lm <n|all> {p}ulm <n|all> {p}ub <all|check> "
    "{p}rejoin {p}stats {p}count {p}type"
)


@dataclass
class CommandCall:
    """One parsed command invocation."""
    name: str
    args: str
    sender_id: str
    sender_name: str


def strip_bot_name(text: str, bot_name: str) -> str:
    """Remove every case-insensitive occurrence of the bot's name."""
    stripped = re.sub(re.escape(bot_name), "", text, flags=re.IGNORECASE)
    return " ".join(stripped.split())


def parse_mic_targets(arg: str) -> list[int] | None:
    """'all' -> every slot, '1'..'10' -> that slot (0-based). None if invalid."""
    arg = arg.strip().lower()
    if arg == "all":
        return list(range(MIC_SLOTS))
    if arg.isdecimal() and 1 <= int(arg) <= MIC_SLOTS:
        return [int(arg) - 1]
    return None


class CommandDispatcher:
    """Admin command grammar, mini-games and bot mentions."""

    def __init__(self, connector: "Connector"):
        self.connector = connector
        self._commands: dict[str, Callable[[CommandCall], Awaitable[None]]] = {
            "help": self.command_help,
            "mic": self.command_mic,
            "admins": self.command_admins,
            "whois": self.command_whois,
            "guess": self.command_guess,
            "take": self.command_take,
            "leave": self.command_leave,
            "say": self.command_say,
            "spam": self.command_spam,
            "kick": self.command_kick,
            "cn": self.command_cn,
            "invite": self.command_invite,
            "joinmic": self.command_joinmic,
            "lm": self.command_lock,
            "ulm": self.command_unlock,
            "ub": self.command_unban,
            "rejoin": self.command_rejoin,
            "stats": self.command_stats,
            "count": self.command_count,
            "type": self.command_type,
        }

    @property
    def prefix(self) -> str:
        return self.connector.config.command_prefix

    async def reply(self, text: str) -> bool:
        return await self.connector.encoder.send_message(text)

    async def handle(self, message: str, sender_id: str, sender_name: str) -> None:
        text = (message or "").strip()
        if not text:
            return

        games = self.connector.state.games
        if games.typing_word and text.lower() == games.typing_word.lower():
            games.typing_word = None
            await self.reply(f"🏆 {sender_name} typed it first!")
            return

        bot_name = self.connector.profile.bot_name
        if bot_name and bot_name.lower() in text.lower():
            prompt = strip_bot_name(text, bot_name) or "Hello!"
            self.connector.spawn(self.answer_mention(sender_id, prompt))
            return

        if not text.startswith(self.prefix):
            return

        name, _, args = text[len(self.prefix):].partition(" ")
        call = CommandCall(
            name=name.lower(),
            args=args.strip(),
            sender_id=sender_id,
            sender_name=sender_name,
        )

        if call.name not in PUBLIC_COMMANDS and not self.connector.is_admin(sender_id, sender_name):
            logger.info(f"Denied {self.prefix}{call.name} for {sender_name} ({sender_id})")
            await self.reply(DENIAL_MESSAGE)
            return

        handler = self._commands.get(call.name)
        if handler is None:
            await self.reply(f"Unknown command. Try {self.prefix}help")
            return

        logger.info(f"Command {self.prefix}{call.name} from {sender_name} ({sender_id})")
        await handler(call)

    async def answer_mention(self, sender_id: str, prompt: str) -> None:
        """Ask the assistant and relay the reply in rate-friendly chunks."""
        config = self.connector.config
        reply = await self.connector.assistant.reply(sender_id, prompt)

        for i, chunk in enumerate(split_message(reply, config.chunk_size)):
            if i:
                await asyncio.sleep(config.chunk_delay)
            await self.reply(chunk)

    # ==================== Public ====================

    async def command_help(self, call: CommandCall) -> None:
        await self.reply(HELP_TEXT.format(p=self.prefix))

    async def command_mic(self, call: CommandCall) -> None:
        connector = self.connector
        is_member = connector.state.roster.get(call.sender_id) is not None
        if not (is_member or connector.is_loyal(call.sender_id, call.sender_name)):
            await self.reply("🎤 Mic invites are for club members only.")
            return
        if await connector.encoder.invite_member(call.sender_id):
            await self.reply(f"🎤 Mic invite sent to {call.sender_name}.")

    async def command_admins(self, call: CommandCall) -> None:
        admins = self.connector.admins
        if not admins:
            await self.reply("No admins configured.")
            return
        await self.reply(f"👑 Admins: {', '.join(admins)}")

    async def command_whois(self, call: CommandCall) -> None:
        if not call.args:
            await self.reply(f"Usage: {self.prefix}whois <id or name>")
            return
        matches = self.connector.state.roster.search(call.args)
        if not matches:
            await self.reply(f"🔍 No member matches '{call.args}'.")
            return
        listing = ", ".join(f"{m.name} ({m.uid}) lvl {m.level}" for m in matches)
        await self.reply(f"🔍 {listing}")

    async def command_guess(self, call: CommandCall) -> None:
        try:
            guess = int(call.args)
        except ValueError:
            await self.reply(f"Usage: {self.prefix}guess <{SECRET_MIN}-{SECRET_MAX}>")
            return

        games = self.connector.state.games
        if guess == games.secret:
            games.new_secret()
            await self.reply(
                f"🎉 {call.sender_name} guessed it! The number was {guess}. "
                f"I picked a new one."
            )
        elif guess < games.secret:
            await self.reply(f"📈 Higher than {guess}!")
        else:
            await self.reply(f"📉 Lower than {guess}!")

    # ==================== Admin ====================

    async def command_take(self, call: CommandCall) -> None:
        connector = self.connector
        mics = connector.state.mics
        slot = mics.slot_of(connector.bot_uid)
        if slot is None:
            slot = mics.first_free()
        if slot is None:
            await self.reply("🎤 All mics are taken.")
            return
        if await connector.encoder.take_mic(slot):
            mics.occupy(slot, connector.bot_uid)

    async def command_leave(self, call: CommandCall) -> None:
        connector = self.connector
        slot = connector.state.mics.slot_of(connector.bot_uid)
        if await connector.encoder.leave_mic(slot):
            connector.state.mics.vacate(connector.bot_uid)

    async def command_say(self, call: CommandCall) -> None:
        if not call.args:
            await self.reply(f"Usage: {self.prefix}say <message>")
            return
        await self.reply(call.args)

    async def command_spam(self, call: CommandCall) -> None:
        if not call.args:
            await self.reply(f"Usage: {self.prefix}spam <word>")
            return
        if await self.connector.add_spam_word(call.args):
            await self.reply(f"✅ Added \"{call.args}\" to the spam list.")
        else:
            await self.reply("❌ Could not update the spam list.")

    async def command_kick(self, call: CommandCall) -> None:
        uid = call.args.split()[0] if call.args else ""
        if not uid:
            await self.reply(f"Usage: {self.prefix}kick <id>")
            return
        if uid == self.connector.bot_uid:
            return
        if await self.connector.kick(uid, f"kicked by {call.sender_name}"):
            await self.reply(f"👢 Kicked {uid}.")
        else:
            await self.reply(f"{uid} was already kicked.")

    async def command_cn(self, call: CommandCall) -> None:
        if not call.args:
            await self.reply(f"Usage: {self.prefix}cn <name>")
            return
        if await self.connector.encoder.change_name(call.args):
            await self.reply(f"✏️ Name changed to {call.args}.")

    async def command_invite(self, call: CommandCall) -> None:
        uid = call.args.split()[0] if call.args else ""
        if not uid:
            await self.reply(f"Usage: {self.prefix}invite <id>")
            return
        if await self.connector.encoder.invite_member(uid):
            await self.reply(f"📨 Invited {uid}.")

    async def command_joinmic(self, call: CommandCall) -> None:
        targets = parse_mic_targets(call.args)
        if not targets or len(targets) != 1:
            await self.reply(f"Usage: {self.prefix}joinmic <1-{MIC_SLOTS}>")
            return
        index = targets[0]
        connector = self.connector
        if await connector.encoder.join_mic(index):
            connector.state.mics.occupy(index, connector.bot_uid)

    async def command_lock(self, call: CommandCall) -> None:
        targets = parse_mic_targets(call.args)
        if targets is None:
            await self.reply(f"Usage: {self.prefix}lm <1-{MIC_SLOTS}|all>")
            return
        for index in targets:
            await self.connector.encoder.lock_mic(index)

    async def command_unlock(self, call: CommandCall) -> None:
        targets = parse_mic_targets(call.args)
        if targets is None:
            await self.reply(f"Usage: {self.prefix}ulm <1-{MIC_SLOTS}|all>")
            return
        for index in targets:
            await self.connector.encoder.unlock_mic(index)

    async def command_unban(self, call: CommandCall) -> None:
        mode = call.args.lower()
        if mode not in ("all", "check"):
            await self.reply(f"Usage: {self.prefix}ub <all|check>")
            return
        banned = self.connector.state.banned_ids
        if not banned:
            await self.reply("Nobody is banned.")
            return
        if mode == "check":
            await self.reply(f"🚫 Banned ({len(banned)}): {', '.join(banned)}")
            return
        unbanned = 0
        for uid in list(banned):
            if await self.connector.encoder.unban_user(uid):
                banned.remove(uid)
                unbanned += 1
        await self.reply(f"🔓 Unbanned {unbanned} user(s).")

    async def command_rejoin(self, call: CommandCall) -> None:
        await self.reply("🔄 Rejoining...")
        # Restart from outside the frame loop that is running this handler
        self.connector.spawn(self.connector.transport.restart())

    async def command_stats(self, call: CommandCall) -> None:
        stats = self.connector.engine.stats
        minutes = int(self.connector.uptime_seconds // 60)
        await self.reply(
            f"📊 Messages: {stats.messages_processed} | Kicked: {stats.users_kicked} | "
            f"Spam blocked: {stats.spam_blocked} | Uptime: {minutes // 60}h {minutes % 60}m"
        )

    async def command_count(self, call: CommandCall) -> None:
        await self.reply(f"👥 Members: {len(self.connector.state.roster)}")

    async def command_type(self, call: CommandCall) -> None:
        word = random.choice(TYPING_WORDS)
        self.connector.state.games.typing_word = word
        await self.reply(f"⌨️ First to type this wins: {word}")
