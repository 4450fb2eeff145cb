import logging
import sqlite3

import discord
from discord.ext import commands
from dotenv import load_dotenv

from config.settings import Settings
from src.repositories.balance_repo import BalanceRepository
from src.repositories.escrow_repo import EscrowRepository
from src.repositories.transaction_repo import TransactionRepository
from src.services.dispatcher import EscrowDispatcher

extensions = (
    "cogs.escrowcmd",
    )


def build_dispatcher(conn: sqlite3.Connection, settings: Settings) -> EscrowDispatcher:
    balance_repo = BalanceRepository(conn)
    escrow_repo = EscrowRepository(conn)
    transaction_repo = TransactionRepository(conn)
    for repo in (balance_repo, escrow_repo, transaction_repo):
        repo.create_table()
    return EscrowDispatcher(
        balance_repo,
        escrow_repo,
        transaction_repo,
        minimum_reserve=settings.minimum_reserve,
    )


class EscrowBot(commands.Bot):
    def __init__(self, *args, **kwargs):
        self.settings = kwargs.pop('settings')
        self.dispatcher = kwargs.pop('dispatcher')
        super().__init__(*args, **kwargs)

    async def setup_hook(self):
        for extension in extensions:
            await self.load_extension(extension)


def main():
    logger = logging.getLogger('discord')
    logger.setLevel(logging.DEBUG)
    handler = logging.FileHandler(filename='discord.log', encoding='utf-8', mode='w')
    handler.setFormatter(logging.Formatter('%(asctime)s:%(levelname)s:%(name)s: %(message)s'))
    logger.addHandler(handler)
    logging.getLogger('src').addHandler(handler)
    logging.getLogger('src').setLevel(logging.INFO)

    load_dotenv()
    settings = Settings.load()

    intents = discord.Intents.default()
    intents.members = True
    intents.message_content = True

    conn = sqlite3.connect(settings.db_path)
    bot = EscrowBot(
        command_prefix=settings.command_prefix,
        owner_id=settings.owner_id,
        intents=intents,
        settings=settings,
        dispatcher=build_dispatcher(conn, settings),
    )
    bot.run(settings.discord_token, log_handler=None)


if __name__ == '__main__':
    main()
