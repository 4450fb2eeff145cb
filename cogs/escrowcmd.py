import asyncio
import itertools
import logging
from datetime import datetime

import discord
from discord.ext import commands
from tabulate import tabulate

from src.models.exceptions import EscrowAbort, EscrowError

logger = logging.getLogger('discord')


def check_admin_role(ctx):
    settings = ctx.bot.settings
    return (ctx.author.id == ctx.bot.owner_id) or (
        settings.admin_role_name in [role.name for role in getattr(ctx.author, 'roles', [])]
    )


def parse_expiration(text: str) -> int:
    """Parse a millisecond timestamp or an ISO date/datetime into milliseconds."""
    if text.isdigit():
        return int(text)
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        raise commands.BadArgument(f'Cannot read expiration {text!r}, use YYYY-MM-DD or milliseconds')
    return int(moment.timestamp() * 1000)


def format_time(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime('%Y-%m-%d %H:%M:%S')


class escrowcmd(commands.Cog):
    def __init__(self, bot):
        self.bot = bot

    @property
    def escrow(self):
        return self.bot.dispatcher

    def _toggle_number(self, n):
        amount = ['{:,}'.format(n), '{:.2e}'.format(n)]
        if n // (10**9) > 0:
            amount.append('{:.2f}'.format(n / (10**9)).rstrip('0').rstrip('.') + 'B')
        elif n // (10**6) > 0:
            amount.append('{:.2f}'.format(n / (10**6)).rstrip('0').rstrip('.') + 'M')
        elif n // (10**3) > 0:
            amount.append('{:.2f}'.format(n / (10**3)).rstrip('0').rstrip('.') + 'K')
        else:
            amount.append('{:,}'.format(n))
        return itertools.cycle(amount)

    async def _reply(self, ctx, premsg, *arg):
        amount = [self._toggle_number(n) for n in arg]
        s = [next(n) for n in amount]
        msg = await ctx.send(premsg.format(*s))
        await msg.add_reaction('🔄')

        def check(reaction, user):
            return not user.bot and reaction.message == msg
        while True:
            try:
                reaction, user = await self.bot.wait_for('reaction_add', timeout=3600.0, check=check)
            except asyncio.TimeoutError:
                break
            else:
                if reaction.emoji == '🔄':
                    await reaction.remove(user)
                    s = [next(n) for n in amount]
                    await msg.edit(content=premsg.format(*s))

    async def _confirm(self, ctx, text):
        msg = await ctx.send(text + ' press ✅ to confirm, ❌ to cancel.')
        await msg.add_reaction('✅')
        await msg.add_reaction('❌')

        def check(reaction, user):
            return user == ctx.author and reaction.message == msg
        while True:
            try:
                reaction, user = await self.bot.wait_for('reaction_add', timeout=600.0, check=check)
            except asyncio.TimeoutError:
                await ctx.send('Time out')
                return False
            if reaction.emoji == '✅':
                return True
            if reaction.emoji == '❌':
                await ctx.send('Action canceled!')
                return False

    async def _run(self, ctx, call):
        """Await a dispatcher call and report escrow errors to the channel."""
        try:
            return True, await call
        except EscrowError as err:
            await ctx.send('```' + str(err) + '```')
        except EscrowAbort as err:
            logger.error('Escrow call by %s aborted: %s', ctx.author.id, err, exc_info=err)
            await ctx.send('```Transaction aborted by the ledger, nothing was changed.```')
        return False, None

    @commands.command(name='open', help='$open expiration deposit(Optional) open your escrow account, again after $terminate')
    async def open(self, ctx, expiration: parse_expiration, deposit: int = 0):
        user = ctx.author
        ok, _ = await self._run(ctx, self.escrow.open(str(user.id), expiration, deposit))
        if ok:
            await ctx.send('```Escrow opened for ' + user.display_name + ', locked until '
                           + format_time(expiration) + '```')

    @commands.command(name='spend', help='$spend @username n memo(Optional) pay from your escrow, 3% is saved')
    async def spend(self, ctx, receiver: discord.User, n: int, memo=''):
        user = ctx.author
        ok, txn = await self._run(ctx, self.escrow.spend(str(user.id), str(receiver.id), n, memo))
        if ok:
            premsg = '```' + user.display_name + ' has sent ' + receiver.display_name + ' {}, saved {}```'
            await self._reply(ctx, premsg, txn.amount, txn.fee)

    @commands.command(name='withdraw', help='$withdraw withdraw your savings after expiration')
    async def withdraw(self, ctx, owner: discord.User = None):
        user = ctx.author
        owner_id = str(owner.id) if owner else None
        ok, txn = await self._run(ctx, self.escrow.withdraw_savings(str(user.id), owner_id))
        if ok:
            premsg = '```' + user.display_name + ' has withdrawn {} of savings```'
            await self._reply(ctx, premsg, txn.amount)

    @commands.command(name='terminate', help='$terminate close your escrow and reclaim everything after expiration')
    async def terminate(self, ctx, owner: discord.User = None):
        user = ctx.author
        if not await self._confirm(ctx, '```This closes the escrow for good.```'):
            return
        owner_id = str(owner.id) if owner else None
        ok, flushed = await self._run(ctx, self.escrow.terminate(str(user.id), owner_id))
        if ok:
            premsg = '```Escrow closed, ' + user.display_name + ' reclaimed {}```'
            await self._reply(ctx, premsg, flushed)

    @commands.command(name='status', help='$status show your escrow account')
    async def status(self, ctx):
        user = ctx.author
        ok, data = await self._run(ctx, self.escrow.status(str(user.id)))
        if not ok:
            return
        if data['status'] != 'active':
            await ctx.send('```Escrow is ' + data['status'] + '```')
            return
        rows = [
            ['Balance', '{:,}'.format(data['balance'])],
            ['Saved', '{:,}'.format(data['saved'])],
            ['Free', '{:,}'.format(data['free'])],
            ['Expires', format_time(data['expiration'])],
        ]
        await ctx.send('```' + tabulate(rows, stralign='right') + '```')

    @commands.command(name='history', help='$history n(Optional) show the last n escrow operations')
    async def history(self, ctx, n: int = 5):
        user = ctx.author
        n = min(n, self.bot.settings.history_max_output)
        ok, data = await self._run(ctx, self.escrow.history(str(user.id), n))
        if not ok:
            return
        if not data:
            await ctx.send('```No transaction found```')
            return
        header = ['Type', 'Time', 'Amount', 'Fee', 'Counterparty', 'Memo']
        rows = [[t.type, t.time.strftime('%m/%d %H:%M'), '{:,}'.format(t.amount), '{:,}'.format(t.fee),
                 t.counterparty, t.memo] for t in data]
        content = tabulate(rows, headers=header, stralign='right', numalign='right')
        await ctx.send('```' + content + '```')

    @commands.command(name='balance', help='$balance show your ledger balance')
    async def balance(self, ctx):
        user = ctx.author
        n = await self.escrow.balance_of(str(user.id))
        premsg = '```' + user.display_name + ' ledger balance: {}```'
        await self._reply(ctx, premsg, n)

    @commands.command(name='mint', help='$mint @username n credit a member ledger balance, admin only')
    @commands.check(check_admin_role)
    async def mint(self, ctx, receiver: discord.User, n: int):
        ok, balance = await self._run(ctx, self.escrow.mint(str(receiver.id), n))
        if ok:
            logger.info('%s minted %s to %s', ctx.author.id, n, receiver.id)
            premsg = '```' + receiver.display_name + ' now holds {}```'
            await self._reply(ctx, premsg, balance)


async def setup(bot):
    await bot.add_cog(escrowcmd(bot))
    logger.info('escrowcmd is loaded')
