import asyncio
import getpass
import logging

from rich import print
from rich.logging import RichHandler

import config
from domain.context import ScalerContext
from domain.errors import ScalerError
from domain.models import ScaledRecipe


CONFIG = config.Config()


HELP = (
    "recipes | scaled [recipe id] | scale <recipe id> <servings> | "
    "ai <recipe id> <servings> | tips [cooking method] | logout | q"
)


def show_scaled(scaled: ScaledRecipe) -> None:
    print(f"[bold]{scaled.id}[/bold] serves {scaled.target_servings} ({scaled.scaling_method.value})")
    for i in scaled.scaled_ingredients:
        prep = f", {i.preparation}" if i.preparation else ""
        print(f"  - {i.quantity:g} {i.unit} {i.name}{prep}")


async def sign_in(ctx: ScalerContext) -> None:
    if await ctx.auth.restore_session():
        return
    username = await asyncio.to_thread(input, "Username: ")
    password = await asyncio.to_thread(getpass.getpass, "Password: ")
    answer = await asyncio.to_thread(input, "New account? [y/N] ")
    if answer.lower().startswith("y"):
        await ctx.auth.register(username, password)
    else:
        await ctx.auth.login(username, password)


async def handle(ctx: ScalerContext, cmd: str, args: list[str]) -> bool:
    match cmd:
        case "recipes":
            for r in ctx.book.recipes():
                print(f"[bold]{r.id}[/bold] {r.name} (serves {r.original_servings})")
        case "scaled":
            for s in ctx.book.scaled_recipes(args[0] if args else None):
                show_scaled(s)
        case "scale" | "ai" if len(args) == 2:
            scale = ctx.book.scale_ai if cmd == "ai" else ctx.book.scale_manually
            scaled_id = await scale(args[0], int(args[1]))
            scaled = ctx.cache.get_scaled_recipe(scaled_id)
            if scaled is not None:
                show_scaled(scaled)
        case "tips":
            for t in ctx.book.tips(cooking_method=args[0] if args else None):
                print(f"[{t.cooking_method}/{t.direction.value}] {t.content}")
        case "logout":
            await ctx.auth.logout()
            return False
        case _:
            print(HELP)
    return True


async def main() -> None:
    logging.basicConfig(
        level=CONFIG.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler()],
    )

    async with ScalerContext(CONFIG) as ctx:
        try:
            await sign_in(ctx)
        except ScalerError as e:
            print(f"[red]Could not sign in: {e}[/red]")
            return
        print(f"Hello {ctx.auth.user.username if ctx.auth.user else 'there'}. {HELP}")

        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if line.lower() in ("q", "quit", "exit"):
                break
            if not line:
                continue
            cmd, *args = line.split()
            try:
                if not await handle(ctx, cmd.lower(), args):
                    break
            except (ScalerError, ValueError) as e:
                print(f"[red]{e}[/red]")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
