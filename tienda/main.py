import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from tienda.config import settings
from tienda.db.factory import make_backends
from tienda.bot.handlers import router
from tienda.services.products import ProductAdmin

async def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is not set (.env)")
    if not settings.admin_id:
        raise RuntimeError("ADMIN_ID is not set (.env)")

    backends = make_backends()

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher(admin=ProductAdmin(backends.products, backends.images))
    dp.include_router(router)

    try:
        await dp.start_polling(bot)
    finally:
        await backends.close()
        await bot.session.close()

if __name__ == "__main__":
    asyncio.run(main())
