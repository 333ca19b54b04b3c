import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

# === Импорты проекта ===
from config import load_settings
from handlers import refresh as refresh_ui
from handlers import stock as stock_ui
from inventory.flow import SelectionFlow
from inventory.index import build_index
from inventory.refresh import RefreshScheduler
from inventory.shopify import ShopifyClient
from inventory.sku import SkuFormat
from inventory.store import IndexStore

# === Конфиг ===
settings = load_settings()
if not settings.bot_token:
    raise RuntimeError("BOT_TOKEN не задан в переменных окружения")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("main")


def build_dispatcher(store: IndexStore, flow: SelectionFlow, scheduler: RefreshScheduler) -> Dispatcher:
    dp = Dispatcher(storage=MemoryStorage())

    # зависимости прокидываются в хендлеры по имени аргумента
    dp["settings"] = settings
    dp["store"] = store
    dp["flow"] = flow
    dp["scheduler"] = scheduler

    # === Подключаем роутеры ===
    dp.include_router(stock_ui.router)
    dp.include_router(refresh_ui.router)
    return dp


# =====================================================
#        Lifespan FastAPI: бот + фоновое обновление
# =====================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    store = IndexStore()
    shopify = ShopifyClient.from_settings(settings)
    fmt = SkuFormat.from_settings(settings)

    async def _build():
        return await build_index(shopify.iter_variant_pages(), fmt, settings.internal_title_marker)

    scheduler = RefreshScheduler(
        store,
        _build,
        interval_min=settings.refresh_interval_min,
        jitter_max_sec=settings.refresh_jitter_sec,
        single_flight=settings.refresh_single_flight,
        on_failure=shopify.count_variants_without_inventory,
    )
    flow = SelectionFlow(
        store,
        type_priority=settings.type_priority,
        subcategory_cap=settings.subcategory_option_cap,
    )

    bot = Bot(settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = build_dispatcher(store, flow, scheduler)

    app.state.store = store

    print("🚀 Запуск Aiogram polling...")
    await shopify.sanity_check()
    scheduler.start()
    polling = asyncio.create_task(dp.start_polling(bot, handle_signals=False))

    try:
        yield
    finally:
        polling.cancel()
        await asyncio.gather(polling, return_exceptions=True)
        await scheduler.stop()

        # ✅ закрываем aiohttp-сессию aiogram и httpx-клиент Shopify
        await bot.session.close()
        await shopify.aclose()
        print("🛑 Polling остановлен")


app = FastAPI(title="Stock Picker", lifespan=lifespan)


@app.get("/status")
async def status():
    return app.state.store.status()


def start_server():
    try:
        uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_level="info")
    except KeyboardInterrupt:
        print("🛑 Остановка по Ctrl+C")
    finally:
        print("✅ Сервер и бот завершены.")


if __name__ == "__main__":
    start_server()
