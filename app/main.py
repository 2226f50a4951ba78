from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.deps import get_explore_stats_use_case
from app.api.routers.explore_stats import router as explore_stats_router
from app.api.routers.protocol_stats import router as protocol_stats_router
from app.shared.chains import build_chain_contracts, check_default_chain
from app.shared.config import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings = get_settings()
    check_default_chain(build_chain_contracts(settings.chain_contracts), settings.default_chain_id)
    chain_ids = settings.explore_stats_prewarm_chain_ids
    use_case = None
    if chain_ids:
        use_case = get_explore_stats_use_case()
        use_case.start_background_refresh(chain_ids)
    try:
        yield
    finally:
        if use_case is not None:
            await use_case.stop_background_refresh()


logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Explore Stats API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(explore_stats_router)
app.include_router(protocol_stats_router)

