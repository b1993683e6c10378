from fastapi import FastAPI
from rewards_ledger.routers.admin import admin_router
from rewards_ledger.routers.internal import internal_router
from rewards_ledger.routers.public import public_router

from rewards_ledger.core.logging_config import setup_logging

setup_logging()


app = FastAPI(
    title="Rewards Ledger",
    description="Credits and points ledger with referral rewards, check-ins and exchange",
    version="1.0.0"
)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(internal_router)
app.include_router(public_router)
app.include_router(admin_router)
