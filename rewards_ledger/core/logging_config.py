import logging
import json
import os

from rewards_ledger.core.config import config
from rewards_ledger.models import (
    LedgerTransaction, RewardRecord, ReferralRelation, CheckIn,
    ExchangeHistory, AdminLog
)


def _columns(*models) -> set:
    return {c.name for model in models for c in model.__table__.columns}


# ledger movements (transactions)
LEDGER_FIELDS = _columns(LedgerTransaction)
# referral lifecycle
REFERRAL_FIELDS = _columns(ReferralRelation, RewardRecord)
# check-in, exchange
POINTS_FIELDS = _columns(CheckIn, ExchangeHistory)
# admin logging
ADMIN_FIELDS = _columns(AdminLog)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ModelFormatter(logging.Formatter):
    def __init__(self, fmt=None, fields=None):
        super().__init__(fmt)
        self.fields = fields or set()

    def format(self, record):
        base = super().format(record)
        extras = {k: v for k, v in record.__dict__.items() if k in self.fields}
        if extras:
            base += " " + json.dumps(extras, default=str, ensure_ascii=False)
        return base


def _attach(logger_name: str, filename: str, fields: set):
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    path = os.path.join(config.LOG_DIR, filename)
    # setup_logging() can run more than once (tests, reload)
    if any(getattr(h, "baseFilename", None) == os.path.abspath(path) for h in logger.handlers):
        return logger
    handler = logging.FileHandler(path)
    handler.setFormatter(ModelFormatter(LOG_FORMAT, fields=fields))
    logger.addHandler(handler)
    return logger


# setup
def setup_logging():
    os.makedirs(config.LOG_DIR, exist_ok=True)

    _attach("[LEDGER]", "ledger.log", LEDGER_FIELDS)
    _attach("[REFERRAL]", "referral.log", REFERRAL_FIELDS | LEDGER_FIELDS)
    _attach("[POINTS]", "points.log", POINTS_FIELDS | LEDGER_FIELDS)
    _attach("[REDEEM]", "redeem.log", LEDGER_FIELDS)
    _attach("[ADMIN]", "admin.log", ADMIN_FIELDS)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
