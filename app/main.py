# Run from project root: uvicorn app.main:app --reload

import logging

from fastapi import FastAPI

from app.api.routes import router
from app.core.config import LOG_LEVEL, SECURITY_LOG_DIR, SECURITY_LOG_RETENTION_DAYS
from app.core.security_log import configure_security_log

logging.basicConfig(level=LOG_LEVEL)
configure_security_log(SECURITY_LOG_DIR, SECURITY_LOG_RETENTION_DAYS)


app = FastAPI(title="Customer Service Bot")
app.include_router(router)
