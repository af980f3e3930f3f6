#!/usr/bin/env python3

"""
Trade Ledger Web Application
Brokerage trade matching, position reconciliation and P&L API

Usage:
    python app.py                      # http://localhost:8000
    DATABASE_URL=postgresql://... PORT=9000 python app.py
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

load_dotenv()

from tradeledger.dependencies import db
from tradeledger.pipeline.position_reconciler import ReconciliationError
from tradeledger.routers import accounts, health, imports, positions, stats, trades

# Configure logging
logger.add(
    "logs/tradeledger_{time}.log",
    rotation="1 day",
    retention="7 days",
    level=os.environ.get("LOG_LEVEL", "INFO"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Trade Ledger")
    db.initialize_database()
    yield
    db.close()
    logger.info("Trade Ledger stopped")


# Initialize FastAPI app
app = FastAPI(
    title="Trade Ledger",
    description="Trade matching and position reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReconciliationError)
async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
    logger.error(f"{request.method} {request.url.path}: {exc} ({exc.__cause__})")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# Routers
app.include_router(health.router)
app.include_router(accounts.router)
app.include_router(trades.router)
app.include_router(positions.router)
app.include_router(imports.router)
app.include_router(stats.router)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    logger.info(f"Starting Trade Ledger on http://localhost:{port}")
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
