# backend/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from config import settings
from database import init_db
from services.errors import LedgerError

load_dotenv()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Router imports
from routes.products import router as products_router
from routes.stock import router as stock_router
from routes.transactions import router as transactions_router
from routes.partners import router as partners_router
from routes.logs import router as logs_router

# Initialisation
init_db()

app = FastAPI(title="Stock Ledger API", version="1.0.0")

# CORS Configuration
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain failures carry their own status code and a message fit for display
@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Router registration
app.include_router(products_router)
app.include_router(stock_router)
app.include_router(transactions_router)
app.include_router(partners_router)
app.include_router(logs_router)

@app.get("/")
def read_root():
    return {"message": "Stock Ledger API is running"}
