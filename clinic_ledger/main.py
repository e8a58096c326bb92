from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from clinic_ledger.common.error_handlers import register_error_handlers
from clinic_ledger.core.config import settings
from clinic_ledger.api.v1 import accounts, transactions, vouchers, statements, vendors

app = FastAPI(title="Clinic Ledger", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Register API routers
app.include_router(accounts.router, prefix="/api/v1/accounts", tags=["accounts"])
app.include_router(
    transactions.router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(vouchers.router, prefix="/api/v1/vouchers", tags=["main ledger"])
app.include_router(
    statements.router, prefix="/api/v1/statements", tags=["statements"])
app.include_router(vendors.router, prefix="/api/v1/vendors", tags=["vendors"])


@app.get("/")
def read_root():
    return {"message": "Welcome to the Clinic Ledger APIs!"}
