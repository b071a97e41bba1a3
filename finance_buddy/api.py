"""
FastAPI REST API Module

Exposes the ledger engine over HTTP. The engine serializes every call
with its own lock, so concurrent requests see one writer at a time.
Amounts travel as decimal strings.
"""

from datetime import datetime, timezone
from typing import Dict, Optional, Any
from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import uvicorn

from . import __version__
from .amounts import decimal_from_string, format_amount
from .config import get_config
from .engine import LedgerEngine
from .errors import (
    AccountNotFoundError, EmptyJournalError, InsufficientFundsError,
    InvalidAmountError, LedgerError, PersistenceError, SameAccountError,
    UndoRefusedError
)
from .ledger import Account, Transaction
from .logging_config import get_logger


logger = get_logger("finance_buddy.api")


# Pydantic models for API requests/responses
class CreateAccountRequest(BaseModel):
    name: str
    opening_balance: str = Field("0.00", description="Decimal amount as string")


class AmountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")


class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class LedgerFileRequest(BaseModel):
    path: Optional[str] = Field(None, description="Ledger file; configured data file if omitted")


def account_to_dict(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "name": account.name,
        "balance": format_amount(account.balance),
        "transaction_count": len(account.transactions)
    }


def transaction_to_dict(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "kind": transaction.kind.value,
        "amount": format_amount(transaction.amount),
        "counterpart_account_id": transaction.counterpart_account_id,
        "timestamp": transaction.timestamp
    }


def parse_amount(raw: str):
    try:
        return decimal_from_string(raw)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def http_error(error: LedgerError) -> HTTPException:
    """Translate a domain error to the matching HTTP error"""
    logger.info(f"Request rejected: {error}")
    if isinstance(error, AccountNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (InsufficientFundsError, SameAccountError, InvalidAmountError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, UndoRefusedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, PersistenceError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


# Global engine instance
ledger_engine = LedgerEngine()


# Dependency to get the ledger engine
def get_engine() -> LedgerEngine:
    return ledger_engine


def create_app() -> FastAPI:
    """Build the FastAPI application with all ledger routes"""
    app = FastAPI(
        title="Finance Buddy API",
        description="Personal finance ledger with undo and flat-file persistence",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    # Account Endpoints
    @app.get("/accounts")
    def list_accounts(engine: LedgerEngine = Depends(get_engine)):
        """List accounts, most recently created first"""
        with engine.locked():
            return {
                "accounts": [account_to_dict(a) for a in engine.list_accounts()],
                "total_balance": format_amount(engine.total_balance())
            }

    @app.post("/accounts", status_code=status.HTTP_201_CREATED)
    def create_account(
        request: CreateAccountRequest,
        engine: LedgerEngine = Depends(get_engine)
    ):
        """Create a new account"""
        opening_balance = parse_amount(request.opening_balance)
        try:
            with engine.locked():
                account = account_to_dict(engine.create_account(request.name, opening_balance))
        except LedgerError as e:
            raise http_error(e) from e
        return {**account, "message": "Account created successfully"}

    @app.get("/accounts/{account_id}")
    def get_account(account_id: int, engine: LedgerEngine = Depends(get_engine)):
        """Get account details"""
        try:
            with engine.locked():
                return account_to_dict(engine.get_account(account_id))
        except LedgerError as e:
            raise http_error(e) from e

    @app.get("/accounts/{account_id}/transactions")
    def get_account_transactions(account_id: int, engine: LedgerEngine = Depends(get_engine)):
        """Transactions for an account, newest first"""
        try:
            transactions = engine.show_transactions(account_id)
        except LedgerError as e:
            raise http_error(e) from e
        return {
            "account_id": account_id,
            "transactions": [transaction_to_dict(t) for t in transactions]
        }

    # Transaction Endpoints
    @app.post("/accounts/{account_id}/deposit")
    def deposit(
        account_id: int,
        request: AmountRequest,
        engine: LedgerEngine = Depends(get_engine)
    ):
        """Make a deposit"""
        amount = parse_amount(request.amount)
        try:
            with engine.locked():
                transaction = engine.deposit(account_id, amount)
                balance = engine.get_account(account_id).balance
        except LedgerError as e:
            raise http_error(e) from e
        return {
            "transaction": transaction_to_dict(transaction),
            "balance": format_amount(balance),
            "message": "Deposit processed successfully"
        }

    @app.post("/accounts/{account_id}/withdraw")
    def withdraw(
        account_id: int,
        request: AmountRequest,
        engine: LedgerEngine = Depends(get_engine)
    ):
        """Make a withdrawal"""
        amount = parse_amount(request.amount)
        try:
            with engine.locked():
                transaction = engine.withdraw(account_id, amount)
                balance = engine.get_account(account_id).balance
        except LedgerError as e:
            raise http_error(e) from e
        return {
            "transaction": transaction_to_dict(transaction),
            "balance": format_amount(balance),
            "message": "Withdrawal processed successfully"
        }

    @app.post("/transfers")
    def transfer(request: TransferRequest, engine: LedgerEngine = Depends(get_engine)):
        """Make a transfer between accounts"""
        amount = parse_amount(request.amount)
        try:
            from_tx, to_tx = engine.transfer(
                request.from_account_id, request.to_account_id, amount
            )
        except LedgerError as e:
            raise http_error(e) from e
        return {
            "from_transaction": transaction_to_dict(from_tx),
            "to_transaction": transaction_to_dict(to_tx),
            "message": "Transfer processed successfully"
        }

    @app.post("/undo")
    def undo_last(engine: LedgerEngine = Depends(get_engine)):
        """Undo the most recent operation"""
        try:
            record = engine.undo_last()
        except EmptyJournalError as e:
            return {"undone": False, "message": str(e)}
        except LedgerError as e:
            raise http_error(e) from e
        return {
            "undone": True,
            "operation": record.op_kind.value,
            "account_id": record.account_id,
            "counterpart_account_id": record.counterpart_account_id,
            "amount": format_amount(record.amount)
        }

    # Persistence Endpoints
    @app.post("/ledger/save")
    def save_ledger(
        request: Optional[LedgerFileRequest] = None,
        engine: LedgerEngine = Depends(get_engine)
    ):
        """Write the whole ledger to a file"""
        path = request.path if request else None
        try:
            lines = engine.save(path)
        except LedgerError as e:
            raise http_error(e) from e
        return {"saved": True, "path": path or engine.config.data_file, "lines": lines}

    @app.post("/ledger/load")
    def load_ledger(
        request: Optional[LedgerFileRequest] = None,
        engine: LedgerEngine = Depends(get_engine)
    ):
        """Replace the ledger with a file's contents"""
        path = request.path if request else None
        try:
            loaded = engine.load(path)
        except LedgerError as e:
            raise http_error(e) from e
        return {
            "loaded": loaded,
            "path": path or engine.config.data_file,
            "accounts": len(engine.list_accounts())
        }

    return app


app = create_app()


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    if config.autoload_on_start:
        ledger_engine.load()
    uvicorn.run(
        app,
        host=host or config.api_host,
        port=port or config.api_port,
        log_level="debug" if debug else "info"
    )
