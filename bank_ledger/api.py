"""
FastAPI REST API Module

Thin HTTP layer over LedgerService. The acting user arrives in the
X-User-ID header; verifying that identity belongs to the gateway in front
of this service. Ledger error kinds map to status codes:
not found -> 404, permission denied -> 403, business rules -> 400,
anything else -> 500.
"""

from typing import List, Optional
from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.responses import JSONResponse
import uvicorn

from .config import get_config
from .errors import ErrorKind, LedgerError, PermissionDenied
from .logging_config import get_logger, setup_logging
from .schemas import (
    AccountModel, CreateAccountRequest, DepositRequest, ErrorResponse, TransactionModel,
    TransferRequest
)
from .service import LedgerService


logger = get_logger("bank_ledger.api")

ADMIN_ROLE = "admin"
INTERNAL_ERROR_MESSAGE = "Could not process request"
ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 403, 404, 500)}


def status_for(kind: ErrorKind) -> int:
    """Map an error kind to its HTTP status code"""
    if kind.is_not_found:
        return status.HTTP_404_NOT_FOUND
    if kind == ErrorKind.PERMISSION_DENIED:
        return status.HTTP_403_FORBIDDEN
    if kind.is_business_rule:
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def get_ledger_service(request: Request) -> LedgerService:
    return request.app.state.ledger


def get_current_user_id(x_user_id: int = Header(..., alias="X-User-ID")) -> int:
    return x_user_id


def require_admin(
    user_id: int = Depends(get_current_user_id),
    x_user_role: str = Header("user", alias="X-User-Role")
) -> int:
    if x_user_role.lower() != ADMIN_ROLE:
        raise PermissionDenied("admin access required")
    return user_id


def create_app(ledger: Optional[LedgerService] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Bank Ledger API",
        description="Accounts, balances and atomic money transfers",
        version="1.0.0",
    )
    app.state.ledger = ledger if ledger is not None else LedgerService.from_config()

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, error: LedgerError):
        code = status_for(error.kind)
        if code == status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("Request failed: %s", error.message, exc_info=error)
            message = INTERNAL_ERROR_MESSAGE
        else:
            message = error.message
        return JSONResponse(
            status_code=code,
            content={"code": code, "message": message, "kind": error.kind.value}
        )

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "database": app.state.ledger.database.dialect}

    @app.post("/api/transfers", status_code=status.HTTP_201_CREATED, response_model=TransactionModel,
              responses=ERROR_RESPONSES)
    def create_transfer(
        request: TransferRequest,
        user_id: int = Depends(get_current_user_id),
        ledger: LedgerService = Depends(get_ledger_service)
    ):
        """Transfer money from one of the user's accounts to any account"""
        result = ledger.transfer(user_id, request.from_account_id, request.to_account_id, request.amount)
        return TransactionModel.from_transaction(result.transaction)

    @app.get("/api/accounts/{account_id}/transactions", response_model=List[TransactionModel])
    def list_transactions(
        account_id: int,
        user_id: int = Depends(get_current_user_id),
        ledger: LedgerService = Depends(get_ledger_service)
    ):
        """Transaction history of one of the user's accounts, newest first"""
        transactions = ledger.list_transactions_for_account(user_id, account_id)
        return [TransactionModel.from_transaction(t) for t in transactions]

    @app.post("/api/accounts", status_code=status.HTTP_201_CREATED, response_model=AccountModel)
    def create_account(
        request: CreateAccountRequest,
        user_id: int = Depends(get_current_user_id),
        ledger: LedgerService = Depends(get_ledger_service)
    ):
        """Open a zero-balance account for the user"""
        account = ledger.account_manager.create_account(user_id, request.currency)
        return AccountModel.from_account(account)

    @app.get("/api/accounts", response_model=List[AccountModel])
    def list_accounts(
        user_id: int = Depends(get_current_user_id),
        ledger: LedgerService = Depends(get_ledger_service)
    ):
        """List the user's accounts"""
        accounts = ledger.account_manager.list_accounts_for_user(user_id)
        return [AccountModel.from_account(a) for a in accounts]

    @app.get("/api/admin/accounts", response_model=List[AccountModel])
    def list_all_accounts(
        admin_id: int = Depends(require_admin),
        ledger: LedgerService = Depends(get_ledger_service)
    ):
        """List every account (admin only)"""
        return [AccountModel.from_account(a) for a in ledger.account_manager.list_all_accounts()]

    @app.post("/api/admin/accounts/{account_id}/deposit", response_model=AccountModel)
    def deposit(
        account_id: int,
        request: DepositRequest,
        admin_id: int = Depends(require_admin),
        ledger: LedgerService = Depends(get_ledger_service)
    ):
        """Deposit funds into any account (admin only)"""
        logger.info("Admin %s depositing %s into account %s", admin_id, request.amount, account_id)
        account = ledger.account_manager.deposit(account_id, request.amount)
        return AccountModel.from_account(account)

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    uvicorn.run(
        "bank_ledger.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
