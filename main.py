from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
from datetime import date
import uvicorn
import logging

import config
from database.database import init_db, get_db
from database.models import UserModel
from models.transaction import Transaction, TransactionCreate, TransactionUpdate, TransactionFilters, TransactionType
from models.stats import SummaryResponse, CategoryStatsResponse, MonthStatsResponse
from models.user import UserRegister, UserLogin, ProfileUpdate, PasswordUpdate, User, TokenUser
from services.auth_service import AuthService, create_access_token
from services.transaction_service import TransactionService
from services.stats_service import StatsService
from services.export_service import ExportService, PDF_MIME, EXCEL_MIME, export_filename
from services.errors import AppError, ServerError, field_errors

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Gestion Finances API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Initialize database
config.warn_if_default_secret()
init_db()

# Initialize services
auth_service = AuthService()
transaction_service = TransactionService()
stats_service = StatsService()
export_service = ExportService()

bearer_scheme = HTTPBearer(auto_error=False)


# Gestion des erreurs : toujours {success: false, message, errors?}
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={
        "success": False,
        "message": "Données invalides",
        "errors": field_errors(exc.errors()),
    })

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": str(exc.detail)})

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Erreur inattendue sur {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"success": False, "message": "Erreur serveur"})


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> UserModel:
    """Dependency : utilisateur authentifié par le jeton Bearer"""
    token = credentials.credentials if credentials else None
    return auth_service.user_from_token(db, token)


def build_filters(
    kind: Optional[TransactionType] = Query(None, alias="type"),
    category: Optional[str] = None,
    startDate: Optional[date] = None,
    endDate: Optional[date] = None,
    search: Optional[str] = None,
) -> TransactionFilters:
    """Dependency : filtres communs à la liste et aux exports"""
    return TransactionFilters(type=kind, category=category, start_date=startDate, end_date=endDate, search=search)


def serialize_transaction(transaction) -> dict:
    return Transaction.model_validate(transaction).model_dump(mode="json")

def serialize_user(user) -> dict:
    return User.model_validate(user).model_dump(mode="json")

def token_response(user: UserModel, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={
        "success": True,
        "message": message,
        "token": create_access_token(user.id),
        "user": TokenUser.model_validate(user).model_dump(),
    })


@app.get("/")
async def root():
    return {"message": "Gestion Finances API"}

@app.get("/api/health")
async def health():
    return {"status": "ok"}


# Auth endpoints
@app.post("/api/auth/register")
async def register(data: UserRegister, db: Session = Depends(get_db)):
    """
    Inscription d'un nouvel utilisateur
    """
    user = auth_service.register(db, data)
    return token_response(user, "Inscription réussie", status_code=201)

@app.post("/api/auth/login")
async def login(data: UserLogin, db: Session = Depends(get_db)):
    """
    Connexion : retourne un jeton de session
    """
    user = auth_service.login(db, data)
    return token_response(user, "Connexion réussie")

@app.get("/api/auth/me")
async def me(user: UserModel = Depends(get_current_user)):
    return {"success": True, "data": serialize_user(user)}

@app.post("/api/auth/logout")
async def logout(user: UserModel = Depends(get_current_user)):
    """
    Déconnexion : les jetons sont sans état, le client oublie simplement le sien
    """
    return {"success": True, "message": "Déconnexion réussie"}

@app.put("/api/auth/updateprofile")
async def update_profile(data: ProfileUpdate, user: UserModel = Depends(get_current_user),
                         db: Session = Depends(get_db)):
    updated = auth_service.update_profile(db, user, data)
    return {"success": True, "message": "Profil mis à jour", "data": serialize_user(updated)}

@app.put("/api/auth/updatepassword")
async def update_password(data: PasswordUpdate, user: UserModel = Depends(get_current_user),
                          db: Session = Depends(get_db)):
    updated = auth_service.update_password(db, user, data)
    return token_response(updated, "Mot de passe modifié")


# Transaction endpoints
@app.get("/api/transactions")
async def list_transactions(
    page: int = 1,
    limit: Optional[int] = None,
    sort: str = "-date",
    filters: TransactionFilters = Depends(build_filters),
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Liste paginée des transactions de l'utilisateur, avec filtres et tri
    """
    result = transaction_service.list(db, user, filters, page=page, limit=limit, sort=sort)
    return {
        "success": True,
        "count": result["count"],
        "total": result["total"],
        "page": result["page"],
        "pages": result["pages"],
        "data": [serialize_transaction(t) for t in result["data"]],
    }

@app.post("/api/transactions")
async def create_transaction(transaction: TransactionCreate, user: UserModel = Depends(get_current_user),
                             db: Session = Depends(get_db)):
    created = transaction_service.create(db, user, transaction)
    return JSONResponse(status_code=201, content={
        "success": True,
        "message": "Transaction ajoutée",
        "data": serialize_transaction(created),
    })

@app.get("/api/transactions/categories")
async def list_categories(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "data": transaction_service.categories(db, user)}

@app.get("/api/transactions/stats/summary", response_model=SummaryResponse)
async def stats_summary(startDate: Optional[date] = None, endDate: Optional[date] = None,
                        user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "data": stats_service.summary(db, user.id, startDate, endDate)}

@app.get("/api/transactions/stats/category", response_model=CategoryStatsResponse)
async def stats_by_category(startDate: Optional[date] = None, endDate: Optional[date] = None,
                            user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "data": stats_service.by_category(db, user.id, startDate, endDate)}

@app.get("/api/transactions/stats/monthly", response_model=MonthStatsResponse)
async def stats_by_month(year: Optional[int] = None, user: UserModel = Depends(get_current_user),
                         db: Session = Depends(get_db)):
    return {"success": True, "data": stats_service.by_month(db, user.id, year)}

@app.get("/api/transactions/{transaction_id}")
async def get_transaction(transaction_id: int, user: UserModel = Depends(get_current_user),
                          db: Session = Depends(get_db)):
    return {"success": True, "data": serialize_transaction(transaction_service.get(db, user, transaction_id))}

@app.put("/api/transactions/{transaction_id}")
async def update_transaction(transaction_id: int, changes: TransactionUpdate,
                             user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = transaction_service.update(db, user, transaction_id, changes)
    return {"success": True, "message": "Transaction mise à jour", "data": serialize_transaction(updated)}

@app.delete("/api/transactions/{transaction_id}")
async def delete_transaction(transaction_id: int, user: UserModel = Depends(get_current_user),
                             db: Session = Depends(get_db)):
    transaction_service.delete(db, user, transaction_id)
    return {"success": True, "message": "Transaction supprimée avec succès"}


# Export endpoints
@app.get("/api/export/pdf")
async def export_pdf(filters: TransactionFilters = Depends(build_filters),
                     user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Exporte un rapport PDF (résumé + 50 premières transactions)
    """
    try:
        transactions = transaction_service.all(db, user, filters, sort="-date")
        summary = stats_service.summary(db, user.id, filters.start_date, filters.end_date)
        content = export_service.export_pdf(user, filters, transactions, summary)
    except AppError:
        raise
    except Exception as e:
        logger.error(f"Erreur lors de l'export PDF: {str(e)}")
        raise ServerError("Erreur lors de l'export PDF")

    logger.info(f"Export PDF pour l'utilisateur {user.id} ({len(transactions)} transactions)")
    return Response(
        content=content,
        media_type=PDF_MIME,
        headers={"Content-Disposition": f"attachment; filename={export_filename('pdf')}"},
    )

@app.get("/api/export/excel")
async def export_excel(filters: TransactionFilters = Depends(build_filters),
                       user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Exporte un classeur Excel (résumé, transactions, répartition par catégorie)
    """
    try:
        transactions = transaction_service.all(db, user, filters, sort="-date")
        summary = stats_service.summary(db, user.id, filters.start_date, filters.end_date)
        by_category = stats_service.by_category(db, user.id, filters.start_date, filters.end_date)
        content = export_service.export_excel(user, filters, transactions, summary, by_category)
    except AppError:
        raise
    except Exception as e:
        logger.error(f"Erreur lors de l'export Excel: {str(e)}")
        raise ServerError("Erreur lors de l'export Excel")

    logger.info(f"Export Excel pour l'utilisateur {user.id} ({len(transactions)} transactions)")
    return Response(
        content=content,
        media_type=EXCEL_MIME,
        headers={"Content-Disposition": f"attachment; filename={export_filename('xlsx')}"},
    )

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
