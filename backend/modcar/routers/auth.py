from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import SessionContext, get_session_context, load_session_context
from ..schemas import LoginRequest, LoginResponse, MeOut
from ..services.identity import InvalidCredentialsError, authenticate, issue_token, record_access

router = APIRouter(prefix="/auth", tags=["Auth"])


# ============================================================
# 🔐 LOGIN: email + senha → JWT
# ============================================================
@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Login único para admin e parceiro; o papel volta na resposta
    para o painel decidir a rota inicial.
    """
    try:
        identity = authenticate(db, payload.email, payload.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail=str(exc))

    # bloqueado não recebe token
    ctx = load_session_context(db, identity.id)
    record_access(db, identity)

    return LoginResponse(access_token=issue_token(identity), role=ctx.role)


@router.get("/me", response_model=MeOut)
def me(ctx: SessionContext = Depends(get_session_context)):
    return MeOut(id=ctx.identity_id, email=ctx.email, role=ctx.role, name=ctx.name)
