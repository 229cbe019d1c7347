# restaurant_ledger/api/deps.py
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import OAuth2PasswordBearer, SecurityScopes
from jose import JWTError

from restaurant_ledger.core.config import settings
from restaurant_ledger.core.security import decode_access_token
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.db.sql_record_store import SqlRecordStore


OAUTH_SCOPES = {
    "admin": "Acceso total de administrador.",
    "ledger:read": "Permiso para consultar clientes, recompensas y reportes.",
    "ledger:write": "Permiso para registrar y modificar datos del restaurante.",
}


oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    scopes=OAUTH_SCOPES,
)


def get_store() -> RecordStore:
    return SqlRecordStore()


def get_current_principal(
    security_scopes: SecurityScopes,
    token: str = Depends(oauth2_scheme),
) -> str:
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": f'Bearer scope="{security_scopes.scope_str}"'},
    )

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise cred_exc

    subject = payload.get("sub")
    if subject is None:
        raise cred_exc

    token_scopes: list[str] = payload.get("scopes", []) or []
    if security_scopes.scopes and "admin" not in token_scopes:
        for scope in security_scopes.scopes:
            if scope not in token_scopes:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Not enough permissions",
                    headers={"WWW-Authenticate": f'Bearer scope="{security_scopes.scope_str}"'},
                )
    return subject


def get_reader(principal: str = Security(get_current_principal, scopes=["ledger:read"])) -> str:
    return principal


def get_writer(principal: str = Security(get_current_principal, scopes=["ledger:write"])) -> str:
    return principal
