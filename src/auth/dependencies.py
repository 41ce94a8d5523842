from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from src.auth.utils import verify_token

OPERATOR_ROLES = {"admin", "operator"}

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_staff(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)):
    """Decode the bearer token of a back-office user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    return verify_token(credentials.credentials, credentials_exception)


def require_operator(staff=Depends(get_current_staff)):
    """Require an admin or operator role"""
    if staff.get("role") not in OPERATOR_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return staff
