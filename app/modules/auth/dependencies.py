"""
Dependencias de autenticación para FastAPI.

La identidad la gestiona un servicio externo; aquí solo se verifica el JWT
y se extrae el operador y su rol.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from app.modules.auth.schemas import OperatorContext
from app.core.config import settings

# Security scheme
security = HTTPBearer()

ALL_ROLES = ["owner", "admin", "seller", "accountant", "viewer"]


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_operator(
        credentials: HTTPAuthorizationCredentials = Depends(security),
    ) -> OperatorContext:
        """
        Obtener el operador actual desde el token JWT.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
        except jwt.PyJWTError:
            raise credentials_exception

        username = payload.get("sub")
        role = payload.get("role")
        if username is None or role is None:
            raise credentials_exception

        return OperatorContext(username=username, role=role, display_name=payload.get("name"))

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(operator: OperatorContext = Depends(AuthDependencies.get_operator)):
            if operator.role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )
            return operator
        return role_checker

    @staticmethod
    def require_any_role():
        """Dependencia que requiere cualquier rol válido."""
        return AuthDependencies.require_role(ALL_ROLES)


get_operator = AuthDependencies.get_operator
require_any_role = AuthDependencies.require_any_role
