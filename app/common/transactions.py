"""
Alcance transaccional para métodos de servicio.

Los servicios reciben la sesión en self.db. Un método decorado con
@transactional confirma al terminar o revierte todo ante cualquier error.
Las llamadas anidadas entre servicios comparten la transacción del método
más externo, que es el único que hace commit. Un ExternalServiceError con
keep_changes también se confirma en el método más externo antes de propagarse.
"""
import functools
import logging
import re

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

from app.common.exceptions import IntegrityViolationError, ExternalServiceError
from app.core.config import settings

logger = logging.getLogger(__name__)

_DEPTH_KEY = "transaction_depth"


_NUMBER_CONSTRAINT = re.compile(r"\.number\b|uq_\w+_number\b")


def is_number_collision(exc: IntegrityError) -> bool:
    """True si la violación es la restricción única sobre el número de documento."""
    message = str(getattr(exc, "orig", exc)).lower()
    return bool(_NUMBER_CONSTRAINT.search(message))


def transactional(fn):
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        db = self.db
        depth = db.info.get(_DEPTH_KEY, 0)
        if depth:
            db.info[_DEPTH_KEY] = depth + 1
            try:
                return fn(self, *args, **kwargs)
            finally:
                db.info[_DEPTH_KEY] = depth

        attempts = max(1, settings.SEQUENCE_RETRY_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            db.info[_DEPTH_KEY] = 1
            try:
                result = fn(self, *args, **kwargs)
                db.commit()
                return result
            except IntegrityViolationError as e:
                db.rollback()
                logger.error(f"Violación de integridad en {fn.__qualname__}: {e.internal_detail}")
                raise
            except ExternalServiceError as e:
                if e.keep_changes:
                    db.commit()
                else:
                    db.rollback()
                raise
            except HTTPException:
                db.rollback()
                raise
            except IntegrityError as e:
                db.rollback()
                if is_number_collision(e) and attempt < attempts:
                    logger.warning(
                        f"Colisión de numeración en {fn.__qualname__} "
                        f"(intento {attempt}/{attempts}), reintentando"
                    )
                    continue
                logger.error(f"Error de integridad en {fn.__qualname__}: {e}", exc_info=True)
                raise IntegrityViolationError(str(e))
            except Exception as e:
                db.rollback()
                logger.exception(f"Error inesperado en {fn.__qualname__}: {e}")
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Error interno procesando la operación"
                )
            finally:
                db.info[_DEPTH_KEY] = 0

    return wrapper
