"""
Errores de dominio. Los servicios lanzan subclases de ValueError y las
rutas las traducen a HTTPException con http_error().
"""
from fastapi import HTTPException


class DomainError(ValueError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    status_code = 409


class InvalidTransition(ConflictError):
    pass


class PaymentValidationError(DomainError):
    pass


class ExternalServiceError(Exception):
    """Fallo de un servicio externo (Cashea, email). Nunca revierte la escritura que lo disparó."""


def http_error(exc: DomainError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))
