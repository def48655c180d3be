"""
Contrato uniforme de las acciones expuestas a la UI / API.

Éxito:  ``{"success": True, **payload}``
Fallo:  ``{"success": False, "message": str, "error": kind, "retryable": bool}``
"""
import logging
from typing import Any, Callable, Dict

from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError

from app.common.errors import BusinessError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Ocurrió un error inesperado, intente de nuevo."

ERROR_STATUS_CODES = {
    "validation": 400,
    "not_found": 404,
    "conflict": 409,
    "unavailable": 503,
    "error": 500,
}


def ok(**payload) -> Dict[str, Any]:
    return {"success": True, **payload}


def fail(message: str, kind: str = "error", retryable: bool = False) -> Dict[str, Any]:
    return {"success": False, "message": message, "error": kind, "retryable": retryable}


def pydantic_message(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        msg = item.get("msg", "valor inválido")
        parts.append(f"{location}: {msg}" if location else msg)
    return "Datos inválidos: " + "; ".join(parts)


def run_action(name: str, fn: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Ejecuta una acción y convierte cualquier excepción en un resultado de fallo."""
    try:
        return fn()
    except BusinessError as e:
        logger.info(f"{name} rechazada: {e.message}")
        return fail(e.message, e.kind, e.retryable)
    except PydanticValidationError as e:
        return fail(pydantic_message(e), "validation")
    except Exception:
        logger.exception(f"Error inesperado en {name}")
        return fail(GENERIC_ERROR_MESSAGE)


def status_code_for(result: Dict[str, Any]) -> int:
    return ERROR_STATUS_CODES.get(result.get("error", "error"), 500)


def unwrap(result: Dict[str, Any]) -> Dict[str, Any]:
    """Para los routers: un fallo se convierte en HTTPException con el mensaje."""
    if not result.get("success"):
        raise HTTPException(status_code=status_code_for(result), detail=result.get("message"))
    return result


def parse_input(schema, data):
    """Acepta el schema ya construido o un dict (lanza ValidationError de pydantic)."""
    if isinstance(data, schema):
        return data
    return schema.model_validate(data)
