# ==================== UTILS/EXCEPTION_HANDLER.PY ====================
import logging

from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def _first_code(codes):
    if isinstance(codes, str):
        return codes
    if isinstance(codes, dict):
        for value in codes.values():
            return _first_code(value)
    if isinstance(codes, (list, tuple)) and codes:
        return _first_code(codes[0])
    return None


def _message(detail):
    if isinstance(detail, (list, tuple)):
        return str(detail[0]) if detail else ''
    if isinstance(detail, dict):
        for field, value in detail.items():
            text = _message(value)
            return text if field == 'non_field_errors' else f"{field}: {text}"
        return ''
    return str(detail)


def api_exception_handler(exc, context):
    """Render API errors as {success, code, message} with field errors attached.

    Anything DRF does not know how to render is logged and left to Django.
    """
    response = exception_handler(exc, context)
    if response is None:
        view = context.get('view')
        logger.error(f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {exc}", exc_info=True)
        return None

    if isinstance(exc, APIException):
        code = _first_code(exc.get_codes()) or exc.default_code
        detail = exc.detail
    else:
        code = 'error'
        detail = response.data

    if isinstance(exc, ValidationError):
        code = 'validation_error'

    body = {
        'success': False,
        'code': code,
        'message': _message(detail),
    }
    if isinstance(detail, dict):
        body['errors'] = detail

    if response.status_code >= 500:
        logger.warning(f"{code}: {body['message']}")

    response.data = body
    return response
