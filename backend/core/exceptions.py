"""
Custom exceptions for the sales document workflow engine.
Each error carries an HTTP status code, a machine readable error code and the
document context needed to render a precise message.
"""

from typing import Any, Dict, Optional, List
from fastapi import HTTPException, status
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Standard error detail structure"""
    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class BaseCustomException(HTTPException):
    """Base class for all custom exceptions"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        field: Optional[str] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.field = field

    def __str__(self) -> str:
        return str(self.detail)


# =============================================================================
# LOOKUP ERRORS
# =============================================================================

class NotFoundError(BaseCustomException):
    """Referenced document does not exist"""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} with identifier '{identifier}' not found",
            error_code="RESOURCE_NOT_FOUND"
        )
        self.resource = resource
        self.identifier = identifier


class ItemNotFoundError(NotFoundError):
    """Item id is absent from the parent document's item list"""

    def __init__(self, document_type: str, document_id: Any, item_id: Any):
        super().__init__(resource=f"Item on {document_type} #{document_id}", identifier=item_id)
        self.error_code = "ITEM_NOT_FOUND"
        self.document_type = document_type
        self.document_id = document_id
        self.item_id = item_id


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(BaseCustomException):
    """Base validation error"""

    def __init__(self, message: str, field: str = None, errors: List[ErrorDetail] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=message,
            error_code="VALIDATION_ERROR",
            field=field
        )
        self.errors = errors or []


class InvalidAmountError(ValidationError):
    """Negative or out of range numeric input"""

    def __init__(self, field: str, value: Any, rule: str):
        super().__init__(
            message=f"Invalid {field}: {value}. {rule}",
            field=field,
            errors=[
                ErrorDetail(
                    code="INVALID_AMOUNT",
                    message=rule,
                    field=field,
                    details={"provided_value": str(value)}
                )
            ]
        )


# =============================================================================
# BUSINESS LOGIC ERRORS
# =============================================================================

class BusinessLogicError(BaseCustomException):
    """Base business logic error"""

    def __init__(self, message: str, error_code: str, status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY):
        super().__init__(
            status_code=status_code,
            detail=message,
            error_code=error_code
        )


class InvalidStateError(BusinessLogicError):
    """Operation is not legal from the document's current status"""

    def __init__(self, message: str, document_type: str = None, document_id: Any = None, current_status: str = None):
        super().__init__(
            message=message,
            error_code="INVALID_STATE",
            status_code=status.HTTP_409_CONFLICT
        )
        self.document_type = document_type
        self.document_id = document_id
        self.current_status = current_status


class StateTransitionError(InvalidStateError):
    """Invalid status transition"""

    def __init__(self, document_type: str, from_status: str, to_status: str, document_id: Any = None):
        target = f"{document_type} #{document_id}" if document_id is not None else document_type
        super().__init__(
            message=f"Cannot change {target} status from {from_status} to {to_status}",
            document_type=document_type,
            document_id=document_id,
            current_status=from_status
        )
        self.error_code = "INVALID_STATUS_TRANSITION"
        self.from_status = from_status
        self.to_status = to_status


class EmptyDocumentError(BusinessLogicError):
    """Conversion would produce a document without items"""

    def __init__(self, document_type: str, source: str = None):
        message = f"{document_type} would have no items"
        if source:
            message = f"{document_type} created from {source} would have no items"

        super().__init__(
            message=message,
            error_code="EMPTY_DOCUMENT"
        )
        self.document_type = document_type


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def format_error_response(error: BaseCustomException) -> Dict[str, Any]:
    """Format error response for consistent API responses"""
    response = {
        "error": True,
        "error_code": getattr(error, 'error_code', None) or 'UNKNOWN_ERROR',
        "message": error.detail,
        "status_code": error.status_code
    }

    if getattr(error, 'field', None):
        response["field"] = error.field

    context = {}
    for attr in ("document_type", "document_id", "item_id", "from_status", "to_status"):
        value = getattr(error, attr, None)
        if value is not None:
            context[attr] = value
    if context:
        response["context"] = context

    if getattr(error, 'errors', None):
        response["errors"] = [err.model_dump() for err in error.errors]

    return response


def get_exception_by_code(error_code: str) -> type:
    """Get exception class by error code"""
    exception_mapping = {
        "RESOURCE_NOT_FOUND": NotFoundError,
        "ITEM_NOT_FOUND": ItemNotFoundError,
        "VALIDATION_ERROR": ValidationError,
        "INVALID_STATE": InvalidStateError,
        "INVALID_STATUS_TRANSITION": StateTransitionError,
        "EMPTY_DOCUMENT": EmptyDocumentError,
    }

    return exception_mapping.get(error_code, BaseCustomException)
