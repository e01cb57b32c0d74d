from pydantic import BaseModel


class ApiErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | None = None
    trace_id: str | None = None


class ApiValidationErrorItem(BaseModel):
    field: str | None = None
    message: str
    type: str
    loc: list[str | int] | None = None
    input: object | None = None
    ctx: dict | None = None


class ApiValidationErrorDetails(BaseModel):
    errors: list[ApiValidationErrorItem]


class ApiValidationErrorResponse(ApiErrorResponse):
    details: ApiValidationErrorDetails | dict | None = None


MOVEMENT_ERROR_RESPONSES = {
    404: {"model": ApiErrorResponse, "description": "Product not found"},
    409: {"model": ApiErrorResponse, "description": "Concurrent stock change or idempotency conflict"},
    422: {"model": ApiValidationErrorResponse, "description": "Validation error or insufficient stock"},
}

PRODUCT_ERROR_RESPONSES = {
    404: {"model": ApiErrorResponse, "description": "Product not found"},
    409: {"model": ApiErrorResponse, "description": "SKU already exists"},
    422: {"model": ApiValidationErrorResponse, "description": "Validation error"},
}
