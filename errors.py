"""
Error taxonomy for the API.

Every failure a request can end with is an HTTPException subclass, so services
raise them directly and FastAPI renders them as {"detail": ...}.
"""

from fastapi import HTTPException


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Not authorized"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class ValidationError(HTTPException):
    def __init__(self, detail="Invalid request", status_code: int = 400):
        super().__init__(status_code=status_code, detail=detail)


class UnsupportedMediaType(ValidationError):
    def __init__(self, mime_type: str):
        self.mime_type = mime_type
        super().__init__(f"Invalid file type: {mime_type}. Only images and videos are allowed!")


class MediaTooLarge(ValidationError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"File too large. Maximum size is {limit} bytes", status_code=413)


class Conflict(HTTPException):
    def __init__(self, detail: str = "Concurrent update, please retry"):
        super().__init__(status_code=409, detail=detail)
