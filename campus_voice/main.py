import logging
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .database import engine
from . import models
from .routers import staff, complaints
from .config import settings
from .lifecycle.errors import (
    AlreadyAccepted,
    AlreadySubmitted,
    ComplaintError,
    ConflictError,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)

logging.basicConfig(level=settings.log_level)

models.Base.metadata.create_all(bind=engine)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS_CODES = {
    ValidationError: 422,
    InvalidTransition: status.HTTP_409_CONFLICT,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    AlreadySubmitted: status.HTTP_409_CONFLICT,
    AlreadyAccepted: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
}


def status_code_for(err: ComplaintError) -> int:
    for error_type in type(err).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(ComplaintError)
async def complaint_error_handler(request: Request, err: ComplaintError):
    body = {"detail": err.message, "error": type(err).__name__}
    if isinstance(err, InvalidTransition):
        body.update(
            current=err.current,
            action=err.action,
            required_roles=list(err.required_roles),
        )
    return JSONResponse(status_code=status_code_for(err), content=body)


@app.get("/")
def root():
    return {"data": "Welcome to the University Complaint Tracking System"}


app.include_router(staff.router)
app.include_router(complaints.router)
