from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str
    driver: str
    maintenance: bool | None = None


class ErrorResponse(BaseModel):
    code: str
    message: str
    request_id: str


class LockRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ttl: int | str | None = None
    routes: list[str] = Field(default_factory=list)


class LockStatus(BaseModel):
    locked: bool
    driver: str
    ttl_support: bool
    locked_at: float | None = None
    ttl: int | None = None
    expires_in: int | None = None
    routes: list[str] = Field(default_factory=list)


class LockResponse(BaseModel):
    success: bool
    message: str
    notices: list[str] = Field(default_factory=list)
    status: LockStatus | None = None


class UnlockResponse(BaseModel):
    success: bool
    message: str


class PageResponse(BaseModel):
    page: str
