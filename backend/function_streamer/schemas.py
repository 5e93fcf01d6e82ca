from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


OutcomeKind = Literal["ok", "clientError", "serverError"]


class Outcome(BaseModel):
    kind: OutcomeKind
    status_code: int = Field(..., description="HTTP-equivalent status returned to the host runtime")
    body: str = Field(..., description="Short fixed body; never carries error detail")

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(kind="ok", status_code=200, body="OK")

    @classmethod
    def client_error(cls) -> "Outcome":
        return cls(kind="clientError", status_code=422, body="Missing request id")

    @classmethod
    def server_error(cls) -> "Outcome":
        return cls(kind="serverError", status_code=500, body="Internal Server Error")

    def to_response(self) -> Dict[str, Any]:
        return {"statusCode": self.status_code, "body": self.body}


class GraphTokenError(BaseModel):
    type: Literal["missing-event-in-function", "provided-event-in-build"]
    message: str


class GraphTokenResponse(BaseModel):
    errors: Optional[List[GraphTokenError]] = None
    token: Optional[str] = None


class RelayStreamRecord(BaseModel):
    request_id: str
    status_code: Optional[int] = Field(None, description="Status from the metadata frame, if received")
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: str = Field("", description="Body decoded as UTF-8 with replacement")
    size: int = 0
    completed: bool = False
