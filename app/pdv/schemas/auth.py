from pydantic import BaseModel


class LoginRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "username": "caixa01",
                "password": "change-me",
                "terminal_id": "PDV-01",
            }
        }
    }

    username: str
    password: str
    terminal_id: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    operator_id: str
    username: str
    terminal_id: str | None
    trace_id: str
