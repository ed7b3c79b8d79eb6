from pydantic import BaseModel

class WebhookAck(BaseModel):
    status: str
    event_id: str | None = None
    reason: str | None = None
    action: str | None = None
    duplicate: bool | None = None
