"""Alert endpoints for testing Telegram alert delivery."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from stampbot.routers.admin import require_admin_token
from stampbot.services.alert_service import send_alert

router = APIRouter()


class AlertTestResponse(BaseModel):
    success: bool
    message: str


@router.post("/alerts/test", response_model=AlertTestResponse, dependencies=[Depends(require_admin_token)])
def alerts_test():
    sent = send_alert("INFO", "Alerts test", {"source": "alerts.test"})
    if sent:
        return AlertTestResponse(success=True, message="Alert sent")
    return AlertTestResponse(success=False, message="Alert not sent (check ALERT_BOT_TOKEN/ALERT_CHAT_ID)")
