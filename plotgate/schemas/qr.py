from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class VerifyQrRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qr_token: Optional[str] = Field(default=None, alias="qrToken")
    type: Optional[str] = None


class VisitorQrCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plot_id: Optional[str] = Field(default=None, alias="plotId")
    visitor_name: Optional[str] = Field(default=None, alias="visitorName")
    visitor_phone: Optional[str] = Field(default=None, alias="visitorPhone")
    purpose: Optional[str] = None
