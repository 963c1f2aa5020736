from pydantic import BaseModel, Field


class LeadCapture(BaseModel):
    """Website contact form submission."""

    email: str = Field(..., min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    full_name: str | None = Field(default=None, max_length=200)
    company_name: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=50)
    source: str = Field(default="website_form", max_length=100)
    message: str | None = Field(default=None, max_length=5000)


class LeadCaptureResponse(BaseModel):
    received: bool = True
    alert_queued: bool
    job_id: str | None = None
