"""Outbound notification payloads: voicemail messages and call summaries."""

from typing import Optional

from pydantic import BaseModel, Field


class VoicemailRecord(BaseModel):
    """A message taken after a failed transfer, ready for delivery."""

    session_id: str
    tenant_id: str
    tenant_name: str
    caller_name: Optional[str] = None
    caller_phone: Optional[str] = None
    intended_staff: str
    reason: Optional[str] = None
    urgency: Optional[str] = None
    recipients: list[str] = Field(default_factory=list)
    delivery_results: dict[str, bool] = Field(default_factory=dict)

    def render(self) -> str:
        lines = [
            f"{self.tenant_name} Voicemail:",
            f"From: {self.caller_name or 'Unknown caller'}",
            f"Phone: {self.caller_phone or 'Not provided'}",
            f"For: {self.intended_staff}",
            f"Reason: {self.reason or 'Not provided'}",
        ]
        if self.urgency:
            lines.append(f"Urgency: {self.urgency}")
        return "\n".join(lines)


class ConversationSummary(BaseModel):
    """End-of-call summary sent to the tenant admin."""

    session_id: str
    tenant_id: str
    tenant_name: str
    caller_name: Optional[str] = None
    caller_email: Optional[str] = None
    caller_phone: Optional[str] = None
    transcript: list[str] = Field(default_factory=list)
    recipients: list[str] = Field(default_factory=list)
    delivery_results: dict[str, bool] = Field(default_factory=dict)

    def render(self, max_lines: int = 20) -> str:
        lines = [
            f"{self.tenant_name} Call Summary:",
            f"Caller: {self.caller_name or 'Unknown caller'}",
        ]
        if self.caller_email:
            lines.append(f"Email: {self.caller_email}")
        if self.caller_phone:
            lines.append(f"Phone: {self.caller_phone}")
        lines.append("Conversation:")
        lines.extend(self.transcript[-max_lines:])
        return "\n".join(lines)
