"""Tags attached to a live media channel when a call leg reaches the agent."""

from dataclasses import dataclass
from typing import Mapping, Optional

# Custom SIP headers added by the call-control document, as they appear
# in participant attributes once the SIP trunk maps them.
TENANT_HEADER = "X-Tenant-Id"
CALL_LEG_HEADER = "X-Call-Leg-Id"
POST_TRANSFER_HEADER = "X-Post-Transfer"
INTENDED_STAFF_HEADER = "X-Intended-Staff"


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class CallTags:
    tenant_id: str
    call_leg_id: str
    post_transfer_return: bool = False
    caller_number: Optional[str] = None
    dialed_number: Optional[str] = None
    intended_staff: Optional[str] = None

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, str]) -> "CallTags":
        """Build tags from SIP participant attributes.

        Looks for the custom headers both bare and under the ``sip.h.``
        prefix, and falls back to the standard ``sip.*`` attributes for
        the call id and phone numbers.

        Raises:
            ValueError: If no tenant id or call-leg id can be found.
        """
        def header(name: str) -> Optional[str]:
            return attributes.get(name) or attributes.get(f"sip.h.{name}")

        tenant_id = header(TENANT_HEADER)
        call_leg_id = (
            header(CALL_LEG_HEADER)
            or attributes.get("sip.twilio.callSid")
            or attributes.get("sip.callID")
        )
        if not tenant_id or not call_leg_id:
            raise ValueError(f"Call is missing tenant or call-leg tags: {dict(attributes)}")
        return cls(
            tenant_id=tenant_id,
            call_leg_id=call_leg_id,
            post_transfer_return=_truthy(header(POST_TRANSFER_HEADER)),
            caller_number=attributes.get("sip.phoneNumber"),
            dialed_number=attributes.get("sip.trunkPhoneNumber"),
            intended_staff=header(INTENDED_STAFF_HEADER),
        )
