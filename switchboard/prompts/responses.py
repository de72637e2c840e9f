"""Canned spoken lines.

Every line the switchboard can say outside of FAQ and knowledge answers
lives here. Tenants may override any key through ``messages`` in their
profile; placeholders are filled with ``str.format``. ``{tenant}`` is
always available.
"""

from typing import Optional

DEFAULT_MESSAGES: dict[str, str] = {
    # --- Greeting ---
    "greeting_in_hours": "Thank you for calling {tenant}. How can I help you today?",
    "greeting_after_hours": (
        "Thank you for calling {tenant}. Our office is closed right now, but I can "
        "still answer questions or take a message. How can I help?"
    ),

    # --- Answering ---
    "anything_else": "Is there anything else I can help you with?",
    "what_else": "Sure. What else can I help you with?",
    "not_found": (
        "I can't find that specific information right now. "
        "Would you like me to connect you with someone who can help?"
    ),
    "follow_up_question": "Of course. What's your question?",

    # --- Routing ---
    "connecting": "Let me connect you with {staff}. One moment please.",
    "hold": "I'm still trying to reach {staff}. Please hold.",
    "transfer_unavailable": (
        "I'm sorry, I'm not able to transfer your call right now. "
        "Please try calling back in a few minutes. Goodbye."
    ),
    "emergency_connecting": "I'm connecting you with {staff} right away. Please stay on the line.",
    "emergency_unavailable": (
        "I'm sorry, I can't reach our emergency contact right now. If this is a "
        "life-threatening emergency, please hang up and dial 911."
    ),

    # --- Voicemail ---
    "voicemail_intro": (
        "It looks like {staff} isn't available right now. "
        "Can I get your name and number so they can call you back?"
    ),
    "ask_name": "Can I get your name, please?",
    "ask_phone": "What's the best phone number to reach you at?",
    "ask_phone_named": "Thank you, {name}. What's the best phone number to reach you at?",
    "ask_reason": "Great. And what's this regarding?",
    "ask_urgency": "Thanks. Is this urgent, or is a callback later today okay?",
    "retry_name": "I didn't catch your name. Could you tell me your name again?",
    "retry_phone": (
        "I didn't get that phone number. Could you say it again, including the area code?"
    ),
    "retry_reason": "Sorry, could you tell me briefly what this is regarding?",
    "retry_urgency": "Is this urgent? Just say yes or no.",
    "already_have_message": (
        "It looks like {staff} isn't available right now. We already have your message "
        "and someone will call you back soon. Goodbye."
    ),
    "voicemail_done": (
        "Thank you. I'll make sure {staff} gets your message and calls you back soon. "
        "Have a great day!"
    ),

    # --- Identity ---
    "identity_ask_name": "Before we get started, may I have your name?",
    "identity_retry_name": "Sorry, I didn't catch your name. Could you say it again?",
    "identity_ask_email": "Thanks, {name}. What's the best email address to reach you?",
    "identity_retry_email": "Sorry, I didn't get that email. Could you spell it out for me?",
    "identity_done": "Thank you, {name}. How can I help you today?",
    "name_updated": "Got it, I've updated your name to {name}.",
    "email_updated": "Got it, I've updated your email to {email}.",
    "change_not_understood": "Sure. What should I change it to?",

    # --- Appointments ---
    "appointment_ask_time": "I can request an appointment for you. What day and time works best?",
    "appointment_review": (
        "I have an appointment request for {name} at {email}, for {time}. Is that right?"
    ),
    "appointment_confirmed": (
        "Your appointment request is in. Someone will confirm it by email. "
        "Is there anything else I can help you with?"
    ),
    "appointment_retry": "No problem. What day and time would work better?",

    # --- Closing and errors ---
    "closing": "Thank you for calling {tenant}. Have a great day!",
    "fallback": "I'm sorry, I'm having trouble right now. Could you say that again?",
    "too_long": "That was quite long. Could you keep it brief for me?",

    # --- Call-control documents ---
    "transfer_connecting": "Connecting you with {staff} now. Please hold.",
    "transfer_not_available": (
        "It looks like {staff} isn't available right now. Let me take a message for you."
    ),
    "transfer_failed": "I'm sorry, we couldn't complete the transfer.",
    "transfer_goodbye": "Thank you for calling. Have a great day!",
    "apology": "We're sorry, we can't take your call right now. Please try again later. Goodbye.",
}


def render(template_key: str, overrides: Optional[dict[str, str]] = None, **values: str) -> str:
    """Fill a canned line, preferring a tenant override when one exists."""
    template = (overrides or {}).get(template_key) or DEFAULT_MESSAGES[template_key]
    return template.format(**values)
