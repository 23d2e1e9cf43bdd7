"""
Message templates for the kiosk bot.

Every user-facing reply lives here so wording stays consistent across states.
"""

from __future__ import annotations

from sehat.payload.measurement import Measurement

from services.bot.domain.report import Settlement

# ---------- Entry ----------
HELP = (
    "I'm a SehatBot. Send 'sehat_bmi<encrypted_data>' to update BMI, "
    "or 'help' for assistance."
)

PAYLOAD_UNREADABLE = (
    "Sorry, I couldn't understand your BMI data. Please ensure it contains "
    "height, weight, BMI, and Machine ID in the correct format."
)

SELECT_PROFILE = (
    "It looks like you have existing profiles. Please select who is being "
    "tested by typing 'select UID-XXXXXXX', or type 'new' to add a family member:"
)

# ---------- Registration ----------
ASK_FULL_NAME = "Welcome! To set up your profile, what is your full name?"
ASK_FAMILY_MEMBER_NAME = "Let's add a new family member. What is their full name?"
INVALID_NAME = "Please provide a valid full name."

ASK_GENDER = "Thanks, {name}! What is your gender (Male/Female/Other)?"
INVALID_GENDER = "Please provide a valid gender (Male, Female, or Other)."

ASK_AGE = "Got it! And finally, what is your age (e.g., 30)?"
INVALID_AGE = "Please provide a valid age (a number between 1 and 120)."

PROFILE_CREATED = (
    "Great, {name}! Your profile (ID: {display_id}) has been created. "
    "Please make the payment now to view your full BMI results."
)

# ---------- Selection ----------
SELECTION_READY = (
    "Thanks! We're ready to process your BMI results. "
    "Please make the payment now to view your full results."
)
UNKNOWN_DISPLAY_ID = (
    "Invalid user ID '{display_id}' or it does not belong to your mobile number. "
    "Please try again or resend your BMI data."
)
SELECTION_REPROMPT = (
    "Please select a user by typing 'select UID-XXXXXXX', type 'new' to add "
    "a family member, or resend 'sehat_bmi<encrypted_data>' to start over."
)

# ---------- Payment ----------
PAYMENT_SESSION_MISMATCH = (
    "Payment confirmation failed. Invalid session ID. "
    "Please try again or contact support."
)
PAYMENT_REPROMPT = (
    "Waiting for payment confirmation. Please complete the payment or send "
    "'payment_confirmed_<session_id>' if already done."
)
PAYMENT_SUCCESS = "Payment successful. Your results are sent!"
PAYMENT_ALREADY_CONFIRMED = (
    "Your payment for this session is already confirmed. "
    "Your results have been sent."
)

# ---------- Fallbacks ----------
LOST_TRACK = (
    "It seems we lost track of our conversation. "
    "Please send 'sehat_bmi<encrypted_data>' to restart."
)
CONVERSATION_MOVED_ON = (
    "Your previous reply was already processed. "
    "Please continue from the latest message."
)
INTERNAL_ERROR = (
    "An internal error occurred. Our team has been notified. "
    "Please try again later."
)


def format_result_summary(settlement: Settlement, measurement: Measurement) -> str:
    user = settlement.user
    return (
        f"Hi {user.full_name} (ID: {user.display_id}),\n"
        f"Your payment is confirmed, and your BMI data is updated! "
        f"Your profile: Age {user.age or 'N/A'}, Gender {user.gender or 'N/A'}.\n"
        f"Latest BMI: {measurement.bmi:.2f} ({settlement.report.bmi_status.value}) "
        f"(Height: {measurement.height} cm, Weight: {measurement.weight} kg).\n"
        f"Machine ID: {measurement.machine_id}.\n"
        f"Your current wallet balance is: {user.balance:.2f}.\n"
        f"Report ID: {settlement.report.report_id}."
    )
