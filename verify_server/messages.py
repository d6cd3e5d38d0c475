"""
Discord message payloads (embeds) sent to members.
"""
from datetime import datetime, timezone
from typing import Any

FOOTER = {"text": "Queernel Bot - 42 Student Verification"}

COLOR_INFO = 0x0099FF
COLOR_SUCCESS = 0x00FF00
COLOR_WARNING = 0xFF9900


def _embed(title: str, description: str, color: int, fields: list[dict] | None = None) -> dict[str, Any]:
    embed = {
        "title": title,
        "description": description,
        "color": color,
        "footer": FOOTER,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if fields:
        embed["fields"] = fields
    return {"embeds": [embed]}


def welcome_message(subject_id: str, authorize_url: str) -> dict[str, Any]:
    return _embed(
        "Welcome to Queernel! 🎉",
        f"Hello <@{subject_id}>! Welcome to the Queernel Discord server.",
        COLOR_INFO,
        [
            {
                "name": "🔐 42 Student Verification Required",
                "value": "To access all server features, please verify that you are a 42 student "
                "by logging in with your 42 account.",
            },
            {
                "name": "📋 What happens next?",
                "value": "1. Click the verification link below\n"
                "2. Log in with your 42 account\n"
                "3. Grant permission to verify your student status\n"
                "4. Review and accept the server rules\n"
                '5. You\'ll receive the "42" role automatically',
            },
            {"name": "🔗 Verification Link", "value": f"[Click here to verify with 42]({authorize_url})"},
            {"name": "⏱️ Expiry", "value": "The link is valid for 10 minutes."},
        ],
    )


def dm_fallback_message(subject_id: str) -> dict[str, Any]:
    """Posted in the system channel when the welcome DM cannot be delivered. Carries no link."""
    return _embed(
        "Welcome Message",
        f"<@{subject_id}>, I couldn't send you a DM. "
        "Please enable DMs from server members to receive your verification link.",
        COLOR_WARNING,
    )


def success_message(summary: dict[str, Any] | None) -> dict[str, Any]:
    fields = [
        {"name": "Status", "value": "✅ Verified 42 Student", "inline": True},
        {"name": "Rules", "value": "✅ Accepted", "inline": True},
    ]
    if summary and summary.get("campus"):
        fields.append({"name": "Campus", "value": str(summary["campus"]), "inline": True})
    return _embed(
        "✅ Verification Successful!",
        "Welcome to Queernel! You have been successfully verified as a 42 student "
        "and have accepted the server rules.",
        COLOR_SUCCESS,
        fields,
    )


def manual_verification_message() -> dict[str, Any]:
    return _embed(
        "✅ Verification Completed",
        "You have been manually verified as a 42 student by an administrator.",
        COLOR_SUCCESS,
        [{"name": "Status", "value": "✅ Verified 42 Student", "inline": True}],
    )
