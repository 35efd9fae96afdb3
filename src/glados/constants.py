"""Shared constants for GLaDOS."""

# Discord hard limit for a single message body.
MAX_DISCORD_MESSAGE_LENGTH = 2000

# Reaction a contact adds to an alert DM to acknowledge it.
ACK_REACTION_EMOJI = "✅"

# Stock replies that never involve the model.
TEAM_NOT_FOUND_RESPONSE = (
    "I couldn't find that team. Please make sure you're messaging from a "
    "registered team channel."
)
TOO_MANY_STEPS_RESPONSE = (
    "I had to stop after too many steps working on that. "
    "Could you try breaking your request into smaller pieces?"
)
EMPTY_RESPONSE_FALLBACK = "I processed your request but have no text response."
