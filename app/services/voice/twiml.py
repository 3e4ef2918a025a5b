"""TwiML generation for connecting calls to the relay."""
from typing import Optional

DEFAULT_VOICE = "Polly.Joanna-Neural"
ERROR_MESSAGE = "Sorry, there was an error connecting your call. Please try again later."

GOOGLE_VOICES = {
    "en-US-Neural2-A": "Google.en-US-Neural2-A",
    "en-US-Neural2-C": "Google.en-US-Neural2-C",
    "en-US-Neural2-D": "Google.en-US-Neural2-D",
    "en-US-Neural2-F": "Google.en-US-Neural2-F",
}

POLLY_VOICES = {
    "Joanna": "Polly.Joanna-Neural",
    "Matthew": "Polly.Matthew-Neural",
    "Ruth": "Polly.Ruth-Neural",
    "Stephen": "Polly.Stephen-Neural",
}


def escape_xml(text: str) -> str:
    """Escape XML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def map_voice(provider: Optional[str], voice_id: Optional[str]) -> str:
    """Map a TTS provider and voice ID to a ConversationRelay voice name."""
    if not provider or not voice_id:
        return DEFAULT_VOICE
    if provider == "elevenlabs":
        return f"elevenlabs.{voice_id}"
    if provider == "google":
        return GOOGLE_VOICES.get(voice_id, f"Google.{voice_id}")
    if provider == "deepgram":
        return f"Deepgram.{voice_id}"
    if provider == "amazon":
        return POLLY_VOICES.get(voice_id, f"Polly.{voice_id}-Neural")
    return DEFAULT_VOICE


def generate_conversation_relay_twiml(
    relay_url: str,
    welcome_greeting: str,
    voice: str = DEFAULT_VOICE,
    dtmf_detection: bool = True,
) -> str:
    """
    Generate TwiML that hands the call to ConversationRelay.

    Args:
        relay_url: wss:// URL of the relay WebSocket
        welcome_greeting: Text spoken when the call connects
        voice: ConversationRelay voice name

    Returns:
        TwiML XML string
    """
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Connect>
        <ConversationRelay url="{escape_xml(relay_url)}" voice="{escape_xml(voice)}" welcomeGreeting="{escape_xml(welcome_greeting)}" dtmfDetection="{str(dtmf_detection).lower()}"/>
    </Connect>
</Response>"""


def generate_error_twiml(message: str = ERROR_MESSAGE) -> str:
    """Generate TwiML that apologizes and hangs up."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Say voice="{DEFAULT_VOICE}">{escape_xml(message)}</Say>
    <Hangup/>
</Response>"""
