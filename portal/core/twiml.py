"""TwiML Builders — the fixed set of voice/messaging responses the webhooks return.

Invariants:
    - Every builder returns a complete XML document (declaration included)
    - Builders are pure: no IO, inputs fully determine output
    - Forwarded calls always ring for DIAL_TIMEOUT_SECONDS and record both legs

Design Decisions:
    - twilio.twiml over string templates: attribute escaping and verb nesting
      are handled by the library
"""

from twilio.twiml.messaging_response import MessagingResponse
from twilio.twiml.voice_response import Connect, VoiceResponse

TWIML_MEDIA_TYPE = "application/xml"
DIAL_TIMEOUT_SECONDS = 20


def empty_messaging_response() -> str:
    """Acknowledge an inbound SMS without replying."""
    return str(MessagingResponse())


def reject_response() -> str:
    response = VoiceResponse()
    response.reject()
    return str(response)


def hangup_response() -> str:
    response = VoiceResponse()
    response.hangup()
    return str(response)


def forward_call_response(to_e164: str, recording_callback: str | None = None) -> str:
    """Dial the owner's phone; recording status is reported to recording_callback."""
    response = VoiceResponse()
    options = {"timeout": DIAL_TIMEOUT_SECONDS}
    if recording_callback:
        options.update(
            record="record-from-answer-dual",
            recording_status_callback=recording_callback,
            recording_status_callback_method="POST",
            recording_status_callback_event="completed",
        )
    response.dial(to_e164, **options)
    return str(response)


def agent_stream_response(
    stream_url: str,
    parameters: dict[str, str],
    greeting: str | None = None,
    status_callback: str | None = None,
) -> str:
    """Hand the call to a conversational voice agent over a media stream."""
    response = VoiceResponse()
    if greeting:
        response.say(greeting)
    connect = Connect()
    stream = connect.stream(
        url=stream_url,
        status_callback=status_callback,
        status_callback_method="POST" if status_callback else None,
    )
    for name, value in parameters.items():
        if value:
            stream.parameter(name=name, value=value)
    response.append(connect)
    return str(response)
