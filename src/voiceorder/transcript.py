from voiceorder.session import Speaker, Utterance

ROLES = {
    Speaker.SYSTEM: "agent",
    Speaker.CALLER: "user",
}


def to_plain_text(transcript: list[Utterance]) -> str:
    """Convert a transcript to plain text.

    System lines are prefixed with "Agent:", caller lines with "Caller:".
    Silent caller turns are shown as "[no input]".
    """
    if not transcript:
        return ""

    lines = []
    for utterance in transcript:
        if utterance.speaker == Speaker.SYSTEM:
            lines.append(f"Agent: {utterance.text}")
        else:
            lines.append(f"Caller: {utterance.text or '[no input]'}")
    return "\n".join(lines)


def to_json_array(transcript: list[Utterance]) -> list[dict]:
    """Structured {role, content} list for notification payloads."""
    return [
        {"role": ROLES[u.speaker], "content": u.text}
        for u in transcript or []
    ]


def to_timestamped_dump(
    transcript: list[Utterance],
    start_time: float,
    call_id: str,
    phone: str,
    final_state: str,
) -> dict:
    """Build a timestamped transcript dump dict for structured logging.

    Timestamps are converted to relative seconds from call start.
    If start_time is 0, uses the first utterance's timestamp as base.
    """
    base_time = start_time
    if base_time <= 0 and transcript:
        base_time = transcript[0].timestamp

    entries = [
        {
            "t": round(u.timestamp - base_time, 1),
            "role": ROLES[u.speaker],
            "state": u.state,
            "content": u.text,
        }
        for u in transcript or []
    ]

    return {
        "call_id": call_id,
        "phone": phone,
        "final_state": final_state,
        "entries": entries,
    }
