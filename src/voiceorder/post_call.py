import json
import logging
from datetime import datetime, timezone

from voiceorder.session import ArchivedCall
from voiceorder.states import State
from voiceorder.transcript import to_json_array, to_plain_text, to_timestamped_dump

logger = logging.getLogger(__name__)

DUMP_PREFIX = "TRANSCRIPT_DUMP"


def derive_outcome(archived: ArchivedCall) -> str:
    """Map the final state to the outcome reported for the call."""
    if not archived.answered:
        return "missed"
    if archived.state == State.FINALIZED:
        return "order_placed_local" if archived.order_is_local else "order_placed"
    if archived.state == State.CANCELLED:
        return "cancelled"
    return "abandoned"


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def build_call_payload(archived: ArchivedCall) -> dict:
    """Build the call.ended event payload."""
    payload = {
        "event": "call.ended",
        "call_id": archived.call_id,
        "phone_number": archived.caller_number or "unknown",
        "started_at": _iso(archived.created_at),
        "ended_at": _iso(archived.finalized_at),
        "duration_seconds": int(archived.duration_seconds),
        "direction": "inbound",
        "answered": archived.answered,
        "final_state": archived.state.value,
        "outcome": derive_outcome(archived),
        "language": archived.language.value if archived.language else None,
        "turn_count": archived.turn_count,
        "items": [
            {
                "menuItemId": f.menu_item_id,
                "spokenAs": f.matched_alias,
                "quantity": f.quantity,
                "modifiers": sorted(f.modifiers),
            }
            for f in archived.fragments
        ],
        "modifiers": list(archived.modifiers),
        "special_instructions": list(archived.special_instructions),
        "fulfillment": archived.fulfillment.value,
        "call_transcript": to_plain_text(list(archived.transcript)),
        "transcript_object": to_json_array(list(archived.transcript)),
    }
    if archived.result_order_id:
        payload["order_id"] = archived.result_order_id
        payload["order_number"] = archived.result_order_number
        payload["order_is_local"] = archived.order_is_local
    return payload


def chunk_transcript_dump(dump: dict, max_bytes: int = 3500) -> list[str]:
    """Split a transcript dump into log lines of at most ~max_bytes.

    Each line is TRANSCRIPT_DUMP|N/M|{json}. The first line carries the
    header fields and as many entries as fit; later lines carry entries only.
    """
    header = {k: v for k, v in dump.items() if k != "entries"}
    entries = dump.get("entries", [])

    if not entries:
        return [f"{DUMP_PREFIX}|1/1|{json.dumps({**header, 'entries': []})}"]

    groups: list[list[dict]] = [[]]
    size = len(json.dumps({**header, "entries": []}).encode("utf-8"))
    for entry in entries:
        # +2 for the separator and bracket
        entry_size = len(json.dumps(entry).encode("utf-8")) + 2
        if groups[-1] and size + entry_size > max_bytes:
            groups.append([])
            size = len(json.dumps({"entries": []}).encode("utf-8"))
        groups[-1].append(entry)
        size += entry_size

    total = len(groups)
    lines = []
    for i, group in enumerate(groups):
        body = {**header, "entries": group} if i == 0 else {"entries": group}
        lines.append(f"{DUMP_PREFIX}|{i + 1}/{total}|{json.dumps(body)}")
    return lines


async def handle_call_ended(archived: ArchivedCall, notifier=None) -> dict:
    """Post-call work for an archived call: transcript dump and call.ended event."""
    dump = to_timestamped_dump(
        list(archived.transcript),
        start_time=archived.created_at,
        call_id=archived.call_id,
        phone=archived.caller_number,
        final_state=archived.state.value,
    )
    dump["duration_s"] = round(archived.duration_seconds, 1)
    for line in chunk_transcript_dump(dump):
        logger.info(line)

    payload = build_call_payload(archived)
    if notifier is not None:
        notifier.publish(payload)

    logger.info(
        "Post-call complete for %s: state=%s, order=%s",
        archived.call_id, archived.state.value, archived.result_order_id,
    )
    return payload
