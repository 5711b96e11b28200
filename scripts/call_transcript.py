#!/usr/bin/env python3
"""Rebuild a call transcript from the server's TRANSCRIPT_DUMP log lines.

Usage:
    python scripts/call_transcript.py server.log                 # last call, human-readable
    python scripts/call_transcript.py server.log --raw           # last call, raw JSON
    python scripts/call_transcript.py server.log --call-id CA... # specific call
    python scripts/call_transcript.py --gap-threshold 3 < server.log
    python scripts/call_transcript.py server.log --all           # every call in the log
"""

import argparse
import json
import sys

DUMP_MARKER = "TRANSCRIPT_DUMP|"


def parse_transcript_lines(lines: list[str], call_id: str | None = None) -> list[dict]:
    """Reassemble TRANSCRIPT_DUMP chunks into transcript dicts.

    Log prefixes before the marker are ignored. A chunk numbered 1 starts a
    new call. Returns transcripts in log order (most recent last), filtered
    to call_id when given.
    """
    groups: list[dict[int, str]] = []

    for line in lines:
        if DUMP_MARKER not in line:
            continue
        parts = line[line.index(DUMP_MARKER):].rstrip("\n").split("|", 2)
        if len(parts) < 3:
            continue
        try:
            chunk_num, _total = (int(n) for n in parts[1].split("/"))
        except ValueError:
            continue
        if chunk_num == 1 or not groups:
            groups.append({})
        groups[-1][chunk_num] = parts[2]

    transcripts = []
    for chunks in groups:
        try:
            first = json.loads(chunks.get(1, "{}"))
        except json.JSONDecodeError:
            continue
        if call_id and first.get("call_id") != call_id:
            continue

        entries = list(first.get("entries", []))
        for i in sorted(chunks):
            if i == 1:
                continue
            try:
                entries.extend(json.loads(chunks[i]).get("entries", []))
            except json.JSONDecodeError:
                continue
        first["entries"] = entries
        transcripts.append(first)

    return transcripts


def format_transcript(transcript: dict, gap_threshold: float = 2.0) -> str:
    """Human-readable transcript with the caller's response gaps annotated."""
    lines = []

    call_id = transcript.get("call_id", "unknown")
    phone = transcript.get("phone") or "unknown"
    duration = transcript.get("duration_s", 0)
    final_state = transcript.get("final_state", "unknown")
    lines.append(f"Call {call_id} | {phone} | {duration}s | {final_state}")
    lines.append("=" * 55)
    lines.append("")

    entries = transcript.get("entries", [])
    prev_t = None

    for entry in entries:
        t = entry.get("t", 0.0)
        state = entry.get("state", "")

        if prev_t is not None:
            gap = t - prev_t
            if gap >= gap_threshold:
                marker = "  SLOW" if gap >= 10.0 else ""
                lines.append(f"      : +{gap:.1f}s{marker}")

        state_tag = f"[{state}]" if state else ""
        speaker = "Agent" if entry.get("role") == "agent" else "Caller"
        content = entry.get("content") or "[no input]"
        lines.append(f"{t:5.1f}s {state_tag:<18} {speaker}: {content}")
        prev_t = t

    if entries:
        lines.append(f"{duration:5.1f}s {'':18} Call ended")

    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Rebuild call transcripts from server logs")
    parser.add_argument("logfile", nargs="?", default="-", help="Log file to read (default: stdin)")
    parser.add_argument("--raw", action="store_true", help="Output raw JSON")
    parser.add_argument("--call-id", type=str, default=None, help="Filter by call id")
    parser.add_argument("--all", action="store_true", help="Print every call, not just the last")
    parser.add_argument("--gap-threshold", type=float, default=2.0, help="Gap threshold in seconds (default: 2.0)")
    args = parser.parse_args(argv)

    if args.logfile == "-":
        lines = sys.stdin.readlines()
    else:
        try:
            with open(args.logfile, encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as e:
            print(f"Error: cannot read {args.logfile}: {e}", file=sys.stderr)
            return 1

    transcripts = parse_transcript_lines(lines, call_id=args.call_id)
    if not transcripts:
        print("No transcripts found in the log", file=sys.stderr)
        return 1

    selected = transcripts if args.all else transcripts[-1:]
    for transcript in selected:
        if args.raw:
            print(json.dumps(transcript, indent=2, ensure_ascii=False))
        else:
            print(format_transcript(transcript, gap_threshold=args.gap_threshold))
            print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
