"""Conversion between UI message dicts and compaction types."""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from ctxbudget.compaction.types import (
    ImageOutput,
    Message,
    Part,
    TextOutput,
    TextPart,
    ToolCallPart,
    ToolOutput,
    ToolPhase,
)

TOOL_PREFIX = "tool-"

# UI states -> phases
_STATE_TO_PHASE = {
    "input-streaming": ToolPhase.REQUESTED,
    "input-available": ToolPhase.REQUESTED,
    "output-available": ToolPhase.COMPLETED,
    "output-error": ToolPhase.FAILED,
}

_PHASE_TO_STATE = {
    ToolPhase.REQUESTED: "input-available",
    ToolPhase.COMPLETED: "output-available",
    ToolPhase.FAILED: "output-error",
}


def _output_from_raw(raw: Any) -> ToolOutput:
    if isinstance(raw, str):
        return TextOutput(raw)
    if isinstance(raw, dict):
        kind = raw.get("type")
        if kind == "image" and raw.get("data"):
            return ImageOutput(data=str(raw["data"]), media_type=raw.get("mimeType", "image/png"))
        if kind == "text" and raw.get("data") is not None:
            return TextOutput(str(raw["data"]))
    # Any other structured result is costed as its JSON text
    return TextOutput(json.dumps(raw, ensure_ascii=False, default=str))


def part_from_dict(raw: dict[str, Any]) -> Part | None:
    """
    Convert a UI part dict to a Part.

    Returns:
        The part, or None for part types the engine does not track.
    """
    kind = raw.get("type") or ""

    if kind == "text":
        return TextPart(raw.get("text", ""))

    if kind.startswith(TOOL_PREFIX):
        name = kind[len(TOOL_PREFIX):]
        phase = _STATE_TO_PHASE.get(raw.get("state", ""), ToolPhase.REQUESTED)
        call_id = raw.get("toolCallId")
        tool_input = raw.get("input")

        if phase is ToolPhase.COMPLETED and raw.get("output") is not None:
            return ToolCallPart(name, phase, input=tool_input, output=_output_from_raw(raw["output"]), call_id=call_id)
        if phase is ToolPhase.FAILED and raw.get("errorText"):
            return ToolCallPart(name, phase, input=tool_input, error_text=raw["errorText"], call_id=call_id)
        return ToolCallPart(name, ToolPhase.REQUESTED, input=tool_input, call_id=call_id)

    logger.debug(f"Skipping untracked part type: {kind}")
    return None


def message_from_dict(raw: dict[str, Any]) -> Message:
    """Convert a UI message dict ({"role", "id", "parts"}) to a Message."""
    parts = [part_from_dict(p) for p in raw.get("parts", []) if isinstance(p, dict)]
    if not raw.get("parts") and isinstance(raw.get("content"), str):
        parts = [TextPart(raw["content"])]
    return Message(
        role=raw.get("role", "user"),
        parts=tuple(p for p in parts if p is not None),
        id=raw.get("id"),
        metadata=dict(raw.get("metadata") or {}),
    )


def part_to_dict(part: Part) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    data: dict[str, Any] = {"type": f"{TOOL_PREFIX}{part.name}", "state": _PHASE_TO_STATE[part.phase]}
    if part.call_id:
        data["toolCallId"] = part.call_id
    if part.input is not None:
        data["input"] = part.input
    if isinstance(part.output, ImageOutput):
        data["output"] = {"type": "image", "data": part.output.data, "mimeType": part.output.media_type}
    elif isinstance(part.output, TextOutput):
        data["output"] = {"type": "text", "data": part.output.text}
    if part.error_text:
        data["errorText"] = part.error_text
    return data


def message_to_dict(message: Message) -> dict[str, Any]:
    """Convert a Message back to the UI message shape."""
    data: dict[str, Any] = {"role": message.role, "parts": [part_to_dict(p) for p in message.parts]}
    if message.id:
        data["id"] = message.id
    if message.metadata:
        data["metadata"] = message.metadata
    return data


def load_messages(path: Path) -> list[Message]:
    """Load a conversation from a JSON file holding a list of UI messages."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("messages", [])
    return [message_from_dict(m) for m in data]


def dump_messages(messages: list[Message], path: Path) -> None:
    """Write a conversation to a JSON file as UI messages."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([message_to_dict(m) for m in messages], indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
