"""Outbound message envelopes."""
from typing import Any, Optional


def text_content(text: str) -> dict[str, Any]:
    return {"text": text}


def file_content(data: bytes, filename: str, mime_type: str, caption: Optional[str] = None) -> dict[str, Any]:
    """Build the attachment envelope matching ``mime_type``.

    Audio goes out as a regular attachment rather than a voice note.
    Anything that is not image, video or audio is sent as a document.
    """
    content: dict[str, Any] = {"fileName": filename, "mimetype": mime_type}
    if caption:
        content["caption"] = caption
    if mime_type.startswith("image/"):
        content["image"] = data
    elif mime_type.startswith("video/"):
        content["video"] = data
    elif mime_type.startswith("audio/"):
        content["audio"] = data
        content["ptt"] = False
    else:
        content["document"] = data
    return content
