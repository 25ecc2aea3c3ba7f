# ctaflow/services/handles.py
"""
Conversions between index-addressed handles and text-addressed wire labels.

The canvas connects edges to "btn-<index>" handles so they survive button
text edits; the flow API keys transitions by button text. These are the only
places that translate one into the other.
"""
from typing import Iterable, Optional

from ctaflow.schemas.graph import Button, ButtonLabel, HandleId


def normalize_label(text) -> str:
    return str(text or "").strip().lower()


def label_for_handle(buttons: Iterable[Button], handle: Optional[str]) -> ButtonLabel:
    """Text of the button behind `handle`, or an empty label"""
    hid = str(handle or "")
    for btn in buttons or []:
        if btn.handle == hid:
            return ButtonLabel(btn.text.strip())
    return ButtonLabel("")


def handle_for_label(buttons: Iterable[Button], label: Optional[str]) -> Optional[HandleId]:
    """Handle of the first button whose text matches `label` (trimmed, case-insensitive)"""
    wanted = normalize_label(label)
    for btn in buttons or []:
        if normalize_label(btn.text) == wanted:
            return btn.handle
    return None
