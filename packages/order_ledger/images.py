"""Image reference helpers.

An image field on an order is an opaque string with three legal shapes:

- an inline payload (``data:image/jpeg;base64,...``),
- an external locator: an ``http(s)`` URL, a Drive file id, or a
  ``drive_<millis>_<name>`` placeholder issued while an upload is in flight,
- absent (``None`` or empty).

The store never transcodes these values. The codec only asks how large a
reference is and whether it is present; presentation layers use
:func:`display_url`.
"""

from __future__ import annotations

from enum import StrEnum

DRIVE_VIEW_URL = "https://drive.google.com/uc?export=view&id={file_id}"
_DRIVE_PLACEHOLDER_PREFIX = "drive_"


class ImageRefKind(StrEnum):
    ABSENT = "absent"
    INLINE = "inline"
    URL = "url"
    DRIVE_FILE = "drive_file"
    PENDING_UPLOAD = "pending_upload"


def is_present(ref: str | None) -> bool:
    return bool(ref and ref.strip())


def classify(ref: str | None) -> ImageRefKind:
    if not is_present(ref):
        return ImageRefKind.ABSENT
    assert ref is not None
    s = ref.strip()
    if s.startswith("data:image"):
        return ImageRefKind.INLINE
    if s.startswith(("http://", "https://")):
        return ImageRefKind.URL
    if s.startswith(_DRIVE_PLACEHOLDER_PREFIX):
        return ImageRefKind.PENDING_UPLOAD
    return ImageRefKind.DRIVE_FILE


def display_url(ref: str | None) -> str:
    """Return something an ``<img src>`` can load, or ``""``.

    Pending-upload placeholders have no resolvable file yet and map to ``""``.
    """

    kind = classify(ref)
    if kind in (ImageRefKind.INLINE, ImageRefKind.URL):
        return (ref or "").strip()
    if kind is ImageRefKind.DRIVE_FILE:
        return DRIVE_VIEW_URL.format(file_id=(ref or "").strip())
    return ""


__all__ = ["ImageRefKind", "DRIVE_VIEW_URL", "is_present", "classify", "display_url"]
