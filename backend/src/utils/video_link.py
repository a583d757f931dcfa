"""Video consultation links for virtual appointments."""

import secrets
import string

_LETTERS = string.ascii_lowercase


def generate_meeting_code() -> str:
    """Random meeting code in the ``xxx-xxxx-xxx`` shape."""
    return "-".join("".join(secrets.choice(_LETTERS) for _ in range(size)) for size in (3, 4, 3))


def generate_video_conference_link(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/{generate_meeting_code()}"
