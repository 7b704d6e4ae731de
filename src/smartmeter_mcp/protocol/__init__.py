"""Protocol layer: ECHONET Lite framing, SK command builders, and line parsing."""

from .framing import Frame, Property, correlates, decode_frame, encode_frame
from .commands import SKCommand
