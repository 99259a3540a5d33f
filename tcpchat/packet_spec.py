# tcpchat/packet_spec.py
"""
Defines the field layout of each supported frame tag.
This central schema lets the codec validate incoming lines before a
message object is built.

Every frame is ``TAG:field1:field2:...``; the last field swallows the rest
of the line so free text may contain ``:``.
"""

# --- Field names per frame tag --------------------------------------------

# Client announces the name it wants
JOIN_FIELDS = ("username",)

# Public chat line; sender is rewritten by the server
MSG_FIELDS = ("sender", "body")

# Private line to exactly one user
WHISPER_FIELDS = ("sender", "recipient", "body")

# Client leaves gracefully
QUIT_FIELDS = ("username",)

# Server -> client failure note
ERROR_FIELDS = ("message",)

# Server -> client informational note (joins, leaves, welcome)
SYSTEM_FIELDS = ("text",)

# LIST_USERS is special: bare tag is the request, ``LIST_USERS:a,b`` the reply
LIST_USERS_FIELDS = ("users",)

# --- Master mapping: frame tag -> ordered field names ---------------------

FIELDS_BY_TAG = {
    "JOIN": JOIN_FIELDS,
    "MSG": MSG_FIELDS,
    "WHISPER": WHISPER_FIELDS,
    "QUIT": QUIT_FIELDS,
    "ERROR": ERROR_FIELDS,
    "SYSTEM": SYSTEM_FIELDS,
    "LIST_USERS": LIST_USERS_FIELDS,
}
