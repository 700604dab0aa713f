"""Shared constants for the loop."""

# Process exit codes
EXIT_OK = 0
EXIT_PRECONDITION = 2
EXIT_LOCKED = 3
EXIT_DESYNC = 4

COMPLETION_PROMISE = "<promise>COMPLETE</promise>"

LOG_SECTION_HEADING = "## Detailed Completion Log"

ARTIFACT_SUFFIX = ".md"

# Characters allowed in a work item id. Ids become file names.
ITEM_ID_CHARS = r"[A-Za-z0-9][A-Za-z0-9._-]*"
