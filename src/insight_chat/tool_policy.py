QUERY_MARKER = "@query"
FIND_MARKER = "@find"

QUERY_TOOL_NAME = "query_database"
RETRIEVAL_TOOL_NAME = "get_information"

# Checked in order; the first marker found wins.
_RESTRICTIONS: tuple[tuple[str, str], ...] = (
    (QUERY_MARKER, QUERY_TOOL_NAME),
    (FIND_MARKER, RETRIEVAL_TOOL_NAME),
)


def select_active_tools(utterance: str | None, registered: list[str]) -> list[str]:
    """Narrow the registered tool names to the ones the model may call this turn.

    A marker restricts the set to exactly its tool (or to nothing, if that tool
    is not registered). Without a marker every registered tool stays active.
    """
    lowered = (utterance or "").lower()
    for marker, tool_name in _RESTRICTIONS:
        if marker in lowered:
            return [tool_name] if tool_name in registered else []
    return list(registered)
