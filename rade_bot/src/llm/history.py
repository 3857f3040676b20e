import logging
from typing import Any, List, Optional

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    ToolMessage,
    messages_from_dict,
    messages_to_dict,
)

logger = logging.getLogger(__name__)


def _group_units(messages: List[BaseMessage]) -> List[List[BaseMessage]]:
    """
    Splits the history into atomic units.

    A tool unit is an AIMessage with tool calls followed by the ToolMessages
    answering it. Units whose calls are not all answered, and tool messages
    with no call before them, are dropped.
    """
    units = []
    i = 0
    while i < len(messages):
        message = messages[i]
        if isinstance(message, AIMessage) and message.tool_calls:
            block = [message]
            i += 1
            while i < len(messages) and isinstance(messages[i], ToolMessage):
                block.append(messages[i])
                i += 1
            expected = {call["id"] for call in message.tool_calls}
            answered = {m.tool_call_id for m in block[1:]}
            if expected <= answered:
                units.append(block)
            else:
                logger.debug(f"Dropping unpaired tool call block ({len(block)} messages)")
            continue
        if isinstance(message, ToolMessage):
            logger.debug("Dropping orphan tool message")
        else:
            units.append([message])
        i += 1
    return units


def _is_tool_unit(unit: List[BaseMessage]) -> bool:
    return isinstance(unit[0], AIMessage) and bool(unit[0].tool_calls)


def trim_history(messages: List[BaseMessage], max_messages: int, tool_pairs: int) -> List[BaseMessage]:
    """
    Trims the history without ever splitting a tool call from its results.

    Keeps, in this order of preference: the newest user message, the newest
    `tool_pairs` complete tool exchanges that fit, then the newest plain
    messages until `max_messages` is reached. Message order is preserved.
    """
    units = _group_units(list(messages))
    if not units:
        return []

    keep = set()
    budget = max_messages

    last_user = next(
        (i for i in range(len(units) - 1, -1, -1) if isinstance(units[i][0], HumanMessage)),
        None,
    )
    if last_user is not None:
        keep.add(last_user)
        budget -= 1

    kept_pairs = 0
    for i in range(len(units) - 1, -1, -1):
        if kept_pairs >= tool_pairs:
            break
        if _is_tool_unit(units[i]) and len(units[i]) <= budget:
            keep.add(i)
            budget -= len(units[i])
            kept_pairs += 1

    for i in range(len(units) - 1, -1, -1):
        if budget <= 0:
            break
        if i not in keep and not _is_tool_unit(units[i]):
            keep.add(i)
            budget -= 1

    return [m for i in sorted(keep) for m in units[i]]


def dump_history(messages: List[BaseMessage]) -> List[dict]:
    return messages_to_dict(messages)


def load_history(data: Optional[Any]) -> List[BaseMessage]:
    if not data:
        return []
    if isinstance(data, list) and all(isinstance(m, BaseMessage) for m in data):
        return list(data)
    try:
        return messages_from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Discarding unreadable conversation history: {e}")
        return []
