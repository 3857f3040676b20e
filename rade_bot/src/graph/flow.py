import logging
from typing import Awaitable, Callable, List

from langchain_core.messages import BaseMessage
from langgraph.graph import END, StateGraph
from langgraph.prebuilt import ToolNode, tools_condition

from rade_bot.src.graph.state import ToolLoopState

logger = logging.getLogger(__name__)

ModelCall = Callable[[List[BaseMessage], int], Awaitable[BaseMessage]]


def build_tool_graph(call_model: ModelCall, tools: list, max_steps: int):
    """
    Agent <-> tools loop for one model run.

    The agent node runs at most `max_steps` times. When the budget runs out
    right after the tools node the run stops there, so the last tool call
    always has its results.
    """

    async def agent_node(state: ToolLoopState) -> dict:
        """Calls the model with the conversation and the bound tools."""
        steps = state.get("steps", 0)
        logger.debug(f"Entering agent node (step {steps + 1}/{max_steps})")
        response = await call_model(state["messages"], steps)
        return {"messages": [response], "steps": steps + 1}

    def route_after_tools(state: ToolLoopState) -> str:
        if state.get("steps", 0) < max_steps:
            return "agent"
        logger.info("Tool step budget exhausted, ending the run")
        return END

    workflow = StateGraph(ToolLoopState)

    workflow.add_node("agent", agent_node)
    workflow.add_node("tools", ToolNode(tools=tools))

    workflow.set_entry_point("agent")

    workflow.add_conditional_edges(
        "agent",
        tools_condition,
        {
            "tools": "tools",
            END: END,
        },
    )
    workflow.add_conditional_edges(
        "tools",
        route_after_tools,
        {
            "agent": "agent",
            END: END,
        },
    )

    return workflow.compile()


async def run_tool_loop(graph, messages: List[BaseMessage]) -> List[BaseMessage]:
    """Streams the run and returns only the messages it produced."""
    produced: List[BaseMessage] = []
    async for update in graph.astream({"messages": list(messages), "steps": 0}, stream_mode="updates"):
        for node_update in update.values():
            produced.extend((node_update or {}).get("messages", []))
    return produced
