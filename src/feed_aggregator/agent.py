"""LangGraph agent that answers questions about the aggregated feeds."""

import os
import sqlite3
from typing import Literal

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import SystemMessage, ToolMessage
from langgraph.checkpoint.sqlite import SqliteSaver
from langgraph.graph import END, START, MessagesState, StateGraph

from feed_aggregator.tools import (
    add_source,
    get_article,
    get_articles,
    get_stats,
    list_sources,
    mark_as_read,
    mark_as_unread,
    refresh_feeds,
    remove_source,
    search_articles,
    set_source_active,
)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

SYSTEM_PROMPT = """You are the reading assistant for a personal feed aggregator.

Articles are collected automatically every hour from the registered RSS and Atom sources.
You help the user browse and manage them:
- To register a new feed, use add_source with the feed URL. If the user gives a website
  rather than a feed, try common feed paths like /feed, /rss or /atom.xml.
- To show the latest articles, use get_articles. Filter by source or unread status when asked.
- To read a full article, use get_article with its id.
- To find articles about a topic, use search_articles.
- To see the registered sources, use list_sources. To pause or resume one, use set_source_active.
- To delete a source and its articles, use remove_source. Confirm with the user first.
- To mark articles as read or unread, use mark_as_read or mark_as_unread.
- For counts, use get_stats.
- When the user wants fresh articles right now, use refresh_feeds and report how many
  sources were fetched and how many new articles were added.
Present articles as title, source, date and a one-line excerpt. Be concise."""

TOOLS = [
    add_source,
    list_sources,
    remove_source,
    set_source_active,
    get_articles,
    get_article,
    search_articles,
    mark_as_read,
    mark_as_unread,
    get_stats,
    refresh_feeds,
]


def create_agent(
    checkpoint_db_path: str = "feed_aggregator_checkpoints.db",
    tools: list | None = None,
    model_name: str | None = None,
):
    """Create and compile the LangGraph agent.

    Args:
        checkpoint_db_path: Path to SQLite database for LangGraph checkpointing.
        tools: Tools to bind to the model. Defaults to TOOLS.
        model_name: Anthropic model id. Defaults to FEED_AGENT_MODEL or DEFAULT_MODEL.
    """
    if tools is None:
        tools = TOOLS

    model = ChatAnthropic(
        model=model_name or os.environ.get("FEED_AGENT_MODEL", DEFAULT_MODEL),
        temperature=0,
    )
    model_with_tools = model.bind_tools(tools) if tools else model
    tools_by_name = {t.name: t for t in tools}

    def agent_node(state: MessagesState):
        messages = [SystemMessage(content=SYSTEM_PROMPT)] + state["messages"]
        return {"messages": [model_with_tools.invoke(messages)]}

    def tool_node(state: MessagesState):
        results = []
        for tool_call in state["messages"][-1].tool_calls:
            output = tools_by_name[tool_call["name"]].invoke(tool_call["args"])
            results.append(ToolMessage(content=str(output), tool_call_id=tool_call["id"]))
        return {"messages": results}

    def route(state: MessagesState) -> Literal["tool_node", "__end__"]:
        if state["messages"][-1].tool_calls:
            return "tool_node"
        return END

    builder = StateGraph(MessagesState)
    builder.add_node("agent_node", agent_node)
    builder.add_node("tool_node", tool_node)
    builder.add_edge(START, "agent_node")
    builder.add_conditional_edges("agent_node", route, ["tool_node", END])
    builder.add_edge("tool_node", "agent_node")

    checkpointer = SqliteSaver(sqlite3.connect(checkpoint_db_path, check_same_thread=False))
    return builder.compile(checkpointer=checkpointer)
