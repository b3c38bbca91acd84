"""Entry point for the feed aggregator: python -m feed_aggregator"""

import asyncio
import functools
import logging
import os
import uuid

from langchain_core.messages import HumanMessage

from feed_aggregator.agent import create_agent
from feed_aggregator.database import Database
from feed_aggregator.feed_parser import DEFAULT_TIMEOUT, fetch_feed
from feed_aggregator.ingestion import FeedIngestor
from feed_aggregator.poller import FeedScheduler
from feed_aggregator.tools import set_database, set_scheduler

DEFAULT_DB_PATH = "feed_aggregator.db"
CHECKPOINT_DB_PATH = "feed_aggregator_checkpoints.db"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
# Quiet noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("langchain").setLevel(logging.WARNING)


async def chat_loop(agent, config: dict) -> None:
    """Run the interactive chat loop."""
    print("Feed aggregator ready! Ask about your feeds (Ctrl+C to quit).\n")

    while True:
        try:
            user_input = await asyncio.to_thread(input, "You: ")
        except EOFError:
            break

        if not user_input.strip():
            continue

        try:
            response = await asyncio.to_thread(
                agent.invoke,
                {"messages": [HumanMessage(content=user_input)]},
                config,
            )
            print(f"\nAgent: {response['messages'][-1].content}\n")
        except Exception as e:
            error_msg = str(e)
            if "tool_use" in error_msg and "tool_result" in error_msg:
                # Corrupted checkpoint, start a fresh thread
                config["configurable"]["thread_id"] = uuid.uuid4().hex
                print("\nAgent: Sorry, I lost track of our conversation. Please try again.\n")
            else:
                print(f"\nAgent: Sorry, I encountered an error: {error_msg}\n")


async def main() -> None:
    """Wire storage, ingestion and the agent, then run until interrupted."""
    db_path = os.environ.get("FEED_DB_PATH", DEFAULT_DB_PATH)
    checkpoint_path = os.environ.get("FEED_CHECKPOINT_PATH", CHECKPOINT_DB_PATH)
    fetch_timeout = float(os.environ.get("FEED_FETCH_TIMEOUT", DEFAULT_TIMEOUT))

    db = Database(db_path)
    db.initialize()

    ingestor = FeedIngestor(db, fetch=functools.partial(fetch_feed, timeout=fetch_timeout))
    scheduler = FeedScheduler(ingestor)
    set_database(db)
    set_scheduler(scheduler)

    agent = create_agent(checkpoint_db_path=checkpoint_path)
    config = {"configurable": {"thread_id": uuid.uuid4().hex}}

    scheduler_task = asyncio.create_task(scheduler.run())

    try:
        await chat_loop(agent, config)
    except KeyboardInterrupt:
        print("\nGoodbye!")
    finally:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
