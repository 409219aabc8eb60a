"""
Terminal front end for the FinAssist chat.

Reads questions from stdin and streams the assistant's replies. Commands:
/clear clears the conversation, /summary prints totals and spending per
category, /insights asks for a budget analysis, /recommendations asks for
savings suggestions, /add <amount> <title> logs an expense categorized by
the backend, /quit exits. Ctrl-C cancels the reply being streamed.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import logging
import signal
import sys

from finassist.chat import (
    ChatMessage,
    CollectingNotifier,
    FinancialChatSession,
    LoggingNotifier,
    Notification,
)
from finassist.client import BackendClient
from finassist.config import Configuration
from finassist.exceptions import FinAssistError
from finassist.finance import (
    AsyncSqlTransactionRepo,
    Transaction,
    TransactionCreate,
    build_financial_context,
    category_breakdown,
    compute_balance,
    load_transactions,
    summarize,
)
from finassist.logging_utils import configure_logging
from finassist.speech import SpeechResponder


class TerminalView:
    """Prints the streaming assistant message as it grows."""

    def __init__(self) -> None:
        self._printed = 0

    def on_update(self, messages: list[ChatMessage]) -> None:
        if not messages or messages[-1].role != "assistant":
            self._printed = 0
            return
        content = messages[-1].content
        if len(content) > self._printed:
            sys.stdout.write(content[self._printed:])
            sys.stdout.flush()
            self._printed = len(content)

    def reset(self) -> None:
        self._printed = 0


class TerminalNotifier(CollectingNotifier):
    def notify(self, notification: Notification) -> None:
        super().notify(notification)
        print(f"\n[{notification.title}] {notification.description}")


async def run_chat(
    config: Configuration,
    user_id: str | None,
) -> None:
    backend_config = config.get_backend_config()
    streaming_config = config.get_streaming_config()
    speech_config = config.get_speech_config()
    transactions_config = config.get_transactions_config()

    notifier = TerminalNotifier(forward_to=LoggingNotifier())
    view = TerminalView()

    async with (
        BackendClient(backend_config, config.backend_api_key) as client,
        AsyncSqlTransactionRepo(transactions_config["db_path"]) as repo,
    ):
        speech = (
            SpeechResponder(client, notifier, speech_config["voice_id"])
            if speech_config["enabled"]
            else None
        )
        session = FinancialChatSession(
            client,
            notifier,
            on_assistant_response=speech,
            on_update=view.on_update,
            streaming_config=streaming_config,
        )

        shutdown_event = asyncio.Event()

        def signal_handler() -> None:
            if session.is_loading:
                session.cancel("interrupted")
            else:
                shutdown_event.set()

        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGINT, signal_handler)

        transactions: list[Transaction] = await load_transactions(
            repo, user_id, transactions_config["use_demo_fallback"]
        )
        balance = compute_balance(transactions)
        print(f"FinAssist ready. Balance: R$ {balance:.2f}. Type /quit to exit.")

        while not shutdown_event.is_set():
            try:
                line = await asyncio.to_thread(input, "\n> ")
            except EOFError:
                break

            command = line.strip()
            if command == "/quit":
                break
            if command == "/clear":
                session.clear_chat()
                print("Conversation cleared.")
                continue
            if command == "/summary":
                print(format_summary(transactions, balance))
                continue
            if command == "/insights":
                await _print_insights(client, transactions, balance)
                continue
            if command == "/recommendations":
                await _print_recommendations(client, transactions, balance)
                continue
            if command.startswith("/add "):
                added = await _add_expense(client, repo, user_id, command[5:])
                if added is not None:
                    transactions.insert(0, added)
                    balance = compute_balance(transactions)
                continue

            view.reset()
            await session.send_message(command, transactions, balance)

        logging.info("Chat session closed")


async def _add_expense(
    client: BackendClient,
    repo: AsyncSqlTransactionRepo,
    user_id: str | None,
    args: str,
) -> Transaction | None:
    """Handle `/add <amount> <title>`, letting the backend pick the category."""
    amount_text, _, title = args.strip().partition(" ")
    try:
        amount = float(amount_text.replace(",", "."))
        title = title.strip()
        if not title:
            raise ValueError("title is required")
        if amount < 0:
            raise ValueError("amount must not be negative")
    except ValueError as e:
        print(f"Usage: /add <amount> <title> ({e})")
        return None

    category, ai_categorized = "Other", False
    try:
        result = await client.categorize_expense(title, amount)
        category, ai_categorized = result.category, True
    except FinAssistError as e:
        print(f"Could not categorize, using '{category}': {e}")

    expense = TransactionCreate(
        title=title,
        amount=amount,
        type="expense",
        category=category,
        date=dt.date.today(),
        ai_categorized=ai_categorized,
    )
    if user_id is None:
        added = Transaction(**expense.model_dump())
    else:
        added = await repo.add_transaction(user_id, expense)
    print(f"Added {added.title}: R$ {added.amount:.2f} ({added.category})")
    return added


async def _print_insights(
    client: BackendClient, transactions: list[Transaction], balance: float
) -> None:
    try:
        report = await client.generate_insights(transactions, balance)
    except FinAssistError as e:
        print(f"Could not generate insights: {e}")
        return

    print(f"{report.analysis_title} (health score {report.health_score})")
    for insight in report.insights:
        print(f"- {insight}")
    for recommendation in report.recommendations:
        print(f"* {recommendation}")


async def _print_recommendations(
    client: BackendClient, transactions: list[Transaction], balance: float
) -> None:
    if not transactions:
        print("Not enough data: add transactions to get recommendations.")
        return
    try:
        recommendations = await client.generate_recommendations(transactions, balance)
    except FinAssistError as e:
        print(f"Could not generate recommendations: {e}")
        return

    for rec in recommendations:
        print(f"[{rec.impact} impact] {rec.title}: {rec.description}")
        if rec.action:
            print(f"  -> {rec.action}")


def format_summary(transactions: list[Transaction], balance: float) -> str:
    """Totals, latest transactions and spending per category."""
    text = build_financial_context(summarize(transactions, balance))
    breakdown = category_breakdown(transactions)
    if breakdown:
        text += "\n\nSpending by category:\n" + "\n".join(
            f"- {category}: R$ {total:.2f}" for category, total in breakdown.items()
        )
    return text


def main() -> None:
    """Console script entry point."""
    parser = argparse.ArgumentParser(description="FinAssist terminal chat")
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument("--user", help="User id whose transactions are loaded")
    args = parser.parse_args()

    config = Configuration(args.config)
    configure_logging(config.get_logging_config()["level"])
    try:
        asyncio.run(run_chat(config, args.user))
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")


if __name__ == "__main__":
    main()
