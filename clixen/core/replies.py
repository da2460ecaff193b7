"""User-facing reply texts.

Everything here is sent with Telegram's HTML parse mode, so user-supplied
values are escaped before interpolation.
"""

from __future__ import annotations

from html import escape

from clixen.models.account import UserContext
from clixen.models.catalog import WorkflowCatalog

DEFAULT_DIRECT_REPLY = "How can I help you?"
DEFAULT_CLARIFY_REPLY = "Could you provide more details?"
DEFAULT_DENY_REPLY = "You don't have permission for this action."
ACCOUNT_ACCESS_ERROR = "There was an issue accessing your account. Please try again or contact support."
LINK_UNKNOWN_CAUSE = "the code is expired or incorrect"


def _capabilities(catalog: WorkflowCatalog, permissions: frozenset[str] | None = None) -> str:
    lines = []
    for spec in catalog.values():
        if permissions is not None and spec.name not in permissions:
            continue
        lines.append(f"• {escape(spec.title)}: {escape(spec.example or spec.description)}")
    return "\n".join(lines)


def unlinked_welcome(first_name: str, interaction_count: int, app_url: str, catalog: WorkflowCatalog) -> str:
    return (
        f"👋 Welcome to Clixen AI, {escape(first_name)}!\n\n"
        f"I see this is interaction #{interaction_count} with our bot.\n\n"
        "To unlock all features:\n"
        f"1️⃣ Sign up at {app_url}\n"
        "2️⃣ Go to your dashboard\n"
        '3️⃣ Click "Link Telegram Account"\n'
        "4️⃣ Send me the linking code\n\n"
        "✨ After linking, you'll have access to:\n"
        f"{_capabilities(catalog)}\n\n"
        "Your interactions are safely stored and will be linked to your account! 🔒"
    )


def unlinked_help(interaction_count: int, app_url: str) -> str:
    return (
        "🤖 Clixen AI - Personal Automation Assistant\n\n"
        "I can help you with many tasks, but first you need to link your account!\n\n"
        "📱 To get started:\n"
        f"• Sign up at {app_url}\n"
        "• Link your Telegram in the dashboard\n"
        "• Come back and start automating!\n\n"
        f"This is interaction #{interaction_count}; your messages are saved for when you link your account! 💾"
    )


def link_prompt(first_name: str, interaction_count: int, app_url: str) -> str:
    return (
        f"Hi {escape(first_name)}! 👋\n\n"
        "I'd love to help you with that, but you need to link your Clixen AI account first.\n\n"
        f"This is interaction #{interaction_count} with our bot. "
        "Don't worry, your messages are safely stored! 💾\n\n"
        "🔗 Quick setup:\n"
        f"1. Visit {app_url}\n"
        "2. Create your account\n"
        "3. Link your Telegram\n"
        "4. Start automating!"
    )


def link_success(first_name: str, catalog: WorkflowCatalog) -> str:
    return (
        "🎉 Account linked successfully!\n\n"
        f"Welcome {escape(first_name)}! Your Telegram is now connected to your Clixen AI account.\n\n"
        "✨ You now have access to:\n"
        f"{_capabilities(catalog)}\n\n"
        "🎯 Try asking me something now, or use /help to see all features!"
    )


def link_failure(error: str | None, app_url: str) -> str:
    return (
        f"❌ Linking failed: {escape(error or LINK_UNKNOWN_CAUSE)}\n\n"
        "Please try:\n"
        f"• Get a fresh linking code from {app_url}\n"
        "• Make sure you copy the entire code\n"
        "• Codes expire after 10 minutes"
    )


def linked_help(context: UserContext, catalog: WorkflowCatalog) -> str:
    return (
        "🤖 Clixen AI - Your Personal Assistant\n\n"
        "Available features:\n"
        f"{_capabilities(catalog, context.permissions) or '• None on your current plan'}\n\n"
        "Commands:\n"
        "• /status - Account information\n"
        "• /help - This message\n\n"
        f"Usage: {context.quota_used}/{context.quota_limit} requests\n"
        f"Tier: {context.tier.value.upper()}"
    )


def linked_status(context: UserContext) -> str:
    trial = "✅ Active" if context.trial_active else "❌ Inactive"
    return (
        "📊 Account Status\n\n"
        f"👤 User: {context.account_id[:8]}...\n"
        f"💎 Tier: {context.tier.value.upper()}\n"
        f"🎯 Trial: {trial}\n"
        f"📈 Usage: {context.quota_used}/{context.quota_limit}"
    )


def unknown_command(command: str) -> str:
    return (
        f"Unknown command: {escape(command)}\n\n"
        "Use /help to see available commands or just ask me something!"
    )


__all__ = [
    "ACCOUNT_ACCESS_ERROR",
    "DEFAULT_CLARIFY_REPLY",
    "DEFAULT_DENY_REPLY",
    "DEFAULT_DIRECT_REPLY",
    "link_failure",
    "link_prompt",
    "link_success",
    "linked_help",
    "linked_status",
    "unknown_command",
    "unlinked_help",
    "unlinked_welcome",
]
