"""
Telegram Bot Service for SmartSpend
Allows users to record expenses and check budgets via Telegram messages
"""

import logging
from datetime import datetime
from telegram import Update, BotCommand
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

from .ai_service import AIService
from .alerts import dispatch_notifications
from .budget_models import BudgetValidationError, LIMIT_KEYS
from .composer import ExpenseComposer
from .config import load_settings
from .formatting import format_inr_grouped
from .manager import FinanceManager
from .models import CATEGORIES
from .notifications import TelegramNotifier
from .storage import Storage

logger = logging.getLogger(__name__)

LIMIT_NAMES = {name.lower(): name for name in LIMIT_KEYS + CATEGORIES}

ALERT_ICONS = {'critical': '🚨', 'warning': '⚠️', 'success': '🎉'}


def _manager(context) -> FinanceManager:
    return context.bot_data['manager']


def _user_id(update: Update) -> str:
    return str(update.effective_chat.id)


def _chat_notifier(context, chat_id) -> TelegramNotifier:
    """One notifier per chat, so alert dedupe is tracked per user."""
    notifiers = context.bot_data.setdefault('notifiers', {})
    if chat_id not in notifiers:
        notifiers[chat_id] = TelegramNotifier(chat_id=chat_id, bot=context.bot)
    return notifiers[chat_id]


def _ensure_session(context, user_id):
    """Run the archiver the first time a chat shows up in this process."""
    sessions = context.bot_data.setdefault('sessions', set())
    if user_id not in sessions:
        _manager(context).bootstrap(user_id)
        sessions.add(user_id)


async def safe_reply(update: Update, text: str, parse_mode='Markdown'):
    """Safely reply to a message, catching potential network errors"""
    try:
        if update.message:
            await update.message.reply_text(text, parse_mode=parse_mode)
    except Exception as e:
        logger.error(f"Failed to send message: {e}")


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start command"""
    _ensure_session(context, _user_id(update))
    welcome_msg = """
🎉 *Welcome to SmartSpend!*

Just tell me what you spent:
• `coffee 120`
• `groceries 850, petrol 1200`
• `rs 300 haircut yesterday`

Set up your budget first: `/setup 50000`
Type /help for all commands.
"""
    await safe_reply(update, welcome_msg)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /help command"""
    help_msg = """
📖 *How to use*

*Record spending:*
• `dinner 450` → ₹450 Outings
• `amazon order 1299` → ₹1,299 Orders
• `electricity bill 2100` → ₹2,100 Bills

*Budget:*
/setup 50000 - Set monthly income (50/30/20 split)
/limit Weekly 4000 - Change a limit (Weekly, Monthly, Savings or a category)

*Reports:*
/alerts - Budget alerts
/report - Spending breakdown and insights
/week - This week's spending
/history - Archived months
/status - Bot status
"""
    await safe_reply(update, help_msg)


async def setup_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /setup <income> - onboarding with suggested allocations"""
    if not context.args:
        await safe_reply(update, "💼 Usage: `/setup 50000`")
        return
    try:
        budget = _manager(context).complete_setup(_user_id(update), context.args[0])
    except BudgetValidationError as e:
        await safe_reply(update, f"❌ {e}")
        return

    a = budget.allocations
    await safe_reply(update, f"""
✅ *Budget set*
💰 Income: {format_inr_grouped(budget.monthly_income)}
📅 Weekly limit: {format_inr_grouped(a.weekly_limit)}
🧾 Monthly bills: {format_inr_grouped(a.monthly_limit)}
🏦 Savings goal: {format_inr_grouped(a.savings_target)}
""")


async def limit_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /limit <key> <value>"""
    if not context.args or len(context.args) < 2:
        await safe_reply(update, "📏 Usage: `/limit Weekly 4000`")
        return
    key, value = context.args[0], context.args[1]
    # Accept "weekly" as well as "Weekly"
    key = LIMIT_NAMES.get(key.lower(), key)
    try:
        budget = _manager(context).update_limit(_user_id(update), key, value)
    except BudgetValidationError as e:
        await safe_reply(update, f"❌ {e}")
        return
    await safe_reply(update, f"✅ *{key}* limit updated.\n🏦 Savings goal: {format_inr_grouped(budget.allocations.savings_target)}")


def format_alerts(alerts) -> str:
    if not alerts:
        return "✅ No budget alerts. You're on track!"
    lines = ["🔔 *Budget alerts*", ""]
    for alert in alerts:
        lines.append(f"{ALERT_ICONS.get(alert.type, '•')} *{alert.title}*")
        lines.append(alert.message)
    return "\n".join(lines)


async def alerts_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /alerts command"""
    user_id = _user_id(update)
    _ensure_session(context, user_id)
    await safe_reply(update, format_alerts(_manager(context).get_alerts(user_id)))


async def report_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /report command - spending breakdown"""
    analytics = _manager(context).get_analytics(_user_id(update))
    if not analytics.breakdown:
        await safe_reply(update, "📊 No spending recorded yet.")
        return

    msg = f"📊 *Spendings Summary*\n\nTotal: *{format_inr_grouped(analytics.total_spent)}*\n\n"
    for entry in analytics.breakdown:
        msg += f"• {entry.name}: {format_inr_grouped(entry.amount)} ({entry.percentage}%)\n"
    if analytics.insights:
        msg += "\n✨ *Smart Insights*\n" + "\n".join(f"• {i}" for i in analytics.insights)
    await safe_reply(update, msg)


async def week_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /week command - this week's spending against limits"""
    weekly = _manager(context).get_weekly_spending(_user_id(update))
    msg = (f"📅 *This week*: {format_inr_grouped(weekly['totalWeeklySpent'])}"
           f" / {format_inr_grouped(weekly['weeklyLimit'])} ({weekly['progress']:.0f}%)\n\n")
    for category, spent in weekly['categorySpend'].items():
        limit = weekly['categoryLimits'].get(category) or 0
        cap = f" / {format_inr_grouped(limit)}" if limit > 0 else ""
        msg += f"• {category}: {format_inr_grouped(spent)}{cap}\n"
    await safe_reply(update, msg)


async def history_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /history command - archived months"""
    user_id = _user_id(update)
    _ensure_session(context, user_id)
    months = _manager(context).get_history(user_id)['months']
    if not months:
        await safe_reply(update, "🗂 No history yet. Months are archived once they end.")
        return
    msg = "🗂 *History*\n\n"
    for m in months:
        msg += f"• {m.month_name}: spent {format_inr_grouped(m.total_spent)}, saved {format_inr_grouped(m.total_saved)}\n"
    await safe_reply(update, msg)


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /status command - Health check"""
    status_msg = f"""
🤖 *SmartSpend Bot Status*
✅ *Service:* Running
🧠 *AI Provider:* {AIService.get_active_provider().upper()}
⏰ *Current Time:* {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
"""
    await safe_reply(update, status_msg)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle natural language messages: parse, upgrade with AI, then save"""
    text = update.message.text

    if not text or len(text.strip()) == 0:
        return

    user_id = _user_id(update)
    manager = _manager(context)

    # Show typing indicator
    await context.bot.send_chat_action(chat_id=update.effective_chat.id, action='typing')

    try:
        _ensure_session(context, user_id)

        # Messages arrive whole, so there is nothing to debounce
        composer = ExpenseComposer(manager.ai_service, quiet_period=0, clock=manager.clock)
        composer.update(text)
        await composer.flush()
        items = composer.commit()

        if not items:
            await safe_reply(update, "🤔 I couldn't find an amount in that.\n\nTry: `coffee 120` or /help")
            return

        saved, alerts = manager.add_expenses(user_id, items)
        lines = [f"💸 *Saved {len(saved)} expense{'s' if len(saved) != 1 else ''}*"]
        for t in saved:
            lines.append(f"• {format_inr_grouped(t.amount)} {t.category}: {t.description}")
        await safe_reply(update, "\n".join(lines))

        notifier = _chat_notifier(context, update.effective_chat.id)
        if not notifier.has_permission:
            await notifier.request_permission()
        await dispatch_notifications(manager.alert_center(user_id).visible(alerts), notifier)

    except Exception as e:
        logger.error(f"Error processing message: {e}")
        await safe_reply(update, "❌ Something went wrong. Please try again.")


async def post_init(application: Application):
    """Set bot commands menu and enable alert delivery"""
    commands = [
        BotCommand("start", "Get started"),
        BotCommand("setup", "Set monthly income"),
        BotCommand("limit", "Change a budget limit"),
        BotCommand("alerts", "Budget alerts"),
        BotCommand("report", "Spending breakdown"),
        BotCommand("week", "This week's spending"),
        BotCommand("history", "Archived months"),
        BotCommand("status", "Bot status"),
        BotCommand("help", "How to use"),
    ]
    await application.bot.set_my_commands(commands)


def build_application(token, manager):
    application = Application.builder().token(token).post_init(post_init).build()
    application.bot_data['manager'] = manager

    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("setup", setup_command))
    application.add_handler(CommandHandler("limit", limit_command))
    application.add_handler(CommandHandler("alerts", alerts_command))
    application.add_handler(CommandHandler("report", report_command))
    application.add_handler(CommandHandler("week", week_command))
    application.add_handler(CommandHandler("history", history_command))
    application.add_handler(CommandHandler("status", status_command))

    # Handle all text messages
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    return application


def run_bot():
    """Start the Telegram bot with polling"""
    settings = load_settings()

    if not settings.telegram_bot_token:
        logger.error("TELEGRAM_BOT_TOKEN not found in environment variables!")
        return

    logger.info("Starting SmartSpend Telegram Bot...")

    AIService.set_provider(settings.ai_provider)
    manager = FinanceManager(storage=Storage(settings.db_path), ai_service=AIService(settings))
    application = build_application(settings.telegram_bot_token, manager)

    # Start polling
    logger.info("Bot is running! Press Ctrl+C to stop.")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    run_bot()
