#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Run the SmartSpend Telegram Bot
Usage: python run_bot.py
"""

import logging
import sys

# Fix Windows console encoding
if sys.platform == 'win32':
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')

from smartspend.backend.telegram_bot import run_bot

if __name__ == "__main__":
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.INFO
    )
    print("[BOT] Starting SmartSpend Telegram Bot...")
    print("[INFO] Press Ctrl+C to stop")
    print("")
    run_bot()
