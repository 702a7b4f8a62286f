"""Telegram dating bot: profiles, discovery, matching, coins and moderation."""
