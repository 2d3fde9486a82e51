"""Slack events Lambda: acknowledges Slack quickly and hands messages to the agent Lambda."""
