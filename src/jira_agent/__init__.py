"""Jira agent: runs the tool-calling agent loop for one Slack message."""
