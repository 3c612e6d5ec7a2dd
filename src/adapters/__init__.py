"""Adapters connecting the core to Mattermost, Anthropic and the filesystem."""
